"""
Engine Errors

Purpose: One exception family for every stage of a catalog run.

Policy (enforced by the orchestrator and main.py):
- CatalogParseError: fatal for that entity's run
- ValidationError: identifier dropped, run continues
- ExecutionError: query skipped, hit count untouched
- CatalogWriteError: warning, report still rendered
- AuthenticationError / ConfigError: fatal at startup
"""

from typing import Optional

__all__ = [
	"HuntError",
	"CatalogParseError",
	"CatalogWriteError",
	"ValidationError",
	"ExecutionError",
	"AuthenticationError",
	"ConfigError",
]


class HuntError(Exception):
	"""Base class for all engine errors."""


class CatalogParseError(HuntError):
	"""Catalog document is missing or malformed."""


class CatalogWriteError(HuntError):
	"""Catalog document could not be persisted."""


class ValidationError(HuntError):
	"""An investigation identifier failed its format check."""


class ExecutionError(HuntError):
	"""A backend query failed."""

	def __init__(self, message: str, kind: str = "backend", status: Optional[int] = None) -> None:
		super().__init__(message)
		self.kind = kind
		self.status = status


class AuthenticationError(HuntError):
	"""A backend session could not be established."""


class ConfigError(HuntError):
	"""Configuration file holds an invalid value."""

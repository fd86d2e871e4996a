"""
Hunt Configuration

Purpose: Load config.yml (backend, auth, catalog locations, output, execution).

Design notes:
- Relative paths are resolved against the directory of the config file
- Secrets are never stored here, only the name of the environment variable
"""

import os
from typing import Any, Dict

import yaml

from HUNT.errors import ConfigError

__all__ = ["HuntConfigLoader", "default_config_path", "ENTITY_TYPES"]

ENTITY_TYPES = {"device": "Device", "identity": "Identity"}


def default_config_path() -> str:
	config_dir = os.path.dirname(__file__)
	return os.path.join(config_dir, "config.yml")


class HuntConfigLoader:
	"""Load hunting configuration."""

	def __init__(self, config_path: str) -> None:
		self._config_path = config_path
		self._config = self._load()

	def _load(self) -> Dict[str, Any]:
		if not os.path.isfile(self._config_path):
			raise FileNotFoundError(f"Hunt config not found: {self._config_path}")
		with open(self._config_path, "r", encoding="utf-8") as f:
			try:
				data = yaml.safe_load(f) or {}
			except yaml.YAMLError as e:
				raise ConfigError(f"Malformed YAML in {self._config_path}: {e}") from e
		if not isinstance(data, dict):
			raise ConfigError(f"{self._config_path} must contain a mapping")
		return data

	def _section(self, name: str) -> Dict[str, Any]:
		section = self._config.get(name, {}) or {}
		if not isinstance(section, dict):
			raise ConfigError(f"'{name}' section must be a mapping")
		return section

	def _resolve(self, rel_path: str) -> str:
		if os.path.isabs(rel_path):
			return rel_path
		config_dir = os.path.dirname(self._config_path)
		return os.path.normpath(os.path.join(config_dir, rel_path))

	@property
	def auth_config(self) -> Dict[str, Any]:
		return self._section("auth")

	def get_endpoint(self) -> str:
		return str(self._section("backend").get("endpoint", "https://graph.microsoft.com/v1.0/security/runHuntingQuery"))

	def get_timeout(self) -> float:
		"""Per-query backend timeout in seconds."""
		value = self._section("backend").get("timeout_seconds", 120)
		try:
			timeout = float(value)
		except (TypeError, ValueError) as e:
			raise ConfigError(f"backend.timeout_seconds must be a number: {value!r}") from e
		if timeout <= 0:
			raise ConfigError("backend.timeout_seconds must be positive")
		return timeout

	def get_workers(self) -> int:
		value = self._section("execution").get("workers", 1)
		try:
			workers = int(value)
		except (TypeError, ValueError) as e:
			raise ConfigError(f"execution.workers must be an integer: {value!r}") from e
		if workers < 1:
			raise ConfigError("execution.workers must be at least 1")
		return workers

	def get_catalog_path(self, entity_type: str) -> str:
		"""
		Get absolute path to the catalog for an entity type.

		Args:
			entity_type: "device" or "identity" (case-insensitive)
		"""
		key = entity_type.lower()
		if key not in ENTITY_TYPES:
			raise ConfigError(f"Unknown entity type: {entity_type}")
		rel_path = self._section("catalogs").get(key, "")
		if not rel_path:
			raise ConfigError(f"catalogs.{key} is not configured")
		return self._resolve(rel_path)

	def get_report_dir(self) -> str:
		"""Report directory, relative to the working directory."""
		return str(self._section("output").get("report_dir", "Reports"))

	def get_export_dir(self) -> str:
		"""CSV export directory, relative to the working directory."""
		return str(self._section("output").get("export_dir", "."))

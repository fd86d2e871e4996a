"""
Query Parameters

Purpose: Carry the investigation context and render query templates with it.

Responsibilities:
- Validate device ids (40 hex chars) and user principal names (local@domain)
- Drop identifiers that fail validation without aborting the run
- Replace {DeviceId}, {TimeFrame} and {UserPrincipalName} placeholders

Design notes:
- Substitution is purely textual: no escaping is applied to the values and
  no other braces are interpreted. Values land in the query language as-is.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional

from HUNT.errors import ValidationError

__all__ = [
	"InvestigationContext",
	"DEFAULT_TIME_FRAME",
	"validate_device_id",
	"validate_user_principal_name",
	"validate_time_frame",
	"build_context",
	"render_query",
]

logger = logging.getLogger(__name__)

DEFAULT_TIME_FRAME = "7d"

DEVICE_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{40}$")
UPN_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
TIME_FRAME_PATTERN = re.compile(r"^\d+[smhd]$")


@dataclass(frozen=True)
class InvestigationContext:
	"""Per-run values supplied by the CLI layer."""

	device_id: Optional[str] = None
	user_principal_name: Optional[str] = None
	time_frame: str = DEFAULT_TIME_FRAME
	echo: bool = False
	export: bool = False
	export_dir: str = "."

	def placeholders(self) -> Dict[str, str]:
		"""Placeholder -> substitution text (absent values become "")."""
		return {
			"{DeviceId}": self.device_id or "",
			"{TimeFrame}": self.time_frame or "",
			"{UserPrincipalName}": self.user_principal_name or "",
		}


def validate_device_id(value: str) -> str:
	"""Return the device id unchanged or raise ValidationError."""
	if not isinstance(value, str) or not DEVICE_ID_PATTERN.match(value.strip()):
		raise ValidationError(f"Device id must be 40 hexadecimal characters: {value!r}")
	return value.strip()


def validate_user_principal_name(value: str) -> str:
	"""Return the UPN unchanged or raise ValidationError."""
	if not isinstance(value, str) or not UPN_PATTERN.match(value.strip()):
		raise ValidationError(f"User principal name must look like user@domain.tld: {value!r}")
	return value.strip()


def validate_time_frame(value: str) -> str:
	"""Return the time frame or raise ValidationError (e.g. 7d, 12h, 30m)."""
	if not isinstance(value, str) or not TIME_FRAME_PATTERN.match(value.strip()):
		raise ValidationError(f"Time frame must look like 7d, 12h or 30m: {value!r}")
	return value.strip()


def build_context(
	device_id: Optional[str] = None,
	user_principal_name: Optional[str] = None,
	time_frame: Optional[str] = None,
	echo: bool = False,
	export: bool = False,
	export_dir: str = ".",
) -> InvestigationContext:
	"""
	Build an InvestigationContext, dropping identifiers that fail validation.

	A failing identifier is logged and treated as absent; the other identifier
	is kept. The time frame is free-form and only flagged when unusual.
	"""
	valid_device_id = None
	if device_id:
		try:
			valid_device_id = validate_device_id(device_id)
		except ValidationError as e:
			logger.warning("Ignoring device id: %s", e)

	valid_upn = None
	if user_principal_name:
		try:
			valid_upn = validate_user_principal_name(user_principal_name)
		except ValidationError as e:
			logger.warning("Ignoring user principal name: %s", e)

	valid_time_frame = time_frame or DEFAULT_TIME_FRAME
	try:
		validate_time_frame(valid_time_frame)
	except ValidationError as e:
		logger.warning("%s; it is substituted into queries unchanged", e)

	return InvestigationContext(
		device_id=valid_device_id,
		user_principal_name=valid_upn,
		time_frame=valid_time_frame,
		echo=echo,
		export=export,
		export_dir=export_dir,
	)


def render_query(template: str, context: InvestigationContext) -> str:
	"""
	Substitute investigation values into a query template.

	Args:
		template: Query text containing placeholders
		context: Investigation context

	Returns:
		Query text with every known placeholder replaced
	"""
	text = template
	for placeholder, value in context.placeholders().items():
		text = text.replace(placeholder, value)
	return text

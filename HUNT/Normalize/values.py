"""
Result Values

Purpose: Give backend result fields an explicit, closed shape.

Backend rows are schema-less property bags. Every field is classified into
exactly one of:
- StringValue
- NumberValue (booleans included)
- ListValue (list of strings)
- ABSENT (missing key or JSON null)

Nested objects are serialized to compact JSON and carried as strings.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

__all__ = ["StringValue", "NumberValue", "ListValue", "Absent", "ABSENT", "Value", "RawRow", "to_value", "to_raw_row"]


@dataclass(frozen=True)
class StringValue:
	text: str

	def render(self) -> str:
		return self.text


@dataclass(frozen=True)
class NumberValue:
	number: Union[int, float, bool]

	def render(self) -> str:
		return str(self.number)


@dataclass(frozen=True)
class ListValue:
	items: Tuple[str, ...]

	def render(self) -> str:
		return ", ".join(self.items)


class Absent:
	"""Marker for a field with no value."""

	_instance = None

	def __new__(cls):
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def render(self) -> str:
		return ""

	def __repr__(self) -> str:
		return "ABSENT"


ABSENT = Absent()

Value = Union[StringValue, NumberValue, ListValue, Absent]
RawRow = Dict[str, Value]


def _item_text(item: Any) -> str:
	"""Flatten one list element into a string."""
	if item is None:
		return ""
	if isinstance(item, str):
		return item
	if isinstance(item, (dict, list)):
		return json.dumps(item, separators=(",", ":"), ensure_ascii=False)
	return str(item)


def to_value(raw: Any) -> Value:
	"""
	Classify a decoded JSON value.

	Args:
		raw: Value as returned by json.loads (or already a Value)

	Returns:
		The matching Value variant
	"""
	if isinstance(raw, (StringValue, NumberValue, ListValue, Absent)):
		return raw
	if raw is None:
		return ABSENT
	if isinstance(raw, str):
		return StringValue(raw)
	if isinstance(raw, (bool, int, float)):
		return NumberValue(raw)
	if isinstance(raw, (list, tuple)):
		return ListValue(tuple(_item_text(item) for item in raw))
	if isinstance(raw, dict):
		return StringValue(json.dumps(raw, separators=(",", ":"), ensure_ascii=False))
	return StringValue(str(raw))


def to_raw_row(record: Dict[str, Any]) -> RawRow:
	"""Convert one decoded result record into a RawRow, keeping key order."""
	if not isinstance(record, dict):
		raise ValueError("result record must be a dictionary")
	return {str(key): to_value(value) for key, value in record.items()}
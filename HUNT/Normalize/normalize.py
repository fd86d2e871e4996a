'''
Result Normalization

Purpose: Turn heterogeneous backend rows into one uniform table.

Responsibilities:
- Compute the ordered union of field names across all rows
- Flatten list values into ", "-joined strings
- Render missing fields as empty strings

Why important:
- Hunting queries have no fixed schema contract; two rows of the same
  result may expose different columns
- CSV export and terminal echo both need a single stable header
'''

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from HUNT.Normalize.values import ABSENT, RawRow, to_value

__all__ = ["NormalizedTable", "collect_columns", "normalize"]


@dataclass
class NormalizedTable:
	"""Rows populated over the same ordered column set."""

	columns: List[str] = field(default_factory=list)
	rows: List[Dict[str, str]] = field(default_factory=list)

	def __len__(self) -> int:
		return len(self.rows)

	@property
	def is_empty(self) -> bool:
		return not self.rows

	def as_lists(self) -> List[List[str]]:
		"""Return rows as lists in column order."""
		return [[row[column] for column in self.columns] for row in self.rows]


def collect_columns(rows: Iterable[Mapping[str, Any]]) -> List[str]:
	"""
	Ordered union of field names.

	Each name is added the first time it is seen; later duplicates are ignored.
	"""
	columns: List[str] = []
	seen = set()
	for row in rows:
		for key in row.keys():
			if key not in seen:
				seen.add(key)
				columns.append(key)
	return columns


def _cell(row: Mapping[str, Any], column: str) -> str:
	return to_value(row.get(column, ABSENT)).render()


def normalize(rows: Sequence[RawRow]) -> NormalizedTable:
	"""
	Normalize raw result rows into a NormalizedTable.

	Args:
		rows: Raw rows in backend order. Plain decoded JSON records are
			accepted as well as RawRow mappings.

	Returns:
		Table whose columns are the union of all row keys in first-seen order
		and whose rows carry a string for every column.

	Raises:
		ValueError: If a row is not a mapping
	"""
	for idx, row in enumerate(rows):
		if not isinstance(row, Mapping):
			raise ValueError(f"row[{idx}] must be a mapping")

	columns = collect_columns(rows)
	table_rows = [{column: _cell(row, column) for column in columns} for row in rows]
	return NormalizedTable(columns=columns, rows=table_rows)

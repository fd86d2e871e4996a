"""
Query Catalog Store

Purpose: Load and persist the ordered catalog of hunting query definitions.

Responsibilities:
- Parse the catalog JSON document into QueryDefinition entries
- Keep fields this engine does not know about so they survive a save
- Rewrite the whole document atomically (temp file + os.replace)

Document shape:
[
	{"Name": "...", "Query": "...", "Source": "...", "ResultCount": 0},
	...
]

Design notes:
- Identity of an entry is its position, Name is not unique
- ResultCount defaults to 0 when absent
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from HUNT.errors import CatalogParseError, CatalogWriteError

__all__ = ["QueryDefinition", "Catalog", "load_catalog", "save_catalog"]

logger = logging.getLogger(__name__)

KNOWN_FIELDS = ("Name", "Query", "Source", "ResultCount")


@dataclass
class QueryDefinition:
	"""One named, templated hunting query."""

	name: str
	query: str
	source: str = ""
	result_count: int = 0
	extra: Dict[str, Any] = field(default_factory=dict)

	@classmethod
	def from_document(cls, entry: Any, idx: int) -> "QueryDefinition":
		"""Build a definition from one catalog entry, validating its structure."""
		if not isinstance(entry, dict):
			raise CatalogParseError(f"catalog entry [{idx}] must be an object")

		name = entry.get("Name")
		if not isinstance(name, str):
			raise CatalogParseError(f"catalog entry [{idx}] 'Name' must be a string")

		query = entry.get("Query")
		if not isinstance(query, str):
			raise CatalogParseError(f"catalog entry [{idx}] 'Query' must be a string")

		source = entry.get("Source", "")
		if source is None:
			source = ""
		if not isinstance(source, str):
			raise CatalogParseError(f"catalog entry [{idx}] 'Source' must be a string")

		result_count = entry.get("ResultCount", 0)
		if result_count is None:
			result_count = 0
		# bool is an int subclass; reject it explicitly
		if isinstance(result_count, bool) or not isinstance(result_count, int):
			raise CatalogParseError(f"catalog entry [{idx}] 'ResultCount' must be an integer")

		extra = {key: value for key, value in entry.items() if key not in KNOWN_FIELDS}

		return cls(name=name, query=query, source=source, result_count=result_count, extra=extra)

	def to_document(self) -> Dict[str, Any]:
		"""Serialize back to a catalog entry (known fields first, then extras)."""
		entry: Dict[str, Any] = {
			"Name": self.name,
			"Query": self.query,
			"Source": self.source,
			"ResultCount": self.result_count,
		}
		entry.update(self.extra)
		return entry


@dataclass
class Catalog:
	"""Ordered collection of query definitions bound to a storage location."""

	path: str
	definitions: List[QueryDefinition] = field(default_factory=list)

	def __iter__(self) -> Iterator[QueryDefinition]:
		return iter(self.definitions)

	def __len__(self) -> int:
		return len(self.definitions)

	def __getitem__(self, idx: int) -> QueryDefinition:
		return self.definitions[idx]

	def to_document(self) -> List[Dict[str, Any]]:
		return [definition.to_document() for definition in self.definitions]


def load_catalog(path: str) -> Catalog:
	"""
	Load a catalog document.

	Args:
		path: Path to the catalog JSON file

	Returns:
		Catalog with definitions in file order

	Raises:
		CatalogParseError: If the file is missing, unreadable or malformed
	"""
	if not os.path.isfile(path):
		raise CatalogParseError(f"Catalog not found: {path}")

	try:
		with open(path, "r", encoding="utf-8-sig") as f:
			document = json.load(f)
	except json.JSONDecodeError as e:
		raise CatalogParseError(f"Malformed JSON in catalog {path}: {e}") from e
	except OSError as e:
		raise CatalogParseError(f"Unable to read catalog {path}: {e}") from e

	if not isinstance(document, list):
		raise CatalogParseError(f"Catalog {path} must contain a list of query definitions")

	definitions = [QueryDefinition.from_document(entry, idx) for idx, entry in enumerate(document)]
	logger.debug("Loaded %d query definitions from %s", len(definitions), path)
	return Catalog(path=path, definitions=definitions)


def save_catalog(catalog: Catalog, path: Optional[str] = None) -> str:
	"""
	Persist the full catalog, replacing the target file atomically.

	Args:
		catalog: Catalog to write
		path: Target path (defaults to the path the catalog was loaded from)

	Returns:
		Path written

	Raises:
		CatalogWriteError: If the document cannot be written
	"""
	target = path or catalog.path
	if not target:
		raise CatalogWriteError("No catalog path to write to")

	target_dir = os.path.dirname(os.path.abspath(target))
	tmp_path = None
	try:
		fd, tmp_path = tempfile.mkstemp(prefix=".catalog-", suffix=".tmp", dir=target_dir)
		with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
			json.dump(catalog.to_document(), f, indent=4, ensure_ascii=False)
			f.write("\n")
			f.flush()
			os.fsync(f.fileno())
		os.replace(tmp_path, target)
		tmp_path = None
	except (OSError, TypeError, ValueError) as e:
		raise CatalogWriteError(f"Unable to write catalog {target}: {e}") from e
	finally:
		if tmp_path is not None and os.path.exists(tmp_path):
			os.remove(tmp_path)

	logger.debug("Persisted %d query definitions to %s", len(catalog), target)
	return target

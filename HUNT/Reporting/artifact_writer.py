"""
Query Artifact Writer

Purpose: Emit per-query extracts from a normalized result table.

Responsibilities:
- Echo the table to the terminal in union column order
- Export the table to <QueryName>.csv
- Apply the echo and export flags of an investigation context

Design notes:
- An empty table never produces a CSV file, whatever the export flag says
- Query names are used as file names; path separators are replaced so a
  name cannot point outside the export directory
"""

import csv
import logging
import os
import re
from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from HUNT.Normalize.normalize import NormalizedTable
from HUNT.Query.parameters import InvestigationContext

__all__ = ["echo_table", "export_csv", "csv_file_name", "write_artifacts"]

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[\\/\x00]")


def csv_file_name(name: str) -> str:
	"""File name for a query's CSV extract."""
	safe = _UNSAFE_NAME_CHARS.sub("_", name).strip()
	if safe in ("", ".", ".."):
		safe = "query"
	return f"{safe}.csv"


def echo_table(table: NormalizedTable, console: Optional[Console] = None, title: Optional[str] = None) -> None:
	"""Print an aligned column table to the terminal."""
	console = console or Console()
	if table.is_empty:
		console.print("[dim]  (no rows)[/dim]")
		return

	rich_table = Table(title=title, box=box.SIMPLE_HEAVY, show_lines=False)
	for column in table.columns:
		rich_table.add_column(Text(column), overflow="fold")
	for row in table.as_lists():
		# Text cells are not parsed as console markup
		rich_table.add_row(*[Text(cell) for cell in row])
	console.print(rich_table)


def export_csv(table: NormalizedTable, name: str, output_dir: str = ".") -> Optional[str]:
	"""
	Write a table to <output_dir>/<name>.csv.

	Args:
		table: Normalized result table
		name: Query name
		output_dir: Directory to write into (created if missing)

	Returns:
		Path written, or None when the table has no rows
	"""
	if table.is_empty:
		return None

	os.makedirs(output_dir, exist_ok=True)
	file_path = os.path.join(output_dir, csv_file_name(name))
	with open(file_path, "w", encoding="utf-8", newline="") as f:
		writer = csv.DictWriter(f, fieldnames=table.columns, quoting=csv.QUOTE_MINIMAL)
		writer.writeheader()
		writer.writerows(table.rows)

	logger.debug("Exported %d rows to %s", len(table), file_path)
	return file_path



def write_artifacts(table: NormalizedTable, name: str, context: InvestigationContext,
		console: Optional[Console] = None) -> Optional[str]:
	"""
	Apply the context's echo and export flags to one query's table.

	Returns:
		Path of the CSV written, or None when nothing was exported
	"""
	if context.echo:
		echo_table(table, console=console, title=name)
	if not context.export:
		return None
	try:
		return export_csv(table, name, context.export_dir)
	except OSError as e:
		logger.warning("Could not export '%s' to CSV: %s", name, e)
		return None

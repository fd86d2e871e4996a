'''
Catalog Run Orchestrator

Purpose: Run one entity's query catalog end to end.

Sequence per entity type (Device / Identity):
1. Load catalog (CatalogParseError is fatal for this entity)
2. For each definition, in catalog order:
   render -> execute (fixed 180 day lookback) -> normalize -> artifacts
   -> update ResultCount -> summary line
   A failed execution is reported and keeps its previous ResultCount
3. Persist the whole catalog (a write failure is only a warning)
4. Render the HTML report from the in-memory catalog (a write failure is
   only a warning)

Concurrency:
- workers == 1: strictly sequential
- workers > 1: a bounded thread pool runs render/execute/normalize; artifacts,
  hit counts and summary lines are applied on the calling thread, in catalog
  order, once results are collected
- Ctrl-C stops scheduling, keeps finished results, and still persists and
  reports
'''

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from rich.console import Console
from rich.text import Text

from HUNT.Catalog.catalog_store import Catalog, QueryDefinition, load_catalog, save_catalog
from HUNT.Normalize.normalize import NormalizedTable, normalize
from HUNT.Query.backend import LOOKBACK_WINDOW, QueryBackend
from HUNT.Query.parameters import InvestigationContext, render_query
from HUNT.Reporting.artifact_writer import write_artifacts
from HUNT.Reporting.report_renderer import render_report
from HUNT.errors import CatalogWriteError, ExecutionError

__all__ = ["ExecutionOutcome", "RunResult", "CatalogRunner", "run_device_queries", "run_identity_queries"]

logger = logging.getLogger(__name__)

DEVICE = "Device"
IDENTITY = "Identity"


@dataclass
class ExecutionOutcome:
	"""Result of running one query definition."""

	index: int
	name: str
	query_text: str = ""
	row_count: Optional[int] = None
	table: Optional[NormalizedTable] = None
	error: Optional[str] = None
	csv_path: Optional[str] = None
	cancelled: bool = False

	@property
	def succeeded(self) -> bool:
		return self.error is None and self.row_count is not None


@dataclass
class RunResult:
	"""Summary of one entity run."""

	entity_type: str
	entity_id: str
	catalog: Catalog
	outcomes: List[ExecutionOutcome] = field(default_factory=list)
	persisted: bool = False
	report_path: Optional[str] = None
	cancelled: bool = False

	@property
	def failures(self) -> List[ExecutionOutcome]:
		return [outcome for outcome in self.outcomes if not outcome.succeeded]


class CatalogRunner:
	"""Execute a query catalog for one investigation context."""

	def __init__(self, backend: QueryBackend, context: InvestigationContext, report_dir: str = "Reports",
			workers: int = 1, console: Optional[Console] = None) -> None:
		if workers < 1:
			raise ValueError("workers must be at least 1")
		self._backend = backend
		self._context = context
		self._report_dir = report_dir
		self._workers = workers
		self._console = console or Console()

	def _execute_one(self, idx: int, definition: QueryDefinition) -> ExecutionOutcome:
		"""Render, execute and normalize one query. Touches no shared state."""
		query_text = render_query(definition.query, self._context)
		outcome = ExecutionOutcome(index=idx, name=definition.name, query_text=query_text)

		try:
			rows = self._backend.execute(query_text, LOOKBACK_WINDOW)
		except ExecutionError as e:
			outcome.error = str(e)
			return outcome

		outcome.table = normalize(rows)
		outcome.row_count = len(rows)
		return outcome

	def _print_summary(self, outcome: ExecutionOutcome) -> None:
		if not outcome.succeeded:
			return
		if outcome.row_count > 0:
			line = Text.assemble(("[!] ", "bold red"), (outcome.name, "bold"), (f": {outcome.row_count} hits", "bold red"))
		else:
			line = Text.assemble(("[-] ", "green"), outcome.name, (": 0 hits", "green"))
		self._console.print(line)

	def _apply(self, catalog: Catalog, outcome: ExecutionOutcome) -> None:
		"""Fold one outcome into the in-memory catalog (calling thread only)."""
		definition = catalog[outcome.index]
		if outcome.cancelled:
			return
		if not outcome.succeeded:
			logger.warning("Query '%s' failed, keeping previous count %d: %s",
				definition.name, definition.result_count, outcome.error)
			return

		outcome.csv_path = write_artifacts(outcome.table, definition.name, self._context, console=self._console)
		definition.result_count = outcome.row_count
		self._print_summary(outcome)

	def _cancelled_outcome(self, idx: int, definition: QueryDefinition) -> ExecutionOutcome:
		return ExecutionOutcome(index=idx, name=definition.name, error="cancelled", cancelled=True)

	def _run_sequential(self, catalog: Catalog) -> List[ExecutionOutcome]:
		outcomes: List[ExecutionOutcome] = []
		for idx, definition in enumerate(catalog):
			try:
				outcome = self._execute_one(idx, definition)
			except KeyboardInterrupt:
				logger.warning("Interrupted; skipping %d remaining queries", len(catalog) - idx)
				outcomes.extend(self._cancelled_outcome(i, catalog[i]) for i in range(idx, len(catalog)))
				break
			self._apply(catalog, outcome)
			outcomes.append(outcome)
		return outcomes

	def _run_pooled(self, catalog: Catalog) -> List[ExecutionOutcome]:
		finished: Dict[int, ExecutionOutcome] = {}
		executor = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="hunt")
		futures = {executor.submit(self._execute_one, idx, definition): idx for idx, definition in enumerate(catalog)}
		interrupted = False
		try:
			for future in as_completed(futures):
				finished[futures[future]] = future.result()
		except KeyboardInterrupt:
			interrupted = True
			logger.warning("Interrupted; keeping %d finished queries", len(finished))
		finally:
			executor.shutdown(wait=not interrupted, cancel_futures=interrupted)

		outcomes = []
		for idx, definition in enumerate(catalog):
			outcome = finished.get(idx) or self._cancelled_outcome(idx, definition)
			self._apply(catalog, outcome)
			outcomes.append(outcome)
		return outcomes

	def run(self, catalog_path: str, entity_type: str, entity_id: str) -> RunResult:
		"""
		Run a catalog for one entity.

		Raises:
			CatalogParseError: If the catalog cannot be loaded
		"""
		catalog = load_catalog(catalog_path)
		self._console.print(Text(f"Running {len(catalog)} {entity_type.lower()} queries for {entity_id}", style="bold"))

		if self._workers > 1:
			outcomes = self._run_pooled(catalog)
		else:
			outcomes = self._run_sequential(catalog)

		result = RunResult(entity_type=entity_type, entity_id=entity_id, catalog=catalog, outcomes=outcomes)
		result.cancelled = any(outcome.cancelled for outcome in outcomes)

		try:
			save_catalog(catalog)
			result.persisted = True
		except CatalogWriteError as e:
			logger.warning("%s; report will use unsaved hit counts", e)

		try:
			result.report_path = render_report(catalog, entity_type, entity_id, self._context, self._report_dir)
		except OSError as e:
			logger.warning("Could not write %s report: %s", entity_type.lower(), e)
		return result


def run_device_queries(catalog_path: str, backend: QueryBackend, context: InvestigationContext,
		**runner_options) -> Optional[RunResult]:
	"""Run the device catalog; None when the context has no device id."""
	if not context.device_id:
		return None
	runner = CatalogRunner(backend, context, **runner_options)
	return runner.run(catalog_path, DEVICE, context.device_id)


def run_identity_queries(catalog_path: str, backend: QueryBackend, context: InvestigationContext,
		**runner_options) -> Optional[RunResult]:
	"""Run the identity catalog; None when the context has no user principal name."""
	if not context.user_principal_name:
		return None
	runner = CatalogRunner(backend, context, **runner_options)
	return runner.run(catalog_path, IDENTITY, context.user_principal_name)

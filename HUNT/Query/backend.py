"""
Hunting Query Backend

Purpose: Execute query text against the security-data backend.

Responsibilities:
- Define the QueryBackend capability (execute text over a lookback window)
- Call Microsoft Graph advanced hunting (runHuntingQuery) over HTTPS
- Provide an in-memory backend for offline runs and tests
- Translate every failure into ExecutionError

Design notes:
- The lookback window bounds how far back the backend may search and is
  fixed at 180 days. It is unrelated to {TimeFrame}, which only filters
  inside the query text.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional

import requests

from HUNT.Auth.session import Session
from HUNT.Normalize.values import RawRow, to_raw_row
from HUNT.errors import ExecutionError

__all__ = ["LOOKBACK_WINDOW", "QueryBackend", "GraphHuntingBackend", "StaticBackend", "to_iso_duration"]

logger = logging.getLogger(__name__)

LOOKBACK_WINDOW = timedelta(days=180)
DEFAULT_ENDPOINT = "https://graph.microsoft.com/v1.0/security/runHuntingQuery"
DEFAULT_TIMEOUT = 120


def to_iso_duration(window: timedelta) -> str:
	"""Format a timedelta as an ISO 8601 duration (P180D, PT12H, ...)."""
	total = int(window.total_seconds())
	if total <= 0:
		raise ValueError("lookback window must be positive")
	days, remainder = divmod(total, 86400)
	hours, remainder = divmod(remainder, 3600)
	minutes, seconds = divmod(remainder, 60)

	duration = "P"
	if days:
		duration += f"{days}D"
	if hours or minutes or seconds:
		duration += "T"
		if hours:
			duration += f"{hours}H"
		if minutes:
			duration += f"{minutes}M"
		if seconds:
			duration += f"{seconds}S"
	return duration


class QueryBackend:
	"""Abstract capability: run query text, return raw rows."""

	def execute(self, query_text: str, lookback: timedelta) -> List[RawRow]:
		"""
		Execute a query.

		Args:
			query_text: Fully rendered query text
			lookback: How far back the backend may fetch data

		Returns:
			Raw rows in backend order

		Raises:
			ExecutionError: On any backend failure
		"""
		raise NotImplementedError


class GraphHuntingBackend(QueryBackend):
	"""Advanced hunting through the Microsoft Graph security API."""

	def __init__(self, session: Session, timeout: float = DEFAULT_TIMEOUT, endpoint: str = DEFAULT_ENDPOINT,
			http: Optional[requests.Session] = None) -> None:
		self._session = session
		self._timeout = timeout
		self._endpoint = endpoint
		self._http = http or requests.Session()

	def _headers(self) -> Dict[str, str]:
		headers = {"Accept": "application/json", "Content-Type": "application/json"}
		headers.update(self._session.authorization_header())
		return headers

	def _raise_for_status(self, response: requests.Response) -> None:
		status = response.status_code
		if 200 <= status < 300:
			return

		try:
			error = response.json().get("error", {})
			message = error.get("message") if isinstance(error, dict) else str(error)
		except (ValueError, AttributeError):
			message = None
		message = message or f"HTTP {status} - {response.text[:100]}"

		if status in (401, 403):
			raise ExecutionError(f"Authentication rejected ({status}): {message}", kind="auth", status=status)
		if status == 400:
			raise ExecutionError(f"Query rejected: {message}", kind="query", status=status)
		if status == 429:
			retry_after = response.headers.get("Retry-After", "unknown")
			raise ExecutionError(f"Rate limited (retry after {retry_after}s): {message}", kind="throttled", status=status)
		raise ExecutionError(f"Backend error: {message}", kind="http", status=status)

	def execute(self, query_text: str, lookback: timedelta) -> List[RawRow]:
		if self._session.is_expired():
			raise ExecutionError("Session expired", kind="auth")

		payload = {"Query": query_text, "Timespan": to_iso_duration(lookback)}
		try:
			response = self._http.post(self._endpoint, json=payload, headers=self._headers(), timeout=self._timeout)
		except requests.exceptions.Timeout as e:
			raise ExecutionError(f"Backend call timed out after {self._timeout}s", kind="timeout") from e
		except requests.exceptions.RequestException as e:
			raise ExecutionError(f"Network error: {e}", kind="transport") from e

		self._raise_for_status(response)

		try:
			body = response.json()
		except ValueError as e:
			raise ExecutionError("Backend returned a non-JSON body", kind="response") from e

		results = body.get("results") if isinstance(body, dict) else None
		if not isinstance(results, list):
			raise ExecutionError("Backend response has no results list", kind="response")

		try:
			return [to_raw_row(record) for record in results]
		except ValueError as e:
			raise ExecutionError(f"Unexpected result record: {e}", kind="response") from e


class StaticBackend(QueryBackend):
	"""
	In-memory backend keyed by rendered query text.

	A value may be a list of records (returned as rows) or an exception
	instance (raised). Unknown queries return no rows.
	"""

	def __init__(self, results: Optional[Mapping[str, Any]] = None) -> None:
		self._results = dict(results or {})
		self.calls: List[Dict[str, Any]] = []

	def execute(self, query_text: str, lookback: timedelta) -> List[RawRow]:
		self.calls.append({"query": query_text, "lookback": lookback})
		result = self._results.get(query_text, [])
		if isinstance(result, BaseException):
			raise result
		return [to_raw_row(record) for record in result]

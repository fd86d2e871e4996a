"""
Executed Queries HTML Report

Purpose: Summarize one catalog run as a single HTML document.

Responsibilities:
- Transform catalog definitions into template-friendly rows
- Load and render the Jinja2 template
- Write Reports/<EntityType>-ExecutedQueries-<EntityId>.html

Design notes:
- Autoescaping is on: names, query text and non-URL sources are escaped
- Query text is rendered with the same context the run used
- Badge class depends on the hit count: non-zero counts are findings
- Inline fallback template if the template file is missing
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, Template, select_autoescape

from HUNT.Catalog.catalog_store import Catalog
from HUNT.Query.parameters import InvestigationContext, render_query

__all__ = ["ReportDataTransformer", "ReportTemplateLoader", "build_report_html", "report_path", "render_report"]

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"^https?://\S+$", re.IGNORECASE)
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9@._-]")

BADGE_HIT = "badge-hit"
BADGE_ZERO = "badge-zero"


class ReportDataTransformer:
	"""Transform a catalog run into template context."""

	def __init__(self, catalog: Catalog, context: InvestigationContext) -> None:
		self._catalog = catalog
		self._context = context

	def transform_query_rows(self) -> List[Dict[str, Any]]:
		"""One row per definition, in catalog order."""
		rows = []
		for definition in self._catalog:
			hits = definition.result_count
			source = (definition.source or "").strip()
			rows.append({
				"name": definition.name,
				"query": render_query(definition.query, self._context),
				"hits": hits,
				"badge": BADGE_HIT if hits > 0 else BADGE_ZERO,
				"source": source,
				"source_is_url": bool(URL_PATTERN.match(source)),
			})
		return rows

	def transform(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
		rows = self.transform_query_rows()
		return {
			"entity_type": entity_type,
			"entity_id": entity_id,
			"time_frame": self._context.time_frame,
			"queries": rows,
			"total_queries": len(rows),
			"queries_with_hits": sum(1 for row in rows if row["hits"] > 0),
			"generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
		}


class ReportTemplateLoader:
	"""Load the Jinja2 template for the HTML report."""

	TEMPLATE_FILE = "executed_queries.html.j2"

	def __init__(self) -> None:
		self._template_dir = os.path.join(os.path.dirname(__file__), "templates")

	def _environment(self, **kwargs: Any) -> Environment:
		return Environment(
			autoescape=select_autoescape(["html", "xml", "j2"], default_for_string=True),
			trim_blocks=True,
			lstrip_blocks=True,
			**kwargs
		)

	def _create_inline_fallback(self) -> str:
		return """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>{{ entity_type }} queries - {{ entity_id }}</title></head>
<body>
<h1>{{ entity_type }} queries for {{ entity_id }}</h1>
<table>
<tr><th>Name</th><th>Query</th><th>Hits</th><th>Source</th></tr>
{% for q in queries %}
<tr>
<td>{{ q.name }}</td>
<td><pre>{{ q.query }}</pre></td>
<td><span class="badge {{ q.badge }}">{{ q.hits }}</span></td>
<td>{% if q.source_is_url %}<a href="{{ q.source }}">{{ q.source }}</a>{% else %}{{ q.source }}{% endif %}</td>
</tr>
{% endfor %}
</table>
</body>
</html>
"""

	def load_template(self) -> Template:
		template_path = os.path.join(self._template_dir, self.TEMPLATE_FILE)
		if os.path.isfile(template_path):
			env = self._environment(loader=FileSystemLoader(self._template_dir))
			return env.get_template(self.TEMPLATE_FILE)

		logger.warning("Report template %s missing, using inline template", template_path)
		return self._environment().from_string(self._create_inline_fallback())


def build_report_html(catalog: Catalog, entity_type: str, entity_id: str, context: InvestigationContext) -> str:
	"""Render the report document without writing it."""
	template_context = ReportDataTransformer(catalog, context).transform(entity_type, entity_id)
	template = ReportTemplateLoader().load_template()
	return template.render(**template_context)


def report_path(report_dir: str, entity_type: str, entity_id: str) -> str:
	"""Reports/<EntityType>-ExecutedQueries-<EntityId>.html"""
	safe_id = _UNSAFE_ID_CHARS.sub("_", entity_id) or "unknown"
	return os.path.join(report_dir, f"{entity_type}-ExecutedQueries-{safe_id}.html")


def render_report(catalog: Catalog, entity_type: str, entity_id: str, context: InvestigationContext,
		report_dir: str = "Reports") -> str:
	"""
	Render and write the executed-queries report.

	Args:
		catalog: Catalog with the hit counts of this run (saved or not)
		entity_type: "Device" or "Identity"
		entity_id: Device id or user principal name
		context: Investigation context used for the run
		report_dir: Output directory (created if missing)

	Returns:
		Path of the written report
	"""
	html = build_report_html(catalog, entity_type, entity_id, context)

	os.makedirs(report_dir, exist_ok=True)
	file_path = report_path(report_dir, entity_type, entity_id)
	with open(file_path, "w", encoding="utf-8") as f:
		f.write(html)

	logger.info("Report written to %s", file_path)
	return file_path

"""
Unit Tests for HUNT/Reporting/report_renderer.py

Tests report data transformation, escaping, badges and file output.
"""

import os
import sys
from html.parser import HTMLParser

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from HUNT.Catalog.catalog_store import Catalog, QueryDefinition, load_catalog
from HUNT.Query.parameters import InvestigationContext
from HUNT.Reporting.report_renderer import (
    ReportDataTransformer,
    ReportTemplateLoader,
    build_report_html,
    render_report,
    report_path,
)

from conftest import DEVICE_ID


class TagBalanceChecker(HTMLParser):
    """Collects unbalanced tags to check documents are well formed."""

    VOID = {"meta", "br", "hr", "img", "input", "link"}

    def __init__(self):
        super().__init__()
        self.stack = []
        self.errors = []

    def handle_starttag(self, tag, attrs):
        if tag not in self.VOID:
            self.stack.append(tag)

    def handle_endtag(self, tag):
        if not self.stack or self.stack[-1] != tag:
            self.errors.append(tag)
        else:
            self.stack.pop()


def assert_well_formed(html):
    checker = TagBalanceChecker()
    checker.feed(html)
    assert checker.errors == []
    assert checker.stack == []


def make_catalog(*definitions):
    return Catalog(path="unused.json", definitions=list(definitions))


class TestReportDataTransformer:
    """Test suite for ReportDataTransformer."""

    def test_rows_follow_catalog_order(self, catalog_file, device_context):
        rows = ReportDataTransformer(load_catalog(catalog_file), device_context).transform_query_rows()
        assert [row["name"] for row in rows] == ["Alerts On Device", "Encoded PowerShell", "Sign-ins"]

    def test_query_is_rendered(self, catalog_file, device_context):
        rows = ReportDataTransformer(load_catalog(catalog_file), device_context).transform_query_rows()
        assert DEVICE_ID in rows[0]["query"]
        assert "{DeviceId}" not in rows[0]["query"]

    def test_badges(self, device_context):
        catalog = make_catalog(QueryDefinition("hit", "q", result_count=3), QueryDefinition("miss", "q"))
        rows = ReportDataTransformer(catalog, device_context).transform_query_rows()
        assert rows[0]["badge"] == "badge-hit"
        assert rows[1]["badge"] == "badge-zero"

    def test_source_url_detection(self, device_context):
        catalog = make_catalog(
            QueryDefinition("a", "q", source="https://example.com/x"),
            QueryDefinition("b", "q", source="http://x"),
            QueryDefinition("c", "q", source="Internal playbook"),
            QueryDefinition("d", "q", source="javascript:alert(1)"),
        )
        rows = ReportDataTransformer(catalog, device_context).transform_query_rows()
        assert [row["source_is_url"] for row in rows] == [True, True, False, False]

    def test_url_source_is_stripped(self, device_context):
        rows = ReportDataTransformer(make_catalog(QueryDefinition("a", "q", source="  https://example.com/x \n")), device_context).transform_query_rows()
        assert rows[0]["source"] == "https://example.com/x"
        assert rows[0]["source_is_url"] is True

    def test_summary_counts(self, device_context):
        catalog = make_catalog(QueryDefinition("a", "q", result_count=2), QueryDefinition("b", "q"))
        context = ReportDataTransformer(catalog, device_context).transform("Device", DEVICE_ID)
        assert context["total_queries"] == 2
        assert context["queries_with_hits"] == 1


class TestBuildReportHtml:
    """Test suite for the rendered document."""

    def test_query_markup_is_escaped(self, device_context):
        catalog = make_catalog(QueryDefinition("<b>Name</b>", "T | where x <> '<script>{DeviceId}</script>'", source="<i>src</i>"))
        html = build_report_html(catalog, "Device", DEVICE_ID, device_context)

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "&lt;b&gt;Name&lt;/b&gt;" in html
        assert "&lt;i&gt;src&lt;/i&gt;" in html
        assert "<pre>" in html

    def test_url_source_is_link(self, device_context):
        html = build_report_html(make_catalog(QueryDefinition("a", "q", source="http://x")), "Device", DEVICE_ID, device_context)
        assert '<a href="http://x"' in html

    def test_plain_source_is_not_link(self, device_context):
        html = build_report_html(make_catalog(QueryDefinition("a", "q", source="Internal playbook")), "Device", DEVICE_ID, device_context)
        assert "Internal playbook" in html
        assert "<a href" not in html

    def test_all_zero_document_is_well_formed(self, device_context):
        catalog = make_catalog(QueryDefinition("a", "q"), QueryDefinition("b", "q"))
        html = build_report_html(catalog, "Device", DEVICE_ID, device_context)

        assert_well_formed(html)
        assert 'class="badge badge-zero"' in html
        assert 'class="badge badge-hit"' not in html

    def test_hit_badge_styled_differently(self, device_context):
        catalog = make_catalog(QueryDefinition("a", "q", result_count=7), QueryDefinition("b", "q"))
        html = build_report_html(catalog, "Device", DEVICE_ID, device_context)

        assert_well_formed(html)
        assert '<span class="badge badge-hit">7</span>' in html
        assert '<span class="badge badge-zero">0</span>' in html

    def test_empty_catalog_renders(self, device_context):
        html = build_report_html(make_catalog(), "Device", DEVICE_ID, device_context)
        assert_well_formed(html)
        assert "No queries in catalog." in html

    def test_inline_fallback_template(self, device_context, monkeypatch, tmp_path):
        loader = ReportTemplateLoader()
        monkeypatch.setattr(loader, "_template_dir", str(tmp_path))
        template = loader.load_template()

        catalog = make_catalog(QueryDefinition("<x>", "q", result_count=1))
        html = template.render(**ReportDataTransformer(catalog, device_context).transform("Device", DEVICE_ID))
        assert "&lt;x&gt;" in html
        assert "badge-hit" in html


class TestRenderReport:
    """Test suite for render_report."""

    def test_writes_entity_scoped_file(self, report_dir, device_context):
        path = render_report(make_catalog(QueryDefinition("a", "q")), "Device", DEVICE_ID, device_context, report_dir)

        assert path == os.path.join(report_dir, f"Device-ExecutedQueries-{DEVICE_ID}.html")
        assert os.path.isfile(path)

    def test_identity_file_name_keeps_upn(self, report_dir):
        context = InvestigationContext(user_principal_name="alice@contoso.com")
        path = render_report(make_catalog(), "Identity", "alice@contoso.com", context, report_dir)
        assert os.path.basename(path) == "Identity-ExecutedQueries-alice@contoso.com.html"

    def test_unsafe_entity_id_characters_replaced(self):
        assert report_path("Reports", "Identity", "../x y") == os.path.join("Reports", "Identity-ExecutedQueries-.._x_y.html")

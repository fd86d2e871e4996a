"""
Integration Tests for the Full Hunting Pipeline

Tests end-to-end flow from catalog load through execution, CSV export,
catalog persistence and the HTML report.
"""

import csv
import json
import os
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console

from HUNT.Orchestrator.orchestrator import run_device_queries
from HUNT.Query.backend import StaticBackend
from HUNT.Query.parameters import InvestigationContext


SINGLE_QUERY_CATALOG = [
    {"Name": "Q1", "Query": "find {DeviceId}", "Source": "http://x", "ResultCount": 5}
]


@pytest.fixture
def pipeline_catalog(write_catalog):
    return write_catalog(SINGLE_QUERY_CATALOG, "DeviceQueries.json")


@pytest.fixture
def quiet_console():
    return Console(record=True, width=200, force_terminal=False, color_system=None)


class TestDeviceHuntWithHits:
    """A query returning rows with varying schemas."""

    def test_full_pipeline_with_hits(self, pipeline_catalog, varying_rows, tmp_path, quiet_console):
        export_dir = tmp_path / "exports"
        report_dir = tmp_path / "Reports"
        context = InvestigationContext(device_id="abc123", export=True, export_dir=str(export_dir))
        backend = StaticBackend({"find abc123": varying_rows})

        result = run_device_queries(pipeline_catalog, backend, context, report_dir=str(report_dir), console=quiet_console)

        # Step 1: Execution
        assert backend.calls[0]["query"] == "find abc123"
        assert result.outcomes[0].row_count == 3

        # Step 2: CSV export with column union
        with open(export_dir / "Q1.csv", "r", encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == ["Timestamp", "FileName", "Ports", "AccountName", "Severity", "Count"]
        assert len(rows) == 4
        assert rows[3] == ["", "", "", "bob", "", "3"]

        # Step 3: Persisted hit count
        with open(pipeline_catalog, "r", encoding="utf-8") as f:
            saved = json.load(f)
        assert saved[0]["ResultCount"] == 3
        assert saved[0]["Source"] == "http://x"

        # Step 4: Report
        assert result.report_path == os.path.join(str(report_dir), "Device-ExecutedQueries-abc123.html")
        with open(result.report_path, "r", encoding="utf-8") as f:
            html = f.read()
        assert '<span class="badge badge-hit">3</span>' in html
        assert '<a href="http://x"' in html
        assert "find abc123" in html

        # Step 5: Terminal summary
        assert "[!] Q1: 3 hits" in quiet_console.export_text()


class TestDeviceHuntWithoutHits:
    """A query returning no rows."""

    def test_full_pipeline_zero_rows(self, pipeline_catalog, tmp_path, quiet_console):
        export_dir = tmp_path / "exports"
        context = InvestigationContext(device_id="abc123", export=True, export_dir=str(export_dir))
        backend = StaticBackend({"find abc123": []})

        result = run_device_queries(pipeline_catalog, backend, context, report_dir=str(tmp_path / "Reports"), console=quiet_console)

        assert not (export_dir / "Q1.csv").exists()
        with open(pipeline_catalog, "r", encoding="utf-8") as f:
            assert json.load(f)[0]["ResultCount"] == 0
        with open(result.report_path, "r", encoding="utf-8") as f:
            html = f.read()
        assert '<span class="badge badge-zero">0</span>' in html
        assert "badge badge-hit" not in html
        assert "[-] Q1: 0 hits" in quiet_console.export_text()


class TestRepeatedRuns:
    """Successive runs overwrite the stored count."""

    def test_second_run_replaces_count(self, pipeline_catalog, varying_rows, tmp_path, quiet_console):
        context = InvestigationContext(device_id="abc123")
        options = {"report_dir": str(tmp_path / "Reports"), "console": quiet_console}

        run_device_queries(pipeline_catalog, StaticBackend({"find abc123": varying_rows}), context, **options)
        run_device_queries(pipeline_catalog, StaticBackend({"find abc123": varying_rows[:1]}), context, **options)

        with open(pipeline_catalog, "r", encoding="utf-8") as f:
            assert json.load(f)[0]["ResultCount"] == 1

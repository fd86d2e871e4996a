"""
Pytest Configuration and Shared Fixtures

Provides reusable test fixtures for all test modules:
- Catalog documents and files
- Investigation contexts
- Raw backend rows with varying schemas
- Temporary output directories
"""

import json
import os
import sys
from typing import Any, Dict, List

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console

from HUNT.Query.parameters import InvestigationContext


DEVICE_ID = "0123456789abcdef0123456789abcdef01234567"
UPN = "alice@contoso.com"


# ============================================================================
# Catalog Fixtures
# ============================================================================

@pytest.fixture
def catalog_document() -> List[Dict[str, Any]]:
    """Three-entry catalog document, one with an extra field."""
    return [
        {
            "Name": "Alerts On Device",
            "Query": "AlertEvidence | where DeviceId == '{DeviceId}' | where Timestamp > ago({TimeFrame})",
            "Source": "https://learn.microsoft.com/defender",
            "ResultCount": 5
        },
        {
            "Name": "Encoded PowerShell",
            "Query": "DeviceProcessEvents | where DeviceId == '{DeviceId}' | where ProcessCommandLine has '-enc'",
            "Source": "Internal playbook",
            "ResultCount": 0,
            "Tags": ["execution", "T1059.001"]
        },
        {
            "Name": "Sign-ins",
            "Query": "AADSignInEventsBeta | where AccountUpn =~ '{UserPrincipalName}'",
            "Source": ""
        }
    ]


@pytest.fixture
def write_catalog(tmp_path):
    """Factory fixture writing a catalog document to disk."""
    def _write(document: Any, filename: str = "Queries.json") -> str:
        file_path = tmp_path / filename
        file_path.write_text(json.dumps(document, indent=4), encoding="utf-8")
        return str(file_path)
    return _write


@pytest.fixture
def catalog_file(write_catalog, catalog_document) -> str:
    return write_catalog(catalog_document)


# ============================================================================
# Context Fixtures
# ============================================================================

@pytest.fixture
def device_context(tmp_path) -> InvestigationContext:
    return InvestigationContext(device_id=DEVICE_ID, time_frame="7d", export_dir=str(tmp_path / "exports"))


@pytest.fixture
def full_context(tmp_path) -> InvestigationContext:
    return InvestigationContext(
        device_id=DEVICE_ID,
        user_principal_name=UPN,
        time_frame="30d",
        export_dir=str(tmp_path / "exports")
    )


# ============================================================================
# Backend Row Fixtures
# ============================================================================

@pytest.fixture
def varying_rows() -> List[Dict[str, Any]]:
    """Rows from one query exposing different field sets."""
    return [
        {"Timestamp": "2025-12-10T10:00:00Z", "FileName": "powershell.exe", "Ports": [443, 80]},
        {"Timestamp": "2025-12-10T11:00:00Z", "AccountName": "alice", "FileName": "cmd.exe"},
        {"AccountName": "bob", "Severity": None, "Count": 3}
    ]


# ============================================================================
# Output Fixtures
# ============================================================================

@pytest.fixture
def report_dir(tmp_path) -> str:
    return str(tmp_path / "Reports")


@pytest.fixture
def console() -> Console:
    """Console that records output instead of writing to the terminal."""
    return Console(record=True, width=200, force_terminal=False, color_system=None)

"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import List

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from ldif_export.lib.records import Entry  # noqa: E402
from tests.helpers import make_entry  # noqa: E402


@pytest.fixture
def people_entries() -> List[Entry]:
    return [
        make_entry(
            "uid=alice,ou=people,dc=example,dc=com",
            {"objectClass": ["top", "person"], "cn": ["Alice"], "mail": ["alice@example.com"]},
        ),
        make_entry(
            "uid=bob,ou=people,dc=example,dc=com",
            {"objectClass": ["top", "person"], "cn": ["Bob"]},
        ),
        make_entry(
            "cn=admins,ou=groups,dc=example,dc=com",
            {"objectClass": ["top", "groupOfNames"], "cn": ["admins"]},
        ),
        make_entry(
            "uid=svc,ou=private,dc=example,dc=com",
            {"objectClass": ["top", "account"], "uid": ["svc"]},
        ),
    ]


@pytest.fixture
def export_path(tmp_path: Path) -> Path:
    return tmp_path / "export.ldif"

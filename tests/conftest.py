"""
Test configuration: puts the repo root on sys.path and loads bill text fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import the top-level modules
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


@pytest.fixture
def bill_text():
    """Return a loader for the sample bill texts under tests/fixtures."""
    return read_fixture

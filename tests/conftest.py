"""
Shared fixtures for the Logbook test suite.
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from backend.logbook_server.store import LogbookStore


class FakeClock:
    """Settable wall clock in seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def store(data_dir):
    """Initialized store in a temporary directory."""
    store = LogbookStore(str(Path(data_dir) / "logbook.db"), wal_mode=False)
    await store.initialize()
    return store

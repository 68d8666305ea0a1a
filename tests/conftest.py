"""
BGP Sync Agent - Test Fixtures

Shared pytest fixtures for agent tests.
"""
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from state.keys import KeyInterpreter  # noqa: E402

LOCAL_NODE = "local"


class RecordingSessionManager:
    """Session manager that keeps sessions in memory and records every call."""

    def __init__(self):
        self.sessions = {}
        self.calls = []

    def add_session(self, descriptor):
        self.calls.append(("add", descriptor))
        self.sessions[descriptor.address] = descriptor

    def remove_session(self, descriptor):
        self.calls.append(("remove", descriptor))
        self.sessions.pop(descriptor.address, None)

    def ops(self, op):
        return [d for o, d in self.calls if o == op]


class FakeSource:
    """Snapshot source returning queued snapshots; None simulates a failed fetch."""

    def __init__(self, peering=None, pools=None):
        self.peering = list(peering or [])
        self.pools = list(pools or [])

    async def fetch_peering_snapshot(self):
        return self.peering.pop(0) if self.peering else None

    async def fetch_pool_snapshot(self):
        return self.pools.pop(0) if self.pools else None


@pytest.fixture
def interpreter():
    return KeyInterpreter(LOCAL_NODE)


@pytest.fixture
def sessions():
    return RecordingSessionManager()


@pytest.fixture
def mock_subprocess():
    """Mock subprocess calls for command execution."""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout="Mock output",
            stderr="",
        )
        yield mock_run

"""
Minimal conftest for unit tests.

Unit tests exercise single classes in isolation: no analysis-server process
is launched. Sessions are replaced by fakes built on a real
`SessionCoordinator`. For tests that launch the fake server, use
tests/integration/ instead.
"""

import asyncio
from typing import Any, List, Optional, Tuple

import pytest
import pytest_asyncio

from lsp_bridge.code_intel.lsp_session import BaseLspServerSession, SessionState
from lsp_bridge.code_intel.lsp_types import LspMethod
from lsp_bridge.code_intel.session_coordinator import SessionCoordinator
from lsp_bridge.config import LanguageServerConfig


class FakeSession(BaseLspServerSession):
    """Ready session that records traffic instead of talking to a process."""

    def __init__(self, repo_path: str, responses: Optional[dict] = None) -> None:
        super().__init__(repo_path)
        self._coordinator = SessionCoordinator(
            repo_path, LanguageServerConfig().project_load_regex
        )
        self.responses = responses or {}
        self.requests: List[Tuple[LspMethod, Any]] = []
        self.notifications: List[Tuple[LspMethod, Any]] = []
        self.on_notify = None
        self.shutdown_calls = 0

    @property
    def coordinator(self) -> SessionCoordinator:
        return self._coordinator

    async def start(self) -> None:
        self._coordinator.start()
        self.state = SessionState.READY

    async def send_request(self, method, payload, timeout=None):
        self.requests.append((method, payload))
        return self.responses.get(method)

    async def send_notification(self, method, payload) -> None:
        self.notifications.append((method, payload))
        if self.on_notify is not None:
            self.on_notify(method, payload)

    async def shutdown(self) -> None:
        self.shutdown_calls += 1
        await self._coordinator.stop()
        self.state = SessionState.CLOSED


@pytest_asyncio.fixture
async def fake_session(tmp_path):
    session = FakeSession(str(tmp_path))
    await session.start()
    yield session
    await session.shutdown()


@pytest_asyncio.fixture
async def coordinator():
    coord = SessionCoordinator("/repo", LanguageServerConfig().project_load_regex)
    coord.start()
    yield coord
    await coord.stop()


async def drain(coord: SessionCoordinator) -> None:
    """Let the coordinator process everything queued so far."""
    await asyncio.wait_for(coord.settle(), timeout=2)


@pytest.fixture
def settle():
    return drain


@pytest_asyncio.fixture
async def make_session(tmp_path):
    """Factory for started fake sessions; all are shut down afterwards."""
    created: List[FakeSession] = []

    async def build(repo_path: Optional[str] = None, **kwargs) -> FakeSession:
        session = FakeSession(repo_path or str(tmp_path), **kwargs)
        await session.start()
        created.append(session)
        return session

    yield build
    for session in created:
        if session.state is not SessionState.CLOSED:
            await session.shutdown()

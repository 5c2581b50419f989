"""
Core session primitives shared between the session manager and client implementations.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from lsp_bridge.code_intel.lsp_types import LspMethod

if TYPE_CHECKING:
    from lsp_bridge.code_intel.session_coordinator import SessionCoordinator


class SessionState(str, Enum):
    """Lifecycle of one analysis-server session."""

    STARTING = "starting"
    HANDSHAKE = "handshake"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


class BaseLspServerSession:
    """
    Abstract interface for a running analysis-server session.

    Concrete implementations encapsulate the server process, expose lifecycle
    control (start/shutdown), request hooks, and the coordinator that routes
    server notifications to waiting callers.
    """

    def __init__(self, repo_path: str) -> None:
        self.repo_path = repo_path
        self.state = SessionState.STARTING

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    @property
    def server_exited(self) -> bool:
        """True once the server process is gone, whatever the session state."""
        return self.coordinator.server_exited

    @property
    def coordinator(self) -> "SessionCoordinator":
        raise NotImplementedError

    async def start(self) -> None:
        raise NotImplementedError

    async def send_request(
        self, method: LspMethod, payload: dict, timeout: Optional[float] = None
    ) -> Any:
        raise NotImplementedError

    async def send_notification(self, method: LspMethod, payload: dict) -> None:
        raise NotImplementedError

    async def shutdown(self) -> None:
        raise NotImplementedError

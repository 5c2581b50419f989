"""
pygls JSON-RPC client wired to a session coordinator.

All standing handlers are registered in the constructor, before the server
process exists, so nothing the server emits right after start-up is lost.
Handlers only translate messages into coordinator events or answer
server-to-client requests with neutral defaults.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from pygls.client import JsonRPCClient

from lsp_bridge.code_intel.lsp_types import LspMethod, to_plain
from lsp_bridge.code_intel.session_coordinator import (
    DiagnosticsPublished,
    ProgressEvent,
    ServerExited,
    SessionCoordinator,
)
from lsp_bridge.utils.logger import setup_logger

logger = setup_logger(__name__)

# window/logMessage type -> loguru level
_MESSAGE_LEVELS = {1: "ERROR", 2: "WARNING", 3: "INFO", 4: "DEBUG"}


class BridgeLanguageClient(JsonRPCClient):
    """JsonRPCClient that feeds server notifications to a coordinator."""

    def __init__(self, coordinator: SessionCoordinator) -> None:
        super().__init__()
        self.coordinator = coordinator
        self._register_handlers()

    @property
    def process(self) -> Optional[asyncio.subprocess.Process]:
        """Subprocess spawned by ``start_io`` (None before start)."""
        return getattr(self, "_server", None)

    def _register_handlers(self) -> None:
        coordinator = self.coordinator
        repo_path = coordinator.repo_path

        @self.feature(LspMethod.PUBLISH_DIAGNOSTICS.value)
        def on_publish_diagnostics(params: Any) -> None:
            coordinator.post(DiagnosticsPublished.from_params(params))

        @self.feature(LspMethod.PROGRESS.value)
        def on_progress(params: Any) -> None:
            coordinator.post(ProgressEvent.from_params(params))

        @self.feature(LspMethod.WORK_DONE_PROGRESS_CREATE.value)
        def on_work_done_progress_create(params: Any) -> None:
            return None

        @self.feature(LspMethod.WORKSPACE_CONFIGURATION.value)
        def on_workspace_configuration(params: Any) -> List[None]:
            items = (to_plain(params) or {}).get("items") or []
            return [None] * len(items)

        @self.feature(LspMethod.REGISTER_CAPABILITY.value)
        def on_register_capability(params: Any) -> None:
            return None

        @self.feature(LspMethod.LOG_MESSAGE.value)
        def on_log_message(params: Any) -> None:
            data = to_plain(params) or {}
            level = _MESSAGE_LEVELS.get(data.get("type"), "DEBUG")
            # server chatter is noise below warnings
            if level in ("INFO", "DEBUG"):
                level = "DEBUG"
            logger.log(level, "[{}] {}", repo_path, data.get("message", ""))

        @self.feature(LspMethod.SHOW_MESSAGE.value)
        def on_show_message(params: Any) -> None:
            data = to_plain(params) or {}
            level = _MESSAGE_LEVELS.get(data.get("type"), "INFO")
            logger.log(level, "[{}] {}", repo_path, data.get("message", ""))

    async def server_exit(self, server: asyncio.subprocess.Process) -> None:
        logger.info(
            "Analysis server for {} exited with code {}",
            self.coordinator.repo_path,
            server.returncode,
        )
        self.coordinator.post(ServerExited(returncode=server.returncode))

    def report_server_error(self, error: Exception, source: Any) -> None:
        logger.warning(
            "Protocol error from analysis server for {}: {}",
            self.coordinator.repo_path,
            error,
        )

"""
Startup protocol exchange with a freshly launched analysis server.

Servers answer ``initialize`` long before their project load finishes, and
symbol queries issued in between come back empty. A session therefore only
counts as ready once the project-load ``$/progress`` sequence has ended.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Optional

from pygls.exceptions import JsonRpcException

from lsp_bridge import __version__
from lsp_bridge.code_intel.language_client import BridgeLanguageClient
from lsp_bridge.code_intel.lsp_types import LspMethod, to_plain
from lsp_bridge.code_intel.process_supervisor import LaunchedServer
from lsp_bridge.code_intel.session_coordinator import SessionCoordinator
from lsp_bridge.config import LanguageServerConfig
from lsp_bridge.exceptions import BridgeTimeoutError, HandshakeError
from lsp_bridge.utils.logger import setup_logger

logger = setup_logger(__name__)

CLIENT_CAPABILITIES: Dict[str, Any] = {
    "textDocument": {
        "synchronization": {"dynamicRegistration": False, "didSave": False},
        "publishDiagnostics": {
            "relatedInformation": True,
            "versionSupport": True,
        },
    },
    "workspace": {
        "symbol": {"dynamicRegistration": False},
        "configuration": True,
        "workspaceFolders": True,
    },
    "window": {
        # Project load is reported through work-done progress
        "workDoneProgress": True,
    },
}


@dataclass
class InitializeOutcome:
    """What the server reported about itself during initialize."""

    capabilities: Dict[str, Any]
    server_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def server_name(self) -> str:
        return str(self.server_info.get("name", "unknown"))


class SessionHandshake:
    """Drives initialize → initialized → workspace-load wait."""

    def __init__(self, config: LanguageServerConfig) -> None:
        self.config = config

    def build_initialize_params(self, launched: LaunchedServer) -> Dict[str, Any]:
        workspace_root = launched.workspace_root
        workspace_uri = workspace_root.as_uri()
        return {
            "processId": os.getpid(),
            "clientInfo": {"name": "lsp-bridge", "version": __version__},
            "rootUri": workspace_uri,
            "rootPath": str(workspace_root),
            "workspaceFolders": [
                {"uri": workspace_uri, "name": workspace_root.name or str(workspace_root)}
            ],
            "capabilities": CLIENT_CAPABILITIES,
            "initializationOptions": self.config.initialization_options,
        }

    async def negotiate(
        self,
        client: BridgeLanguageClient,
        coordinator: SessionCoordinator,
        launched: LaunchedServer,
    ) -> InitializeOutcome:
        """Run the startup exchange until the workspace is loaded.

        Raises:
            HandshakeError: Initialize rejected or malformed, or the server exited
            BridgeTimeoutError: Initialize or workspace load exceeded its bound
        """
        repo_path = launched.repo_path
        params = self.build_initialize_params(launched)

        try:
            response = await self._await_or_exit(
                client.protocol.send_request_async(LspMethod.INITIALIZE.value, params),
                coordinator,
                launched,
                timeout=self.config.initialize_timeout_seconds,
                phase="initialize",
            )
        except JsonRpcException as exc:
            raise HandshakeError(
                f"Analysis server rejected initialize: {exc}",
                repo_path=repo_path,
                operation="start",
            ) from exc

        result = to_plain(response)
        if not isinstance(result, dict) or not isinstance(
            result.get("capabilities"), dict
        ):
            raise HandshakeError(
                "Analysis server returned a malformed initialize result "
                f"({type(result).__name__})",
                repo_path=repo_path,
                operation="start",
            )
        outcome = InitializeOutcome(
            capabilities=result["capabilities"],
            server_info=result.get("serverInfo") or {},
        )
        logger.info(
            "Initialized {} for {} (workspaceSymbolProvider={})",
            outcome.server_name,
            repo_path,
            bool(outcome.capabilities.get("workspaceSymbolProvider")),
        )

        client.protocol.notify(LspMethod.INITIALIZED.value, {})

        if not self.config.wait_for_workspace_load:
            coordinator.mark_workspace_loaded()
            return outcome

        logger.info("Waiting for workspace load to finish for {}", repo_path)
        await self._await_or_exit(
            coordinator.wait_workspace_loaded(),
            coordinator,
            launched,
            timeout=self.config.workspace_load_timeout_seconds,
            phase="workspace load",
        )
        return outcome

    async def _await_or_exit(
        self,
        awaitable: Awaitable[Any],
        coordinator: SessionCoordinator,
        launched: LaunchedServer,
        timeout: Optional[float],
        phase: str,
    ) -> Any:
        """Await ``awaitable`` unless the server exits or ``timeout`` expires first."""
        work = asyncio.ensure_future(awaitable)
        exited = asyncio.ensure_future(coordinator.wait_server_exited())
        try:
            done, _ = await asyncio.wait(
                {work, exited},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            exited.cancel()
            # bare pygls response futures are left for pygls to resolve
            if not work.done() and isinstance(work, asyncio.Task):
                work.cancel()

        if work in done:
            return work.result()

        if exited in done:
            # the drain reaches EOF shortly after the process is gone
            if launched.stderr_task is not None:
                await asyncio.wait({launched.stderr_task}, timeout=1.0)
            excerpt = launched.stderr_excerpt()
            detail = f"\n{excerpt}" if excerpt else ""
            raise HandshakeError(
                f"Analysis server exited during {phase}{detail}",
                repo_path=launched.repo_path,
                operation="start",
            )

        raise BridgeTimeoutError(
            f"Timed out after {timeout}s waiting for {phase}",
            repo_path=launched.repo_path,
            operation="start",
        )

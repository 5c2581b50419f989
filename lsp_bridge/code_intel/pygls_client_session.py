"""
pygls-backed analysis-server session.

This module provides the concrete `BaseLspServerSession`: it launches the
server through the `ProcessSupervisor`, runs the `SessionHandshake`, and
only then accepts requests. Server notifications flow through the session's
`SessionCoordinator`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from pygls.exceptions import JsonRpcException

from lsp_bridge.code_intel.handshake import InitializeOutcome, SessionHandshake
from lsp_bridge.code_intel.language_client import BridgeLanguageClient
from lsp_bridge.code_intel.lsp_session import BaseLspServerSession, SessionState
from lsp_bridge.code_intel.lsp_types import LspMethod, to_plain
from lsp_bridge.code_intel.process_supervisor import LaunchedServer, ProcessSupervisor
from lsp_bridge.code_intel.session_coordinator import SessionCoordinator
from lsp_bridge.config import LanguageServerConfig
from lsp_bridge.exceptions import (
    BridgeTimeoutError,
    ServerExitedError,
    ServerRequestError,
    SessionClosedError,
)
from lsp_bridge.utils.logger import log_context, setup_logger

logger = setup_logger(__name__)


class PyglsClientSession(BaseLspServerSession):
    """Concrete session powered by pygls' JsonRPCClient."""

    def __init__(
        self,
        repo_path: str,
        config: LanguageServerConfig,
        supervisor: Optional[ProcessSupervisor] = None,
        handshake: Optional[SessionHandshake] = None,
    ) -> None:
        super().__init__(repo_path)
        self.config = config
        self._supervisor = supervisor or ProcessSupervisor(config)
        self._handshake = handshake or SessionHandshake(config)
        self._coordinator = SessionCoordinator(repo_path, config.project_load_regex)
        self._client = BridgeLanguageClient(self._coordinator)
        self._launched: Optional[LaunchedServer] = None
        self.server_info: Optional[InitializeOutcome] = None

    @classmethod
    async def create(
        cls, repo_path: str, config: LanguageServerConfig
    ) -> "PyglsClientSession":
        """Build a session and run it through start-up."""
        session = cls(repo_path, config)
        await session.start()
        return session

    @property
    def coordinator(self) -> SessionCoordinator:
        return self._coordinator

    @property
    def launched(self) -> Optional[LaunchedServer]:
        return self._launched

    async def start(self) -> None:
        """Launch the server and wait until its workspace is loaded.

        On any failure the partially started process is torn down before the
        error propagates.
        """
        if self.state is not SessionState.STARTING:
            raise SessionClosedError(
                f"Session for {self.repo_path} cannot start from state {self.state.value}",
                repo_path=self.repo_path,
                operation="start",
            )

        with log_context(repo_path=self.repo_path):
            loop = asyncio.get_running_loop()
            started_at = loop.time()
            self._coordinator.start()
            try:
                self._launched = await self._supervisor.start(
                    self._client, self.repo_path
                )
                self.state = SessionState.HANDSHAKE
                self.server_info = await self._handshake.negotiate(
                    self._client, self._coordinator, self._launched
                )
            except BaseException:
                self.state = SessionState.FAILED
                await self._teardown(graceful=False)
                raise

            self.state = SessionState.READY
            logger.info(
                "Analysis server ready for {} in {:.2f}s",
                self.repo_path,
                loop.time() - started_at,
            )

    def _ensure_ready(self, operation: str) -> None:
        if self.state is not SessionState.READY:
            raise SessionClosedError(
                f"Session for {self.repo_path} is {self.state.value}, not ready",
                repo_path=self.repo_path,
                operation=operation,
            )
        if self._coordinator.server_exited:
            raise ServerExitedError(
                f"Analysis server for {self.repo_path} has exited",
                repo_path=self.repo_path,
                operation=operation,
            )

    async def send_request(
        self, method: LspMethod, payload: dict, timeout: Optional[float] = None
    ) -> Any:
        self._ensure_ready(method.value)
        timeout = timeout if timeout is not None else self.config.request_timeout_seconds
        future = self._client.protocol.send_request_async(method.value, payload)
        try:
            # shield: a late response must land on an uncancelled future
            response = await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise BridgeTimeoutError(
                f"{method.value} timed out after {timeout}s",
                repo_path=self.repo_path,
                operation=method.value,
            ) from exc
        except JsonRpcException as exc:
            raise ServerRequestError(
                f"{method.value} failed: {exc}",
                repo_path=self.repo_path,
                operation=method.value,
            ) from exc
        return to_plain(response)

    async def send_notification(self, method: LspMethod, payload: dict) -> None:
        self._ensure_ready(method.value)
        self._client.protocol.notify(method.value, payload)

    async def shutdown(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        graceful = self.state is SessionState.READY
        with log_context(repo_path=self.repo_path):
            await self._teardown(graceful=graceful)

    async def _teardown(self, graceful: bool) -> None:
        """Stop the server: shutdown/exit when possible, kill after the grace period."""
        process = self._client.process
        grace = self.config.shutdown_grace_seconds

        if process is not None and process.returncode is None:
            if graceful and not self._coordinator.server_exited:
                try:
                    future = self._client.protocol.send_request_async(
                        LspMethod.SHUTDOWN.value, None
                    )
                    await asyncio.wait_for(asyncio.shield(future), timeout=grace)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Analysis server for {} did not answer shutdown within {}s",
                        self.repo_path,
                        grace,
                    )
                except JsonRpcException as exc:
                    logger.warning(
                        "Shutdown request failed for {}: {}", self.repo_path, exc
                    )
                self._client.protocol.notify(LspMethod.EXIT.value, None)

                try:
                    await asyncio.wait_for(process.wait(), timeout=grace)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Analysis server for {} did not exit gracefully, killing",
                        self.repo_path,
                    )

            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        try:
            await self._client.stop()
        except Exception as exc:
            logger.warning("Error stopping client for {}: {}", self.repo_path, exc)

        if self._launched is not None:
            await self._launched.stop_stderr_drain()
        await self._coordinator.stop()
        if self.state is not SessionState.FAILED:
            self.state = SessionState.CLOSED
        logger.info("Analysis server session for {} closed", self.repo_path)

"""
Per-session coordination of server notifications.

Notification handlers registered on the pygls client never touch shared
state: they turn each message into a typed event and enqueue it. One
coordinator task per session consumes the queue in arrival order and is the
only owner of the project-load progress token and of the document waiter
registry. Callers talk to it through the same queue (register / release a
waiter), which is what keeps a waiter registration ordered ahead of the
diagnostics triggered by the ``didOpen`` sent after it.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional, Union

from pydantic import ValidationError

from lsp_bridge.code_intel.lsp_types import DiagnosticsReport, canonical_uri, to_plain
from lsp_bridge.exceptions import (
    BridgeError,
    HandshakeError,
    ServerExitedError,
    ServerRequestError,
)
from lsp_bridge.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """One ``$/progress`` notification."""

    token: Union[str, int, None]
    kind: str
    title: Optional[str] = None
    message: Optional[str] = None
    percentage: Optional[int] = None

    @classmethod
    def from_params(cls, params: Any) -> "ProgressEvent":
        data = to_plain(params) or {}
        value = data.get("value") or {}
        if not isinstance(value, dict):
            value = {}
        return cls(
            token=data.get("token"),
            kind=str(value.get("kind", "")),
            title=value.get("title"),
            message=value.get("message"),
            percentage=value.get("percentage"),
        )


@dataclass(frozen=True)
class DiagnosticsPublished:
    """One ``textDocument/publishDiagnostics`` notification."""

    uri: str
    payload: Dict[str, Any]

    @classmethod
    def from_params(cls, params: Any) -> "DiagnosticsPublished":
        data = to_plain(params) or {}
        return cls(uri=str(data.get("uri", "")), payload=data)


@dataclass(frozen=True)
class ServerExited:
    returncode: Optional[int]


@dataclass(frozen=True)
class RegisterWaiter:
    uri: str
    future: asyncio.Future


@dataclass(frozen=True)
class ReleaseWaiter:
    uri: str
    future: asyncio.Future


SessionEvent = Union[
    ProgressEvent, DiagnosticsPublished, ServerExited, RegisterWaiter, ReleaseWaiter
]


class SessionCoordinator:
    """Owns the progress-token and waiter state of one session."""

    def __init__(
        self,
        repo_path: str,
        project_load_pattern: re.Pattern,
        events: Optional[asyncio.Queue] = None,
    ) -> None:
        self.repo_path = repo_path
        self._pattern = project_load_pattern
        self.events: asyncio.Queue = events if events is not None else asyncio.Queue()
        self._load_token: Union[str, int, None] = None
        self._tracking_load = False
        self._workspace_loaded = asyncio.Event()
        self._ready_error: Optional[BridgeError] = None
        self._waiters: Dict[str, asyncio.Future] = {}
        # replacing future -> future it displaced for the same document
        self._displaced: Dict[asyncio.Future, asyncio.Future] = {}
        self._exited = False
        self._exited_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Producer side (handlers and callers)
    # ------------------------------------------------------------------

    def post(self, event: SessionEvent) -> None:
        self.events.put_nowait(event)

    def register_waiter(self, uri: str) -> asyncio.Future:
        """Queue a fresh waiter for ``uri`` and return it."""
        future = asyncio.get_running_loop().create_future()
        self.post(RegisterWaiter(canonical_uri(uri), future))
        return future

    def release_waiter(self, uri: str, future: asyncio.Future) -> None:
        """Queue removal of ``future`` if it is still registered for ``uri``."""
        self.post(ReleaseWaiter(canonical_uri(uri), future))

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def workspace_loaded(self) -> bool:
        return self._workspace_loaded.is_set() and self._ready_error is None

    @property
    def load_token(self) -> Union[str, int, None]:
        return self._load_token

    def pending_documents(self) -> FrozenSet[str]:
        return frozenset(self._waiters)

    def has_waiter(self, uri: str) -> bool:
        return canonical_uri(uri) in self._waiters

    async def wait_workspace_loaded(self) -> None:
        """Block until the project-load sequence ends.

        Raises:
            HandshakeError: If the server exited before finishing the load
        """
        await self._workspace_loaded.wait()
        if self._ready_error is not None:
            raise self._ready_error

    @property
    def server_exited(self) -> bool:
        return self._exited

    async def wait_server_exited(self) -> None:
        await self._exited_event.wait()

    def mark_workspace_loaded(self) -> None:
        """Declare readiness without a progress sequence."""
        self._workspace_loaded.set()

    async def settle(self) -> None:
        """Wait until every event queued so far has been processed."""
        await self.events.join()

    # ------------------------------------------------------------------
    # Consumer task
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(
                self._run(), name=f"session-coordinator:{self.repo_path}"
            )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._fail_waiters(
            ServerExitedError(
                "Session closed while waiting for diagnostics",
                repo_path=self.repo_path,
                operation="fetch_diagnostics",
            )
        )

    async def _run(self) -> None:
        while True:
            event = await self.events.get()
            try:
                self.handle(event)
            except Exception:
                logger.exception(
                    "Failed to process session event {}", type(event).__name__
                )
            finally:
                self.events.task_done()

    def handle(self, event: SessionEvent) -> None:
        if isinstance(event, ProgressEvent):
            self._on_progress(event)
        elif isinstance(event, DiagnosticsPublished):
            self._on_diagnostics(event)
        elif isinstance(event, RegisterWaiter):
            self._on_register(event)
        elif isinstance(event, ReleaseWaiter):
            self._on_release(event)
        elif isinstance(event, ServerExited):
            self._on_server_exited(event)
        else:
            logger.warning("Ignoring unknown session event {!r}", event)

    def _on_progress(self, event: ProgressEvent) -> None:
        if event.kind == "begin":
            if (
                not self._workspace_loaded.is_set()
                and event.title
                and self._pattern.search(event.title)
            ):
                self._load_token = event.token
                self._tracking_load = True
                logger.info(
                    "Workspace load started for {} (token={}, title={!r})",
                    self.repo_path,
                    event.token,
                    event.title,
                )
        elif event.kind == "report":
            if self._tracking_load and event.token == self._load_token:
                logger.debug(
                    "Workspace load progress for {}: {}% {}",
                    self.repo_path,
                    event.percentage,
                    event.message or "",
                )
        elif event.kind == "end":
            if (
                self._tracking_load
                and event.token == self._load_token
                and not self._workspace_loaded.is_set()
            ):
                self._tracking_load = False
                self._workspace_loaded.set()
                logger.info("Workspace load complete for {}", self.repo_path)

    def _on_diagnostics(self, event: DiagnosticsPublished) -> None:
        key = canonical_uri(event.uri)
        future = self._waiters.pop(key, None)
        if future is None:
            logger.debug("Dropping diagnostics for {} (no waiter)", event.uri)
            return
        try:
            report = DiagnosticsReport.from_lsp(event.payload)
        except ValidationError as exc:
            logger.warning("Malformed diagnostics for {}: {}", event.uri, exc)
            error = ServerRequestError(
                f"Analysis server published malformed diagnostics for {event.uri}",
                repo_path=self.repo_path,
                operation="fetch_diagnostics",
            )
            self._resolve_chain(future, lambda f: f.set_exception(error))
            return
        self._resolve_chain(future, lambda f: f.set_result(report))

    def _resolve_chain(
        self, future: Optional[asyncio.Future], resolve: Callable[[asyncio.Future], None]
    ) -> None:
        while future is not None:
            if not future.done():
                resolve(future)
            future = self._displaced.pop(future, None)

    def _on_register(self, event: RegisterWaiter) -> None:
        if event.future.done():
            return
        if self._exited:
            event.future.set_exception(self._exit_error())
            return
        previous = self._waiters.get(event.uri)
        self._waiters[event.uri] = event.future
        if previous is not None and not previous.done():
            self._displaced[event.future] = previous

    def _on_release(self, event: ReleaseWaiter) -> None:
        displaced = self._displaced.pop(event.future, None)
        if self._waiters.get(event.uri) is event.future:
            del self._waiters[event.uri]
            if displaced is not None and not displaced.done():
                self._waiters[event.uri] = displaced
            return
        # released waiter sits further down a displacement chain
        for newer, older in list(self._displaced.items()):
            if older is event.future:
                if displaced is not None:
                    self._displaced[newer] = displaced
                else:
                    del self._displaced[newer]
                break

    def _on_server_exited(self, event: ServerExited) -> None:
        self._exited = True
        self._exited_event.set()
        if not self._workspace_loaded.is_set():
            self._ready_error = HandshakeError(
                f"Analysis server exited with code {event.returncode} "
                "before the workspace finished loading",
                repo_path=self.repo_path,
                operation="start",
            )
            self._workspace_loaded.set()
        self._fail_waiters(self._exit_error(event.returncode))

    def _exit_error(self, returncode: Optional[int] = None) -> ServerExitedError:
        suffix = f" (exit code {returncode})" if returncode is not None else ""
        return ServerExitedError(
            f"Analysis server exited{suffix}",
            repo_path=self.repo_path,
            operation="fetch_diagnostics",
        )

    def _fail_waiters(self, error: BridgeError) -> None:
        pending = list(self._waiters.values()) + list(self._displaced.values())
        self._waiters.clear()
        self._displaced.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

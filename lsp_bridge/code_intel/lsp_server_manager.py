"""
Per-repository cache of analysis-server sessions.

The manager maps a repository path to the task creating its session, so
concurrent first callers collapse onto one process launch and one handshake.
It is owned by the runtime (composition root) and shut down with it.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional, Set

from lsp_bridge.code_intel.lsp_session import BaseLspServerSession
from lsp_bridge.code_intel.pygls_client_session import PyglsClientSession
from lsp_bridge.config import LanguageServerConfig
from lsp_bridge.exceptions import SessionClosedError
from lsp_bridge.utils.logger import log_context, setup_logger

logger = setup_logger(__name__)

SessionFactory = Callable[[str], Awaitable[BaseLspServerSession]]


def _is_stale(task: asyncio.Task) -> bool:
    """A finished creation whose session can no longer serve requests."""
    if not task.done() or task.cancelled() or task.exception() is not None:
        return False
    session = task.result()
    return not session.is_ready or session.server_exited


class LspServerManager:
    """
    Keeps one analysis-server session per repository path.

    Sessions live until `shutdown()`; there is no per-call teardown, so the
    server keeps its loaded workspace between requests. Repository paths are
    used verbatim as keys: two spellings of one directory get two sessions.

    A creation that fails is reported to every caller waiting on it and then
    evicted, so a later call starts a fresh attempt. The same holds for a
    session whose server exits after it became ready: the next call retires
    it and starts a new one.
    """

    def __init__(
        self,
        config: Optional[LanguageServerConfig] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self._config = config or LanguageServerConfig()
        self._session_factory: SessionFactory = session_factory or partial(
            PyglsClientSession.create, config=self._config
        )
        self._sessions: Dict[str, asyncio.Task] = {}
        self._retiring: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def has_session(self, repo_path: str) -> bool:
        return repo_path in self._sessions

    def list_sessions(self) -> List[Dict[str, object]]:
        summary = []
        for repo_path, task in self._sessions.items():
            if not task.done():
                state = "starting"
            elif task.cancelled() or task.exception() is not None:
                state = "failed"
            elif task.result().is_ready and task.result().server_exited:
                state = "exited"
            else:
                state = task.result().state.value
            summary.append({"repo_path": repo_path, "state": state})
        return summary

    async def get_or_create(self, repo_path: str) -> BaseLspServerSession:
        """Return the ready session for ``repo_path``, starting it on first use.

        Raises:
            SessionClosedError: If the manager is shut down
            BridgeError: Whatever the creation failed with (shared by all waiters)
        """
        if self._closed:
            raise SessionClosedError(
                "Session manager is shut down",
                repo_path=repo_path,
                operation="get_or_create",
            )

        # no await between lookup and insert: atomic on the event loop
        task = self._sessions.get(repo_path)
        if task is not None and _is_stale(task):
            del self._sessions[repo_path]
            self._retire(task.result())
            task = None
        if task is None:
            task = asyncio.create_task(
                self._create(repo_path), name=f"session-create:{repo_path}"
            )
            task.add_done_callback(partial(self._evict_if_failed, repo_path))
            self._sessions[repo_path] = task

        # one caller giving up must not abort the start-up for the others
        return await asyncio.shield(task)

    async def _create(self, repo_path: str) -> BaseLspServerSession:
        with log_context(repo_path=repo_path):
            logger.info("Starting analysis server session for {}", repo_path)
            session = await self._session_factory(repo_path)
            logger.info("Analysis server session for {} is ready", repo_path)
            return session

    def _evict_if_failed(self, repo_path: str, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is None:
            return
        if self._sessions.get(repo_path) is task:
            del self._sessions[repo_path]
        if task.cancelled():
            logger.info("Session creation for {} was cancelled", repo_path)
        else:
            logger.warning(
                "Session creation for {} failed: {}", repo_path, task.exception()
            )

    def _retire(self, session: BaseLspServerSession) -> None:
        logger.warning(
            "Analysis server for {} has exited; starting a new session",
            session.repo_path,
        )
        task = asyncio.create_task(
            session.shutdown(), name=f"session-retire:{session.repo_path}"
        )
        self._retiring.add(task)
        task.add_done_callback(self._retiring.discard)

    async def shutdown(self) -> None:
        """Drain in-flight creations, then shut every ready session down."""
        self._closed = True
        if self._retiring:
            await asyncio.gather(*self._retiring, return_exceptions=True)
        tasks = list(self._sessions.values())
        if not tasks:
            return

        await asyncio.gather(*tasks, return_exceptions=True)
        sessions = [
            task.result()
            for task in tasks
            if not task.cancelled() and task.exception() is None
        ]
        logger.info("Shutting down {} analysis server session(s)", len(sessions))
        results = await asyncio.gather(
            *(session.shutdown() for session in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to shut down session for {}: {}", session.repo_path, result
                )
        self._sessions.clear()

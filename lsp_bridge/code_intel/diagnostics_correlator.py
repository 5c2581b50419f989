"""
Matching published diagnostics to the caller that asked for them.

Analysis servers push diagnostics as ``textDocument/publishDiagnostics``
notifications some time after a document is opened. A caller registers a
waiter for the document's URI with the session coordinator, then opens the
document, then waits for the coordinator to fulfil the waiter.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from lsp_bridge.code_intel.lsp_session import BaseLspServerSession
from lsp_bridge.code_intel.lsp_types import DiagnosticsReport, LspMethod, document_uri
from lsp_bridge.exceptions import BridgeTimeoutError, DocumentReadError
from lsp_bridge.utils.logger import setup_logger

logger = setup_logger(__name__)


def _read_document(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


class DiagnosticsCorrelator:
    """Opens documents and waits for their first diagnostics publish."""

    def __init__(
        self,
        language_id: str = "csharp",
        timeout_seconds: Optional[float] = 60.0,
    ) -> None:
        self.language_id = language_id
        self.timeout_seconds = timeout_seconds

    async def await_diagnostics_for(
        self, session: BaseLspServerSession, document_path: str
    ) -> DiagnosticsReport:
        """Return the next diagnostics report the server publishes for a document.

        Args:
            session: Ready session for the document's repository
            document_path: Absolute path, or a path relative to the repository

        Raises:
            DocumentReadError: If the document cannot be read
            BridgeTimeoutError: If no diagnostics arrive within the bound
            asyncio.CancelledError: If the calling task is cancelled
        """
        path = Path(document_path)
        if not path.is_absolute():
            path = Path(session.repo_path) / path
        uri = document_uri(path)
        coordinator = session.coordinator

        # registration is queued ahead of anything the didOpen below can trigger
        waiter = coordinator.register_waiter(uri)
        opened = False
        try:
            try:
                text = await asyncio.to_thread(_read_document, path)
            except OSError as exc:
                raise DocumentReadError(
                    f"Cannot read {path}: {exc}",
                    repo_path=session.repo_path,
                    operation="fetch_diagnostics",
                ) from exc

            await session.send_notification(
                LspMethod.DID_OPEN,
                {
                    "textDocument": {
                        "uri": uri,
                        "languageId": self.language_id,
                        "version": 1,
                        "text": text,
                    }
                },
            )
            opened = True
            logger.debug("Opened {} for diagnostics", uri)

            try:
                return await asyncio.wait_for(waiter, timeout=self.timeout_seconds)
            except asyncio.TimeoutError as exc:
                raise BridgeTimeoutError(
                    f"No diagnostics for {path} within {self.timeout_seconds}s",
                    repo_path=session.repo_path,
                    operation="fetch_diagnostics",
                ) from exc
        finally:
            if not waiter.done() or waiter.cancelled():
                coordinator.release_waiter(uri, waiter)
            if opened:
                await self._close_document(session, uri)

    async def _close_document(self, session: BaseLspServerSession, uri: str) -> None:
        if not session.is_ready:
            return
        try:
            await session.send_notification(
                LspMethod.DID_CLOSE, {"textDocument": {"uri": uri}}
            )
        except Exception as exc:
            logger.debug("didClose for {} failed: {}", uri, exc)

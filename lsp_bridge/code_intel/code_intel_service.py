"""Public code-intelligence operations built on the session manager."""

from __future__ import annotations

from typing import List, Optional

from lsp_bridge.code_intel.diagnostics_correlator import DiagnosticsCorrelator
from lsp_bridge.code_intel.lsp_server_manager import LspServerManager
from lsp_bridge.code_intel.lsp_types import (
    DiagnosticsReport,
    LspMethod,
    SymbolMatch,
    to_plain,
)
from lsp_bridge.exceptions import ServerRequestError
from lsp_bridge.utils.logger import log_context, setup_logger

logger = setup_logger(__name__)


class CodeIntelService:
    """Symbol search and diagnostics for repositories."""

    def __init__(
        self,
        manager: LspServerManager,
        correlator: Optional[DiagnosticsCorrelator] = None,
    ) -> None:
        self.manager = manager
        self.correlator = correlator or DiagnosticsCorrelator()

    async def search_symbols(self, repo_path: str, query: str) -> List[SymbolMatch]:
        """Run workspace/symbol for ``query``; server order is preserved."""
        with log_context(repo_path=repo_path, operation="search_symbols"):
            session = await self.manager.get_or_create(repo_path)
            raw = await session.send_request(LspMethod.WORKSPACE_SYMBOL, {"query": query})
            raw = to_plain(raw)
            if raw is None:
                return []
            if not isinstance(raw, list):
                raise ServerRequestError(
                    f"workspace/symbol returned {type(raw).__name__}, expected a list",
                    repo_path=repo_path,
                    operation="search_symbols",
                )
            symbols = [SymbolMatch.model_validate(item) for item in raw]
            logger.debug("workspace/symbol {!r} -> {} match(es)", query, len(symbols))
            return symbols

    async def fetch_diagnostics(self, repo_path: str, file_path: str) -> DiagnosticsReport:
        """Open ``file_path`` and return the diagnostics the server publishes for it."""
        with log_context(repo_path=repo_path, operation="fetch_diagnostics"):
            session = await self.manager.get_or_create(repo_path)
            report = await self.correlator.await_diagnostics_for(session, file_path)
            logger.debug(
                "Diagnostics for {}: {} item(s)", report.uri, len(report.diagnostics)
            )
            return report

from lsp_bridge.code_intel.code_intel_service import CodeIntelService
from lsp_bridge.code_intel.diagnostics_correlator import DiagnosticsCorrelator
from lsp_bridge.code_intel.lsp_server_manager import LspServerManager
from lsp_bridge.code_intel.lsp_session import BaseLspServerSession, SessionState
from lsp_bridge.code_intel.lsp_types import (
    Diagnostic,
    DiagnosticsReport,
    LspMethod,
    SymbolMatch,
)
from lsp_bridge.code_intel.pygls_client_session import PyglsClientSession

__all__ = [
    "BaseLspServerSession",
    "CodeIntelService",
    "Diagnostic",
    "DiagnosticsCorrelator",
    "DiagnosticsReport",
    "LspMethod",
    "LspServerManager",
    "PyglsClientSession",
    "SessionState",
    "SymbolMatch",
]

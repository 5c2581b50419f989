from lsp_bridge.tools.code_intel_tools import (
    CodeIntelTools,
    GetDiagnosticsInput,
    GetSymbolsInput,
)

__all__ = ["CodeIntelTools", "GetDiagnosticsInput", "GetSymbolsInput"]

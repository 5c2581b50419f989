"""
lsp-bridge - code intelligence for C# repositories over a language server.

The bridge launches one analysis server per repository, waits until the
server has loaded the repository's projects, and exposes symbol search and
per-file diagnostics as plain async calls, LangChain tools, and MCP tools.

Example:
    >>> from lsp_bridge import BridgeRuntime
    >>>
    >>> async with BridgeRuntime.from_env() as runtime:
    ...     symbols = await runtime.code_intel.search_symbols("/src/app", "Foo")
    ...     report = await runtime.code_intel.fetch_diagnostics(
    ...         "/src/app", "Foo.cs"
    ...     )
"""

__version__ = "0.1.0"

from lsp_bridge.config import BridgeConfig, LanguageServerConfig
from lsp_bridge.exceptions import (
    BridgeError,
    BridgeTimeoutError,
    ConfigurationError,
    DocumentReadError,
    HandshakeError,
    LaunchError,
    NoProjectFoundError,
    NotInitializedError,
    ServerExitedError,
    ServerRequestError,
    SessionClosedError,
)
from lsp_bridge.code_intel import (
    CodeIntelService,
    Diagnostic,
    DiagnosticsReport,
    SymbolMatch,
)
from lsp_bridge.runtime import BridgeRuntime

__all__ = [
    "__version__",
    # Runtime
    "BridgeRuntime",
    "BridgeConfig",
    "LanguageServerConfig",
    "CodeIntelService",
    # Types
    "Diagnostic",
    "DiagnosticsReport",
    "SymbolMatch",
    # Exceptions
    "BridgeError",
    "BridgeTimeoutError",
    "ConfigurationError",
    "DocumentReadError",
    "HandshakeError",
    "LaunchError",
    "NoProjectFoundError",
    "NotInitializedError",
    "ServerExitedError",
    "ServerRequestError",
    "SessionClosedError",
]

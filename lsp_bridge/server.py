"""
MCP server exposing the bridge's tools.

The runtime is created in the FastMCP lifespan, so analysis servers started
while serving are shut down when the MCP server stops.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from mcp.server.fastmcp import FastMCP

from lsp_bridge.config import BridgeConfig
from lsp_bridge.exceptions import NotInitializedError
from lsp_bridge.runtime import BridgeRuntime
from lsp_bridge.tools.code_intel_tools import CodeIntelTools
from lsp_bridge.utils.logger import setup_logger

logger = setup_logger(__name__)

SERVER_NAME = "lsp-bridge"
SERVER_INSTRUCTIONS = (
    "Code intelligence for C# repositories. The first call for a repository "
    "starts an analysis server and waits for it to load the projects, which "
    "can take a while; later calls reuse it."
)


class BridgeServer:
    """FastMCP server with get_symbols and get_diagnostics tools."""

    def __init__(self, config: Optional[BridgeConfig] = None) -> None:
        self.config = config or BridgeConfig()
        self.config.validate()
        self._runtime: Optional[BridgeRuntime] = None
        self._tools: Optional[CodeIntelTools] = None
        self.mcp = FastMCP(
            SERVER_NAME,
            instructions=SERVER_INSTRUCTIONS,
            lifespan=self._lifespan,
            host=self.config.host,
            port=self.config.port,
        )
        self._register_tools()

    @property
    def tools(self) -> CodeIntelTools:
        if self._tools is None:
            raise NotInitializedError("MCP server is not running")
        return self._tools

    @asynccontextmanager
    async def _lifespan(self, server: FastMCP) -> AsyncIterator[BridgeRuntime]:
        runtime = BridgeRuntime(self.config)
        await runtime.initialize()
        self._runtime = runtime
        self._tools = CodeIntelTools(runtime.code_intel)
        logger.info("MCP server {} started", SERVER_NAME)
        try:
            yield runtime
        finally:
            self._tools = None
            self._runtime = None
            await runtime.close()
            logger.info("MCP server {} stopped", SERVER_NAME)

    def _register_tools(self) -> None:
        """Register all MCP tools."""

        @self.mcp.tool(description=CodeIntelTools.get_symbols_description)
        async def get_symbols(repo_path: str, query: str) -> Dict[str, Any]:
            """Search a repository for symbols.

            Args:
                repo_path: Absolute path of the repository root
                query: Symbol name or fragment to search for
            """
            return await self.tools.get_symbols(repo_path, query)

        @self.mcp.tool(description=CodeIntelTools.get_diagnostics_description)
        async def get_diagnostics(repo_path: str, file: str) -> Dict[str, Any]:
            """Return diagnostics for one file.

            Args:
                repo_path: Absolute path of the repository root
                file: File to check, absolute or relative to repo_path
            """
            return await self.tools.get_diagnostics(repo_path, file)

    def run(self, transport: Optional[str] = None) -> None:
        transport = transport or self.config.transport
        if transport == "stdio":
            logger.info("Serving MCP over stdio")
        else:
            logger.info(
                "Serving MCP over {} on {}:{}",
                transport,
                self.config.host,
                self.config.port,
            )
        self.mcp.run(transport=transport)

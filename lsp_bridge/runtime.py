"""BridgeRuntime - composition root owning the session manager."""

from __future__ import annotations

from typing import Optional

from lsp_bridge.code_intel.code_intel_service import CodeIntelService
from lsp_bridge.code_intel.diagnostics_correlator import DiagnosticsCorrelator
from lsp_bridge.code_intel.lsp_server_manager import LspServerManager
from lsp_bridge.config import BridgeConfig
from lsp_bridge.exceptions import NotInitializedError
from lsp_bridge.utils.logger import setup_logger

logger = setup_logger(__name__)


class BridgeRuntime:
    """Owns the per-repository sessions and the operations built on them.

    Usage:
        # Option 1: Async context manager (recommended)
        async with BridgeRuntime(config) as runtime:
            symbols = await runtime.code_intel.search_symbols(repo, "Foo")

        # Option 2: Manual lifecycle
        runtime = BridgeRuntime(config)
        await runtime.initialize()
        try:
            report = await runtime.code_intel.fetch_diagnostics(repo, "Foo.cs")
        finally:
            await runtime.close()

        # Option 3: From environment
        runtime = BridgeRuntime.from_env()
    """

    def __init__(self, config: Optional[BridgeConfig] = None):
        """Initialize BridgeRuntime with configuration.

        Args:
            config: Bridge configuration, defaults to ``BridgeConfig()``
        """
        config = config or BridgeConfig()
        config.validate()
        self._config = config
        self._manager: Optional[LspServerManager] = None
        self._code_intel: Optional[CodeIntelService] = None
        self._initialized = False

    @classmethod
    def from_env(
        cls,
        env_prefix: str = "LSP_BRIDGE_",
        dotenv_path: Optional[str] = None,
    ) -> BridgeRuntime:
        """Create BridgeRuntime from environment variables.

        Args:
            env_prefix: Prefix for environment variables
            dotenv_path: Optional path to .env file to load

        Returns:
            Configured BridgeRuntime instance (not yet initialized)
        """
        return cls(BridgeConfig.from_env(env_prefix, dotenv_path=dotenv_path))

    @property
    def config(self) -> BridgeConfig:
        """Get the runtime configuration."""
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def manager(self) -> LspServerManager:
        """Get the session manager.

        Raises:
            NotInitializedError: If runtime not initialized
        """
        if not self._initialized or self._manager is None:
            raise NotInitializedError(
                "Runtime not initialized - call initialize() first"
            )
        return self._manager

    @property
    def code_intel(self) -> CodeIntelService:
        """Symbol search and diagnostics.

        Raises:
            NotInitializedError: If runtime not initialized
        """
        if not self._initialized or self._code_intel is None:
            raise NotInitializedError(
                "Runtime not initialized - call initialize() first"
            )
        return self._code_intel

    async def initialize(self) -> None:
        """Set up the session manager. Servers start lazily, per repository."""
        if self._initialized:
            return

        server = self._config.server
        self._manager = LspServerManager(server)
        self._code_intel = CodeIntelService(
            self._manager,
            DiagnosticsCorrelator(
                language_id=server.language_id,
                timeout_seconds=server.diagnostics_timeout_seconds,
            ),
        )
        self._initialized = True
        logger.info("BridgeRuntime initialized (server: {})", server.server_path)

    async def close(self) -> None:
        """Shut down every analysis server this runtime started."""
        logger.info("Closing BridgeRuntime...")
        if self._manager is not None:
            try:
                await self._manager.shutdown()
            except Exception as e:
                logger.warning(f"Error shutting down session manager: {e}")
            self._manager = None
        self._code_intel = None
        self._initialized = False
        logger.info("BridgeRuntime closed")

    async def __aenter__(self) -> BridgeRuntime:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

"""
Integration fixtures: real sessions against the scripted fake server.

Every service built here is shut down at teardown, so no server process
outlives its test.
"""

import pytest_asyncio

from lsp_bridge.code_intel.code_intel_service import CodeIntelService
from lsp_bridge.code_intel.diagnostics_correlator import DiagnosticsCorrelator
from lsp_bridge.code_intel.lsp_server_manager import LspServerManager


@pytest_asyncio.fixture
async def make_service():
    managers = []

    def build(config) -> CodeIntelService:
        manager = LspServerManager(config)
        managers.append(manager)
        return CodeIntelService(
            manager,
            DiagnosticsCorrelator(
                language_id=config.language_id,
                timeout_seconds=config.diagnostics_timeout_seconds,
            ),
        )

    yield build
    for manager in managers:
        await manager.shutdown()

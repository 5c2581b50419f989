from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from lsp_bridge.code_intel.lsp_types import DiagnosticsReport, SymbolMatch
from lsp_bridge.exceptions import BridgeTimeoutError, NoProjectFoundError
from lsp_bridge.tools.code_intel_tools import (
    CodeIntelTools,
    GetDiagnosticsInput,
    GetSymbolsInput,
)


@pytest.fixture
def service():
    return MagicMock()


@pytest.mark.asyncio
async def test_get_symbols_returns_server_payloads(service):
    service.search_symbols = AsyncMock(
        return_value=[
            SymbolMatch.model_validate(
                {"name": "Foo", "kind": 5, "location": {"uri": "file:///r/Foo.cs"}}
            )
        ]
    )
    tools = CodeIntelTools(service)

    result = await tools.get_symbols("/r", "Foo")

    service.search_symbols.assert_awaited_once_with("/r", "Foo")
    assert result == {
        "success": True,
        "count": 1,
        "symbols": [{"name": "Foo", "kind": 5, "location": {"uri": "file:///r/Foo.cs"}}],
    }


@pytest.mark.asyncio
async def test_get_symbols_reports_bridge_errors(service):
    service.search_symbols = AsyncMock(
        side_effect=NoProjectFoundError(
            "No solution (.sln) or project (.csproj) file found in '/r'",
            repo_path="/r",
            operation="start",
        )
    )

    result = await CodeIntelTools(service).get_symbols("/r", "Foo")

    assert result["success"] is False
    assert result["error_type"] == "NoProjectFoundError"
    assert result["repo_path"] == "/r"


@pytest.mark.asyncio
async def test_get_diagnostics_returns_report(service):
    service.fetch_diagnostics = AsyncMock(
        return_value=DiagnosticsReport(uri="file:///r/Foo.cs", diagnostics=[])
    )

    result = await CodeIntelTools(service).get_diagnostics("/r", "Foo.cs")

    service.fetch_diagnostics.assert_awaited_once_with("/r", "Foo.cs")
    assert result == {"uri": "file:///r/Foo.cs", "diagnostics": [], "success": True}


@pytest.mark.asyncio
async def test_get_diagnostics_reports_timeout(service):
    service.fetch_diagnostics = AsyncMock(
        side_effect=BridgeTimeoutError("No diagnostics", operation="fetch_diagnostics")
    )

    result = await CodeIntelTools(service).get_diagnostics("/r", "Foo.cs")

    assert result["success"] is False
    assert result["error_type"] == "BridgeTimeoutError"


@pytest.mark.asyncio
async def test_structured_tools_invoke_service(service):
    service.search_symbols = AsyncMock(return_value=[])
    tools = {tool.name: tool for tool in CodeIntelTools(service).as_structured_tools()}

    assert set(tools) == {"get_symbols", "get_diagnostics"}
    result = await tools["get_symbols"].ainvoke({"repo_path": "/r", "query": "Bar"})

    assert result == {"success": True, "count": 0, "symbols": []}
    service.search_symbols.assert_awaited_once_with("/r", "Bar")


def test_inputs_reject_blank_values():
    with pytest.raises(ValidationError):
        GetSymbolsInput(repo_path="  ", query="Foo")
    with pytest.raises(ValidationError):
        GetDiagnosticsInput(repo_path="/r", file="")


@pytest.mark.asyncio
async def test_unexpected_errors_are_reported(service):
    service.search_symbols = AsyncMock(side_effect=RuntimeError("boom"))

    result = await CodeIntelTools(service).get_symbols("/r", "Foo")

    assert result == {
        "success": False,
        "error": "Unexpected error: boom",
        "error_type": "RuntimeError",
    }

import pytest

from lsp_bridge.code_intel.code_intel_service import CodeIntelService
from lsp_bridge.code_intel.diagnostics_correlator import DiagnosticsCorrelator
from lsp_bridge.code_intel.lsp_server_manager import LspServerManager
from lsp_bridge.code_intel.lsp_types import LspMethod
from lsp_bridge.code_intel.session_coordinator import DiagnosticsPublished
from lsp_bridge.exceptions import ServerRequestError

SYMBOLS = [
    {
        "name": "Foo",
        "kind": 5,
        "containerName": "Demo",
        "location": {"uri": "file:///repo/Foo.cs"},
    },
    {
        "name": "FooFactory",
        "kind": 5,
        "location": {"uri": "file:///repo/Factory.cs"},
    },
]


async def _service_for(make_session, responses):
    sessions = {}

    async def factory(repo_path):
        sessions[repo_path] = await make_session(repo_path, responses=responses)
        return sessions[repo_path]

    manager = LspServerManager(session_factory=factory)
    return CodeIntelService(manager, DiagnosticsCorrelator(timeout_seconds=2)), sessions


@pytest.mark.asyncio
async def test_search_symbols_preserves_server_order(make_session, tmp_path):
    service, sessions = await _service_for(
        make_session, {LspMethod.WORKSPACE_SYMBOL: SYMBOLS}
    )

    symbols = await service.search_symbols(str(tmp_path), "Foo")

    assert [symbol.name for symbol in symbols] == ["Foo", "FooFactory"]
    assert sessions[str(tmp_path)].requests == [
        (LspMethod.WORKSPACE_SYMBOL, {"query": "Foo"})
    ]
    await service.manager.shutdown()


@pytest.mark.asyncio
async def test_search_symbols_null_result_is_empty(make_session, tmp_path):
    service, _ = await _service_for(make_session, {LspMethod.WORKSPACE_SYMBOL: None})

    assert await service.search_symbols(str(tmp_path), "Nothing") == []
    await service.manager.shutdown()


@pytest.mark.asyncio
async def test_search_symbols_rejects_non_list_result(make_session, tmp_path):
    service, _ = await _service_for(
        make_session, {LspMethod.WORKSPACE_SYMBOL: {"unexpected": True}}
    )

    with pytest.raises(ServerRequestError):
        await service.search_symbols(str(tmp_path), "Foo")
    await service.manager.shutdown()


@pytest.mark.asyncio
async def test_fetch_diagnostics_reuses_session(make_session, tmp_path):
    (tmp_path / "Foo.cs").write_text("class Foo {}\n", encoding="utf-8")
    service, sessions = await _service_for(
        make_session, {LspMethod.WORKSPACE_SYMBOL: SYMBOLS}
    )
    await service.search_symbols(str(tmp_path), "Foo")
    session = sessions[str(tmp_path)]

    def on_notify(method, payload):
        if method is LspMethod.DID_OPEN:
            session.coordinator.post(
                DiagnosticsPublished.from_params(
                    {"uri": payload["textDocument"]["uri"], "diagnostics": []}
                )
            )

    session.on_notify = on_notify
    report = await service.fetch_diagnostics(str(tmp_path), "Foo.cs")

    assert report.uri == (tmp_path / "Foo.cs").absolute().as_uri()
    assert list(sessions) == [str(tmp_path)]
    await service.manager.shutdown()

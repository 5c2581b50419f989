import asyncio
from pathlib import Path

import pytest

from lsp_bridge.code_intel.diagnostics_correlator import DiagnosticsCorrelator
from lsp_bridge.code_intel.lsp_types import LspMethod
from lsp_bridge.code_intel.session_coordinator import DiagnosticsPublished
from lsp_bridge.exceptions import BridgeTimeoutError, DocumentReadError


def _publish_on_open(session, uri_override=None, diagnostics=None):
    """Make the fake session behave like a server: diagnostics follow didOpen."""

    def on_notify(method, payload):
        if method is LspMethod.DID_OPEN:
            uri = uri_override or payload["textDocument"]["uri"]
            session.coordinator.post(
                DiagnosticsPublished.from_params(
                    {"uri": uri, "diagnostics": diagnostics or []}
                )
            )

    session.on_notify = on_notify


@pytest.fixture
def source_file(tmp_path) -> Path:
    path = tmp_path / "Foo.cs"
    path.write_text("class Foo { }\n", encoding="utf-8")
    return path


@pytest.mark.asyncio
async def test_returns_report_published_after_open(fake_session, source_file):
    _publish_on_open(
        fake_session,
        diagnostics=[
            {
                "range": {
                    "start": {"line": 0, "character": 6},
                    "end": {"line": 0, "character": 9},
                },
                "message": "Type is never used",
                "severity": 4,
            }
        ],
    )
    correlator = DiagnosticsCorrelator(timeout_seconds=2)

    report = await correlator.await_diagnostics_for(fake_session, "Foo.cs")

    assert report.uri == source_file.absolute().as_uri()
    assert report.diagnostics[0].severity_name == "hint"
    methods = [method for method, _ in fake_session.notifications]
    assert methods == [LspMethod.DID_OPEN, LspMethod.DID_CLOSE]
    opened = fake_session.notifications[0][1]["textDocument"]
    assert opened["languageId"] == "csharp"
    assert opened["version"] == 1
    assert opened["text"] == "class Foo { }\n"


@pytest.mark.asyncio
async def test_absolute_path_is_used_as_is(fake_session, source_file):
    _publish_on_open(fake_session)
    correlator = DiagnosticsCorrelator(timeout_seconds=2)

    report = await correlator.await_diagnostics_for(fake_session, str(source_file))

    assert report.diagnostics == []


@pytest.mark.asyncio
async def test_publish_for_other_document_times_out(fake_session, source_file):
    _publish_on_open(fake_session, uri_override=(source_file.parent / "Bar.cs").as_uri())
    correlator = DiagnosticsCorrelator(timeout_seconds=0.2)

    with pytest.raises(BridgeTimeoutError):
        await correlator.await_diagnostics_for(fake_session, "Foo.cs")

    await fake_session.coordinator.settle()
    assert fake_session.coordinator.pending_documents() == frozenset()


@pytest.mark.asyncio
async def test_unreadable_document_sends_nothing(fake_session):
    correlator = DiagnosticsCorrelator(timeout_seconds=1)

    with pytest.raises(DocumentReadError):
        await correlator.await_diagnostics_for(fake_session, "Missing.cs")

    await fake_session.coordinator.settle()
    assert fake_session.notifications == []
    assert fake_session.coordinator.pending_documents() == frozenset()


@pytest.mark.asyncio
async def test_cancellation_releases_waiter(fake_session, source_file):
    correlator = DiagnosticsCorrelator(timeout_seconds=None)
    task = asyncio.create_task(
        correlator.await_diagnostics_for(fake_session, "Foo.cs")
    )
    for _ in range(50):
        if fake_session.notifications:
            break
        await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await fake_session.coordinator.settle()
    assert not fake_session.coordinator.has_waiter(source_file.absolute().as_uri())
    assert fake_session.notifications[-1][0] is LspMethod.DID_CLOSE

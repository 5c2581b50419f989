import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from lsp_bridge import __version__
from lsp_bridge.cli import cli
from lsp_bridge.code_intel.lsp_types import SymbolMatch
from lsp_bridge.exceptions import NoProjectFoundError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("lsp_bridge.cli.configure_logging"):
        yield


@pytest.fixture
def clean_env():
    with patch.dict(os.environ, {}, clear=True):
        yield


def _fake_runtime(code_intel):
    runtime = MagicMock()
    runtime.code_intel = code_intel
    runtime.__aenter__ = AsyncMock(return_value=runtime)
    runtime.__aexit__ = AsyncMock(return_value=None)
    return MagicMock(return_value=runtime)


def test_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_symbols_prints_json(runner, tmp_path, clean_env):
    code_intel = MagicMock()
    code_intel.search_symbols = AsyncMock(
        return_value=[SymbolMatch(name="Foo", kind=5)]
    )
    with patch("lsp_bridge.runtime.BridgeRuntime", _fake_runtime(code_intel)):
        result = runner.invoke(cli, ["symbols", str(tmp_path), "Foo"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload == {"count": 1, "symbols": [{"name": "Foo", "kind": 5}]}
    code_intel.search_symbols.assert_awaited_once_with(str(tmp_path), "Foo")


def test_diagnostics_failure_exits_non_zero(runner, tmp_path, clean_env):
    code_intel = MagicMock()
    code_intel.fetch_diagnostics = AsyncMock(
        side_effect=NoProjectFoundError("No solution (.sln) or project (.csproj) file found")
    )
    with patch("lsp_bridge.runtime.BridgeRuntime", _fake_runtime(code_intel)):
        result = runner.invoke(cli, ["diagnostics", str(tmp_path), "Foo.cs"])

    assert result.exit_code == 1
    assert "NoProjectFoundError" in result.output


def test_serve_applies_overrides(runner, clean_env):
    with patch("lsp_bridge.server.BridgeServer") as server_cls:
        result = runner.invoke(
            cli, ["serve", "--transport", "stdio", "--port", "9100"]
        )

    assert result.exit_code == 0, result.output
    config = server_cls.call_args.args[0]
    assert config.transport == "stdio"
    assert config.port == 9100
    server_cls.return_value.run.assert_called_once_with()


def test_invalid_environment_is_reported(runner):
    with patch.dict(os.environ, {"LSP_BRIDGE_PORT": "not-a-port"}, clear=True):
        result = runner.invoke(cli, ["serve"])

    assert result.exit_code != 0
    assert "LSP_BRIDGE_PORT" in result.output

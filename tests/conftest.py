"""
Shared fixtures.

Integration tests launch ``tests/fixtures/fake_analysis_server.py`` with the
current interpreter in place of a real analysis server.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

# Add project root to path for imports (idempotent)
project_root = Path(__file__).parent.parent.resolve()
project_root_str = str(project_root)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from lsp_bridge.config import LanguageServerConfig  # noqa: E402

FAKE_SERVER = Path(__file__).parent / "fixtures" / "fake_analysis_server.py"

FOO_SOURCE = """namespace Demo
{
    public class Foo
    {
        public void Bar()
        {
            int unused = 42;
        }
    }
}
"""

CLEAN_SOURCE = """namespace Demo
{
    public static class Clean
    {
    }
}
"""


@pytest.fixture
def csharp_repo(tmp_path) -> Path:
    """A repository with one project file and two sources."""
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "Demo.csproj").write_text(
        '<Project Sdk="Microsoft.NET.Sdk"></Project>\n', encoding="utf-8"
    )
    (repo / "Foo.cs").write_text(FOO_SOURCE, encoding="utf-8")
    (repo / "Clean.cs").write_text(CLEAN_SOURCE, encoding="utf-8")
    return repo


@pytest.fixture
def record_file(tmp_path) -> Path:
    return tmp_path / "server-record.jsonl"


@pytest.fixture
def fake_server_config(record_file):
    """Factory for configs that launch the fake server with extra flags."""

    def build(*extra_args: str, **overrides: Any) -> LanguageServerConfig:
        settings: Dict[str, Any] = {
            "server_path": sys.executable,
            "server_args": (
                str(FAKE_SERVER),
                "-s",
                "{descriptor}",
                "--record",
                str(record_file),
                *extra_args,
            ),
            "initialize_timeout_seconds": 10.0,
            "request_timeout_seconds": 10.0,
            "workspace_load_timeout_seconds": 10.0,
            "diagnostics_timeout_seconds": 10.0,
            "shutdown_grace_seconds": 2.0,
            "stderr_log_level": "DEBUG",
        }
        settings.update(overrides)
        return LanguageServerConfig(**settings)

    return build


def read_records(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    with open(path, encoding="utf-8") as fh:
        return [json.loads(line) for line in fh if line.strip()]


@pytest.fixture
def server_records(record_file):
    """Callable returning what the fake server has recorded so far."""
    return lambda: read_records(record_file)

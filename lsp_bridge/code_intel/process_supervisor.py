"""
Launching analysis-server processes.

The supervisor resolves the repository's solution/project descriptor, builds
the server command line, spawns the process through the pygls client (which
owns stdin/stdout for JSON-RPC) and drains stderr into the log.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, List, Optional

from lsp_bridge.code_intel.language_client import BridgeLanguageClient
from lsp_bridge.config import LanguageServerConfig
from lsp_bridge.exceptions import LaunchError, NoProjectFoundError
from lsp_bridge.utils.logger import setup_logger

logger = setup_logger(__name__)

SOLUTION_PATTERNS = ("*.sln",)
PROJECT_PATTERNS = ("*.csproj",)


def find_project_descriptor(repo_path: str) -> Path:
    """Return the solution file in ``repo_path``, else its project file.

    Only the top level of the repository is searched.

    Raises:
        NoProjectFoundError: If the directory is missing or has neither
    """
    root = Path(repo_path)
    if not root.is_dir():
        raise NoProjectFoundError(
            f"Repository path '{repo_path}' is not a directory",
            repo_path=repo_path,
            operation="start",
        )

    for patterns in (SOLUTION_PATTERNS, PROJECT_PATTERNS):
        matches: List[Path] = []
        for pattern in patterns:
            matches.extend(p for p in root.glob(pattern) if p.is_file())
        if matches:
            return sorted(matches, key=lambda p: p.name)[0]

    raise NoProjectFoundError(
        f"No solution (.sln) or project (.csproj) file found in '{repo_path}'",
        repo_path=repo_path,
        operation="start",
    )


@dataclass
class LaunchedServer:
    """A started analysis-server process and its stderr drain."""

    repo_path: str
    descriptor: Path
    command: List[str]
    process: Optional[asyncio.subprocess.Process]
    stderr_tail: Deque[str]
    stderr_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def workspace_root(self) -> Path:
        return self.descriptor.parent.absolute()

    def stderr_excerpt(self, lines: int = 20) -> str:
        return "\n".join(list(self.stderr_tail)[-lines:])

    async def stop_stderr_drain(self) -> None:
        if self.stderr_task is None or self.stderr_task.done():
            return
        self.stderr_task.cancel()
        try:
            await self.stderr_task
        except asyncio.CancelledError:
            pass


class ProcessSupervisor:
    """Starts one analysis-server process per repository."""

    def __init__(self, config: LanguageServerConfig) -> None:
        self.config = config

    def build_command(self, descriptor: Path, repo_path: str) -> List[str]:
        substitutions = {
            "descriptor": str(descriptor.absolute()),
            "repo": str(Path(repo_path).absolute()),
        }
        args = [arg.format(**substitutions) for arg in self.config.server_args]
        return [self.config.server_path, *args]

    def _resolve_executable(self, repo_path: str) -> str:
        executable = self.config.server_path
        if os.path.sep in executable or (os.path.altsep and os.path.altsep in executable):
            if os.path.isfile(executable) and os.access(executable, os.X_OK):
                return executable
            raise LaunchError(
                f"Analysis server executable '{executable}' does not exist "
                "or is not executable.",
                repo_path=repo_path,
                operation="start",
            )
        resolved = shutil.which(executable)
        if resolved is None:
            raise LaunchError(
                f"Analysis server executable '{executable}' is not available in PATH.",
                repo_path=repo_path,
                operation="start",
            )
        return resolved

    async def start(self, client: BridgeLanguageClient, repo_path: str) -> LaunchedServer:
        """Spawn the server for ``repo_path`` on ``client``.

        Raises:
            NoProjectFoundError: Before any spawn, if no descriptor exists
            LaunchError: If the executable is missing or cannot be started
        """
        descriptor = find_project_descriptor(repo_path)
        command = self.build_command(descriptor, repo_path)
        executable = self._resolve_executable(repo_path)

        env = os.environ.copy()
        env.update(self.config.environment)

        logger.info(
            "Starting analysis server for {}: {}", repo_path, " ".join(command)
        )
        # pygls spawns with stdin, stdout and stderr all piped
        try:
            await client.start_io(
                executable, *command[1:], cwd=str(descriptor.parent), env=env
            )
        except OSError as exc:
            raise LaunchError(
                f"Failed to start analysis server '{executable}': {exc}",
                repo_path=repo_path,
                operation="start",
            ) from exc

        process = client.process
        launched = LaunchedServer(
            repo_path=repo_path,
            descriptor=descriptor,
            command=command,
            process=process,
            stderr_tail=deque(maxlen=self.config.stderr_tail_lines),
        )
        if process is not None and process.stderr is not None:
            launched.stderr_task = asyncio.create_task(
                self._drain_stderr(process.stderr, launched),
                name=f"stderr-drain:{repo_path}",
            )
        logger.info(
            "Analysis server for {} started (pid={}, descriptor={})",
            repo_path,
            launched.pid,
            descriptor.name,
        )
        return launched

    async def _drain_stderr(
        self, stream: asyncio.StreamReader, launched: LaunchedServer
    ) -> None:
        level = self.config.stderr_log_level.upper()
        while True:
            try:
                line = await stream.readline()
            except (ValueError, OSError) as exc:
                # over-long line or broken pipe; keep the session alive
                logger.debug("stderr drain for {} stopped: {}", launched.repo_path, exc)
                return
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if not text:
                continue
            launched.stderr_tail.append(text)
            logger.log(level, "[{} stderr] {}", launched.repo_path, text)

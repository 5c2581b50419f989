"""Runtime configuration for the LSP bridge."""

from __future__ import annotations

import os
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

from dotenv import load_dotenv

from lsp_bridge.exceptions import ConfigurationError

DEFAULT_SERVER_PATH = "OmniSharp"
DEFAULT_SERVER_ARGS: Sequence[str] = (
    "-lsp",
    "-s",
    "{descriptor}",
    "--stdio",
    "MsBuild:LoadProjectsOnDemand=false",
)
DEFAULT_PROJECT_LOAD_TITLE_PATTERN = (
    r"(load|open|restor)\w*\s.*(project|solution|workspace)"
    r"|(project|solution|workspace)\w*\s.*load"
)
SUPPORTED_TRANSPORTS = ("stdio", "streamable-http", "sse")
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


def _default_initialization_options() -> Dict[str, Any]:
    return {"msbuild": {"loadProjectsOnDemand": False}}


@dataclass
class LanguageServerConfig:
    """Process-level configuration for launching the analysis server.

    Attributes:
        server_path: Executable name (resolved on PATH) or absolute path.
        server_args: Arguments; ``{descriptor}`` and ``{repo}`` are substituted
            with the solution/project file and the repository path.
        environment: Extra environment variables for the child process.
        language_id: LSP language identifier sent with ``didOpen``.
        initialization_options: ``initializationOptions`` of the initialize request.
        workspace_load_timeout_seconds: Upper bound on the project-load wait,
            ``None`` waits indefinitely.
        diagnostics_timeout_seconds: Upper bound on a diagnostics wait,
            ``None`` waits indefinitely.
        wait_for_workspace_load: Gate readiness on the project-load progress
            sequence. Disable for servers that never report it.
        project_load_title_pattern: Case-insensitive regex matched against the
            title of ``$/progress`` begin events.
    """

    server_path: str = DEFAULT_SERVER_PATH
    server_args: Sequence[str] = DEFAULT_SERVER_ARGS
    environment: Mapping[str, str] = field(default_factory=dict)
    language_id: str = "csharp"
    initialization_options: Dict[str, Any] = field(
        default_factory=_default_initialization_options
    )
    initialize_timeout_seconds: float = 60.0
    request_timeout_seconds: float = 30.0
    workspace_load_timeout_seconds: Optional[float] = None
    diagnostics_timeout_seconds: Optional[float] = 60.0
    shutdown_grace_seconds: float = 5.0
    wait_for_workspace_load: bool = True
    project_load_title_pattern: str = DEFAULT_PROJECT_LOAD_TITLE_PATTERN
    stderr_log_level: str = "WARNING"
    stderr_tail_lines: int = 200

    @classmethod
    def from_command_string(cls, command: str, **kwargs: Any) -> "LanguageServerConfig":
        parts = shlex.split(command)
        if not parts:
            raise ConfigurationError("Language server command is empty.")
        return cls(server_path=parts[0], server_args=tuple(parts[1:]), **kwargs)

    @property
    def project_load_regex(self) -> re.Pattern:
        return re.compile(self.project_load_title_pattern, re.IGNORECASE)

    def validate(self) -> None:
        if not self.server_path or not self.server_path.strip():
            raise ConfigurationError("Language server path is not configured.")
        try:
            re.compile(self.project_load_title_pattern)
        except re.error as exc:
            raise ConfigurationError(
                f"Invalid project load title pattern: {exc}"
            ) from exc
        for name in (
            "initialize_timeout_seconds",
            "request_timeout_seconds",
            "shutdown_grace_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive.")
        for name in ("workspace_load_timeout_seconds", "diagnostics_timeout_seconds"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be positive or unset.")
        if self.stderr_tail_lines < 1:
            raise ConfigurationError("stderr_tail_lines must be at least 1.")
        if self.stderr_log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(
                f"Unknown stderr log level '{self.stderr_log_level}'."
            )


@dataclass
class BridgeConfig:
    """Top-level bridge configuration.

    Attributes:
        server: How to launch and talk to the analysis server.
        transport: MCP transport used by ``lsp-bridge serve``.
        host: Bind address for HTTP transports.
        port: Bind port for HTTP transports.
        log_level: Level for the bridge's own logs.
    """

    server: LanguageServerConfig = field(default_factory=LanguageServerConfig)
    transport: str = "streamable-http"
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"

    def validate(self) -> None:
        self.server.validate()
        if self.transport not in SUPPORTED_TRANSPORTS:
            raise ConfigurationError(
                f"Unsupported transport '{self.transport}'. "
                f"Expected one of: {', '.join(SUPPORTED_TRANSPORTS)}"
            )
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid port {self.port}.")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level '{self.log_level}'.")

    @classmethod
    def from_env(
        cls,
        env_prefix: str = "LSP_BRIDGE_",
        dotenv_path: Optional[str] = None,
    ) -> "BridgeConfig":
        """Build configuration from environment variables.

        Args:
            env_prefix: Prefix for every variable (``LSP_BRIDGE_SERVER_PATH`` ...)
            dotenv_path: Optional .env file loaded before reading the environment

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        if dotenv_path:
            load_dotenv(dotenv_path, override=True)
        else:
            load_dotenv()

        def env(name: str) -> Optional[str]:
            value = os.getenv(f"{env_prefix}{name}")
            if value is None or not value.strip():
                return None
            return value.strip()

        server_kwargs: Dict[str, Any] = {}
        if env("SERVER_PATH"):
            server_kwargs["server_path"] = env("SERVER_PATH")
        if env("SERVER_ARGS"):
            server_kwargs["server_args"] = tuple(shlex.split(env("SERVER_ARGS")))
        if env("LANGUAGE_ID"):
            server_kwargs["language_id"] = env("LANGUAGE_ID")
        if env("PROJECT_LOAD_TITLE_PATTERN"):
            server_kwargs["project_load_title_pattern"] = env(
                "PROJECT_LOAD_TITLE_PATTERN"
            )
        if env("STDERR_LOG_LEVEL"):
            server_kwargs["stderr_log_level"] = env("STDERR_LOG_LEVEL").upper()

        for name, attr in (
            ("INITIALIZE_TIMEOUT", "initialize_timeout_seconds"),
            ("REQUEST_TIMEOUT", "request_timeout_seconds"),
            ("SHUTDOWN_GRACE", "shutdown_grace_seconds"),
        ):
            raw = env(name)
            if raw is not None:
                server_kwargs[attr] = _parse_float(f"{env_prefix}{name}", raw)

        for name, attr in (
            ("WORKSPACE_LOAD_TIMEOUT", "workspace_load_timeout_seconds"),
            ("DIAGNOSTICS_TIMEOUT", "diagnostics_timeout_seconds"),
        ):
            raw = env(name)
            if raw is not None:
                server_kwargs[attr] = _parse_optional_float(
                    f"{env_prefix}{name}", raw
                )

        if env("WAIT_FOR_WORKSPACE_LOAD") is not None:
            server_kwargs["wait_for_workspace_load"] = _parse_bool(
                env("WAIT_FOR_WORKSPACE_LOAD")
            )
        if env("STDERR_TAIL_LINES") is not None:
            server_kwargs["stderr_tail_lines"] = _parse_int(
                f"{env_prefix}STDERR_TAIL_LINES", env("STDERR_TAIL_LINES")
            )

        config_kwargs: Dict[str, Any] = {"server": LanguageServerConfig(**server_kwargs)}
        if env("TRANSPORT"):
            config_kwargs["transport"] = env("TRANSPORT").lower()
        if env("HOST"):
            config_kwargs["host"] = env("HOST")
        if env("PORT"):
            config_kwargs["port"] = _parse_int(f"{env_prefix}PORT", env("PORT"))
        log_level = env("LOG_LEVEL") or os.getenv("LOG_LEVEL")
        if log_level:
            config_kwargs["log_level"] = log_level.strip().upper()

        return cls(**config_kwargs)


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'.") from exc


def _parse_optional_float(name: str, raw: str) -> Optional[float]:
    if raw.lower() in ("none", "off"):
        return None
    return _parse_float(name, raw)


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'.") from exc


def _parse_bool(raw: str) -> bool:
    return raw.lower() in ("1", "true", "yes", "on")

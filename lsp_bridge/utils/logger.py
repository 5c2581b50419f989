"""
Loguru setup for the bridge.

Every sink writes to stderr: stdout belongs to the MCP stdio transport.
Standard-library loggers (pygls, mcp, uvicorn) are routed into loguru so all
output shares one format.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Dict, Optional

from loguru import logger as _loguru_logger

DEV_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level> - {extra}"
)

# stdlib logger name -> level once routed into loguru
LIBRARY_LEVELS: Dict[str, str] = {
    "pygls": "WARNING",
    "pygls.protocol": "WARNING",
    "pygls.client": "INFO",
    "mcp": "INFO",
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "httpx": "WARNING",
    "asyncio": "WARNING",
}

_STDLIB_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LOGGING_CONFIGURED = False


def _default_name(record) -> None:
    record["extra"].setdefault("name", record.get("name") or "unknown")


_logger = _loguru_logger.patch(_default_name)


def _flatten(record: Dict[str, Any]) -> Dict[str, Any]:
    """Turn loguru's nested serialized record into one flat mapping."""
    extra = dict(record.get("extra", {}))
    flat: Dict[str, Any] = {
        "timestamp": record.get("time", {}).get("repr", ""),
        "level": record.get("level", {}).get("name", "INFO"),
        "logger": extra.pop("name", record.get("name", "unknown")),
        "function": record.get("function", ""),
        "line": record.get("line", 0),
        "message": record.get("message", ""),
    }
    # repo_path, operation, ... from log_context()
    flat.update(extra)

    exc = record.get("exception")
    if exc:
        exc_type = exc.get("type")
        flat["exception"] = {
            "type": exc_type.get("name", "Exception")
            if isinstance(exc_type, dict)
            else str(exc_type or "Exception"),
            "value": exc.get("value", ""),
            "traceback": exc.get("traceback", ""),
        }
    return flat


def production_log_sink(message) -> None:
    """JSON-lines sink used when ENV=production."""
    try:
        payload = json.loads(message)
    except (json.JSONDecodeError, TypeError):
        sys.stderr.write(str(message))
        sys.stderr.flush()
        return
    record = payload.get("record", payload)
    sys.stderr.write(json.dumps(_flatten(record), default=str) + "\n")
    sys.stderr.flush()


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.bind(name=record.name).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def _route_stdlib_logging(level: str) -> None:
    handler = InterceptHandler()
    logging.basicConfig(handlers=[handler], level=logging.WARNING, force=True)

    levels = dict(LIBRARY_LEVELS)
    levels["lsp_bridge"] = level if level in _STDLIB_LEVELS else "DEBUG"
    for name, lib_level in levels.items():
        lib_logger = logging.getLogger(name)
        lib_logger.handlers = [handler]
        lib_logger.setLevel(lib_level)
        lib_logger.propagate = False


def configure_logging(level: Optional[str] = None, force: bool = False) -> None:
    """
    Install the bridge's sinks.

    Level comes from the argument, else LSP_BRIDGE_LOG_LEVEL, else LOG_LEVEL.
    ENV=production switches to flat JSON lines. Calling again is a no-op
    unless ``force`` is set (the CLI reconfigures once settings are loaded).
    """
    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED and not force:
        return

    level = (
        level or os.getenv("LSP_BRIDGE_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO"
    ).upper()

    _loguru_logger.remove()
    if os.getenv("ENV", "development") == "production":
        _logger.add(production_log_sink, format="{message}", level=level, serialize=True)
    else:
        _logger.add(sys.stderr, format=DEV_FORMAT, level=level, colorize=True)

    _route_stdlib_logging(level)
    _LOGGING_CONFIGURED = True


@contextmanager
def log_context(**kwargs):
    """
    Attach fields such as repo_path or operation to every log in the block.

    Backed by loguru's contextualize(), so concurrent session start-ups keep
    their own values.
    """
    with _logger.contextualize(**kwargs):
        yield


def setup_logger(name: str):
    """Loguru logger bound to ``name``; configures logging on first use."""
    if not _LOGGING_CONFIGURED:
        configure_logging()
    return _logger.bind(name=name)

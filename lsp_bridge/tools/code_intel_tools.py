"""
Structured tools exposing symbol search and diagnostics to agents.

Both tools validate their input with pydantic, call the `CodeIntelService`,
and return plain dictionaries: results on success, or the error type and
message on failure so an agent can report the problem instead of crashing.
"""

from __future__ import annotations

from typing import Any, Dict, List

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field, field_validator

from lsp_bridge.code_intel.code_intel_service import CodeIntelService
from lsp_bridge.exceptions import BridgeError
from lsp_bridge.utils.logger import setup_logger

logger = setup_logger(__name__)


class GetSymbolsInput(BaseModel):
    repo_path: str = Field(
        ..., description="Absolute path of the repository root on the bridge host."
    )
    query: str = Field(
        ...,
        description="Symbol name or fragment to search for across the workspace.",
    )

    @field_validator("repo_path")
    @classmethod
    def repo_path_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("repo_path must not be empty")
        return value


class GetDiagnosticsInput(BaseModel):
    repo_path: str = Field(
        ..., description="Absolute path of the repository root on the bridge host."
    )
    file: str = Field(
        ...,
        description="Source file to check, absolute or relative to the repository root.",
    )

    @field_validator("repo_path", "file")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("value must not be empty")
        return value


def _error_result(exc: BridgeError) -> Dict[str, Any]:
    result = exc.to_dict()
    result["success"] = False
    return result


def _unexpected_result(exc: Exception) -> Dict[str, Any]:
    return {
        "success": False,
        "error": f"Unexpected error: {exc}",
        "error_type": type(exc).__name__,
    }


class CodeIntelTools:
    """Agent-facing wrappers around `CodeIntelService`."""

    get_symbols_description: str = (
        "Search a C# repository for types, methods and other symbols matching a "
        "query. Returns each symbol's name, kind, container and location."
    )
    get_diagnostics_description: str = (
        "Compile-check a single C# file in a repository and return the errors, "
        "warnings and hints the analysis server reports for it."
    )

    def __init__(self, service: CodeIntelService) -> None:
        self.service = service

    async def get_symbols(self, repo_path: str, query: str) -> Dict[str, Any]:
        logger.info("[GET_SYMBOLS] query={!r} repo={}", query, repo_path)
        try:
            symbols = await self.service.search_symbols(repo_path, query)
        except BridgeError as exc:
            logger.warning("[GET_SYMBOLS] failed for {}: {}", repo_path, exc)
            return _error_result(exc)
        except Exception as exc:
            logger.exception("[GET_SYMBOLS] Unexpected error: {}", exc)
            return _unexpected_result(exc)

        items: List[dict] = [symbol.to_lsp() for symbol in symbols]
        return {"success": True, "count": len(items), "symbols": items}

    async def get_diagnostics(self, repo_path: str, file: str) -> Dict[str, Any]:
        logger.info("[GET_DIAGNOSTICS] file={} repo={}", file, repo_path)
        try:
            report = await self.service.fetch_diagnostics(repo_path, file)
        except BridgeError as exc:
            logger.warning("[GET_DIAGNOSTICS] failed for {}: {}", file, exc)
            return _error_result(exc)
        except Exception as exc:
            logger.exception("[GET_DIAGNOSTICS] Unexpected error: {}", exc)
            return _unexpected_result(exc)

        result = report.to_lsp()
        result["success"] = True
        return result

    def as_structured_tools(self) -> List[StructuredTool]:
        return [
            StructuredTool.from_function(
                coroutine=self.get_symbols,
                name="get_symbols",
                description=self.get_symbols_description,
                args_schema=GetSymbolsInput,
            ),
            StructuredTool.from_function(
                coroutine=self.get_diagnostics,
                name="get_diagnostics",
                description=self.get_diagnostics_description,
                args_schema=GetDiagnosticsInput,
            ),
        ]

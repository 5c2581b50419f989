"""
Shared types and enumerations for the code-intelligence bridge.

Models describe the two payloads the bridge hands back to callers (workspace
symbol matches and diagnostics reports). They keep every field the analysis
server sends so results stay unmodified apart from validation.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Union
from urllib.parse import quote, unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field


class LspMethod(str, Enum):
    """LSP messages the bridge sends or handles."""

    INITIALIZE = "initialize"
    INITIALIZED = "initialized"
    SHUTDOWN = "shutdown"
    EXIT = "exit"
    WORKSPACE_SYMBOL = "workspace/symbol"
    DID_OPEN = "textDocument/didOpen"
    DID_CLOSE = "textDocument/didClose"
    PUBLISH_DIAGNOSTICS = "textDocument/publishDiagnostics"
    PROGRESS = "$/progress"
    WORK_DONE_PROGRESS_CREATE = "window/workDoneProgress/create"
    WORKSPACE_CONFIGURATION = "workspace/configuration"
    REGISTER_CAPABILITY = "client/registerCapability"
    LOG_MESSAGE = "window/logMessage"
    SHOW_MESSAGE = "window/showMessage"


class DiagnosticSeverity(int, Enum):
    ERROR = 1
    WARNING = 2
    INFORMATION = 3
    HINT = 4


def to_plain(value: Any) -> Any:
    """Convert pygls payload objects into plain dicts and lists.

    pygls' JsonRPCClient structures untyped params and results into
    namedtuples; everything downstream works on JSON-shaped data.
    """
    if hasattr(value, "_asdict"):
        return {key: to_plain(item) for key, item in value._asdict().items()}
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


def document_uri(path: Union[str, os.PathLike], base_dir: Optional[str] = None) -> str:
    """Build the document identity (file:// URI) for a filesystem path.

    Relative paths resolve against ``base_dir`` (the repository path).
    """
    candidate = Path(path)
    if not candidate.is_absolute() and base_dir is not None:
        candidate = Path(base_dir) / candidate
    return candidate.absolute().as_uri()


def canonical_uri(uri: str) -> str:
    """Normalize a file:// URI so server and client spellings compare equal.

    Servers differ in percent-encoding (``%3A`` vs ``:``) and drive letter
    case; the canonical form is the URI rebuilt from the decoded path.
    """
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return uri
    path = unquote(parsed.path)
    # /C:/repo and /c:/repo name the same document
    if len(path) > 2 and path[0] == "/" and path[2] == ":":
        path = "/" + path[1].lower() + path[2:]
    return "file://" + quote(path)


def uri_to_path(uri: str) -> str:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return uri
    return unquote(parsed.path)


class Position(BaseModel):
    """Represents a zero-based line/character location in a text document."""

    model_config = ConfigDict(extra="allow")

    line: int = Field(..., ge=0, description="Zero-based line index.")
    character: int = Field(..., ge=0, description="Zero-based character offset.")


class Range(BaseModel):
    model_config = ConfigDict(extra="allow")

    start: Position
    end: Position


class Location(BaseModel):
    """Represents a location inside a resource, such as a line inside a text file."""

    model_config = ConfigDict(extra="allow")

    uri: str = Field(..., description="file:// URI where the symbol is located.")
    range: Optional[Range] = Field(
        None, description="Absent for WorkspaceSymbol results resolved lazily."
    )


class SymbolMatch(BaseModel):
    """One workspace/symbol result, kept as the server sent it."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(..., description="Symbol name.")
    kind: int = Field(..., description="Symbol kind (LSP SymbolKind enum value).")
    location: Optional[Location] = Field(None, description="Where the symbol is located.")
    container_name: Optional[str] = Field(
        None, alias="containerName", description="Optional enclosing symbol name."
    )

    @property
    def path(self) -> Optional[str]:
        if self.location is None:
            return None
        return uri_to_path(self.location.uri)

    def to_lsp(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Diagnostic(BaseModel):
    """A single warning/error published for a document."""

    model_config = ConfigDict(extra="allow")

    range: Range
    message: str
    severity: Optional[int] = Field(
        None, description="LSP DiagnosticSeverity (1 error .. 4 hint)."
    )
    code: Optional[Union[int, str]] = None
    source: Optional[str] = None

    @property
    def severity_name(self) -> Optional[str]:
        if self.severity is None:
            return None
        try:
            return DiagnosticSeverity(self.severity).name.lower()
        except ValueError:
            return None


class DiagnosticsReport(BaseModel):
    """Payload of one textDocument/publishDiagnostics notification."""

    model_config = ConfigDict(extra="allow")

    uri: str = Field(..., description="Document the diagnostics belong to.")
    version: Optional[int] = None
    diagnostics: List[Diagnostic] = Field(default_factory=list)

    @classmethod
    def from_lsp(cls, data: Any) -> "DiagnosticsReport":
        return cls.model_validate(to_plain(data))

    def to_lsp(self) -> dict:
        return self.model_dump(exclude_none=True)

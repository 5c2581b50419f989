"""Exception hierarchy for the LSP bridge."""

from typing import Optional


class BridgeError(Exception):
    """Base exception for all bridge errors.

    Carries the repository path and operation so the outer layer can build a
    user-facing message without parsing the text.
    """

    def __init__(
        self,
        message: str,
        *,
        repo_path: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.repo_path = repo_path
        self.operation = operation

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "error_type": type(self).__name__,
            "repo_path": self.repo_path,
            "operation": self.operation,
        }


class ConfigurationError(BridgeError):
    """Configuration is invalid or missing required values."""

    pass


class NotInitializedError(BridgeError):
    """Runtime or component not initialized."""

    pass


class NoProjectFoundError(BridgeError):
    """Repository has neither a solution nor a project descriptor."""

    pass


class LaunchError(BridgeError):
    """Analysis server process failed to start."""

    pass


class HandshakeError(BridgeError):
    """Initialization was rejected, malformed, or the server died during startup."""

    pass


class BridgeTimeoutError(BridgeError, TimeoutError):
    """A bounded wait (initialize, workspace load, request, diagnostics) expired."""

    pass


class DocumentReadError(BridgeError):
    """Document contents could not be read for a diagnostics request."""

    pass


class ServerRequestError(BridgeError):
    """Analysis server answered a request with a JSON-RPC error."""

    pass


class ServerExitedError(BridgeError):
    """Analysis server exited while a caller was still waiting on it."""

    pass


class SessionClosedError(BridgeError):
    """Session or session manager is shut down or not ready."""

    pass

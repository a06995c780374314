"""
Exception classes for schemasync.
"""

from typing import Any, Dict, List, Optional


class SchemaSyncError(Exception):
    """Base exception for all schemasync errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(SchemaSyncError):
    """Raised when there's an error in configuration."""

    pass


class ValidationError(SchemaSyncError):
    """Raised when a local schema document fails validation."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        if path:
            message = f"{path}: {message}"
        super().__init__(message, details, cause)
        self.path = path


class GatewayError(SchemaSyncError):
    """Raised when the remote schema store cannot be reached or misbehaves."""

    pass


class GatewayAPIError(GatewayError):
    """Raised when the remote schema store answers with an error status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[Any] = None,
    ) -> None:
        details = {}
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body

        super().__init__(message, details)
        self.status_code = status_code
        self.response_body = response_body


class ConflictError(SchemaSyncError):
    """Raised when a push is refused because of unresolved conflicts."""

    def __init__(self, conflicts: List[Any]) -> None:
        super().__init__(
            f"{len(conflicts)} conflict(s) must be resolved manually",
            {"classes": sorted({c.class_name for c in conflicts})},
        )
        self.conflicts = conflicts


class TaskError(SchemaSyncError):
    """Raised when a task cannot be built from a difference."""

    pass

"""Error types and classification for routine scheduling operations."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel


class ExternalTaskError(Exception):
    """Base class for failures talking to the external task service."""


class ExternalTaskCreateError(ExternalTaskError):
    """Raised when the external task service could not create a task."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ErrorCategory(Enum):
    """Categories of errors raised by routine operations."""

    ROUTINE_NOT_FOUND = "routine_not_found"
    ROUTINE_TASK_NOT_FOUND = "routine_task_not_found"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    INVALID_ROUTINE = "invalid_routine"
    EXTERNAL_SERVICE_FAILED = "external_service_failed"
    AUTHENTICATION_FAILED = "authentication_failed"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Lookup errors
    ERR_ROUTINE_NOT_FOUND = "ERR_ROUTINE_NOT_FOUND"
    ERR_ROUTINE_TASK_NOT_FOUND = "ERR_ROUTINE_TASK_NOT_FOUND"

    # Lifecycle errors
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_INVALID_ROUTINE = "ERR_INVALID_ROUTINE"

    # External service errors
    ERR_EXTERNAL_SERVICE_FAILED = "ERR_EXTERNAL_SERVICE_FAILED"
    ERR_AUTHENTICATION_FAILED = "ERR_AUTHENTICATION_FAILED"
    ERR_NETWORK_ERROR = "ERR_NETWORK_ERROR"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity
    http_status: int = 500


_ERROR_PATTERNS: dict[Literal["auth", "network"], dict[str, list[str] | set[str]]] = {
    "auth": {
        "phrases": [
            "authentication failed",
            "unauthorized",
            "invalid token",
            "credential not configured",
            "401",
            "403",
        ],
        "exception_types": {"PermissionError"},
    },
    "network": {
        "phrases": [
            "connection",
            "timeout",
            "timed out",
            "network",
            "502",
            "503",
            "504",
            "unreachable",
        ],
        "exception_types": {"ConnectError", "ConnectionError", "TimeoutError", "TimeoutException"},
    },
}


def _match_error_pattern(*, error_str: str, exception_type: str, pattern_type: Literal["auth", "network"]) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by a routine operation

    Returns:
        ErrorResponse with code, message, suggestion, severity and HTTP status
    """
    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if isinstance(exception, KeyError) and "routine_tasks" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_ROUTINE_TASK_NOT_FOUND,
            message="That routine task does not exist.",
            suggestion="Refresh the routine's task list and try again.",
            severity=ErrorSeverity.LOW,
            http_status=404,
        )

    if isinstance(exception, KeyError):
        return ErrorResponse(
            code=ErrorCode.ERR_ROUTINE_NOT_FOUND,
            message="That routine does not exist.",
            suggestion="Check the routine id and try again.",
            severity=ErrorSeverity.LOW,
            http_status=404,
        )

    if isinstance(exception, ValueError) and error_str.startswith("cannot"):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_STATE_TRANSITION,
            message="This action cannot be performed in the task's current state.",
            suggestion="Completed, missed, skipped and deferred tasks cannot change status.",
            severity=ErrorSeverity.LOW,
            http_status=409,
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="auth"):
        return ErrorResponse(
            code=ErrorCode.ERR_AUTHENTICATION_FAILED,
            message="Task service authentication failed.",
            suggestion="Check the configured Todoist API token.",
            severity=ErrorSeverity.CRITICAL,
            http_status=502,
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="network"):
        return ErrorResponse(
            code=ErrorCode.ERR_NETWORK_ERROR,
            message="Network error occurred.",
            suggestion="Please try again in a moment.",
            severity=ErrorSeverity.MEDIUM,
            http_status=503,
        )

    if isinstance(exception, ExternalTaskError):
        return ErrorResponse(
            code=ErrorCode.ERR_EXTERNAL_SERVICE_FAILED,
            message="Could not complete the request with the task service.",
            suggestion="The change was saved locally; it will sync on the next run.",
            severity=ErrorSeverity.MEDIUM,
            http_status=502,
        )

    if isinstance(exception, ValueError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_ROUTINE,
            message="The routine data is invalid.",
            suggestion=str(exception),
            severity=ErrorSeverity.LOW,
            http_status=422,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="Could not complete the request.",
        suggestion="Please try again later. If the problem persists, check the service logs.",
        severity=ErrorSeverity.MEDIUM,
    )

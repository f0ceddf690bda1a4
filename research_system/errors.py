"""Error taxonomy for the research verification subsystem.

Exception Hierarchy:
    ResearchSystemError (base)
    ├── ValidationError       - malformed input, raised before any I/O
    ├── APIError              - provider/network failure after retry policy
    ├── DataProcessingError   - unexpected internal fault, wraps the cause
    └── ConfigurationError    - missing/invalid configuration

Every error carries a stable ``code`` so callers at the tool boundary can
distinguish "provider down" from "bad input" without parsing messages.
"""

from typing import Any, Optional


class ErrorCodes:
    """Standardized error codes grouped by category."""

    # Validation errors (1xxx)
    INVALID_INPUT = "ERR_1001"
    MISSING_REQUIRED_PARAM = "ERR_1002"
    VALIDATION_FAILED = "ERR_1004"

    # API errors (2xxx)
    API_RATE_LIMIT = "ERR_2001"
    API_AUTH_FAILED = "ERR_2002"
    API_TIMEOUT = "ERR_2003"
    API_UNAVAILABLE = "ERR_2004"
    API_RESPONSE_ERROR = "ERR_2005"
    API_CIRCUIT_OPEN = "ERR_2006"

    # Processing errors (3xxx)
    DATA_PROCESSING_ERROR = "ERR_3004"
    INVALID_STATE_TRANSITION = "ERR_3006"

    # Configuration errors (4xxx)
    CONFIG_MISSING = "ERR_4001"
    CONFIG_INVALID = "ERR_4002"


class ResearchSystemError(Exception):
    """
    Base exception for all research system errors.

    Attributes:
        message: Human-readable description
        code: Stable error code from ErrorCodes
        details: Structured context for logging and tool responses
        tool_name: Optional name of the tool that raised the error
    """

    default_code = ErrorCodes.DATA_PROCESSING_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        code: Optional[str] = None,
        tool_name: Optional[str] = None,
    ):
        super().__init__(f"[{tool_name}] {message}" if tool_name else message)
        self.message = message
        self.details = details or {}
        self.code = code or self.default_code
        self.tool_name = tool_name

    def __str__(self) -> str:
        base = f"[{self.tool_name}] {self.message}" if self.tool_name else self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{base} ({detail_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the tool boundary."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ResearchSystemError):
    """Malformed caller input. Never retried."""

    default_code = ErrorCodes.INVALID_INPUT


class APIError(ResearchSystemError):
    """
    Failure talking to the external provider.

    Attributes:
        status_code: HTTP status, or None for transport-level errors
        retryable: Whether re-issuing the request later may succeed
        endpoint: Logical endpoint identity (e.g. "exa.search")
    """

    default_code = ErrorCodes.API_UNAVAILABLE

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        endpoint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        code: Optional[str] = None,
        tool_name: Optional[str] = None,
    ):
        merged = {"status_code": status_code, "retryable": retryable, "endpoint": endpoint}
        merged.update(details or {})
        super().__init__(message, details=merged, code=code, tool_name=tool_name)
        self.status_code = status_code
        self.retryable = retryable
        self.endpoint = endpoint


class DataProcessingError(ResearchSystemError):
    """Unexpected internal fault. The original exception is kept as __cause__."""

    default_code = ErrorCodes.DATA_PROCESSING_ERROR

    @classmethod
    def wrap(
        cls,
        message: str,
        cause: BaseException,
        details: Optional[dict[str, Any]] = None,
        tool_name: Optional[str] = None,
    ) -> "DataProcessingError":
        """Build a DataProcessingError that records its cause."""
        merged = dict(details or {})
        merged["cause"] = f"{type(cause).__name__}: {cause}"
        error = cls(message, details=merged, tool_name=tool_name)
        error.__cause__ = cause
        return error


class ConfigurationError(ResearchSystemError):
    """Missing or invalid configuration, reported at first use."""

    default_code = ErrorCodes.CONFIG_MISSING


__all__ = [
    "ErrorCodes",
    "ResearchSystemError",
    "ValidationError",
    "APIError",
    "DataProcessingError",
    "ConfigurationError",
]

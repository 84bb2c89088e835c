"""Application-level exception types.

Every failure the quota tracker surfaces derives from ``AppError`` so the
HTTP layer and callers can handle them uniformly. Exhausted budgets and
missing records are not errors; they are reported through
``ThrottleResult``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    field: str
    value: Any
    tenant_key: str
    backend: str
    error_type: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidArgument(ValidationAppError):
    """Raised for a malformed check/sync call before the store is touched."""

    def __init__(
        self,
        message: str,
        details: ErrorDetails | None = None,
        *,
        code: str = "invalid_argument",
    ) -> None:
        super().__init__(code=code, message=message, details=details)


class InvalidRecord(ValidationAppError):
    """Raised when a reported throttle status cannot become a valid record."""

    def __init__(
        self,
        message: str,
        details: ErrorDetails | None = None,
        *,
        code: str = "invalid_record",
    ) -> None:
        super().__init__(code=code, message=message, details=details)


class BackendUnavailable(AppError):
    """Raised when the backing store cannot be reached or fails a command.

    Never retried internally; the caller owns the retry policy.
    """

    def __init__(
        self,
        message: str,
        details: ErrorDetails | None = None,
        *,
        code: str = "backend_unavailable",
    ) -> None:
        super().__init__(code=code, message=message, details=details)

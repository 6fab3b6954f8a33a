"""Exception hierarchy for bamboohr-shim.

Every failure path in the client produces one of these exceptions. Each
instance is the Python form of an *error record*: it carries a ``kind``
tag, a human-readable ``message``, and the upstream HTTP ``status`` when
there was one. :meth:`BambooHRError.to_dict` renders the record in the
``{"error", "message", "status"}`` shape the tool layer reports back to
the agent.

Subclass hierarchy::

    BambooHRError            (exit 1)
    +-- InvalidUsageError    (exit 2)
    +-- ConfigError          (exit 1)
    +-- AuthError            (exit 3)
    |   +-- UnauthorizedError
    |   +-- ForbiddenError
    +-- NotFoundError        (exit 4)
    +-- ApiError             (exit 5)
    +-- NetworkError         (exit 6)
    +-- RateLimitedError     (exit 7)
"""

from __future__ import annotations

from typing import Any, Optional

from bamboohr_shim.exit_codes import (
    EXIT_API_ERROR,
    EXIT_AUTH_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_ERROR,
    EXIT_NOT_FOUND,
    EXIT_RATE_LIMITED,
)


class BambooHRError(Exception):
    """Base exception for all bamboohr-shim errors.

    Args:
        message: Human-readable error description.
        status: HTTP status code of the upstream response, if any.
        detail: The raw upstream message (vendor error header or status
            line) when ``message`` has been replaced by friendlier text.
        exit_code: Optional override for the class-level exit code.
    """

    kind: str = "UNKNOWN_ERROR"
    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        detail: Optional[str] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.detail = detail
        if exit_code is not None:
            self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        """Return the error record as a plain mapping."""
        record: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.status is not None:
            record["status"] = self.status
        if self.detail:
            record["detail"] = self.detail
        return record


class InvalidUsageError(BambooHRError):
    """Raised for bad caller input (unsupported method, undecodable base64 payload)."""

    kind = "INVALID_USAGE"
    exit_code = EXIT_INVALID_USAGE


class ConfigError(BambooHRError):
    """Raised when credentials or settings cannot be resolved or fail validation."""

    kind = "CONFIG_ERROR"
    exit_code = EXIT_GENERIC_FAILURE


class AuthError(BambooHRError):
    """Common parent for authentication (401) and authorisation (403) failures."""

    kind = "AUTH_ERROR"
    exit_code = EXIT_AUTH_FAILURE


class UnauthorizedError(AuthError):
    """Raised on HTTP 401: the API key is invalid or has been revoked."""

    kind = "UNAUTHORIZED"


class ForbiddenError(AuthError):
    """Raised on HTTP 403: the key's user lacks permission for the resource."""

    kind = "FORBIDDEN"


class NotFoundError(BambooHRError):
    """Raised when the API returns HTTP 404 (resource not found)."""

    kind = "NOT_FOUND"
    exit_code = EXIT_NOT_FOUND


class ApiError(BambooHRError):
    """Raised for any other non-2xx response."""

    kind = "API_ERROR"
    exit_code = EXIT_API_ERROR


class NetworkError(BambooHRError):
    """Raised on transport-level failures (timeout, DNS resolution, connection refused)."""

    kind = "NETWORK_ERROR"
    exit_code = EXIT_NETWORK_ERROR


class RateLimitedError(BambooHRError):
    """Raised on HTTP 429/503 once the retry budget is used up.

    Inside the retry loop the same type describes a still-retryable
    condition; callers only ever see it after exhaustion.

    Args:
        attempts: Number of requests sent before giving up.
    """

    kind = "RATE_LIMITED"
    exit_code = EXIT_RATE_LIMITED

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        detail: Optional[str] = None,
        attempts: int = 0,
    ):
        super().__init__(message, status=status, detail=detail)
        self.attempts = attempts

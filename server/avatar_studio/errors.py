"""Typed failures surfaced by the avatar services."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Failure taxonomy shared by every remote call and the HTTP surface."""

    MISCONFIGURED = "misconfigured"
    UNAUTHORIZED = "unauthorized"
    PAYMENT_REQUIRED = "payment_required"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_PROTOCOL_ERROR = "upstream_protocol_error"
    VALIDATION_ERROR = "validation_error"
    INTERNAL = "internal"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorKind.MISCONFIGURED: 503,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.PAYMENT_REQUIRED: 402,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.NETWORK_ERROR: 502,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.UPSTREAM_PROTOCOL_ERROR: 502,
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.INTERNAL: 500,
}


class AvatarServiceError(Exception):
    """Raised whenever a generation step fails, carrying a user-facing message."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"AvatarServiceError(kind={self.kind.value!r}, message={self.message!r})"


def error_for_status(status: int, messages: Dict[ErrorKind, str]) -> AvatarServiceError:
    """Translate an upstream HTTP status into the matching typed error.

    ``messages`` supplies the service-specific wording for each kind; statuses
    outside the known set become ``INTERNAL`` with the generic ``INTERNAL``
    message formatted with the status code.
    """

    if status == 401:
        kind = ErrorKind.UNAUTHORIZED
    elif status == 402:
        kind = ErrorKind.PAYMENT_REQUIRED
    elif status == 429:
        kind = ErrorKind.RATE_LIMITED
    elif status >= 500:
        kind = ErrorKind.UPSTREAM_UNAVAILABLE
    else:
        return AvatarServiceError(
            ErrorKind.INTERNAL,
            messages[ErrorKind.INTERNAL].format(status=status),
            details={"status": status},
        )
    return AvatarServiceError(kind, messages[kind], details={"status": status})

"""
Result types for integration operations.

Expected failures (missing credentials, provider errors, bad inbound
signatures) are returned as values instead of raised.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Category of an expected integration failure."""

    NOT_CONFIGURED = "not_configured"
    REMOTE_ERROR = "remote_error"
    INVALID_RESPONSE = "invalid_response"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_PAYLOAD = "invalid_payload"
    NOT_FOUND = "not_found"

    @property
    def http_status(self) -> int:
        """Status code the inbound webhook endpoint answers with."""
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorKind.NOT_CONFIGURED: 503,
    ErrorKind.REMOTE_ERROR: 502,
    ErrorKind.INVALID_RESPONSE: 502,
    ErrorKind.INVALID_SIGNATURE: 401,
    ErrorKind.INVALID_PAYLOAD: 400,
    ErrorKind.NOT_FOUND: 404,
}


@dataclass(frozen=True)
class SyncError:
    kind: ErrorKind
    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
        }


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a ``SyncError``."""

    value: T | None = None
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> "Result[T]":
        return cls(error=SyncError(kind, message, status_code))

    @classmethod
    def from_error(cls, error: SyncError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """
        Raises:
            RuntimeError: when called on a failure.
        """
        if self.error is not None:
            raise RuntimeError(str(self.error))
        return self.value

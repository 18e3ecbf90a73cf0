"""
Error taxonomy for the broker.

Every error raised by the services derives from ``BrokerError`` and carries the
HTTP status the API layer answers with plus a message that is safe to show to
the caller.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Optional


class BrokerError(Exception):
    """Base class for errors translated into JSON responses."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    public_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    def to_public_message(self) -> str:
        return self.message


class ValidationError(BrokerError):
    """Malformed input, e.g. a callback without code or state."""

    status_code = HTTPStatus.BAD_REQUEST
    public_message = "Bad request"


class UnauthorizedError(BrokerError):
    """Missing or unrecognized session bearer."""

    status_code = HTTPStatus.UNAUTHORIZED
    public_message = "Unauthorized"


class NotFoundError(BrokerError):
    """Unknown or expired pairing id."""

    status_code = HTTPStatus.NOT_FOUND
    public_message = "Not Found"


class RateLimitError(BrokerError):
    """Raised when a client exceeded the budget for a route class."""

    status_code = HTTPStatus.TOO_MANY_REQUESTS
    public_message = "Too many requests"

    def __init__(self, message: Optional[str] = None, *, retry_after: int = 60) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamAuthError(BrokerError):
    """The OAuth provider rejected an exchange or refresh, or never answered.

    ``upstream_status`` is the provider's HTTP status, or ``None`` when the
    request timed out or failed at the transport level. The provider's
    response body is never part of the message.
    """

    status_code = HTTPStatus.BAD_GATEWAY
    public_message = "Upstream authorization failed"

    def __init__(
        self, message: Optional[str] = None, *, upstream_status: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class CryptoError(BrokerError):
    """Stored ciphertext could not be decrypted or the key is unusable."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    public_message = "Internal error"

    def to_public_message(self) -> str:
        return self.public_message


class StorageError(BrokerError):
    """A stored record could not be parsed back into its model."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    public_message = "Internal error"

    def to_public_message(self) -> str:
        return self.public_message


__all__ = [
    "BrokerError",
    "CryptoError",
    "NotFoundError",
    "RateLimitError",
    "StorageError",
    "UnauthorizedError",
    "UpstreamAuthError",
    "ValidationError",
]

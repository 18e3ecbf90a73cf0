"""
Domain models for pairing attempts and broker sessions.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Pairing(BaseModel):
    model_config = ConfigDict(frozen=True)

    pair_id: str = Field(..., description="Random id, also used as the OAuth state.")
    created_at: datetime = Field(default_factory=utcnow)


class PendingPairing(_Pairing):
    """Authorization started; waiting for the OAuth callback."""

    status: Literal["pending"] = "pending"

    def complete(self, session_token: str) -> "CompletedPairing":
        return CompletedPairing(
            pair_id=self.pair_id,
            created_at=self.created_at,
            session_token=session_token,
        )

    def fail(self, message: str) -> "FailedPairing":
        return FailedPairing(
            pair_id=self.pair_id,
            created_at=self.created_at,
            error=message,
        )


class CompletedPairing(_Pairing):
    """Authorization succeeded and a broker session exists."""

    status: Literal["completed"] = "completed"
    session_token: str


class FailedPairing(_Pairing):
    """Authorization was denied or the code exchange failed."""

    status: Literal["error"] = "error"
    error: str


PairingRecord = Annotated[
    Union[PendingPairing, CompletedPairing, FailedPairing],
    Field(discriminator="status"),
]

PAIRING_RECORD_ADAPTER: TypeAdapter[PairingRecord] = TypeAdapter(PairingRecord)


class TokenRecord(BaseModel):
    """Encrypted upstream credentials for one broker session."""

    session_token: str
    access_token_enc: str
    refresh_token_enc: str
    access_token_expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_used_at: Optional[datetime] = None


__all__ = [
    "CompletedPairing",
    "FailedPairing",
    "PAIRING_RECORD_ADAPTER",
    "PairingRecord",
    "PendingPairing",
    "TokenRecord",
    "utcnow",
]

"""Request and response bodies for the broker API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PairResponse(_CamelModel):
    """Returned when a pairing attempt starts."""

    pair_id: str = Field(..., alias="pairId")
    authorization_url: str = Field(..., alias="authorizationUrl")
    expires_in_seconds: int = Field(..., alias="expiresInSeconds")
    debug: Optional[Dict[str, Any]] = None


class PairStatusResponse(_CamelModel):
    """Polled by the client until the pairing reaches a terminal state."""

    status: Literal["pending", "completed", "error"]
    session_token: Optional[str] = Field(None, alias="sessionToken")
    error: Optional[str] = None


class AccessTokenResponse(_CamelModel):
    access_token: str = Field(..., alias="accessToken")
    expires_at: datetime = Field(..., alias="expiresAt")


class OkResponse(BaseModel):
    ok: bool = True


class LifecyclePingData(BaseModel):
    challenge: Optional[str] = None


class LifecycleEvent(_CamelModel):
    """Subset of a SmartThings webhook SmartApp lifecycle request."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    lifecycle: str = ""
    ping_data: Optional[LifecyclePingData] = Field(None, alias="pingData")


__all__ = [
    "AccessTokenResponse",
    "LifecycleEvent",
    "LifecyclePingData",
    "OkResponse",
    "PairResponse",
    "PairStatusResponse",
]

"""
FastAPI routes for the SmartThings auth broker.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any, Callable, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from broker.api import pages
from broker.core.errors import RateLimitError, UnauthorizedError, ValidationError
from broker.dependencies import (
    get_app_settings,
    get_pairing_service,
    get_rate_limiter,
    get_session_token_service,
)
from broker.models.records import CompletedPairing, FailedPairing
from broker.schemas import (
    AccessTokenResponse,
    LifecycleEvent,
    OkResponse,
    PairResponse,
    PairStatusResponse,
)
from broker.services import CallbackOutcome, RouteClass

router = APIRouter()
logger = logging.getLogger(__name__)

_BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def client_identity(request: Request, trust_forwarded_for: bool) -> str:
    """Identify the caller for rate limiting purposes."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header:
        return None
    match = _BEARER_PATTERN.match(header.strip())
    if not match:
        return None
    return match.group(1).strip() or None


async def _check_budget(
    request: Request, limiter: Any, settings: Any, route_class: Optional[RouteClass]
) -> None:
    identity = client_identity(request, settings.rate_limit.trust_forwarded_for)
    classes = [RouteClass.GLOBAL]
    if route_class is not None:
        classes.append(route_class)
    for current in classes:
        if not await limiter.allow(identity, current):
            logger.info("Rate limited %s on %s", identity, current.value)
            raise RateLimitError(retry_after=limiter.retry_after(current))


def rate_limited(route_class: Optional[RouteClass] = None) -> Callable[..., Any]:
    """Dependency enforcing the global budget and, optionally, a route budget."""

    async def _dependency(
        request: Request,
        limiter: Annotated[Any, Depends(get_rate_limiter)],
        settings: Annotated[Any, Depends(get_app_settings)],
    ) -> None:
        await _check_budget(request, limiter, settings, route_class)

    return _dependency


def require_bearer(request: Request) -> str:
    token = bearer_token(request)
    if not token:
        raise UnauthorizedError()
    return token


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


@router.post("/st/lifecycle", status_code=HTTPStatus.OK)
async def smartapp_lifecycle(
    request: Request,
    settings: Annotated[Any, Depends(get_app_settings)],
) -> dict:
    """Answer the SmartThings webhook SmartApp lifecycle handshake.

    Only PING and CONFIRMATION matter for registering the OAuth client; every
    other lifecycle event is acknowledged.
    """
    try:
        event = LifecycleEvent.model_validate(await request.json())
    except ValueError as exc:
        raise ValidationError("Invalid JSON") from exc

    lifecycle = event.lifecycle.upper()
    if lifecycle == "PING":
        challenge = event.ping_data.challenge if event.ping_data else None
        if not challenge:
            raise ValidationError("Missing pingData.challenge")
        return {"pingData": {"challenge": challenge}}

    if lifecycle == "CONFIRMATION":
        base = (settings.smartthings.public_base_url or str(request.base_url)).rstrip("/")
        return {"targetUrl": f"{base}/st/lifecycle"}

    return {"ok": True}


@router.post(
    "/v1/pair",
    response_model=PairResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(rate_limited(RouteClass.PAIR_START))],
)
async def start_pairing(
    service: Annotated[Any, Depends(get_pairing_service)],
    scopes: Optional[str] = Query(
        default=None, description="Override the configured space-delimited scopes."
    ),
    no_scope: bool = Query(
        default=False, description="Omit the scope parameter from the authorize URL."
    ),
) -> PairResponse:
    """Create a pairing session and return the SmartThings authorize URL."""
    started = await service.start_pairing(
        scopes=scopes.strip() if scopes else None, include_scope=not no_scope
    )
    return PairResponse(
        pair_id=started.pair_id,
        authorization_url=started.authorization_url,
        expires_in_seconds=started.expires_in_seconds,
        debug=started.debug,
    )


@router.get("/v1/callback")
async def oauth_callback(
    request: Request,
    service: Annotated[Any, Depends(get_pairing_service)],
    limiter: Annotated[Any, Depends(get_rate_limiter)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
) -> Response:
    """OAuth redirect target; always answers with a human-readable page."""
    try:
        await _check_budget(request, limiter, settings, None)
    except RateLimitError:
        return pages.failure_page(
            "Too many requests. Wait a minute and try again.",
            status_code=HTTPStatus.TOO_MANY_REQUESTS,
        )

    try:
        result = await service.handle_callback(
            code=code,
            state=state,
            error=error,
            error_description=error_description,
        )
    except ValidationError as exc:
        return pages.failure_page(exc.to_public_message(), status_code=exc.status_code)

    if result.outcome is CallbackOutcome.CONNECTED:
        return pages.connected_page()
    if result.outcome is CallbackOutcome.ALREADY_CONNECTED:
        return pages.already_connected_page()
    if result.outcome is CallbackOutcome.UNKNOWN_SESSION:
        return pages.unknown_session_page()
    return pages.failure_page(result.message or "Authorization failed.")


@router.get(
    "/v1/pair/{pair_id}",
    response_model=PairStatusResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(rate_limited(RouteClass.PAIR_POLL))],
)
async def poll_pairing(
    pair_id: str,
    service: Annotated[Any, Depends(get_pairing_service)],
) -> PairStatusResponse:
    """Report pairing progress; the session token appears once completed."""
    record = await service.poll_status(pair_id)
    return PairStatusResponse(
        status=record.status,
        session_token=record.session_token if isinstance(record, CompletedPairing) else None,
        error=record.error if isinstance(record, FailedPairing) else None,
    )


@router.post(
    "/v1/access-token",
    response_model=AccessTokenResponse,
    dependencies=[Depends(rate_limited(RouteClass.ACCESS_TOKEN))],
)
async def issue_access_token(
    session_token: Annotated[str, Depends(require_bearer)],
    service: Annotated[Any, Depends(get_session_token_service)],
) -> AccessTokenResponse:
    """Return a valid SmartThings access token, refreshing it when needed."""
    issued = await service.get_access_token(session_token)
    return AccessTokenResponse(
        access_token=issued.access_token,
        expires_at=issued.expires_at,
    )


@router.post(
    "/v1/logout",
    response_model=OkResponse,
    dependencies=[Depends(rate_limited())],
)
async def logout(
    session_token: Annotated[str, Depends(require_bearer)],
    service: Annotated[Any, Depends(get_session_token_service)],
) -> OkResponse:
    """Delete the stored tokens for the session."""
    await service.logout(session_token)
    return OkResponse()


__all__ = ["bearer_token", "client_identity", "router"]

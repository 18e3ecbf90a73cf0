"""
SmartThings OAuth utilities.

These helpers build the consent URL and perform the authorization-code and
refresh-token grants against the SmartThings token endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from broker.core.config import SmartThingsSettings
from broker.core.errors import UpstreamAuthError

logger = logging.getLogger(__name__)

_LOGGED_BODY_LIMIT = 500


def encode_scopes(scopes: str) -> str:
    """Percent-encode a space-delimited scope list for the authorize URL.

    SmartThings scopes look like ``r:devices:*``. Some OAuth servers reject a
    percent-encoded ``:`` or ``*``, so both stay literal while every other
    reserved character is encoded and scopes are joined with ``%20``.
    """
    return "%20".join(quote(scope, safe=":*") for scope in scopes.split())


@dataclass(frozen=True)
class TokenGrant:
    """Tokens returned by the token endpoint."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int


class SmartThingsOAuthClient:
    """Build SmartThings authorization URLs and call the token endpoint."""

    def __init__(
        self,
        settings: SmartThingsSettings,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    @property
    def redirect_uri(self) -> str:
        return self._settings.resolved_redirect_uri

    @property
    def client_id(self) -> str:
        return self._settings.client_id

    @property
    def default_scopes(self) -> str:
        return self._settings.scopes

    def build_authorization_url(
        self,
        state: str,
        *,
        scopes: Optional[str] = None,
        include_scope: bool = True,
    ) -> str:
        """Construct the SmartThings consent URL.

        The query is assembled by hand: form encoding would turn spaces into
        ``+``, which strict servers do not accept inside ``scope``.
        """
        requested = (scopes if scopes is not None else self._settings.scopes).strip()
        query_parts = [
            "response_type=code",
            f"client_id={quote(self._settings.client_id, safe='')}",
            f"redirect_uri={quote(self.redirect_uri, safe='')}",
        ]
        if include_scope:
            query_parts.append(f"scope={encode_scopes(requested)}")
        query_parts.append(f"state={quote(state, safe='')}")

        base = self._settings.authorization_url.split("?", 1)[0]
        return f"{base}?{'&'.join(query_parts)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenGrant:
        """Exchange an authorization code for an access/refresh token pair."""
        payload = await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self._settings.client_id,
                "redirect_uri": redirect_uri,
            },
            operation="exchange",
        )
        grant = self._parse_grant(payload, operation="exchange")
        if not grant.refresh_token:
            raise UpstreamAuthError(
                "Token exchange response did not include a refresh token."
            )
        return grant

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token; the refresh token may or may not rotate."""
        payload = await self._request_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self._settings.client_id,
            },
            operation="refresh",
        )
        return self._parse_grant(payload, operation="refresh")

    async def _request_token(
        self, form: Dict[str, str], *, operation: str
    ) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._settings.token_url,
                    data=form,
                    auth=(self._settings.client_id, self._settings.client_secret),
                    headers={"accept": "application/json"},
                )
        except httpx.TimeoutException as exc:
            logger.warning("SmartThings token %s timed out", operation)
            raise UpstreamAuthError(f"Token {operation} timed out.") from exc
        except httpx.HTTPError as exc:
            logger.warning("SmartThings token %s failed: %s", operation, type(exc).__name__)
            raise UpstreamAuthError(f"Token {operation} request failed.") from exc

        if not response.is_success:
            logger.warning(
                "SmartThings token %s rejected (%s): %s",
                operation,
                response.status_code,
                response.text[:_LOGGED_BODY_LIMIT],
            )
            raise UpstreamAuthError(
                f"Token {operation} failed ({response.status_code}).",
                upstream_status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamAuthError(
                f"Token {operation} returned a non-JSON body.",
                upstream_status=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamAuthError(f"Token {operation} returned an unexpected payload.")
        return payload

    @staticmethod
    def _parse_grant(payload: Dict[str, Any], *, operation: str) -> TokenGrant:
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")
        if not access_token or expires_in is None:
            raise UpstreamAuthError(f"Incomplete token {operation} payload returned.")
        try:
            expires_in_seconds = int(expires_in)
        except (TypeError, ValueError) as exc:
            raise UpstreamAuthError(
                f"Token {operation} payload has an invalid expires_in."
            ) from exc
        return TokenGrant(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or None,
            expires_in=expires_in_seconds,
        )


__all__ = ["SmartThingsOAuthClient", "TokenGrant", "encode_scopes"]

"""
Issue SmartThings access tokens to broker sessions, refreshing when necessary.

Every write to a session's token record happens under that session's lock and
starts from a fresh read, so a logout or a rotated refresh token is never
overwritten by a request that read the record earlier.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from broker.clients.smartthings_auth import SmartThingsOAuthClient, TokenGrant
from broker.core.config import PairingSettings
from broker.core.errors import UnauthorizedError, UpstreamAuthError
from broker.core.logging import redact
from broker.models.records import TokenRecord, utcnow
from broker.services.session_store import SessionStore
from broker.services.token_cipher import TokenCipherService
from broker.utils.keyed_lock import KeyedLock
from broker.utils.singleflight import SingleFlight

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedAccessToken:
    access_token: str
    expires_at: datetime


class SessionTokenService:
    """Manages access to the encrypted SmartThings tokens of a session."""

    def __init__(
        self,
        *,
        store: SessionStore,
        oauth_client: SmartThingsOAuthClient,
        token_cipher: TokenCipherService,
        settings: PairingSettings,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._cipher = token_cipher
        self._settings = settings
        self._now = now
        self._refreshes: SingleFlight[IssuedAccessToken] = SingleFlight()
        self._writes = KeyedLock()

    @property
    def _safety_margin(self) -> timedelta:
        return timedelta(seconds=self._settings.access_token_safety_margin_seconds)

    async def get_access_token(self, session_token: str) -> IssuedAccessToken:
        """Return an access token with at least the safety margin of validity left."""
        record = await self._load(session_token)

        now = self._now()
        if record.access_token_expires_at - now > self._safety_margin:
            access_token = self._cipher.decrypt(record.access_token_enc)
            await self._touch(session_token, now)
            return IssuedAccessToken(access_token, record.access_token_expires_at)

        return await self._refreshes.run(
            session_token, lambda: self._refresh(session_token)
        )

    async def logout(self, session_token: str) -> None:
        """Forget the session; unknown tokens are ignored."""
        async with self._writes.hold(session_token):
            await self._store.delete_token(session_token)
        logger.info("Session %s logged out", redact(session_token))

    async def _load(self, session_token: str) -> TokenRecord:
        record = await self._store.get_token(session_token)
        if record is None:
            raise UnauthorizedError("Invalid session")
        return record

    async def _touch(self, session_token: str, now: datetime) -> None:
        # Slides the session TTL forward.
        async with self._writes.hold(session_token):
            current = await self._load(session_token)
            await self._store.put_token(
                current.model_copy(update={"last_used_at": now}),
                ttl_seconds=self._settings.session_ttl_seconds,
            )

    async def _refresh(self, session_token: str) -> IssuedAccessToken:
        # Re-read: the session may have been refreshed or logged out meanwhile.
        record = await self._load(session_token)

        now = self._now()
        if record.access_token_expires_at - now > self._safety_margin:
            return IssuedAccessToken(
                self._cipher.decrypt(record.access_token_enc),
                record.access_token_expires_at,
            )

        refresh_token = self._cipher.decrypt(record.refresh_token_enc)
        grant = await self._oauth.refresh(refresh_token)

        refreshed_at = self._now()
        expires_at = refreshed_at + timedelta(seconds=grant.expires_in)
        if expires_at - refreshed_at <= self._safety_margin:
            logger.warning(
                "Refresh for session %s returned a token valid for only %ss",
                redact(session_token),
                grant.expires_in,
            )
            raise UpstreamAuthError("Upstream issued an access token that expires too soon.")

        await self._store_grant(session_token, grant, expires_at, refreshed_at)
        logger.info(
            "Refreshed access token for session %s (rotated refresh token: %s)",
            redact(session_token),
            bool(grant.refresh_token),
        )
        return IssuedAccessToken(grant.access_token, expires_at)

    async def _store_grant(
        self,
        session_token: str,
        grant: TokenGrant,
        expires_at: datetime,
        refreshed_at: datetime,
    ) -> None:
        async with self._writes.hold(session_token):
            current = await self._store.get_token(session_token)
            if current is None:
                logger.info(
                    "Session %s logged out during refresh; discarding new tokens",
                    redact(session_token),
                )
                raise UnauthorizedError("Invalid session")
            updated = current.model_copy(
                update={
                    "access_token_enc": self._cipher.encrypt(grant.access_token),
                    "refresh_token_enc": (
                        self._cipher.encrypt(grant.refresh_token)
                        if grant.refresh_token
                        else current.refresh_token_enc
                    ),
                    "access_token_expires_at": expires_at,
                    "updated_at": refreshed_at,
                    "last_used_at": refreshed_at,
                }
            )
            await self._store.put_token(
                updated, ttl_seconds=self._settings.session_ttl_seconds
            )


__all__ = ["IssuedAccessToken", "SessionTokenService"]

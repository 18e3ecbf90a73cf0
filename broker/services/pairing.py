"""
Pairing flow: start an authorization attempt, complete it from the OAuth
callback, and let the client poll for the resulting session token.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from broker.clients.smartthings_auth import SmartThingsOAuthClient
from broker.core.config import PairingSettings
from broker.core.errors import NotFoundError, UpstreamAuthError, ValidationError
from broker.core.logging import redact
from broker.models.records import PairingRecord, PendingPairing, TokenRecord, utcnow
from broker.services.session_store import SessionStore
from broker.services.token_cipher import TokenCipherService
from broker.utils.singleflight import SingleFlight

logger = logging.getLogger(__name__)


def generate_pair_id() -> str:
    # Hex only; some OAuth servers are strict about characters in ``state``.
    return secrets.token_hex(18)


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


class CallbackOutcome(str, Enum):
    CONNECTED = "connected"
    ALREADY_CONNECTED = "already_connected"
    UNKNOWN_SESSION = "unknown_session"
    FAILED = "failed"


@dataclass(frozen=True)
class CallbackResult:
    outcome: CallbackOutcome
    message: Optional[str] = None


@dataclass(frozen=True)
class PairingStart:
    pair_id: str
    authorization_url: str
    expires_in_seconds: int
    debug: Optional[dict[str, Any]] = None


class PairingService:
    """Drives each pairing record from ``pending`` to a terminal state once."""

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
        self._callbacks: SingleFlight[CallbackResult] = SingleFlight()

    async def start_pairing(
        self, *, scopes: Optional[str] = None, include_scope: bool = True
    ) -> PairingStart:
        """Create a pending record and the SmartThings consent URL for it."""
        pair_id = generate_pair_id()
        authorization_url = self._oauth.build_authorization_url(
            pair_id, scopes=scopes, include_scope=include_scope
        )
        record = PendingPairing(pair_id=pair_id, created_at=self._now())
        await self._store.put_pairing(record, ttl_seconds=self._settings.pair_ttl_seconds)
        logger.info("Started pairing %s", redact(pair_id))

        debug = None
        if self._settings.debug:
            debug = {
                "authorizationUrl": authorization_url.split("?", 1)[0],
                "redirectUri": self._oauth.redirect_uri,
                "scopes": scopes if scopes is not None else self._oauth.default_scopes,
                "clientId": self._oauth.client_id,
                "noScope": not include_scope,
            }
        return PairingStart(
            pair_id=pair_id,
            authorization_url=authorization_url,
            expires_in_seconds=self._settings.pair_ttl_seconds,
            debug=debug,
        )

    async def poll_status(self, pair_id: str) -> PairingRecord:
        """Return the current record; unknown or expired ids are not found."""
        record = await self._store.get_pairing(pair_id)
        if record is None:
            raise NotFoundError()
        return record

    async def handle_callback(
        self,
        *,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> CallbackResult:
        """Resolve a pairing from the OAuth redirect parameters."""
        if error:
            return await self._record_oauth_error(state, error, error_description)
        if not code or not state:
            raise ValidationError("Missing code or state.")
        return await self._callbacks.run(state, lambda: self._complete(code, state))

    async def _record_oauth_error(
        self, state: Optional[str], error: str, description: Optional[str]
    ) -> CallbackResult:
        message = f"SmartThings returned an OAuth error: {error}"
        if description:
            message = f"{message} - {description}"

        if state:
            record = await self._store.get_pairing(state)
            if isinstance(record, PendingPairing):
                await self._store.put_pairing(
                    record.fail(message), ttl_seconds=self._settings.pair_ttl_seconds
                )
                logger.info("Pairing %s denied upstream: %s", redact(state), error)
        return CallbackResult(CallbackOutcome.FAILED, message)

    async def _complete(self, code: str, pair_id: str) -> CallbackResult:
        record = await self._store.get_pairing(pair_id)
        if record is None:
            logger.info("Callback for unknown pairing %s", redact(pair_id))
            return CallbackResult(CallbackOutcome.UNKNOWN_SESSION)
        if not isinstance(record, PendingPairing):
            return CallbackResult(CallbackOutcome.ALREADY_CONNECTED)

        try:
            grant = await self._oauth.exchange_code(code, self._oauth.redirect_uri)
        except UpstreamAuthError as exc:
            # Another instance may have resolved the record while we waited.
            if not await self._still_pending(pair_id):
                return CallbackResult(CallbackOutcome.ALREADY_CONNECTED)
            message = exc.to_public_message()
            await self._store.put_pairing(
                record.fail(message), ttl_seconds=self._settings.pair_ttl_seconds
            )
            logger.warning(
                "Code exchange failed for pairing %s: %s", redact(pair_id), message
            )
            return CallbackResult(CallbackOutcome.FAILED, message)

        if not await self._still_pending(pair_id):
            return CallbackResult(CallbackOutcome.ALREADY_CONNECTED)

        now = self._now()
        session_token = generate_session_token()
        token_record = TokenRecord(
            session_token=session_token,
            access_token_enc=self._cipher.encrypt(grant.access_token),
            refresh_token_enc=self._cipher.encrypt(grant.refresh_token or ""),
            access_token_expires_at=now + timedelta(seconds=grant.expires_in),
            created_at=now,
            updated_at=now,
        )
        await self._store.put_token(
            token_record, ttl_seconds=self._settings.session_ttl_seconds
        )
        await self._store.put_pairing(
            record.complete(session_token), ttl_seconds=self._settings.pair_ttl_seconds
        )
        logger.info(
            "Pairing %s completed with session %s", redact(pair_id), redact(session_token)
        )
        return CallbackResult(CallbackOutcome.CONNECTED)

    async def _still_pending(self, pair_id: str) -> bool:
        current = await self._store.get_pairing(pair_id)
        return isinstance(current, PendingPairing)


__all__ = [
    "CallbackOutcome",
    "CallbackResult",
    "PairingService",
    "PairingStart",
    "generate_pair_id",
    "generate_session_token",
]

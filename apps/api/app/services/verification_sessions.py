"""Exchanges a solved challenge for a reusable preview session token."""

from __future__ import annotations

from collections.abc import Callable
import logging
import math
import time

from app.adapters.verification import (
    SESSION_TOKEN_TTL_SECONDS,
    BotVerifier,
    issue_session_token,
    session_token_expiry,
)
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.schemas.verification import VerificationSession

logger = logging.getLogger(__name__)

_ATTEMPT_WINDOW_MS = 60_000
_USED_TOKEN_RETENTION_MS = 3_600_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _unconfigured() -> ApiError:
    return ApiError(status_code=500, code="verification_unconfigured", message="Human verification is not configured")


class VerificationSessionService:
    """Challenge tokens are single use and attempts are capped per client per minute."""

    def __init__(
        self,
        *,
        store: InMemoryStore,
        verifier: BotVerifier,
        session_secret: str | None,
        challenge_configured: bool,
        attempts_per_minute: int = 3,
        ttl_seconds: int = SESSION_TOKEN_TTL_SECONDS,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._session_secret = session_secret
        self._challenge_configured = challenge_configured
        self._attempts_per_minute = attempts_per_minute
        self._ttl_seconds = ttl_seconds
        self._now_ms = now_ms

    def exchange_challenge(self, *, challenge_token: str | None, client_ip: str, client_key: str) -> VerificationSession:
        if not challenge_token:
            raise ApiError(status_code=400, code="validation_error", message="Token is required")

        safe_client = safe_log_identifier(client_key, prefix="idk")
        now = self._now_ms()
        attempts, reset_ms = self._store.count_challenge_attempt(
            client_key=client_key,
            now_ms=now,
            window_ms=_ATTEMPT_WINDOW_MS,
        )
        if attempts > self._attempts_per_minute:
            retry_after = max(1, math.ceil((reset_ms - now) / 1000))
            logger.warning("verification.rate_limited identity=%s retry_after=%s", safe_client, retry_after)
            raise ApiError(
                status_code=429,
                code="verification_rate_limited",
                message=f"Too many attempts. Please wait {retry_after} seconds.",
                details={"retry_after": retry_after},
            )

        if self._store.challenge_token_used(challenge_token):
            logger.warning("verification.token_reused identity=%s", safe_client)
            raise ApiError(status_code=403, code="turnstile_reused", message="Verification token already used")

        if not self._challenge_configured or not self._session_secret:
            raise _unconfigured()

        result = self._verifier.verify(session_token=None, challenge_token=challenge_token, client_ip=client_ip)
        if not result.verified:
            raise ApiError(status_code=403, code="turnstile_invalid", message="Human verification failed")

        self._store.mark_challenge_token_used(challenge_token, now_ms=now, retention_ms=_USED_TOKEN_RETENTION_MS)
        token, expires_ms = issue_session_token(
            self._session_secret,
            client_ip,
            ttl_seconds=self._ttl_seconds,
            now_ms=self._now_ms,
        )
        logger.info("verification.session_issued identity=%s expires_ms=%s", safe_client, expires_ms)
        return VerificationSession(session_token=token, session_expiry=expires_ms)

    def verify_session(self, *, session_token: str | None, client_ip: str) -> VerificationSession:
        if not self._session_secret:
            raise _unconfigured()

        expires_ms = None
        if session_token:
            expires_ms = session_token_expiry(
                self._session_secret,
                session_token,
                client_ip=client_ip,
                now_ms=self._now_ms,
            )
        if expires_ms is None:
            raise ApiError(status_code=403, code="session_invalid", message="Invalid or expired session")
        return VerificationSession(session_expiry=expires_ms)


__all__ = ["VerificationSessionService"]

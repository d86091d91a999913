"""Anonymous preview gating: signed session tokens and Turnstile challenge tokens."""

from __future__ import annotations

from abc import ABC, abstractmethod
import base64
import binascii
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import hashlib
import hmac
import logging
import time

import requests

from app.core.logging_safety import safe_log_identifier

logger = logging.getLogger(__name__)

SESSION_TOKEN_TTL_SECONDS = 20 * 60


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    MISSING = "missing"
    INVALID = "invalid"


@dataclass(slots=True, frozen=True)
class VerificationResult:
    status: VerificationStatus
    method: str | None = None

    @property
    def verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED


class BotVerifier(ABC):
    @abstractmethod
    def verify(
        self,
        *,
        session_token: str | None,
        challenge_token: str | None,
        client_ip: str | None,
    ) -> VerificationResult:
        """Classify the request as verified, missing a token, or carrying an invalid token."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _session_signature(secret: str, ip: str, expires_ms: int) -> str:
    return hmac.new(secret.encode("utf-8"), f"{ip}:{expires_ms}".encode("utf-8"), hashlib.sha256).hexdigest()


def issue_session_token(
    secret: str,
    ip: str,
    *,
    ttl_seconds: int = SESSION_TOKEN_TTL_SECONDS,
    now_ms: Callable[[], int] = _now_ms,
) -> tuple[str, int]:
    """Return the token and its expiry in epoch milliseconds."""
    expires_ms = now_ms() + ttl_seconds * 1000
    raw = f"{ip}:{expires_ms}:{_session_signature(secret, ip, expires_ms)}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("="), expires_ms


def create_session_token(
    secret: str,
    ip: str,
    *,
    ttl_seconds: int = SESSION_TOKEN_TTL_SECONDS,
    now_ms: Callable[[], int] = _now_ms,
) -> str:
    return issue_session_token(secret, ip, ttl_seconds=ttl_seconds, now_ms=now_ms)[0]


def verify_session_token(
    secret: str,
    token: str,
    *,
    client_ip: str | None = None,
    now_ms: Callable[[], int] = _now_ms,
) -> bool:
    return session_token_expiry(secret, token, client_ip=client_ip, now_ms=now_ms) is not None


def session_token_expiry(
    secret: str,
    token: str,
    *,
    client_ip: str | None = None,
    now_ms: Callable[[], int] = _now_ms,
) -> int | None:
    """Expiry of a valid token in epoch milliseconds, ``None`` when malformed, forged or expired."""
    try:
        padded = token + "=" * (-len(token) % 4)
        decoded = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (ValueError, UnicodeError, binascii.Error):
        return None

    # IPv6 addresses contain colons, so split from the right.
    parts = decoded.rsplit(":", 2)
    if len(parts) != 3:
        return None
    ip, expires_raw, signature = parts
    try:
        expires_ms = int(expires_raw)
    except ValueError:
        return None

    expected = _session_signature(secret, ip, expires_ms)
    if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
        return None
    if expires_ms < now_ms():
        return None
    if client_ip and client_ip != ip:
        # Mobile clients hop networks mid-session; logged only.
        logger.info(
            "verification.session_ip_mismatch token_ip=%s client_ip=%s",
            safe_log_identifier(ip, prefix="ip"),
            safe_log_identifier(client_ip, prefix="ip"),
        )
    return expires_ms


class SessionOrChallengeVerifier(BotVerifier):
    """A valid session token short-circuits the challenge round-trip."""

    def __init__(
        self,
        *,
        session_secret: str | None,
        challenge_secret: str | None,
        challenge_verify_url: str,
        timeout_seconds: float = 3.0,
        session: requests.Session | None = None,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._session_secret = session_secret
        self._challenge_secret = challenge_secret
        self._challenge_verify_url = challenge_verify_url
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._now_ms = now_ms

    def verify(
        self,
        *,
        session_token: str | None,
        challenge_token: str | None,
        client_ip: str | None,
    ) -> VerificationResult:
        if not session_token and not challenge_token:
            return VerificationResult(status=VerificationStatus.MISSING)

        if session_token and self._session_secret:
            if verify_session_token(self._session_secret, session_token, client_ip=client_ip, now_ms=self._now_ms):
                return VerificationResult(status=VerificationStatus.VERIFIED, method="session")
            logger.info("verification.session_rejected")

        if challenge_token and self._verify_challenge(challenge_token, client_ip):
            return VerificationResult(status=VerificationStatus.VERIFIED, method="challenge")

        return VerificationResult(status=VerificationStatus.INVALID)

    def _verify_challenge(self, token: str, client_ip: str | None) -> bool:
        if not self._challenge_secret:
            logger.warning("verification.challenge_unconfigured")
            return False

        form = {"secret": self._challenge_secret, "response": token}
        if client_ip:
            form["remoteip"] = client_ip
        try:
            response = self._session.post(self._challenge_verify_url, data=form, timeout=self._timeout_seconds)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("verification.challenge_error reason=%s", type(exc).__name__)
            return False

        success = bool(body.get("success"))
        if not success:
            logger.info("verification.challenge_rejected error_codes=%s", body.get("error-codes"))
        return success


__all__ = [
    "BotVerifier",
    "SessionOrChallengeVerifier",
    "VerificationResult",
    "VerificationStatus",
    "create_session_token",
    "issue_session_token",
    "session_token_expiry",
    "verify_session_token",
]

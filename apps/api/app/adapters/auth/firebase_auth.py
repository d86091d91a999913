"""Firebase ID-token verifier."""

from __future__ import annotations

import firebase_admin
from firebase_admin import auth as firebase_auth

from app.adapters.auth.base import AuthVerificationError, TokenVerifier, parse_tier_claim
from app.schemas.auth import AuthPrincipal


class FirebaseTokenVerifier(TokenVerifier):
    """Verifies Firebase ID tokens; a ``tier`` or ``plan`` custom claim is carried through."""

    def __init__(self, project_id: str | None, audience: str | None) -> None:
        self._project_id = project_id
        self._audience = audience

    def verify_token(self, token: str) -> AuthPrincipal:
        if not firebase_admin._apps:
            options = {"projectId": self._project_id} if self._project_id else None
            firebase_admin.initialize_app(options=options)

        try:
            decoded = firebase_auth.verify_id_token(token, check_revoked=True)
        except (
            ValueError,
            firebase_auth.InvalidIdTokenError,
            firebase_auth.RevokedIdTokenError,
            firebase_auth.UserDisabledError,
        ) as exc:
            raise AuthVerificationError("Invalid bearer token") from exc
        except firebase_auth.CertificateFetchError as exc:
            raise AuthVerificationError("Unable to verify bearer token") from exc

        if self._audience and decoded.get("aud") != self._audience:
            raise AuthVerificationError("Invalid bearer token audience")

        user_id = str(decoded.get("uid") or decoded.get("sub") or "").strip()
        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")

        return AuthPrincipal(user_id=user_id, tier=parse_tier_claim(decoded.get("tier") or decoded.get("plan")))


__all__ = ["FirebaseTokenVerifier"]

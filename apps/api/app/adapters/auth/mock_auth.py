"""Deterministic bearer tokens for local runs and tests."""

from app.adapters.auth.base import AuthVerificationError, TokenVerifier, parse_tier_claim
from app.schemas.auth import AuthPrincipal


class MockTokenVerifier(TokenVerifier):
    """Accepts ``test:<user_id>`` or ``test:<user_id>:<tier>``."""

    def verify_token(self, token: str) -> AuthPrincipal:
        parts = token.split(":")
        if len(parts) not in (2, 3) or parts[0] != "test":
            raise AuthVerificationError("Invalid bearer token")

        user_id = parts[1].strip()
        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")

        tier = None
        if len(parts) == 3:
            tier = parse_tier_claim(parts[2])
            if tier is None:
                raise AuthVerificationError("Bearer token carries an unknown tier")
        return AuthPrincipal(user_id=user_id, tier=tier)


__all__ = ["MockTokenVerifier"]

"""Bearer-token verification interface."""

from abc import ABC, abstractmethod

from app.schemas.auth import AuthPrincipal
from app.schemas.usage import UserTier


class AuthVerificationError(Exception):
    """Raised when a bearer token cannot be verified."""


class TokenVerifier(ABC):
    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Verify the token and return the signed-in principal."""


def parse_tier_claim(value: object) -> UserTier | None:
    """Map a ``tier``/``plan`` claim onto a paid tier; anything unknown defers to the tier policy."""
    if not isinstance(value, str):
        return None
    try:
        tier = UserTier(value.strip().lower())
    except ValueError:
        return None
    return None if tier is UserTier.ANONYMOUS else tier


__all__ = ["AuthVerificationError", "TokenVerifier", "parse_tier_claim"]

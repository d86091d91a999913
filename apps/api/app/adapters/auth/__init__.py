"""Bearer-token verifier adapters."""

from .base import AuthVerificationError, TokenVerifier, parse_tier_claim
from .firebase_auth import FirebaseTokenVerifier
from .mock_auth import MockTokenVerifier

__all__ = [
    "AuthVerificationError",
    "FirebaseTokenVerifier",
    "MockTokenVerifier",
    "TokenVerifier",
    "parse_tier_claim",
]

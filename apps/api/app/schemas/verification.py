"""Human-verification session schemas."""

from typing import Literal

from pydantic import BaseModel


class VerificationRequest(BaseModel):
    token: str | None = None
    action: Literal["verify", "verify_session"] = "verify"


class VerificationSession(BaseModel):
    success: Literal[True] = True
    valid: bool = True
    session_token: str | None = None
    session_expiry: int

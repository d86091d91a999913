"""Authentication schemas."""

from pydantic import BaseModel, Field

from app.schemas.usage import UserTier


class AuthPrincipal(BaseModel):
    """Signed-in caller as resolved from a bearer token."""

    user_id: str = Field(min_length=1)
    tier: UserTier | None = None

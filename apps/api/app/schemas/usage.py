"""Usage, tier and quota schemas."""

from enum import Enum

from pydantic import BaseModel


class UserTier(str, Enum):
    ANONYMOUS = "anonymous"
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    PREMIUM = "premium"


class UsageCategory(str, Enum):
    ANON_PREVIEW = "anon_preview"
    ANON_YOUTUBE = "anon_youtube"
    ANON_USAGE = "anon_usage"
    YOUTUBE = "youtube"
    STANDARD = "standard"
    HIGH_ACCURACY = "high_accuracy"


class ModelCategory(str, Enum):
    STANDARD = "standard"
    HIGH_ACCURACY = "high_accuracy"


class QuotaDecision(BaseModel):
    """Outcome of one quota gate; ``remaining`` is ``None`` for unlimited budgets."""

    allowed: bool
    reason: str
    remaining: float | None = None
    usage: float = 0


class ClipPolicy(BaseModel):
    limit_seconds: int
    should_clip: bool

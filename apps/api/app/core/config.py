"""Application configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.schemas.usage import UserTier


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    auth_provider: Literal["mock", "firebase"] = "firebase"
    firebase_project_id: str | None = None
    firebase_audience: str | None = None

    anonymous_identity_salt: str = "scribegate-anon"
    session_token_secret: str | None = None
    challenge_secret_key: str | None = None
    challenge_verify_url: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    challenge_attempts_per_minute: int = 3

    standard_api_key: str | None = None
    standard_webhook_secret: str | None = None
    standard_api_base: str = "https://api.deepgram.com/v1"
    standard_model: str = "nova-2"
    premium_api_token: str | None = None
    premium_webhook_secret: str | None = None
    premium_api_base: str = "https://api.replicate.com/v1"
    premium_model_version: str = (
        "openai/whisper:8099696689d249cf8b122d833c36ac3f75505c666a395ca40ef26f68e7d3d16e"
    )
    supplier_async: str = ""
    callback_base_url: str = "http://localhost:8000"
    local_fallback_enabled: bool = False
    storage_public_domain: str | None = None

    anonymous_daily_count_limit: int = 5
    anonymous_monthly_minutes_limit: float = 30
    youtube_monthly_count_limit: int = 3
    anonymous_preview_daily_limit: int = 10
    preview_seconds: int = 300
    clip_tolerance_seconds: float = 1.0
    default_estimate_seconds: int = 600

    upload_limit_anonymous_seconds: int = 900
    upload_limit_free_seconds: int = 1800
    upload_limit_basic_seconds: int = 3600
    upload_limit_pro_seconds: int = 10800
    upload_limit_premium_seconds: int | None = None

    monthly_minutes_free: float | None = 30
    monthly_minutes_basic: float | None = 500
    monthly_minutes_pro: float | None = 2000
    monthly_minutes_premium: float | None = None
    monthly_high_accuracy_minutes_pro: float | None = 200
    monthly_high_accuracy_minutes_premium: float | None = None
    user_tiers: dict[str, UserTier] = {}

    admission_deadline_seconds: float = 10.0
    dispatch_timeout_seconds: float = 8.0
    probe_timeout_seconds: float = 3.0
    clip_timeout_seconds: float = 5.0
    disconnect_poll_seconds: float = 0.05

    model_config = SettingsConfigDict(env_prefix="SCRIBEGATE_", extra="ignore")


@dataclass(frozen=True, slots=True)
class AdmissionPolicy:
    """Limits and toggles consumed by the admission core, built once per request."""

    anonymous_daily_count_limit: int = 5
    anonymous_monthly_minutes_limit: float = 30
    youtube_monthly_count_limit: int = 3
    anonymous_preview_daily_limit: int = 10
    preview_seconds: int = 300
    clip_tolerance_seconds: float = 1.0
    default_estimate_seconds: int = 600
    upload_limits: dict[UserTier, int | None] = field(
        default_factory=lambda: {
            UserTier.ANONYMOUS: 900,
            UserTier.FREE: 1800,
            UserTier.BASIC: 3600,
            UserTier.PRO: 10800,
            UserTier.PREMIUM: None,
        }
    )
    local_fallback_enabled: bool = False
    admission_deadline_seconds: float = 10.0
    dispatch_timeout_seconds: float = 8.0
    probe_timeout_seconds: float = 3.0
    clip_timeout_seconds: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> AdmissionPolicy:
        return cls(
            anonymous_daily_count_limit=settings.anonymous_daily_count_limit,
            anonymous_monthly_minutes_limit=settings.anonymous_monthly_minutes_limit,
            youtube_monthly_count_limit=settings.youtube_monthly_count_limit,
            anonymous_preview_daily_limit=settings.anonymous_preview_daily_limit,
            preview_seconds=settings.preview_seconds,
            clip_tolerance_seconds=settings.clip_tolerance_seconds,
            default_estimate_seconds=settings.default_estimate_seconds,
            upload_limits={
                UserTier.ANONYMOUS: settings.upload_limit_anonymous_seconds,
                UserTier.FREE: settings.upload_limit_free_seconds,
                UserTier.BASIC: settings.upload_limit_basic_seconds,
                UserTier.PRO: settings.upload_limit_pro_seconds,
                UserTier.PREMIUM: settings.upload_limit_premium_seconds,
            },
            local_fallback_enabled=settings.local_fallback_enabled,
            admission_deadline_seconds=settings.admission_deadline_seconds,
            dispatch_timeout_seconds=settings.dispatch_timeout_seconds,
            probe_timeout_seconds=settings.probe_timeout_seconds,
            clip_timeout_seconds=settings.clip_timeout_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

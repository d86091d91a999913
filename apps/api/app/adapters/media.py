"""Media collaborators: duration probe, audio clipper, YouTube preparation, storage URLs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import re

_DOUBLE_PROTOCOL = re.compile(r"^(https?://)+(https?://)", re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class PreparedMedia:
    url: str
    duration_seconds: float | None = None
    title: str | None = None


class DurationProbe(ABC):
    @abstractmethod
    def probe_seconds(self, url: str, *, timeout: float) -> float | None:
        """Return the media duration in seconds, or ``None`` when it cannot be read."""


class AudioClipper(ABC):
    @abstractmethod
    def clip(self, *, job_id: str, source_url: str, seconds: int, timeout: float) -> str | None:
        """Produce a clipped copy and return its URL, or ``None`` when clipping is unavailable."""


class MediaPreparer(ABC):
    @abstractmethod
    def prepare(self, *, job_id: str, source_url: str, language: str | None, timeout: float) -> PreparedMedia:
        """Resolve a provider-fetchable audio URL for a YouTube source."""


class StorageUrlRewriter(ABC):
    @abstractmethod
    def url_for_key(self, key: str) -> str:
        """Public URL for an object key in upload storage."""

    @abstractmethod
    def rewrite(self, url: str) -> str:
        """Rewrite a storage URL onto the CDN domain."""


class NullDurationProbe(DurationProbe):
    def probe_seconds(self, url: str, *, timeout: float) -> float | None:
        return None


class DisabledAudioClipper(AudioClipper):
    def clip(self, *, job_id: str, source_url: str, seconds: int, timeout: float) -> str | None:
        return None


class PassthroughMediaPreparer(MediaPreparer):
    def prepare(self, *, job_id: str, source_url: str, language: str | None, timeout: float) -> PreparedMedia:
        return PreparedMedia(url=source_url)


class PublicDomainUrlRewriter(StorageUrlRewriter):
    """Maps object keys and ``*.r2.dev`` URLs onto a configured public domain."""

    def __init__(self, public_domain: str | None) -> None:
        domain = (public_domain or "").strip().rstrip("/")
        if domain and not domain.startswith(("http://", "https://")):
            domain = f"https://{domain}"
        self._base = domain

    def url_for_key(self, key: str) -> str:
        if not self._base:
            raise ValueError("storage public domain is not configured")
        return f"{self._base}/{key.lstrip('/')}"

    def rewrite(self, url: str) -> str:
        if not self._base:
            return url
        match = re.match(r"^https?://[^/]+\.r2\.dev/(.+)$", url)
        if match is None:
            return url
        return f"{self._base}/{match.group(1)}"


def repair_double_protocol(url: str) -> str:
    """``https://https://host/x`` -> ``https://host/x``."""
    stripped = url.strip()
    match = _DOUBLE_PROTOCOL.match(stripped)
    if match is None:
        return stripped
    return match.group(2) + stripped[match.end():]


__all__ = [
    "AudioClipper",
    "DisabledAudioClipper",
    "DurationProbe",
    "MediaPreparer",
    "NullDurationProbe",
    "PassthroughMediaPreparer",
    "PreparedMedia",
    "PublicDomainUrlRewriter",
    "StorageUrlRewriter",
    "repair_double_protocol",
]

"""Log-field scrubbing for identities and media locations."""

from __future__ import annotations

import hashlib
from typing import Any
from urllib.parse import urlsplit


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Stable, non-reversible stand-in for a user, job or address in log lines."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"
    return f"{prefix}-{hashlib.sha256(text.encode('utf-8')).hexdigest()[:12]}"


def redact_url(url: str | None) -> str:
    """Keep scheme, host and path; signed query strings and fragments never reach the logs."""
    if not url:
        return "-"
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<unparseable>"
    if not parts.scheme or not parts.netloc:
        return "<relative>"
    return f"{parts.scheme}://{parts.hostname or ''}{parts.path}"


__all__ = ["redact_url", "safe_log_identifier"]

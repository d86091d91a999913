"""HMAC helpers for provider callback correlation."""

from __future__ import annotations

import hashlib
import hmac


def sign_job_id(secret: str, job_id: str) -> str:
    return hmac.new(secret.encode("utf-8"), job_id.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_job_signature(secret: str, job_id: str, signature: str | None) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_job_id(secret, job_id), signature.strip().lower())


def verify_body_signature(secret: str, raw_body: bytes, signature: str | None) -> bool:
    """Accepts ``<hex>`` or ``sha256=<hex>`` header values."""
    if not signature:
        return False
    given = signature.strip()
    if given.startswith("sha256="):
        given = given[len("sha256="):]
    computed = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, given.lower())

"""Requester identity derivation for the usage ledger."""

from __future__ import annotations

import hashlib

from starlette.requests import Request


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def anonymous_identity_key(*, salt: str, ip: str) -> str:
    """Stable per-address key; the raw address never reaches the ledger.

    Request headers are client-controlled and stay out of the key, otherwise a
    new ``User-Agent`` would reset every anonymous limit.
    """
    digest = hashlib.sha256(f"{salt}:{ip.strip()}".encode("utf-8")).hexdigest()
    return f"anon-{digest[:32]}"


__all__ = ["anonymous_identity_key", "client_ip"]

"""Supplier routing decision."""

from __future__ import annotations

from enum import Enum


class SupplierRoute(str, Enum):
    PREMIUM = "premium"
    STANDARD = "standard"
    FALLBACK_PREMIUM = "fallback_premium"
    LOCAL_FALLBACK = "local_fallback"
    UNAVAILABLE = "unavailable"


def select_supplier_route(
    *,
    high_accuracy_active: bool,
    premium_available: bool,
    standard_available: bool,
    local_fallback_enabled: bool,
) -> SupplierRoute:
    """First matching rule wins."""
    if high_accuracy_active and premium_available:
        return SupplierRoute.PREMIUM
    if standard_available:
        return SupplierRoute.STANDARD
    if premium_available:
        return SupplierRoute.FALLBACK_PREMIUM
    if local_fallback_enabled:
        return SupplierRoute.LOCAL_FALLBACK
    return SupplierRoute.UNAVAILABLE


__all__ = ["SupplierRoute", "select_supplier_route"]

"""
Storefront Core - Shared Helpers
=================================
Pure utility functions with NO database or module dependencies.
"""

import secrets
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_money(value) -> Decimal:
    """Round a numeric value to cents using round-half-up."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def safe_int(value: Optional[str]) -> Optional[int]:
    """Safely convert a string to int. Returns None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


def generate_order_number(at: Optional[datetime] = None) -> str:
    """ORD + yy + mm + 6 random digits, e.g. ORD2610482913."""
    at = at or now_utc()
    return f"ORD{at:%y%m}{100000 + secrets.randbelow(900000)}"


def money_str(value) -> Optional[str]:
    """Money as a fixed two-decimal string for JSON responses."""
    if value is None:
        return None
    return str(to_money(value))


def iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None

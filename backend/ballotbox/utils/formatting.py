"""
Display formatting helpers.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


def format_name_with_initials(name: Optional[str]) -> str:
    """
    Mask a participant name down to initials.

    "Alice Liddell" -> "A**** L****", "Alice" -> "A****", blank -> "".
    """
    if not name:
        return ""
    parts = [part for part in name.strip().split() if part]
    return " ".join(f"{part[0].upper()}****" for part in parts)


def round2(value: float | Decimal) -> float:
    """Round half-up to two decimals."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def percentage(part: float, whole: float) -> float:
    """part / whole * 100 rounded to two decimals; 0 when whole is 0."""
    if not whole:
        return 0.0
    return round2(Decimal(str(part)) * 100 / Decimal(str(whole)))

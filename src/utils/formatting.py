"""Display formatting shared by views and email templates."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Union

Number = Union[int, float, Decimal]

MISSING = "—"


def format_money(value: Optional[Number]) -> str:
    """Format a USD amount with no decimals, e.g. ``$1,234`` or ``-$50``."""
    if value is None:
        return MISSING
    
    whole = int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if whole < 0:
        return f"-${abs(whole):,}"
    return f"${whole:,}"


def format_signed_money(value: Optional[Number]) -> str:
    """Format a delta with an explicit sign for non-negative values."""
    if value is None:
        return MISSING
    if value >= 0:
        return f"+{format_money(value)}"
    return format_money(value)


def short_id(value: Optional[str]) -> str:
    """Abbreviate a UUID for display: first six and last four characters."""
    if not value:
        return ""
    return f"{value[:6]}…{value[-4:]}"


def safe_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)

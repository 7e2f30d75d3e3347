from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

MAX_MARGIN = Decimal("0.99")
DEFAULT_SIZE = "Default"


def margin_fraction(margin_pct) -> Decimal:
    m = Decimal(str(margin_pct or 0)) / Decimal(100)
    if m < 0:
        return Decimal(0)
    return min(m, MAX_MARGIN)


def final_price(cost, margin_pct) -> Decimal:
    """Sell price such that `margin_pct` of it is profit: cost / (1 - margin)."""
    price = Decimal(str(cost or 0)) / (Decimal(1) - margin_fraction(margin_pct))
    return price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def size_option(variant) -> str:
    return variant.size_label or DEFAULT_SIZE


def normalize_size(label: Optional[str]) -> str:
    return (label or "").strip().lower()

"""
Business rules for calculating Shopify prices from CJ prices.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Optional, Tuple, Union

from ..db.models import ChangeDirection, PricingPolicy


# Rule constants
CENT = Decimal("0.01")
HALF = Decimal("0.5")
CHANGE_THRESHOLD = CENT  # differences below one cent count as "no change"

Number = Union[Decimal, float, int, str]


@dataclass(frozen=True)
class PriceQuote:
    """Selling price (and optional compare-at price) for a CJ cost."""

    price: Decimal
    compare_at_price: Optional[Decimal]


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_to_ending(price: Number, ending: Number) -> Decimal:
    """
    Round a price to a whole unit plus a fixed ending (e.g. X.95).

    The whole part is chosen with a plain 0.5 threshold on the fractional
    part, no matter how close that fraction already is to the ending:
    24.40 -> 24.95, 24.50 -> 25.95, 24.90 -> 25.95.

    Args:
        price: Price to round
        ending: Decimal ending (e.g., 0.95, 0.99)

    Returns:
        Rounded price
    """
    price = to_decimal(price)
    ending = to_decimal(ending)

    whole = price.to_integral_value(rounding=ROUND_FLOOR)
    fraction = price - whole

    if fraction >= HALF:
        return whole + 1 + ending
    return whole + ending


def compute_price(supplier_price: Number, policy: PricingPolicy) -> PriceQuote:
    """
    Calculate the Shopify price for a CJ price under a pricing policy.

    Rules:
    1. price = CJ price × markup multiplier
    2. Round to the configured ending (skipped when unset or 0)
    3. Apply the floor (min_price), then the ceiling (max_price)
    4. compare_at_price = price × compare_at_markup, rounded to the ending,
       only when show_compare_at is enabled
    5. Both values are rounded half-up to cents

    Args:
        supplier_price: CJ sell price, must be positive
        policy: Effective pricing policy

    Returns:
        PriceQuote with price and compare_at_price (or None)
    """
    cost = to_decimal(supplier_price)
    if cost <= 0:
        raise ValueError(f"Supplier price must be positive, got {supplier_price}")

    # 0 is the "no rounding" setting, same as None
    ending = to_decimal(policy.round_to) if policy.round_to else None

    price = cost * to_decimal(policy.markup_multiplier)

    if ending is not None:
        price = round_to_ending(price, ending)

    if policy.min_price is not None and price < to_decimal(policy.min_price):
        price = to_decimal(policy.min_price)

    if policy.max_price is not None and price > to_decimal(policy.max_price):
        price = to_decimal(policy.max_price)

    compare_at = None
    if policy.show_compare_at:
        compare_at = price * to_decimal(policy.compare_at_markup)
        if ending is not None:
            compare_at = round_to_ending(compare_at, ending)
        compare_at = compare_at.quantize(CENT, rounding=ROUND_HALF_UP)

    return PriceQuote(
        price=price.quantize(CENT, rounding=ROUND_HALF_UP),
        compare_at_price=compare_at,
    )


def calculate_change(
    old_price: Number,
    new_price: Number
) -> Tuple[Decimal, Decimal, ChangeDirection]:
    """
    Describe the change from the current Shopify price to the new one.

    Returns:
        (delta, delta_percent, direction). delta_percent is relative to the
        old price with one decimal place, 0 when the old price is 0.
    """
    old = to_decimal(old_price)
    new = to_decimal(new_price)

    delta = new - old
    if old > 0:
        percent = (delta / old * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    else:
        percent = Decimal("0.0")

    if abs(delta) < CHANGE_THRESHOLD:
        direction = ChangeDirection.NONE
    elif delta > 0:
        direction = ChangeDirection.INCREASE
    else:
        direction = ChangeDirection.DECREASE

    return delta.quantize(CENT, rounding=ROUND_HALF_UP), percent, direction


def prices_differ(current: Optional[Number], new: Optional[Number]) -> bool:
    """True when two prices are at least one cent apart."""
    if current is None or new is None:
        return current is not new
    return abs(to_decimal(current) - to_decimal(new)) >= CHANGE_THRESHOLD


def format_price(value: Optional[Number], currency: str = "€") -> Optional[str]:
    """
    Format a price for display (2 decimal places).

    Args:
        value: Price
        currency: Currency symbol prefix

    Returns:
        Formatted price or None
    """
    if value is None:
        return None

    try:
        decimal_value = to_decimal(value)
        return f"{currency}{decimal_value.quantize(CENT, rounding=ROUND_HALF_UP)}"
    except Exception:
        return None

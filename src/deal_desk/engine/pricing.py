"""
Quote pricing.

    subtotal = unit_price * seats + sum(add_on_prices)
    total    = subtotal * (1 - discount / 100)

Both values are rounded to cents once, at the end, so per-term rounding
never compounds.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from ..utils import round_money, to_decimal
from .validation import validate_discount, validate_seats

HUNDRED = Decimal('100')


@dataclass(frozen=True)
class PricingResult:
    """Computed prices for a quote."""

    subtotal: Decimal
    discount_percent: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            'subtotal': str(self.subtotal),
            'discount_percent': str(self.discount_percent),
            'total': str(self.total),
        }


def calculate_pricing(
    unit_price: Decimal | int | float | str,
    seats: int,
    add_on_prices: Iterable[Decimal | int | float | str] = (),
    discount_percent: Decimal | int | float | str = 0,
) -> PricingResult:
    """
    Price a deal.

    Args:
        unit_price: Package price per seat
        seats: Seat count (>= 1)
        add_on_prices: Flat price of each add-on
        discount_percent: Discount in [0, 100]

    Returns:
        PricingResult with subtotal and total rounded to 2 decimals

    Raises:
        ValidationError: seats < 1 or discount outside [0, 100]
    """
    seats = validate_seats(seats)
    discount = validate_discount(discount_percent)

    raw_subtotal = to_decimal(unit_price) * seats + sum(
        (to_decimal(p) for p in add_on_prices), Decimal('0')
    )
    raw_total = raw_subtotal * (1 - discount / HUNDRED)

    return PricingResult(
        subtotal=round_money(raw_subtotal),
        discount_percent=discount,
        total=round_money(raw_total),
    )

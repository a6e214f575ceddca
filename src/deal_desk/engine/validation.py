"""
Input validation shared by pricing and quote creation.

Every check raises deal_desk.errors.ValidationError with the offending
field in its context, so the orchestrator can hand the caller a structured
result it can correct and resubmit.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import ValidationError
from ..models.quote import PaymentKind
from ..utils import to_decimal

DEFAULT_PREPAY_PERCENT = Decimal('100')


def _as_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', context={'field': field, 'value': value})
    try:
        result = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f'{field} must be a number', context={'field': field, 'value': value})
    if not result.is_finite():
        raise ValidationError(f'{field} must be a finite number', context={'field': field})
    return result


def validate_seats(seats: Any) -> int:
    """Seat count must be a positive integer."""
    if seats is None:
        raise ValidationError('seats is required', context={'field': 'seats'})
    if isinstance(seats, bool) or not isinstance(seats, int):
        raise ValidationError('seats must be an integer', context={'field': 'seats', 'value': seats})
    if seats < 1:
        raise ValidationError('seats must be at least 1', context={'field': 'seats', 'value': seats})
    return seats


def validate_percent(value: Any, field: str) -> Decimal:
    """A percentage in [0, 100]."""
    percent = _as_decimal(value, field)
    if percent < 0 or percent > 100:
        raise ValidationError(
            f'{field} must be between 0 and 100',
            context={'field': field, 'value': str(percent)},
        )
    return percent


def validate_discount(discount_percent: Any) -> Decimal:
    return validate_percent(discount_percent, 'discount_percent')


def normalize_payment_terms(
    payment_kind: PaymentKind | str | None,
    net_days: int | None,
    prepay_percent: Any,
) -> tuple[PaymentKind, int | None, Decimal | None]:
    """
    Check payment-term coherence and drop fields that do not apply.

    - NET requires net_days
    - PREPAY takes prepay_percent, defaulting to 100
    - BOTH requires net_days and prepay_percent

    Returns:
        (payment_kind, net_days, prepay_percent) with irrelevant fields None
    """
    if payment_kind is None:
        raise ValidationError('payment_kind is required', context={'field': 'payment_kind'})
    try:
        kind = PaymentKind(payment_kind)
    except ValueError:
        raise ValidationError(
            'payment_kind must be one of NET, PREPAY, BOTH',
            context={'field': 'payment_kind', 'value': payment_kind},
        )

    if kind in (PaymentKind.NET, PaymentKind.BOTH):
        if net_days is None:
            raise ValidationError(
                f'net_days is required for {kind.value} payment terms',
                context={'field': 'net_days', 'payment_kind': kind.value},
            )
        if isinstance(net_days, bool) or not isinstance(net_days, int) or net_days < 1:
            raise ValidationError(
                'net_days must be a positive integer',
                context={'field': 'net_days', 'value': net_days},
            )
    else:
        net_days = None

    if kind == PaymentKind.BOTH and prepay_percent is None:
        raise ValidationError(
            'prepay_percent is required for BOTH payment terms',
            context={'field': 'prepay_percent', 'payment_kind': kind.value},
        )
    if kind == PaymentKind.PREPAY and prepay_percent is None:
        prepay_percent = DEFAULT_PREPAY_PERCENT

    prepay: Decimal | None = None
    if kind in (PaymentKind.PREPAY, PaymentKind.BOTH):
        prepay = validate_percent(prepay_percent, 'prepay_percent')

    return kind, net_days, prepay

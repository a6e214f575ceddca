"""
Approval chain construction.

Maps a deal's discount tier and payment terms to the ordered personas that
must sign off. Every chain starts with AE (the submitter) and ends with
LEGAL.

Canonical rule:
    0 < discount <= 15   -> DEALDESK
    15 < discount <= 40  -> CRO
    discount > 40        -> FINANCE
    bespoke terms        -> FINANCE (added once)

The legacy rule reproduces chains found on older seeded quotes: CRO and
FINANCE above 40%, and DEALDESK added to bespoke deals under 15%.
"""

from decimal import Decimal
from enum import Enum

from ..models.quote import PaymentKind
from ..models.workflow import Persona
from ..utils import to_decimal

DEALDESK_MAX_DISCOUNT = Decimal('15')
CRO_MAX_DISCOUNT = Decimal('40')
BESPOKE_NET_DAYS = 60


class ChainRule(str, Enum):
    """Which chain-construction rule to apply."""

    CANONICAL = 'canonical'
    LEGACY = 'legacy'


def is_bespoke(payment_kind: PaymentKind | str, net_days: int | None) -> bool:
    """Split payment, or long net terms, always need finance sign-off."""
    kind = PaymentKind(payment_kind)
    if kind == PaymentKind.BOTH:
        return True
    return kind == PaymentKind.NET and net_days is not None and net_days >= BESPOKE_NET_DAYS


def _discount_personas(discount: Decimal, rule: ChainRule) -> list[Persona]:
    if discount <= 0:
        return []
    if discount <= DEALDESK_MAX_DISCOUNT:
        return [Persona.DEALDESK]
    if discount <= CRO_MAX_DISCOUNT:
        return [Persona.CRO]
    if rule == ChainRule.LEGACY:
        return [Persona.CRO, Persona.FINANCE]
    return [Persona.FINANCE]


def build_chain(
    discount_percent: Decimal | int | float | str,
    payment_kind: PaymentKind | str,
    net_days: int | None = None,
    rule: ChainRule = ChainRule.CANONICAL,
) -> list[Persona]:
    """
    Build the ordered approval chain for a deal.

    Args:
        discount_percent: Final discount in [0, 100]
        payment_kind: NET, PREPAY or BOTH
        net_days: Net payment days (NET / BOTH)
        rule: Chain-construction rule (canonical by default)

    Returns:
        Personas in sign-off order, AE first and LEGAL last
    """
    discount = to_decimal(discount_percent)
    chain = [Persona.AE, *_discount_personas(discount, rule)]

    if is_bespoke(payment_kind, net_days):
        if (
            rule == ChainRule.LEGACY
            and discount < DEALDESK_MAX_DISCOUNT
            and Persona.DEALDESK not in chain
        ):
            chain.append(Persona.DEALDESK)
        if Persona.FINANCE not in chain:
            chain.append(Persona.FINANCE)

    chain.append(Persona.LEGAL)
    return chain

"""
Quote model: one priced deal moving through approval.

Money (subtotal, total, unit prices) and percentages are Decimals with two
decimal places. `status` is derived from the workflow's step state and
stored on the quote; only the workflow engine writes it, except for the
externally set terminal `Sold`.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from ..utils import utcnow, uuid7
from .workflow import Workflow


class PaymentKind(str, Enum):
    """How the customer pays."""

    NET = 'NET'
    PREPAY = 'PREPAY'
    BOTH = 'BOTH'


class QuoteStatus(str, Enum):
    """Quote-level status. Sold is terminal and set outside the workflow."""

    PENDING = 'Pending'
    APPROVED = 'Approved'
    REJECTED = 'Rejected'
    SOLD = 'Sold'


class QuoteAddOn(BaseModel):
    """Add-on attached to a quote, with name and price captured at creation."""

    add_on_id: str
    name: str
    unit_price: Decimal


class Quote(BaseModel):
    """A single deal with its pricing, payment terms and approval state."""

    # Identity
    id: UUID = Field(default_factory=uuid7)
    org_id: str = Field(..., description='Owning organization')
    org_name: str | None = Field(default=None, description='Organization name snapshot')

    # Deal
    package_id: str
    package_name: str = Field(..., description='Package name snapshot used for search and ranking')
    seats: int = Field(..., ge=1)
    customer_name: str
    add_ons: list[QuoteAddOn] = Field(default_factory=list)

    # Payment terms
    payment_kind: PaymentKind
    net_days: int | None = None
    prepay_percent: Decimal | None = None

    # Pricing
    subtotal: Decimal
    discount_percent: Decimal = Field(default=Decimal('0'), ge=0, le=100)
    total: Decimal

    # Approval
    status: QuoteStatus = QuoteStatus.PENDING
    workflow: Workflow | None = None

    contract_document: str | None = Field(
        default=None, description='Best-effort generated contract text'
    )
    created_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def add_on_ids(self) -> list[str]:
        return [a.add_on_id for a in self.add_ons]

    @property
    def add_on_names(self) -> list[str]:
        return [a.name for a in self.add_ons]

    def to_summary(self) -> dict[str, Any]:
        """Deal summary returned by get_quote and similarity results."""
        summary: dict[str, Any] = {
            'quote_id': str(self.id),
            'org_id': self.org_id,
            'customer_name': self.customer_name,
            'package_id': self.package_id,
            'package_name': self.package_name,
            'seats': self.seats,
            'add_ons': [
                {'id': a.add_on_id, 'name': a.name, 'unit_price': str(a.unit_price)}
                for a in self.add_ons
            ],
            'payment_kind': self.payment_kind.value,
            'net_days': self.net_days,
            'prepay_percent': str(self.prepay_percent) if self.prepay_percent is not None else None,
            'subtotal': str(self.subtotal),
            'discount_percent': str(self.discount_percent),
            'total': str(self.total),
            'status': self.status.value,
            'has_contract_document': self.contract_document is not None,
            'created_at': self.created_at.isoformat(),
        }
        if self.workflow is not None:
            summary['steps'] = [
                {
                    'step_id': str(s.id),
                    'step_order': s.step_order,
                    'persona': s.persona.value,
                    'status': s.status.value,
                    'approver_id': s.approver_id,
                    'approved_at': s.approved_at.isoformat() if s.approved_at else None,
                    'pending_since': s.pending_since.isoformat() if s.pending_since else None,
                }
                for s in self.workflow.steps
            ]
        return summary

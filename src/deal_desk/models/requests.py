"""
Inputs accepted at the engine boundary.

These mirror what the copilot (or any caller) can supply: every deal field
is optional here because the caller may only know part of the deal. The
engine decides what is required for each operation and reports missing or
incoherent fields as ValidationError results rather than pydantic errors.
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from .quote import PaymentKind
from .workflow import Persona


def _clean_refs(values: list[str] | None) -> list[str]:
    if not values:
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


class Actor(BaseModel):
    """Caller identity as resolved by the identity/org collaborator."""

    user_id: str
    org_id: str | None = None
    org_name: str | None = None
    roles: set[Persona] = Field(default_factory=set)

    def holds(self, role: Persona) -> bool:
        return role in self.roles


class CreateQuoteInput(BaseModel):
    """A partially or fully specified new deal."""

    package_id: str | None = None
    product_name: str | None = Field(default=None, description='Package name, exact or partial')
    seats: int | None = None
    discount_percent: Decimal | None = None
    add_on_ids: list[str] = Field(default_factory=list)
    add_on_names: list[str] = Field(default_factory=list)
    customer_name: str | None = None
    payment_kind: PaymentKind | None = None
    net_days: int | None = None
    prepay_percent: Decimal | None = None
    org_id: str | None = None

    @field_validator('package_id', 'product_name', 'customer_name', mode='before')
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator('add_on_ids', 'add_on_names', mode='before')
    @classmethod
    def _refs(cls, value):
        return _clean_refs(value)

    @property
    def package_ref(self) -> str | None:
        return self.package_id or self.product_name

    @property
    def add_on_refs(self) -> list[str]:
        return [*self.add_on_ids, *self.add_on_names]


class SimilarQuoteQuery(BaseModel):
    """Partial deal attributes used to look up comparable historical quotes."""

    package_id: str | None = None
    product_name: str | None = None
    seats: int | None = None
    discount_percent: Decimal | None = None
    add_on_ids: list[str] = Field(default_factory=list)
    add_on_names: list[str] = Field(default_factory=list)
    payment_kind: PaymentKind | None = None

    @field_validator('package_id', 'product_name', mode='before')
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator('add_on_ids', 'add_on_names', mode='before')
    @classmethod
    def _refs(cls, value):
        return _clean_refs(value)

    @property
    def has_criteria(self) -> bool:
        return any(
            [
                self.package_id,
                self.product_name,
                self.seats is not None,
                self.discount_percent is not None,
                self.add_on_ids,
                self.add_on_names,
                self.payment_kind is not None,
            ]
        )

    @classmethod
    def from_create_input(cls, data: CreateQuoteInput) -> 'SimilarQuoteQuery':
        return cls(
            package_id=data.package_id,
            product_name=data.product_name,
            seats=data.seats,
            discount_percent=data.discount_percent,
            add_on_ids=data.add_on_ids,
            add_on_names=data.add_on_names,
            payment_kind=data.payment_kind,
        )

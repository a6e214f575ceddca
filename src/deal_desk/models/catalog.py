"""
Priced catalog entities as returned by a Catalog collaborator.

Catalog CRUD lives elsewhere; the engine only reads packages and add-ons.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class Package(BaseModel):
    """A sellable product tier, priced per seat."""

    id: str
    name: str
    unit_price: Decimal = Field(..., ge=0)
    org_id: str | None = None


class AddOn(BaseModel):
    """A flat-priced extra attached to a quote."""

    id: str
    name: str
    unit_price: Decimal = Field(..., ge=0)
    org_id: str | None = None

"""
Catalog collaborators: resolve package and add-on references to priced
entities.

Resolution order for a reference (shared by every implementation):
1. exact id
2. exact name, case-insensitive
3. unique case-insensitive substring of a name

A reference that matches nothing resolves to None. A substring that
matches several entries raises ResolutionError listing the candidates so
the caller can ask for clarification.
"""

from typing import Protocol, Sequence, TypeVar

from sqlalchemy import select

from ..errors import ResolutionError
from ..logging import get_logger
from ..models.catalog import AddOn, Package
from ..schema import add_ons as add_ons_table
from ..schema import packages as packages_table
from ..utils import round_money, to_decimal
from .database import DatabaseClient

logger = get_logger(__name__)

E = TypeVar('E', Package, AddOn)


class Catalog(Protocol):
    """What the quote service needs from a catalog."""

    async def resolve_package(self, ref: str, org_id: str | None = None) -> Package | None:
        ...

    async def resolve_add_ons(
        self, refs: Sequence[str], org_id: str | None = None
    ) -> list[AddOn | None]:
        ...


def match_entry(ref: str, entries: Sequence[E], kind: str = 'entry') -> E | None:
    """
    Resolve one reference against catalog entries.

    Args:
        ref: Id or (partial) name
        entries: Candidate entries
        kind: 'package' or 'add-on', for error messages

    Returns:
        The matching entry, or None

    Raises:
        ResolutionError: the reference is an ambiguous partial name
    """
    needle = ref.strip()
    if not needle:
        return None

    for entry in entries:
        if entry.id == needle:
            return entry

    lowered = needle.lower()
    for entry in entries:
        if entry.name.lower() == lowered:
            return entry

    partial = [e for e in entries if lowered in e.name.lower()]
    if len(partial) == 1:
        return partial[0]
    if len(partial) > 1:
        raise ResolutionError(
            f'"{ref}" matches more than one {kind}',
            context={'reference': ref, 'candidates': sorted(e.name for e in partial)},
        )
    return None


def _scoped(entries: Sequence[E], org_id: str | None) -> list[E]:
    if org_id is None:
        return list(entries)
    return [e for e in entries if e.org_id in (None, org_id)]


class StaticCatalog:
    """In-memory catalog built from a fixed list of packages and add-ons."""

    def __init__(
        self,
        packages: Sequence[Package] = (),
        add_ons: Sequence[AddOn] = (),
    ):
        self.packages = list(packages)
        self.add_ons = list(add_ons)

    async def resolve_package(self, ref: str, org_id: str | None = None) -> Package | None:
        return match_entry(ref, _scoped(self.packages, org_id), 'package')

    async def resolve_add_ons(
        self, refs: Sequence[str], org_id: str | None = None
    ) -> list[AddOn | None]:
        scoped = _scoped(self.add_ons, org_id)
        return [match_entry(ref, scoped, 'add-on') for ref in refs]


class SqlCatalog:
    """Read-only catalog over the `packages` and `add_ons` tables."""

    def __init__(self, db: DatabaseClient):
        self.db = db

    async def _load_packages(self, org_id: str | None) -> list[Package]:
        stmt = select(packages_table).order_by(packages_table.c.name)
        if org_id is not None:
            stmt = stmt.where(
                (packages_table.c.org_id == org_id) | packages_table.c.org_id.is_(None)
            )
        async with self.db.connection() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [
            Package(
                id=r['id'],
                name=r['name'],
                unit_price=round_money(to_decimal(r['unit_price'])),
                org_id=r['org_id'],
            )
            for r in rows
        ]

    async def _load_add_ons(self, org_id: str | None) -> list[AddOn]:
        stmt = select(add_ons_table).order_by(add_ons_table.c.name)
        if org_id is not None:
            stmt = stmt.where(
                (add_ons_table.c.org_id == org_id) | add_ons_table.c.org_id.is_(None)
            )
        async with self.db.connection() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [
            AddOn(
                id=r['id'],
                name=r['name'],
                unit_price=round_money(to_decimal(r['unit_price'])),
                org_id=r['org_id'],
            )
            for r in rows
        ]

    async def resolve_package(self, ref: str, org_id: str | None = None) -> Package | None:
        entries = await self._load_packages(org_id)
        return match_entry(ref, entries, 'package')

    async def resolve_add_ons(
        self, refs: Sequence[str], org_id: str | None = None
    ) -> list[AddOn | None]:
        if not refs:
            return []
        entries = await self._load_add_ons(org_id)
        return [match_entry(ref, entries, 'add-on') for ref in refs]

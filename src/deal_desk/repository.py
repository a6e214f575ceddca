"""
Quote repository: row <-> model mapping for quotes and workflows.

A QuoteRepository wraps one AsyncConnection, so every call made through it
belongs to the caller's transaction. Repositories never open their own
transactions; the workflow engine and the quote service decide the unit of
work.

Key design decisions:
- Step lists are replaced wholesale (DELETE + INSERT) inside the caller's
  transaction. Reordering under UNIQUE(workflow_id, step_order) needs no
  temporary orders that way, and step ids and timestamps are preserved.
- `for_update=True` locks the quote and workflow rows (FOR UPDATE on
  PostgreSQL; SQLite serializes writers and ignores the clause) so two
  concurrent approvals cannot both act on the same pending step.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from .models.quote import PaymentKind, Quote, QuoteAddOn, QuoteStatus
from .models.workflow import Persona, Step, StepStatus, Workflow
from .schema import quote_add_ons, quotes, workflow_steps, workflows
from .utils import as_utc, round_money

logger = structlog.get_logger(__name__)


# =============================================================================
# Row → Model Helpers
# =============================================================================


def _to_db_id(val: UUID | str | None) -> str | None:
    """Convert UUID or string to plain string for storage, or None."""
    if val is None:
        return None
    return str(val)


def _to_decimal(val: Any) -> Decimal | None:
    if val is None:
        return None
    return round_money(Decimal(str(val)))


def _row_to_step(row: Mapping[str, Any]) -> Step:
    return Step(
        id=UUID(row['id']),
        workflow_id=UUID(row['workflow_id']),
        step_order=row['step_order'],
        persona=Persona(row['persona']),
        approver_id=row['approver_id'],
        status=StepStatus(row['status']),
        approved_at=as_utc(row['approved_at']),
        pending_since=as_utc(row['pending_since']),
        created_at=as_utc(row['created_at']),
        updated_at=as_utc(row['updated_at']),
    )


def _row_to_quote(row: Mapping[str, Any], add_ons: list[QuoteAddOn]) -> Quote:
    return Quote(
        id=UUID(row['id']),
        org_id=row['org_id'],
        org_name=row['org_name'],
        package_id=row['package_id'],
        package_name=row['package_name'],
        seats=row['seats'],
        customer_name=row['customer_name'],
        add_ons=add_ons,
        payment_kind=PaymentKind(row['payment_kind']),
        net_days=row['net_days'],
        prepay_percent=_to_decimal(row['prepay_percent']),
        subtotal=_to_decimal(row['subtotal']),
        discount_percent=_to_decimal(row['discount_percent']),
        total=_to_decimal(row['total']),
        status=QuoteStatus(row['status']),
        contract_document=row['contract_document'],
        created_by=row['created_by'],
        created_at=as_utc(row['created_at']),
        updated_at=as_utc(row['updated_at']),
    )


def _step_params(step: Step, workflow_id: UUID) -> dict[str, Any]:
    return {
        'id': _to_db_id(step.id),
        'workflow_id': _to_db_id(workflow_id),
        'step_order': step.step_order,
        'persona': step.persona.value,
        'approver_id': step.approver_id,
        'status': step.status.value,
        'approved_at': step.approved_at,
        'pending_since': step.pending_since,
        'created_at': step.created_at,
        'updated_at': step.updated_at,
    }


# =============================================================================
# QuoteRepository
# =============================================================================


class QuoteRepository:
    """Reads and writes quotes, add-on snapshots, workflows and steps."""

    def __init__(self, conn: AsyncConnection):
        self.conn = conn

    # =========================================================================
    # Quote Operations
    # =========================================================================

    async def insert_quote(self, quote: Quote) -> None:
        """INSERT a quote row and its add-on snapshot rows."""
        await self.conn.execute(
            insert(quotes).values(
                id=_to_db_id(quote.id),
                org_id=quote.org_id,
                org_name=quote.org_name,
                package_id=quote.package_id,
                package_name=quote.package_name,
                seats=quote.seats,
                customer_name=quote.customer_name,
                payment_kind=quote.payment_kind.value,
                net_days=quote.net_days,
                prepay_percent=quote.prepay_percent,
                subtotal=quote.subtotal,
                discount_percent=quote.discount_percent,
                total=quote.total,
                status=quote.status.value,
                contract_document=quote.contract_document,
                created_by=quote.created_by,
                created_at=quote.created_at,
                updated_at=quote.updated_at,
            )
        )
        if quote.add_ons:
            await self.conn.execute(
                insert(quote_add_ons),
                [
                    {
                        'quote_id': _to_db_id(quote.id),
                        'position': position,
                        'add_on_id': add_on.add_on_id,
                        'name': add_on.name,
                        'unit_price': add_on.unit_price,
                    }
                    for position, add_on in enumerate(quote.add_ons)
                ],
            )
        logger.debug('repository.insert_quote', quote_id=str(quote.id))

    async def get_quote(
        self,
        quote_id: UUID,
        for_update: bool = False,
        include_workflow: bool = True,
    ) -> Quote | None:
        """
        Fetch one quote with add-ons and (optionally) its workflow.

        Args:
            quote_id: Quote UUID
            for_update: Lock the quote and workflow rows for this transaction
            include_workflow: Load workflow and ordered steps

        Returns:
            Quote, or None if not found
        """
        stmt = select(quotes).where(quotes.c.id == _to_db_id(quote_id))
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.conn.execute(stmt)).mappings().first()
        if row is None:
            return None

        add_ons = await self._load_add_ons([row['id']])
        quote = _row_to_quote(row, add_ons.get(row['id'], []))
        if include_workflow:
            quote.workflow = await self.get_workflow(quote.id, for_update=for_update)
        return quote

    async def update_quote_status(self, quote_id: UUID, status: QuoteStatus, now: datetime) -> None:
        await self.conn.execute(
            update(quotes)
            .where(quotes.c.id == _to_db_id(quote_id))
            .values(status=status.value, updated_at=now)
        )

    async def update_contract_document(self, quote_id: UUID, document: str | None, now: datetime) -> None:
        await self.conn.execute(
            update(quotes)
            .where(quotes.c.id == _to_db_id(quote_id))
            .values(contract_document=document, updated_at=now)
        )

    async def list_quotes(self, search: str | None = None) -> list[Quote]:
        """
        All quotes, newest first, with workflows.

        `search` is a case-insensitive partial match on customer name or
        organization name.
        """
        stmt = select(quotes).order_by(quotes.c.created_at.desc())
        needle = (search or '').strip()
        if needle:
            stmt = stmt.where(
                or_(
                    quotes.c.customer_name.icontains(needle, autoescape=True),
                    quotes.c.org_name.icontains(needle, autoescape=True),
                )
            )
        rows = (await self.conn.execute(stmt)).mappings().all()
        result = await self._hydrate(rows)
        workflows_by_quote = await self._load_workflows([q.id for q in result])
        for quote in result:
            quote.workflow = workflows_by_quote.get(quote.id)
        return result

    async def list_similarity_candidates(
        self,
        since: datetime,
        limit: int,
        org_id: str | None = None,
    ) -> list[Quote]:
        """
        Candidate set for similarity ranking.

        Approved or Sold quotes created at or after `since`, newest first,
        capped at `limit`. Workflows are not loaded.
        """
        stmt = (
            select(quotes)
            .where(quotes.c.status.in_([QuoteStatus.APPROVED.value, QuoteStatus.SOLD.value]))
            .where(quotes.c.created_at >= since)
            .order_by(quotes.c.created_at.desc())
            .limit(limit)
        )
        if org_id is not None:
            stmt = stmt.where(quotes.c.org_id == org_id)
        rows = (await self.conn.execute(stmt)).mappings().all()
        return await self._hydrate(rows)

    # =========================================================================
    # Workflow Operations
    # =========================================================================

    async def insert_workflow(self, workflow: Workflow) -> None:
        """INSERT a workflow row and its steps."""
        await self.conn.execute(
            insert(workflows).values(
                id=_to_db_id(workflow.id),
                quote_id=_to_db_id(workflow.quote_id),
                created_at=workflow.created_at,
                updated_at=workflow.updated_at,
            )
        )
        await self._insert_steps(workflow.id, workflow.steps)
        logger.debug(
            'repository.insert_workflow',
            workflow_id=str(workflow.id),
            steps=len(workflow.steps),
        )

    async def get_workflow(self, quote_id: UUID, for_update: bool = False) -> Workflow | None:
        """Fetch the workflow for a quote with steps ordered by step_order."""
        stmt = select(workflows).where(workflows.c.quote_id == _to_db_id(quote_id))
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.conn.execute(stmt)).mappings().first()
        if row is None:
            return None

        step_rows = (
            await self.conn.execute(
                select(workflow_steps)
                .where(workflow_steps.c.workflow_id == row['id'])
                .order_by(workflow_steps.c.step_order)
            )
        ).mappings().all()
        return Workflow(
            id=UUID(row['id']),
            quote_id=UUID(row['quote_id']),
            steps=[_row_to_step(r) for r in step_rows],
            created_at=as_utc(row['created_at']),
            updated_at=as_utc(row['updated_at']),
        )

    async def replace_steps(self, workflow_id: UUID, steps: Sequence[Step], now: datetime) -> None:
        """Replace every step of a workflow with `steps`."""
        await self.conn.execute(
            delete(workflow_steps).where(workflow_steps.c.workflow_id == _to_db_id(workflow_id))
        )
        await self._insert_steps(workflow_id, steps)
        await self.conn.execute(
            update(workflows)
            .where(workflows.c.id == _to_db_id(workflow_id))
            .values(updated_at=now)
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _insert_steps(self, workflow_id: UUID, steps: Iterable[Step]) -> None:
        params = [_step_params(s, workflow_id) for s in steps]
        if params:
            await self.conn.execute(insert(workflow_steps), params)

    async def _load_add_ons(self, quote_ids: list[str]) -> dict[str, list[QuoteAddOn]]:
        if not quote_ids:
            return {}
        rows = (
            await self.conn.execute(
                select(quote_add_ons)
                .where(quote_add_ons.c.quote_id.in_(quote_ids))
                .order_by(quote_add_ons.c.quote_id, quote_add_ons.c.position)
            )
        ).mappings().all()
        result: dict[str, list[QuoteAddOn]] = {}
        for r in rows:
            result.setdefault(r['quote_id'], []).append(
                QuoteAddOn(
                    add_on_id=r['add_on_id'],
                    name=r['name'],
                    unit_price=_to_decimal(r['unit_price']),
                )
            )
        return result

    async def _load_workflows(self, quote_ids: list[UUID]) -> dict[UUID, Workflow]:
        if not quote_ids:
            return {}
        wf_rows = (
            await self.conn.execute(
                select(workflows).where(workflows.c.quote_id.in_([_to_db_id(q) for q in quote_ids]))
            )
        ).mappings().all()
        if not wf_rows:
            return {}
        step_rows = (
            await self.conn.execute(
                select(workflow_steps)
                .where(workflow_steps.c.workflow_id.in_([r['id'] for r in wf_rows]))
                .order_by(workflow_steps.c.workflow_id, workflow_steps.c.step_order)
            )
        ).mappings().all()
        steps_by_workflow: dict[str, list[Step]] = {}
        for r in step_rows:
            steps_by_workflow.setdefault(r['workflow_id'], []).append(_row_to_step(r))
        return {
            UUID(r['quote_id']): Workflow(
                id=UUID(r['id']),
                quote_id=UUID(r['quote_id']),
                steps=steps_by_workflow.get(r['id'], []),
                created_at=as_utc(r['created_at']),
                updated_at=as_utc(r['updated_at']),
            )
            for r in wf_rows
        }

    async def _hydrate(self, rows: Sequence[Mapping[str, Any]]) -> list[Quote]:
        add_ons = await self._load_add_ons([r['id'] for r in rows])
        return [_row_to_quote(r, add_ons.get(r['id'], [])) for r in rows]

"""
Approval workflow engine.

The single entry point for every change to workflow steps and to the
stored quote status. Each public operation is one database transaction:

1. Lock and read the quote and its workflow
2. Compute the new step list with the pure rules in engine.gating
3. Write the steps and the recomputed quote status

Because the quote row is locked first, a second concurrent approval waits
for the first to commit and then sees the post-approval state (and fails
with NotFoundError or PersonaMismatchError).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncConnection

from ..clients.database import DatabaseClient
from ..errors import (
    AuthorizationError,
    InvalidEditError,
    NotFoundError,
    PersonaMismatchError,
    QuoteStateError,
)
from ..logging import get_logger
from ..models.quote import Quote, QuoteStatus
from ..models.requests import Actor
from ..models.workflow import Persona, Step, StepEdit, StepStatus, Workflow
from ..repository import QuoteRepository
from ..utils import utcnow
from .gating import apply_edit, check_invariants, decide, derive_quote_status, initialize_steps

logger = get_logger(__name__)


# =============================================================================
# Result Models
# =============================================================================


@dataclass
class WorkflowResult:
    """Outcome of a workflow mutation."""

    quote_id: UUID
    new_status: QuoteStatus
    steps: list[Step] = field(default_factory=list)
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            'success': self.success,
            'quote_id': str(self.quote_id),
            'new_status': self.new_status.value,
            'steps': [
                {'step_order': s.step_order, 'persona': s.persona.value, 'status': s.status.value}
                for s in self.steps
            ],
        }


def _parse_id(value: UUID | str, what: str = 'Quote') -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(f'{what} not found', context={'id': str(value)}) from None


# =============================================================================
# WorkflowEngine
# =============================================================================


class WorkflowEngine:
    """
    Owns step lifecycle, gating and quote-status derivation.

    No other code writes workflow steps or Quote.status.
    """

    def __init__(
        self,
        db: DatabaseClient,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            db: Connected DatabaseClient
            clock: Source of "now" (injectable for tests)
        """
        self.db = db
        self.clock = clock

    # =========================================================================
    # Creation (inside the caller's transaction)
    # =========================================================================

    async def initialize(
        self,
        conn: AsyncConnection,
        quote: Quote,
        chain: Sequence[Persona],
        submitter_id: str | None = None,
    ) -> Workflow:
        """
        Create the workflow for a freshly inserted quote.

        Runs on the caller's connection so the quote insert and the workflow
        insert commit together.
        """
        now = self.clock()
        workflow = Workflow(quote_id=quote.id, created_at=now, updated_at=now)
        workflow.steps = initialize_steps(
            chain, now, workflow_id=workflow.id, submitter_id=submitter_id
        )
        check_invariants(workflow.steps)

        repo = QuoteRepository(conn)
        await repo.insert_workflow(workflow)

        status = derive_quote_status(quote.status, workflow.steps)
        if status != quote.status:
            await repo.update_quote_status(quote.id, status, now)
            quote.status = status
        quote.workflow = workflow

        logger.info(
            'workflow.initialized',
            quote_id=str(quote.id),
            chain=[p.value for p in chain],
            status=status.value,
        )
        return workflow

    # =========================================================================
    # Approval Actions
    # =========================================================================

    async def approve_as_role(
        self,
        quote_id: UUID | str,
        role: Persona | str,
        actor: Actor | None = None,
    ) -> WorkflowResult:
        """
        Approve the pending step acting as `role`.

        Raises:
            NotFoundError: no such quote/workflow, or nothing is pending
            PersonaMismatchError: the pending step belongs to another persona
            AuthorizationError: `actor` does not hold `role`
        """
        return await self._decide(quote_id, role, StepStatus.APPROVED, actor)

    async def reject_as_role(
        self,
        quote_id: UUID | str,
        role: Persona | str,
        actor: Actor | None = None,
    ) -> WorkflowResult:
        """Reject the pending step acting as `role`. Freezes the workflow."""
        return await self._decide(quote_id, role, StepStatus.REJECTED, actor)

    async def _decide(
        self,
        quote_id: UUID | str,
        role: Persona | str,
        outcome: StepStatus,
        actor: Actor | None,
    ) -> WorkflowResult:
        quote_uuid = _parse_id(quote_id)
        persona = self._parse_role(role)
        if actor is not None and not actor.holds(persona):
            raise AuthorizationError(
                f'Actor does not hold the {persona.value} role',
                context={'actor_id': actor.user_id, 'role': persona.value},
            )

        log = logger.bind(quote_id=str(quote_uuid), role=persona.value, outcome=outcome.value)

        async with self.db.transaction() as conn:
            repo = QuoteRepository(conn)
            quote, workflow = await self._load_locked(repo, quote_uuid)

            pending = workflow.pending_step
            if pending is None:
                raise NotFoundError(
                    'No step is pending approval',
                    context={'quote_id': str(quote_uuid), 'quote_status': quote.status.value},
                )
            if pending.persona != persona:
                raise PersonaMismatchError(
                    f'Pending step requires {pending.persona.value}, not {persona.value}',
                    context={
                        'quote_id': str(quote_uuid),
                        'pending_persona': pending.persona.value,
                        'role': persona.value,
                    },
                )

            now = self.clock()
            steps = decide(
                workflow.steps,
                outcome,
                now,
                approver_id=actor.user_id if actor else None,
            )
            status = await self._persist(repo, quote, workflow, steps, now)

        log.info('workflow.step_decided', step_order=pending.step_order, new_status=status.value)
        return WorkflowResult(quote_id=quote_uuid, new_status=status, steps=steps)

    # =========================================================================
    # Editing
    # =========================================================================

    async def replace_steps(
        self,
        quote_id: UUID | str,
        edits: Sequence[StepEdit | dict[str, Any]],
    ) -> WorkflowResult:
        """
        Replace the workflow's steps with an edited list.

        All-or-nothing: a rejected edit leaves the stored steps untouched.

        Raises:
            NotFoundError: no such quote/workflow
            InvalidEditError: the edit would alter an approved step
        """
        quote_uuid = _parse_id(quote_id)
        parsed = [e if isinstance(e, StepEdit) else StepEdit.model_validate(e) for e in edits]

        async with self.db.transaction() as conn:
            repo = QuoteRepository(conn)
            quote, workflow = await self._load_locked(repo, quote_uuid)

            now = self.clock()
            steps = apply_edit(workflow.steps, parsed, now, workflow_id=workflow.id)
            status = await self._persist(repo, quote, workflow, steps, now)

        logger.info(
            'workflow.steps_replaced',
            quote_id=str(quote_uuid),
            personas=[s.persona.value for s in steps],
            new_status=status.value,
        )
        return WorkflowResult(quote_id=quote_uuid, new_status=status, steps=steps)

    async def delete_step(self, quote_id: UUID | str, step_id: UUID | str) -> WorkflowResult:
        """
        Remove one step that has not been approved.

        Raises:
            NotFoundError: no such quote, workflow or step
            InvalidEditError: the step is approved, or removing it breaks the chain
        """
        quote_uuid = _parse_id(quote_id)
        step_uuid = _parse_id(step_id, 'Step')

        async with self.db.transaction() as conn:
            repo = QuoteRepository(conn)
            quote, workflow = await self._load_locked(repo, quote_uuid)

            target = next((s for s in workflow.steps if s.id == step_uuid), None)
            if target is None:
                raise NotFoundError('Step not found', context={'step_id': str(step_uuid)})
            if target.status == StepStatus.APPROVED:
                raise InvalidEditError(
                    'Approved steps cannot be deleted',
                    context={'step_id': str(step_uuid)},
                )

            edits = [
                StepEdit(persona=s.persona, step_id=s.id, status=s.status)
                for s in workflow.steps
                if s.id != step_uuid
            ]
            now = self.clock()
            steps = apply_edit(workflow.steps, edits, now, workflow_id=workflow.id)
            status = await self._persist(repo, quote, workflow, steps, now)

        logger.info(
            'workflow.step_deleted',
            quote_id=str(quote_uuid),
            persona=target.persona.value,
            new_status=status.value,
        )
        return WorkflowResult(quote_id=quote_uuid, new_status=status, steps=steps)

    # =========================================================================
    # Quote-level Transitions
    # =========================================================================

    async def mark_sold(self, quote_id: UUID | str) -> WorkflowResult:
        """
        Mark a fully approved quote as Sold.

        Raises:
            NotFoundError: no such quote
            QuoteStateError: the quote is not Approved
        """
        quote_uuid = _parse_id(quote_id)
        async with self.db.transaction() as conn:
            repo = QuoteRepository(conn)
            quote = await repo.get_quote(quote_uuid, for_update=True)
            if quote is None:
                raise NotFoundError('Quote not found', context={'quote_id': str(quote_uuid)})
            if quote.status != QuoteStatus.APPROVED:
                raise QuoteStateError(
                    'Only approved quotes can be marked sold',
                    context={'quote_id': str(quote_uuid), 'status': quote.status.value},
                )
            await repo.update_quote_status(quote_uuid, QuoteStatus.SOLD, self.clock())

        logger.info('workflow.quote_sold', quote_id=str(quote_uuid))
        steps = quote.workflow.steps if quote.workflow else []
        return WorkflowResult(quote_id=quote_uuid, new_status=QuoteStatus.SOLD, steps=steps)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _parse_role(role: Persona | str) -> Persona:
        try:
            return Persona(role)
        except ValueError:
            raise PersonaMismatchError(
                f'Unknown role: {role}',
                context={'role': str(role)},
            ) from None

    async def _load_locked(self, repo: QuoteRepository, quote_id: UUID) -> tuple[Quote, Workflow]:
        quote = await repo.get_quote(quote_id, for_update=True)
        if quote is None:
            raise NotFoundError('Quote not found', context={'quote_id': str(quote_id)})
        if quote.workflow is None:
            raise NotFoundError('Workflow not found', context={'quote_id': str(quote_id)})
        return quote, quote.workflow

    async def _persist(
        self,
        repo: QuoteRepository,
        quote: Quote,
        workflow: Workflow,
        steps: list[Step],
        now: datetime,
    ) -> QuoteStatus:
        """Write steps and the recomputed quote status on the open transaction."""
        check_invariants(steps)
        await repo.replace_steps(workflow.id, steps, now)
        status = derive_quote_status(quote.status, steps)
        if status != quote.status:
            await repo.update_quote_status(quote.id, status, now)
        return status

"""
Pure step-state rules for approval workflows.

Everything here works on lists of Step models and returns new lists; nothing
touches storage. WorkflowEngine composes these inside a transaction.

Gating invariant:
- If any step is Rejected the workflow is frozen and nothing changes.
- Otherwise the first step that is not Approved is Pending, and every later
  non-approved step is Waiting.
"""

from datetime import datetime
from typing import Sequence
from uuid import UUID

from ..errors import InvalidEditError
from ..models.quote import QuoteStatus
from ..models.workflow import Persona, Step, StepEdit, StepStatus


def _ordered(steps: Sequence[Step]) -> list[Step]:
    return sorted(steps, key=lambda s: s.step_order)


def initialize_steps(
    chain: Sequence[Persona],
    now: datetime,
    workflow_id: UUID | None = None,
    submitter_id: str | None = None,
) -> list[Step]:
    """
    Create the initial steps for a chain and gate them.

    Step 1 (AE) is approved on creation: the submitter is implicitly
    approving their own quote.
    """
    assert chain and chain[0] == Persona.AE, 'approval chain must start with AE'

    steps = [
        Step(
            workflow_id=workflow_id,
            step_order=position,
            persona=persona,
            created_at=now,
            updated_at=now,
        )
        for position, persona in enumerate(chain, start=1)
    ]
    steps[0] = steps[0].model_copy(
        update={
            'status': StepStatus.APPROVED,
            'approved_at': now,
            'approver_id': submitter_id,
        }
    )
    return gate(steps, now)


def gate(steps: Sequence[Step], now: datetime) -> list[Step]:
    """
    Apply the gating invariant. Idempotent.

    The newly pending step gets `pending_since = now`; a step that is already
    pending keeps its original timestamp. Steps pushed back to Waiting lose
    theirs.
    """
    ordered = _ordered(steps)
    if any(s.status == StepStatus.REJECTED for s in ordered):
        return ordered

    first_open = next((i for i, s in enumerate(ordered) if s.status != StepStatus.APPROVED), None)
    if first_open is None:
        return ordered

    gated: list[Step] = []
    for i, step in enumerate(ordered):
        if step.status == StepStatus.APPROVED:
            gated.append(step)
        elif i == first_open:
            if step.status == StepStatus.PENDING and step.pending_since is not None:
                gated.append(step)
            else:
                gated.append(
                    step.model_copy(
                        update={
                            'status': StepStatus.PENDING,
                            'pending_since': now,
                            'updated_at': now,
                        }
                    )
                )
        elif step.status == StepStatus.WAITING and step.pending_since is None:
            gated.append(step)
        else:
            gated.append(
                step.model_copy(
                    update={
                        'status': StepStatus.WAITING,
                        'pending_since': None,
                        'updated_at': now,
                    }
                )
            )
    return gated


def derive_quote_status(current: QuoteStatus | None, steps: Sequence[Step]) -> QuoteStatus:
    """
    Quote status as a pure function of step state.

    Sold is never downgraded. Zero steps counts as fully approved.
    """
    if current == QuoteStatus.SOLD:
        return QuoteStatus.SOLD
    statuses = {s.status for s in steps}
    if StepStatus.REJECTED in statuses:
        return QuoteStatus.REJECTED
    if StepStatus.PENDING in statuses:
        return QuoteStatus.PENDING
    return QuoteStatus.APPROVED


def renumber(steps: Sequence[Step]) -> list[Step]:
    """Rewrite step_order as 1..N following list order."""
    return [
        step if step.step_order == position else step.model_copy(update={'step_order': position})
        for position, step in enumerate(steps, start=1)
    ]


def decide(steps: Sequence[Step], status: StepStatus, now: datetime, approver_id: str | None) -> list[Step]:
    """
    Resolve the pending step as Approved or Rejected, then gate.

    Caller has already checked that a pending step exists and that the
    acting persona matches it.
    """
    assert status in (StepStatus.APPROVED, StepStatus.REJECTED)
    decided = []
    for step in _ordered(steps):
        if step.status == StepStatus.PENDING:
            step = step.model_copy(
                update={
                    'status': status,
                    'approved_at': now,
                    'approver_id': approver_id or step.approver_id,
                    'updated_at': now,
                }
            )
        decided.append(step)
    return gate(decided, now)


def apply_edit(
    current: Sequence[Step],
    edits: Sequence[StepEdit],
    now: datetime,
    workflow_id: UUID | None = None,
) -> list[Step]:
    """
    Build the replacement step list for a full-replace edit.

    The approved prefix of the current list (everything up to the last
    approved step) must appear unchanged at the head of the edit. Steps
    after it may be inserted, removed or reordered freely. Kept steps retain
    their identity and history; a kept Rejected step keeps the workflow
    frozen.

    Raises:
        InvalidEditError: an approved step would be removed, moved, demoted
            or changed, an approval would be fabricated, a step id is
            unknown or repeated, or the chain would not run AE ... LEGAL.
    """
    ordered = _ordered(current)
    last_approved = max(
        (i for i, s in enumerate(ordered) if s.status == StepStatus.APPROVED),
        default=-1,
    )
    prefix = ordered[: last_approved + 1]

    if len(edits) < len(prefix):
        raise InvalidEditError(
            'Approved steps cannot be deleted',
            context={'approved_steps': len(prefix), 'edited_steps': len(edits)},
        )

    result: list[Step] = []
    for position, (kept, edit) in enumerate(zip(prefix, edits), start=1):
        if (
            (edit.step_id is not None and edit.step_id != kept.id)
            or edit.persona != kept.persona
            or (edit.status is not None and edit.status != kept.status)
        ):
            raise InvalidEditError(
                'Approved steps must keep their position and status',
                context={'step_order': position, 'persona': kept.persona.value},
            )
        result.append(kept)

    by_id = {s.id: s for s in ordered}
    seen: set[UUID] = {s.id for s in prefix}
    for edit in edits[len(prefix):]:
        if edit.status == StepStatus.APPROVED:
            raise InvalidEditError(
                'Steps can only be approved through an approval action',
                context={'persona': edit.persona.value},
            )
        if edit.step_id is None:
            # step_order is assigned by renumber() below
            result.append(
                Step(
                    workflow_id=workflow_id,
                    step_order=1,
                    persona=edit.persona,
                    created_at=now,
                    updated_at=now,
                )
            )
            continue

        existing = by_id.get(edit.step_id)
        if existing is None:
            raise InvalidEditError('Unknown step', context={'step_id': str(edit.step_id)})
        if edit.step_id in seen:
            raise InvalidEditError('Step listed more than once', context={'step_id': str(edit.step_id)})
        if existing.status == StepStatus.APPROVED:
            raise InvalidEditError(
                'Approved steps cannot be moved',
                context={'step_id': str(edit.step_id)},
            )
        if existing.persona != edit.persona:
            raise InvalidEditError(
                'An existing step cannot change persona',
                context={'step_id': str(edit.step_id), 'persona': existing.persona.value},
            )
        seen.add(edit.step_id)
        result.append(existing)

    if result:
        if result[0].persona != Persona.AE:
            raise InvalidEditError('The first step must be AE', context={'persona': result[0].persona.value})
        if result[-1].persona != Persona.LEGAL:
            raise InvalidEditError('The last step must be LEGAL', context={'persona': result[-1].persona.value})

    return gate(renumber(result), now)


def check_invariants(steps: Sequence[Step]) -> None:
    """Assert the workflow invariants. A failure is a programming error."""
    ordered = _ordered(steps)
    assert [s.step_order for s in ordered] == list(range(1, len(ordered) + 1)), 'step_order must be 1..N'

    pending = [s for s in ordered if s.status == StepStatus.PENDING]
    if any(s.status == StepStatus.REJECTED for s in ordered):
        assert not pending, 'a rejected workflow has no pending step'
        return

    assert len(pending) <= 1, 'at most one pending step'
    first_open = next((s for s in ordered if s.status != StepStatus.APPROVED), None)
    if first_open is not None:
        assert first_open.status == StepStatus.PENDING, 'first open step must be pending'

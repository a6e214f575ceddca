"""
Approval workflow models: Workflow, Step and the editor's StepEdit.

A Workflow belongs 1:1 to a Quote and holds an ordered list of Steps.
Each Step is a sign-off required from one persona. Gating (exactly one
actionable step at a time) is computed by deal_desk.engine.gating; these
models only carry state.

Step status lifecycle:
    Waiting -> Pending -> Approved | Rejected

`pending_since` is the gating timestamp read by the insights consumer to
measure wait time. It is set when a step becomes Pending and cleared when
the step is pushed back to Waiting.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from ..utils import utcnow, uuid7


class Persona(str, Enum):
    """Named approval authorities."""

    AE = 'AE'
    DEALDESK = 'DEALDESK'
    CRO = 'CRO'
    FINANCE = 'FINANCE'
    LEGAL = 'LEGAL'


class StepStatus(str, Enum):
    """Status lifecycle for a single approval step."""

    WAITING = 'Waiting'
    PENDING = 'Pending'
    APPROVED = 'Approved'
    REJECTED = 'Rejected'


class Step(BaseModel):
    """One sign-off in a quote's approval chain."""

    id: UUID = Field(default_factory=uuid7)
    workflow_id: UUID | None = Field(default=None, description='Owning workflow')
    step_order: int = Field(..., ge=1, description='1-based position, contiguous within the workflow')
    persona: Persona
    approver_id: str | None = Field(
        default=None, description='Identity of the user who approved or rejected the step'
    )
    status: StepStatus = StepStatus.WAITING
    approved_at: datetime | None = Field(
        default=None, description='Set only when the step is Approved or Rejected'
    )
    pending_since: datetime | None = Field(
        default=None, description='When the step last became Pending'
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_approved(self) -> bool:
        return self.status == StepStatus.APPROVED


class Workflow(BaseModel):
    """Ordered approval chain for a single quote."""

    id: UUID = Field(default_factory=uuid7)
    quote_id: UUID
    steps: list[Step] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def pending_step(self) -> Step | None:
        """The single actionable step, if any."""
        return next((s for s in self.steps if s.status == StepStatus.PENDING), None)

    @property
    def personas(self) -> list[Persona]:
        return [s.persona for s in self.steps]

    @property
    def statuses(self) -> list[StepStatus]:
        return [s.status for s in self.steps]


class StepEdit(BaseModel):
    """
    One entry of a full-replace workflow edit.

    `step_id` keeps the identity (and history) of an existing step; omit it
    to insert a new step. `status` is advisory: the engine recomputes gating
    and only uses it to detect attempts to demote or fabricate approvals.
    """

    persona: Persona
    step_id: UUID | None = None
    status: StepStatus | None = None

"""
Tests for WorkflowEngine against a real (SQLite) database.

Tests cover:
- Workflow creation with quote creation
- Approving through the chain, persona mismatch, missing pending step
- Rejection freezing the workflow
- Concurrent decisions on the same step
- Identity-bound approvals
- Full-replace edits and single-step deletion
- Marking quotes sold
"""

import asyncio
from uuid import uuid4

import pytest

from deal_desk.errors import (
    AuthorizationError,
    InvalidEditError,
    NotFoundError,
    PersonaMismatchError,
    QuoteStateError,
)
from deal_desk.models import Actor, Persona


async def create_quote(service, data, **overrides):
    result = await service.create_quote({**data, **overrides})
    assert result.success, result.to_dict()
    return result.quote_id


async def step_view(service, quote_id):
    summary = await service.get_quote(quote_id)
    return summary['status'], [(s['persona'], s['status']) for s in summary['steps']]


class TestInitialize:
    """Workflow created with the quote."""

    @pytest.mark.asyncio
    async def test_discount_tier_chain(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)

        status, steps = await step_view(service, quote_id)

        assert status == 'Pending'
        assert steps == [('AE', 'Approved'), ('DEALDESK', 'Pending'), ('LEGAL', 'Waiting')]

    @pytest.mark.asyncio
    async def test_pending_since_recorded(self, service, sample_input, clock):
        quote_id = await create_quote(service, sample_input)

        summary = await service.get_quote(quote_id)

        assert summary['steps'][0]['approved_at'] == clock.now.isoformat()
        assert summary['steps'][1]['pending_since'] == clock.now.isoformat()
        assert summary['steps'][2]['pending_since'] is None


class TestApprove:
    """Approval actions."""

    @pytest.mark.asyncio
    async def test_approve_through_chain(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)

        result = await service.approve_as_role(quote_id, 'DEALDESK')
        assert result['success'] is True
        assert result['new_status'] == 'Pending'
        assert (await step_view(service, quote_id))[1] == [
            ('AE', 'Approved'),
            ('DEALDESK', 'Approved'),
            ('LEGAL', 'Pending'),
        ]

        result = await service.approve_as_role(quote_id, Persona.LEGAL)
        assert result['new_status'] == 'Approved'
        status, steps = await step_view(service, quote_id)
        assert status == 'Approved'
        assert all(s == 'Approved' for _, s in steps)

    @pytest.mark.asyncio
    async def test_wrong_persona_changes_nothing(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        before = await step_view(service, quote_id)

        with pytest.raises(PersonaMismatchError) as exc_info:
            await service.approve_as_role(quote_id, 'CRO')

        assert exc_info.value.context['pending_persona'] == 'DEALDESK'
        assert await step_view(service, quote_id) == before

    @pytest.mark.asyncio
    async def test_unknown_role(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)

        with pytest.raises(PersonaMismatchError):
            await service.approve_as_role(quote_id, 'INTERN')

    @pytest.mark.asyncio
    async def test_nothing_pending(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        await service.approve_as_role(quote_id, 'DEALDESK')
        await service.approve_as_role(quote_id, 'LEGAL')

        with pytest.raises(NotFoundError):
            await service.approve_as_role(quote_id, 'LEGAL')

    @pytest.mark.asyncio
    async def test_missing_quote(self, service):
        with pytest.raises(NotFoundError):
            await service.approve_as_role(uuid4(), 'DEALDESK')

    @pytest.mark.asyncio
    async def test_malformed_quote_id(self, service):
        with pytest.raises(NotFoundError):
            await service.approve_as_role('not-a-uuid', 'DEALDESK')


class TestReject:
    """Rejection freezes the workflow."""

    @pytest.mark.asyncio
    async def test_reject_freezes(self, service, sample_input, clock):
        quote_id = await create_quote(service, sample_input)
        clock.advance(hours=2)

        result = await service.reject_as_role(quote_id, 'DEALDESK')

        assert result['new_status'] == 'Rejected'
        summary = await service.get_quote(quote_id)
        assert [s['status'] for s in summary['steps']] == ['Approved', 'Rejected', 'Waiting']
        assert summary['steps'][1]['approved_at'] == clock.now.isoformat()

        with pytest.raises(NotFoundError):
            await service.approve_as_role(quote_id, 'LEGAL')


class TestConcurrentDecisions:
    """Two decisions racing on the same pending step."""

    @pytest.mark.asyncio
    async def test_second_decision_sees_first(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)

        outcomes = await asyncio.gather(
            service.approve_as_role(quote_id, 'DEALDESK'),
            service.reject_as_role(quote_id, 'DEALDESK'),
            return_exceptions=True,
        )

        succeeded = [o for o in outcomes if isinstance(o, dict)]
        failed = [o for o in outcomes if isinstance(o, Exception)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], (NotFoundError, PersonaMismatchError))

        status, steps = await step_view(service, quote_id)
        assert status == succeeded[0]['new_status']
        assert steps[1] == ('DEALDESK', 'Approved' if status == 'Pending' else 'Rejected')

    @pytest.mark.asyncio
    async def test_same_decision_twice(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)

        outcomes = await asyncio.gather(
            service.approve_as_role(quote_id, 'DEALDESK'),
            service.approve_as_role(quote_id, 'DEALDESK'),
            return_exceptions=True,
        )

        assert sum(isinstance(o, dict) for o in outcomes) == 1
        assert sum(isinstance(o, PersonaMismatchError) for o in outcomes) == 1
        assert (await step_view(service, quote_id))[1] == [
            ('AE', 'Approved'),
            ('DEALDESK', 'Approved'),
            ('LEGAL', 'Pending'),
        ]


class TestActorRoles:
    """Approvals bound to a resolved identity."""

    @pytest.mark.asyncio
    async def test_actor_without_role(self, service, sample_input, actor):
        quote_id = await create_quote(service, sample_input)

        with pytest.raises(AuthorizationError):
            await service.approve_as_role(quote_id, 'DEALDESK', actor=actor)

        assert (await step_view(service, quote_id))[1][1] == ('DEALDESK', 'Pending')

    @pytest.mark.asyncio
    async def test_actor_recorded_as_approver(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        desk = Actor(user_id='user_desk', org_id='org_test', roles={Persona.DEALDESK})

        await service.approve_as_role(quote_id, 'DEALDESK', actor=desk)

        summary = await service.get_quote(quote_id)
        assert summary['steps'][1]['approver_id'] == 'user_desk'


class TestReplaceWorkflow:
    """Full-replace edits."""

    @pytest.mark.asyncio
    async def test_insert_finance_before_dealdesk(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        ae, dealdesk, legal = (await service.get_quote(quote_id))['steps']

        result = await service.replace_workflow(
            quote_id,
            [
                {'persona': 'AE', 'step_id': ae['step_id'], 'status': 'Approved'},
                {'persona': 'FINANCE'},
                {'persona': 'DEALDESK', 'step_id': dealdesk['step_id']},
                {'persona': 'LEGAL', 'step_id': legal['step_id']},
            ],
        )

        assert result['success'] is True
        summary = await service.get_quote(quote_id)
        assert [(s['step_order'], s['persona'], s['status']) for s in summary['steps']] == [
            (1, 'AE', 'Approved'),
            (2, 'FINANCE', 'Pending'),
            (3, 'DEALDESK', 'Waiting'),
            (4, 'LEGAL', 'Waiting'),
        ]
        assert summary['steps'][2]['step_id'] == dealdesk['step_id']
        assert summary['steps'][2]['pending_since'] is None

    @pytest.mark.asyncio
    async def test_removing_approved_step_is_all_or_nothing(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        await service.approve_as_role(quote_id, 'DEALDESK')
        before = await step_view(service, quote_id)
        ae, _, legal = (await service.get_quote(quote_id))['steps']

        with pytest.raises(InvalidEditError):
            await service.replace_workflow(
                quote_id,
                [
                    {'persona': 'AE', 'step_id': ae['step_id']},
                    {'persona': 'LEGAL', 'step_id': legal['step_id']},
                ],
            )

        assert await step_view(service, quote_id) == before

    @pytest.mark.asyncio
    async def test_appending_step_reopens_approved_quote(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        await service.approve_as_role(quote_id, 'DEALDESK')
        await service.approve_as_role(quote_id, 'LEGAL')
        steps = (await service.get_quote(quote_id))['steps']

        result = await service.replace_workflow(
            quote_id,
            [{'persona': s['persona'], 'step_id': s['step_id']} for s in steps]
            + [{'persona': 'LEGAL'}],
        )

        assert result['new_status'] == 'Pending'

    @pytest.mark.asyncio
    async def test_missing_quote(self, service):
        with pytest.raises(NotFoundError):
            await service.replace_workflow(uuid4(), [{'persona': 'AE'}, {'persona': 'LEGAL'}])


class TestDeleteStep:
    """Single-step deletion."""

    @pytest.mark.asyncio
    async def test_delete_pending_step(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        dealdesk = (await service.get_quote(quote_id))['steps'][1]

        result = await service.delete_step(quote_id, dealdesk['step_id'])

        assert result['new_status'] == 'Pending'
        summary = await service.get_quote(quote_id)
        assert [(s['step_order'], s['persona'], s['status']) for s in summary['steps']] == [
            (1, 'AE', 'Approved'),
            (2, 'LEGAL', 'Pending'),
        ]

    @pytest.mark.asyncio
    async def test_delete_approved_step(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        ae = (await service.get_quote(quote_id))['steps'][0]

        with pytest.raises(InvalidEditError):
            await service.delete_step(quote_id, ae['step_id'])

    @pytest.mark.asyncio
    async def test_delete_legal_breaks_chain(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        legal = (await service.get_quote(quote_id))['steps'][2]

        with pytest.raises(InvalidEditError):
            await service.delete_step(quote_id, legal['step_id'])

    @pytest.mark.asyncio
    async def test_delete_unknown_step(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)

        with pytest.raises(NotFoundError):
            await service.delete_step(quote_id, uuid4())

    @pytest.mark.asyncio
    async def test_delete_rejected_step_resumes(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        await service.reject_as_role(quote_id, 'DEALDESK')
        dealdesk = (await service.get_quote(quote_id))['steps'][1]

        result = await service.delete_step(quote_id, dealdesk['step_id'])

        assert result['new_status'] == 'Pending'
        assert (await step_view(service, quote_id))[1] == [('AE', 'Approved'), ('LEGAL', 'Pending')]


class TestMarkSold:
    """Quote-level transition to Sold."""

    @pytest.mark.asyncio
    async def test_pending_quote_cannot_be_sold(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)

        with pytest.raises(QuoteStateError):
            await service.mark_sold(quote_id)

    @pytest.mark.asyncio
    async def test_sold_is_sticky(self, service, sample_input):
        quote_id = await create_quote(service, sample_input)
        await service.approve_as_role(quote_id, 'DEALDESK')
        await service.approve_as_role(quote_id, 'LEGAL')

        result = await service.mark_sold(quote_id)
        assert result['new_status'] == 'Sold'

        steps = (await service.get_quote(quote_id))['steps']
        result = await service.replace_workflow(
            quote_id,
            [{'persona': s['persona'], 'step_id': s['step_id']} for s in steps]
            + [{'persona': 'LEGAL'}],
        )

        assert result['new_status'] == 'Sold'
        assert (await service.get_quote(quote_id))['status'] == 'Sold'

    @pytest.mark.asyncio
    async def test_missing_quote(self, service):
        with pytest.raises(NotFoundError):
            await service.mark_sold(uuid4())

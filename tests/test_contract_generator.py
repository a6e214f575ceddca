"""
Tests for contract drafting.

Unit tests mock the OpenAI client; the live test needs OPENAI_API_KEY.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from deal_desk.clients.openai_client import OpenAIClient
from deal_desk.documents import ContractGenerator
from deal_desk.errors import OpenAIError, OpenAIRateLimitError
from deal_desk.models import PaymentKind, Quote, QuoteAddOn
from deal_desk.prompts.contract import CONTRACT_SYSTEM_PROMPT, build_contract_prompt, describe_payment_terms


@pytest.fixture
def quote() -> Quote:
    return Quote(
        org_id='org_test',
        package_id='pkg_growth',
        package_name='Growth Plan',
        seats=50,
        customer_name='Globex Corporation',
        add_ons=[QuoteAddOn(add_on_id='addon_sso', name='SSO', unit_price=Decimal('10.00'))],
        payment_kind=PaymentKind.BOTH,
        net_days=45,
        prepay_percent=Decimal('30'),
        subtotal=Decimal('1010.00'),
        discount_percent=Decimal('10'),
        total=Decimal('909.00'),
    )


class TestContractPrompt:
    """Prompt construction."""

    def test_messages(self, quote):
        messages = build_contract_prompt(quote, unit_price='20.00')

        assert messages[0] == {'role': 'system', 'content': CONTRACT_SYSTEM_PROMPT}
        user = messages[1]['content']
        assert 'Customer: Globex Corporation' in user
        assert 'Unit price per seat: $20.00' in user
        assert 'Add-on: SSO ($10.00)' in user
        assert 'Total: $909.00' in user
        assert 'Payment terms: 30% prepaid, balance net 45 days' in user

    def test_unit_price_optional(self, quote):
        user = build_contract_prompt(quote)[1]['content']

        assert 'Unit price' not in user

    def test_payment_terms(self, quote):
        assert describe_payment_terms(quote.model_copy(update={'payment_kind': PaymentKind.NET})) == 'Net 45 days'
        assert describe_payment_terms(quote.model_copy(update={'payment_kind': PaymentKind.PREPAY})) == '30% prepaid'


class TestContractGenerator:
    """Generation with a mocked client."""

    @pytest.mark.asyncio
    async def test_returns_text(self, quote):
        client = AsyncMock()
        client.chat_completion.return_value = '  <h1>Order Form</h1>\n'
        generator = ContractGenerator(client, model='gpt-test')

        document = await generator.generate(quote, unit_price='20.00')

        assert document == '<h1>Order Form</h1>'
        kwargs = client.chat_completion.await_args.kwargs
        assert kwargs['model'] == 'gpt-test'

    @pytest.mark.asyncio
    async def test_empty_response_is_none(self, quote):
        client = AsyncMock()
        client.chat_completion.return_value = '   '

        assert await ContractGenerator(client).generate(quote) is None

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self, quote):
        client = AsyncMock()
        client.chat_completion.side_effect = RuntimeError('Rate limit reached for requests')

        with pytest.raises(OpenAIRateLimitError) as exc_info:
            await ContractGenerator(client).generate(quote)

        assert exc_info.value.context['quote_id'] == str(quote.id)
        assert isinstance(exc_info.value, OpenAIError)


class TestContractGeneratorLive:
    """Live drafting against the OpenAI API."""

    @pytest.mark.asyncio
    async def test_drafts_contract(self, openai_api_key: str, quote):
        client = OpenAIClient(api_key=openai_api_key)
        try:
            document = await ContractGenerator(client).generate(quote, unit_price='20.00')
            assert document is not None
            assert 'Globex' in document
        finally:
            await client.close()

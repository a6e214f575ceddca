"""
Best-effort contract document generation.

Wraps the OpenAI chat client behind the document-generator contract
`generate(quote) -> str | None`. Generation never blocks quote creation:
the quote service calls this after the creation transaction commits and
stores whatever comes back.
"""

from typing import Protocol

import structlog

from .clients.openai_client import OpenAIClient
from .errors import wrap_openai_error
from .models.quote import Quote
from .prompts.contract import build_contract_prompt

logger = structlog.get_logger(__name__)


class DocumentGenerator(Protocol):
    """What the quote service needs from a document generator."""

    async def generate(self, quote: Quote, unit_price: str | None = None) -> str | None:
        ...


class ContractGenerator:
    """Drafts a contract for a quote with an LLM."""

    def __init__(self, openai_client: OpenAIClient, model: str | None = None):
        self.openai = openai_client
        self.model = model

    async def generate(self, quote: Quote, unit_price: str | None = None) -> str | None:
        """
        Draft the contract text.

        Returns:
            Contract HTML, or None when the model returns nothing

        Raises:
            OpenAIError: the API call failed (after the client's retries)
        """
        messages = build_contract_prompt(quote, unit_price=unit_price)
        try:
            text = await self.openai.chat_completion(messages, model=self.model, temperature=0.2)
        except Exception as exc:
            raise wrap_openai_error(exc, context={'quote_id': str(quote.id)}) from exc

        text = text.strip()
        if not text:
            logger.warning('contract_generator.empty_response', quote_id=str(quote.id))
            return None
        return text

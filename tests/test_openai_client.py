"""
Live integration tests for the OpenAI client.

These tests hit the actual OpenAI API and require OPENAI_API_KEY to be set.
Run with: pytest tests/test_openai_client.py -v
"""

import pytest

from deal_desk.clients.openai_client import OpenAIClient


class TestOpenAIClientInit:
    """Construction without network access."""

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv('OPENAI_API_KEY', raising=False)

        with pytest.raises(ValueError):
            OpenAIClient()

    def test_model_override(self):
        client = OpenAIClient(api_key='sk-test', chat_model='gpt-test')

        assert client.chat_model == 'gpt-test'


class TestOpenAIHealth:
    """Test OpenAI API connectivity."""

    @pytest.mark.asyncio
    async def test_health_check(self, openai_api_key: str):
        """Verify we can connect to OpenAI API."""
        client = OpenAIClient(api_key=openai_api_key)
        try:
            result = await client.health_check()
            assert result['healthy'] is True
            assert 'chat_model' in result
        finally:
            await client.close()


class TestOpenAIChat:
    """Test chat completions."""

    @pytest.mark.asyncio
    async def test_simple_completion(self, openai_api_key: str):
        client = OpenAIClient(api_key=openai_api_key)
        try:
            text = await client.chat_completion(
                [
                    {'role': 'system', 'content': 'Reply with the single word: ready'},
                    {'role': 'user', 'content': 'Status?'},
                ],
                max_tokens=5,
            )
            assert 'ready' in text.lower()
        finally:
            await client.close()

# tests/integrations/test_prompting.py
"""
Tests for building chat messages from selected contexts.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from contextgate.exceptions import ExternalServiceError
from contextgate.integrations.prompting import (
    DEFAULT_SYSTEM_PROMPT,
    build_chat_messages,
    complete_with_context,
)
from contextgate.models import CompletionResult, Context, RequestResult, TokenUsage


def _contexts():
    return [
        Context(session_id="s1", user_id="u1", domain="medical", content="Antibiotics first.", priority=9),
        Context(session_id="s1", user_id="u1", domain="medical", content="Rest and fluids.", priority=5),
    ]


class TestBuildChatMessages:
    def test_order_and_roles(self):
        messages = build_chat_messages("How to treat pneumonia?", _contexts())
        assert [m.role for m in messages] == ["system", "system", "system", "user"]
        assert messages[0].content == DEFAULT_SYSTEM_PROMPT
        assert "Antibiotics first." in messages[1].content
        assert "Rest and fluids." in messages[2].content
        assert messages[-1].content == "How to treat pneumonia?"

    def test_without_system_prompt(self):
        messages = build_chat_messages("q", [], system_prompt=None)
        assert [m.model_dump() for m in messages] == [{"role": "user", "content": "q"}]


class TestCompleteWithContext:
    @pytest.mark.asyncio
    async def test_passes_messages_to_client(self):
        completion = CompletionResult(text="Use antibiotics.", token_usage=TokenUsage(total_tokens=42))
        client = MagicMock()
        client.complete = AsyncMock(return_value=completion)
        result = RequestResult(
            user_id="u1", session_id="s1", query="q", domain="medical", selected_contexts=_contexts()
        )

        assert await complete_with_context(client, result) is completion
        (messages,), _ = client.complete.await_args
        assert len(messages) == 4

    @pytest.mark.asyncio
    async def test_client_failure_wrapped(self):
        client = MagicMock()
        client.complete = AsyncMock(side_effect=TimeoutError("slow"))
        result = RequestResult(user_id="u1", session_id="s1", query="q", domain="d")

        with pytest.raises(ExternalServiceError):
            await complete_with_context(client, result)

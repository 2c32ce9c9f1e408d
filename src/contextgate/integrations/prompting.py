# src/contextgate/integrations/prompting.py
"""
Building AI completion requests from selected contexts.

After :meth:`AdmissionOrchestrator.process` returns, callers typically turn
the selected contexts into a chat transcript: one system instruction, one
system message per context (best first), then the user's query.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..exceptions import ContextGateError, ExternalServiceError
from ..models import ChatMessage, CompletionResult, Context, RequestResult, Role
from .base import AIClient

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a knowledgeable assistant. Answer the user's question using the "
    "context information provided."
)


def build_chat_messages(
    query: str,
    contexts: Sequence[Context],
    system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT,
) -> List[ChatMessage]:
    """
    Ordered ``{role, content}`` messages for a completion request.

    Args:
        query: The user's question, sent last.
        contexts: Contexts to include, in the order given.
        system_prompt: Leading instruction; None omits it.
    """
    messages: List[ChatMessage] = []
    if system_prompt:
        messages.append(ChatMessage(role=Role.SYSTEM, content=system_prompt))
    for context in contexts:
        messages.append(
            ChatMessage(role=Role.SYSTEM, content=f"Context information ({context.domain}): {context.content}")
        )
    messages.append(ChatMessage(role=Role.USER, content=query))
    return messages


async def complete_with_context(
    ai_client: AIClient,
    result: RequestResult,
    system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT,
) -> CompletionResult:
    """
    Ask ``ai_client`` to answer ``result.query`` with its selected contexts.

    Raises:
        ExternalServiceError: If the completion call fails.
    """
    messages = build_chat_messages(result.query, result.selected_contexts, system_prompt)
    try:
        completion = await ai_client.complete(messages)
    except ContextGateError:
        raise
    except Exception as e:
        raise ExternalServiceError("ai-completion", f"Completion failed: {e}") from e
    logger.debug(
        f"Completion for request {result.request_id} used "
        f"{completion.token_usage.total_tokens} tokens"
    )
    return completion

# src/contextgate/integrations/__init__.py
"""
Seams to external collaborators: domain classification, AI completion and search.
"""

from .base import AIClient, DomainClassifier, SearchClient, resolve
from .prompting import DEFAULT_SYSTEM_PROMPT, build_chat_messages, complete_with_context
from .search import SearchContextLoader, format_search_results

__all__ = [
    "AIClient",
    "DEFAULT_SYSTEM_PROMPT",
    "DomainClassifier",
    "SearchClient",
    "SearchContextLoader",
    "build_chat_messages",
    "complete_with_context",
    "format_search_results",
    "resolve",
]

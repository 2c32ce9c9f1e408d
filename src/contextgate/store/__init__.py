# src/contextgate/store/__init__.py
"""
Context storage: the indexed in-memory store and its periodic reaper.
"""

from .context_store import ContextStore, validate_priority
from .locks import AsyncReadWriteLock
from .reaper import ContextReaper

__all__ = ["AsyncReadWriteLock", "ContextReaper", "ContextStore", "validate_priority"]

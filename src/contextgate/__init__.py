# src/contextgate/__init__.py
"""
ContextGate - an in-memory context store with admission-controlled selection.

The library keeps short-lived knowledge records ("contexts") indexed by
session, user and domain, ranks them for incoming queries under a
configurable strategy, and admits those queries under a concurrency bound,
staged timeouts and per-user rate limits.
"""

from importlib.metadata import PackageNotFoundError, version

from .api import ContextGate
from .config import ContextGateConfig, load_config
from .exceptions import (
    ConfigError,
    ContextGateError,
    ContextNotFoundError,
    ExternalServiceError,
    InternalError,
    InvalidPriorityError,
    RateLimitExceededError,
    RequestStage,
    ResourceUnavailableError,
    SelectionFailedError,
    StageTimeoutError,
)
from .integrations import (
    AIClient,
    DomainClassifier,
    SearchClient,
    SearchContextLoader,
    build_chat_messages,
    complete_with_context,
)
from .logging_config import configure_logging, log_display
from .models import (
    ChatMessage,
    CompletionResult,
    Context,
    ContextSelectionStrategy,
    RequestResult,
    Role,
    SearchResult,
    TokenUsage,
)
from .observability import MonitoringSystem
from .processing import AdmissionOrchestrator, UserRateLimiter
from .selection import SelectionEngine
from .store import ContextReaper, ContextStore

try:
    __version__ = version("contextgate")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    # Facade
    "ContextGate",
    # Components
    "AdmissionOrchestrator",
    "ContextReaper",
    "ContextStore",
    "MonitoringSystem",
    "SearchContextLoader",
    "SelectionEngine",
    "UserRateLimiter",
    # Configuration and logging
    "ContextGateConfig",
    "configure_logging",
    "load_config",
    "log_display",
    # Models
    "ChatMessage",
    "CompletionResult",
    "Context",
    "ContextSelectionStrategy",
    "RequestResult",
    "Role",
    "SearchResult",
    "TokenUsage",
    # Collaborator protocols
    "AIClient",
    "DomainClassifier",
    "SearchClient",
    "build_chat_messages",
    "complete_with_context",
    # Exceptions
    "ConfigError",
    "ContextGateError",
    "ContextNotFoundError",
    "ExternalServiceError",
    "InternalError",
    "InvalidPriorityError",
    "RateLimitExceededError",
    "RequestStage",
    "ResourceUnavailableError",
    "SelectionFailedError",
    "StageTimeoutError",
    "__version__",
]

# src/contextgate/exceptions.py
"""
Custom exceptions for the ContextGate library.

This module defines the closed hierarchy of exception classes raised by the
context store, the selection engine and the admission orchestrator. Every
public operation either returns a value or raises one of these, so callers
can distinguish "rejected before doing work" (rate limit) from "timed out
doing work" (selection timeout) without parsing messages.
"""

from enum import Enum
from typing import Optional


class RequestStage(str, Enum):
    """Stages of an admitted request, used to tag timeouts and failures."""
    REQUEST = "request"
    CONTEXT_SELECTION = "context_selection"


class ContextGateError(Exception):
    """Base class for all ContextGate specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in ContextGate."):
        super().__init__(message)


class ConfigError(ContextGateError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)


class ContextNotFoundError(ContextGateError):
    """Raised when a context id is unknown to the store."""
    def __init__(self, context_id: str, message: str = "Context not found."):
        self.context_id = context_id
        super().__init__(f"{message} Context ID: '{context_id}'")


class InvalidPriorityError(ContextGateError):
    """Raised when a priority falls outside the closed range [0, 10]."""
    def __init__(self, priority: object, message: str = "Priority must be an integer in [0, 10]."):
        self.priority = priority
        super().__init__(f"{message} Got: {priority!r}")


class RateLimitExceededError(ContextGateError):
    """Raised when a user has exhausted their per-window request allowance."""
    def __init__(self, user_id: str, limit: int, message: str = "Rate limit exceeded."):
        self.user_id = user_id
        self.limit = limit
        super().__init__(f"{message} User: '{user_id}', Limit: {limit} requests per window.")


class StageTimeoutError(ContextGateError):
    """
    Raised when a bounded stage of request processing expires.

    The ``stage`` attribute is either ``RequestStage.REQUEST`` (the overall
    budget, including waiting for a permit) or
    ``RequestStage.CONTEXT_SELECTION``.
    """
    def __init__(self, stage: RequestStage, timeout_seconds: Optional[float] = None, message: str = "Timed out."):
        self.stage = RequestStage(stage)
        self.timeout_seconds = timeout_seconds
        detail = f" after {timeout_seconds}s" if timeout_seconds is not None else ""
        super().__init__(f"{message} Stage: '{self.stage.value}'{detail}.")


class ResourceUnavailableError(ContextGateError):
    """Raised when no admission permit can ever be obtained (e.g. an empty pool)."""
    def __init__(self, message: str = "Admission permit unavailable."):
        super().__init__(message)


class SelectionFailedError(ContextGateError):
    """Wraps an unexpected failure raised from inside the selection stage."""
    def __init__(self, message: str = "Context selection failed."):
        super().__init__(message)


class InternalError(ContextGateError):
    """Raised for unexpected internal failures not covered by a more specific kind."""
    def __init__(self, message: str = "Internal error."):
        super().__init__(message)


class ExternalServiceError(InternalError):
    """Raised when an external collaborator (search, AI completion) fails."""
    def __init__(self, service_name: str = "Unknown", message: str = "External service error."):
        self.service_name = service_name
        super().__init__(f"Error with service '{service_name}': {message}")

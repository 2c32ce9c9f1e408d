# tests/test_exceptions.py
"""
Tests for the contextgate.exceptions module.

Covers the hierarchy, the attributes each error carries and message
formatting.
"""

import pytest

from contextgate.exceptions import (
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


class TestContextGateError:
    """Tests for the base exception."""

    def test_default_message(self):
        assert "unspecified error" in str(ContextGateError()).lower()

    def test_custom_message(self):
        assert str(ContextGateError("boom")) == "boom"

    @pytest.mark.parametrize(
        "error",
        [
            ConfigError(),
            ContextNotFoundError("abc"),
            InvalidPriorityError(11),
            RateLimitExceededError("u1", 2),
            StageTimeoutError(RequestStage.REQUEST),
            ResourceUnavailableError(),
            SelectionFailedError(),
            InternalError(),
            ExternalServiceError("search"),
        ],
    )
    def test_every_error_is_a_contextgate_error(self, error):
        assert isinstance(error, ContextGateError)


class TestContextNotFoundError:
    def test_carries_context_id(self):
        error = ContextNotFoundError("ctx-1")
        assert error.context_id == "ctx-1"
        assert "ctx-1" in str(error)


class TestInvalidPriorityError:
    def test_carries_priority(self):
        error = InvalidPriorityError(42)
        assert error.priority == 42
        assert "42" in str(error)


class TestRateLimitExceededError:
    def test_carries_user_and_limit(self):
        error = RateLimitExceededError("u1", 2)
        assert error.user_id == "u1"
        assert error.limit == 2
        assert "u1" in str(error)


class TestStageTimeoutError:
    def test_stage_from_enum(self):
        error = StageTimeoutError(RequestStage.CONTEXT_SELECTION, 5)
        assert error.stage is RequestStage.CONTEXT_SELECTION
        assert error.timeout_seconds == 5
        assert "context_selection" in str(error)

    def test_stage_from_string(self):
        error = StageTimeoutError("request")
        assert error.stage is RequestStage.REQUEST
        assert error.timeout_seconds is None

    def test_unknown_stage_rejected(self):
        with pytest.raises(ValueError):
            StageTimeoutError("storage")


class TestExternalServiceError:
    def test_is_internal_error(self):
        error = ExternalServiceError("web-search", "down")
        assert isinstance(error, InternalError)
        assert error.service_name == "web-search"
        assert "web-search" in str(error)
        assert "down" in str(error)

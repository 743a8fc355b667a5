"""Tests for the tickspine error hierarchy."""

import pytest

from tickspine.core.errors import (
    ConfigurationError,
    DeliveryError,
    EnumerationError,
    ErrorCategory,
    InvalidTransitionError,
    JobNotFoundError,
    PersistenceError,
    QueueNotFoundError,
    QueueUnavailableError,
    TickSpineError,
    TransientFetchError,
    UnknownJobError,
    categorize_error,
    describe_error,
    is_retryable,
)


class TestRetryability:
    @pytest.mark.parametrize(
        "error_cls",
        [TransientFetchError, DeliveryError, PersistenceError, EnumerationError],
    )
    def test_operational_errors_are_retryable(self, error_cls):
        """Fetch, delivery, storage and catalog failures default to retryable."""
        assert error_cls("boom").retryable is True

    def test_queue_unavailable_is_fatal(self):
        """An unopenable store is not retryable even though it is a PersistenceError."""
        err = QueueUnavailableError("cannot open")
        assert isinstance(err, PersistenceError)
        assert err.retryable is False
        assert err.category == ErrorCategory.STORAGE

    def test_retryable_override(self):
        """Per-instance retryable overrides the class default."""
        assert TransientFetchError("x", retryable=False).retryable is False

    def test_is_retryable_builtin_errors(self):
        """Plain network exceptions count as retryable, value errors do not."""
        assert is_retryable(ConnectionError("reset")) is True
        assert is_retryable(TimeoutError()) is True
        assert is_retryable(ValueError("bad")) is False


class TestCategorize:
    def test_tickspine_error_category(self):
        assert categorize_error(EnumerationError("x")) == ErrorCategory.SOURCE

    def test_builtin_categories(self):
        assert categorize_error(ConnectionError()) == ErrorCategory.NETWORK
        assert categorize_error(OSError()) == ErrorCategory.STORAGE
        assert categorize_error(KeyError("k")) == ErrorCategory.UNKNOWN


class TestContext:
    def test_with_context_known_and_extra_fields(self):
        """Known fields land on the context, unknown ones in metadata."""
        err = PersistenceError("write failed").with_context(queue="data-collection", table="jobs")
        assert err.context.queue == "data-collection"
        assert err.context.metadata == {"table": "jobs"}

    def test_to_dict_includes_context_and_cause(self):
        cause = OSError("disk full")
        err = PersistenceError("write failed", cause=cause).with_context(job_id="abc")
        data = err.to_dict()
        assert data["error_type"] == "PersistenceError"
        assert data["category"] == "STORAGE"
        assert data["retryable"] is True
        assert data["context"] == {"job_id": "abc"}
        assert data["cause"] == "disk full"
        assert err.__cause__ is cause

    def test_to_dict_omits_empty_context(self):
        assert "context" not in ConfigurationError("bad").to_dict()


class TestSpecificErrors:
    def test_unknown_job_lists_available(self):
        err = UnknownJobError("collect-news", ["collect-quotes", "collect-candles"])
        assert err.job_name == "collect-news"
        assert "collect-candles, collect-quotes" in err.message
        assert isinstance(err, ConfigurationError)

    def test_job_not_found(self):
        err = JobNotFoundError("notification", "j-1")
        assert err.category == ErrorCategory.NOT_FOUND
        assert "j-1" in str(err)
        assert err.context.queue == "notification"

    def test_queue_not_found_message(self):
        err = QueueNotFoundError("bogus", ["trading", "analysis"])
        assert err.message == "Invalid queue name: 'bogus'. Valid queues: analysis, trading"

    def test_invalid_transition_is_value_error(self):
        err = InvalidTransitionError("completed", "active", "j-9")
        assert isinstance(err, ValueError)
        assert not isinstance(err, TickSpineError)
        assert "completed -> active" in str(err)
        assert "j-9" in str(err)


class TestDescribeError:
    def test_type_and_message(self):
        assert describe_error(ConnectionError("reset")) == "ConnectionError: reset"

    def test_type_only_when_no_message(self):
        assert describe_error(TimeoutError()) == "TimeoutError"

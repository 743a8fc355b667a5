"""
Structured error types for tickspine.

Every failure that crosses a component boundary (queue store, fetcher,
catalog, handler dispatch) is raised as a ``TickSpineError`` subclass that
carries its category, whether a retry is sensible, and structured context
for logging.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       TickSpineError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  TransientFetchError   PersistenceError     EnumerationError    │
        │  DeliveryError         (STORAGE, retry)     (SOURCE, retry)     │
        │  (NETWORK, retry)                                                │
        │                             │                                    │
        │                        QueueUnavailableError                     │
        │                        (fatal at startup)                        │
        │                                                                  │
        │  ConfigurationError    JobNotFoundError     QueueNotFoundError  │
        │  (CONFIG)              (NOT_FOUND)          (NOT_FOUND)         │
        │       │                                                          │
        │  UnknownJobError                                                 │
        └─────────────────────────────────────────────────────────────────┘

    ``InvalidTransitionError`` lives outside the hierarchy as a
    ``ValueError``: it signals a programming error in a caller, not an
    operational failure.

Examples:
    >>> err = TransientFetchError("upstream returned 503")
    >>> err.retryable
    True
    >>> err.with_context(symbol="005930.KS").context.metadata["symbol"]
    '005930.KS'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and alert routing."""

    NETWORK = "NETWORK"
    STORAGE = "STORAGE"
    SOURCE = "SOURCE"
    CONFIG = "CONFIG"
    NOT_FOUND = "NOT_FOUND"
    HANDLER = "HANDLER"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        queue: Queue the failing operation targeted
        job_id: Job identifier, if any
        job_name: Job name, if any
        trigger_id: Trigger identifier, if the error came from a trigger run
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    queue: str | None = None
    job_id: str | None = None
    job_name: str | None = None
    trigger_id: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["queue", "job_id", "job_name", "trigger_id", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TickSpineError(Exception):
    """Base class for all tickspine errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers can
    override either per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TickSpineError:
        """Add context to this error (fluent API).

        Usage:
            raise PersistenceError("write failed").with_context(queue="data-collection")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# RETRYABLE ERRORS
# =============================================================================


class TransientFetchError(TickSpineError):
    """The market-data fetcher failed in a way a later attempt may not."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class DeliveryError(TickSpineError):
    """A notification transport did not deliver."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class PersistenceError(TickSpineError):
    """A queue or time-series store write/read failed."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True


class QueueUnavailableError(PersistenceError):
    """The backing queue store could not be opened. Fatal at startup."""

    default_retryable = False


class EnumerationError(TickSpineError):
    """The entity catalog could not be read for a trigger run."""

    default_category = ErrorCategory.SOURCE
    default_retryable = True


# =============================================================================
# NON-RETRYABLE ERRORS
# =============================================================================


class ConfigurationError(TickSpineError):
    """Invalid wiring or settings."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class UnknownJobError(ConfigurationError):
    """No handler is registered for a job name."""

    def __init__(self, job_name: str, available: list[str] | None = None):
        available = sorted(available or [])
        message = f"No handler registered for job '{job_name}'"
        if available:
            message += f". Available: {', '.join(available)}"
        super().__init__(message, context=ErrorContext(job_name=job_name))
        self.job_name = job_name


class JobNotFoundError(TickSpineError):
    """A job id does not exist in the queue."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, queue: str, job_id: str):
        super().__init__(
            f"Job '{job_id}' not found in queue '{queue}'",
            context=ErrorContext(queue=queue, job_id=job_id),
        )
        self.queue = queue
        self.job_id = job_id


class QueueNotFoundError(TickSpineError):
    """A queue name is not configured."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, queue: str, available: list[str] | None = None):
        message = f"Invalid queue name: '{queue}'"
        if available:
            message += f". Valid queues: {', '.join(sorted(available))}"
        super().__init__(message, context=ErrorContext(queue=queue))
        self.queue = queue


class InvalidTransitionError(ValueError):
    """Raised when a job state transition is not allowed."""

    def __init__(self, current: str, target: str, job_id: str | None = None):
        self.current = current
        self.target = target
        self.job_id = job_id
        where = f" for job {job_id}" if job_id else ""
        super().__init__(f"Invalid job state transition{where}: {current} -> {target}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, TickSpineError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError, OSError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, TickSpineError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    return ErrorCategory.UNKNOWN


def describe_error(error: BaseException) -> str:
    """Render an exception as ``"<Type>: <message>"`` for job records."""
    message = str(error)
    name = type(error).__name__
    return f"{name}: {message}" if message else name


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TickSpineError",
    "TransientFetchError",
    "DeliveryError",
    "PersistenceError",
    "QueueUnavailableError",
    "EnumerationError",
    "ConfigurationError",
    "UnknownJobError",
    "JobNotFoundError",
    "QueueNotFoundError",
    "InvalidTransitionError",
    "is_retryable",
    "categorize_error",
    "describe_error",
]

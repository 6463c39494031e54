"""
Exceptions for the logs processor.

Each exception carries a structured context dict so failures can be logged
with ``extra={"error_context": err.to_dict()}``. Failures hit while a run is
in progress are collected into the run status instead of being raised;
construction-time argument validation is the only thing raised to callers.

Hierarchy:
    ProcessorException
    ├── ArgumentError
    ├── FetchError
    │   ├── NetworkError (retryable)
    │   ├── RateLimitError (retryable)
    │   └── AuthenticationError (non-retryable)
    ├── ConsumerError
    ├── ConsumerCrashError
    ├── CheckpointError
    └── RetryableError / NonRetryableError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ProcessorException(Exception):
    """
    Base class for processor errors.

    Attributes:
        message: What went wrong
        context: Cursor, URL, stream name and similar details
        original_exception: Underlying error, also set as ``__cause__``
        timestamp: UTC time the error was created
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = dict(context or {})
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)
        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception is not None:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        text = f"{type(self).__name__}: {self.message}"

        details = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if details:
            text += " | Context: " + ", ".join(f"{k}={v}" for k, v in details.items())

        if self.original_exception is not None:
            cause = self.original_exception
            text += f" | Caused by: {type(cause).__name__}: {cause}"

        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None,
        }


class ArgumentError(ProcessorException, ValueError):
    """
    Raised when a processor is built without a usable checkpoint store or
    with options that fail validation.

    Context keys: ``argument`` and, for invalid options, ``errors``.
    """
    pass


# ----------------------------------------------------------------------------
# Log source
# ----------------------------------------------------------------------------

class FetchError(ProcessorException):
    """
    A log source could not return the requested page.

    Context keys: ``cursor``, ``page_size``, ``url`` and ``status_code``
    where they apply.
    """
    pass


class RetryableError(ProcessorException):
    """
    Transient failure worth another attempt: timeouts, dropped connections,
    429 and 5xx responses.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(ProcessorException):
    """Permanent failure, such as rejected credentials. Retrying cannot help."""
    pass


class NetworkError(RetryableError, FetchError):
    """Timeout, transport failure or server error that outlived its retries."""
    pass


class RateLimitError(RetryableError, FetchError):
    """The log API kept answering 429 after every retry."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class AuthenticationError(NonRetryableError, FetchError):
    """The token exchange failed or the API answered 401/403."""
    pass


# ----------------------------------------------------------------------------
# Consumer
# ----------------------------------------------------------------------------

class ConsumerError(ProcessorException):
    """
    Raised by a batch consumer to report that it could not process a batch.

    The run records it and keeps going unless it is the run's second error.
    """
    pass


class ConsumerCrashError(ProcessorException):
    """
    Wraps anything other than ConsumerError raised by a batch consumer.
    A crashed consumer stops the run at once.
    """
    pass


# ----------------------------------------------------------------------------
# Checkpoint storage
# ----------------------------------------------------------------------------

class CheckpointError(ProcessorException):
    """
    Loading or saving the stream's checkpoint failed.

    Context keys: ``stream_name``, ``operation`` (load, save, mark_failed)
    and ``checkpoint_value`` for saves.
    """
    pass

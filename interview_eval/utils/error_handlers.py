"""
Error types and decorators shared by the evaluation pipeline.

Every error raised by the pipeline carries a machine-readable ``kind`` so the
caller (CLI, API layer) can decide between retrying later and asking the user
for different input.
"""

from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional

from loguru import logger
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential


class ErrorSeverity(str, Enum):
    """Severity of a pipeline error."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    FATAL = "fatal"


class EvaluationPipelineError(Exception):
    """Base class for all errors raised by the evaluation pipeline."""

    kind = "pipeline"

    def __init__(
        self,
        message,
        severity=ErrorSeverity.MEDIUM,
        recoverable=False,
        recovery_suggestion="",
    ):
        super().__init__(message)
        self.message = str(message)
        self.severity = severity
        self.recoverable = recoverable
        self.recovery_suggestion = recovery_suggestion

    def __str__(self):
        return f"[{self.severity.value.upper()}] {super().__str__()}"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "recovery_suggestion": self.recovery_suggestion,
        }


class InvalidInputError(EvaluationPipelineError):
    """Malformed transcript, context, message list or filter criteria."""

    kind = "validation"

    def __init__(self, message, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("recovery_suggestion", "Check the input and try again.")
        super().__init__(message, **kwargs)


class FileUploadError(InvalidInputError):
    kind = "upload"


class NoMatchError(InvalidInputError):
    kind = "no_match"


class NoRecordsError(InvalidInputError):
    kind = "no_records"


class ResponseParseError(EvaluationPipelineError):
    """The backend answered, but the answer is not the JSON we asked for."""

    kind = "parse"

    def __init__(self, message, raw: str = "", cleaned: str = "", **kwargs):
        kwargs.setdefault("recovery_suggestion", "Re-run the evaluation or adjust the input transcript.")
        super().__init__(message, **kwargs)
        self.raw = raw
        self.cleaned = cleaned


class InvalidResultError(ResponseParseError):
    """Valid JSON whose structure does not match the expected result."""

    kind = "invalid_result"


class ConcurrentRunError(EvaluationPipelineError):
    kind = "concurrent_run"

    def __init__(self, message, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("recoverable", True)
        kwargs.setdefault("recovery_suggestion", "Wait for the current run to finish or use a separate instance.")
        super().__init__(message, **kwargs)


class BatchInProgressError(ConcurrentRunError):
    kind = "batch_in_progress"


class BatchCancelledError(EvaluationPipelineError):
    kind = "cancelled"

    def __init__(self, message, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class PersistenceError(EvaluationPipelineError):
    """Storage layer failure (disk full, permission denied, corrupt item)."""

    kind = "persistence"

    def __init__(self, message, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(message, **kwargs)


class BackendError(EvaluationPipelineError):
    """HTTP or transport failure from the text-generation backend."""

    kind = "backend"

    def __init__(self, message, status: Optional[int] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(message, **kwargs)
        self.status = status


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, EvaluationPipelineError):
        return error.recoverable
    return True


def api_retry_handler():
    """
    Retry decorator for backend calls.

    Three attempts with exponential backoff; the last error is re-raised.
    Pipeline errors marked as not recoverable (bad API key, bad request)
    fail on the first attempt.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        @retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async def wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Retrying backend call: {func.__name__}, error: {e}")
                raise
        return wrapper
    return decorator

from .logger import setup_logging
from .error_handlers import (
    ErrorSeverity,
    EvaluationPipelineError,
    InvalidInputError,
    FileUploadError,
    NoMatchError,
    NoRecordsError,
    ResponseParseError,
    InvalidResultError,
    ConcurrentRunError,
    BatchInProgressError,
    BatchCancelledError,
    PersistenceError,
    BackendError,
    api_retry_handler,
)
from .concurrency import run_bounded
from .ids import generate_id

__all__ = [
    # logger.py
    'setup_logging',

    # error_handlers.py
    'ErrorSeverity',
    'EvaluationPipelineError',
    'InvalidInputError',
    'FileUploadError',
    'NoMatchError',
    'NoRecordsError',
    'ResponseParseError',
    'InvalidResultError',
    'ConcurrentRunError',
    'BatchInProgressError',
    'BatchCancelledError',
    'PersistenceError',
    'BackendError',
    'api_retry_handler',

    # concurrency.py / ids.py
    'run_bounded',
    'generate_id',
]

"""Error handling for batchloader.

- Outcome/Success/Failure: per-key success-or-failure values
- ErrorCode/LoadError: classification and structured descriptors for tolerant loads
- LoaderException and subclasses: failures raised by the batching layer
"""

from .errors import (
    ErrorCode,
    LoadCancelledError,
    LoadError,
    LoaderException,
    MissingKeyError,
    ResolverNotRegisteredError,
    SourceLocation,
    UsageNotAuthorizedError,
    classify_exception,
)
from .outcome import Failure, Outcome, Success, as_outcome, collect_outcomes

__all__ = [
    # Outcome
    "Outcome", "Success", "Failure", "as_outcome", "collect_outcomes",
    # Descriptors
    "ErrorCode", "LoadError", "SourceLocation", "classify_exception",
    # Exceptions
    "LoaderException", "MissingKeyError", "LoadCancelledError",
    "ResolverNotRegisteredError", "UsageNotAuthorizedError",
]

"""Error codes, structured error descriptors and loader exceptions.

Failures are classified into four kinds:
- per-key: the key's own fetch failed (isolated to that key's Outcome)
- batch-wide: the batched call could not be made (every key of the batch inherits the cause)
- configuration: no resolver registered under the derived name (never recovered)
- cancellation: the enclosing request was aborted mid-flight

LoadError is the descriptor handed back to tolerant callers alongside a null value.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ErrorCode(StrEnum):
    """Machine-readable failure classification for a loaded key."""
    NOT_FOUND = "NOT_FOUND"
    MISSING_KEY = "MISSING_KEY"
    CANCELLED = "CANCELLED"
    NOT_REGISTERED = "NOT_REGISTERED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INVALID_KEY = "INVALID_KEY"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    UNKNOWN = "UNKNOWN"


_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "connection": ErrorCode.NETWORK_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
    "notfound": ErrorCode.NOT_FOUND,
    "not found": ErrorCode.NOT_FOUND,
    "keyerror": ErrorCode.NOT_FOUND,
    "validation": ErrorCode.INVALID_KEY,
    "valueerror": ErrorCode.INVALID_KEY,
    "typeerror": ErrorCode.INVALID_KEY,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES)


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.EXTERNAL_SERVICE_ERROR


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map an exception to an error code; loader exceptions carry their own."""
    if isinstance(exc, LoaderException):
        return exc.code
    return _classify_cached(f"{type(exc).__name__} {exc}")


# ═══════════════════════════════════════════════════════════════════════════════
# Structured Error Descriptor
# ═══════════════════════════════════════════════════════════════════════════════


class SourceLocation(BaseModel):
    """Line/column of the field in the query document."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    line: Annotated[int, Field(ge=1)]
    column: Annotated[int, Field(ge=1)]


class LoadError(BaseModel):
    """Error attached to a partial result when a tolerant load fails.

    Attributes:
        message: Human-readable error message
        code: Machine-readable classification
        path: Response path of the field that failed (names and list indices)
        locations: Source locations of the field in the query document
        resolver: Name of the resolver that produced the failure
        key: repr() of the requested key
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Load Error",
            "examples": [{
                "message": "Failed",
                "code": "EXTERNAL_SERVICE_ERROR",
                "path": ["employees", 2, "company"],
                "locations": [{"line": 1, "column": 19}],
            }],
        },
    )

    message: Annotated[str, Field(min_length=1)]
    code: ErrorCode = ErrorCode.UNKNOWN
    path: tuple[str | int, ...] = ()
    locations: tuple[SourceLocation, ...] = ()
    resolver: str | None = None
    key: str | None = Field(default=None, repr=False)

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: object) -> object:
        """Accept exceptions and fall back to the type name for blank messages."""
        if isinstance(v, BaseException):
            return str(v).strip() or type(v).__name__
        if isinstance(v, str) and not v.strip():
            return "Unknown error"
        return v

    @computed_field
    @property
    def is_retryable(self) -> bool:
        return self.code in _RETRYABLE_CODES

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        path: tuple[str | int, ...] = (),
        locations: tuple[SourceLocation, ...] = (),
        resolver: str | None = None,
        key: object = None,
    ) -> Self:
        """Build a descriptor from a failure cause with auto-classification."""
        return cls(
            message=exc,  # type: ignore[arg-type]
            code=classify_exception(exc),
            path=path,
            locations=locations,
            resolver=resolver,
            key=None if key is None else repr(key),
        )

    def render(self) -> str:
        where = f" at {'.'.join(map(str, self.path))}" if self.path else ""
        return f"[{self.code}] {self.message}{where}"

    __str__ = render


_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
})


# ═══════════════════════════════════════════════════════════════════════════════
# Exceptions
# ═══════════════════════════════════════════════════════════════════════════════


class LoaderException(Exception):
    """Base for failures raised by the batching layer itself."""

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, message: str, *, resolver: str | None = None) -> None:
        self.resolver = resolver
        super().__init__(message)


class MissingKeyError(LoaderException):
    """The batch call returned no entry for a requested key."""

    code = ErrorCode.MISSING_KEY

    def __init__(self, resolver: str, key: object) -> None:
        self.key = key
        super().__init__(f"{resolver} returned no result for key {key!r}", resolver=resolver)


class LoadCancelledError(LoaderException):
    """The request was aborted before the key resolved."""

    code = ErrorCode.CANCELLED

    def __init__(self, resolver: str, key: object, reason: str = "request cancelled") -> None:
        self.key = key
        super().__init__(f"{resolver} load of {key!r} cancelled: {reason}", resolver=resolver)


class ResolverNotRegisteredError(LoaderException):
    """No resolver is registered under the requested name. A deployment error."""

    code = ErrorCode.NOT_REGISTERED

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        hint = f" (registered: {', '.join(sorted(available))})" if available else ""
        super().__init__(f"No resolver registered under '{name}'{hint}", resolver=name)


class UsageNotAuthorizedError(LoaderException):
    """The caller may not read the usage report."""

    code = ErrorCode.NOT_AUTHORIZED

    def __init__(self, user: str | None) -> None:
        self.user = user
        super().__init__("Not authorized")

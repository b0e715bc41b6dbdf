"""
Structured error types for sqlstore.

Provides a typed hierarchy of storage errors with a stable machine-readable
reason, an HTTP-style status code, retry semantics and root cause chaining.

Every operation of the storage engine either succeeds or raises a
``StoreError`` subclass. Callers branch on the *reason* (``NotFound``,
``AlreadyExists``, ``BadRequest`` ...) rather than on driver exceptions, so
the same calling code works against MySQL, PostgreSQL and SQLite.

Manifesto:
    - **Typed reasons:** One reason per failure class, independent of backend
    - **Explicit retry semantics:** Only connection failures are retryable
    - **Rich context:** Errors carry operation, resource and object name
    - **Error chaining:** The driver exception is preserved as ``cause``
    - **No leaks:** Messages never carry SQL text, bound values or credentials

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────┐
        │                        StoreError                           │
        │          (reason, code, retryable, context, cause)          │
        ├────────────────────────────────────────────────────────────┤
        │  NotFoundError (404)        AlreadyExistsError (409)        │
        │  BadRequestError (400)      UnsupportedError (501)          │
        │  StorageError (500)         ScanError (500)                 │
        │  ConfigError (500)          DatabaseConnectionError (503)   │
        └────────────────────────────────────────────────────────────┘

Examples:
    >>> err = NotFoundError("widgets \\"a\\" not found")
    >>> err.reason
    <ErrorReason.NOT_FOUND: 'NotFound'>
    >>> err.code
    404
    >>> ignore_not_found(err) is None
    True

    Adding context:

    >>> err = StorageError("insert failed").with_context(operation="create", resource="widgets")
    >>> err.context.resource
    'widgets'

Guardrails:
    ❌ DON'T: Catch driver exceptions in calling code
    ✅ DO: Branch on ``is_not_found`` / ``is_already_exists``

    ❌ DON'T: Put bound values into error messages
    ✅ DO: Put resource and name into ``ErrorContext``

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    sqlstore, storage

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorReason(str, Enum):
    """
    Machine-readable failure reasons.

    The reason is what callers branch on. Values mirror the status reasons
    used by resource-oriented HTTP APIs so they can be forwarded unchanged.

    Attributes:
        NOT_FOUND: The addressed object does not exist in its scope
        ALREADY_EXISTS: An object with the same name exists in its scope
        BAD_REQUEST: Invalid input (empty name, malformed patch, bad selector)
        UNSUPPORTED: The backend does not implement the operation
        SERVICE_UNAVAILABLE: The database cannot be reached
        INTERNAL: Anything else
    """

    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    BAD_REQUEST = "BadRequest"
    UNSUPPORTED = "Unsupported"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    INTERNAL = "InternalError"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Typed fields cover what every storage failure knows about itself; any
    additional key-value pairs land in ``metadata``. ``to_dict()`` drops
    unset fields so the result can be splatted into a log event.

    Attributes:
        operation: Engine operation (``create``, ``get``, ``list`` ...)
        resource: Resource (table) name
        name: Object name, when the operation addresses a single object
        metadata: Additional key-value pairs (driver code, scopes ...)
    """

    operation: str | None = None
    resource: str | None = None
    name: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "resource", "name"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StoreError(Exception):
    """
    Base exception for all sqlstore errors.

    Subclasses set ``default_reason``, ``default_code`` and
    ``default_retryable``; instances may override each of them.

    Examples:
        >>> error = StoreError("Something went wrong")
        >>> error.reason
        <ErrorReason.INTERNAL: 'InternalError'>
        >>> error.to_dict()["code"]
        500
    """

    default_reason: ErrorReason = ErrorReason.INTERNAL
    default_code: int = 500
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        reason: ErrorReason | None = None,
        code: int | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason
        self.code = code if code is not None else self.default_code
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StoreError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError("not found").with_context(
                operation="get", resource="widgets", name="a"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "reason": self.reason.value,
            "code": self.code,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = type(self.cause).__name__
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, reason={self.reason.value})"


# =============================================================================
# CLIENT ERRORS
# =============================================================================


class NotFoundError(StoreError):
    """The addressed object does not exist."""

    default_reason = ErrorReason.NOT_FOUND
    default_code = 404


class AlreadyExistsError(StoreError):
    """An object with the same name already exists in the scope."""

    default_reason = ErrorReason.ALREADY_EXISTS
    default_code = 409


class BadRequestError(StoreError):
    """Invalid input: empty name, malformed patch, invalid selector."""

    default_reason = ErrorReason.BAD_REQUEST
    default_code = 400


class UnsupportedError(StoreError):
    """Operation not implemented by this backend."""

    default_reason = ErrorReason.UNSUPPORTED
    default_code = 501


# =============================================================================
# SERVER ERRORS
# =============================================================================


class StorageError(StoreError):
    """Unclassified database failure."""


class ScanError(StoreError):
    """A column value could not be decoded into its destination field."""


class ConfigError(StoreError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """


class DatabaseConnectionError(StoreError):
    """Database connection or pool error."""

    default_reason = ErrorReason.SERVICE_UNAVAILABLE
    default_code = 503
    default_retryable = True


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def reason_for_error(error: BaseException | None) -> ErrorReason | None:
    """Get the reason of an error, ``None`` for non-store errors."""
    if isinstance(error, StoreError):
        return error.reason
    return None


def is_not_found(error: BaseException | None) -> bool:
    return reason_for_error(error) == ErrorReason.NOT_FOUND


def is_already_exists(error: BaseException | None) -> bool:
    return reason_for_error(error) == ErrorReason.ALREADY_EXISTS


def is_bad_request(error: BaseException | None) -> bool:
    return reason_for_error(error) == ErrorReason.BAD_REQUEST


def is_unsupported(error: BaseException | None) -> bool:
    return reason_for_error(error) == ErrorReason.UNSUPPORTED


def ignore_not_found(error: BaseException | None) -> BaseException | None:
    """Return ``None`` for not-found errors and the error otherwise."""
    if is_not_found(error):
        return None
    return error


def ignore_already_exists(error: BaseException | None) -> BaseException | None:
    """Return ``None`` for already-exists errors and the error otherwise."""
    if is_already_exists(error):
        return None
    return error


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, StoreError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    # Reason enum
    "ErrorReason",
    # Context
    "ErrorContext",
    # Base
    "StoreError",
    # Client
    "NotFoundError",
    "AlreadyExistsError",
    "BadRequestError",
    "UnsupportedError",
    # Server
    "StorageError",
    "ScanError",
    "ConfigError",
    "DatabaseConnectionError",
    # Utilities
    "reason_for_error",
    "is_not_found",
    "is_already_exists",
    "is_bad_request",
    "is_unsupported",
    "ignore_not_found",
    "ignore_already_exists",
    "is_retryable",
]

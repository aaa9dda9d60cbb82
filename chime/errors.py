"""
Exception hierarchy for chime.

Exception Hierarchy:
    ChimeError (base)
    ├── ValidationError - a required field is missing or empty
    ├── NotFoundError - contact, chat or message does not exist
    ├── StoreIOError - store unreachable, locked or permission denied
    └── ParseError - persisted contact record is malformed

Propagation policy:
    Bulk operations (listing chats, messages, contacts) log and skip per-item
    failures. Single-entity operations (load/save/delete one contact, open one
    store) raise the first error encountered. Nothing retries internally.

Usage:
    from chime.errors import NotFoundError

    try:
        contact = directory.load("Ana")
    except NotFoundError as e:
        logger.warning("Missing contact: %s (code: %s)", e.message, e.code)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes, included in API error bodies."""

    VAL_MISSING_REQUIRED = "VAL_MISSING_REQUIRED"
    NOT_FOUND = "NOT_FOUND"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    STORE_WRITE_FAILED = "STORE_WRITE_FAILED"
    RECORD_MALFORMED = "RECORD_MALFORMED"
    UNKNOWN = "UNKNOWN"


class ChimeError(Exception):
    """
    Base exception for all chime errors.

    Attributes:
        message: Human-readable error message.
        code: Machine-readable error code.
        details: Optional additional context about the error.
        cause: Optional original exception that caused this error.
    """

    default_message: str = "An error occurred"
    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        self.cause = cause

        super().__init__(self.message)

        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        parts = [f"{self.__class__.__name__}({self.message!r}"]
        if self.code != self.default_code:
            parts.append(f", code={self.code.value!r}")
        if self.details:
            parts.append(f", details={self.details!r}")
        if self.cause:
            parts.append(f", cause={self.cause!r}")
        parts.append(")")
        return "".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to a dictionary for API responses.

        Returns:
            Dictionary with error, code, and detail fields.
        """
        result: Dict[str, Any] = {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "detail": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(ChimeError):
    """A required field is missing (e.g. a contact without a name)."""

    default_message = "Validation failed"
    default_code = ErrorCode.VAL_MISSING_REQUIRED


class NotFoundError(ChimeError):
    """A contact, chat or message does not exist."""

    default_message = "Not found"
    default_code = ErrorCode.NOT_FOUND


class StoreIOError(ChimeError, OSError):
    """
    A backing store could not be reached.

    Raised when chat.db is missing, locked or unreadable, or when a contact
    record cannot be written. Subclasses OSError so callers catching IOError
    keep working.
    """

    default_message = "Store is unavailable"
    default_code = ErrorCode.STORE_UNAVAILABLE


class ParseError(ChimeError):
    """A persisted contact record could not be parsed."""

    default_message = "Malformed record"
    default_code = ErrorCode.RECORD_MALFORMED

"""Custom exceptions for tagnote.

Provides a structured exception hierarchy with error codes and
machine-readable error information. A missing note is never an
exception: lookups return ``None`` and mutations return ``False``.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_TITLE_REQUIRED = 1004

    # Tag errors (3xxx)
    TAG_INVALID = 3002

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    RECORD_DECODE_FAILED = 4005
    LOCK_FAILED = 4010
    COUNTER_WRITE_FAILED = 4011
    INDEX_WRITE_FAILED = 4020
    INDEX_READ_FAILED = 4021

    # Import errors (45xx)
    LEGACY_IMPORT_FAILED = 4501

    # Search errors (5xxx)
    SEARCH_INVALID_PATTERN = 5002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    STORE_NOT_FOUND = 6003

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_DATE = 7006

    # Internal errors (9xxx)
    LOCK_NOT_HELD = 9001
    LOCK_REENTERED = 9002
    DANGLING_LINK = 9003


class TagnoteError(Exception):
    """Base exception for all tagnote errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ValidationError(TagnoteError):
    """Raised for bad input: empty title, invalid tag, invalid pattern or date."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(TagnoteError):
    """Raised for filesystem and serialization failures.

    These indicate an environment or corruption problem rather than bad
    input, and warrant a different remediation than validation errors.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Only the last two components; enough to locate the file in a store
            parts = str(path).replace("\\", "/").split("/")
            details["path_hint"] = "/".join(parts[-2:])
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class RecordDecodeError(StorageError):
    """Raised when a note record exists on disk but cannot be decoded.

    A malformed record is reported, never treated as a missing note.
    """

    def __init__(
        self,
        note_id: int,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            f"Note record {note_id} is malformed",
            operation="read",
            path=path,
            code=ErrorCode.RECORD_DECODE_FAILED,
            original_error=original_error,
        )
        self.note_id = note_id
        self.details["note_id"] = note_id


class InternalError(TagnoteError):
    """Raised when a store invariant is violated (e.g. a link pointing nowhere)."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DANGLING_LINK,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, details=details)


class ConfigurationError(TagnoteError):
    """Raised for configuration-related errors, including a missing store."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class LegacyImportError(StorageError):
    """Raised when importing notes from a legacy SQLite database fails.

    Attributes:
        imported_count: Number of notes written before the failure
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        imported_count: int = 0,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation="import_legacy",
            path=path,
            code=ErrorCode.LEGACY_IMPORT_FAILED,
            original_error=original_error,
        )
        self.imported_count = imported_count
        self.details["imported_count"] = imported_count

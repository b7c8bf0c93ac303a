"""Custom exceptions for the NoteGraph MCP server.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_DELETE_FAILED = 4003

    # Import errors (5xxx)
    IMPORT_FAILED = 5001
    IMPORT_EMPTY_INPUT = 5002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001

    # Indexing errors (8xxx)
    REINDEX_FAILED = 8001
    REINDEX_IN_PROGRESS = 8002
    INDEX_RUN_NOT_FOUND = 8003


class NoteGraphError(Exception):
    """Base exception for all NoteGraph errors.

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


class NoteNotFoundError(NoteGraphError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class StorageError(NoteGraphError):
    """Raised for storage/persistence errors."""

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
            # Don't expose full paths in error messages for security
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class ReindexError(NoteGraphError):
    """Raised when a reindex batch fails and is rolled back.

    Attributes:
        run_id: Ledger row of the failed batch (None when runs are not recorded)
        original_error: The underlying storage exception
    """

    def __init__(
        self,
        message: str,
        run_id: Optional[int] = None,
        code: ErrorCode = ErrorCode.REINDEX_FAILED,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if run_id is not None:
            details["run_id"] = run_id
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.run_id = run_id
        self.original_error = original_error


class ReindexInProgressError(NoteGraphError):
    """Raised when a reindex is triggered while another is still running."""

    def __init__(self, store: str):
        super().__init__(
            "A reindex is already running against this store",
            code=ErrorCode.REINDEX_IN_PROGRESS,
            details={"store": store}
        )
        self.store = store


class NoteImportError(NoteGraphError):
    """Raised when an import batch cannot be applied at all."""

    def __init__(
        self,
        message: str,
        total_count: int = 0,
        code: ErrorCode = ErrorCode.IMPORT_FAILED,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {"total_count": total_count}
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.total_count = total_count
        self.original_error = original_error


class ConfigurationError(NoteGraphError):
    """Raised for configuration-related errors."""

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


class ValidationError(NoteGraphError):
    """Raised for general validation errors."""

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
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value

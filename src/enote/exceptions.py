"""Custom exceptions for the ENote backend.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Storage, configuration and internal
failures are marked sensitive: their message and details only reach the
caller in debug mode.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003

    # Search errors (5xxx)
    SEARCH_FAILED = 5001

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_PAGE_PARAM = 7002
    INVALID_NOTEBOOK_PARENT = 7003

    # Everything else (9xxx)
    INTERNAL_ERROR = 9001


class ENoteError(Exception):
    """Base exception for all ENote errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    # Sensitive errors hide message/details from the caller outside debug mode
    is_sensitive = False
    public_message = "The operation failed"

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

    def to_response(self, debug: bool = False) -> Dict[str, Any]:
        """Build the caller-facing error payload.

        Args:
            debug: When True, sensitive errors keep their real message and
                details; otherwise they are replaced by a generic message.
        """
        if self.is_sensitive and not debug:
            message, details = self.public_message, None
        else:
            message, details = self.message, (self.details or None)
        return {
            "code": self.code.value,
            "codeName": self.code.name,
            "message": message,
            "details": details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ValidationError(ENoteError):
    """Raised when input fails validation."""

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


class StorageError(ENoteError):
    """Raised for storage/persistence errors."""

    is_sensitive = True
    public_message = "Database operation failed, please try again later"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class ConfigurationError(ENoteError):
    """Raised for configuration-related errors."""

    is_sensitive = True
    public_message = "Configuration error, please check the application settings"

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


class InternalError(ENoteError):
    """Raised for unexpected failures that are not the caller's fault."""

    is_sensitive = True
    public_message = "Internal error, please try again later"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, code=ErrorCode.INTERNAL_ERROR, details=details)
        self.original_error = original_error

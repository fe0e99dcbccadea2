"""
Centralized error handling and classification for Design Vault.

This module provides the error taxonomy shared by the gateway, the gallery
core and the API server, plus classification of foreign exceptions and
generation of user-facing messages.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from design_vault.logging_config import get_logger, log_error

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Error categories for classification and handling."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    DATABASE = "database"
    STORAGE = "storage"
    UPLOAD = "upload"
    DELETE = "delete"
    TAG_GENERATION = "tag_generation"
    NETWORK = "network"
    INTERNAL = "internal"


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# HTTP status returned by the API for each category
HTTP_STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
}

USER_MESSAGES = {
    ErrorCategory.VALIDATION: "Some of the provided data is invalid. Please check it and try again.",
    ErrorCategory.NOT_FOUND: "File not found. It may have been deleted.",
    ErrorCategory.DATABASE: "The gallery database could not be reached. Please try again.",
    ErrorCategory.STORAGE: "The file storage could not be reached. Please try again.",
    ErrorCategory.UPLOAD: "Upload failed. Please try again.",
    ErrorCategory.DELETE: "Delete failed. Please try again.",
    ErrorCategory.TAG_GENERATION: "Could not generate tags automatically. You can add them manually.",
    ErrorCategory.NETWORK: "Network connection error. Please check your internet connection.",
    ErrorCategory.INTERNAL: "Something went wrong. Please try again.",
}


@dataclass
class ErrorInfo:
    """Structured error information."""

    category: ErrorCategory
    severity: ErrorSeverity
    code: str
    message: str
    user_message: str
    details: dict[str, Any]
    timestamp: datetime
    recoverable: bool = True
    retry_suggested: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert error info to dictionary."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "retry_suggested": self.retry_suggested,
        }


class DesignVaultError(Exception):
    """Base exception class for Design Vault."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
        retry_suggested: bool = False,
        original_exception: Exception | None = None,
    ):
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.code = code or f"{category.value}_error"
        self.user_message = user_message or USER_MESSAGES.get(category, "An unexpected error occurred.")
        self.details = details or {}
        self.recoverable = recoverable
        self.retry_suggested = retry_suggested
        self.original_exception = original_exception
        self.timestamp = datetime.now(UTC)

        self._log_error()

    @property
    def http_status(self) -> int:
        """HTTP status used when this error leaves the API."""
        return HTTP_STATUS_BY_CATEGORY.get(self.category, 500)

    def _log_error(self) -> None:
        """Log the error with its classification."""
        error_context = {
            "category": self.category.value,
            "severity": self.severity.value,
            "code": self.code,
            "recoverable": self.recoverable,
            **self.details,
        }

        if self.original_exception:
            error_context["original_exception"] = str(self.original_exception)

        log_error(self, error_context)

    def get_error_info(self) -> ErrorInfo:
        """Get structured error information."""
        return ErrorInfo(
            category=self.category,
            severity=self.severity,
            code=self.code,
            message=str(self),
            user_message=self.user_message,
            details=self.details,
            timestamp=self.timestamp,
            recoverable=self.recoverable,
            retry_suggested=self.retry_suggested,
        )

    def to_response(self) -> dict[str, Any]:
        """Render the API error body."""
        return {
            "success": False,
            "error": str(self),
            "code": self.code,
            "timestamp": self.timestamp.isoformat(),
        }


class ValidationError(DesignVaultError):
    """Bad input shape, size or type."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        self.field = field
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            code=code or "validation_failed",
            user_message=user_message or message,
            details=details,
            recoverable=True,
            retry_suggested=False,
            original_exception=original_exception,
        )


class NotFoundError(DesignVaultError):
    """The referenced item no longer exists."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.LOW,
            code=code or "file_not_found",
            user_message=user_message,
            details=details,
            recoverable=True,
            retry_suggested=False,
            original_exception=original_exception,
        )


class DatabaseError(DesignVaultError):
    """Persistence collaborator failures."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
        retry_suggested: bool = True,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.DATABASE,
            severity=ErrorSeverity.HIGH,
            code=code or "database_error",
            user_message=user_message,
            details=details,
            recoverable=recoverable,
            retry_suggested=retry_suggested,
            original_exception=original_exception,
        )


class StorageError(DesignVaultError):
    """Object store failures."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
        retry_suggested: bool = True,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.STORAGE,
            severity=ErrorSeverity.HIGH,
            code=code or "storage_error",
            user_message=user_message,
            details=details,
            recoverable=recoverable,
            retry_suggested=retry_suggested,
            original_exception=original_exception,
        )


class UploadError(DesignVaultError):
    """Composite upload failure (storage + row insert)."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.UPLOAD,
            severity=ErrorSeverity.MEDIUM,
            code=code or "upload_failed",
            user_message=user_message,
            details=details,
            recoverable=True,
            retry_suggested=True,
            original_exception=original_exception,
        )


class DeleteError(DesignVaultError):
    """Composite delete failure."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.DELETE,
            severity=ErrorSeverity.MEDIUM,
            code=code or "delete_failed",
            user_message=user_message,
            details=details,
            recoverable=True,
            retry_suggested=True,
            original_exception=original_exception,
        )


class TagGenerationError(DesignVaultError):
    """Tag suggestion failures. Always absorbed by a fallback."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.TAG_GENERATION,
            severity=ErrorSeverity.LOW,
            code=code or "tag_generation_error",
            details=details,
            recoverable=True,
            retry_suggested=False,
            original_exception=original_exception,
        )


class NetworkError(DesignVaultError):
    """Transport-level failures talking to a collaborator."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.MEDIUM,
            code=code or "network_error",
            details=details,
            recoverable=True,
            retry_suggested=True,
            original_exception=original_exception,
        )


class InternalError(DesignVaultError):
    """Unclassified failures."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.INTERNAL,
            severity=ErrorSeverity.HIGH,
            code=code or "internal_error",
            details=details,
            recoverable=False,
            retry_suggested=False,
            original_exception=original_exception,
        )


CLASSIFICATION_KEYWORDS: list[tuple[type[DesignVaultError], tuple[str, ...]]] = [
    (NotFoundError, ("not found", "no such", "does not exist")),
    (ValidationError, ("validation", "invalid", "required", "missing", "too large", "unsupported")),
    (StorageError, ("storage", "bucket", "object")),
    (DatabaseError, ("database", "postgres", "sql", "query", "row")),
    (NetworkError, ("network", "connection", "timeout", "unreachable")),
]


class ErrorHandler:
    """Centralized error handler for the application."""

    def __init__(self) -> None:
        self.error_counts: dict[str, int] = {}
        self.logger = get_logger(__name__)

    def handle_error(
        self,
        error: Exception | DesignVaultError,
        context: dict[str, Any] | None = None,
    ) -> ErrorInfo:
        """
        Handle and classify errors.

        Args:
            error: Exception to handle
            context: Additional context information

        Returns:
            ErrorInfo: Structured error information
        """
        context = context or {}

        if isinstance(error, DesignVaultError):
            error_info = error.get_error_info()
        else:
            error_info = self.classify_error(error, context).get_error_info()

        self._track_error(error_info.code)
        return error_info

    def classify_error(self, error: Exception, context: dict[str, Any]) -> DesignVaultError:
        """Classify a foreign exception into the Design Vault taxonomy."""
        error_type = type(error).__name__
        error_message = str(error)
        lowered = error_message.lower()
        details = {"original_type": error_type, **context}

        for error_class, keywords in CLASSIFICATION_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return error_class(error_message, details=details, original_exception=error)

        if isinstance(error, (TimeoutError, ConnectionError)):
            return NetworkError(error_message or error_type, details=details, original_exception=error)

        return InternalError(error_message or error_type, details=details, original_exception=error)

    def _track_error(self, error_code: str) -> None:
        """Track error occurrence for monitoring."""
        self.error_counts[error_code] = self.error_counts.get(error_code, 0) + 1

        if self.error_counts[error_code] % 10 == 0:
            self.logger.warning("frequent_error_detected", error_code=error_code, count=self.error_counts[error_code])

    def get_error_statistics(self) -> dict[str, int]:
        """Get error occurrence statistics."""
        return self.error_counts.copy()

    def reset_statistics(self) -> None:
        """Reset error statistics."""
        self.error_counts.clear()


error_handler = ErrorHandler()


def handle_error(
    error: Exception | DesignVaultError,
    context: dict[str, Any] | None = None,
) -> ErrorInfo:
    """Global error handling function."""
    return error_handler.handle_error(error, context)


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    return error_handler


def create_user_friendly_message(error: Exception) -> str:
    """Message shown in notifications for a failed operation."""
    if isinstance(error, DesignVaultError):
        return error.user_message
    return USER_MESSAGES[ErrorCategory.INTERNAL]

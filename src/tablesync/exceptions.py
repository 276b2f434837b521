"""
Exception classes for tablesync.
"""

from typing import Any, Dict, Optional


class TableSyncError(Exception):
    """Base exception for all tablesync errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(TableSyncError):
    """Raised when there's an error in configuration."""

    pass


class ValidationError(TableSyncError):
    """Raised when there's a validation error."""

    pass


class RemoteServiceError(TableSyncError):
    """Raised when a call to the DynamoDB service fails.

    ``code`` is the service error code (``ResourceNotFoundException``,
    ``ResourceInUseException``, ...) when the service returned one.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table_name: Optional[str] = None,
        code: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if operation:
            details["operation"] = operation
        if table_name:
            details["table"] = table_name
        if code:
            details["code"] = code

        super().__init__(message, details, cause)
        self.operation = operation
        self.table_name = table_name
        self.code = code


class FetchError(RemoteServiceError):
    """Raised when a live table or TTL description cannot be fetched."""

    pass


class SchemaError(TableSyncError):
    """Raised when a table definition cannot be reconciled."""

    pass


class BackwardIncompatibleError(SchemaError):
    """At least one table differs in a way the service cannot apply in place."""

    def __init__(
        self,
        message: str = "table definition contains backward incompatible changes",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)


class BackwardCompatibleError(SchemaError):
    """Every difference can be migrated. Informational."""

    def __init__(
        self,
        message: str = "table definition contains backward compatible changes",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)


class MigrationError(TableSyncError):
    """Raised when there's an error applying a migration."""

    pass


class RequestMaxRetriesExhaustedError(MigrationError):
    """Raised when a retryable request keeps failing up to the attempt ceiling."""

    def __init__(
        self,
        operation: str,
        attempts: int,
        table_name: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details: Dict[str, Any] = {"operation": operation, "attempts": attempts}
        if table_name:
            details["table"] = table_name

        super().__init__(
            "request has reached the maximum number of retry attempts",
            details,
            cause,
        )
        self.operation = operation
        self.attempts = attempts
        self.table_name = table_name


class InvalidMigrationInputError(MigrationError):
    """Raised for a validation result that carries an error or cannot be migrated."""

    def __init__(self, table_name: str) -> None:
        super().__init__(
            "cannot migrate table input with unrecoverable errors",
            {"table": table_name},
        )
        self.table_name = table_name

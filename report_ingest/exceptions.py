"""Custom exception classes for report ingestion."""

from typing import Any, Dict, Iterable, Optional


class ReportIngestError(Exception):
    """Base exception for all report ingestion errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for structured logs."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


# Workbook / extraction exceptions
class ExtractionError(ReportIngestError):
    """Base exception for spreadsheet extraction errors."""
    pass


class UnsupportedFileError(ExtractionError):
    """Attachment is not a spreadsheet."""

    def __init__(self, file_name: str):
        super().__init__(
            message=f"Not a spreadsheet attachment: {file_name}",
            error_code="UNSUPPORTED_FILE",
            details={"file_name": file_name}
        )


class WorkbookReadError(ExtractionError):
    """Workbook bytes could not be loaded."""

    def __init__(self, file_name: str, reason: str):
        super().__init__(
            message=f"Could not read workbook {file_name}: {reason}",
            error_code="WORKBOOK_UNREADABLE",
            details={"file_name": file_name, "reason": reason}
        )


class MissingColumnError(ExtractionError):
    """A column required for the inferred report type is absent."""

    def __init__(self, report_type: str, keywords: Iterable[str], sheet_name: Optional[str] = None):
        keywords = list(keywords)
        super().__init__(
            message=f"Required column {' + '.join(keywords)} missing for {report_type}",
            error_code="COLUMN_MISSING",
            details={
                "report_type": report_type,
                "keywords": keywords,
                "sheet_name": sheet_name
            }
        )


class ClassificationConflict(ReportIngestError):
    """Sheet structure and subject hint disagree; logged, never raised."""

    def __init__(self, structural: str, hint: str, sheet_name: Optional[str] = None):
        super().__init__(
            message=f"Structural type {structural} overrides subject hint {hint}",
            error_code="CLASSIFICATION_CONFLICT",
            details={
                "structural": structural,
                "hint": hint,
                "sheet_name": sheet_name
            }
        )


# Mailbox exceptions
class MailboxError(ReportIngestError):
    """Mailbox gateway call failed."""

    def __init__(self, operation: str, reason: str, status_code: Optional[int] = None):
        super().__init__(
            message=f"Mailbox error during {operation}: {reason}",
            error_code="MAILBOX_ERROR",
            details={
                "operation": operation,
                "reason": reason,
                "status_code": status_code
            }
        )


# Database exceptions
class DatabaseError(ReportIngestError):
    """Base exception for database errors."""
    pass


class UnsupportedDialectError(DatabaseError):
    """Conflict-aware upserts are not available on this database."""

    def __init__(self, dialect: str):
        super().__init__(
            message=f"Upsert is not supported on dialect {dialect}",
            error_code="DB_DIALECT_UNSUPPORTED",
            details={"dialect": dialect}
        )


class DatabaseConnectionError(DatabaseError):
    """Database connection failed."""

    def __init__(self, connection_string: str, reason: str):
        super().__init__(
            message=f"Database connection failed: {reason}",
            error_code="DB_CONNECTION_FAILED",
            details={"connection_string": connection_string, "reason": reason}
        )


# Configuration exceptions
class ConfigurationError(ReportIngestError):
    """Configuration errors."""

    def __init__(self, config_key: str, reason: str):
        super().__init__(
            message=f"Configuration error for '{config_key}': {reason}",
            error_code="CONFIG_ERROR",
            details={"config_key": config_key, "reason": reason}
        )


def log_error_with_context(logger, error: ReportIngestError, additional_context: Optional[Dict] = None):
    """Log error with full context information."""
    log_data = error.to_dict()

    if additional_context:
        log_data["context"] = additional_context

    logger.warning(error.message, **log_data)

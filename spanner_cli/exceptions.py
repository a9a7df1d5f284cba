"""Core exceptions for spanner-cli."""

from typing import Any, Dict, Optional


class SpannerCliError(Exception):
    """Base exception for all spanner-cli errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SpannerCliError):
    """Raised when there's an error in configuration parsing or validation."""
    pass


class SessionError(SpannerCliError):
    """Raised when a session cannot be created or bound to its database."""

    def __init__(
        self,
        message: str,
        database_path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.database_path = database_path


class StatementError(SpannerCliError):
    """Raised when a statement cannot be built or is not allowed in the current state."""

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.statement = statement


class ExecutionError(SpannerCliError):
    """Raised when the database rejects or fails to run a statement."""

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.sql = sql
        self.code = code


class FixtureError(SpannerCliError):
    """Raised when test table provisioning or cleanup fails."""

    def __init__(
        self,
        message: str,
        table_id: Optional[str] = None,
        statement: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.table_id = table_id
        self.statement = statement


class DecodeError(SpannerCliError):
    """Raised when a result row cannot be decoded into a typed record."""
    pass

"""
Custom exceptions for the Photo Migrator.

This module defines the closed set of error kinds used throughout the
application. Item-level errors (transient or permanent) are recorded on the
item they belong to; job-level errors pause or fail the whole migration.
"""

from typing import Any, Dict, List, Optional


class PhotoMigratorError(Exception):
    """Base exception class for Photo Migrator errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(PhotoMigratorError):
    """Raised when the migration configuration is invalid."""

    def __init__(
        self,
        message: str,
        field_errors: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.field_errors = field_errors or []


class StorageError(PhotoMigratorError):
    """Base class for errors raised by storage backends."""

    def __init__(
        self,
        message: str,
        ref: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.ref = ref
        self.operation = operation


class TransientIOError(StorageError):
    """Raised for I/O failures that may succeed on retry (timeouts, throttling, 5xx)."""
    pass


class PermanentItemError(StorageError):
    """Raised for item failures that will not succeed on retry (missing, invalid, forbidden)."""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.reason = reason or message


class CostLimitExceeded(PhotoMigratorError):
    """Raised when admitting more work would push usage past the configured threshold."""

    def __init__(
        self,
        message: str,
        projected_fraction: float = 0.0,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.reason = message
        self.projected_fraction = projected_fraction


class CheckpointError(PhotoMigratorError):
    """Raised when a checkpoint cannot be written or read."""

    def __init__(
        self,
        message: str,
        migration_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.migration_id = migration_id


class CheckpointNotFoundError(CheckpointError):
    """Raised when no checkpoint exists for a migration id."""
    pass


class MigrationStateError(PhotoMigratorError):
    """Raised for illegal job state transitions (e.g. restarting a completed job)."""

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        requested: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.current = current
        self.requested = requested


class MigrationValidationError(PhotoMigratorError):
    """Raised when the post-migration spot check finds missing or mismatched objects."""

    def __init__(
        self,
        message: str,
        failures: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.failures = failures or []

"""
Core module for the Photo Migrator.

This module contains the error taxonomy and the retry machinery
used throughout the application.
"""

from photo_migrator.core.exceptions import (
    PhotoMigratorError,
    ConfigurationError,
    StorageError,
    TransientIOError,
    PermanentItemError,
    CostLimitExceeded,
    CheckpointError,
    CheckpointNotFoundError,
    MigrationStateError,
    MigrationValidationError,
)

__all__ = [
    "PhotoMigratorError",
    "ConfigurationError",
    "StorageError",
    "TransientIOError",
    "PermanentItemError",
    "CostLimitExceeded",
    "CheckpointError",
    "CheckpointNotFoundError",
    "MigrationStateError",
    "MigrationValidationError",
]

"""
Photo Migrator

Resumable, cost-protected migration of photos from local storage to
S3-compatible object storage.
"""

__version__ = "1.0.0"
__author__ = "Photo Migrator Team"

from photo_migrator.models.config import MigrationConfig
from photo_migrator.models.session import JobStatus, MigrationJob, MigrationResult

__all__ = [
    "MigrationConfig",
    "JobStatus",
    "MigrationJob",
    "MigrationResult",
]

"""
Data models for the Photo Migrator.
"""

from photo_migrator.models.config import (
    AppConfig,
    CostProtectionConfig,
    ImageFormat,
    MigrationConfig,
    PricingConfig,
    StorageConfig,
    UsageLimits,
)
from photo_migrator.models.session import (
    Batch,
    BatchResult,
    Checkpoint,
    CostSnapshot,
    DryRunReport,
    ItemOutcome,
    JobStatus,
    MigrationItem,
    MigrationJob,
    MigrationResult,
    MigrationSummary,
    RollbackResult,
)

__all__ = [
    "AppConfig",
    "CostProtectionConfig",
    "ImageFormat",
    "MigrationConfig",
    "PricingConfig",
    "StorageConfig",
    "UsageLimits",
    "Batch",
    "BatchResult",
    "Checkpoint",
    "CostSnapshot",
    "DryRunReport",
    "ItemOutcome",
    "JobStatus",
    "MigrationItem",
    "MigrationJob",
    "MigrationResult",
    "MigrationSummary",
    "RollbackResult",
]

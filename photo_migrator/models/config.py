"""
Configuration models for the Photo Migrator.

This module defines Pydantic models for migration tuning, storage
endpoints, cost protection limits, and the YAML config file format.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from photo_migrator.core.exceptions import ConfigurationError


GIB = 1024 ** 3
KIB = 1024


class ImageFormat(str, Enum):
    """Image formats the processor can encode variants into."""
    JPEG = "jpeg"
    WEBP = "webp"
    AVIF = "avif"
    PNG = "png"


class MigrationConfig(BaseModel):
    """Tuning knobs for a single migration job."""
    batch_size: int = Field(50, ge=1, description="Items per batch")
    max_concurrent_batches: int = Field(2, ge=1, description="Batches in flight at once")
    retry_failed_items: bool = True
    max_retries_per_item: int = Field(
        3, ge=1, description="Total attempts per item, including the first"
    )
    pause_on_error_threshold: int = Field(
        5, ge=0, description="Pause after this many failed items in a run; 0 disables"
    )
    cost_protection_enabled: bool = True
    cost_protection_threshold: float = Field(0.85, ge=0.0, le=1.0)
    validate_after_migration: bool = True
    cleanup_local_files: bool = False
    retry_base_delay: float = Field(1.0, ge=0.0)
    retry_backoff_multiplier: float = Field(2.0, ge=1.0)
    retry_max_delay: float = Field(30.0, ge=0.0)
    image_formats: List[ImageFormat] = Field(default_factory=list)
    validation_sample_size: int = Field(10, ge=1)

    @field_validator('image_formats')
    @classmethod
    def formats_must_be_unique(cls, v):
        seen = []
        for fmt in v:
            if fmt not in seen:
                seen.append(fmt)
        return seen

    @property
    def attempts_per_item(self) -> int:
        """Attempts an item gets before it is marked permanently failed."""
        return self.max_retries_per_item if self.retry_failed_items else 1

    @classmethod
    def build(cls, **options: Any) -> "MigrationConfig":
        """Create a config, converting validation failures into ConfigurationError."""
        try:
            return cls(**{k: v for k, v in options.items() if v is not None})
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid migration configuration: {e.error_count()} error(s)",
                field_errors=[
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ],
            ) from e


class StorageConfig(BaseModel):
    """Origin and destination storage settings."""
    origin_root: str = Field(
        default_factory=lambda: os.environ.get("PHOTO_MIGRATOR_ORIGIN_ROOT", "./uploads")
    )
    bucket: Optional[str] = Field(
        default_factory=lambda: os.environ.get("PHOTO_MIGRATOR_BUCKET")
    )
    region: str = Field(
        default_factory=lambda: os.environ.get("AWS_REGION", "us-east-1")
    )
    endpoint_url: Optional[str] = None
    key_prefix: str = "migrated/"
    storage_class: str = "STANDARD"
    profile: Optional[str] = None
    destination_type: str = "s3"
    destination_root: Optional[str] = None

    @field_validator('key_prefix')
    @classmethod
    def normalize_prefix(cls, v):
        v = v.strip().lstrip("/")
        if v and not v.endswith("/"):
            v += "/"
        return v


class UsageLimits(BaseModel):
    """Usage ceilings for the destination, defaulting to the S3 free tier."""
    storage_bytes: int = Field(5 * GIB, gt=0)
    put_requests: int = Field(2000, gt=0)
    get_requests: int = Field(20000, gt=0)


class PricingConfig(BaseModel):
    """List prices used to estimate spend."""
    storage_per_gb_month: float = 0.023
    put_per_1000: float = 0.005
    get_per_1000: float = 0.0004


class CostProtectionConfig(BaseModel):
    """Cost guard settings."""
    limits: UsageLimits = Field(default_factory=UsageLimits)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    default_object_bytes: int = Field(100 * KIB, gt=0)
    warning_fraction: float = Field(0.80, ge=0.0, le=1.0)


class AppConfig(BaseModel):
    """Everything loaded from a config file."""
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    cost: CostProtectionConfig = Field(default_factory=CostProtectionConfig)
    checkpoint_dir: str = str(Path.home() / ".photo-migrator" / "checkpoints")
    log_file: Optional[str] = None


def load_config_file(path: Union[str, Path]) -> AppConfig:
    """
    Load an application config from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed AppConfig

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read configuration file {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {file_path} must contain a mapping")

    try:
        return AppConfig(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration in {file_path}",
            field_errors=[
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ],
        ) from e


def save_config_file(config: AppConfig, path: Union[str, Path]) -> Path:
    """Write an application config to a YAML file."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = config.model_dump(mode="json")
    with open(file_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    return file_path

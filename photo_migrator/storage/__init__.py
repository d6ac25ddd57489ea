"""
Storage backends for the Photo Migrator.

Importing this package registers the built-in backends with the factory.
"""

from .factory import StorageBackendFactory, register_backend
from .base import ObjectVariant, StorageBackend, StorageUsage, UploadResult
from .local import LocalStorageBackend
from .s3 import S3StorageBackend

__all__ = [
    "StorageBackendFactory",
    "register_backend",
    "ObjectVariant",
    "StorageBackend",
    "StorageUsage",
    "UploadResult",
    "LocalStorageBackend",
    "S3StorageBackend",
]

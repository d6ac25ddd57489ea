"""
Factory for creating storage backend instances.

Backends register themselves by name with the ``register_backend``
decorator; the factory builds them from a StorageConfig.
"""

from typing import Dict, List, Type
import logging

from photo_migrator.core.exceptions import ConfigurationError
from photo_migrator.models.config import StorageConfig

logger = logging.getLogger(__name__)


class StorageBackendFactory:
    """
    Factory class for creating storage backends.
    """

    # Registry of available backends
    _backends: Dict[str, Type] = {}

    @classmethod
    def register_backend(cls, name: str, backend_class: Type) -> None:
        """
        Register a backend class with the factory.

        Args:
            name: Name identifier for the backend
            backend_class: StorageBackend subclass to register
        """
        cls._backends[name.lower()] = backend_class
        logger.debug(f"Registered storage backend: {name}")

    @classmethod
    def get_available_backends(cls) -> List[str]:
        return list(cls._backends.keys())

    @classmethod
    def get_backend_class(cls, name: str) -> Type:
        backend_class = cls._backends.get(name.lower())
        if backend_class is None:
            available = ", ".join(cls.get_available_backends())
            raise ConfigurationError(
                f"Unsupported storage backend: {name}. Available backends: {available}"
            )
        return backend_class

    @classmethod
    def create_origin(cls, config: StorageConfig):
        """Create the backend photos are read from."""
        return cls.get_backend_class("local")(root=config.origin_root)

    @classmethod
    def create_destination(cls, config: StorageConfig):
        """
        Create the backend photos are migrated to.

        Raises:
            ConfigurationError: If required settings for the backend are missing
        """
        backend_type = config.destination_type.lower()
        backend_class = cls.get_backend_class(backend_type)

        if backend_type == "s3":
            if not config.bucket:
                raise ConfigurationError(
                    "An S3 bucket is required (use --bucket or PHOTO_MIGRATOR_BUCKET)"
                )
            return backend_class(
                bucket=config.bucket,
                region=config.region,
                endpoint_url=config.endpoint_url,
                key_prefix=config.key_prefix,
                storage_class=config.storage_class,
                profile=config.profile,
            )

        if not config.destination_root:
            raise ConfigurationError(
                f"A destination root directory is required for the {backend_type} backend"
            )
        return backend_class(root=config.destination_root, key_prefix=config.key_prefix)


def register_backend(name: str):
    """
    Decorator for registering storage backends.

    Args:
        name: Name identifier for the backend
    """
    def decorator(backend_class):
        StorageBackendFactory.register_backend(name, backend_class)
        return backend_class
    return decorator

"""
Base classes for storage backends.

This module defines the abstract StorageBackend interface shared by the
origin and destination stores, and the idempotent upload logic built on
top of each backend's primitive operations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple
import hashlib
import logging

from photo_migrator.models.session import MigrationItem

logger = logging.getLogger(__name__)


ORIGINAL_VARIANT = "original"


@dataclass
class ObjectVariant:
    """One encoded representation of an item."""
    name: str
    data: bytes
    extension: str
    content_type: Optional[str] = None


@dataclass
class UploadResult:
    """Result of uploading one logical item (one or more objects)."""
    refs: Dict[str, str] = field(default_factory=dict)
    sizes: Dict[str, int] = field(default_factory=dict)
    bytes_uploaded: int = 0
    put_requests: int = 0
    get_requests: int = 0
    skipped: int = 0

    @property
    def object_count(self) -> int:
        return len(self.refs)


@dataclass
class StorageUsage:
    """Stored volume reported by a backend."""
    bytes_stored: int = 0
    object_count: int = 0


@dataclass
class ObjectInfo:
    """Size and, where the backend exposes one, MD5 digest of a stored object."""
    size: int
    md5: Optional[str] = None

    def matches(self, data: bytes) -> bool:
        if self.size != len(data):
            return False
        return self.md5 is None or self.md5 == hashlib.md5(data).hexdigest()


class StorageBackend(ABC):
    """
    Abstract base class for object storage backends.

    Subclasses implement the primitive operations; uploads are made
    idempotent here by checking for an existing object with the same
    content before writing, so a retried or resumed upload never adds
    storage. Content is compared by size plus MD5 where the backend
    reports a digest, and by size alone where it does not.
    """

    name: str = "base"

    def __init__(self, key_prefix: str = ""):
        self.key_prefix = key_prefix
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def key_for(self, item: MigrationItem, variant: Optional[ObjectVariant] = None) -> str:
        """
        Deterministic destination key for an item.

        A plain upload keeps the item id (which includes its extension);
        a variant is stored as ``{stem}-{variant}.{extension}``.
        """
        if variant is None:
            return f"{self.key_prefix}{item.item_id}"
        path = PurePosixPath(item.item_id)
        stem = str(path.with_suffix("")) if path.suffix else str(path)
        return f"{self.key_prefix}{stem}-{variant.name}.{variant.extension}"

    def candidate_keys(self, item: MigrationItem, variant_specs: List[Tuple[str, str]]) -> List[str]:
        """Every key an item could occupy, for discarding partial uploads."""
        if not variant_specs:
            return [self.key_for(item)]
        return [
            self.key_for(item, ObjectVariant(name=name, data=b"", extension=ext))
            for name, ext in variant_specs
        ]

    async def upload(
        self,
        item: MigrationItem,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Upload an item's bytes under its deterministic key.

        Args:
            item: The item being migrated
            data: Object contents
            content_type: Optional MIME type

        Returns:
            UploadResult with a single ref under the "original" variant name
        """
        result = UploadResult()
        key = self.key_for(item)
        await self._put_if_absent(key, ORIGINAL_VARIANT, data, content_type, result)
        return result

    async def upload_multi_format(
        self,
        item: MigrationItem,
        variants: List[ObjectVariant],
    ) -> UploadResult:
        """
        Upload several encodings of one item as a single logical unit.

        Each variant is written idempotently. If any write fails the error
        propagates; variants already written are left in place so a retry
        skips them.
        """
        if not variants:
            raise ValueError(f"No variants to upload for {item.item_id}")

        result = UploadResult()
        for variant in variants:
            key = self.key_for(item, variant)
            await self._put_if_absent(key, variant.name, variant.data, variant.content_type, result)
        return result

    async def _put_if_absent(
        self,
        key: str,
        variant_name: str,
        data: bytes,
        content_type: Optional[str],
        result: UploadResult,
    ) -> None:
        existing = await self.describe_object(key)
        result.get_requests += 1
        if existing is not None and existing.matches(data):
            self.logger.debug(f"Object {key} already present, skipping upload")
            result.skipped += 1
        else:
            await self._put(key, data, content_type)
            result.put_requests += 1
            result.bytes_uploaded += len(data)
        result.refs[variant_name] = key
        result.sizes[key] = len(data)

    async def write(self, ref: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Write an object unconditionally."""
        await self._put(ref, data, content_type)

    async def exists(self, ref: str) -> bool:
        """Check whether an object exists."""
        return await self.get_size(ref) is not None

    async def describe_object(self, ref: str) -> Optional[ObjectInfo]:
        """
        Size and digest of an object, or None if it does not exist.

        Backends that can report an MD5 cheaply override this; the default
        reports the size only.
        """
        size = await self.get_size(ref)
        return None if size is None else ObjectInfo(size=size)

    @abstractmethod
    async def _put(self, ref: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Write an object."""
        pass

    @abstractmethod
    async def get_size(self, ref: str) -> Optional[int]:
        """
        Size of an object in bytes.

        Returns:
            The size, or None if the object does not exist
        """
        pass

    @abstractmethod
    async def download(self, ref: str) -> bytes:
        """Read an object's contents."""
        pass

    @abstractmethod
    async def delete(self, ref: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""
        pass

    @abstractmethod
    async def usage(self) -> StorageUsage:
        """Current stored volume under this backend's prefix."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """
        Test connectivity to the backend.

        Returns:
            True if the backend is reachable, False otherwise
        """
        pass

    def describe(self) -> str:
        return f"{self.name}:{self.key_prefix}"

"""
Local filesystem storage backend.

Refs are POSIX paths relative to the backend root. Blocking filesystem
calls run in worker threads so they do not stall the event loop.
"""

import asyncio
import hashlib
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from photo_migrator.core.error_handler import classify_exception
from photo_migrator.core.exceptions import PermanentItemError
from .base import ObjectInfo, StorageBackend, StorageUsage
from .factory import register_backend

MAX_OBJECT_BYTES = 50 * 1024 * 1024


@register_backend("local")
class LocalStorageBackend(StorageBackend):
    """
    Filesystem-backed storage.

    Used as the origin for photos awaiting migration, and usable as a
    destination for testing or for migrations between disks.
    """

    name = "local"

    def __init__(
        self,
        root: Union[str, Path],
        key_prefix: str = "",
        max_object_bytes: int = MAX_OBJECT_BYTES,
    ):
        super().__init__(key_prefix=key_prefix)
        self.root = Path(root).expanduser().resolve()
        self.max_object_bytes = max_object_bytes

    def resolve(self, ref: str) -> Path:
        """Map a ref to a path under the root, refusing refs that escape it."""
        path = (self.root / ref).resolve()
        if path != self.root and self.root not in path.parents:
            raise PermanentItemError(
                f"Ref {ref!r} resolves outside storage root {self.root}",
                reason="invalid ref",
                ref=ref,
            )
        return path

    async def _put(self, ref: str, data: bytes, content_type: Optional[str] = None) -> None:
        path = self.resolve(ref)
        try:
            await asyncio.to_thread(self._atomic_write, path, data)
        except OSError as e:
            raise classify_exception(e, ref=ref, operation="write") from e

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def get_size(self, ref: str) -> Optional[int]:
        path = self.resolve(ref)
        try:
            stat = await asyncio.to_thread(path.stat)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise classify_exception(e, ref=ref, operation="stat") from e
        return stat.st_size

    async def describe_object(self, ref: str) -> Optional[ObjectInfo]:
        path = self.resolve(ref)
        try:
            return await asyncio.to_thread(self._describe, path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise classify_exception(e, ref=ref, operation="stat") from e

    @staticmethod
    def _describe(path: Path) -> ObjectInfo:
        digest = hashlib.md5()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                digest.update(chunk)
        return ObjectInfo(size=path.stat().st_size, md5=digest.hexdigest())

    async def download(self, ref: str) -> bytes:
        path = self.resolve(ref)
        try:
            return await asyncio.to_thread(self._read_limited, path)
        except OSError as e:
            raise classify_exception(e, ref=ref, operation="read") from e

    def _read_limited(self, path: Path) -> bytes:
        size = path.stat().st_size
        if size > self.max_object_bytes:
            raise PermanentItemError(
                f"File too large: {size} bytes exceeds {self.max_object_bytes}",
                reason="file too large",
                ref=str(path),
                operation="read",
            )
        with open(path, "rb") as f:
            return f.read()

    async def delete(self, ref: str) -> None:
        path = self.resolve(ref)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise classify_exception(e, ref=ref, operation="delete") from e

    async def usage(self) -> StorageUsage:
        return await asyncio.to_thread(self._scan_usage)

    def _scan_usage(self) -> StorageUsage:
        usage = StorageUsage()
        base = self.resolve(self.key_prefix) if self.key_prefix else self.root
        if not base.exists():
            return usage
        for dirpath, _, filenames in os.walk(base):
            for filename in filenames:
                try:
                    usage.bytes_stored += (Path(dirpath) / filename).stat().st_size
                    usage.object_count += 1
                except OSError:
                    continue
        return usage

    async def test_connection(self) -> bool:
        return await asyncio.to_thread(self._reachable)

    def _reachable(self) -> bool:
        """The root is a readable directory, or can be created on first write."""
        path = self.root
        while not path.exists():
            if path.parent == path:
                return False
            path = path.parent
        if path == self.root:
            return path.is_dir() and os.access(path, os.R_OK)
        return path.is_dir() and os.access(path, os.W_OK)

    def describe(self) -> str:
        return f"local:{self.root}"

"""
Origin inventory: the list of photos awaiting migration.
"""

import asyncio
import os
from datetime import datetime, UTC
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Protocol, Union
import logging

from photo_migrator.core.exceptions import ConfigurationError
from photo_migrator.models.session import MigrationItem

logger = logging.getLogger(__name__)


DEFAULT_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".avif", ".heic",
})


class InventorySource(Protocol):
    """Provides the items that still need migrating."""

    async def list_pending_photos(self) -> List[MigrationItem]:
        ...


class LocalDirectoryInventory:
    """
    Lists image files under a local origin directory.

    Item ids are POSIX paths relative to the root, which also serve as
    origin refs for LocalStorageBackend.
    """

    def __init__(
        self,
        root: Union[str, Path],
        extensions: Optional[Iterable[str]] = None,
        exclude_ids: Optional[FrozenSet[str]] = None,
    ):
        self.root = Path(root).expanduser().resolve()
        self.extensions = frozenset(
            e.lower() if e.startswith(".") else f".{e.lower()}"
            for e in (extensions or DEFAULT_EXTENSIONS)
        )
        self.exclude_ids = exclude_ids or frozenset()

    async def list_pending_photos(self) -> List[MigrationItem]:
        if not self.root.is_dir():
            raise ConfigurationError(f"Origin root does not exist or is not a directory: {self.root}")
        items = await asyncio.to_thread(self._scan)
        logger.info(f"Found {len(items)} photos pending migration under {self.root}")
        return items

    def _scan(self) -> List[MigrationItem]:
        items = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                path = Path(dirpath) / filename
                if path.suffix.lower() not in self.extensions:
                    continue
                item_id = path.relative_to(self.root).as_posix()
                if item_id in self.exclude_ids:
                    continue
                try:
                    stat = path.stat()
                except OSError as e:
                    logger.warning(f"Skipping unreadable file {path}: {e}")
                    continue
                items.append(MigrationItem(
                    item_id=item_id,
                    origin_url=item_id,
                    created_at=datetime.fromtimestamp(stat.st_mtime, UTC),
                    size_bytes=stat.st_size,
                ))
        return items


class StaticInventory:
    """Inventory over a fixed list of items."""

    def __init__(self, items: Iterable[MigrationItem]):
        self.items = list(items)

    async def list_pending_photos(self) -> List[MigrationItem]:
        return [item.model_copy(deep=True) for item in self.items]

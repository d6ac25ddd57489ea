"""
Test doubles and data builders shared by the test modules.
"""

from datetime import datetime, timedelta, UTC
from typing import Dict, Iterable, List, Optional

from photo_migrator.core.exceptions import CheckpointError, PermanentItemError
from photo_migrator.cost.guard import CostGuard
from photo_migrator.inventory.source import StaticInventory
from photo_migrator.models.config import CostProtectionConfig, UsageLimits
from photo_migrator.models.session import MigrationItem
from photo_migrator.orchestrator.checkpoint import CheckpointStore
from photo_migrator.orchestrator.events import EventBus
from photo_migrator.orchestrator.orchestrator import MigrationOrchestrator
from photo_migrator.storage.base import StorageBackend, StorageUsage


JPEG_HEADER = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00"
BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


def jpeg_bytes(seed: int, size: int = 64) -> bytes:
    """Bytes that pass magic-number validation as a JPEG."""
    body = str(seed).encode().ljust(size - len(JPEG_HEADER), b"\x00")
    return JPEG_HEADER + body


class InMemoryStorageBackend(StorageBackend):
    """Storage double that keeps objects in a dict and can inject failures."""

    name = "memory"

    def __init__(self, key_prefix: str = ""):
        super().__init__(key_prefix=key_prefix)
        self.objects: Dict[str, bytes] = {}
        self.put_calls: List[str] = []
        self.delete_calls: List[str] = []
        self.put_failures: Dict[str, List[Exception]] = {}
        self.read_failures: Dict[str, List[Exception]] = {}
        self.delete_failures: Dict[str, Exception] = {}
        self.on_put = None
        self.reachable = True

    def fail_put(self, ref: str, *errors: Exception) -> None:
        self.put_failures.setdefault(ref, []).extend(errors)

    def fail_read(self, ref: str, *errors: Exception) -> None:
        self.read_failures.setdefault(ref, []).extend(errors)

    async def _put(self, ref: str, data: bytes, content_type: Optional[str] = None) -> None:
        pending = self.put_failures.get(ref)
        if pending:
            raise pending.pop(0)
        self.put_calls.append(ref)
        self.objects[ref] = data
        if self.on_put:
            self.on_put(ref)

    async def get_size(self, ref: str) -> Optional[int]:
        data = self.objects.get(ref)
        return None if data is None else len(data)

    async def download(self, ref: str) -> bytes:
        pending = self.read_failures.get(ref)
        if pending:
            raise pending.pop(0)
        if ref not in self.objects:
            raise PermanentItemError(f"Not found: {ref}", reason="not found", ref=ref)
        return self.objects[ref]

    async def delete(self, ref: str) -> None:
        if ref in self.delete_failures:
            raise self.delete_failures[ref]
        self.delete_calls.append(ref)
        self.objects.pop(ref, None)

    async def usage(self) -> StorageUsage:
        return StorageUsage(
            bytes_stored=sum(len(v) for v in self.objects.values()),
            object_count=len(self.objects),
        )

    async def test_connection(self) -> bool:
        return self.reachable


class FailingCheckpointStore(CheckpointStore):
    """Delegating store whose saves start failing after a number of calls."""

    def __init__(self, inner: CheckpointStore, fail_after: int):
        self.inner = inner
        self.fail_after = fail_after
        self.saves = 0

    async def save(self, checkpoint) -> None:
        self.saves += 1
        if self.saves > self.fail_after:
            raise CheckpointError("disk full", migration_id=checkpoint.migration_id)
        await self.inner.save(checkpoint)

    async def load(self, migration_id):
        return await self.inner.load(migration_id)

    async def exists(self, migration_id):
        return await self.inner.exists(migration_id)

    async def list_ids(self):
        return await self.inner.list_ids()


def make_items(count: int) -> List[MigrationItem]:
    return [
        MigrationItem(
            item_id=f"photos/{i:05d}.jpg",
            origin_url=f"photos/{i:05d}.jpg",
            created_at=BASE_TIME + timedelta(seconds=i),
        )
        for i in range(count)
    ]


def populate_origin(
    origin: InMemoryStorageBackend,
    items: List[MigrationItem],
    invalid: Iterable[int] = (),
) -> None:
    invalid = set(invalid)
    for i, item in enumerate(items):
        origin.objects[item.origin_url] = b"not an image" if i in invalid else jpeg_bytes(i)


def make_orchestrator(
    origin: StorageBackend,
    destination: StorageBackend,
    items: List[MigrationItem],
    checkpoint_store: CheckpointStore,
    event_bus: EventBus,
    limits: Optional[UsageLimits] = None,
) -> MigrationOrchestrator:
    cost_config = CostProtectionConfig(limits=limits or UsageLimits())
    return MigrationOrchestrator(
        origin=origin,
        destination=destination,
        inventory=StaticInventory(items),
        checkpoint_store=checkpoint_store,
        cost_guard=CostGuard(config=cost_config),
        event_bus=event_bus,
    )

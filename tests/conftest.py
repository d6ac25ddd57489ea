"""
Pytest configuration and fixtures for the Photo Migrator tests.
"""

from pathlib import Path

import pytest

from photo_migrator.models.config import MigrationConfig
from photo_migrator.orchestrator.checkpoint import JsonFileCheckpointStore
from photo_migrator.orchestrator.events import EventBus

from support import InMemoryStorageBackend


@pytest.fixture
def origin() -> InMemoryStorageBackend:
    return InMemoryStorageBackend()


@pytest.fixture
def destination() -> InMemoryStorageBackend:
    return InMemoryStorageBackend(key_prefix="migrated/")


@pytest.fixture
def checkpoint_store(tmp_path: Path) -> JsonFileCheckpointStore:
    return JsonFileCheckpointStore(tmp_path / "checkpoints")


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(record_history=True)


@pytest.fixture
def fast_config() -> MigrationConfig:
    """Default config with retry delays shrunk for tests."""
    return MigrationConfig(retry_base_delay=0.0, retry_max_delay=0.0)

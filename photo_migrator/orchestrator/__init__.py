"""
Migration orchestration: planning, checkpoints, events and the orchestrator.
"""

from .checkpoint import CheckpointStore, JsonFileCheckpointStore
from .events import EventBus, MigrationEvent
from .orchestrator import MigrationOrchestrator, new_migration_id
from .planner import BatchPlanner, batch_count

__all__ = [
    "CheckpointStore",
    "JsonFileCheckpointStore",
    "EventBus",
    "MigrationEvent",
    "MigrationOrchestrator",
    "new_migration_id",
    "BatchPlanner",
    "batch_count",
]

"""
Migration lifecycle events and the bus that delivers them.

Events are plain dataclasses with a canonical wire name and a payload()
in the camelCase shape external observers consume. Delivery is
synchronous; a subscriber that raises is logged and skipped so it can
never disturb the migration or other subscribers.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class MigrationEvent:
    """Base class for lifecycle events."""
    name: ClassVar[str] = "event"
    migration_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC), kw_only=True)

    def payload(self) -> Dict[str, Any]:
        return {"migrationId": self.migration_id}


@dataclass
class MigrationStarted(MigrationEvent):
    name: ClassVar[str] = "migration-started"
    total_items: int = 0
    total_batches: int = 0

    def payload(self) -> Dict[str, Any]:
        return {
            "migrationId": self.migration_id,
            "totalItems": self.total_items,
            "totalBatches": self.total_batches,
        }


@dataclass
class MigrationResumed(MigrationEvent):
    name: ClassVar[str] = "migration-resumed"
    from_batch: int = 0


@dataclass
class ProgressUpdate(MigrationEvent):
    name: ClassVar[str] = "progress-update"
    progress: float = 0.0
    processed_items: int = 0
    total_items: int = 0
    eta: Optional[datetime] = None

    def payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "migrationId": self.migration_id,
            "progress": self.progress,
        }
        if self.eta is not None:
            data["eta"] = self.eta.isoformat()
        return data


@dataclass
class BatchStarted(MigrationEvent):
    name: ClassVar[str] = "batch-started"
    batch_id: str = ""
    batch_number: int = 0
    item_count: int = 0

    def payload(self) -> Dict[str, Any]:
        return {"batchId": self.batch_id, "batchNumber": self.batch_number}


@dataclass
class BatchCompleted(MigrationEvent):
    name: ClassVar[str] = "batch-completed"
    batch_id: str = ""
    batch_number: int = 0
    processed_count: int = 0
    error_count: int = 0
    errors: List[str] = field(default_factory=list)

    def payload(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "batchNumber": self.batch_number,
            "processedCount": self.processed_count,
            "errorCount": self.error_count,
            "errors": list(self.errors),
        }


@dataclass
class MigrationCompleted(MigrationEvent):
    name: ClassVar[str] = "migration-completed"
    total_items: int = 0
    processed_items: int = 0
    success_count: int = 0
    error_count: int = 0
    avg_processing_time_ms: float = 0.0
    total_cost_usd: float = 0.0
    errors: List[str] = field(default_factory=list)

    def payload(self) -> Dict[str, Any]:
        return {
            "migrationId": self.migration_id,
            "summary": {
                "totalItems": self.total_items,
                "processedItems": self.processed_items,
                "avgProcessingTimeMs": self.avg_processing_time_ms,
                "totalCostUsd": self.total_cost_usd,
            },
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "errors": list(self.errors),
        }


@dataclass
class MigrationFailed(MigrationEvent):
    name: ClassVar[str] = "migration-failed"
    error: str = ""

    def payload(self) -> Dict[str, Any]:
        return {"migrationId": self.migration_id, "error": self.error}


@dataclass
class MigrationPaused(MigrationEvent):
    name: ClassVar[str] = "migration-paused"
    reason: str = ""

    def payload(self) -> Dict[str, Any]:
        return {"migrationId": self.migration_id, "reason": self.reason}


@dataclass
class CostLimitReached(MigrationEvent):
    name: ClassVar[str] = "cost-limit-reached"
    reason: str = ""
    projected_fraction: float = 0.0

    def payload(self) -> Dict[str, Any]:
        return {
            "migrationId": self.migration_id,
            "reason": self.reason,
            "projectedFraction": self.projected_fraction,
        }


@dataclass
class RollbackStarted(MigrationEvent):
    name: ClassVar[str] = "rollback-started"


@dataclass
class RollbackCompleted(MigrationEvent):
    name: ClassVar[str] = "rollback-completed"
    rolled_back_items: int = 0
    failed_count: int = 0

    def payload(self) -> Dict[str, Any]:
        return {
            "migrationId": self.migration_id,
            "rolledBackItems": self.rolled_back_items,
            "failedCount": self.failed_count,
        }


EventHandler = Callable[[MigrationEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe for migration events.
    """

    def __init__(self, record_history: bool = False, max_history: int = 10000):
        self._subscribers: List[Tuple[EventHandler, Tuple[Type[MigrationEvent], ...]]] = []
        self.record_history = record_history
        self.max_history = max_history
        self.history: List[MigrationEvent] = []

    def subscribe(self, handler: EventHandler, *event_types: Type[MigrationEvent]) -> None:
        """
        Register a handler.

        Args:
            handler: Called with each matching event
            *event_types: Event classes to receive; all events if none given
        """
        self._subscribers.append((handler, tuple(event_types)))

    def unsubscribe(self, handler: EventHandler) -> None:
        self._subscribers = [(h, t) for h, t in self._subscribers if h != handler]

    def emit(self, event: MigrationEvent) -> None:
        """Deliver an event to every matching subscriber."""
        if self.record_history and len(self.history) < self.max_history:
            self.history.append(event)

        for handler, event_types in list(self._subscribers):
            if event_types and not isinstance(event, event_types):
                continue
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Event subscriber failed on {event.name}: {e}")

    def events_named(self, name: str) -> List[MigrationEvent]:
        return [event for event in self.history if event.name == name]

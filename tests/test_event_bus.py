"""
Unit tests for migration events and the event bus.
"""

import logging
from datetime import datetime, UTC
from unittest.mock import Mock

from photo_migrator.orchestrator.events import (
    BatchCompleted,
    BatchStarted,
    CostLimitReached,
    EventBus,
    MigrationCompleted,
    MigrationStarted,
    ProgressUpdate,
)


class TestEventPayloads:
    """Test cases for event wire names and payloads."""

    def test_names(self):
        assert MigrationStarted("m1").name == "migration-started"
        assert BatchCompleted("m1").name == "batch-completed"
        assert CostLimitReached("m1").name == "cost-limit-reached"

    def test_progress_payload(self):
        eta = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        assert ProgressUpdate("m1", progress=50.0).payload() == {"migrationId": "m1", "progress": 50.0}
        assert ProgressUpdate("m1", progress=50.0, eta=eta).payload()["eta"] == eta.isoformat()

    def test_batch_payloads(self):
        started = BatchStarted("m1", batch_id="m1-b00002", batch_number=2, item_count=50)
        completed = BatchCompleted(
            "m1", batch_id="m1-b00002", batch_number=2,
            processed_count=50, error_count=1, errors=["x: invalid"],
        )

        assert started.payload() == {"batchId": "m1-b00002", "batchNumber": 2}
        assert completed.payload() == {
            "batchId": "m1-b00002",
            "batchNumber": 2,
            "processedCount": 50,
            "errorCount": 1,
            "errors": ["x: invalid"],
        }

    def test_completed_payload(self):
        event = MigrationCompleted(
            "m1", total_items=10, processed_items=10, success_count=9, error_count=1,
            avg_processing_time_ms=2.5, total_cost_usd=0.01, errors=["x"],
        )
        payload = event.payload()

        assert payload["summary"] == {
            "totalItems": 10,
            "processedItems": 10,
            "avgProcessingTimeMs": 2.5,
            "totalCostUsd": 0.01,
        }
        assert payload["successCount"] == 9
        assert payload["errorCount"] == 1

    def test_timestamp_is_keyword_only_default(self):
        event = MigrationStarted("m1", 10, 1)
        assert event.total_items == 10
        assert event.timestamp.tzinfo is not None


class TestEventBus:
    """Test cases for EventBus."""

    def test_delivers_to_all_subscribers(self):
        bus = EventBus()
        first, second = Mock(), Mock()
        bus.subscribe(first)
        bus.subscribe(second)

        event = MigrationStarted("m1")
        bus.emit(event)

        first.assert_called_once_with(event)
        second.assert_called_once_with(event)

    def test_filters_by_type(self):
        bus = EventBus()
        handler = Mock()
        bus.subscribe(handler, BatchCompleted)

        bus.emit(MigrationStarted("m1"))
        bus.emit(BatchCompleted("m1"))

        assert handler.call_count == 1

    def test_unsubscribe(self):
        bus = EventBus()
        handler = Mock()
        bus.subscribe(handler)
        bus.unsubscribe(handler)

        bus.emit(MigrationStarted("m1"))

        handler.assert_not_called()

    def test_unsubscribe_bound_method(self):
        class Recorder:
            def __init__(self):
                self.seen = []

            def handle(self, event):
                self.seen.append(event)

        bus = EventBus()
        recorder = Recorder()
        bus.subscribe(recorder.handle)
        bus.unsubscribe(recorder.handle)

        bus.emit(MigrationStarted("m1"))

        assert recorder.seen == []

    def test_failing_subscriber_is_isolated(self, caplog):
        bus = EventBus()
        after = Mock()
        bus.subscribe(Mock(side_effect=RuntimeError("observer broke")))
        bus.subscribe(after)

        with caplog.at_level(logging.WARNING, logger="photo_migrator.orchestrator.events"):
            bus.emit(MigrationStarted("m1"))

        after.assert_called_once()
        assert "observer broke" in caplog.text

    def test_history(self):
        bus = EventBus(record_history=True, max_history=2)
        for _ in range(3):
            bus.emit(MigrationStarted("m1"))
        bus.emit(BatchStarted("m1"))

        assert len(bus.history) == 2
        assert len(bus.events_named("migration-started")) == 2
        assert EventBus().history == []

"""
Unit tests for logging setup and the event audit log.
"""

import json
import logging

import pytest
from rich.logging import RichHandler

from photo_migrator.orchestrator.events import BatchCompleted, EventBus
from photo_migrator.utils.logging import (
    ROOT_LOGGER,
    EventAuditLogger,
    LogEntry,
    StructuredFormatter,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_rich_console_by_default(self):
        logger = setup_logging(level="DEBUG")

        assert logger.level == logging.DEBUG
        assert any(isinstance(h, RichHandler) for h in logger.handlers)

    def test_structured_console(self):
        logger = setup_logging(structured_logging=True)

        assert not any(isinstance(h, RichHandler) for h in logger.handlers)
        assert isinstance(logger.handlers[0].formatter, StructuredFormatter)

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "migration.log"
        setup_logging(level="INFO", log_file=str(log_file))

        get_logger("test").info("hello file")
        for handler in logging.getLogger(ROOT_LOGGER).handlers:
            handler.flush()

        assert "hello file" in log_file.read_text()

    def test_repeated_setup_replaces_handlers(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1


class TestStructuredFormatter:
    """Test cases for StructuredFormatter."""

    def test_formats_record_as_json(self):
        record = logging.LogRecord(
            "photo_migrator.test", logging.WARNING, __file__, 10, "disk at %d%%", (90,), None
        )
        record.item_id = "photos/a.jpg"

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["message"] == "disk at 90%"
        assert data["metadata"]["item_id"] == "photos/a.jpg"
        assert data["metadata"]["logger"] == "photo_migrator.test"

    def test_uses_attached_entry(self):
        entry = LogEntry(message="custom", event="batch-completed", migration_id="m1")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "ignored", (), None)
        record.log_entry = entry

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "custom"
        assert data["event"] == "batch-completed"


class TestEventAuditLogger:
    """Test cases for EventAuditLogger."""

    def test_writes_events_to_log_file(self, tmp_path):
        log_file = tmp_path / "audit.log"
        setup_logging(level="INFO", log_file=str(log_file), structured_logging=True)
        bus = EventBus()
        EventAuditLogger().attach(bus)

        bus.emit(BatchCompleted("m1", batch_id="m1-b00000", batch_number=0, processed_count=50))
        for handler in logging.getLogger(ROOT_LOGGER).handlers:
            handler.flush()

        line = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert line["event"] == "batch-completed"
        assert line["migration_id"] == "m1"
        assert line["metadata"]["processedCount"] == 50

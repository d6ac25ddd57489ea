"""
Unit tests for console progress reporting.
"""

import io
from datetime import datetime, UTC

from rich.console import Console

from photo_migrator.monitoring.progress_tracker import ProgressReporter
from photo_migrator.orchestrator.events import (
    BatchCompleted,
    BatchStarted,
    CostLimitReached,
    EventBus,
    MigrationCompleted,
    MigrationPaused,
    MigrationStarted,
    ProgressUpdate,
    RollbackCompleted,
)


def make_reporter(verbose: bool = False):
    output = io.StringIO()
    console = Console(file=output, width=120, no_color=True)
    return ProgressReporter(console=console, verbose=verbose), output


class TestProgressReporter:
    """Test cases for ProgressReporter."""

    def test_tracks_run_metrics(self):
        reporter, output = make_reporter()
        bus = EventBus()
        reporter.attach(bus)

        bus.emit(MigrationStarted("m1", total_items=100, total_batches=2))
        bus.emit(BatchCompleted("m1", batch_number=0, processed_count=50, error_count=2))
        bus.emit(ProgressUpdate("m1", progress=50.0, processed_items=50, total_items=100))
        bus.emit(MigrationCompleted("m1", success_count=98, error_count=2))

        metrics = reporter.metrics
        assert metrics.migration_id == "m1"
        assert metrics.total_batches == 2
        assert metrics.batches_completed == 1
        assert metrics.error_count == 2
        assert metrics.progress == 50.0
        assert metrics.last_status == "completed"
        assert metrics.events_seen["batch-completed"] == 1

        text = output.getvalue()
        assert "Migration m1 started" in text
        assert "48 ok, 2 failed" in text
        assert "Progress: 50.0%" in text
        assert "98 succeeded, 2 failed" in text

    def test_prints_eta(self):
        reporter, output = make_reporter()
        eta = datetime(2024, 1, 1, 13, 45, 10, tzinfo=UTC)

        reporter.handle(ProgressUpdate("m1", progress=10.0, processed_items=1, total_items=10, eta=eta))

        assert "ETA 13:45:10" in output.getvalue()

    def test_pause_and_cost_limit(self):
        reporter, output = make_reporter()

        reporter.handle(CostLimitReached("m1", reason="Projected PUT requests usage 88.0%"))
        reporter.handle(MigrationPaused("m1", reason="Projected PUT requests usage 88.0%"))

        assert reporter.metrics.last_status == "paused"
        assert "Cost limit reached" in output.getvalue()
        assert reporter.metrics.pause_reason.startswith("Projected")

    def test_verbose_output(self):
        quiet, quiet_output = make_reporter()
        verbose, verbose_output = make_reporter(verbose=True)
        events = [
            BatchStarted("m1", batch_number=3, item_count=50),
            BatchCompleted("m1", batch_number=3, processed_count=50, error_count=1,
                           errors=["photos/a.jpg: invalid"]),
        ]
        for event in events:
            quiet.handle(event)
            verbose.handle(event)

        assert "photos/a.jpg" not in quiet_output.getvalue()
        assert "Batch 3 started" in verbose_output.getvalue()
        assert "photos/a.jpg: invalid" in verbose_output.getvalue()

    def test_rollback(self):
        reporter, output = make_reporter()
        reporter.handle(RollbackCompleted("m1", rolled_back_items=7, failed_count=1))

        assert reporter.metrics.last_status == "rolled_back"
        assert "7 items removed, 1 failures" in output.getvalue()

    def test_detach(self):
        reporter, _ = make_reporter()
        bus = EventBus()
        reporter.attach(bus)
        reporter.detach(bus)

        bus.emit(MigrationStarted("m1"))

        assert reporter.metrics.events_seen == {}

    def test_throughput(self):
        reporter, _ = make_reporter()
        assert reporter.items_per_second() == 0.0

        reporter._samples.extend([(10.0, 0), (12.0, 100)])

        assert reporter.items_per_second() == 50.0
        rows = dict(reporter.summary_rows())
        assert rows["Throughput"] == "50.0 items/s"

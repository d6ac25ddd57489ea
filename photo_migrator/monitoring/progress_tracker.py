"""
Progress reporting for migration runs.

The ProgressReporter subscribes to the EventBus, keeps running metrics
(throughput, batches, last progress) and renders lifecycle events to a
Rich console.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, List, Optional, Tuple

from rich.console import Console

from photo_migrator.orchestrator.events import (
    BatchCompleted,
    BatchStarted,
    CostLimitReached,
    EventBus,
    MigrationCompleted,
    MigrationEvent,
    MigrationFailed,
    MigrationPaused,
    MigrationResumed,
    MigrationStarted,
    ProgressUpdate,
    RollbackCompleted,
    RollbackStarted,
)


@dataclass
class ProgressMetrics:
    """Running metrics for one migration."""
    migration_id: Optional[str] = None
    started_at: Optional[float] = None
    total_items: int = 0
    total_batches: int = 0
    processed_items: int = 0
    progress: float = 0.0
    eta: Optional[datetime] = None
    batches_completed: int = 0
    error_count: int = 0
    events_seen: Dict[str, int] = field(default_factory=dict)
    last_status: Optional[str] = None
    pause_reason: Optional[str] = None

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at


class ProgressReporter:
    """
    Console renderer for migration events.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        verbose: bool = False,
        max_history_size: int = 100,
    ):
        """
        Initialize the reporter.

        Args:
            console: Rich console for output
            verbose: Also print per-item errors and batch starts
            max_history_size: Number of throughput samples to keep
        """
        self.console = console or Console()
        self.verbose = verbose
        self.metrics = ProgressMetrics()
        self._samples: Deque[Tuple[float, int]] = deque(maxlen=max_history_size)

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(self.handle)

    def detach(self, bus: EventBus) -> None:
        bus.unsubscribe(self.handle)

    def items_per_second(self) -> float:
        """Recent throughput from the sample window."""
        if len(self._samples) < 2:
            return 0.0
        (t0, n0), (t1, n1) = self._samples[0], self._samples[-1]
        if t1 <= t0:
            return 0.0
        return (n1 - n0) / (t1 - t0)

    def handle(self, event: MigrationEvent) -> None:
        m = self.metrics
        m.events_seen[event.name] = m.events_seen.get(event.name, 0) + 1

        if isinstance(event, (MigrationStarted, MigrationResumed)):
            m.migration_id = event.migration_id
            m.started_at = time.monotonic()
            m.last_status = "running"
            self._samples.clear()
            if isinstance(event, MigrationStarted):
                m.total_items = event.total_items
                m.total_batches = event.total_batches
                self.console.print(
                    f"[bold blue]Migration {event.migration_id} started:[/bold blue] "
                    f"{event.total_items} photos in {event.total_batches} batches"
                )
            else:
                self.console.print(
                    f"[bold blue]Migration {event.migration_id} resumed[/bold blue] "
                    f"from batch {event.from_batch}"
                )

        elif isinstance(event, BatchStarted):
            if self.verbose:
                self.console.print(
                    f"[dim]Batch {event.batch_number} started ({event.item_count} items)[/dim]"
                )

        elif isinstance(event, BatchCompleted):
            m.batches_completed += 1
            m.error_count += event.error_count
            style = "yellow" if event.error_count else "green"
            self.console.print(
                f"[{style}]Batch {event.batch_number} done:[/{style}] "
                f"{event.processed_count - event.error_count} ok, {event.error_count} failed"
            )
            if self.verbose:
                for error in event.errors:
                    self.console.print(f"  [red]✗[/red] {error}")

        elif isinstance(event, ProgressUpdate):
            m.progress = event.progress
            m.processed_items = event.processed_items
            m.total_items = event.total_items or m.total_items
            m.eta = event.eta
            self._samples.append((time.monotonic(), event.processed_items))
            eta = f", ETA {event.eta:%H:%M:%S}" if event.eta else ""
            self.console.print(
                f"[cyan]Progress: {event.progress:.1f}%[/cyan] "
                f"({event.processed_items}/{event.total_items}{eta})"
            )

        elif isinstance(event, CostLimitReached):
            self.console.print(
                f"[bold yellow]Cost limit reached:[/bold yellow] {event.reason}"
            )

        elif isinstance(event, MigrationPaused):
            m.last_status = "paused"
            m.pause_reason = event.reason
            self.console.print(f"[yellow]Migration paused:[/yellow] {event.reason}")

        elif isinstance(event, MigrationFailed):
            m.last_status = "failed"
            self.console.print(f"[bold red]Migration failed:[/bold red] {event.error}")

        elif isinstance(event, MigrationCompleted):
            m.last_status = "completed"
            self.console.print(
                f"[bold green]Migration completed:[/bold green] "
                f"{event.success_count} succeeded, {event.error_count} failed"
            )

        elif isinstance(event, RollbackStarted):
            self.console.print(f"[yellow]Rolling back {event.migration_id}...[/yellow]")

        elif isinstance(event, RollbackCompleted):
            m.last_status = "rolled_back"
            style = "yellow" if event.failed_count else "green"
            self.console.print(
                f"[{style}]Rollback finished:[/{style}] {event.rolled_back_items} items removed, "
                f"{event.failed_count} failures"
            )

    def summary_rows(self) -> List[Tuple[str, str]]:
        m = self.metrics
        return [
            ("Batches completed", str(m.batches_completed)),
            ("Items processed", f"{m.processed_items}/{m.total_items}"),
            ("Failed items", str(m.error_count)),
            ("Elapsed", f"{m.elapsed_seconds:.1f}s"),
            ("Throughput", f"{self.items_per_second():.1f} items/s"),
        ]

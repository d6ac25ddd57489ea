"""
Session models for the Photo Migrator.

This module defines Pydantic models for migration jobs, items, batches,
checkpoints and the results returned to callers. All of them round-trip
through JSON so a checkpoint fully describes a job's durable state.
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from photo_migrator.core.exceptions import MigrationStateError
from photo_migrator.models.config import MigrationConfig


MAX_RECORDED_ERRORS = 500


def utcnow() -> datetime:
    return datetime.now(UTC)


class JobStatus(str, Enum):
    """Migration job status."""
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.PAUSED, JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.PAUSED: frozenset({JobStatus.RUNNING}),
    JobStatus.FAILED: frozenset({JobStatus.RUNNING, JobStatus.ROLLED_BACK}),
    JobStatus.COMPLETED: frozenset({JobStatus.ROLLED_BACK}),
    JobStatus.ROLLED_BACK: frozenset(),
}


class ItemOutcome(str, Enum):
    """Per-item migration outcome."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_PERMANENT = "failed_permanent"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemOutcome.SUCCEEDED, ItemOutcome.FAILED_PERMANENT)


class MigrationItem(BaseModel):
    """A single photo to migrate."""
    item_id: str
    origin_url: str
    created_at: datetime
    size_bytes: Optional[int] = None
    destination_key: Optional[str] = None
    destination_refs: Dict[str, str] = Field(default_factory=dict)
    destination_sizes: Dict[str, int] = Field(default_factory=dict)
    bytes_uploaded: int = 0
    outcome: ItemOutcome = ItemOutcome.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    origin_removed: bool = False
    rolled_back: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.outcome.is_terminal

    def mark_succeeded(
        self,
        refs: Dict[str, str],
        sizes: Dict[str, int],
        bytes_uploaded: int,
    ) -> None:
        self.outcome = ItemOutcome.SUCCEEDED
        self.destination_refs = dict(refs)
        self.destination_sizes = dict(sizes)
        self.destination_key = next(iter(refs.values()), None)
        self.bytes_uploaded = bytes_uploaded
        self.last_error = None

    def mark_failed(self, error: str, permanent: bool) -> None:
        self.outcome = ItemOutcome.FAILED_PERMANENT if permanent else ItemOutcome.FAILED_RETRYABLE
        self.last_error = error


class BatchResult(BaseModel):
    """Outcome of executing one batch."""
    batch_id: str
    batch_number: int
    processed_count: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: List[str] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    bytes_uploaded: int = 0
    put_requests: int = 0
    get_requests: int = 0
    cost_usd: float = 0.0
    interrupted: bool = False


class Batch(BaseModel):
    """An ordered group of items executed as a unit."""
    batch_id: str
    batch_number: int = Field(..., ge=0)
    item_ids: List[str]
    result: Optional[BatchResult] = None

    @staticmethod
    def make_id(migration_id: str, batch_number: int) -> str:
        return f"{migration_id}-b{batch_number:05d}"


class MigrationJob(BaseModel):
    """Durable state of a migration job."""
    id: str
    status: JobStatus = JobStatus.PENDING
    config: MigrationConfig = Field(default_factory=MigrationConfig)
    total_items: int = Field(0, ge=0)
    processed_items: int = Field(0, ge=0)
    success_count: int = Field(0, ge=0)
    error_count: int = Field(0, ge=0)
    total_cost: float = 0.0
    total_batches: int = 0
    last_checkpoint_batch_index: int = -1
    total_processing_ms: float = 0.0
    pause_reason: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    def transition_to(self, status: JobStatus) -> None:
        """Move to a new status, rejecting transitions the state machine forbids."""
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise MigrationStateError(
                f"Migration {self.id} cannot move from {self.status.value} to {status.value}",
                current=self.status.value,
                requested=status.value,
            )
        self.status = status
        self.updated_at = utcnow()

    def start(self) -> None:
        """Start the job, or restart it after a pause or failure."""
        resuming = self.status in (JobStatus.PAUSED, JobStatus.FAILED)
        self.transition_to(JobStatus.RUNNING)
        self.pause_reason = None
        if resuming:
            self.resumed_at = utcnow()
        elif self.started_at is None:
            self.started_at = utcnow()

    def pause(self, reason: str) -> None:
        self.transition_to(JobStatus.PAUSED)
        self.pause_reason = reason

    def complete(self) -> None:
        self.transition_to(JobStatus.COMPLETED)
        self.completed_at = utcnow()

    def fail(self, error: str) -> None:
        self.transition_to(JobStatus.FAILED)
        self.record_error(error)

    def rollback(self) -> None:
        self.transition_to(JobStatus.ROLLED_BACK)

    def record_error(self, error: str) -> None:
        if len(self.errors) < MAX_RECORDED_ERRORS:
            self.errors.append(error)

    @property
    def progress_percent(self) -> float:
        if self.total_items == 0:
            return 100.0
        return round(self.processed_items / self.total_items * 100, 2)

    @property
    def avg_processing_time_ms(self) -> float:
        if self.processed_items == 0:
            return 0.0
        return self.total_processing_ms / self.processed_items


class CostSnapshot(BaseModel):
    """Point-in-time copy of the cost guard's counters."""
    bytes_stored: int = 0
    requests_issued: int = 0
    get_requests: int = 0
    estimated_cost_usd: float = 0.0
    usage_fraction: float = 0.0
    threshold_fraction: float = 0.85
    circuit_open: bool = False


class Checkpoint(BaseModel):
    """Durable record from which a job can be resumed."""
    migration_id: str
    last_completed_batch_number: int = -1
    item_outcomes: Dict[str, ItemOutcome] = Field(default_factory=dict)
    job: MigrationJob
    items: List[MigrationItem] = Field(default_factory=list)
    cost: CostSnapshot = Field(default_factory=CostSnapshot)
    saved_at: datetime = Field(default_factory=utcnow)


class MigrationSummary(BaseModel):
    """Summary figures for a finished or paused run."""
    total_items: int
    processed_items: int
    failed_items: int
    avg_processing_time_ms: float
    total_cost_usd: float


class MigrationResult(BaseModel):
    """What execute, resume and get_status return."""
    migration_id: str
    status: JobStatus
    total_processed: int
    success_count: int
    error_count: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    pause_reason: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    summary: MigrationSummary

    @classmethod
    def from_job(cls, job: MigrationJob) -> "MigrationResult":
        return cls(
            migration_id=job.id,
            status=job.status,
            total_processed=job.processed_items,
            success_count=job.success_count,
            error_count=job.error_count,
            started_at=job.started_at,
            completed_at=job.completed_at,
            pause_reason=job.pause_reason,
            errors=list(job.errors),
            summary=MigrationSummary(
                total_items=job.total_items,
                processed_items=job.processed_items,
                failed_items=job.error_count,
                avg_processing_time_ms=job.avg_processing_time_ms,
                total_cost_usd=job.total_cost,
            ),
        )


class RollbackResult(BaseModel):
    """Outcome of a rollback; failures leave residue that is reported, not raised."""
    migration_id: str
    status: JobStatus
    rolled_back_items: int = 0
    deleted_objects: int = 0
    restored_origin_objects: int = 0
    failed_count: int = 0
    failures: List[str] = Field(default_factory=list)


class DryRunReport(BaseModel):
    """Projection of a migration without touching the destination."""
    total_items: int
    batch_count: int
    batch_size: int
    estimated_bytes: int
    estimated_requests: int
    estimated_cost_usd: float
    projected_usage_fraction: float
    would_pause_for_cost: bool

"""
Main migration orchestrator.

This module provides the MigrationOrchestrator class that drives a photo
migration job through its lifecycle: planning batches, running them on a
bounded pool of workers under cost protection, checkpointing after every
batch, and finishing with validation and optional origin cleanup. It
also resumes paused or failed jobs and rolls back finished ones.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import Deque, Dict, List, Optional, Set

from photo_migrator.core.error_handler import (
    ErrorContext,
    ErrorHandler,
    RetryHandler,
    classify_exception,
    create_item_retry_config,
)
from photo_migrator.core.exceptions import (
    CheckpointError,
    ConfigurationError,
    MigrationStateError,
    MigrationValidationError,
    PermanentItemError,
    PhotoMigratorError,
    TransientIOError,
)
from photo_migrator.cost.guard import CostGuard, UsageDelta
from photo_migrator.inventory.source import InventorySource
from photo_migrator.models.config import MigrationConfig
from photo_migrator.models.session import (
    Batch,
    BatchResult,
    Checkpoint,
    DryRunReport,
    ItemOutcome,
    JobStatus,
    MigrationItem,
    MigrationJob,
    MigrationResult,
    RollbackResult,
)
from photo_migrator.orchestrator.checkpoint import CheckpointStore
from photo_migrator.orchestrator.events import (
    BatchCompleted,
    BatchStarted,
    CostLimitReached,
    EventBus,
    MigrationCompleted,
    MigrationFailed,
    MigrationPaused,
    MigrationResumed,
    MigrationStarted,
    ProgressUpdate,
    RollbackCompleted,
    RollbackStarted,
)
from photo_migrator.orchestrator.planner import BatchPlanner, batch_count, order_items
from photo_migrator.processing.images import (
    EXTENSIONS,
    ImageProcessor,
    content_type_for,
    validate_image,
)
from photo_migrator.storage.base import ORIGINAL_VARIANT, StorageBackend, UploadResult

logger = logging.getLogger(__name__)


def new_migration_id() -> str:
    return f"migration-{datetime.now(UTC):%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:8]}"


@dataclass
class _RunState:
    """In-memory state of one execute or resume call."""
    job: MigrationJob
    items: Dict[str, MigrationItem]
    order: List[str]
    base_watermark: int = -1
    pending: Deque[Batch] = field(default_factory=deque)
    planned: Set[int] = field(default_factory=set)
    completed: Set[int] = field(default_factory=set)
    halt_reason: Optional[str] = None
    fatal: Optional[BaseException] = None
    errors_this_run: int = 0
    processed_this_run: int = 0
    started: float = field(default_factory=time.monotonic)

    @property
    def halted(self) -> bool:
        return self.halt_reason is not None or self.fatal is not None

    def halt(self, reason: str) -> None:
        if self.halt_reason is None:
            self.halt_reason = reason

    def ordered_items(self) -> List[MigrationItem]:
        return [self.items[item_id] for item_id in self.order]


class MigrationOrchestrator:
    """
    Coordinates migration jobs between an origin and a destination store.

    All collaborators are injected so that any of them can be replaced
    (for example with in-memory doubles in tests).
    """

    def __init__(
        self,
        origin: StorageBackend,
        destination: StorageBackend,
        inventory: InventorySource,
        checkpoint_store: CheckpointStore,
        cost_guard: Optional[CostGuard] = None,
        event_bus: Optional[EventBus] = None,
        image_processor: Optional[ImageProcessor] = None,
        planner: Optional[BatchPlanner] = None,
    ):
        """
        Initialize the migration orchestrator.

        Args:
            origin: Store photos are read from (and restored to on rollback)
            destination: Store photos are migrated to
            inventory: Source of the items awaiting migration
            checkpoint_store: Durable checkpoint persistence
            cost_guard: Usage accounting and circuit breaker
            event_bus: Receives lifecycle events
            image_processor: Encoder used when variant formats are configured
            planner: Batch planner
        """
        self.origin = origin
        self.destination = destination
        self.inventory = inventory
        self.checkpoint_store = checkpoint_store
        self.cost_guard = cost_guard or CostGuard()
        self.event_bus = event_bus or EventBus()
        self.image_processor = image_processor or ImageProcessor()
        self.planner = planner or BatchPlanner()

        self.error_handler = ErrorHandler(logger)
        self.retry_handler = RetryHandler(self.error_handler)

        self._running = False
        self._stop_event = asyncio.Event()
        self._dispatch_lock = asyncio.Lock()
        self._commit_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    def request_stop(self) -> None:
        """
        Ask a running migration to stop.

        No further batches are started; in-flight batches finish their
        current item and the job is paused with a checkpoint.
        """
        if not self._stop_event.is_set():
            logger.info("Stop requested; finishing in-flight items")
        self._stop_event.set()

    async def execute(
        self,
        config: MigrationConfig,
        migration_id: Optional[str] = None,
    ) -> MigrationResult:
        """
        Start a new migration job.

        Args:
            config: Job configuration
            migration_id: Explicit job id; generated when omitted

        Returns:
            MigrationResult describing the job when the run stops (completed or paused)

        Raises:
            MigrationStateError: If a run is active or the id already has a checkpoint
            ConfigurationError: If a store is unreachable, or credentials fail mid-run
            CostLimitExceeded: If cost protection refuses to start the run
            CheckpointError: If progress cannot be persisted
            MigrationValidationError: If the post-migration spot check fails
        """
        self._ensure_idle()
        self._stop_event.clear()
        migration_id = migration_id or new_migration_id()

        if await self.checkpoint_store.exists(migration_id):
            existing = await self.checkpoint_store.load(migration_id)
            raise MigrationStateError(
                f"Migration {migration_id} already exists with status "
                f"{existing.job.status.value}; use resume or start a new migration",
                current=existing.job.status.value,
                requested=JobStatus.RUNNING.value,
            )

        self._running = True
        try:
            items = order_items(await self.inventory.list_pending_photos())
            job = MigrationJob(
                id=migration_id,
                config=config,
                total_items=len(items),
                total_batches=batch_count(len(items), config.batch_size),
            )
            state = _RunState(
                job=job,
                items={item.item_id: item for item in items},
                order=[item.item_id for item in items],
            )

            self.cost_guard.configure(config.cost_protection_threshold, config.cost_protection_enabled)
            await self._seed_cost_baseline()
            await self._check_preconditions(config)

            job.start()
            logger.info(
                f"Starting migration {migration_id}: {job.total_items} items "
                f"in {job.total_batches} batches"
            )
            await self._checkpoint_or_fail(state)
            self.event_bus.emit(MigrationStarted(
                migration_id,
                total_items=job.total_items,
                total_batches=job.total_batches,
            ))

            batches = self.planner.plan(migration_id, items, config.batch_size)
            return await self._run(state, batches)
        finally:
            self._running = False

    async def resume(self, migration_id: str) -> MigrationResult:
        """
        Continue a paused or failed job from its last checkpoint.

        Items that already reached a terminal outcome are never re-processed.
        A checkpoint still marked running (the previous process died) is
        treated as paused.

        Raises:
            CheckpointNotFoundError: If the job has no checkpoint
            MigrationStateError: If the job is not paused or failed
            ConfigurationError: If a store is unreachable, or credentials fail mid-run
            CostLimitExceeded: If cost protection refuses to restart the run
        """
        self._ensure_idle()
        self._stop_event.clear()
        checkpoint = await self.checkpoint_store.load(migration_id)
        job = checkpoint.job

        if job.status == JobStatus.RUNNING:
            # Left behind by a process that died mid-run.
            logger.warning(f"Migration {migration_id} was interrupted while running; recovering")
            job.status = JobStatus.PAUSED
            job.pause_reason = "Recovered from interrupted run"

        if job.status not in (JobStatus.PAUSED, JobStatus.FAILED):
            raise MigrationStateError(
                f"Migration {migration_id} is {job.status.value} and cannot be resumed",
                current=job.status.value,
                requested=JobStatus.RUNNING.value,
            )

        self._running = True
        try:
            items = order_items(checkpoint.items)
            state = _RunState(
                job=job,
                items={item.item_id: item for item in items},
                order=[item.item_id for item in items],
                base_watermark=checkpoint.last_completed_batch_number,
            )

            self.cost_guard.configure(
                job.config.cost_protection_threshold, job.config.cost_protection_enabled
            )
            self.cost_guard.restore(checkpoint.cost)
            self.cost_guard.reset()
            await self._check_preconditions(job.config)

            job.start()
            resume_from = checkpoint.last_completed_batch_number + 1
            logger.info(f"Resuming migration {migration_id} from batch {resume_from}")
            await self._checkpoint_or_fail(state)
            self.event_bus.emit(MigrationResumed(migration_id, from_batch=resume_from))

            batches = self.planner.plan(
                migration_id,
                items,
                job.config.batch_size,
                resume_from_batch=resume_from,
                completed_ids=[item.item_id for item in items if item.is_terminal],
            )
            return await self._run(state, batches)
        finally:
            self._running = False

    async def rollback(self, migration_id: str) -> RollbackResult:
        """
        Remove everything a completed or failed job wrote to the destination.

        Per-item failures are logged and counted; they never abort the
        rollback. Origin files removed by cleanup are restored from the
        destination before the destination copy is deleted.

        Raises:
            CheckpointNotFoundError: If the job has no checkpoint
            MigrationStateError: If the job is not completed or failed
        """
        self._ensure_idle()
        checkpoint = await self.checkpoint_store.load(migration_id)
        job = checkpoint.job

        if job.status not in (JobStatus.COMPLETED, JobStatus.FAILED):
            raise MigrationStateError(
                f"Migration {migration_id} is {job.status.value}; only completed "
                f"or failed migrations can be rolled back",
                current=job.status.value,
                requested=JobStatus.ROLLED_BACK.value,
            )

        self._running = True
        try:
            self.event_bus.emit(RollbackStarted(migration_id))
            logger.info(f"Rolling back migration {migration_id}")
            result = RollbackResult(migration_id=migration_id, status=job.status)

            for item in checkpoint.items:
                if item.outcome != ItemOutcome.SUCCEEDED or item.rolled_back:
                    continue
                try:
                    await self._rollback_item(item, result)
                except PhotoMigratorError as e:
                    result.failed_count += 1
                    result.failures.append(f"{item.item_id}: {e.message}")
                    logger.warning(f"Rollback failed for {item.item_id}: {e.message}")

            job.rollback()
            checkpoint.job = job
            checkpoint.item_outcomes = {item.item_id: item.outcome for item in checkpoint.items}
            checkpoint.saved_at = datetime.now(UTC)
            await self.checkpoint_store.save(checkpoint)

            result.status = job.status
            self.event_bus.emit(RollbackCompleted(
                migration_id,
                rolled_back_items=result.rolled_back_items,
                failed_count=result.failed_count,
            ))
            logger.info(
                f"Rollback of {migration_id} finished: {result.rolled_back_items} items, "
                f"{result.deleted_objects} objects deleted, {result.failed_count} failures"
            )
            return result
        finally:
            self._running = False

    async def _rollback_item(self, item: MigrationItem, result: RollbackResult) -> None:
        if item.origin_removed:
            original_ref = item.destination_refs.get(ORIGINAL_VARIANT)
            if original_ref is None:
                raise PhotoMigratorError(
                    f"origin copy was removed and no original-format object exists "
                    f"for {item.item_id}"
                )
            data = await self.destination.download(original_ref)
            await self.origin.write(item.origin_url, data)
            item.origin_removed = False
            result.restored_origin_objects += 1

        for ref in item.destination_refs.values():
            await self.destination.delete(ref)
            result.deleted_objects += 1

        item.rolled_back = True
        result.rolled_back_items += 1

    async def get_status(self, migration_id: str) -> MigrationResult:
        """Summary of a job from its latest checkpoint."""
        checkpoint = await self.checkpoint_store.load(migration_id)
        return MigrationResult.from_job(checkpoint.job)

    async def dry_run(self, config: MigrationConfig) -> DryRunReport:
        """
        Project the cost of a migration without writing anything.
        """
        items = await self.inventory.list_pending_photos()
        variants = len(config.image_formats) or 1
        self.cost_guard.configure(config.cost_protection_threshold, config.cost_protection_enabled)

        estimate = self.cost_guard.estimate(len(items), variants)
        if not config.image_formats and items and all(i.size_bytes is not None for i in items):
            estimate.bytes_stored = sum(i.size_bytes for i in items)

        projected = self.cost_guard.projected_fraction(estimate)
        return DryRunReport(
            total_items=len(items),
            batch_count=batch_count(len(items), config.batch_size),
            batch_size=config.batch_size,
            estimated_bytes=estimate.bytes_stored,
            estimated_requests=estimate.put_requests + estimate.get_requests,
            estimated_cost_usd=round(self.cost_guard.estimate_cost_usd(estimate), 6),
            projected_usage_fraction=projected,
            would_pause_for_cost=(
                config.cost_protection_enabled and projected > config.cost_protection_threshold
            ),
        )

    def _ensure_idle(self) -> None:
        if self._running:
            raise MigrationStateError("A migration is already running in this orchestrator")

    async def _seed_cost_baseline(self) -> None:
        if not self.cost_guard.enabled:
            return
        try:
            usage = await self.destination.usage()
        except PhotoMigratorError as e:
            logger.warning(f"Could not read destination usage, starting from zero: {e.message}")
            return
        self.cost_guard.seed(usage)

    async def _check_preconditions(self, config: MigrationConfig) -> None:
        """
        Make sure both stores are reachable and cost protection admits work.

        Raises:
            ConfigurationError: If a store cannot be reached
            CostLimitExceeded: If not even a single item would be admitted
        """
        for role, backend in (("origin", self.origin), ("destination", self.destination)):
            if not await backend.test_connection():
                raise ConfigurationError(f"Cannot reach {role} storage {backend.describe()}")

        single_item = self.cost_guard.estimate(1, len(config.image_formats) or 1)
        reservation = await self.cost_guard.enforce(single_item)
        await self.cost_guard.release(reservation)

    async def _run(self, state: _RunState, batches: List[Batch]) -> MigrationResult:
        """Dispatch batches to the worker pool and settle the job's final state."""
        state.started = time.monotonic()
        state.pending = deque(batches)
        state.planned = {batch.batch_number for batch in batches}

        worker_count = min(state.job.config.max_concurrent_batches, len(batches))
        if worker_count:
            await asyncio.gather(*(self._worker(state) for _ in range(worker_count)))

        return await self._finish(state)

    async def _worker(self, state: _RunState) -> None:
        config = state.job.config
        variants = len(config.image_formats) or 1

        while True:
            async with self._dispatch_lock:
                if state.halted or self._stop_event.is_set() or not state.pending:
                    return
                batch = state.pending.popleft()
                estimate = self.cost_guard.estimate(len(batch.item_ids), variants)
                admission = await self.cost_guard.admit(estimate)
                if not admission.allowed:
                    state.pending.appendleft(batch)
                    reason = admission.reason or "Cost limit reached"
                    state.halt(reason)
                    logger.warning(
                        f"Batch {batch.batch_number} not admitted: {reason}"
                    )
                    self.event_bus.emit(CostLimitReached(
                        state.job.id,
                        reason=reason,
                        projected_fraction=admission.projected_fraction,
                    ))
                    return

            try:
                result, usage = await self._execute_batch(state, batch)
                await self._commit_batch(state, batch, result, usage, admission.reservation)
            except Exception as e:
                logger.error(f"Fatal error in batch {batch.batch_number}: {e}")
                if state.fatal is None:
                    state.fatal = e
                return

    async def _execute_batch(self, state: _RunState, batch: Batch):
        self.event_bus.emit(BatchStarted(
            state.job.id,
            batch_id=batch.batch_id,
            batch_number=batch.batch_number,
            item_count=len(batch.item_ids),
        ))
        logger.debug(f"Batch {batch.batch_number} started with {len(batch.item_ids)} items")

        result = BatchResult(batch_id=batch.batch_id, batch_number=batch.batch_number)
        usage = UsageDelta()
        started = time.monotonic()

        for item_id in batch.item_ids:
            if self._stop_event.is_set() or state.fatal is not None:
                result.interrupted = True
                break
            item = state.items[item_id]
            if item.is_terminal:
                continue

            item_started = time.monotonic()
            try:
                upload = await self._process_item(state.job, item)
            except Exception as e:
                # Not an item failure; the run ends once this batch is committed.
                logger.error(f"Stopping migration {state.job.id} at {item.item_id}: {e}")
                if state.fatal is None:
                    state.fatal = e
                result.interrupted = True
                break
            elapsed_ms = (time.monotonic() - item_started) * 1000

            if upload is not None:
                usage = usage + UsageDelta(
                    bytes_stored=upload.bytes_uploaded,
                    put_requests=upload.put_requests,
                    get_requests=upload.get_requests,
                )
                result.bytes_uploaded += upload.bytes_uploaded
                result.put_requests += upload.put_requests
                result.get_requests += upload.get_requests

            if item.outcome == ItemOutcome.SUCCEEDED:
                result.success_count += 1
            elif item.outcome == ItemOutcome.FAILED_PERMANENT:
                result.error_count += 1
                result.errors.append(f"{item.item_id}: {item.last_error}")
            else:
                result.interrupted = True
                continue
            result.processed_count += 1
            state.job.total_processing_ms += elapsed_ms

        result.processing_time_ms = (time.monotonic() - started) * 1000
        return result, usage

    async def _process_item(self, job: MigrationJob, item: MigrationItem) -> Optional[UploadResult]:
        """Migrate one item with retries, leaving its outcome on the item."""
        config = job.config
        remaining = max(1, config.attempts_per_item - item.attempts)
        retry_config = create_item_retry_config(
            max_attempts=remaining,
            base_delay=config.retry_base_delay,
            backoff_multiplier=config.retry_backoff_multiplier,
            max_delay=config.retry_max_delay,
        )

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            item.mark_failed(str(error), permanent=False)

        try:
            upload = await self.retry_handler.retry_with_backoff(
                self._transfer_item,
                item,
                config,
                retry_config=retry_config,
                stop_event=self._stop_event,
                on_retry=on_retry,
                context=ErrorContext(operation="transfer", migration_id=job.id, item_id=item.item_id),
            )
        except TransientIOError as e:
            exhausted = item.attempts >= config.attempts_per_item
            item.mark_failed(e.message, permanent=exhausted)
            if exhausted:
                logger.warning(
                    f"Item {item.item_id} failed after {item.attempts} attempts: {e.message}"
                )
                await self._discard_partial_upload(item, config)
            return None
        except PermanentItemError as e:
            item.mark_failed(e.message, permanent=True)
            await self._discard_partial_upload(item, config)
            return None

        item.mark_succeeded(upload.refs, upload.sizes, upload.bytes_uploaded)
        return upload

    async def _transfer_item(self, item: MigrationItem, config: MigrationConfig) -> UploadResult:
        item.attempts += 1
        try:
            data = await self.origin.download(item.origin_url)
            detected = validate_image(data, item.origin_url)
            if config.image_formats:
                variants = await self.image_processor.encode_variants(
                    data, config.image_formats, ref=item.origin_url
                )
                return await self.destination.upload_multi_format(item, variants)
            return await self.destination.upload(item, data, content_type_for(detected))
        except PhotoMigratorError:
            raise
        except Exception as e:
            raise classify_exception(e, ref=item.origin_url, operation="transfer") from e

    async def _discard_partial_upload(self, item: MigrationItem, config: MigrationConfig) -> None:
        """Delete variant objects a failed multi-format upload may have left behind."""
        if not config.image_formats:
            return
        specs = [(fmt.value, EXTENSIONS[fmt]) for fmt in config.image_formats]
        for ref in self.destination.candidate_keys(item, specs):
            try:
                await self.destination.delete(ref)
            except PhotoMigratorError as e:
                logger.warning(f"Could not remove partial upload {ref}: {e.message}")

    async def _commit_batch(
        self,
        state: _RunState,
        batch: Batch,
        result: BatchResult,
        usage: UsageDelta,
        reservation: Optional[UsageDelta],
    ) -> None:
        """Fold a batch result into the job and persist it before announcing it."""
        async with self._commit_lock:
            job = state.job
            result.cost_usd = await self.cost_guard.record(usage, reservation)
            batch.result = result

            job.processed_items += result.processed_count
            job.success_count += result.success_count
            job.error_count += result.error_count
            job.total_cost += result.cost_usd
            for error in result.errors:
                job.record_error(error)
            job.updated_at = datetime.now(UTC)

            state.errors_this_run += result.error_count
            state.processed_this_run += result.processed_count
            if all(state.items[item_id].is_terminal for item_id in batch.item_ids):
                state.completed.add(batch.batch_number)
            job.last_checkpoint_batch_index = self._watermark(state)

            await self.checkpoint_store.save(self._build_checkpoint(state))

            self.event_bus.emit(BatchCompleted(
                job.id,
                batch_id=batch.batch_id,
                batch_number=batch.batch_number,
                processed_count=result.processed_count,
                error_count=result.error_count,
                errors=list(result.errors),
            ))
            self.event_bus.emit(ProgressUpdate(
                job.id,
                progress=job.progress_percent,
                processed_items=job.processed_items,
                total_items=job.total_items,
                eta=self._estimate_completion(state),
            ))
            logger.info(
                f"Batch {batch.batch_number + 1}/{job.total_batches} committed: "
                f"{result.success_count} succeeded, {result.error_count} failed"
            )

            threshold = job.config.pause_on_error_threshold
            if threshold and state.errors_this_run >= threshold:
                state.halt(
                    f"Error threshold reached: {state.errors_this_run} failed items "
                    f"(threshold {threshold})"
                )

    def _watermark(self, state: _RunState) -> int:
        """Highest batch number such that every planned batch up to it has completed."""
        watermark = state.base_watermark
        for number in range(state.base_watermark + 1, state.job.total_batches):
            if number in state.planned and number not in state.completed:
                break
            watermark = number
        return watermark

    def _estimate_completion(self, state: _RunState) -> Optional[datetime]:
        if state.processed_this_run == 0:
            return None
        elapsed = time.monotonic() - state.started
        remaining = state.job.total_items - state.job.processed_items
        seconds = elapsed / state.processed_this_run * remaining
        return datetime.now(UTC) + timedelta(seconds=seconds)

    def _build_checkpoint(self, state: _RunState) -> Checkpoint:
        items = [item.model_copy(deep=True) for item in state.ordered_items()]
        return Checkpoint(
            migration_id=state.job.id,
            last_completed_batch_number=state.job.last_checkpoint_batch_index,
            item_outcomes={item.item_id: item.outcome for item in items},
            job=state.job.model_copy(deep=True),
            items=items,
            cost=self.cost_guard.snapshot(),
        )

    async def _checkpoint_or_fail(self, state: _RunState) -> None:
        try:
            await self.checkpoint_store.save(self._build_checkpoint(state))
        except CheckpointError as e:
            await self._fail(state, e)
            raise

    async def _fail(self, state: _RunState, error: BaseException) -> None:
        """Mark the job failed, announce it, and try to persist the failure."""
        job = state.job
        message = error.message if isinstance(error, PhotoMigratorError) else str(error)
        if job.status == JobStatus.RUNNING:
            job.fail(message)
        logger.error(f"Migration {job.id} failed: {message}")
        self.event_bus.emit(MigrationFailed(job.id, error=message))
        try:
            await self.checkpoint_store.save(self._build_checkpoint(state))
        except CheckpointError as e:
            logger.error(f"Could not record failure of {job.id}: {e.message}")

    async def _finish(self, state: _RunState) -> MigrationResult:
        job = state.job

        if state.fatal is not None:
            await self._fail(state, state.fatal)
            raise state.fatal

        unfinished = any(not item.is_terminal for item in state.ordered_items())
        if state.halt_reason or self._stop_event.is_set() or unfinished:
            reason = state.halt_reason or (
                "Stopped by request" if self._stop_event.is_set() else "Items remain unprocessed"
            )
            job.pause(reason)
            await self._checkpoint_or_fail(state)
            self.event_bus.emit(MigrationPaused(job.id, reason=reason))
            logger.warning(f"Migration {job.id} paused: {reason}")
            return MigrationResult.from_job(job)

        if job.config.validate_after_migration:
            failures = await self._validate(state)
            if failures:
                error = MigrationValidationError(
                    f"Post-migration validation failed for {len(failures)} item(s)",
                    failures=failures,
                )
                for failure in failures:
                    job.record_error(f"validation: {failure}")
                await self._fail(state, error)
                raise error

        if job.config.cleanup_local_files:
            await self._cleanup_origin(state)

        job.complete()
        await self._checkpoint_or_fail(state)
        self.event_bus.emit(MigrationCompleted(
            job.id,
            total_items=job.total_items,
            processed_items=job.processed_items,
            success_count=job.success_count,
            error_count=job.error_count,
            avg_processing_time_ms=job.avg_processing_time_ms,
            total_cost_usd=job.total_cost,
            errors=list(job.errors),
        ))
        logger.info(
            f"Migration {job.id} completed: {job.success_count} succeeded, "
            f"{job.error_count} failed"
        )
        return MigrationResult.from_job(job)

    async def _validate(self, state: _RunState) -> List[str]:
        """Spot-check an evenly spaced sample of migrated items at the destination."""
        succeeded = [item for item in state.ordered_items() if item.outcome == ItemOutcome.SUCCEEDED]
        sample_size = min(state.job.config.validation_sample_size, len(succeeded))
        if sample_size == 0:
            return []

        step = len(succeeded) / sample_size
        sample = [succeeded[int(i * step)] for i in range(sample_size)]
        failures = []

        for item in sample:
            for ref in item.destination_refs.values():
                try:
                    size = await self.destination.get_size(ref)
                except PhotoMigratorError as e:
                    failures.append(f"{item.item_id}: could not check {ref}: {e.message}")
                    continue
                expected = item.destination_sizes.get(ref)
                if size is None:
                    failures.append(f"{item.item_id}: {ref} is missing")
                elif expected is not None and size != expected:
                    failures.append(f"{item.item_id}: {ref} has size {size}, expected {expected}")

        logger.info(f"Validated {sample_size} migrated items, {len(failures)} problems found")
        return failures

    async def _cleanup_origin(self, state: _RunState) -> None:
        """Delete origin copies of successfully migrated items."""
        removed = 0
        for item in state.ordered_items():
            if item.outcome != ItemOutcome.SUCCEEDED or item.origin_removed:
                continue
            try:
                await self.origin.delete(item.origin_url)
            except PhotoMigratorError as e:
                logger.warning(f"Could not remove origin file {item.origin_url}: {e.message}")
                continue
            item.origin_removed = True
            removed += 1
        logger.info(f"Removed {removed} origin files after migration")

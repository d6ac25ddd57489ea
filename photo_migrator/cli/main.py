"""
Main CLI entry point for the Photo Migrator.

This module provides the command-line interface using Click with Rich
formatting. ``photo-migrator migrate`` starts, resumes, dry-runs or
rolls back a migration; ``photo-migrator status`` inspects checkpoints.
"""

import asyncio
import signal
import sys
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import boto3
import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from photo_migrator import __version__
from photo_migrator.core.error_handler import ErrorHandler
from photo_migrator.core.exceptions import (
    CheckpointError,
    ConfigurationError,
    PhotoMigratorError,
)
from photo_migrator.cost.guard import CostGuard
from photo_migrator.inventory.source import LocalDirectoryInventory
from photo_migrator.models.config import AppConfig, MigrationConfig, StorageConfig, load_config_file
from photo_migrator.models.session import (
    DryRunReport,
    JobStatus,
    MigrationResult,
    RollbackResult,
)
from photo_migrator.monitoring.progress_tracker import ProgressReporter
from photo_migrator.orchestrator.checkpoint import JsonFileCheckpointStore
from photo_migrator.orchestrator.events import EventBus
from photo_migrator.orchestrator.orchestrator import MigrationOrchestrator
from photo_migrator.storage.factory import StorageBackendFactory
from photo_migrator.utils.logging import EventAuditLogger, get_logger, setup_logging

console = Console()
logger = get_logger("cli")

STATUS_STYLES = {
    JobStatus.PENDING: "dim",
    JobStatus.RUNNING: "cyan",
    JobStatus.PAUSED: "yellow",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
    JobStatus.ROLLED_BACK: "magenta",
}


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx: click.Context, version: bool, verbose: bool):
    """
    Photo Migrator

    Moves photos from local storage to S3-compatible object storage in
    resumable, cost-protected batches.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    if version:
        console.print(f"Photo Migrator version {__version__}")
        sys.exit(0)

    if ctx.invoked_subcommand is None:
        console.print(Panel(
            "[bold blue]Photo Migrator[/bold blue]\n"
            f"[dim cyan]Version {__version__}[/dim cyan]\n\n"
            "[cyan]photo-migrator migrate --dry-run[/cyan]  - Estimate a migration\n"
            "[cyan]photo-migrator migrate[/cyan]            - Run a migration\n"
            "[cyan]photo-migrator status[/cyan]             - List migrations",
            title="Welcome",
            border_style="blue",
        ))


def build_app_config(config_path: Optional[str], overrides: Dict[str, Any]) -> AppConfig:
    """
    Combine the config file (if any) with command-line overrides.

    Raises:
        ConfigurationError: If the file or the merged values are invalid
    """
    app_config = load_config_file(config_path) if config_path else AppConfig()

    storage_overrides = {
        key: overrides.pop(key)
        for key in ('origin_root', 'bucket', 'region', 'endpoint_url', 'key_prefix', 'profile')
        if overrides.get(key) is not None
    }
    destination_root = overrides.pop('destination_root', None)
    if destination_root:
        storage_overrides['destination_type'] = 'local'
        storage_overrides['destination_root'] = destination_root
    if storage_overrides:
        app_config.storage = StorageConfig(**{**app_config.storage.model_dump(), **storage_overrides})

    checkpoint_dir = overrides.pop('checkpoint_dir', None)
    if checkpoint_dir:
        app_config.checkpoint_dir = checkpoint_dir
    log_file = overrides.pop('log_file', None)
    if log_file:
        app_config.log_file = log_file

    merged = app_config.migration.model_dump()
    merged.update({key: value for key, value in overrides.items() if value is not None})
    app_config.migration = MigrationConfig.build(**merged)
    return app_config


def build_orchestrator(app_config: AppConfig, event_bus: EventBus) -> MigrationOrchestrator:
    """Wire up an orchestrator from configuration."""
    storage = app_config.storage
    return MigrationOrchestrator(
        origin=StorageBackendFactory.create_origin(storage),
        destination=StorageBackendFactory.create_destination(storage),
        inventory=LocalDirectoryInventory(storage.origin_root),
        checkpoint_store=JsonFileCheckpointStore(app_config.checkpoint_dir),
        cost_guard=CostGuard(
            config=app_config.cost,
            threshold=app_config.migration.cost_protection_threshold,
            enabled=app_config.migration.cost_protection_enabled,
        ),
        event_bus=event_bus,
    )


def check_credentials(app_config: AppConfig) -> None:
    """
    Make sure AWS credentials can be resolved for an S3 destination.

    Raises:
        ConfigurationError: If boto3 finds no credentials
    """
    if app_config.storage.destination_type != 's3':
        return
    session = boto3.session.Session(profile_name=app_config.storage.profile)
    if session.get_credentials() is None:
        raise ConfigurationError(
            "AWS credentials not found. Set AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY, "
            "configure a profile, or run with an instance role."
        )


async def run_with_interrupts(
    orchestrator: MigrationOrchestrator,
    operation: Callable[[], Awaitable[Any]],
) -> Any:
    """Run an orchestrator operation, turning Ctrl+C into a graceful stop."""
    loop = asyncio.get_running_loop()

    def on_interrupt():
        logger.warning("SIGINT received, requesting a graceful stop")
        console.print(
            "\n[yellow]Interrupt received: finishing in-flight items and saving a checkpoint...[/yellow]"
        )
        orchestrator.request_stop()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        installed = False

    try:
        return await operation()
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def print_dry_run(report: DryRunReport) -> None:
    table = Table(title="Dry Run", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Photos to migrate", str(report.total_items))
    table.add_row("Batches", f"{report.batch_count} (of {report.batch_size})")
    table.add_row("Estimated storage", f"{report.estimated_bytes / (1024 * 1024):.1f} MB")
    table.add_row("Estimated requests", str(report.estimated_requests))
    table.add_row("Estimated cost", f"${report.estimated_cost_usd:.4f}")
    table.add_row("Projected usage", f"{report.projected_usage_fraction:.1%} of limits")
    console.print(table)
    if report.would_pause_for_cost:
        console.print(
            "[yellow]Cost protection would pause this migration before it completes.[/yellow]"
        )
    console.print("[dim]Dry run: nothing was uploaded.[/dim]")


def print_result(result: MigrationResult, elapsed: float) -> None:
    style = STATUS_STYLES.get(result.status, "white")
    table = Table(title=f"Migration {result.migration_id}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Status", f"[{style}]{result.status.value}[/{style}]")
    table.add_row("Processed", f"{result.total_processed}/{result.summary.total_items}")
    table.add_row("Succeeded", str(result.success_count))
    table.add_row("Failed", str(result.error_count))
    table.add_row("Avg time per item", f"{result.summary.avg_processing_time_ms:.1f} ms")
    table.add_row("Estimated cost", f"${result.summary.total_cost_usd:.4f}")
    table.add_row("Elapsed", f"{elapsed:.1f}s")
    if result.pause_reason:
        table.add_row("Pause reason", result.pause_reason)
    console.print(table)

    if result.status in (JobStatus.PAUSED, JobStatus.FAILED):
        console.print(
            f"[yellow]Use --resume {result.migration_id} to continue this migration.[/yellow]"
        )


def print_rollback(result: RollbackResult) -> None:
    style = "yellow" if result.failed_count else "green"
    console.print(Panel(
        f"Items rolled back: {result.rolled_back_items}\n"
        f"Objects deleted: {result.deleted_objects}\n"
        f"Origin files restored: {result.restored_origin_objects}\n"
        f"Failures: {result.failed_count}",
        title=f"Rollback {result.migration_id}",
        border_style=style,
    ))
    for failure in result.failures:
        console.print(f"  [red]✗[/red] {failure}")


def print_error(error: PhotoMigratorError, migration_id: Optional[str] = None) -> None:
    console.print(f"[red]Error: {error.message}[/red]")
    for field_error in getattr(error, 'field_errors', []) or []:
        console.print(f"  [red]•[/red] {field_error}")
    for failure in getattr(error, 'failures', []) or []:
        console.print(f"  [red]•[/red] {failure}")
    for hint in ErrorHandler().remediation_hint(error):
        console.print(f"  [dim]→ {hint}[/dim]")
    if migration_id and isinstance(error, CheckpointError):
        console.print(f"[yellow]Use --resume {migration_id} once the problem is fixed.[/yellow]")


@main.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='YAML configuration file')
@click.option('--dry-run', is_flag=True, help='Estimate the migration without uploading')
@click.option('--resume', 'resume_id', metavar='ID', help='Resume a paused or failed migration')
@click.option('--rollback', 'rollback_id', metavar='ID', help='Roll back a completed or failed migration')
@click.option('--migration-id', help='Explicit id for a new migration')
@click.option('--batch-size', type=int, help='Photos per batch [default: 50]')
@click.option('--max-concurrent-batches', type=int, help='Batches in flight at once [default: 2]')
@click.option('--max-retries', 'max_retries_per_item', type=int,
              help='Attempts per photo before it is marked failed [default: 3]')
@click.option('--pause-on-error-threshold', type=int,
              help='Pause after this many failed photos; 0 disables [default: 5]')
@click.option('--enable-cost-protection/--disable-cost-protection', 'cost_protection_enabled',
              default=None, help='Pause before exceeding usage limits [default: enabled]')
@click.option('--cost-threshold', 'cost_protection_threshold', type=float,
              help='Fraction of usage limits at which to pause [default: 0.85]')
@click.option('--validate-after-migration/--no-validate-after-migration', 'validate_after_migration',
              default=None, help='Spot-check uploaded objects when done [default: on]')
@click.option('--cleanup-local-files/--keep-local-files', 'cleanup_local_files', default=None,
              help='Delete origin files after a successful migration [default: keep]')
@click.option('--format', 'image_formats', multiple=True,
              type=click.Choice(['jpeg', 'webp', 'avif', 'png']),
              help='Encode photos into this format (repeatable); originals are copied if omitted')
@click.option('--origin-root', type=click.Path(), help='Directory holding the photos to migrate')
@click.option('--bucket', help='Destination S3 bucket')
@click.option('--region', help='Destination S3 region')
@click.option('--endpoint-url', help='S3-compatible endpoint URL')
@click.option('--key-prefix', help='Prefix for destination keys')
@click.option('--profile', help='AWS profile name')
@click.option('--destination-root', type=click.Path(), help='Migrate to a local directory instead of S3')
@click.option('--checkpoint-dir', type=click.Path(), help='Directory for checkpoint files')
@click.option('--log-file', type=click.Path(), help='Write logs to this file')
@click.pass_context
def migrate(
    ctx: click.Context,
    config: Optional[str],
    dry_run: bool,
    resume_id: Optional[str],
    rollback_id: Optional[str],
    migration_id: Optional[str],
    image_formats: Tuple[str, ...],
    **options: Any,
):
    """Run, resume, dry-run or roll back a photo migration."""
    verbose = ctx.obj.get('verbose', False)

    if sum(bool(flag) for flag in (dry_run, resume_id, rollback_id)) > 1:
        raise click.UsageError("--dry-run, --resume and --rollback are mutually exclusive")

    if image_formats:
        options['image_formats'] = list(image_formats)

    target_id = resume_id or rollback_id or migration_id
    try:
        app_config = build_app_config(config, options)
        setup_logging(
            level="DEBUG" if verbose else "WARNING",
            log_file=app_config.log_file,
        )

        event_bus = EventBus()
        reporter = ProgressReporter(console=console, verbose=verbose)
        reporter.attach(event_bus)
        if app_config.log_file:
            EventAuditLogger().attach(event_bus)

        orchestrator = build_orchestrator(app_config, event_bus)

        if dry_run:
            report = asyncio.run(orchestrator.dry_run(app_config.migration))
            print_dry_run(report)
            sys.exit(0)

        check_credentials(app_config)

        if rollback_id:
            result = asyncio.run(run_with_interrupts(
                orchestrator, lambda: orchestrator.rollback(rollback_id)
            ))
            print_rollback(result)
            sys.exit(0)

        started = time.monotonic()
        if resume_id:
            console.print(f"[green]Resuming migration {resume_id}...[/green]")
            result = asyncio.run(run_with_interrupts(
                orchestrator, lambda: orchestrator.resume(resume_id)
            ))
        else:
            console.print("[green]Starting photo migration...[/green]")
            result = asyncio.run(run_with_interrupts(
                orchestrator,
                lambda: orchestrator.execute(app_config.migration, migration_id=migration_id),
            ))
        print_result(result, time.monotonic() - started)
        sys.exit(0)

    except PhotoMigratorError as e:
        logger.debug(f"migrate failed with {type(e).__name__}", exc_info=True)
        print_error(e, target_id)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Migration interrupted[/yellow]")
        sys.exit(1)


@main.command()
@click.argument('migration_id', required=False)
@click.option('--checkpoint-dir', type=click.Path(), help='Directory holding checkpoint files')
@click.option('--config', '-c', type=click.Path(exists=True), help='YAML configuration file')
def status(migration_id: Optional[str], checkpoint_dir: Optional[str], config: Optional[str]):
    """Show one migration, or list all known migrations."""
    try:
        app_config = load_config_file(config) if config else AppConfig()
        store = JsonFileCheckpointStore(checkpoint_dir or app_config.checkpoint_dir)

        if migration_id:
            checkpoint = asyncio.run(store.load(migration_id))
            print_result(MigrationResult.from_job(checkpoint.job), 0.0)
            return

        ids = asyncio.run(store.list_ids())
        if not ids:
            console.print("[yellow]No migrations found[/yellow]")
            return

        table = Table(title="Migrations")
        table.add_column("ID", style="cyan")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Last batch", justify="right")
        for checkpoint_id in ids:
            checkpoint = asyncio.run(store.load(checkpoint_id))
            job = checkpoint.job
            style = STATUS_STYLES.get(job.status, "white")
            table.add_row(
                job.id,
                f"[{style}]{job.status.value}[/{style}]",
                f"{job.processed_items}/{job.total_items}",
                str(job.error_count),
                str(checkpoint.last_completed_batch_number),
            )
        console.print(table)

    except PhotoMigratorError as e:
        print_error(e)
        sys.exit(1)


if __name__ == '__main__':
    main()

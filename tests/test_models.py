"""
Unit tests for configuration and session models.
"""

import pytest

from photo_migrator.core.exceptions import ConfigurationError, MigrationStateError
from photo_migrator.models.config import (
    AppConfig,
    ImageFormat,
    MigrationConfig,
    StorageConfig,
    load_config_file,
    save_config_file,
)
from photo_migrator.models.session import (
    MAX_RECORDED_ERRORS,
    Batch,
    Checkpoint,
    ItemOutcome,
    JobStatus,
    MigrationItem,
    MigrationJob,
    MigrationResult,
)

from support import BASE_TIME


class TestMigrationConfig:
    """Test cases for MigrationConfig."""

    def test_defaults(self):
        config = MigrationConfig()

        assert config.batch_size == 50
        assert config.max_concurrent_batches == 2
        assert config.retry_failed_items is True
        assert config.max_retries_per_item == 3
        assert config.pause_on_error_threshold == 5
        assert config.cost_protection_enabled is True
        assert config.cost_protection_threshold == 0.85
        assert config.validate_after_migration is True
        assert config.cleanup_local_files is False
        assert config.image_formats == []

    def test_attempts_per_item(self):
        assert MigrationConfig(max_retries_per_item=4).attempts_per_item == 4
        assert MigrationConfig(max_retries_per_item=4, retry_failed_items=False).attempts_per_item == 1

    def test_duplicate_formats_are_collapsed(self):
        config = MigrationConfig(image_formats=["webp", "jpeg", "webp"])
        assert config.image_formats == [ImageFormat.WEBP, ImageFormat.JPEG]

    def test_build_ignores_none(self):
        config = MigrationConfig.build(batch_size=10, max_concurrent_batches=None)
        assert config.batch_size == 10
        assert config.max_concurrent_batches == 2

    @pytest.mark.parametrize("options", [
        {"batch_size": 0},
        {"max_concurrent_batches": 0},
        {"max_retries_per_item": 0},
        {"cost_protection_threshold": 1.5},
        {"image_formats": ["tiff"]},
    ])
    def test_build_rejects_invalid_values(self, options):
        with pytest.raises(ConfigurationError) as exc_info:
            MigrationConfig.build(**options)
        assert exc_info.value.field_errors


class TestStorageConfig:
    """Test cases for StorageConfig."""

    def test_prefix_normalization(self):
        assert StorageConfig(key_prefix="/photos").key_prefix == "photos/"
        assert StorageConfig(key_prefix="photos/").key_prefix == "photos/"
        assert StorageConfig(key_prefix="").key_prefix == ""

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("PHOTO_MIGRATOR_BUCKET", "env-bucket")
        monkeypatch.setenv("AWS_REGION", "eu-west-1")

        config = StorageConfig()

        assert config.bucket == "env-bucket"
        assert config.region == "eu-west-1"


class TestConfigFile:
    """Test cases for YAML config loading."""

    def test_round_trip(self, tmp_path):
        config = AppConfig(
            migration=MigrationConfig(batch_size=20, image_formats=["webp"]),
            storage=StorageConfig(bucket="photos", origin_root="/srv/uploads"),
        )
        path = save_config_file(config, tmp_path / "config.yaml")

        loaded = load_config_file(path)

        assert loaded.migration.batch_size == 20
        assert loaded.migration.image_formats == [ImageFormat.WEBP]
        assert loaded.storage.bucket == "photos"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config_file(tmp_path / "missing.yaml")

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config_file(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("migration:\n  batch_size: -1\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_file(path)
        assert any("batch_size" in e for e in exc_info.value.field_errors)


class TestMigrationJob:
    """Test cases for the job state machine."""

    def test_start_sets_started_at(self):
        job = MigrationJob(id="m1")
        job.start()

        assert job.status == JobStatus.RUNNING
        assert job.started_at is not None
        assert job.resumed_at is None

    def test_pause_and_resume(self):
        job = MigrationJob(id="m1")
        job.start()
        job.pause("cost limit")

        assert job.status == JobStatus.PAUSED
        assert job.pause_reason == "cost limit"

        job.start()
        assert job.status == JobStatus.RUNNING
        assert job.pause_reason is None
        assert job.resumed_at is not None

    def test_failed_job_can_restart_or_roll_back(self):
        job = MigrationJob(id="m1")
        job.start()
        job.fail("boom")

        assert job.errors == ["boom"]
        job.start()
        job.fail("again")
        job.rollback()
        assert job.status == JobStatus.ROLLED_BACK

    @pytest.mark.parametrize("setup, target", [
        ([], JobStatus.COMPLETED),
        ([JobStatus.RUNNING, JobStatus.COMPLETED], JobStatus.RUNNING),
        ([JobStatus.RUNNING, JobStatus.PAUSED], JobStatus.ROLLED_BACK),
        ([JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.ROLLED_BACK], JobStatus.RUNNING),
    ])
    def test_illegal_transitions(self, setup, target):
        job = MigrationJob(id="m1")
        for status in setup:
            job.transition_to(status)

        with pytest.raises(MigrationStateError) as exc_info:
            job.transition_to(target)
        assert exc_info.value.requested == target.value

    def test_recorded_errors_are_capped(self):
        job = MigrationJob(id="m1")
        for i in range(MAX_RECORDED_ERRORS + 10):
            job.record_error(f"error {i}")
        assert len(job.errors) == MAX_RECORDED_ERRORS

    def test_progress(self):
        job = MigrationJob(id="m1", total_items=8, processed_items=2, total_processing_ms=50.0)
        assert job.progress_percent == 25.0
        assert job.avg_processing_time_ms == 25.0
        assert MigrationJob(id="empty").progress_percent == 100.0


class TestMigrationItem:
    """Test cases for item outcomes."""

    def make_item(self):
        return MigrationItem(item_id="a.jpg", origin_url="a.jpg", created_at=BASE_TIME)

    def test_mark_succeeded(self):
        item = self.make_item()
        item.mark_failed("timeout", permanent=False)
        item.mark_succeeded({"original": "migrated/a.jpg"}, {"migrated/a.jpg": 12}, 12)

        assert item.outcome == ItemOutcome.SUCCEEDED
        assert item.destination_key == "migrated/a.jpg"
        assert item.last_error is None
        assert item.is_terminal

    def test_retryable_failure_is_not_terminal(self):
        item = self.make_item()
        item.mark_failed("timeout", permanent=False)
        assert item.outcome == ItemOutcome.FAILED_RETRYABLE
        assert not item.is_terminal

        item.mark_failed("invalid", permanent=True)
        assert item.is_terminal


class TestCheckpointModels:
    """Test cases for checkpoint and result models."""

    def test_batch_id(self):
        assert Batch.make_id("m1", 7) == "m1-b00007"

    def test_checkpoint_json_round_trip(self):
        item = MigrationItem(item_id="a.jpg", origin_url="a.jpg", created_at=BASE_TIME)
        item.mark_succeeded({"original": "migrated/a.jpg"}, {"migrated/a.jpg": 12}, 12)
        job = MigrationJob(id="m1", total_items=1, processed_items=1, success_count=1)
        checkpoint = Checkpoint(
            migration_id="m1",
            last_completed_batch_number=0,
            item_outcomes={"a.jpg": ItemOutcome.SUCCEEDED},
            job=job,
            items=[item],
        )

        restored = Checkpoint.model_validate_json(checkpoint.model_dump_json())

        assert restored == checkpoint

    def test_result_from_job(self):
        job = MigrationJob(
            id="m1", total_items=10, processed_items=10,
            success_count=9, error_count=1, total_cost=0.5,
        )
        result = MigrationResult.from_job(job)

        assert result.total_processed == 10
        assert result.summary.failed_items == 1
        assert result.summary.total_cost_usd == 0.5

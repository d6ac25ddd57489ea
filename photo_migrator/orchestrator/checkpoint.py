"""
Durable checkpoint storage.

A checkpoint is the only state needed to resume a job. The JSON file
store writes each checkpoint to a temporary file, fsyncs it and renames
it over the previous version, so a crash leaves either the old or the
new checkpoint, never a torn one.
"""

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError as PydanticValidationError

from photo_migrator.core.exceptions import CheckpointError, CheckpointNotFoundError
from photo_migrator.models.session import Checkpoint

logger = logging.getLogger(__name__)


class CheckpointStore(ABC):
    """Persists checkpoints by migration id."""

    @abstractmethod
    async def save(self, checkpoint: Checkpoint) -> None:
        """Durably write a checkpoint, replacing any previous one for the same id."""
        pass

    @abstractmethod
    async def load(self, migration_id: str) -> Checkpoint:
        """
        Read a checkpoint.

        Raises:
            CheckpointNotFoundError: If no checkpoint exists for the id
            CheckpointError: If the checkpoint cannot be read
        """
        pass

    @abstractmethod
    async def exists(self, migration_id: str) -> bool:
        pass

    @abstractmethod
    async def list_ids(self) -> List[str]:
        pass


class JsonFileCheckpointStore(CheckpointStore):
    """
    One JSON file per migration in a directory.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory).expanduser()
        self._lock = asyncio.Lock()

    def path_for(self, migration_id: str) -> Path:
        if not migration_id or "/" in migration_id or "\\" in migration_id or migration_id.startswith("."):
            raise CheckpointError(f"Invalid migration id: {migration_id!r}", migration_id=migration_id)
        return self.directory / f"{migration_id}.json"

    async def save(self, checkpoint: Checkpoint) -> None:
        path = self.path_for(checkpoint.migration_id)
        payload = checkpoint.model_dump_json(indent=2)
        async with self._lock:
            try:
                await asyncio.to_thread(self._write_atomic, path, payload)
            except OSError as e:
                raise CheckpointError(
                    f"Failed to save checkpoint for {checkpoint.migration_id}: {e}",
                    migration_id=checkpoint.migration_id,
                ) from e
        logger.debug(
            f"Checkpoint saved for {checkpoint.migration_id} "
            f"(last batch {checkpoint.last_completed_batch_number})"
        )

    @staticmethod
    def _write_atomic(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def load(self, migration_id: str) -> Checkpoint:
        path = self.path_for(migration_id)
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise CheckpointNotFoundError(
                f"No checkpoint found for migration {migration_id}",
                migration_id=migration_id,
            ) from e
        except OSError as e:
            raise CheckpointError(
                f"Failed to read checkpoint for {migration_id}: {e}",
                migration_id=migration_id,
            ) from e

        try:
            return Checkpoint.model_validate_json(raw)
        except (PydanticValidationError, json.JSONDecodeError, ValueError) as e:
            raise CheckpointError(
                f"Checkpoint for {migration_id} is corrupt: {e}",
                migration_id=migration_id,
            ) from e

    async def exists(self, migration_id: str) -> bool:
        return await asyncio.to_thread(self.path_for(migration_id).exists)

    async def list_ids(self) -> List[str]:
        def _list():
            if not self.directory.is_dir():
                return []
            return sorted(p.stem for p in self.directory.glob("*.json"))
        return await asyncio.to_thread(_list)

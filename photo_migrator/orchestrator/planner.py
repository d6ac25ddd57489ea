"""
Batch planning.

Items are ordered by (created_at, item_id) and cut into consecutive
batches. Numbering is computed over the full ordered manifest, so a
batch keeps the same number on every run and a resume can skip
everything up to the last committed batch.
"""

import math
from typing import Iterable, List, Optional

from photo_migrator.core.exceptions import ConfigurationError
from photo_migrator.models.session import Batch, MigrationItem


def batch_count(item_count: int, batch_size: int) -> int:
    """Number of batches needed for a number of items."""
    if batch_size <= 0:
        raise ConfigurationError(f"Batch size must be positive, got {batch_size}")
    return math.ceil(item_count / batch_size)


def order_items(items: Iterable[MigrationItem]) -> List[MigrationItem]:
    """Deterministic processing order."""
    return sorted(items, key=lambda item: (item.created_at, item.item_id))


class BatchPlanner:
    """Partitions items into numbered batches."""

    def plan(
        self,
        migration_id: str,
        items: Iterable[MigrationItem],
        batch_size: int,
        resume_from_batch: int = 0,
        completed_ids: Optional[Iterable[str]] = None,
    ) -> List[Batch]:
        """
        Plan the batches still to run.

        Args:
            migration_id: Job id, used to derive batch ids
            items: Every item in the job
            batch_size: Items per batch
            resume_from_batch: First batch number to include
            completed_ids: Items to leave out of their batch

        Returns:
            Batches in ascending batch-number order; batches with no
            remaining items are omitted
        """
        if batch_size <= 0:
            raise ConfigurationError(f"Batch size must be positive, got {batch_size}")

        ordered = order_items(items)
        skip = frozenset(completed_ids or ())
        batches = []

        for number in range(max(0, resume_from_batch), batch_count(len(ordered), batch_size)):
            start = number * batch_size
            item_ids = [
                item.item_id
                for item in ordered[start:start + batch_size]
                if item.item_id not in skip
            ]
            if not item_ids:
                continue
            batches.append(Batch(
                batch_id=Batch.make_id(migration_id, number),
                batch_number=number,
                item_ids=item_ids,
            ))

        return batches

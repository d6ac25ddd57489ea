"""
Cost protection for the destination store.

The CostGuard tracks storage volume and request counts against usage
limits (the S3 free tier by default) and acts as a circuit breaker: a
batch is admitted only if its projected usage stays within the
configured fraction of every limit. Once a batch is denied the breaker
stays open until it is explicitly reset.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from photo_migrator.core.exceptions import CostLimitExceeded
from photo_migrator.models.config import CostProtectionConfig
from photo_migrator.models.session import CostSnapshot
from photo_migrator.storage.base import StorageUsage

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024 ** 3


@dataclass
class UsageDelta:
    """A change in destination usage."""
    bytes_stored: int = 0
    put_requests: int = 0
    get_requests: int = 0

    def __add__(self, other: "UsageDelta") -> "UsageDelta":
        return UsageDelta(
            bytes_stored=self.bytes_stored + other.bytes_stored,
            put_requests=self.put_requests + other.put_requests,
            get_requests=self.get_requests + other.get_requests,
        )

    def __sub__(self, other: "UsageDelta") -> "UsageDelta":
        return UsageDelta(
            bytes_stored=max(0, self.bytes_stored - other.bytes_stored),
            put_requests=max(0, self.put_requests - other.put_requests),
            get_requests=max(0, self.get_requests - other.get_requests),
        )


@dataclass
class Admission:
    """Decision for a batch admission request."""
    allowed: bool
    projected_fraction: float
    reason: Optional[str] = None
    reservation: Optional[UsageDelta] = None


class CostGuard:
    """
    Usage accounting and circuit breaker for the destination.

    All mutations happen under an asyncio lock so concurrent admissions
    see each other's reservations and cannot jointly overshoot.
    """

    def __init__(
        self,
        config: Optional[CostProtectionConfig] = None,
        threshold: float = 0.85,
        enabled: bool = True,
    ):
        self.config = config or CostProtectionConfig()
        self.threshold = threshold
        self.enabled = enabled

        self._used = UsageDelta()
        self._reserved = UsageDelta()
        self._new_bytes = 0
        self._new_objects = 0
        self._cost_usd = 0.0
        self._circuit_open = False
        self._warned = False
        self._lock = asyncio.Lock()

    def configure(self, threshold: float, enabled: bool) -> None:
        """Apply per-job settings."""
        self.threshold = threshold
        self.enabled = enabled

    @property
    def is_open(self) -> bool:
        return self._circuit_open

    def seed(self, usage: StorageUsage) -> None:
        """Start from the volume already stored at the destination."""
        self._used.bytes_stored = usage.bytes_stored
        logger.info(
            f"Cost baseline: {usage.bytes_stored} bytes in {usage.object_count} objects"
        )

    def restore(self, snapshot: CostSnapshot) -> None:
        """Restore counters saved in a checkpoint."""
        self._used = UsageDelta(
            bytes_stored=snapshot.bytes_stored,
            put_requests=snapshot.requests_issued,
            get_requests=snapshot.get_requests,
        )
        self._reserved = UsageDelta()
        self._cost_usd = snapshot.estimated_cost_usd

    def reset(self) -> None:
        """Close the breaker so admissions are evaluated again."""
        if self._circuit_open:
            logger.info("Cost circuit breaker reset")
        self._circuit_open = False
        self._warned = False

    def average_object_bytes(self) -> int:
        if self._new_objects:
            return max(1, self._new_bytes // self._new_objects)
        return self.config.default_object_bytes

    def estimate(self, item_count: int, variants_per_item: int = 1) -> UsageDelta:
        """
        Estimate usage for migrating a number of items.

        Each object costs one existence check (GET class) and one PUT, and
        is sized at the average object size observed so far.
        """
        objects = item_count * max(1, variants_per_item)
        return UsageDelta(
            bytes_stored=objects * self.average_object_bytes(),
            put_requests=objects,
            get_requests=objects,
        )

    def estimate_cost_usd(self, delta: UsageDelta) -> float:
        """Gross cost of a usage delta at list prices."""
        pricing = self.config.pricing
        return (
            delta.bytes_stored / BYTES_PER_GB * pricing.storage_per_gb_month
            + delta.put_requests / 1000 * pricing.put_per_1000
            + delta.get_requests / 1000 * pricing.get_per_1000
        )

    def _fractions(self, total: UsageDelta) -> dict:
        limits = self.config.limits
        return {
            "storage": total.bytes_stored / limits.storage_bytes,
            "PUT requests": total.put_requests / limits.put_requests,
            "GET requests": total.get_requests / limits.get_requests,
        }

    def projected_fraction(self, delta: Optional[UsageDelta] = None) -> float:
        total = self._used + self._reserved + (delta or UsageDelta())
        return max(self._fractions(total).values())

    async def admit(self, delta: UsageDelta) -> Admission:
        """
        Decide whether work with the given estimated usage may start.

        An admitted delta is reserved until record() or release() is
        called with it.
        """
        async with self._lock:
            total = self._used + self._reserved + delta
            fractions = self._fractions(total)
            metric, projected = max(fractions.items(), key=lambda kv: kv[1])

            if not self.enabled:
                self._reserved = self._reserved + delta
                return Admission(allowed=True, projected_fraction=projected, reservation=delta)

            if self._circuit_open:
                return Admission(
                    allowed=False,
                    projected_fraction=projected,
                    reason="Cost circuit breaker is open",
                )

            if projected > self.threshold:
                self._circuit_open = True
                reason = (
                    f"Projected {metric} usage {projected:.1%} exceeds "
                    f"threshold {self.threshold:.0%}"
                )
                logger.warning(f"Cost limit reached: {reason}")
                return Admission(allowed=False, projected_fraction=projected, reason=reason)

            self._reserved = self._reserved + delta
            return Admission(allowed=True, projected_fraction=projected, reservation=delta)

    async def enforce(self, delta: UsageDelta) -> UsageDelta:
        """
        Admit or raise.

        Raises:
            CostLimitExceeded: If the admission is denied
        """
        admission = await self.admit(delta)
        if not admission.allowed:
            raise CostLimitExceeded(
                admission.reason or "Cost limit exceeded",
                projected_fraction=admission.projected_fraction,
            )
        return admission.reservation

    async def release(self, reservation: Optional[UsageDelta]) -> None:
        """Drop a reservation without recording usage."""
        if reservation is None:
            return
        async with self._lock:
            self._reserved = self._reserved - reservation

    async def record(self, actual: UsageDelta, reservation: Optional[UsageDelta] = None) -> float:
        """
        Record measured usage, releasing the matching reservation.

        Returns:
            Estimated cost of the recorded usage in USD
        """
        async with self._lock:
            if reservation is not None:
                self._reserved = self._reserved - reservation
            self._used = self._used + actual
            if actual.put_requests:
                self._new_bytes += actual.bytes_stored
                self._new_objects += actual.put_requests
            cost = self.estimate_cost_usd(actual)
            self._cost_usd += cost

            fraction = self.projected_fraction()
            if fraction >= self.config.warning_fraction and not self._warned:
                self._warned = True
                logger.warning(f"Destination usage at {fraction:.1%} of limits")
            return cost

    def snapshot(self) -> CostSnapshot:
        """Copy of the current counters."""
        return CostSnapshot(
            bytes_stored=self._used.bytes_stored,
            requests_issued=self._used.put_requests,
            get_requests=self._used.get_requests,
            estimated_cost_usd=round(self._cost_usd, 6),
            usage_fraction=max(self._fractions(self._used).values()),
            threshold_fraction=self.threshold,
            circuit_open=self._circuit_open,
        )

"""
Unit tests for the cost guard and its circuit breaker.
"""

import asyncio
import logging

import pytest

from photo_migrator.core.exceptions import CostLimitExceeded
from photo_migrator.cost.guard import CostGuard, UsageDelta
from photo_migrator.models.config import CostProtectionConfig, UsageLimits
from photo_migrator.models.session import CostSnapshot
from photo_migrator.storage.base import StorageUsage


def make_guard(put_requests=100, threshold=0.85, enabled=True, **limits) -> CostGuard:
    config = CostProtectionConfig(
        limits=UsageLimits(put_requests=put_requests, **limits),
        default_object_bytes=1000,
    )
    return CostGuard(config=config, threshold=threshold, enabled=enabled)


class TestUsageDelta:
    """Test cases for UsageDelta arithmetic."""

    def test_add_and_subtract(self):
        a = UsageDelta(bytes_stored=10, put_requests=2, get_requests=3)
        b = UsageDelta(bytes_stored=4, put_requests=5, get_requests=1)

        assert a + b == UsageDelta(14, 7, 4)
        assert a - b == UsageDelta(6, 0, 2)


class TestEstimates:
    """Test cases for usage and cost estimation."""

    def test_estimate_uses_default_object_size(self):
        guard = make_guard()
        estimate = guard.estimate(10)

        assert estimate == UsageDelta(bytes_stored=10_000, put_requests=10, get_requests=10)

    def test_estimate_counts_every_variant(self):
        guard = make_guard()
        assert guard.estimate(10, variants_per_item=3).put_requests == 30

    @pytest.mark.asyncio
    async def test_estimate_learns_average_object_size(self):
        guard = make_guard()
        await guard.record(UsageDelta(bytes_stored=3000, put_requests=2, get_requests=2))

        assert guard.average_object_bytes() == 1500
        assert guard.estimate(4).bytes_stored == 6000

    def test_cost_at_list_prices(self):
        guard = make_guard()
        cost = guard.estimate_cost_usd(UsageDelta(
            bytes_stored=1024 ** 3, put_requests=1000, get_requests=1000
        ))
        assert cost == pytest.approx(0.023 + 0.005 + 0.0004)

    def test_seed_counts_existing_storage(self):
        guard = make_guard(storage_bytes=10_000)
        guard.seed(StorageUsage(bytes_stored=5000, object_count=5))

        assert guard.projected_fraction() == pytest.approx(0.5)


class TestAdmission:
    """Test cases for admission control."""

    @pytest.mark.asyncio
    async def test_admits_within_threshold(self):
        guard = make_guard()
        admission = await guard.admit(UsageDelta(put_requests=50))

        assert admission.allowed
        assert admission.projected_fraction == pytest.approx(0.5)
        assert admission.reservation == UsageDelta(put_requests=50)

    @pytest.mark.asyncio
    async def test_denial_opens_breaker(self):
        guard = make_guard()
        await guard.admit(UsageDelta(put_requests=50))

        denied = await guard.admit(UsageDelta(put_requests=50))

        assert not denied.allowed
        assert "PUT requests" in denied.reason
        assert guard.is_open

        small = await guard.admit(UsageDelta(put_requests=1))
        assert not small.allowed
        assert small.reason == "Cost circuit breaker is open"

    @pytest.mark.asyncio
    async def test_reset_closes_breaker(self):
        guard = make_guard()
        await guard.admit(UsageDelta(put_requests=90))
        assert guard.is_open

        guard.reset()

        assert not guard.is_open
        assert (await guard.admit(UsageDelta(put_requests=80))).allowed

    @pytest.mark.asyncio
    async def test_exactly_at_threshold_is_admitted(self):
        guard = make_guard(threshold=0.5)
        assert (await guard.admit(UsageDelta(put_requests=50))).allowed

    @pytest.mark.asyncio
    async def test_concurrent_admissions_cannot_overshoot(self):
        guard = make_guard()

        admissions = await asyncio.gather(
            *(guard.admit(UsageDelta(put_requests=10)) for _ in range(10))
        )

        assert sum(1 for a in admissions if a.allowed) == 8
        assert guard.projected_fraction() <= guard.threshold

    @pytest.mark.asyncio
    async def test_release_drops_reservation(self):
        guard = make_guard()
        admission = await guard.admit(UsageDelta(put_requests=60))

        await guard.release(admission.reservation)

        assert guard.projected_fraction() == 0.0

    @pytest.mark.asyncio
    async def test_disabled_guard_admits_everything(self):
        guard = make_guard(enabled=False)
        admission = await guard.admit(UsageDelta(put_requests=10_000))

        assert admission.allowed
        assert admission.projected_fraction == pytest.approx(100.0)
        assert not guard.is_open

    @pytest.mark.asyncio
    async def test_enforce_raises(self):
        guard = make_guard()
        with pytest.raises(CostLimitExceeded) as exc_info:
            await guard.enforce(UsageDelta(put_requests=95))

        assert exc_info.value.projected_fraction == pytest.approx(0.95)
        assert "threshold" in exc_info.value.reason


class TestRecording:
    """Test cases for usage recording and snapshots."""

    @pytest.mark.asyncio
    async def test_record_converts_reservation_to_usage(self):
        guard = make_guard()
        admission = await guard.admit(UsageDelta(put_requests=20, get_requests=20))

        cost = await guard.record(
            UsageDelta(bytes_stored=500, put_requests=10, get_requests=20),
            admission.reservation,
        )

        snapshot = guard.snapshot()
        assert snapshot.requests_issued == 10
        assert snapshot.get_requests == 20
        assert snapshot.bytes_stored == 500
        assert snapshot.usage_fraction == pytest.approx(0.1)
        assert cost == pytest.approx(guard.estimate_cost_usd(
            UsageDelta(bytes_stored=500, put_requests=10, get_requests=20)
        ))
        assert guard.projected_fraction() == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_warns_once_near_limit(self, caplog):
        guard = make_guard()
        with caplog.at_level(logging.WARNING, logger="photo_migrator.cost.guard"):
            await guard.record(UsageDelta(put_requests=81))
            await guard.record(UsageDelta(put_requests=1))

        warnings = [r for r in caplog.records if "of limits" in r.getMessage()]
        assert len(warnings) == 1

    def test_restore_from_snapshot(self):
        guard = make_guard()
        guard.restore(CostSnapshot(
            bytes_stored=100, requests_issued=40, get_requests=40, estimated_cost_usd=0.01
        ))

        snapshot = guard.snapshot()
        assert snapshot.requests_issued == 40
        assert snapshot.estimated_cost_usd == pytest.approx(0.01)
        assert guard.projected_fraction(UsageDelta(put_requests=40)) == pytest.approx(0.8)

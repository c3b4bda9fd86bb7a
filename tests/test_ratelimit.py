"""Tests for the commit rate limiter."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from commitgate.presets import BALANCED
from commitgate.ratelimit import RateLimiter
from commitgate.types import ReviewStatus

from conftest import make_record


class CountingStore:
    """Store double that records which queries ran."""

    def __init__(self, commits: int = 0, pending: int = 0):
        self.commits = commits
        self.pending = pending
        self.calls: list[str] = []

    async def count_commits(self, hours: int = 24) -> int:
        self.calls.append("count_commits")
        return self.commits

    async def get_by_status(self, status, limit=100):
        self.calls.append("get_by_status")
        return [object()] * min(self.pending, limit)


def limits(**changes):
    return replace(BALANCED, limits=replace(BALANCED.limits, **changes))


class TestCanCommit:
    """Hourly, daily and queue checks, first failure wins."""

    @pytest.mark.asyncio
    async def test_allowed(self) -> None:
        store = CountingStore()
        check = await RateLimiter(store).can_commit(BALANCED)

        assert check.allowed is True
        assert check.reason is None
        assert store.calls == ["count_commits", "get_by_status"]

    @pytest.mark.asyncio
    async def test_hourly_short_circuits(self) -> None:
        """The store is never consulted once the hourly cap is hit."""
        store = CountingStore(commits=10_000, pending=10_000)
        limiter = RateLimiter(store)
        for _ in range(100):
            limiter.record_commit()

        check = await limiter.can_commit(BALANCED)

        assert check.allowed is False
        assert check.reason == "Hourly limit reached (100/100)"
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_daily_limit(self) -> None:
        store = CountingStore(commits=500, pending=10_000)
        check = await RateLimiter(store).can_commit(BALANCED)

        assert check.reason == "Daily limit reached (500/500)"
        assert store.calls == ["count_commits"]

    @pytest.mark.asyncio
    async def test_queue_full(self) -> None:
        store = CountingStore(pending=50)
        check = await RateLimiter(store).can_commit(BALANCED)

        assert check.allowed is False
        assert check.reason == "Review queue full (50/50). Review pending items first."

    @pytest.mark.asyncio
    async def test_daily_count_comes_from_store(self, store) -> None:
        """A restarted limiter still sees today's commits."""
        for i in range(2):
            await store.record(make_record(
                f"c{i}", status=ReviewStatus.AUTO_APPROVED, can_revert=True
            ))

        check = await RateLimiter(store).can_commit(limits(max_auto_commits_per_day=2))
        assert check.reason == "Daily limit reached (2/2)"


class TestHourlyWindow:

    def test_old_commits_fall_out_of_window(self) -> None:
        limiter = RateLimiter(CountingStore())
        now = datetime.now(UTC)
        limiter.record_commit(at=now - timedelta(minutes=90))
        limiter.record_commit(at=now - timedelta(minutes=10))

        assert limiter.get_hourly_count() == 1

    def test_reset(self) -> None:
        limiter = RateLimiter(CountingStore())
        limiter.record_commit()
        limiter.reset()
        assert limiter.get_hourly_count() == 0

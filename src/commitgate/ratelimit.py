"""Commit rate limiting.

Three independent checks, first failure wins:
1. Hourly cap: in-memory sliding window, checked on every proposal
2. Daily cap: counted from the audit store (survives restarts)
3. Review queue depth: counted from the audit store

The in-memory window is a cache. It is lost on restart and assumes one
process. Daily and queue limits always go to the store.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from commitgate.config import AutonomousConfig
from commitgate.provenance.store import ProvenanceStore
from commitgate.types import ReviewStatus

HOUR = timedelta(hours=1)
DAY = timedelta(hours=24)


@dataclass(frozen=True, slots=True)
class RateLimitCheck:
    allowed: bool
    reason: str | None = None


class RateLimiter:
    """Hourly, daily and queue-depth limits for auto-commits."""

    def __init__(self, store: ProvenanceStore):
        self.store = store
        self._commits: deque[datetime] = deque()
        self._lock = threading.Lock()

    async def can_commit(self, config: AutonomousConfig) -> RateLimitCheck:
        """Check whether another auto-commit is allowed right now."""
        limits = config.limits

        hourly = self.get_hourly_count()
        if hourly >= limits.max_auto_commits_per_hour:
            return RateLimitCheck(
                allowed=False,
                reason=f"Hourly limit reached ({hourly}/{limits.max_auto_commits_per_hour})",
            )

        daily = await self.store.count_commits(hours=24)
        if daily >= limits.max_auto_commits_per_day:
            return RateLimitCheck(
                allowed=False,
                reason=f"Daily limit reached ({daily}/{limits.max_auto_commits_per_day})",
            )

        pending = len(
            await self.store.get_by_status(
                ReviewStatus.PENDING_REVIEW, limit=limits.max_pending_review
            )
        )
        if pending >= limits.max_pending_review:
            return RateLimitCheck(
                allowed=False,
                reason=(
                    f"Review queue full ({pending}/{limits.max_pending_review}). "
                    "Review pending items first."
                ),
            )

        return RateLimitCheck(allowed=True)

    def record_commit(self, at: datetime | None = None) -> None:
        """Count a commit. Visible to the next can_commit() call."""
        now = at or datetime.now(UTC)
        with self._lock:
            self._commits.append(now)
            self._trim(now - DAY)

    def get_hourly_count(self) -> int:
        now = datetime.now(UTC)
        with self._lock:
            self._trim(now - DAY)
            cutoff = now - HOUR
            return sum(1 for t in self._commits if t > cutoff)

    def reset(self) -> None:
        with self._lock:
            self._commits.clear()

    def _trim(self, cutoff: datetime) -> None:
        while self._commits and self._commits[0] <= cutoff:
            self._commits.popleft()

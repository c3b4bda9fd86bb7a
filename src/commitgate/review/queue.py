"""Read model for the human review queue.

Queue items are projections of pending audit records. They are not stored
separately.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from commitgate.confidence.types import ConfidenceResult
from commitgate.provenance.store import ProvenanceStore
from commitgate.types import AutoCommitProvenance, ReviewStatus


class QueueReason(Enum):
    """Why a proposal ended up in the review queue."""

    FLOOR_VETO = "floor_veto"
    RATE_LIMITED = "rate_limited"
    VALIDATION_FAILED = "validation_failed"
    SCOPE_RESTRICTED = "scope_restricted"
    LOW_CONFIDENCE = "low_confidence"


class QueueSort(Enum):
    CONFIDENCE_ASC = "confidence_asc"
    CONFIDENCE_DESC = "confidence_desc"
    DATE_ASC = "date_asc"
    DATE_DESC = "date_desc"
    REASON = "reason"


def classify_reason(reason: str) -> QueueReason:
    """Classify a decision reason string."""
    r = reason.lower()
    if "floor veto" in r:
        return QueueReason.FLOOR_VETO
    if "limit reached" in r or "queue full" in r or "rate limit" in r:
        return QueueReason.RATE_LIMITED
    if "validation" in r:
        return QueueReason.VALIDATION_FAILED
    if "blocked" in r or "not in allowed" in r:
        return QueueReason.SCOPE_RESTRICTED
    return QueueReason.LOW_CONFIDENCE


@dataclass(frozen=True, slots=True)
class ReviewQueueItem:
    provenance: AutoCommitProvenance
    confidence_result: ConfidenceResult | None
    queue_reason: QueueReason
    queued_at: datetime

    @classmethod
    def from_provenance(cls, provenance: AutoCommitProvenance) -> ReviewQueueItem:
        return cls(
            provenance=provenance,
            confidence_result=provenance.confidence_result,
            queue_reason=classify_reason(provenance.decision_reason),
            queued_at=provenance.created_at,
        )


@dataclass(frozen=True, slots=True)
class ReviewStats:
    pending_count: int
    auto_approved_24h: int
    auto_rejected_24h: int
    human_confirmed_24h: int
    human_reverted_24h: int
    avg_confidence: float
    """Mean confidence of pending items (0.0 when the queue is empty)."""

    rejection_rate: float
    """Reverted or auto-rejected share of the last 24 hours."""


def sort_items(items: list[ReviewQueueItem], sort: QueueSort) -> list[ReviewQueueItem]:
    if sort is QueueSort.CONFIDENCE_ASC:
        return sorted(items, key=lambda i: i.provenance.confidence)
    if sort is QueueSort.CONFIDENCE_DESC:
        return sorted(items, key=lambda i: i.provenance.confidence, reverse=True)
    if sort is QueueSort.DATE_ASC:
        return sorted(items, key=lambda i: i.queued_at)
    if sort is QueueSort.DATE_DESC:
        return sorted(items, key=lambda i: i.queued_at, reverse=True)
    return sorted(items, key=lambda i: (i.queue_reason.value, -i.queued_at.timestamp()))


def filter_items(
    items: list[ReviewQueueItem], reason: QueueReason | None
) -> list[ReviewQueueItem]:
    """Keep items with ``reason``. ``None`` keeps everything."""
    if reason is None:
        return list(items)
    return [i for i in items if i.queue_reason is reason]


class ReviewQueue:
    """Loads queue items and statistics from the audit store."""

    def __init__(self, store: ProvenanceStore, limit: int = 200):
        self.store = store
        self.limit = limit

    async def load_items(
        self,
        sort: QueueSort = QueueSort.DATE_DESC,
        reason: QueueReason | None = None,
    ) -> list[ReviewQueueItem]:
        pending = await self.store.get_by_status(ReviewStatus.PENDING_REVIEW, self.limit)
        items = [ReviewQueueItem.from_provenance(p) for p in pending]
        return sort_items(filter_items(items, reason), sort)

    async def load_stats(self) -> ReviewStats:
        pending = await self.store.get_by_status(ReviewStatus.PENDING_REVIEW, self.limit)
        stats = await self.store.get_stats(hours=24)

        reverted = stats.count(ReviewStatus.HUMAN_REVERTED)
        rejected = stats.count(ReviewStatus.AUTO_REJECTED)
        avg = sum(p.confidence for p in pending) / len(pending) if pending else 0.0
        return ReviewStats(
            pending_count=len(pending),
            auto_approved_24h=stats.count(ReviewStatus.AUTO_APPROVED),
            auto_rejected_24h=rejected,
            human_confirmed_24h=stats.count(ReviewStatus.HUMAN_CONFIRMED),
            human_reverted_24h=reverted,
            avg_confidence=avg,
            rejection_rate=(reverted + rejected) / stats.total if stats.total else 0.0,
        )

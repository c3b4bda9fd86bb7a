"""Human review queue: read model and actions."""

from commitgate.review.actions import BulkResult, ReviewActions
from commitgate.review.queue import (
    QueueReason,
    QueueSort,
    ReviewQueue,
    ReviewQueueItem,
    ReviewStats,
    classify_reason,
)

__all__ = [
    "BulkResult",
    "ReviewActions",
    "QueueReason",
    "QueueSort",
    "ReviewQueue",
    "ReviewQueueItem",
    "ReviewStats",
    "classify_reason",
]

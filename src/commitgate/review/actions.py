"""Human review actions.

Only two statuses can be reviewed: auto_approved (committed, awaiting a
second look) and pending_review (held, never committed). Both move to
human_confirmed or human_reverted. Any other move raises
REVIEW_INVALID_TRANSITION.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from commitgate.errors import CommitGateError, ErrorCode, invalid_transition
from commitgate.events import EventBridge, ReviewEvent, ReviewEventType
from commitgate.provenance.store import ProvenanceStore
from commitgate.types import AutoCommitProvenance, ReviewStatus

if TYPE_CHECKING:
    from commitgate.service import AutonomousCommitService

logger = logging.getLogger(__name__)

REVIEWABLE = frozenset({ReviewStatus.AUTO_APPROVED, ReviewStatus.PENDING_REVIEW})


@dataclass(frozen=True, slots=True)
class BulkResult:
    succeeded: int
    failed: int


class ReviewActions:
    """Approve, reject and edit items from the review queue."""

    def __init__(
        self,
        store: ProvenanceStore,
        commit_service: AutonomousCommitService | None = None,
        event_bridge: EventBridge | None = None,
    ):
        self.store = store
        self.commit_service = commit_service
        self.event_bridge = event_bridge

    async def approve(self, provenance_id: str, note: str | None = None) -> None:
        """Confirm an item."""
        await self._approve(provenance_id, note)
        self._emit_decided(provenance_id, "approve")

    async def _approve(self, provenance_id: str, note: str | None = None) -> None:
        await self._load_reviewable(provenance_id, ReviewStatus.HUMAN_CONFIRMED)
        await self.store.update_review_status(
            provenance_id,
            ReviewStatus.HUMAN_CONFIRMED,
            note or "Approved via review queue",
        )

    async def reject(self, provenance_id: str, reason: str | None = None) -> None:
        """Reject an item.

        Committed items are reverted first. Pending items were never
        committed, so rejecting them only updates the status.

        Raises:
            CommitGateError: REVERT_FAILED if a committed item cannot be
                reverted. Its status is left unchanged.
        """
        await self._reject(provenance_id, reason)
        self._emit_decided(provenance_id, "reject")

    async def _reject(self, provenance_id: str, reason: str | None = None) -> None:
        provenance = await self._load_reviewable(provenance_id, ReviewStatus.HUMAN_REVERTED)

        if provenance.revert_snapshot is None:
            await self.store.update_review_status(
                provenance_id,
                ReviewStatus.HUMAN_REVERTED,
                reason or "Rejected via review queue",
            )
            return

        # human_reverted is only written once the committed objects are gone
        if self.commit_service is None:
            raise CommitGateError(
                ErrorCode.REVERT_FAILED,
                {"record_id": provenance_id, "detail": "no commit service to delete it"},
            )
        if not await self.commit_service.revert(provenance_id):
            raise CommitGateError(
                ErrorCode.REVERT_FAILED,
                {"record_id": provenance_id, "detail": "the commit service did not revert it"},
            )
        if reason:
            await self.store.update_review_status(
                provenance_id, ReviewStatus.HUMAN_REVERTED, reason
            )

    async def edit_and_approve(self, provenance_id: str, edits: dict[str, Any]) -> None:
        """Approve with a note summarising caller-applied edits.

        The underlying entity is not modified here.
        """
        summary = "; ".join(f"{key}: {value}" for key, value in edits.items())
        note = f"Edited & approved: {summary}" if summary else "Edited & approved"
        await self._load_reviewable(provenance_id, ReviewStatus.HUMAN_CONFIRMED)
        await self.store.update_review_status(
            provenance_id, ReviewStatus.HUMAN_CONFIRMED, note
        )
        self._emit_decided(provenance_id, "edit_and_approve")

    async def bulk_approve(self, provenance_ids: list[str]) -> BulkResult:
        return await self._bulk(provenance_ids, "approve")

    async def bulk_reject(
        self, provenance_ids: list[str], reason: str | None = None
    ) -> BulkResult:
        return await self._bulk(provenance_ids, "reject", reason)

    async def _bulk(
        self, provenance_ids: list[str], action: str, reason: str | None = None
    ) -> BulkResult:
        """Apply one action to each id. A failing item is counted and skipped."""
        succeeded = 0
        failed = 0
        for provenance_id in provenance_ids:
            try:
                if action == "approve":
                    await self._approve(provenance_id)
                else:
                    await self._reject(provenance_id, reason)
                succeeded += 1
            except CommitGateError as e:
                logger.warning("Bulk %s failed for %s: %s", action, provenance_id, e)
                failed += 1
            except Exception:
                logger.exception("Bulk %s failed for %s", action, provenance_id)
                failed += 1

        if succeeded and self.event_bridge is not None:
            self.event_bridge.emit(ReviewEvent(
                type=ReviewEventType.BATCH_DECIDED,
                data={"action": action, "count": succeeded, "failed": failed},
            ))
        return BulkResult(succeeded=succeeded, failed=failed)

    async def _load_reviewable(
        self, provenance_id: str, to_status: ReviewStatus
    ) -> AutoCommitProvenance:
        provenance = await self.store.get(provenance_id)
        if provenance is None:
            raise CommitGateError(
                ErrorCode.REVIEW_ITEM_NOT_FOUND, {"record_id": provenance_id}
            )
        if provenance.review_status not in REVIEWABLE:
            raise invalid_transition(
                provenance_id, provenance.review_status.value, to_status.value
            )
        return provenance

    def _emit_decided(self, provenance_id: str, action: str) -> None:
        if self.event_bridge is None:
            return
        self.event_bridge.emit(ReviewEvent(
            type=ReviewEventType.DECIDED,
            data={"provenance_id": provenance_id, "action": action},
        ))

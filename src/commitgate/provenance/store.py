"""Audit trail for autonomous decisions.

Every auto-commit and every queued proposal gets an AutoCommitProvenance
record. Records are never deleted. Only review_status, reviewed_at and
review_note change after creation. The store does not check which status
transitions are legal; ReviewActions does.

The store is the durable source of truth for daily commit counts, queue
depth and the outcome history the threshold adjuster reads.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from commitgate.confidence.types import (
    ConfidenceResult,
    DecisionStats,
    ThresholdAdjustment,
)
from commitgate.errors import ErrorCode, store_error
from commitgate.types import (
    AutoCommitProvenance,
    ConfidenceSnapshot,
    ProvenanceSource,
    RevertSnapshot,
    ReviewStatus,
    TargetType,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Fixed-width ISO timestamp so that string order is time order."""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


@dataclass(frozen=True, slots=True)
class StatusCounts:
    """Record counts by status over a time window."""

    total: int = 0
    by_status: dict[ReviewStatus, int] = field(default_factory=dict)

    def count(self, status: ReviewStatus) -> int:
        return self.by_status.get(status, 0)


class ProvenanceStore(ABC):
    """Abstract audit store."""

    @abstractmethod
    async def record(self, provenance: AutoCommitProvenance) -> None:
        """Persist a new record."""

    @abstractmethod
    async def get(self, provenance_id: str) -> AutoCommitProvenance | None:
        """Get one record by id."""

    @abstractmethod
    async def get_by_status(
        self, status: ReviewStatus, limit: int = 100
    ) -> list[AutoCommitProvenance]:
        """Records with a status, newest first."""

    @abstractmethod
    async def get_by_correlation(self, correlation_id: str) -> list[AutoCommitProvenance]:
        """Records for one proposal batch, newest first."""

    @abstractmethod
    async def get_recent(self, limit: int = 50) -> list[AutoCommitProvenance]:
        """Most recent records, newest first."""

    @abstractmethod
    async def update_review_status(
        self, provenance_id: str, status: ReviewStatus, note: str | None = None
    ) -> bool:
        """Set status, review note and reviewed_at. False if the id is unknown."""

    @abstractmethod
    async def get_stats(self, hours: int = 24) -> StatusCounts:
        """Counts by status for records created in the last ``hours``."""

    @abstractmethod
    async def count_commits(self, hours: int = 24) -> int:
        """Auto-commits (revertible records) created in the last ``hours``."""

    @abstractmethod
    async def get_revert_snapshot(self, provenance_id: str) -> RevertSnapshot | None:
        """Revert snapshot of a record, if it has one."""

    @abstractmethod
    async def get_recent_decision_stats(self, window_size: int) -> DecisionStats:
        """Outcome counts over the last ``window_size`` records."""

    @abstractmethod
    async def record_threshold_adjustment(self, adjustment: ThresholdAdjustment) -> None:
        """Persist a threshold adjustment event."""

    @abstractmethod
    async def get_recent_adjustments(self, limit: int = 20) -> list[ThresholdAdjustment]:
        """Most recent threshold adjustments, newest first."""


class SQLiteProvenanceStore(ProvenanceStore):
    """SQLite-backed audit store.

    One connection per call, run in a worker thread so the event loop keeps
    going while SQLite waits on disk or on a lock. Writes are serialized by a
    lock so concurrent evaluations in one process see each other's commits.
    """

    def __init__(self, db_path: Path | None = None):
        """Initialize SQLite store.

        Args:
            db_path: Path to database (default: .commitgate/provenance.db)
        """
        self.db_path = Path(db_path) if db_path else Path(".commitgate") / "provenance.db"
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
        except (OSError, sqlite3.Error) as e:
            raise store_error(
                ErrorCode.STORE_UNAVAILABLE, path=str(self.db_path), detail=str(e), cause=e
            ) from e
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auto_commit_provenance (
                    id TEXT PRIMARY KEY,
                    target_type TEXT NOT NULL,
                    target_id TEXT NOT NULL,
                    source TEXT NOT NULL,
                    correlation_id TEXT NOT NULL,
                    confidence REAL NOT NULL,
                    confidence_factors TEXT NOT NULL,
                    validations_passed TEXT NOT NULL,
                    critique_survival REAL,
                    created_at TEXT NOT NULL,
                    config_snapshot TEXT NOT NULL,
                    review_status TEXT NOT NULL DEFAULT 'auto_approved',
                    reviewed_at TEXT,
                    review_note TEXT,
                    can_revert INTEGER NOT NULL DEFAULT 0,
                    revert_snapshot TEXT,
                    decision_reason TEXT NOT NULL DEFAULT '',
                    confidence_result TEXT
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_provenance_status "
                "ON auto_commit_provenance(review_status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_provenance_date "
                "ON auto_commit_provenance(created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_provenance_confidence "
                "ON auto_commit_provenance(confidence)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_provenance_correlation "
                "ON auto_commit_provenance(correlation_id)"
            )
            conn.execute("""
                CREATE TABLE IF NOT EXISTS threshold_adjustments (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    strategy TEXT NOT NULL,
                    previous_auto_accept REAL NOT NULL,
                    new_auto_accept REAL NOT NULL,
                    previous_auto_reject REAL NOT NULL,
                    new_auto_reject REAL NOT NULL,
                    rejection_rate REAL NOT NULL,
                    window_size INTEGER NOT NULL,
                    reason TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_adjustments_timestamp "
                "ON threshold_adjustments(timestamp)"
            )
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        """Get database connection."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        try:
            conn = self._connect()
            try:
                return conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.warning("Audit read failed on %s: %s", self.db_path, e)
            raise store_error(
                ErrorCode.STORE_UNAVAILABLE, path=str(self.db_path), detail=str(e), cause=e
            ) from e

    def _write(self, sql: str, params: tuple[Any, ...], record_id: str) -> int:
        with self._lock:
            try:
                conn = self._connect()
                try:
                    cursor = conn.execute(sql, params)
                    conn.commit()
                    return cursor.rowcount
                finally:
                    conn.close()
            except sqlite3.Error as e:
                logger.exception("Audit write failed for %s", record_id)
                raise store_error(
                    ErrorCode.STORE_WRITE_FAILED, record_id=record_id, detail=str(e), cause=e
                ) from e

    # -------------------------------------------------------------------------
    # Provenance records
    # -------------------------------------------------------------------------

    async def record(self, provenance: AutoCommitProvenance) -> None:
        p = provenance
        await asyncio.to_thread(
            self._write,
            """
            INSERT INTO auto_commit_provenance
                (id, target_type, target_id, source, correlation_id, confidence,
                 confidence_factors, validations_passed, critique_survival,
                 created_at, config_snapshot, review_status, reviewed_at,
                 review_note, can_revert, revert_snapshot, decision_reason,
                 confidence_result)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                p.id,
                p.target_type.value,
                p.target_id,
                p.source.value,
                p.correlation_id,
                p.confidence,
                json.dumps(p.confidence_factors.to_dict()),
                json.dumps(list(p.validations_passed)),
                p.critique_survival,
                to_iso(p.created_at),
                json.dumps(p.config_snapshot),
                p.review_status.value,
                to_iso(p.reviewed_at) if p.reviewed_at else None,
                p.review_note,
                1 if p.can_revert else 0,
                json.dumps(p.revert_snapshot.to_dict()) if p.revert_snapshot else None,
                p.decision_reason,
                json.dumps(p.confidence_result.to_dict()) if p.confidence_result else None,
            ),
            p.id,
        )

    async def get(self, provenance_id: str) -> AutoCommitProvenance | None:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT * FROM auto_commit_provenance WHERE id = ?",
            (provenance_id,),
        )
        return self._row_to_record(rows[0]) if rows else None

    async def get_by_status(
        self, status: ReviewStatus, limit: int = 100
    ) -> list[AutoCommitProvenance]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT * FROM auto_commit_provenance WHERE review_status = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (status.value, limit),
        )
        return [self._row_to_record(r) for r in rows]

    async def get_by_correlation(self, correlation_id: str) -> list[AutoCommitProvenance]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT * FROM auto_commit_provenance WHERE correlation_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (correlation_id,),
        )
        return [self._row_to_record(r) for r in rows]

    async def get_recent(self, limit: int = 50) -> list[AutoCommitProvenance]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT * FROM auto_commit_provenance "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [self._row_to_record(r) for r in rows]

    async def update_review_status(
        self, provenance_id: str, status: ReviewStatus, note: str | None = None
    ) -> bool:
        updated = await asyncio.to_thread(
            self._write,
            "UPDATE auto_commit_provenance "
            "SET review_status = ?, reviewed_at = ?, review_note = ? WHERE id = ?",
            (status.value, to_iso(utcnow()), note, provenance_id),
            provenance_id,
        )
        return updated > 0

    async def get_stats(self, hours: int = 24) -> StatusCounts:
        cutoff = to_iso(utcnow() - timedelta(hours=hours))
        rows = await asyncio.to_thread(
            self._query,
            "SELECT review_status, COUNT(*) AS n FROM auto_commit_provenance "
            "WHERE created_at >= ? GROUP BY review_status",
            (cutoff,),
        )
        by_status = {status: 0 for status in ReviewStatus}
        for row in rows:
            by_status[ReviewStatus(row["review_status"])] = row["n"]
        return StatusCounts(total=sum(by_status.values()), by_status=by_status)

    async def count_commits(self, hours: int = 24) -> int:
        cutoff = to_iso(utcnow() - timedelta(hours=hours))
        rows = await asyncio.to_thread(
            self._query,
            "SELECT COUNT(*) AS n FROM auto_commit_provenance "
            "WHERE created_at >= ? AND can_revert = 1",
            (cutoff,),
        )
        return rows[0]["n"]

    async def get_revert_snapshot(self, provenance_id: str) -> RevertSnapshot | None:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT revert_snapshot FROM auto_commit_provenance WHERE id = ?",
            (provenance_id,),
        )
        if not rows or rows[0]["revert_snapshot"] is None:
            return None
        return RevertSnapshot.from_dict(json.loads(rows[0]["revert_snapshot"]))

    async def get_recent_decision_stats(self, window_size: int) -> DecisionStats:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT review_status FROM auto_commit_provenance "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (window_size,),
        )
        counts = {status: 0 for status in ReviewStatus}
        for row in rows:
            counts[ReviewStatus(row["review_status"])] += 1
        return DecisionStats(
            total=len(rows),
            auto_approved=counts[ReviewStatus.AUTO_APPROVED],
            human_confirmed=counts[ReviewStatus.HUMAN_CONFIRMED],
            human_reverted=counts[ReviewStatus.HUMAN_REVERTED],
            auto_rejected=counts[ReviewStatus.AUTO_REJECTED],
            pending_review=counts[ReviewStatus.PENDING_REVIEW],
        )

    # -------------------------------------------------------------------------
    # Threshold adjustments
    # -------------------------------------------------------------------------

    async def record_threshold_adjustment(self, adjustment: ThresholdAdjustment) -> None:
        a = adjustment
        await asyncio.to_thread(
            self._write,
            """
            INSERT INTO threshold_adjustments
                (id, timestamp, strategy, previous_auto_accept, new_auto_accept,
                 previous_auto_reject, new_auto_reject, rejection_rate,
                 window_size, reason)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                a.id,
                to_iso(a.timestamp),
                a.strategy,
                a.previous_auto_accept,
                a.new_auto_accept,
                a.previous_auto_reject,
                a.new_auto_reject,
                a.rejection_rate,
                a.window_size,
                a.reason,
            ),
            a.id,
        )

    async def get_recent_adjustments(self, limit: int = 20) -> list[ThresholdAdjustment]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT * FROM threshold_adjustments "
            "ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [ThresholdAdjustment.from_dict(dict(r)) for r in rows]

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    def _row_to_record(self, row: sqlite3.Row) -> AutoCommitProvenance:
        try:
            reviewed_at = row["reviewed_at"]
            snapshot = row["revert_snapshot"]
            result = row["confidence_result"]
            return AutoCommitProvenance(
                id=row["id"],
                target_type=TargetType(row["target_type"]),
                target_id=row["target_id"],
                source=ProvenanceSource(row["source"]),
                correlation_id=row["correlation_id"],
                confidence=row["confidence"],
                confidence_factors=ConfidenceSnapshot.from_dict(
                    json.loads(row["confidence_factors"])
                ),
                created_at=datetime.fromisoformat(row["created_at"]),
                review_status=ReviewStatus(row["review_status"]),
                validations_passed=tuple(json.loads(row["validations_passed"])),
                critique_survival=row["critique_survival"],
                config_snapshot=json.loads(row["config_snapshot"]),
                reviewed_at=datetime.fromisoformat(reviewed_at) if reviewed_at else None,
                review_note=row["review_note"],
                can_revert=bool(row["can_revert"]),
                revert_snapshot=(
                    RevertSnapshot.from_dict(json.loads(snapshot)) if snapshot else None
                ),
                decision_reason=row["decision_reason"],
                confidence_result=(
                    ConfidenceResult.from_dict(json.loads(result)) if result else None
                ),
            )
        except (KeyError, ValueError) as e:
            raise store_error(
                ErrorCode.STORE_CORRUPT_RECORD, record_id=row["id"], detail=str(e), cause=e
            ) from e

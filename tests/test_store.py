"""Tests for the SQLite audit store."""

import asyncio
import sqlite3
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from commitgate.confidence.calculator import MultiFactorConfidenceCalculator
from commitgate.confidence.types import ConfidenceFactors, ThresholdAdjustment
from commitgate.errors import CommitGateError, ErrorCode
from commitgate.provenance.store import SQLiteProvenanceStore
from commitgate.types import (
    AutoCommitProvenance,
    RevertSnapshot,
    RevertTarget,
    ReviewStatus,
)

from conftest import make_record


def adjustment(adj_id: str, minutes_ago: int = 0) -> ThresholdAdjustment:
    return ThresholdAdjustment(
        id=adj_id,
        timestamp=datetime.now(UTC) - timedelta(minutes=minutes_ago),
        strategy="global_ratio",
        previous_auto_accept=0.90,
        new_auto_accept=0.92,
        previous_auto_reject=0.30,
        new_auto_reject=0.31,
        rejection_rate=0.4,
        window_size=20,
        reason="Rejection rate 40% exceeds 30%, tightening",
    )


class TestRecords:
    """Recording and reading audit records."""

    def test_schema_created_on_construction(self, db_path: Path) -> None:
        SQLiteProvenanceStore(db_path)

        conn = sqlite3.connect(db_path)
        try:
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        finally:
            conn.close()
        assert {"auto_commit_provenance", "threshold_adjustments"} <= tables

    @pytest.mark.asyncio
    async def test_record_round_trip(self, store) -> None:
        result = MultiFactorConfidenceCalculator().calculate(
            ConfidenceFactors(graph_coherence=0.1, validation_score=1.0)
        )
        snapshot = RevertSnapshot(
            entities=(RevertTarget("note-1", existed_before=False),),
            connections=(RevertTarget("conn-1", existed_before=True, previous_state={"a": 1}),),
        )
        record = AutoCommitProvenance.from_dict({
            **make_record("r1", can_revert=True, revert_snapshot=snapshot).to_dict(),
            "validations_passed": ["schema", "links"],
            "critique_survival": 0.5,
            "config_snapshot": {"preset": "strict"},
            "confidence_result": result.to_dict(),
        })

        await store.record(record)

        assert await store.get("r1") == record
        assert await store.get_revert_snapshot("r1") == snapshot

    @pytest.mark.asyncio
    async def test_get_missing(self, store) -> None:
        assert await store.get("nope") is None
        assert await store.get_revert_snapshot("nope") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_raises_write_failed(self, store) -> None:
        await store.record(make_record("r1"))

        with pytest.raises(CommitGateError) as exc_info:
            await store.record(make_record("r1"))
        assert exc_info.value.code is ErrorCode.STORE_WRITE_FAILED

    @pytest.mark.asyncio
    async def test_queries_are_newest_first(self, store) -> None:
        now = datetime.now(UTC)
        await store.record(make_record("old", created_at=now - timedelta(hours=2)))
        await store.record(make_record("new", created_at=now))
        await store.record(make_record(
            "other", created_at=now - timedelta(hours=1), correlation_id="conv-9",
            status=ReviewStatus.AUTO_APPROVED,
        ))

        assert [r.id for r in await store.get_recent()] == ["new", "other", "old"]
        assert [r.id for r in await store.get_recent(limit=1)] == ["new"]
        pending = await store.get_by_status(ReviewStatus.PENDING_REVIEW)
        assert [r.id for r in pending] == ["new", "old"]
        assert [r.id for r in await store.get_by_correlation("conv-9")] == ["other"]

    @pytest.mark.asyncio
    async def test_update_review_status(self, store) -> None:
        await store.record(make_record("r1"))

        assert await store.update_review_status(
            "r1", ReviewStatus.HUMAN_CONFIRMED, "looks right"
        ) is True
        record = await store.get("r1")
        assert record.review_status is ReviewStatus.HUMAN_CONFIRMED
        assert record.review_note == "looks right"
        assert record.reviewed_at is not None

    @pytest.mark.asyncio
    async def test_update_unknown_returns_false(self, store) -> None:
        assert await store.update_review_status("nope", ReviewStatus.HUMAN_CONFIRMED) is False

    @pytest.mark.asyncio
    async def test_corrupt_row_raises(self, store, db_path: Path) -> None:
        await store.record(make_record("r1"))
        conn = sqlite3.connect(db_path)
        try:
            conn.execute("UPDATE auto_commit_provenance SET review_status = 'bogus'")
            conn.commit()
        finally:
            conn.close()

        with pytest.raises(CommitGateError) as exc_info:
            await store.get("r1")
        assert exc_info.value.code is ErrorCode.STORE_CORRUPT_RECORD


class TestCounts:
    """Windowed counts used by the rate limiter and review stats."""

    @pytest.mark.asyncio
    async def test_stats_respect_window(self, store) -> None:
        now = datetime.now(UTC)
        await store.record(make_record("a", status=ReviewStatus.AUTO_APPROVED, can_revert=True))
        await store.record(make_record("p"))
        await store.record(make_record(
            "stale", status=ReviewStatus.AUTO_APPROVED, created_at=now - timedelta(hours=30),
            can_revert=True,
        ))

        stats = await store.get_stats(hours=24)
        assert stats.total == 2
        assert stats.count(ReviewStatus.AUTO_APPROVED) == 1
        assert stats.count(ReviewStatus.PENDING_REVIEW) == 1
        assert stats.count(ReviewStatus.HUMAN_REVERTED) == 0

    @pytest.mark.asyncio
    async def test_count_commits_only_counts_revertible(self, store) -> None:
        await store.record(make_record("a", status=ReviewStatus.AUTO_APPROVED, can_revert=True))
        await store.record(make_record("p"))
        await store.record(make_record("x", status=ReviewStatus.AUTO_REJECTED))

        assert await store.count_commits(hours=24) == 1

    @pytest.mark.asyncio
    async def test_recent_decision_stats(self, store) -> None:
        now = datetime.now(UTC)
        statuses = [
            ReviewStatus.HUMAN_REVERTED,
            ReviewStatus.AUTO_REJECTED,
            ReviewStatus.AUTO_APPROVED,
            ReviewStatus.HUMAN_CONFIRMED,
            ReviewStatus.PENDING_REVIEW,
        ]
        for i, status in enumerate(statuses):
            await store.record(make_record(
                f"r{i}", status=status, created_at=now - timedelta(minutes=i)
            ))

        stats = await store.get_recent_decision_stats(window_size=3)
        assert stats.total == 3
        assert stats.human_reverted == 1
        assert stats.auto_rejected == 1
        assert stats.auto_approved == 1
        assert stats.rejection_rate == pytest.approx(2 / 3)


class TestAdjustments:
    """Threshold adjustment history."""

    @pytest.mark.asyncio
    async def test_record_and_list(self, store) -> None:
        await store.record_threshold_adjustment(adjustment("adj_1", minutes_ago=5))
        await store.record_threshold_adjustment(adjustment("adj_2"))

        recent = await store.get_recent_adjustments()
        assert [a.id for a in recent] == ["adj_2", "adj_1"]
        assert recent[0].new_auto_accept == 0.92
        assert recent[0].reason.endswith("tightening")

    @pytest.mark.asyncio
    async def test_limit(self, store) -> None:
        for i in range(3):
            await store.record_threshold_adjustment(adjustment(f"adj_{i}", minutes_ago=i))
        assert len(await store.get_recent_adjustments(limit=2)) == 2


def locked_connect() -> sqlite3.Connection:
    raise sqlite3.OperationalError("database is locked")


class TestIsolation:
    """SQLite work runs off the event loop and surfaces as store errors."""

    @pytest.mark.asyncio
    async def test_reads_run_off_the_event_loop(self, store, monkeypatch) -> None:
        released = threading.Event()
        waited: list[bool] = []
        query = store._query

        def query_after_release(sql, params=()):
            # Only returns True if the loop kept running while this blocked
            waited.append(released.wait(timeout=2.0))
            return query(sql, params)

        monkeypatch.setattr(store, "_query", query_after_release)

        async def release() -> None:
            released.set()

        recent, _ = await asyncio.gather(store.get_recent(), release())

        assert recent == []
        assert waited == [True]

    @pytest.mark.asyncio
    async def test_writes_run_off_the_event_loop(self, store, monkeypatch) -> None:
        threads: list[int] = []
        write = store._write

        def tracking_write(sql, params, record_id):
            threads.append(threading.get_ident())
            return write(sql, params, record_id)

        monkeypatch.setattr(store, "_write", tracking_write)
        await store.record(make_record("p1"))

        assert threads and threads[0] != threading.get_ident()
        assert (await store.get("p1")) is not None

    @pytest.mark.asyncio
    async def test_read_failure_is_store_unavailable(self, store, monkeypatch) -> None:
        monkeypatch.setattr(store, "_connect", locked_connect)

        with pytest.raises(CommitGateError) as exc_info:
            await store.get("p1")

        assert exc_info.value.code is ErrorCode.STORE_UNAVAILABLE
        assert isinstance(exc_info.value.cause, sqlite3.OperationalError)

    @pytest.mark.asyncio
    async def test_connect_failure_on_write_is_write_failed(self, store, monkeypatch) -> None:
        monkeypatch.setattr(store, "_connect", locked_connect)

        with pytest.raises(CommitGateError) as exc_info:
            await store.record(make_record("p1"))

        assert exc_info.value.code is ErrorCode.STORE_WRITE_FAILED

"""Pytest fixtures for commitgate tests."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

import numpy as np
import pytest

from commitgate.adapters import (
    ConnectionRecord,
    Embedding,
    InvarianceEvidence,
    NoteRecord,
    SimilarEntity,
)
from commitgate.confidence.embedding import cosine_similarity
from commitgate.confidence.types import ConfidenceFactors
from commitgate.config import AutonomousConfig
from commitgate.presets import BALANCED
from commitgate.provenance.store import SQLiteProvenanceStore
from commitgate.ratelimit import RateLimiter
from commitgate.service import AutonomousCommitService
from commitgate.types import (
    AutoCommitProvenance,
    CommitResult,
    ConfidenceSnapshot,
    Proposal,
    ProposedConnection,
    ProposedEntity,
    ProvenanceSource,
    RevertSnapshot,
    ReviewStatus,
    TargetType,
    TransitionRecord,
    WorkflowResult,
)


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeNotes:
    """In-memory note adapter."""

    def __init__(self, notes: Sequence[NoteRecord] = ()):
        self.notes = {n.id: n for n in notes}
        self.deleted: list[str] = []
        self.fail_on_delete = False

    async def get_all(self) -> list[NoteRecord]:
        return list(self.notes.values())

    async def delete(self, note_id: str) -> None:
        if self.fail_on_delete:
            raise RuntimeError("note store offline")
        self.deleted.append(note_id)
        self.notes.pop(note_id, None)


class FakeConnections:
    """In-memory connection adapter."""

    def __init__(self, connections: Sequence[ConnectionRecord] = ()):
        self.connections = list(connections)
        self.deleted: list[str] = []

    async def get_connections_for(self, entity_id: str) -> list[ConnectionRecord]:
        return [
            c for c in self.connections
            if c.source_id == entity_id or c.target_id == entity_id
        ]

    async def delete(self, connection_id: str) -> None:
        self.deleted.append(connection_id)
        self.connections = [c for c in self.connections if c.id != connection_id]


class FakeEmbeddings:
    """In-memory embedding adapter with brute-force nearest neighbours."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, model: str = "test"):
        self.model = model
        self.vectors = {
            k: np.asarray(v, dtype=np.float32) for k, v in (vectors or {}).items()
        }

    async def get_for_entity(self, entity_id: str) -> Embedding | None:
        vector = self.vectors.get(entity_id)
        return Embedding(vector=vector, model=self.model) if vector is not None else None

    async def find_similar(self, vector, model, k, exclude_ids=()) -> list[SimilarEntity]:
        hits = [
            SimilarEntity(id=entity_id, similarity=cosine_similarity(vector, other))
            for entity_id, other in self.vectors.items()
            if entity_id not in exclude_ids
        ]
        hits.sort(key=lambda h: h.similarity, reverse=True)
        return hits[:k]


class FakeInvariance:
    def __init__(self, evidence: Sequence[InvarianceEvidence] = ()):
        self.evidence = {e.connection_id: e for e in evidence}

    async def get(self, connection_id: str) -> InvarianceEvidence | None:
        return self.evidence.get(connection_id)


class FixedCollector:
    """Factor collector that returns a preset factor set."""

    def __init__(self, factors: ConfidenceFactors):
        self.factors = factors
        self.calls = 0

    async def collect(self, proposal, workflow_result, resource=None) -> ConfidenceFactors:
        self.calls += 1
        return self.factors


class CommitRecorder:
    """Commit function that records calls and returns the proposal's ids."""

    def __init__(self, proposal: Proposal, error: Exception | None = None):
        self.proposal = proposal
        self.error = error
        self.calls = 0

    async def __call__(self) -> CommitResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return CommitResult(
            entity_ids=tuple(e.id for e in self.proposal.entities),
            connection_ids=tuple(c.id for c in self.proposal.connections),
        )


# =============================================================================
# Builders
# =============================================================================


def make_proposal(
    confidence: float = 0.95,
    entity_type: str = "note",
    correlation_id: str = "conv-1",
    with_connection: bool = False,
) -> Proposal:
    entities = (
        ProposedEntity(
            id="note-new",
            title="Transformer attention",
            content="Scaled dot-product attention",
            entity_type=entity_type,
            confidence=confidence,
        ),
    )
    connections = ()
    if with_connection:
        connections = (
            ProposedConnection(
                id="conn-new",
                source_id="note-new",
                target_id="note-a",
                label="relates_to",
                confidence=confidence,
            ),
        )
    return Proposal(entities=entities, connections=connections, correlation_id=correlation_id)


def connection_proposal(confidence: float = 0.9) -> Proposal:
    return Proposal(
        connections=(
            ProposedConnection(
                id="conn-1", source_id="a", target_id="b", confidence=confidence
            ),
        ),
        correlation_id="conv-2",
    )


def passed(critique: str | None = None) -> WorkflowResult:
    history = (TransitionRecord("T_validate_pass"),)
    if critique:
        history += (TransitionRecord(critique),)
    return WorkflowResult(success=True, transition_history=history)


def make_record(
    record_id: str,
    status: ReviewStatus = ReviewStatus.PENDING_REVIEW,
    confidence: float = 0.7,
    reason: str = "Confidence 0.70 below auto-accept threshold 0.90",
    created_at: datetime | None = None,
    can_revert: bool = False,
    correlation_id: str = "conv-1",
    revert_snapshot: RevertSnapshot | None = None,
) -> AutoCommitProvenance:
    return AutoCommitProvenance(
        id=record_id,
        target_type=TargetType.ENTITY,
        target_id=f"note-{record_id}",
        source=ProvenanceSource.CHAT_PROPOSAL,
        correlation_id=correlation_id,
        confidence=confidence,
        confidence_factors=ConfidenceSnapshot(proposal_confidence=confidence),
        created_at=created_at or datetime.now(UTC),
        review_status=status,
        can_revert=can_revert,
        revert_snapshot=revert_snapshot,
        decision_reason=reason,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "provenance.db"


@pytest.fixture
def store(db_path: Path) -> SQLiteProvenanceStore:
    return SQLiteProvenanceStore(db_path)


@pytest.fixture
def config() -> AutonomousConfig:
    return BALANCED


@pytest.fixture
def multi_factor_config() -> AutonomousConfig:
    return replace(
        BALANCED, confidence=replace(BALANCED.confidence, calculator="multi_factor")
    )


@pytest.fixture
def rate_limiter(store: SQLiteProvenanceStore) -> RateLimiter:
    return RateLimiter(store)


@pytest.fixture
def service(store: SQLiteProvenanceStore, rate_limiter: RateLimiter) -> AutonomousCommitService:
    return AutonomousCommitService(store, rate_limiter)


@pytest.fixture
def notes() -> FakeNotes:
    return FakeNotes([
        NoteRecord("note-a", "Attention is all you need", "Transformers replace recurrence"),
        NoteRecord("note-b", "Gradient descent", "Iterative optimization"),
    ])


@pytest.fixture
def connections() -> FakeConnections:
    return FakeConnections([
        ConnectionRecord("c1", "a", "x"),
        ConnectionRecord("c2", "b", "x"),
        ConnectionRecord("c3", "a", "y"),
    ])

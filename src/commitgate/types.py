"""Core types for autonomous commit decisions.

Proposals and workflow results come from the upstream validation pipeline and
are read-only here. Decisions and provenance records are produced by
AutonomousCommitService and persisted by the provenance store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from commitgate.confidence.types import ConfidenceResult


class DecisionAction(Enum):
    """Terminal outcome of one proposal evaluation."""

    DISABLED = "disabled"
    AUTO_COMMIT = "auto_commit"
    QUEUE_FOR_REVIEW = "queue_for_review"
    AUTO_REJECT = "auto_reject"
    RATE_LIMITED = "rate_limited"


class ReviewStatus(Enum):
    """Lifecycle status of an audit record."""

    AUTO_APPROVED = "auto_approved"
    PENDING_REVIEW = "pending_review"
    HUMAN_CONFIRMED = "human_confirmed"
    HUMAN_REVERTED = "human_reverted"
    AUTO_REJECTED = "auto_rejected"


class ProvenanceSource(Enum):
    """Where a proposal originated."""

    CHAT_PROPOSAL = "chat_proposal"
    BULK_IMPORT = "bulk_import"
    BACKGROUND_ENRICHMENT = "background_enrichment"
    FEED_MONITOR = "feed_monitor"


class TargetType(Enum):
    """Kind of graph object an audit record points at."""

    ENTITY = "entity"
    CONNECTION = "connection"


# =============================================================================
# Upstream inputs
# =============================================================================


@dataclass(frozen=True, slots=True)
class ProposedEntity:
    """An entity the AI proposes to create."""

    id: str
    title: str
    content: str = ""
    entity_type: str = "note"
    confidence: float = 0.0


@dataclass(frozen=True, slots=True)
class ProposedConnection:
    """A relationship the AI proposes to create."""

    id: str
    source_id: str
    target_id: str
    label: str = ""
    confidence: float = 0.0


@dataclass(frozen=True, slots=True)
class Proposal:
    """A batch of proposed creations.

    Immutable once produced. Regeneration yields a new Proposal.
    """

    entities: tuple[ProposedEntity, ...] = ()
    connections: tuple[ProposedConnection, ...] = ()
    correlation_id: str | None = None
    """Links the proposal to its originating conversation or extraction."""

    source: ProvenanceSource = ProvenanceSource.CHAT_PROPOSAL

    @property
    def max_confidence(self) -> float:
        """Highest AI confidence across all proposed items (0.0 if empty)."""
        scores = [e.confidence for e in self.entities]
        scores.extend(c.confidence for c in self.connections)
        return max(scores) if scores else 0.0

    @property
    def target_type(self) -> TargetType:
        return TargetType.ENTITY if self.entities else TargetType.CONNECTION

    @property
    def target_id(self) -> str:
        if self.entities:
            return self.entities[0].id
        if self.connections:
            return self.connections[0].id
        return ""


@dataclass(frozen=True, slots=True)
class TransitionRecord:
    """One step of the upstream validation workflow."""

    transition_id: str
    reason: str = ""
    duration_ms: float = 0.0


CRITIQUE_TRANSITIONS: dict[str, float] = {
    "T_critique_accept": 0.8,
    "T_critique_escalate": 0.5,
    "T_critique_reject": 0.2,
}
"""Critique survival implied by the critique transition that fired."""


@dataclass(frozen=True, slots=True)
class WorkflowResult:
    """Outcome of upstream validation."""

    success: bool
    transition_history: tuple[TransitionRecord, ...] = ()

    @property
    def critique_survival(self) -> float | None:
        """Critique survival score, or None if critique did not run."""
        for record in self.transition_history:
            if record.transition_id in CRITIQUE_TRANSITIONS:
                return CRITIQUE_TRANSITIONS[record.transition_id]
        return None


@dataclass(frozen=True, slots=True)
class Resource:
    """The document a proposal was extracted from, if any."""

    url: str | None = None
    type: str | None = None


@dataclass(frozen=True, slots=True)
class CommitResult:
    """Identifiers created by a commit executor."""

    entity_ids: tuple[str, ...] = ()
    connection_ids: tuple[str, ...] = ()


# =============================================================================
# Decisions
# =============================================================================


@dataclass(frozen=True, slots=True)
class ConfidenceSnapshot:
    """The four-factor snapshot persisted with every audit record."""

    proposal_confidence: float = 0.0
    validation_score: float = 0.0
    critique_survival: float | None = None
    novelty_score: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposal_confidence": self.proposal_confidence,
            "validation_score": self.validation_score,
            "critique_survival": self.critique_survival,
            "novelty_score": self.novelty_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfidenceSnapshot:
        return cls(
            proposal_confidence=data.get("proposal_confidence", 0.0),
            validation_score=data.get("validation_score", 0.0),
            critique_survival=data.get("critique_survival"),
            novelty_score=data.get("novelty_score", 1.0),
        )


@dataclass(frozen=True, slots=True)
class Decision:
    """Result of evaluating one proposal.

    Every decision carries a human-readable reason. It is shown to users and
    written to the audit trail.
    """

    action: DecisionAction
    confidence: float
    factors: ConfidenceSnapshot
    reason: str
    confidence_result: ConfidenceResult | None = None
    provenance_id: str | None = None
    """Set by AutonomousCommitService.process() once an audit record exists."""

    def __post_init__(self) -> None:
        if not self.reason:
            raise ValueError("Decision requires a non-empty reason")


# =============================================================================
# Provenance
# =============================================================================


@dataclass(frozen=True, slots=True)
class RevertTarget:
    """Pre-commit state of one entity or connection."""

    id: str
    existed_before: bool
    previous_state: dict[str, Any] | None = None
    """Reserved. Revert does not restore modified objects."""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "existed_before": self.existed_before}
        if self.previous_state is not None:
            data["previous_state"] = self.previous_state
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RevertTarget:
        return cls(
            id=data["id"],
            existed_before=data["existed_before"],
            previous_state=data.get("previous_state"),
        )


@dataclass(frozen=True, slots=True)
class RevertSnapshot:
    """Everything needed to undo a commit."""

    entities: tuple[RevertTarget, ...] = ()
    connections: tuple[RevertTarget, ...] = ()

    @classmethod
    def for_creations(cls, proposal: Proposal) -> RevertSnapshot:
        """Snapshot for a proposal that only creates new objects."""
        return cls(
            entities=tuple(RevertTarget(e.id, existed_before=False) for e in proposal.entities),
            connections=tuple(
                RevertTarget(c.id, existed_before=False) for c in proposal.connections
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entities": [t.to_dict() for t in self.entities],
            "connections": [t.to_dict() for t in self.connections],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RevertSnapshot:
        return cls(
            entities=tuple(RevertTarget.from_dict(t) for t in data.get("entities", [])),
            connections=tuple(
                RevertTarget.from_dict(t) for t in data.get("connections", [])
            ),
        )


@dataclass(frozen=True, slots=True)
class AutoCommitProvenance:
    """Audit record for one decision.

    Identity, target, source, correlation id, confidence, factors and
    creation time never change. Only review_status, reviewed_at and
    review_note are updated, through the provenance store.
    """

    id: str
    target_type: TargetType
    target_id: str
    source: ProvenanceSource
    correlation_id: str
    confidence: float
    confidence_factors: ConfidenceSnapshot
    created_at: datetime
    review_status: ReviewStatus
    validations_passed: tuple[str, ...] = ()
    critique_survival: float | None = None
    config_snapshot: dict[str, Any] = field(default_factory=dict)
    reviewed_at: datetime | None = None
    review_note: str | None = None
    can_revert: bool = False
    revert_snapshot: RevertSnapshot | None = None
    decision_reason: str = ""
    """The reason of the decision that produced this record."""

    confidence_result: ConfidenceResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "source": self.source.value,
            "correlation_id": self.correlation_id,
            "confidence": self.confidence,
            "confidence_factors": self.confidence_factors.to_dict(),
            "created_at": self.created_at.isoformat(),
            "review_status": self.review_status.value,
            "validations_passed": list(self.validations_passed),
            "critique_survival": self.critique_survival,
            "config_snapshot": self.config_snapshot,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_note": self.review_note,
            "can_revert": self.can_revert,
            "revert_snapshot": (
                self.revert_snapshot.to_dict() if self.revert_snapshot else None
            ),
            "decision_reason": self.decision_reason,
            "confidence_result": (
                self.confidence_result.to_dict() if self.confidence_result else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutoCommitProvenance:
        reviewed_at = data.get("reviewed_at")
        snapshot = data.get("revert_snapshot")
        result = data.get("confidence_result")
        return cls(
            id=data["id"],
            target_type=TargetType(data["target_type"]),
            target_id=data["target_id"],
            source=ProvenanceSource(data["source"]),
            correlation_id=data["correlation_id"],
            confidence=data["confidence"],
            confidence_factors=ConfidenceSnapshot.from_dict(data["confidence_factors"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            review_status=ReviewStatus(data["review_status"]),
            validations_passed=tuple(data.get("validations_passed", ())),
            critique_survival=data.get("critique_survival"),
            config_snapshot=data.get("config_snapshot") or {},
            reviewed_at=datetime.fromisoformat(reviewed_at) if reviewed_at else None,
            review_note=data.get("review_note"),
            can_revert=bool(data.get("can_revert", False)),
            revert_snapshot=RevertSnapshot.from_dict(snapshot) if snapshot else None,
            decision_reason=data.get("decision_reason", ""),
            confidence_result=ConfidenceResult.from_dict(result) if result else None,
        )

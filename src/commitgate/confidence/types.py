"""Types for multi-factor confidence scoring and threshold adjustment."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any

FACTOR_NAMES: tuple[str, ...] = (
    "source_quality",
    "extraction_clarity",
    "graph_coherence",
    "embedding_similarity",
    "novelty_score",
    "validation_score",
    "critique_survival",
    "invariance_score",
    "council_vetted",
)
"""Every factor a ConfidenceFactors record can carry, in display order."""

FACTOR_LABELS: dict[str, str] = {
    "source_quality": "Source Quality",
    "extraction_clarity": "Extraction Clarity",
    "graph_coherence": "Graph Coherence",
    "embedding_similarity": "Semantic Similarity",
    "novelty_score": "Novelty",
    "validation_score": "Validation",
    "critique_survival": "Critique Survival",
    "invariance_score": "Structural Invariance",
    "council_vetted": "Council Review",
}

DEFAULT_WEIGHTS: dict[str, float] = {
    "source_quality": 0.15,
    "extraction_clarity": 0.20,
    "graph_coherence": 0.15,
    "embedding_similarity": 0.10,
    "novelty_score": 0.10,
    "validation_score": 0.20,
    "critique_survival": 0.10,
}
"""Weight-bearing factors. Factors missing here are explained but never scored."""

DEFAULT_FLOORS: dict[str, float] = {
    "source_quality": 0.2,
    "extraction_clarity": 0.3,
    "graph_coherence": 0.2,
    "embedding_similarity": 0.0,
    "novelty_score": 0.2,
    "validation_score": 0.5,
    "critique_survival": 0.2,
}
"""Per-factor minimums. A floor of 0 disables the veto for that factor."""


class Severity(Enum):
    """How strongly an explanation should be surfaced."""

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class ConfidenceFactors:
    """Per-dimension scores for one proposal.

    Each factor is a value in [0, 1] or None. None means the factor was not
    evaluated (not yet tested, evaluator unavailable or timed out) and is
    excluded from weighting entirely. It is never the same as 0.0.
    """

    source_quality: float | None = None
    """Trust in the resource the proposal was extracted from."""

    extraction_clarity: float | None = None
    """Highest AI-assigned confidence across the proposed items."""

    graph_coherence: float | None = None
    """How well a proposed connection fits the existing graph."""

    embedding_similarity: float | None = None
    """Semantic relatedness of the connected entities."""

    novelty_score: float | None = None
    """1.0 for entirely new content, low for near-duplicates."""

    validation_score: float | None = None
    """1.0 when upstream validation passed, 0.0 when it failed."""

    critique_survival: float | None = None
    """How well the proposal survived adversarial critique."""

    invariance_score: float | None = None
    """Stability of the proposal under paraphrase and compression."""

    council_vetted: float | None = None
    """Score from an external review council, when one ran."""

    def get(self, name: str) -> float | None:
        """Get a factor value by name."""
        if name not in FACTOR_NAMES:
            raise KeyError(name)
        return getattr(self, name)

    def present(self) -> dict[str, float]:
        """Factors that carry a value."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def to_dict(self) -> dict[str, float | None]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfidenceFactors:
        return cls(**{name: data.get(name) for name in FACTOR_NAMES})


@dataclass(frozen=True, slots=True)
class ConfidenceExplanation:
    """Why one factor stood out."""

    factor: str
    label: str
    score: float
    explanation: str
    severity: Severity
    is_floor_veto: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "factor": self.factor,
            "label": self.label,
            "score": self.score,
            "explanation": self.explanation,
            "severity": self.severity.value,
            "is_floor_veto": self.is_floor_veto,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfidenceExplanation:
        return cls(
            factor=data["factor"],
            label=data["label"],
            score=data["score"],
            explanation=data["explanation"],
            severity=Severity(data["severity"]),
            is_floor_veto=data.get("is_floor_veto", False),
        )


@dataclass(frozen=True, slots=True)
class ConfidenceResult:
    """Outcome of a multi-factor calculation."""

    score: float
    """Weighted score over the active factors, clamped to [0, 1]."""

    factors: ConfidenceFactors
    """The factor snapshot the score was computed from."""

    explanations: tuple[ConfidenceExplanation, ...]
    """At most one explanation per notable factor."""

    has_floor_veto: bool
    """True when any active factor fell below its floor."""

    veto_factors: tuple[str, ...]
    """Names of the factors that triggered the veto."""

    weights_used: dict[str, float] = field(default_factory=dict)
    """Normalized weights actually applied (sum to 1 over active factors)."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "factors": self.factors.to_dict(),
            "explanations": [e.to_dict() for e in self.explanations],
            "has_floor_veto": self.has_floor_veto,
            "veto_factors": list(self.veto_factors),
            "weights_used": dict(self.weights_used),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfidenceResult:
        return cls(
            score=data["score"],
            factors=ConfidenceFactors.from_dict(data["factors"]),
            explanations=tuple(
                ConfidenceExplanation.from_dict(e) for e in data["explanations"]
            ),
            has_floor_veto=data["has_floor_veto"],
            veto_factors=tuple(data["veto_factors"]),
            weights_used=dict(data["weights_used"]),
        )


# =============================================================================
# Threshold adjustment
# =============================================================================


@dataclass(frozen=True, slots=True)
class BaseThresholds:
    """Thresholds before any dynamic adjustment."""

    auto_accept_entity: float
    auto_accept_connection: float
    auto_reject_below: float


@dataclass(frozen=True, slots=True)
class AdjustedThresholds:
    """Thresholds after a ThresholdAdjuster ran."""

    auto_accept_entity: float
    auto_accept_connection: float
    auto_reject_below: float
    was_adjusted: bool = False
    adjustment_reason: str | None = None

    @classmethod
    def unchanged(cls, base: BaseThresholds) -> AdjustedThresholds:
        return cls(
            auto_accept_entity=base.auto_accept_entity,
            auto_accept_connection=base.auto_accept_connection,
            auto_reject_below=base.auto_reject_below,
        )


@dataclass(frozen=True, slots=True)
class ThresholdAdjustment:
    """Immutable record of one threshold change."""

    id: str
    timestamp: datetime
    strategy: str
    previous_auto_accept: float
    new_auto_accept: float
    previous_auto_reject: float
    new_auto_reject: float
    rejection_rate: float
    window_size: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ThresholdAdjustment:
        return cls(
            id=data["id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            strategy=data["strategy"],
            previous_auto_accept=data["previous_auto_accept"],
            new_auto_accept=data["new_auto_accept"],
            previous_auto_reject=data["previous_auto_reject"],
            new_auto_reject=data["new_auto_reject"],
            rejection_rate=data["rejection_rate"],
            window_size=data["window_size"],
            reason=data["reason"],
        )


@dataclass(frozen=True, slots=True)
class DecisionStats:
    """Outcome counts over the most recent N audit records."""

    total: int = 0
    auto_approved: int = 0
    human_confirmed: int = 0
    human_reverted: int = 0
    auto_rejected: int = 0
    pending_review: int = 0

    @property
    def rejection_rate(self) -> float:
        """Fraction of decisions that were later reverted or auto-rejected."""
        if self.total == 0:
            return 0.0
        return (self.human_reverted + self.auto_rejected) / self.total

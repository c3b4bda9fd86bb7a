"""Multi-factor confidence calculator with floor veto.

The score is a weighted average over the *active* factors: those that carry a
weight and a value. Absent factors drop out of both the numerator and the
weight sum, so the remaining weights are renormalized rather than zero-filled.

Any active factor strictly below its configured floor vetoes the proposal.
A veto forces human review regardless of the overall score.
"""

from __future__ import annotations

import logging

from commitgate.confidence.types import (
    DEFAULT_FLOORS,
    DEFAULT_WEIGHTS,
    FACTOR_LABELS,
    FACTOR_NAMES,
    ConfidenceExplanation,
    ConfidenceFactors,
    ConfidenceResult,
    Severity,
)

logger = logging.getLogger(__name__)

WARNING_BELOW = 0.4
POSITIVE_ABOVE = 0.9

LOW_SCORE_EXPLANATIONS: dict[str, str] = {
    "source_quality": "Source domain is not in trusted list",
    "extraction_clarity": "AI extraction had low confidence in content structure",
    "graph_coherence": "Proposed connection has no shared context in existing graph",
    "embedding_similarity": "Weak semantic relationship between connected entities",
    "novelty_score": "Very similar content already exists",
    "validation_score": "Some validation rules failed",
    "critique_survival": "Proposal did not survive critique well",
    "invariance_score": "Structural invariance check raised concerns",
    "council_vetted": "Review council raised concerns",
}

HIGH_SCORE_EXPLANATIONS: dict[str, str] = {
    "source_quality": "Source is from a trusted domain",
    "extraction_clarity": "AI extraction was highly confident",
    "graph_coherence": "Strong connection to existing knowledge patterns",
    "embedding_similarity": "Strong semantic relationship detected",
    "novelty_score": "Content is novel and unique",
    "validation_score": "All validation rules passed",
    "critique_survival": "Proposal survived adversarial critique",
    "invariance_score": "Structural invariance verified",
    "council_vetted": "Review council approved",
}


class MultiFactorConfidenceCalculator:
    """Combine factor scores into one confidence value.

    Example:
        >>> calc = MultiFactorConfidenceCalculator()
        >>> result = calc.calculate(ConfidenceFactors(validation_score=1.0))
        >>> result.score
        1.0
    """

    def __init__(
        self,
        weights: dict[str, float] | None = None,
        floors: dict[str, float] | None = None,
    ):
        self._weights = dict(DEFAULT_WEIGHTS if weights is None else weights)
        self._floors = dict(DEFAULT_FLOORS if floors is None else floors)

    @property
    def weights(self) -> dict[str, float]:
        return dict(self._weights)

    @property
    def floors(self) -> dict[str, float]:
        return dict(self._floors)

    def update_weights(self, weights: dict[str, float]) -> None:
        """Replace the weight map."""
        self._weights = dict(weights)

    def update_floors(self, floors: dict[str, float]) -> None:
        """Replace the floor map."""
        self._floors = dict(floors)

    def calculate(self, factors: ConfidenceFactors) -> ConfidenceResult:
        """Score a factor set.

        With no active factor the score is 0.0 and no veto fires.
        """
        active = {
            name: value
            for name in self._weights
            if (value := factors.get(name)) is not None
        }
        weights_used = self.normalize_weights(active)

        raw = sum(active[name] * weight for name, weight in weights_used.items())
        score = min(1.0, max(0.0, raw))

        veto_factors = tuple(
            name
            for name, value in active.items()
            if self._floors.get(name, 0.0) > 0 and value < self._floors[name]
        )
        if veto_factors:
            logger.debug("Floor veto from %s (score %.3f)", ", ".join(veto_factors), score)

        return ConfidenceResult(
            score=score,
            factors=factors,
            explanations=self.explain(factors, veto_factors),
            has_floor_veto=bool(veto_factors),
            veto_factors=veto_factors,
            weights_used=weights_used,
        )

    def normalize_weights(self, active: dict[str, float]) -> dict[str, float]:
        """Renormalize the configured weights over the active factors.

        Falls back to equal weights when the active weights sum to zero.
        """
        if not active:
            return {}
        total = sum(self._weights[name] for name in active)
        if total <= 0:
            equal = 1.0 / len(active)
            return {name: equal for name in active}
        return {name: self._weights[name] / total for name in active}

    def explain(
        self,
        factors: ConfidenceFactors,
        veto_factors: tuple[str, ...] | list[str] = (),
    ) -> tuple[ConfidenceExplanation, ...]:
        """Explain the notable factors.

        Each factor gets at most one explanation, by priority: absent, floor
        veto, warning, positive. Mid-range factors are not explained. Pure and
        deterministic for a given input.
        """
        vetoed = set(veto_factors)
        explanations: list[ConfidenceExplanation] = []

        for name in FACTOR_NAMES:
            value = factors.get(name)
            label = FACTOR_LABELS[name]

            if value is None:
                explanations.append(ConfidenceExplanation(
                    factor=name,
                    label=label,
                    score=0.0,
                    explanation="Not yet tested",
                    severity=Severity.OK,
                ))
            elif name in vetoed:
                explanations.append(ConfidenceExplanation(
                    factor=name,
                    label=label,
                    score=value,
                    explanation=(
                        f"{LOW_SCORE_EXPLANATIONS[name]} "
                        f"(below minimum threshold {self._floors.get(name, 0.0):.2f})"
                    ),
                    severity=Severity.CRITICAL,
                    is_floor_veto=True,
                ))
            elif value < WARNING_BELOW:
                explanations.append(ConfidenceExplanation(
                    factor=name,
                    label=label,
                    score=value,
                    explanation=LOW_SCORE_EXPLANATIONS[name],
                    severity=Severity.WARNING,
                ))
            elif value > POSITIVE_ABOVE:
                explanations.append(ConfidenceExplanation(
                    factor=name,
                    label=label,
                    score=value,
                    explanation=HIGH_SCORE_EXPLANATIONS[name],
                    severity=Severity.OK,
                ))

        return tuple(explanations)

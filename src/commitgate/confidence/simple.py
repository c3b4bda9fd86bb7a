"""Four-factor confidence calculator.

Used when ``confidence.calculator`` is ``simple``. Critique survival only
counts when critique actually ran.
"""

from commitgate.types import ConfidenceSnapshot

WEIGHTS = {
    "proposal_confidence": 0.35,
    "validation_score": 0.25,
    "critique_survival": 0.25,
    "novelty_score": 0.15,
}


class SimpleConfidenceCalculator:
    """Weighted average of the four snapshot factors."""

    def calculate(self, snapshot: ConfidenceSnapshot) -> float:
        total = 0.0
        weight_sum = 0.0

        total += snapshot.proposal_confidence * WEIGHTS["proposal_confidence"]
        weight_sum += WEIGHTS["proposal_confidence"]

        total += snapshot.validation_score * WEIGHTS["validation_score"]
        weight_sum += WEIGHTS["validation_score"]

        if snapshot.critique_survival is not None:
            total += snapshot.critique_survival * WEIGHTS["critique_survival"]
            weight_sum += WEIGHTS["critique_survival"]

        total += snapshot.novelty_score * WEIGHTS["novelty_score"]
        weight_sum += WEIGHTS["novelty_score"]

        return min(1.0, max(0.0, total / weight_sum))

    def explain(self, snapshot: ConfidenceSnapshot) -> list[str]:
        """Short, human-readable notes on weak factors."""
        notes = []
        if snapshot.proposal_confidence < 0.5:
            notes.append("Low AI proposal confidence")
        if snapshot.validation_score < 1.0:
            notes.append("Validation warnings present")
        if snapshot.critique_survival is not None and snapshot.critique_survival < 0.5:
            notes.append("Critique raised significant concerns")
        if snapshot.novelty_score < 0.3:
            notes.append("May be duplicate of existing content")
        return notes or ["All confidence factors strong"]

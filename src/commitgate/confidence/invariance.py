"""Structural invariance factor.

Invariance tests (paraphrase stability, compression survival) run outside
this package. This module only reads their stored results.
"""

from __future__ import annotations

from enum import Enum

from commitgate.adapters import InvarianceAdapter


class RobustnessLabel(Enum):
    ROBUST = "robust"
    MODERATE = "moderate"
    FRAGILE = "fragile"
    UNTESTED = "untested"


def robustness_label(score: float | None) -> RobustnessLabel:
    if score is None:
        return RobustnessLabel.UNTESTED
    if score >= 0.7:
        return RobustnessLabel.ROBUST
    if score >= 0.4:
        return RobustnessLabel.MODERATE
    return RobustnessLabel.FRAGILE


class InvarianceEvaluator:
    """Look up the invariance score for a connection."""

    def __init__(self, adapter: InvarianceAdapter):
        self.adapter = adapter

    async def evaluate(self, connection_id: str) -> float | None:
        """Stored score, or None when the connection was never tested."""
        evidence = await self.adapter.get(connection_id)
        if evidence is None:
            return None
        return evidence.invariance_score

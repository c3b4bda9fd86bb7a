"""Confidence scoring.

Factor evaluators, the multi-factor and simple calculators, and threshold
adjustment strategies. Import evaluators and adjusters from their modules.
"""

from commitgate.confidence.calculator import MultiFactorConfidenceCalculator
from commitgate.confidence.types import (
    DEFAULT_FLOORS,
    DEFAULT_WEIGHTS,
    FACTOR_NAMES,
    AdjustedThresholds,
    BaseThresholds,
    ConfidenceExplanation,
    ConfidenceFactors,
    ConfidenceResult,
    DecisionStats,
    Severity,
    ThresholdAdjustment,
)

__all__ = [
    "MultiFactorConfidenceCalculator",
    "DEFAULT_FLOORS",
    "DEFAULT_WEIGHTS",
    "FACTOR_NAMES",
    "AdjustedThresholds",
    "BaseThresholds",
    "ConfidenceExplanation",
    "ConfidenceFactors",
    "ConfidenceResult",
    "DecisionStats",
    "Severity",
    "ThresholdAdjustment",
]

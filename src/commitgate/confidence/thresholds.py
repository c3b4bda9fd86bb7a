"""Threshold adjustment strategies.

- static: thresholds pass through unchanged
- global_ratio: tighten or loosen from the recent rejection rate

Tightening is faster than loosening and also raises the reject floor.
Trust is easy to lose and slow to regain.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from commitgate.config import DynamicAdjustmentConfig
from commitgate.confidence.types import (
    AdjustedThresholds,
    BaseThresholds,
    ThresholdAdjustment,
)
from commitgate.errors import CommitGateError, ErrorCode

if TYPE_CHECKING:
    from commitgate.provenance.store import ProvenanceStore

logger = logging.getLogger(__name__)

MIN_SAMPLE = 5
"""Fewer decisions than this carry no signal."""

MIN_GAP = 0.1
"""The reject floor always stays this far below the entity threshold."""


@runtime_checkable
class ThresholdAdjuster(Protocol):
    """Derives the effective thresholds for one evaluation."""

    name: str

    async def adjust(self, base: BaseThresholds) -> AdjustedThresholds:
        ...


class StaticAdjuster:
    """Pass-through adjuster."""

    name = "static"

    async def adjust(self, base: BaseThresholds) -> AdjustedThresholds:
        return AdjustedThresholds.unchanged(base)


class GlobalRatioAdjuster:
    """Adjust thresholds from the rejection rate of recent decisions."""

    name = "global_ratio"

    def __init__(self, config: DynamicAdjustmentConfig, store: ProvenanceStore):
        self.config = config
        self.store = store

    def update_config(self, config: DynamicAdjustmentConfig) -> None:
        self.config = config

    async def adjust(self, base: BaseThresholds) -> AdjustedThresholds:
        cfg = self.config
        if not cfg.enabled:
            return AdjustedThresholds.unchanged(base)

        stats = await self.store.get_recent_decision_stats(cfg.window_size)
        if stats.total < MIN_SAMPLE:
            return AdjustedThresholds.unchanged(base)

        rate = stats.rejection_rate
        if rate > cfg.tighten_above:
            accept_delta = cfg.adjustment_step
            reject_delta = cfg.adjustment_step * 0.5
            reason = (
                f"Rejection rate {rate:.0%} exceeds {cfg.tighten_above:.0%}, tightening"
            )
        elif rate < cfg.loosen_below:
            accept_delta = -cfg.adjustment_step * 0.5
            reject_delta = 0.0
            reason = (
                f"Rejection rate {rate:.0%} below {cfg.loosen_below:.0%}, loosening"
            )
        else:
            return AdjustedThresholds.unchanged(base)

        new_entity = self._clamp(base.auto_accept_entity + accept_delta)
        new_connection = self._clamp(base.auto_accept_connection + accept_delta)
        new_reject = max(
            cfg.min_threshold * 0.5,
            min(base.auto_reject_below + reject_delta, new_entity - MIN_GAP),
        )

        changed = (
            new_entity != base.auto_accept_entity
            or new_connection != base.auto_accept_connection
            or new_reject != base.auto_reject_below
        )
        if not changed:
            return AdjustedThresholds.unchanged(base)

        await self._record(base, new_entity, new_reject, rate, reason)
        return AdjustedThresholds(
            auto_accept_entity=new_entity,
            auto_accept_connection=new_connection,
            auto_reject_below=new_reject,
            was_adjusted=True,
            adjustment_reason=reason,
        )

    def _clamp(self, value: float) -> float:
        return max(self.config.min_threshold, min(self.config.max_threshold, value))

    async def _record(
        self,
        base: BaseThresholds,
        new_entity: float,
        new_reject: float,
        rate: float,
        reason: str,
    ) -> None:
        # Evaluations under an unchanged window repeat the same adjustment
        recent = await self.store.get_recent_adjustments(1)
        if recent:
            last = recent[0]
            if (
                last.strategy == self.name
                and last.previous_auto_accept == base.auto_accept_entity
                and last.new_auto_accept == new_entity
                and last.new_auto_reject == new_reject
                and last.rejection_rate == rate
            ):
                return

        now = datetime.now(UTC)
        adjustment = ThresholdAdjustment(
            id=f"adj_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}",
            timestamp=now,
            strategy=self.name,
            previous_auto_accept=base.auto_accept_entity,
            new_auto_accept=new_entity,
            previous_auto_reject=base.auto_reject_below,
            new_auto_reject=new_reject,
            rejection_rate=rate,
            window_size=self.config.window_size,
            reason=reason,
        )
        await self.store.record_threshold_adjustment(adjustment)
        logger.info(
            "Thresholds adjusted: accept %.2f -> %.2f, reject %.2f -> %.2f (%s)",
            base.auto_accept_entity,
            new_entity,
            base.auto_reject_below,
            new_reject,
            reason,
        )


def build_threshold_adjuster(
    name: str,
    config: DynamicAdjustmentConfig,
    store: ProvenanceStore,
) -> ThresholdAdjuster:
    """Create the threshold adjuster named in configuration."""
    if name == "static":
        return StaticAdjuster()
    if name == "global_ratio":
        return GlobalRatioAdjuster(config, store)
    raise CommitGateError(
        ErrorCode.CONFIG_UNKNOWN_STRATEGY, {"kind": "threshold", "strategy": name}
    )

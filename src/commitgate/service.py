"""Autonomous commit decisions.

AutonomousCommitService sits after the upstream validation workflow and
decides, for each validated proposal, whether to commit it automatically,
hold it for review, or reject it. Gates run in a fixed order and each one
short-circuits:

1. master switch off -> disabled
2. entity type blocked or not allowed -> queue_for_review
3. validation required but failed -> queue_for_review
4. compute confidence (simple or multi-factor)
5. floor veto (multi-factor only) -> queue_for_review
6. score below the reject floor -> auto_reject
7. score below the accept threshold -> queue_for_review
8. critique required but not run -> queue_for_review
9. rate limiter denies -> rate_limited
10. otherwise -> auto_commit

Gate order is policy. It is never reordered for latency.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from commitgate.adapters import (
    ConnectionAdapter,
    EmbeddingAdapter,
    InvarianceAdapter,
    NoteAdapter,
)
from commitgate.config import AutonomousConfig
from commitgate.confidence.calculator import MultiFactorConfidenceCalculator
from commitgate.confidence.coherence import build_coherence_strategy
from commitgate.confidence.collector import EvaluatorFactorCollector, FactorCollector
from commitgate.confidence.embedding import EmbeddingSimilarityEvaluator
from commitgate.confidence.invariance import InvarianceEvaluator
from commitgate.confidence.novelty import NoveltyDetector
from commitgate.confidence.simple import SimpleConfidenceCalculator
from commitgate.confidence.source_trust import SourceTrustEvaluator
from commitgate.confidence.thresholds import (
    StaticAdjuster,
    ThresholdAdjuster,
    build_threshold_adjuster,
)
from commitgate.confidence.types import AdjustedThresholds, ConfidenceResult
from commitgate.errors import CommitGateError, ErrorCode
from commitgate.events import EventBridge, ReviewEvent, ReviewEventType
from commitgate.provenance.store import ProvenanceStore
from commitgate.ratelimit import RateLimiter
from commitgate.review.queue import classify_reason
from commitgate.types import (
    AutoCommitProvenance,
    CommitResult,
    ConfidenceSnapshot,
    Decision,
    DecisionAction,
    Proposal,
    Resource,
    RevertSnapshot,
    ReviewStatus,
    TargetType,
    WorkflowResult,
)

logger = logging.getLogger(__name__)

CommitFn = Callable[[], Awaitable[CommitResult]]
"""Caller-supplied graph mutation. Returns the ids it created."""

RECENT_DECISIONS = 20


@dataclass(frozen=True, slots=True)
class MultiFactorStack:
    """Everything the multi-factor path needs."""

    calculator: MultiFactorConfidenceCalculator
    collector: FactorCollector


@dataclass(frozen=True, slots=True)
class Diagnostics:
    """Snapshot of in-process state for debugging."""

    hourly_commits: int
    recent_decisions: tuple[Decision, ...]
    multi_factor: bool
    threshold_strategy: str


class AutonomousCommitService:
    """Decide, commit, record and revert autonomous proposals.

    Example:
        >>> store = SQLiteProvenanceStore(tmp / "audit.db")
        >>> service = AutonomousCommitService(store, RateLimiter(store))
        >>> decision = await service.evaluate(proposal, workflow_result, config)
        >>> if decision.action is DecisionAction.AUTO_COMMIT:
        ...     await service.commit_with_provenance(proposal, decision, commit, config)
    """

    def __init__(
        self,
        store: ProvenanceStore,
        rate_limiter: RateLimiter,
        calculator: SimpleConfidenceCalculator | None = None,
        multi_factor: MultiFactorStack | None = None,
        threshold_adjuster: ThresholdAdjuster | None = None,
        event_bridge: EventBridge | None = None,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.calculator = calculator or SimpleConfidenceCalculator()
        self.multi_factor = multi_factor
        self.threshold_adjuster = threshold_adjuster or StaticAdjuster()
        self.event_bridge = event_bridge
        self._notes: NoteAdapter | None = None
        self._connections: ConnectionAdapter | None = None
        self._recent: deque[Decision] = deque(maxlen=RECENT_DECISIONS)

    def set_adapters(self, notes: NoteAdapter, connections: ConnectionAdapter) -> None:
        """Inject the adapters revert() deletes through."""
        self._notes = notes
        self._connections = connections

    def set_multi_factor_stack(self, stack: MultiFactorStack | None) -> None:
        """Switch to multi-factor scoring, or back to simple with None."""
        self.multi_factor = stack

    def set_threshold_adjuster(self, adjuster: ThresholdAdjuster) -> None:
        self.threshold_adjuster = adjuster

    def set_event_bridge(self, bridge: EventBridge | None) -> None:
        self.event_bridge = bridge

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def evaluate(
        self,
        proposal: Proposal,
        workflow_result: WorkflowResult,
        config: AutonomousConfig,
        resource: Resource | None = None,
    ) -> Decision:
        """Decide what to do with a validated proposal."""
        decision = await self._evaluate(proposal, workflow_result, config, resource)
        self._recent.append(decision)
        logger.debug(
            "Proposal %s -> %s (%s)",
            proposal.correlation_id,
            decision.action.value,
            decision.reason,
        )
        return decision

    async def _evaluate(
        self,
        proposal: Proposal,
        workflow_result: WorkflowResult,
        config: AutonomousConfig,
        resource: Resource | None,
    ) -> Decision:
        if not config.enabled:
            return Decision(
                action=DecisionAction.DISABLED,
                confidence=0.0,
                factors=ConfidenceSnapshot(),
                reason="Autonomous mode is disabled",
            )

        scope_reason = self._check_scope(proposal, config)
        if scope_reason:
            return Decision(
                action=DecisionAction.QUEUE_FOR_REVIEW,
                confidence=0.0,
                factors=ConfidenceSnapshot(),
                reason=scope_reason,
            )

        if config.scope.require_validation and not workflow_result.success:
            return Decision(
                action=DecisionAction.QUEUE_FOR_REVIEW,
                confidence=0.0,
                factors=ConfidenceSnapshot(),
                reason="Validation did not pass",
            )

        snapshot = self._snapshot(proposal, workflow_result)
        result: ConfidenceResult | None = None
        if self.multi_factor is not None:
            factors = await self.multi_factor.collector.collect(
                proposal, workflow_result, resource
            )
            result = self.multi_factor.calculator.calculate(factors)
            score = result.score
            if factors.novelty_score is not None:
                snapshot = replace(snapshot, novelty_score=factors.novelty_score)
        else:
            score = self.calculator.calculate(snapshot)

        def decide(action: DecisionAction, reason: str) -> Decision:
            return Decision(
                action=action,
                confidence=score,
                factors=snapshot,
                reason=reason,
                confidence_result=result,
            )

        if result is not None and result.has_floor_veto:
            return decide(
                DecisionAction.QUEUE_FOR_REVIEW,
                f"Floor veto triggered by: {', '.join(result.veto_factors)}",
            )

        thresholds = await self.threshold_adjuster.adjust(config.thresholds.as_base())
        suffix = " (adjusted)" if thresholds.was_adjusted else ""

        if score < thresholds.auto_reject_below:
            return decide(
                DecisionAction.AUTO_REJECT,
                f"Confidence {score:.2f} below auto-reject threshold "
                f"{thresholds.auto_reject_below:.2f}{suffix}",
            )

        threshold = _accept_threshold(proposal, thresholds)
        if score < threshold:
            return decide(
                DecisionAction.QUEUE_FOR_REVIEW,
                f"Confidence {score:.2f} below auto-accept threshold {threshold:.2f}{suffix}",
            )

        if config.scope.require_critique and workflow_result.critique_survival is None:
            return decide(DecisionAction.QUEUE_FOR_REVIEW, "Critique required but was not run")

        check = await self.rate_limiter.can_commit(config)
        if not check.allowed:
            return decide(DecisionAction.RATE_LIMITED, check.reason or "Rate limit reached")

        return decide(
            DecisionAction.AUTO_COMMIT,
            f"Confidence {score:.2f} meets threshold {threshold:.2f}{suffix}",
        )

    def _check_scope(self, proposal: Proposal, config: AutonomousConfig) -> str | None:
        scope = config.scope
        for entity in proposal.entities:
            entity_type = entity.entity_type or "note"
            if entity_type in scope.blocked_entity_types:
                return f'Entity type "{entity_type}" is in blocked list'
            if "*" not in scope.allowed_entity_types and (
                entity_type not in scope.allowed_entity_types
            ):
                return f'Entity type "{entity_type}" not in allowed list'
        return None

    def _snapshot(self, proposal: Proposal, workflow_result: WorkflowResult) -> ConfidenceSnapshot:
        return ConfidenceSnapshot(
            proposal_confidence=proposal.max_confidence,
            validation_score=1.0 if workflow_result.success else 0.0,
            critique_survival=workflow_result.critique_survival,
            novelty_score=1.0,
        )

    # =========================================================================
    # Recording
    # =========================================================================

    async def commit_with_provenance(
        self,
        proposal: Proposal,
        decision: Decision,
        commit_fn: CommitFn,
        config: AutonomousConfig,
    ) -> AutoCommitProvenance:
        """Run the commit and record it with a revert snapshot.

        Raises:
            CommitGateError: If the commit function fails. Nothing is
                recorded and the rate limiter is not advanced.
        """
        snapshot = RevertSnapshot.for_creations(proposal)

        try:
            committed = await commit_fn()
        except Exception as e:
            logger.error("Commit failed for %s: %s", proposal.correlation_id, e)
            raise CommitGateError(
                ErrorCode.COMMIT_FAILED,
                {"correlation_id": proposal.correlation_id or "", "detail": str(e)},
                cause=e,
            ) from e

        if committed.entity_ids:
            target_type, target_id = TargetType.ENTITY, committed.entity_ids[0]
        elif committed.connection_ids:
            target_type, target_id = TargetType.CONNECTION, committed.connection_ids[0]
        else:
            target_type, target_id = proposal.target_type, proposal.target_id

        provenance = self._build_provenance(
            proposal,
            decision,
            config,
            status=ReviewStatus.AUTO_APPROVED,
            can_revert=True,
            revert_snapshot=snapshot,
        )
        provenance = replace(provenance, target_type=target_type, target_id=target_id)

        await self.store.record(provenance)
        self.rate_limiter.record_commit()
        logger.info(
            "Auto-committed %s %s (confidence %.2f)",
            target_type.value,
            target_id,
            decision.confidence,
        )
        return provenance

    async def record_pending_review(
        self,
        proposal: Proposal,
        decision: Decision,
        config: AutonomousConfig,
    ) -> AutoCommitProvenance:
        """Record a proposal held for review. Nothing is committed."""
        provenance = self._build_provenance(
            proposal, decision, config, status=ReviewStatus.PENDING_REVIEW
        )
        await self.store.record(provenance)

        if self.event_bridge is not None:
            self.event_bridge.emit(ReviewEvent(
                type=ReviewEventType.QUEUED,
                data={
                    "provenance_id": provenance.id,
                    "reason": classify_reason(decision.reason).value,
                    "confidence": decision.confidence,
                },
            ))
        return provenance

    async def record_auto_reject(
        self,
        proposal: Proposal,
        decision: Decision,
        config: AutonomousConfig,
    ) -> AutoCommitProvenance:
        """Record an auto-rejected proposal so it counts toward the rejection rate."""
        provenance = self._build_provenance(
            proposal, decision, config, status=ReviewStatus.AUTO_REJECTED
        )
        await self.store.record(provenance)
        logger.info("Auto-rejected proposal %s: %s", proposal.correlation_id, decision.reason)
        return provenance

    def _build_provenance(
        self,
        proposal: Proposal,
        decision: Decision,
        config: AutonomousConfig,
        status: ReviewStatus,
        can_revert: bool = False,
        revert_snapshot: RevertSnapshot | None = None,
    ) -> AutoCommitProvenance:
        return AutoCommitProvenance(
            id=str(uuid.uuid4()),
            target_type=proposal.target_type,
            target_id=proposal.target_id,
            source=proposal.source,
            correlation_id=proposal.correlation_id or str(uuid.uuid4()),
            confidence=decision.confidence,
            confidence_factors=decision.factors,
            created_at=datetime.now(UTC),
            review_status=status,
            critique_survival=decision.factors.critique_survival,
            config_snapshot=config.snapshot(),
            can_revert=can_revert,
            revert_snapshot=revert_snapshot,
            decision_reason=decision.reason,
            confidence_result=decision.confidence_result,
        )

    async def process(
        self,
        proposal: Proposal,
        workflow_result: WorkflowResult,
        config: AutonomousConfig,
        commit_fn: CommitFn,
        resource: Resource | None = None,
    ) -> Decision:
        """Evaluate a proposal and carry out the decision.

        - auto_commit: commit and record
        - queue_for_review, rate_limited: record as pending review
        - auto_reject: record as auto-rejected
        - disabled: nothing is recorded

        Returns:
            The decision, with provenance_id set when a record was written.
        """
        decision = await self.evaluate(proposal, workflow_result, config, resource)

        match decision.action:
            case DecisionAction.AUTO_COMMIT:
                provenance = await self.commit_with_provenance(
                    proposal, decision, commit_fn, config
                )
            case DecisionAction.QUEUE_FOR_REVIEW | DecisionAction.RATE_LIMITED:
                provenance = await self.record_pending_review(proposal, decision, config)
            case DecisionAction.AUTO_REJECT:
                provenance = await self.record_auto_reject(proposal, decision, config)
            case _:
                return decision

        return replace(decision, provenance_id=provenance.id)

    # =========================================================================
    # Revert
    # =========================================================================

    async def revert(self, provenance_id: str) -> bool:
        """Undo an auto-commit.

        Deletes every entity and connection the commit created. Objects that
        existed before the commit are left untouched.

        Returns:
            True if the commit was reverted. False when adapters are not set,
            the record or its snapshot is missing, or it was already reverted.

        Raises:
            CommitGateError: If an adapter delete fails. The record keeps its
                status so the revert can be retried.
        """
        if self._notes is None or self._connections is None:
            logger.warning("Cannot revert %s: adapters not set", provenance_id)
            return False

        provenance = await self.store.get(provenance_id)
        if provenance is None:
            logger.warning("Cannot revert %s: no such record", provenance_id)
            return False
        if provenance.review_status is ReviewStatus.HUMAN_REVERTED:
            logger.debug("Record %s already reverted", provenance_id)
            return False

        snapshot = await self.store.get_revert_snapshot(provenance_id)
        if snapshot is None:
            logger.warning("Cannot revert %s: no revert snapshot", provenance_id)
            return False

        try:
            for entity in snapshot.entities:
                if not entity.existed_before:
                    await self._notes.delete(entity.id)
            for connection in snapshot.connections:
                if not connection.existed_before:
                    await self._connections.delete(connection.id)
        except Exception as e:
            logger.exception("Revert failed for %s", provenance_id)
            raise CommitGateError(
                ErrorCode.REVERT_FAILED,
                {"record_id": provenance_id, "detail": str(e)},
                cause=e,
            ) from e

        await self.store.update_review_status(
            provenance_id, ReviewStatus.HUMAN_REVERTED, "Reverted by user"
        )
        logger.info("Reverted %s", provenance_id)
        return True

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def diagnostics(self) -> Diagnostics:
        return Diagnostics(
            hourly_commits=self.rate_limiter.get_hourly_count(),
            recent_decisions=tuple(self._recent),
            multi_factor=self.multi_factor is not None,
            threshold_strategy=self.threshold_adjuster.name,
        )


def _accept_threshold(proposal: Proposal, thresholds: AdjustedThresholds) -> float:
    """Entity threshold if the batch proposes any entity, else connection."""
    if proposal.entities:
        return thresholds.auto_accept_entity
    return thresholds.auto_accept_connection


def build_commit_service(
    config: AutonomousConfig,
    store: ProvenanceStore,
    notes: NoteAdapter | None = None,
    connections: ConnectionAdapter | None = None,
    embeddings: EmbeddingAdapter | None = None,
    invariance: InvarianceAdapter | None = None,
    event_bridge: EventBridge | None = None,
) -> AutonomousCommitService:
    """Wire a commit service from configuration.

    Evaluators whose adapter is not supplied are left out, so their factors
    are absent rather than zero. Revert is only possible when both note and
    connection adapters are given.
    """
    conf = config.confidence

    multi_factor = None
    if conf.calculator == "multi_factor":
        collector = EvaluatorFactorCollector(
            source_trust=SourceTrustEvaluator(conf.source_trust),
            coherence=(
                build_coherence_strategy(conf.coherence_strategy, connections)
                if connections is not None
                else None
            ),
            embedding=EmbeddingSimilarityEvaluator(embeddings) if embeddings is not None else None,
            novelty=NoveltyDetector(notes, embeddings) if notes is not None else None,
            invariance=InvarianceEvaluator(invariance) if invariance is not None else None,
            timeout_seconds=conf.evaluator_timeout_seconds,
        )
        multi_factor = MultiFactorStack(
            calculator=MultiFactorConfidenceCalculator(conf.weights, conf.floors),
            collector=collector,
        )

    service = AutonomousCommitService(
        store,
        RateLimiter(store),
        multi_factor=multi_factor,
        threshold_adjuster=build_threshold_adjuster(
            conf.threshold_strategy, conf.dynamic_adjustment, store
        ),
        event_bridge=event_bridge,
    )
    if notes is not None and connections is not None:
        service.set_adapters(notes, connections)
    return service

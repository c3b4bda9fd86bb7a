"""Gather confidence factors for a proposal.

Evaluators run concurrently. An evaluator that fails or exceeds the timeout
yields an absent factor, never a zero.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Protocol, runtime_checkable

from commitgate.confidence.coherence import GraphCoherenceStrategy
from commitgate.confidence.embedding import EmbeddingSimilarityEvaluator
from commitgate.confidence.invariance import InvarianceEvaluator
from commitgate.confidence.novelty import NoveltyDetector
from commitgate.confidence.source_trust import SourceTrustEvaluator
from commitgate.confidence.types import ConfidenceFactors
from commitgate.types import Proposal, Resource, WorkflowResult

logger = logging.getLogger(__name__)

NEUTRAL = 0.5


@runtime_checkable
class FactorCollector(Protocol):
    """Produces the factor set for one proposal."""

    async def collect(
        self,
        proposal: Proposal,
        workflow_result: WorkflowResult,
        resource: Resource | None = None,
    ) -> ConfidenceFactors:
        ...


class EvaluatorFactorCollector:
    """Collect factors from the individual evaluators.

    Any evaluator left as None produces an absent factor.
    """

    def __init__(
        self,
        source_trust: SourceTrustEvaluator | None = None,
        coherence: GraphCoherenceStrategy | None = None,
        embedding: EmbeddingSimilarityEvaluator | None = None,
        novelty: NoveltyDetector | None = None,
        invariance: InvarianceEvaluator | None = None,
        timeout_seconds: float = 5.0,
    ):
        self.source_trust = source_trust
        self.coherence = coherence
        self.embedding = embedding
        self.novelty = novelty
        self.invariance = invariance
        self.timeout_seconds = timeout_seconds

    async def collect(
        self,
        proposal: Proposal,
        workflow_result: WorkflowResult,
        resource: Resource | None = None,
    ) -> ConfidenceFactors:
        first_entity = proposal.entities[0] if proposal.entities else None
        first_connection = proposal.connections[0] if proposal.connections else None

        source_quality = None
        if self.source_trust is not None:
            source_quality = self.source_trust.evaluate(
                resource, is_user_created=resource is None
            )

        coherence, similarity, novelty, invariance = await asyncio.gather(
            self._coherence(first_connection),
            self._similarity(first_entity, first_connection),
            self._novelty(first_entity),
            self._invariance(first_connection),
        )

        has_items = bool(proposal.entities or proposal.connections)
        return ConfidenceFactors(
            source_quality=source_quality,
            extraction_clarity=proposal.max_confidence if has_items else NEUTRAL,
            graph_coherence=coherence,
            embedding_similarity=similarity,
            novelty_score=novelty,
            validation_score=1.0 if workflow_result.success else 0.0,
            critique_survival=workflow_result.critique_survival,
            invariance_score=invariance,
        )

    async def _guarded(self, name: str, call: Awaitable[float | None]) -> float | None:
        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await call
        except TimeoutError:
            logger.warning("%s evaluator timed out after %.1fs", name, self.timeout_seconds)
        except Exception as e:
            logger.warning("%s evaluator failed: %s", name, e)
        return None

    async def _coherence(self, connection) -> float | None:
        if self.coherence is None:
            return None
        if connection is None:
            return NEUTRAL
        return await self._guarded(
            "coherence",
            self.coherence.evaluate(
                connection.source_id, connection.target_id, connection.label or None
            ),
        )

    async def _similarity(self, entity, connection) -> float | None:
        if self.embedding is None:
            return None
        if connection is not None:
            return await self._guarded(
                "embedding",
                self.embedding.evaluate_connection(connection.source_id, connection.target_id),
            )
        if entity is not None:
            return await self._guarded("embedding", self.embedding.evaluate_entity(entity.id))
        return NEUTRAL

    async def _novelty(self, entity) -> float | None:
        if self.novelty is None:
            return None
        if entity is None or not entity.title:
            return 1.0

        async def score() -> float:
            result = await self.novelty.evaluate(entity.title, entity.content)
            return result.score

        return await self._guarded("novelty", score())

    async def _invariance(self, connection) -> float | None:
        if self.invariance is None or connection is None:
            return None
        return await self._guarded("invariance", self.invariance.evaluate(connection.id))

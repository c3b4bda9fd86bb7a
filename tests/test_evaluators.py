"""Tests for the individual confidence factor evaluators and the collector."""

import asyncio

import numpy as np
import pytest

from commitgate.adapters import (
    ConnectionAdapter,
    ConnectionRecord,
    EmbeddingAdapter,
    InvarianceAdapter,
    InvarianceEvidence,
    NoteAdapter,
    NoteRecord,
)
from commitgate.config import SourceTrustConfig
from commitgate.confidence.coherence import (
    NeighborhoodCoherenceStrategy,
    build_coherence_strategy,
)
from commitgate.confidence.collector import EvaluatorFactorCollector
from commitgate.confidence.embedding import (
    EmbeddingSimilarityEvaluator,
    cosine_similarity,
    normalize_similarity,
)
from commitgate.confidence.invariance import (
    InvarianceEvaluator,
    RobustnessLabel,
    robustness_label,
)
from commitgate.confidence.novelty import NoveltyDetector, similarity_to_novelty
from commitgate.confidence.source_trust import SourceTrustEvaluator
from commitgate.errors import CommitGateError, ErrorCode
from commitgate.types import Resource

from conftest import (
    FakeConnections,
    FakeEmbeddings,
    FakeInvariance,
    FakeNotes,
    make_proposal,
    passed,
)


class TestAdapterProtocols:
    """In-memory collaborators satisfy the runtime-checkable protocols."""

    def test_fakes_match_protocols(self) -> None:
        assert isinstance(FakeNotes(), NoteAdapter)
        assert isinstance(FakeConnections(), ConnectionAdapter)
        assert isinstance(FakeEmbeddings(), EmbeddingAdapter)
        assert isinstance(FakeInvariance(), InvarianceAdapter)

    def test_unrelated_object_does_not_match(self) -> None:
        assert not isinstance(object(), NoteAdapter)


class TestSourceTrust:
    """Domain trust tiers."""

    def test_user_created(self) -> None:
        evaluator = SourceTrustEvaluator()
        assert evaluator.evaluate(None) == 0.8
        assert evaluator.evaluate(Resource(url="https://mit.edu"), is_user_created=True) == 0.8

    def test_trusted_suffix_and_subdomain(self) -> None:
        evaluator = SourceTrustEvaluator()
        assert evaluator.evaluate(Resource(url="https://cs.mit.edu/paper")) == 0.9
        assert evaluator.evaluate(Resource(url="https://export.arxiv.org/abs/1")) == 0.9
        assert evaluator.evaluate(Resource(url="arxiv.org/abs/1706.03762")) == 0.9

    def test_neutral_and_missing_url(self) -> None:
        evaluator = SourceTrustEvaluator()
        assert evaluator.evaluate(Resource(url="https://example.com")) == 0.6
        assert evaluator.evaluate(Resource(url=None)) == 0.6

    def test_untrusted(self) -> None:
        evaluator = SourceTrustEvaluator(SourceTrustConfig(untrusted_domains=("spam.io",)))
        assert evaluator.evaluate(Resource(url="https://www.spam.io/x")) == 0.3

    def test_user_override_wins(self) -> None:
        config = SourceTrustConfig(user_overrides={"example.com": "trusted", ".edu": "untrusted"})
        evaluator = SourceTrustEvaluator(config)

        assert evaluator.evaluate(Resource(url="https://blog.example.com")) == 0.9
        assert evaluator.evaluate(Resource(url="https://mit.edu")) == 0.3


class TestEmbeddingSimilarity:
    """Cosine similarity mapped onto confidence."""

    def test_cosine(self) -> None:
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0])) == pytest.approx(1.0)
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == pytest.approx(0.0)
        assert cosine_similarity(np.array([0.0, 0.0]), np.array([1.0, 0.0])) == 0.0
        assert cosine_similarity(np.array([1.0]), np.array([1.0, 0.0])) == 0.0

    def test_normalization(self) -> None:
        assert normalize_similarity(0.1) == 0.2
        assert normalize_similarity(0.4) == pytest.approx(0.5)
        assert normalize_similarity(0.6) == pytest.approx(0.65)
        assert normalize_similarity(0.9) == pytest.approx(0.9)
        assert normalize_similarity(1.2) == 1.0

    @pytest.mark.asyncio
    async def test_connection(self) -> None:
        evaluator = EmbeddingSimilarityEvaluator(
            FakeEmbeddings({"a": [1.0, 0.0], "b": [1.0, 0.0]})
        )
        assert await evaluator.evaluate_connection("a", "b") == pytest.approx(1.0)
        assert await evaluator.evaluate_connection("a", "missing") == 0.5

    @pytest.mark.asyncio
    async def test_entity_averages_neighbours(self) -> None:
        evaluator = EmbeddingSimilarityEvaluator(FakeEmbeddings({
            "new": [1.0, 0.0],
            "same": [1.0, 0.0],
            "orthogonal": [0.0, 1.0],
        }))
        # mean of 1.0 and 0.0 is 0.5 -> 0.5
        assert await evaluator.evaluate_entity("new", k=2) == pytest.approx(0.5)
        assert await evaluator.evaluate_entity("unknown") == 0.5


class TestNovelty:
    """Near-duplicate detection."""

    def test_mapping(self) -> None:
        assert similarity_to_novelty(0.99) == 0.1
        assert similarity_to_novelty(0.9) == 0.4
        assert similarity_to_novelty(0.75) == 0.7
        assert similarity_to_novelty(0.2) == 1.0

    @pytest.mark.asyncio
    async def test_empty_graph_is_novel(self) -> None:
        result = await NoveltyDetector(FakeNotes()).evaluate("Anything")
        assert result.score == 1.0
        assert result.nearest_match is None

    @pytest.mark.asyncio
    async def test_duplicate_detected(self) -> None:
        notes = FakeNotes([NoteRecord("n1", "Attention Is All You Need", "Transformers")])
        result = await NoveltyDetector(notes).evaluate(
            "attention is all you need", "transformers"
        )

        assert result.score == 0.1
        assert result.nearest_match.id == "n1"

    @pytest.mark.asyncio
    async def test_unrelated_is_novel(self) -> None:
        notes = FakeNotes([NoteRecord("n1", "Gradient descent", "Optimization")])
        result = await NoveltyDetector(notes).evaluate("Photosynthesis", "Plants and light")

        assert result.score == 1.0
        assert result.nearest_match is None

    @pytest.mark.asyncio
    async def test_excludes_self(self) -> None:
        notes = FakeNotes([NoteRecord("n1", "Same title", "")])
        result = await NoveltyDetector(notes).evaluate("Same title", entity_id="n1")
        assert result.score == 1.0

    @pytest.mark.asyncio
    async def test_embedding_contributes(self) -> None:
        notes = FakeNotes([NoteRecord("n1", "Alpha", "")])
        embeddings = FakeEmbeddings({"n1": [1.0, 0.0]})
        detector = NoveltyDetector(notes, embeddings)

        result = await detector.evaluate(
            "Alpha", "", embedding=np.array([1.0, 0.0], dtype=np.float32)
        )
        # title 1.0 * 0.4 + content 0 + embedding 1.0 * 0.4
        assert result.nearest_match.similarity == pytest.approx(0.8)
        assert result.score == 0.7


class TestCoherence:
    """Neighbourhood overlap scoring."""

    @pytest.mark.asyncio
    async def test_shared_neighbours(self, connections) -> None:
        strategy = NeighborhoodCoherenceStrategy(connections)
        # a: {x, y}, b: {x}; shared 1 of max 2
        assert await strategy.evaluate("a", "b") == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_isolation_cases(self) -> None:
        connections = FakeConnections([
            ConnectionRecord("c1", "a", "x"),
            ConnectionRecord("c2", "b", "y"),
        ])
        strategy = NeighborhoodCoherenceStrategy(connections)

        assert await strategy.evaluate("new1", "new2") == 0.5
        assert await strategy.evaluate("a", "new") == 0.4
        assert await strategy.evaluate("a", "b") == 0.3

    def test_factory(self, connections) -> None:
        assert build_coherence_strategy("neighborhood", connections).name == "neighborhood"
        with pytest.raises(CommitGateError) as exc_info:
            build_coherence_strategy("pagerank", connections)
        assert exc_info.value.code is ErrorCode.CONFIG_UNKNOWN_STRATEGY


class TestInvariance:

    @pytest.mark.asyncio
    async def test_stored_score(self) -> None:
        evaluator = InvarianceEvaluator(FakeInvariance([
            InvarianceEvidence("c1", paraphrase_stability=1.0, compression_survival=0.5),
        ]))
        assert await evaluator.evaluate("c1") == pytest.approx(0.8)
        assert await evaluator.evaluate("c2") is None

    def test_labels(self) -> None:
        assert robustness_label(None) is RobustnessLabel.UNTESTED
        assert robustness_label(0.7) is RobustnessLabel.ROBUST
        assert robustness_label(0.4) is RobustnessLabel.MODERATE
        assert robustness_label(0.39) is RobustnessLabel.FRAGILE


class SlowEmbeddings(FakeEmbeddings):
    async def get_for_entity(self, entity_id):
        await asyncio.sleep(1)
        return None


class BrokenConnections(FakeConnections):
    async def get_connections_for(self, entity_id):
        raise RuntimeError("graph offline")


class TestCollector:
    """Concurrent factor collection."""

    @pytest.mark.asyncio
    async def test_collects_all_factors(self, notes, connections) -> None:
        collector = EvaluatorFactorCollector(
            source_trust=SourceTrustEvaluator(),
            coherence=NeighborhoodCoherenceStrategy(connections),
            embedding=EmbeddingSimilarityEvaluator(FakeEmbeddings()),
            novelty=NoveltyDetector(notes),
            invariance=InvarianceEvaluator(FakeInvariance([
                InvarianceEvidence("conn-new", 1.0, 1.0),
            ])),
        )
        proposal = make_proposal(0.9, with_connection=True)

        factors = await collector.collect(
            proposal, passed("T_critique_escalate"), Resource(url="https://arxiv.org/abs/1")
        )

        assert factors.source_quality == 0.9
        assert factors.extraction_clarity == 0.9
        assert factors.graph_coherence == 0.5
        assert factors.embedding_similarity == 0.5
        assert factors.novelty_score is not None
        assert factors.validation_score == 1.0
        assert factors.critique_survival == 0.5
        assert factors.invariance_score == pytest.approx(1.0)
        assert factors.council_vetted is None

    @pytest.mark.asyncio
    async def test_missing_evaluators_are_absent(self) -> None:
        factors = await EvaluatorFactorCollector().collect(make_proposal(), passed())

        assert factors.source_quality is None
        assert factors.graph_coherence is None
        assert factors.novelty_score is None
        assert factors.critique_survival is None
        assert factors.extraction_clarity == 0.95

    @pytest.mark.asyncio
    async def test_timeout_and_failure_are_absent(self) -> None:
        collector = EvaluatorFactorCollector(
            coherence=NeighborhoodCoherenceStrategy(BrokenConnections()),
            embedding=EmbeddingSimilarityEvaluator(SlowEmbeddings()),
            timeout_seconds=0.05,
        )
        factors = await collector.collect(make_proposal(with_connection=True), passed())

        assert factors.graph_coherence is None
        assert factors.embedding_similarity is None
        assert factors.validation_score == 1.0

"""Near-duplicate detection for proposed entities.

Score interpretation:
- 1.0 = fully novel content
- 0.7 = related but distinct content exists
- 0.4 = similar content exists (worth reviewing)
- 0.1 = near-duplicate detected
"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import SequenceMatcher

import numpy as np
from numpy.typing import NDArray

from commitgate.adapters import EmbeddingAdapter, NoteAdapter
from commitgate.confidence.embedding import cosine_similarity

CONTENT_PREFIX = 500
"""Only the first characters of content are compared."""


@dataclass(frozen=True, slots=True)
class SimilarityWeights:
    title: float = 0.4
    content: float = 0.2
    embedding: float = 0.4


@dataclass(frozen=True, slots=True)
class NearestMatch:
    id: str
    title: str
    similarity: float


@dataclass(frozen=True, slots=True)
class NoveltyResult:
    score: float
    nearest_match: NearestMatch | None = None
    """Reported only when the closest note is more than 50% similar."""


def text_similarity(a: str, b: str) -> float:
    if not a and not b:
        return 0.0
    return SequenceMatcher(None, a.lower(), b.lower()).ratio()


def similarity_to_novelty(similarity: float) -> float:
    if similarity > 0.95:
        return 0.1
    if similarity > 0.85:
        return 0.4
    if similarity > 0.70:
        return 0.7
    return 1.0


class NoveltyDetector:
    """Compare a proposed entity against every existing note."""

    def __init__(
        self,
        notes: NoteAdapter,
        embeddings: EmbeddingAdapter | None = None,
        weights: SimilarityWeights | None = None,
    ):
        self.notes = notes
        self.embeddings = embeddings
        self.weights = weights or SimilarityWeights()

    def update_weights(self, weights: SimilarityWeights) -> None:
        self.weights = weights

    async def evaluate(
        self,
        title: str,
        content: str = "",
        entity_id: str | None = None,
        embedding: NDArray[np.float32] | None = None,
    ) -> NoveltyResult:
        """Score how novel a proposed entity is.

        Args:
            title: Proposed title
            content: Proposed content
            entity_id: Excluded from comparison if the entity already exists
            embedding: Vector for the proposal, when one was computed
        """
        existing = await self.notes.get_all()
        if not existing:
            return NoveltyResult(score=1.0)

        best = 0.0
        nearest: NearestMatch | None = None
        for note in existing:
            if entity_id and note.id == entity_id:
                continue

            other_vector = None
            if embedding is not None and self.embeddings is not None:
                stored = await self.embeddings.get_for_entity(note.id)
                other_vector = stored.vector if stored else None

            similarity = self._combined(title, content, note.title, note.content,
                                        embedding, other_vector)
            if similarity > best:
                best = similarity
                nearest = NearestMatch(note.id, note.title, similarity)

        return NoveltyResult(
            score=similarity_to_novelty(best),
            nearest_match=nearest if best > 0.5 else None,
        )

    def _combined(
        self,
        title: str,
        content: str,
        other_title: str,
        other_content: str,
        vector: NDArray[np.float32] | None,
        other_vector: NDArray[np.float32] | None,
    ) -> float:
        w = self.weights
        title_score = text_similarity(title, other_title)
        content_score = text_similarity(
            content[:CONTENT_PREFIX], other_content[:CONTENT_PREFIX]
        )

        if vector is not None and other_vector is not None:
            return (
                title_score * w.title
                + content_score * w.content
                + cosine_similarity(vector, other_vector) * w.embedding
            )

        # No vectors: renormalize over the text weights
        text_total = w.title + w.content
        if text_total == 0:
            return 0.0
        return (title_score * w.title + content_score * w.content) / text_total

"""Embedding similarity evaluation.

For connections: cosine similarity between source and target embeddings.
For entities: average similarity to the K nearest existing entities.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from commitgate.adapters import EmbeddingAdapter

NEUTRAL = 0.5


def cosine_similarity(a: NDArray[np.floating], b: NDArray[np.floating]) -> float:
    """Cosine similarity of two vectors. 0.0 on shape mismatch or zero norm."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        return 0.0
    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0:
        return 0.0
    return float(np.dot(a, b) / denominator)


def normalize_similarity(similarity: float) -> float:
    """Map raw cosine similarity onto a 0-1 confidence score."""
    if similarity < 0.3:
        return 0.2
    if similarity < 0.5:
        return 0.3 + (similarity - 0.3) * 2
    if similarity < 0.7:
        return 0.5 + (similarity - 0.5) * 1.5
    return min(1.0, 0.7 + (similarity - 0.7))


class EmbeddingSimilarityEvaluator:
    """Score semantic relatedness from stored embeddings."""

    def __init__(self, adapter: EmbeddingAdapter):
        self.adapter = adapter

    async def evaluate_connection(self, source_id: str, target_id: str) -> float:
        source = await self.adapter.get_for_entity(source_id)
        target = await self.adapter.get_for_entity(target_id)
        if source is None or target is None:
            return NEUTRAL
        return normalize_similarity(cosine_similarity(source.vector, target.vector))

    async def evaluate_entity(self, entity_id: str, k: int = 5) -> float:
        embedding = await self.adapter.get_for_entity(entity_id)
        if embedding is None:
            return NEUTRAL

        similar = await self.adapter.find_similar(
            embedding.vector, embedding.model, k, exclude_ids=(entity_id,)
        )
        if not similar:
            return NEUTRAL

        average = sum(s.similarity for s in similar) / len(similar)
        return normalize_similarity(average)

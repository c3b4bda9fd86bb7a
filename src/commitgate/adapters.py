"""Interfaces to the collaborators that own notes, connections and vectors.

The commit engine never creates or edits graph objects itself. It deletes
them during revert and reads them to score confidence factors.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True, slots=True)
class NoteRecord:
    """An existing note, as seen by the novelty detector."""

    id: str
    title: str
    content: str = ""


@dataclass(frozen=True, slots=True)
class ConnectionRecord:
    """An existing connection between two entities."""

    id: str
    source_id: str
    target_id: str
    label: str = ""


@dataclass(frozen=True, slots=True)
class Embedding:
    """Stored embedding vector for one entity."""

    vector: NDArray[np.float32]
    model: str


@dataclass(frozen=True, slots=True)
class SimilarEntity:
    """A nearest-neighbour hit from the embedding store."""

    id: str
    similarity: float


@dataclass(frozen=True, slots=True)
class InvarianceEvidence:
    """Robustness evidence recorded for a connection."""

    connection_id: str
    paraphrase_stability: float
    compression_survival: float

    @property
    def invariance_score(self) -> float:
        return 0.6 * self.paraphrase_stability + 0.4 * self.compression_survival


@runtime_checkable
class NoteAdapter(Protocol):
    """Owner of notes (entities)."""

    async def get_all(self) -> Sequence[NoteRecord]:
        ...

    async def delete(self, note_id: str) -> None:
        ...


@runtime_checkable
class ConnectionAdapter(Protocol):
    """Owner of connections between entities."""

    async def get_connections_for(self, entity_id: str) -> Sequence[ConnectionRecord]:
        ...

    async def delete(self, connection_id: str) -> None:
        ...


@runtime_checkable
class EmbeddingAdapter(Protocol):
    """Read access to stored entity embeddings."""

    async def get_for_entity(self, entity_id: str) -> Embedding | None:
        ...

    async def find_similar(
        self,
        vector: NDArray[np.float32],
        model: str,
        k: int,
        exclude_ids: Sequence[str] = (),
    ) -> Sequence[SimilarEntity]:
        """Top-k most similar entities, most similar first."""
        ...


@runtime_checkable
class InvarianceAdapter(Protocol):
    """Read access to stored invariance test results."""

    async def get(self, connection_id: str) -> InvarianceEvidence | None:
        ...

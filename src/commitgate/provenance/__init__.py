"""Audit trail storage."""

from commitgate.provenance.store import (
    ProvenanceStore,
    SQLiteProvenanceStore,
    StatusCounts,
)

__all__ = [
    "ProvenanceStore",
    "SQLiteProvenanceStore",
    "StatusCounts",
]

"""Graph coherence strategies.

A strategy scores how well a proposed connection fits the existing graph.
Strategies are selected by name from configuration.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from commitgate.adapters import ConnectionAdapter
from commitgate.errors import CommitGateError, ErrorCode


@runtime_checkable
class GraphCoherenceStrategy(Protocol):
    """Scores a proposed connection against the graph."""

    name: str

    async def evaluate(
        self,
        source_id: str,
        target_id: str,
        connection_type: str | None = None,
    ) -> float:
        ...


class NeighborhoodCoherenceStrategy:
    """Score by shared neighbours (triangle closure).

    - Neither endpoint connected: 0.5 (new entities)
    - Only one endpoint connected: 0.4
    - Both connected, no shared neighbours: 0.3
    - Shared neighbours: 0.5 + 0.5 * shared / max(neighbour counts)
    """

    name = "neighborhood"

    def __init__(self, connections: ConnectionAdapter):
        self.connections = connections

    async def evaluate(
        self,
        source_id: str,
        target_id: str,
        connection_type: str | None = None,
    ) -> float:
        source_conns = await self.connections.get_connections_for(source_id)
        target_conns = await self.connections.get_connections_for(target_id)

        source_neighbors = _neighbors(source_id, source_conns, exclude=target_id)
        target_neighbors = _neighbors(target_id, target_conns, exclude=source_id)

        source_connected = bool(source_conns)
        target_connected = bool(target_conns)
        if not source_connected and not target_connected:
            return 0.5
        if not source_connected or not target_connected:
            return 0.4

        shared = source_neighbors & target_neighbors
        if not shared:
            return 0.3

        max_neighbors = max(len(source_neighbors), len(target_neighbors))
        return min(1.0, 0.5 + len(shared) / max_neighbors * 0.5)


def _neighbors(entity_id: str, connections, exclude: str) -> set[str]:
    result = set()
    for conn in connections:
        other = conn.target_id if conn.source_id == entity_id else conn.source_id
        if other != exclude:
            result.add(other)
    return result


def build_coherence_strategy(
    name: str, connections: ConnectionAdapter
) -> GraphCoherenceStrategy:
    """Create the coherence strategy named in configuration."""
    if name == "neighborhood":
        return NeighborhoodCoherenceStrategy(connections)
    raise CommitGateError(
        ErrorCode.CONFIG_UNKNOWN_STRATEGY, {"kind": "coherence", "strategy": name}
    )

# ==============================================================================
# Transition Graph Builder
# ==============================================================================
"""
Bounded breadth-first traversal over transitions, centered on an anchor.

Level 0 holds only the anchor. Each following level is built by:
1. Issuing one top-K query per parent discovered at the previous level
   (concurrently, joined before ranking)
2. Merging results that reach the same target (fan-in aggregation)
3. Keeping the top_n merged targets for the whole level
4. Adding a "+N more" aggregate node for every parent with more than top_n
   transitions, built from the parent's totals rather than extra queries

A node stays at the earliest level it was discovered at. Traversal stops at
``depth`` or when a level discovers no new nodes.

The builder only sees two callables, so it does not depend on how the
transitions are stored.
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from apptales.core.exceptions import GraphBoundsError
from apptales.core.models import (
    Direction,
    EventRef,
    GraphEdge,
    GraphNode,
    TopTransition,
    TransitionGraph,
    TransitionTotals,
)

logger = logging.getLogger(__name__)

TopQuery = Callable[[str, int], list[TopTransition]]
TotalsQuery = Callable[[str], TransitionTotals]


class _Candidate:
    """A level target accumulating counts across parents."""

    __slots__ = ("event", "count")

    def __init__(self, event: EventRef):
        self.event = event
        self.count = 0


def _rank_key(event: EventRef, count: int) -> tuple:
    return (-count, event.key, event.id)


class TransitionGraphBuilder:
    """
    Builds a multi-level transition graph from repeated top-K queries.

    Args:
        query_top: (event_id, limit) -> top transitions in ``direction``
        query_totals: event_id -> transition count and summed count in ``direction``
        direction: FORWARD follows outgoing transitions, BACKWARD incoming ones
        max_top_n: Upper bound accepted for top_n
        max_depth: Upper bound accepted for depth
        max_workers: Concurrent per-parent queries within one level
    """

    def __init__(
        self,
        query_top: TopQuery,
        query_totals: TotalsQuery,
        direction: Direction = Direction.FORWARD,
        max_top_n: int = 20,
        max_depth: int = 5,
        max_workers: int = 8,
    ):
        self._query_top = query_top
        self._query_totals = query_totals
        self._direction = direction
        self._max_top_n = max_top_n
        self._max_depth = max_depth
        self._max_workers = max(1, max_workers)

    def validate(self, top_n: int, depth: int) -> None:
        """Raise GraphBoundsError if top_n or depth is out of range."""
        if not 1 <= top_n <= self._max_top_n:
            raise GraphBoundsError(f"top_n must be between 1 and {self._max_top_n}, got {top_n}")
        if not 1 <= depth <= self._max_depth:
            raise GraphBoundsError(f"depth must be between 1 and {self._max_depth}, got {depth}")

    def build(self, anchor: EventRef, top_n: int, depth: int) -> TransitionGraph:
        """
        Traverse from ``anchor`` and return the resulting graph.

        Args:
            anchor: Event identity the traversal is centered on
            top_n: Per-parent query limit and per-level node limit
            depth: Number of levels to expand beyond the anchor

        Returns:
            TransitionGraph with nodes (level 0..depth) and edges
        """
        self.validate(top_n, depth)

        anchor_totals = self._query_totals(anchor.id)
        anchor_node = GraphNode(
            id=anchor.id, key=anchor.key, level=0, count=anchor_totals.total_count
        )
        graph = TransitionGraph(anchor=anchor, direction=self._direction, nodes=[anchor_node])
        nodes_by_id = {anchor.id: anchor_node}
        visited = {anchor.id}
        parents = [anchor.id]

        for level in range(1, depth + 1):
            results = self._fan_out(parents, top_n)

            candidates: dict[str, _Candidate] = {}
            for parent in parents:
                rows, _ = results[parent]
                for row in rows:
                    if row.event.id in visited:
                        continue
                    candidate = candidates.get(row.event.id)
                    if candidate is None:
                        candidate = candidates[row.event.id] = _Candidate(row.event)
                    candidate.count += row.count

            ranked = sorted(candidates.values(), key=lambda c: _rank_key(c.event, c.count))
            selected = ranked[:top_n]
            selected_ids = {c.event.id for c in selected}

            for candidate in selected:
                node = GraphNode(
                    id=candidate.event.id,
                    key=candidate.event.key,
                    level=level,
                    count=candidate.count,
                )
                graph.nodes.append(node)
                nodes_by_id[node.id] = node
                visited.add(node.id)

            for parent in parents:
                rows, totals = results[parent]
                for row in rows:
                    if row.event.id in selected_ids:
                        graph.edges.append(self._edge(parent, row))
                if totals.transition_count > top_n:
                    self._add_truncation(graph, nodes_by_id[parent], rows, totals, level)

            logger.debug(
                "Level %d: %d parents, %d candidates, %d selected",
                level,
                len(parents),
                len(candidates),
                len(selected),
            )

            if not selected:
                break
            parents = [c.event.id for c in selected]

        return graph

    def _fan_out(
        self, parents: list[str], top_n: int
    ) -> dict[str, tuple[list[TopTransition], TransitionTotals]]:
        """Query every parent and wait for all results before returning."""

        def query(parent: str) -> tuple[list[TopTransition], TransitionTotals]:
            return self._query_top(parent, top_n), self._query_totals(parent)

        workers = min(self._max_workers, len(parents))
        if workers <= 1:
            return {parent: query(parent) for parent in parents}

        with ThreadPoolExecutor(max_workers=workers) as executor:
            return dict(zip(parents, executor.map(query, parents)))

    def _edge(self, parent: str, row: TopTransition) -> GraphEdge:
        if self._direction == Direction.FORWARD:
            from_id, to_id = parent, row.event.id
        else:
            from_id, to_id = row.event.id, parent
        return GraphEdge(
            from_id=from_id,
            to_id=to_id,
            count=row.count,
            percentage=row.percentage,
            avg_duration_ms=row.avg_duration_ms,
        )

    def _add_truncation(
        self,
        graph: TransitionGraph,
        parent: GraphNode,
        rows: list[TopTransition],
        totals: TransitionTotals,
        level: int,
    ) -> None:
        """Add the "+N more" node and edge for transitions cut by top_n."""
        hidden = totals.transition_count - len(rows)
        hidden_count = max(0, totals.total_count - sum(r.count for r in rows))
        parent.exits = hidden_count

        aggregate_id = f"{parent.id}:more:{level}"
        graph.nodes.append(
            GraphNode(
                id=aggregate_id,
                key=f"+{hidden} more",
                level=level,
                count=hidden_count,
                is_aggregate=True,
            )
        )

        percentage = None
        if self._direction == Direction.FORWARD:
            from_id, to_id = parent.id, aggregate_id
            if totals.total_count:
                percentage = hidden_count / totals.total_count * 100
        else:
            from_id, to_id = aggregate_id, parent.id
        graph.edges.append(
            GraphEdge(
                from_id=from_id,
                to_id=to_id,
                count=hidden_count,
                percentage=percentage,
                is_aggregate=True,
            )
        )

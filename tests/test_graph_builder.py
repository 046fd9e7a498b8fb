# ==============================================================================
# Tests for TransitionGraphBuilder
# ==============================================================================
"""
Tests for the bounded breadth-first transition graph.

The builder is exercised against an in-memory edge table exposed through
the same (query_top, query_totals) callables the service passes in, plus a
few end-to-end cases through TransitionService.build_transition_graph().
"""

from unittest.mock import MagicMock

import pytest

from apptales.core.exceptions import (
    EventIdentityNotFoundError,
    GraphBoundsError,
    ProjectNotFoundError,
)
from apptales.core.graph_builder import TransitionGraphBuilder
from apptales.core.models import (
    Direction,
    EventRef,
    TopTransition,
    TransitionTotals,
)


class EdgeTable:
    """(from, to) -> count, queried like the transition store."""

    def __init__(self, edges: dict[tuple[str, str], int], direction: Direction = Direction.FORWARD):
        self.edges = edges
        self.direction = direction

    def _matching(self, event_id):
        for (src, dst), count in self.edges.items():
            anchor, other = (src, dst) if self.direction == Direction.FORWARD else (dst, src)
            if anchor == event_id:
                yield other, count

    def top(self, event_id: str, limit: int) -> list[TopTransition]:
        rows = sorted(self._matching(event_id), key=lambda r: (-r[1], r[0].lower(), r[0]))
        total = sum(c for _, c in self._matching(event_id)) or 1
        return [
            TopTransition(
                event=EventRef(id=other, key=other.lower()),
                count=count,
                percentage=count / total * 100,
                avg_duration_ms=1000,
                direction=self.direction,
            )
            for other, count in rows[:limit]
        ]

    def totals(self, event_id: str) -> TransitionTotals:
        rows = list(self._matching(event_id))
        return TransitionTotals(transition_count=len(rows), total_count=sum(c for _, c in rows))

    def builder(self, **kwargs) -> TransitionGraphBuilder:
        return TransitionGraphBuilder(self.top, self.totals, direction=self.direction, **kwargs)


ANCHOR = EventRef(id="A", key="a")


def node(graph, node_id):
    return next(n for n in graph.nodes if n.id == node_id)


def edge_set(graph):
    return {(e.from_id, e.to_id, e.count) for e in graph.edges}


# ==============================================================================
# Bounds
# ==============================================================================


class TestBounds:
    """Tests for top_n/depth validation."""

    @pytest.mark.parametrize("top_n,depth", [(0, 1), (21, 1), (5, 0), (5, 6), (-1, 3)])
    def test_out_of_range(self, top_n, depth):
        builder = EdgeTable({}).builder()
        with pytest.raises(GraphBoundsError):
            builder.build(ANCHOR, top_n, depth)

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            EdgeTable({}).builder().validate(0, 1)

    @pytest.mark.parametrize("top_n,depth", [(1, 1), (20, 5)])
    def test_limits_are_inclusive(self, top_n, depth):
        EdgeTable({}).builder().validate(top_n, depth)

    def test_custom_limits(self):
        builder = EdgeTable({}).builder(max_top_n=3, max_depth=2)
        with pytest.raises(GraphBoundsError):
            builder.validate(4, 1)
        with pytest.raises(GraphBoundsError):
            builder.validate(1, 3)


# ==============================================================================
# Traversal
# ==============================================================================


class TestTraversal:
    """Tests for level construction."""

    def test_fan_in_merges_counts(self):
        """Two parents reaching X merge into one node with one edge per parent."""
        table = EdgeTable({("A", "P1"): 1, ("A", "P2"): 1, ("P1", "X"): 2, ("P2", "X"): 3})

        graph = table.builder().build(ANCHOR, top_n=5, depth=2)

        assert [n.id for n in graph.nodes_at_level(1)] == ["P1", "P2"]
        x = node(graph, "X")
        assert x.level == 2
        assert x.count == 5
        assert {("P1", "X", 2), ("P2", "X", 3)} <= edge_set(graph)

    def test_anchor_only_at_level_zero(self):
        table = EdgeTable({("A", "B"): 4})

        graph = table.builder().build(ANCHOR, top_n=5, depth=1)

        level0 = graph.nodes_at_level(0)
        assert len(level0) == 1
        assert level0[0].id == "A"
        assert level0[0].count == 4

    def test_level_keeps_global_top_n(self):
        table = EdgeTable(
            {("A", "B"): 5, ("A", "C"): 4, ("B", "D"): 1, ("C", "E"): 3, ("C", "F"): 2}
        )

        graph = table.builder().build(ANCHOR, top_n=2, depth=2)

        assert {n.id for n in graph.nodes_at_level(2)} == {"E", "F"}
        assert ("B", "D", 1) not in edge_set(graph)
        assert {("C", "E", 3), ("C", "F", 2)} <= edge_set(graph)

    def test_level_ties_break_by_key(self):
        table = EdgeTable({("A", "C"): 1, ("A", "B"): 1, ("A", "D"): 1})

        graph = table.builder().build(ANCHOR, top_n=3, depth=1)

        assert [n.id for n in graph.nodes_at_level(1)] == ["B", "C", "D"]

    def test_cycles_do_not_revisit(self):
        table = EdgeTable({("A", "B"): 5, ("B", "A"): 5, ("B", "C"): 1, ("C", "B"): 2})

        graph = table.builder().build(ANCHOR, top_n=5, depth=5)

        ids = [n.id for n in graph.nodes]
        assert len(ids) == len(set(ids))
        assert node(graph, "B").level == 1
        assert node(graph, "C").level == 2
        assert ("B", "A", 5) not in edge_set(graph)

    def test_stops_when_level_is_empty(self):
        table = EdgeTable({("A", "B"): 1})
        query_top = MagicMock(side_effect=table.top)
        builder = TransitionGraphBuilder(query_top, table.totals, max_workers=1)

        graph = builder.build(ANCHOR, top_n=5, depth=5)

        assert max(n.level for n in graph.nodes) == 1
        assert query_top.call_count == 2

    def test_anchor_without_transitions(self):
        graph = EdgeTable({}).builder().build(ANCHOR, top_n=5, depth=3)

        assert [n.id for n in graph.nodes] == ["A"]
        assert graph.edges == []

    def test_one_query_per_parent(self):
        table = EdgeTable({("A", "B"): 2, ("A", "C"): 1, ("B", "D"): 1, ("C", "D"): 1})
        query_top = MagicMock(side_effect=table.top)
        builder = TransitionGraphBuilder(query_top, table.totals, max_workers=4)

        builder.build(ANCHOR, top_n=5, depth=2)

        queried = sorted(call.args[0] for call in query_top.call_args_list)
        assert queried == ["A", "B", "C"]

    def test_backward_edges_point_in_transition_direction(self):
        table = EdgeTable({("B", "A"): 3, ("C", "A"): 1, ("D", "B"): 2}, Direction.BACKWARD)

        graph = table.builder().build(ANCHOR, top_n=5, depth=2)

        assert graph.direction == Direction.BACKWARD
        assert edge_set(graph) == {("B", "A", 3), ("C", "A", 1), ("D", "B", 2)}
        assert node(graph, "D").level == 2


# ==============================================================================
# "+N more" aggregation
# ==============================================================================


class TestTruncation:
    """Tests for aggregate nodes built from parent totals."""

    def table(self):
        return EdgeTable({("A", "B1"): 4, ("A", "B2"): 3, ("A", "B3"): 2, ("A", "B4"): 1})

    def test_aggregate_node_and_edge(self):
        graph = self.table().builder().build(ANCHOR, top_n=2, depth=1)

        more = node(graph, "A:more:1")
        assert more.is_aggregate
        assert more.key == "+2 more"
        assert more.count == 3
        assert more.level == 1

        edge = next(e for e in graph.edges if e.is_aggregate)
        assert (edge.from_id, edge.to_id, edge.count) == ("A", "A:more:1", 3)
        assert edge.percentage == pytest.approx(30.0)

    def test_parent_exits(self):
        graph = self.table().builder().build(ANCHOR, top_n=2, depth=1)
        assert node(graph, "A").exits == 3

    def test_no_aggregate_when_all_shown(self):
        graph = self.table().builder().build(ANCHOR, top_n=4, depth=1)

        assert not any(n.is_aggregate for n in graph.nodes)
        assert node(graph, "A").exits is None

    def test_backward_aggregate_points_at_parent(self):
        table = EdgeTable({("B", "A"): 3, ("C", "A"): 2, ("D", "A"): 1}, Direction.BACKWARD)

        graph = table.builder().build(ANCHOR, top_n=1, depth=1)

        edge = next(e for e in graph.edges if e.is_aggregate)
        assert (edge.from_id, edge.to_id, edge.count) == ("A:more:1", "A", 3)
        assert edge.percentage is None

    def test_to_dict_uses_camel_case(self):
        graph = self.table().builder().build(ANCHOR, top_n=2, depth=1)

        data = graph.to_dict()

        assert data["anchor"] == {"id": "A", "key": "a"}
        assert data["direction"] == "forward"
        aggregate_edge = next(e for e in data["edges"] if e["isAggregate"])
        assert aggregate_edge["from"] == "A"
        assert aggregate_edge["to"] == "A:more:1"
        plain = next(n for n in data["nodes"] if n["id"] == "B1")
        assert "exits" not in plain
        assert plain["isAggregate"] is False


# ==============================================================================
# Service integration
# ==============================================================================


class TestBuildTransitionGraph:
    """Tests for TransitionService.build_transition_graph()."""

    def test_computes_lazily(self, service, identities, seed_session):
        seed_session("p1", [("A", 0), ("B", 1), ("C", 2)])
        seed_session("p1", [("A", 0), ("C", 1)])
        assert not service.has_transitions("p1")

        graph = service.build_transition_graph("p1", "A", top_n=5, depth=2)

        assert service.has_transitions("p1")
        assert {n.id for n in graph.nodes_at_level(1)} == {"B", "C"}
        assert graph.anchor.key == "page_view:/a"

    def test_defaults_from_settings(self, service, settings, identities, seed_session):
        settings.default_depth = 1
        seed_session("p1", [("A", 0), ("B", 1), ("C", 2)])

        graph = service.build_transition_graph("p1", "A")

        assert max(n.level for n in graph.nodes) == 1

    def test_backward(self, service, identities, seed_session):
        seed_session("p1", [("B", 0), ("A", 1)])
        seed_session("p1", [("C", 0), ("B", 1), ("A", 2)])

        graph = service.build_transition_graph("p1", "A", Direction.BACKWARD, top_n=5, depth=2)

        assert ("B", "A", 2) in edge_set(graph)
        assert ("C", "B", 1) in edge_set(graph)

    def test_bounds_checked_first(self, service):
        with pytest.raises(GraphBoundsError):
            service.build_transition_graph("missing", "A", depth=6)

    def test_unknown_project(self, service, identities):
        with pytest.raises(ProjectNotFoundError):
            service.build_transition_graph("missing", "A", top_n=5, depth=1)

    def test_unknown_anchor(self, service):
        with pytest.raises(EventIdentityNotFoundError):
            service.build_transition_graph("p1", "nope", top_n=5, depth=1)

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Tests for graph simplification passes and the cleanup engine.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest

from ilesta.assembly_core.data_structures import node_from_strand
from ilesta.assembly_core.graph_simplification_module import (
    GraphSimplificationEngine,
    pop_bubbles,
    reduce_transitive_edges,
    remove_short_edges,
    trim_tips,
)


def node(graph, name, strand='+'):
    return node_from_strand(graph.reads.id_of(name), strand)


def reads(*names, length=10000):
    return [(n, length) for n in names]


def arc(a, b, ext=6000, support=3, overlap=4000):
    return (a, '+', b, '+', ext, ext, support, overlap)


class TestTransitiveReduction:
    """Test removal of arcs implied by two-arc chains."""

    @pytest.fixture
    def triangle(self, graph_factory):
        return graph_factory(reads('A', 'B', 'C'), [
            arc('A', 'B', ext=3000, overlap=7000),
            arc('B', 'C', ext=3000, overlap=7000),
            arc('A', 'C', ext=6000, overlap=4000),
        ])

    def test_removes_implied_arc(self, triangle):
        assert reduce_transitive_edges(triangle, fuzz=10) == 1
        assert not triangle.has_edge(node(triangle, 'A'), node(triangle, 'C'))
        assert not triangle.has_edge(node(triangle, 'C', '-'), node(triangle, 'A', '-'))
        assert triangle.has_edge(node(triangle, 'A'), node(triangle, 'B'))
        triangle.check_invariants()

    def test_idempotent(self, triangle):
        reduce_transitive_edges(triangle, fuzz=10)
        before = triangle.edge_signature()
        assert reduce_transitive_edges(triangle, fuzz=10) == 0
        assert triangle.edge_signature() == before

    def test_fuzz_bounds_length_mismatch(self, graph_factory):
        graph = graph_factory(reads('A', 'B', 'C'), [
            arc('A', 'B', ext=3000),
            arc('B', 'C', ext=3000),
            arc('A', 'C', ext=6500),
        ])
        assert reduce_transitive_edges(graph, fuzz=10) == 0
        assert reduce_transitive_edges(graph, fuzz=500) == 1


class TestTipTrimming:
    """Test removal of short dead-end chains."""

    def test_trims_tip_into_junction(self, graph_factory):
        graph = graph_factory(reads('P', 'A', 'B', 'C', 'T'), [
            arc('P', 'A'), arc('A', 'B'), arc('B', 'C'), arc('T', 'B'),
        ])
        assert trim_tips(graph, max_tip_len=1) == 1
        assert 'T' not in {graph.reads.name_of(r) for r in graph.read_ids()}
        assert graph.n_reads == 4
        graph.check_invariants()

    def test_long_branch_kept(self, graph_factory):
        graph = graph_factory(reads('P', 'A', 'B', 'C', 'T'), [
            arc('P', 'A'), arc('A', 'B'), arc('B', 'C'), arc('T', 'B'),
        ])
        trim_tips(graph, max_tip_len=1)
        assert graph.has_edge(node(graph, 'P'), node(graph, 'A'))

    def test_never_empties_a_linear_component(self, graph_factory):
        graph = graph_factory(reads('A', 'B'), [arc('A', 'B')])
        assert trim_tips(graph, max_tip_len=4) == 0
        assert graph.n_reads == 2

    def test_sibling_tips_use_live_degrees(self, graph_factory):
        """Of two tips meeting at one node, only the first is cut."""
        graph = graph_factory(reads('T1', 'T2', 'B', 'C'), [
            arc('T1', 'B'), arc('T2', 'B'), arc('B', 'C'),
        ])
        assert trim_tips(graph, max_tip_len=2) == 1
        assert graph.n_reads == 3
        assert graph.in_degree(node(graph, 'B')) == 1

    def test_zero_length_disables(self, graph_factory):
        graph = graph_factory(reads('T1', 'T2', 'B'), [arc('T1', 'B'), arc('T2', 'B')])
        assert trim_tips(graph, max_tip_len=0) == 0


class TestBubblePopping:
    """Test support-based bubble resolution."""

    def bubble(self, graph_factory, best, weak):
        """S -> A -> T and S -> B -> T with per-arc supports."""
        return graph_factory(reads('S', 'A', 'B', 'T'), [
            arc('S', 'A', support=best[0]), arc('A', 'T', support=best[1]),
            arc('S', 'B', support=weak[0]), arc('B', 'T', support=weak[1]),
        ])

    def test_clear_winner_popped(self, graph_factory):
        graph = self.bubble(graph_factory, best=(5, 5), weak=(2, 1))
        counts = pop_bubbles(graph, max_bubble_length=100, min_support_ratio=1.1)

        assert counts.popped == 1
        assert counts.reads_removed == 1
        assert not graph.has_node(node(graph, 'B'))
        assert graph.has_edge(node(graph, 'S'), node(graph, 'A'))
        graph.check_invariants()

    def test_narrow_margin_resolves_at_ratio(self, graph_factory):
        """10 vs 9 clears a 1.1 ratio."""
        graph = self.bubble(graph_factory, best=(5, 5), weak=(5, 4))
        counts = pop_bubbles(graph, max_bubble_length=100, min_support_ratio=1.1)
        assert counts.popped == 1
        assert not graph.has_node(node(graph, 'B'))

    def test_tie_left_unresolved(self, graph_factory):
        graph = self.bubble(graph_factory, best=(5, 5), weak=(5, 5))
        before = graph.edge_signature()
        counts = pop_bubbles(graph, max_bubble_length=100, min_support_ratio=1.1)

        assert counts.popped == 0
        assert counts.unresolved >= 1
        assert graph.edge_signature() == before

    def test_ratio_not_met(self, graph_factory):
        graph = self.bubble(graph_factory, best=(5, 5), weak=(5, 3))
        counts = pop_bubbles(graph, max_bubble_length=100, min_support_ratio=1.5)
        assert counts.popped == 0
        assert graph.has_node(node(graph, 'B'))

    def test_branch_length_limit(self, graph_factory):
        graph = self.bubble(graph_factory, best=(5, 5), weak=(2, 1))
        counts = pop_bubbles(graph, max_bubble_length=0, min_support_ratio=1.1)
        assert counts.popped == 0

    def test_direct_arc_branch_removed(self, graph_factory):
        graph = graph_factory(reads('S', 'A', 'T'), [
            arc('S', 'A', support=5), arc('A', 'T', support=5),
            arc('S', 'T', ext=9000, support=1, overlap=1000),
        ])
        counts = pop_bubbles(graph, max_bubble_length=100, min_support_ratio=1.1)

        assert counts.edges_removed == 1
        assert not graph.has_edge(node(graph, 'S'), node(graph, 'T'))
        assert graph.n_reads == 3


class TestShortEdges:
    """Test pruning of weak overlaps at branch points."""

    def test_short_arc_pruned(self, graph_factory):
        graph = graph_factory(reads('U', 'V1', 'V2', 'W'), [
            arc('U', 'V1', overlap=5000),
            arc('U', 'V2', overlap=1000),
            arc('W', 'V2', overlap=4500),
        ])
        assert remove_short_edges(graph, short_edge_ratio=0.8) == 1
        assert not graph.has_edge(node(graph, 'U'), node(graph, 'V2'))
        assert graph.has_edge(node(graph, 'W'), node(graph, 'V2'))
        graph.check_invariants()

    def test_short_against_target_in_arcs(self, graph_factory):
        """An arc that is long for its source but short for its target is pruned."""
        graph = graph_factory(reads('A', 'B', 'V', 'W'), [
            arc('A', 'V', overlap=8000),
            arc('B', 'V', overlap=2000),
            arc('B', 'W', overlap=2400),
        ])
        v = node(graph, 'V')
        assert [e.overlap_len for e in graph.in_edges(v)] == [8000, 2000]

        assert remove_short_edges(graph, short_edge_ratio=0.8) == 1
        assert not graph.has_edge(node(graph, 'B'), v)
        assert graph.has_edge(node(graph, 'A'), v)
        assert graph.has_edge(node(graph, 'B'), node(graph, 'W'))
        graph.check_invariants()

    def test_only_in_arc_kept(self, graph_factory):
        """A short arc that is its target's only way in survives."""
        graph = graph_factory(reads('U', 'V1', 'V2'), [
            arc('U', 'V1', overlap=5000),
            arc('U', 'V2', overlap=1000),
        ])
        assert remove_short_edges(graph, short_edge_ratio=0.8) == 0
        assert graph.has_edge(node(graph, 'U'), node(graph, 'V2'))


class TestSimplificationEngine:
    """Test iterated cleanup."""

    def test_linear_graph_converges_immediately(self, graph_factory):
        graph = graph_factory(reads('A', 'B', 'C'), [arc('A', 'B'), arc('B', 'C')])
        result = GraphSimplificationEngine(cleanup_iterations=3).simplify(graph)

        assert result.converged
        assert len(result.rounds) == 1
        assert result.rounds[0].total_removed == 0
        assert graph.n_edges == 4

    def test_stops_after_quiet_round(self, graph_factory):
        graph = graph_factory(reads('A', 'B', 'C'), [
            arc('A', 'B', ext=3000, overlap=7000),
            arc('B', 'C', ext=3000, overlap=7000),
            arc('A', 'C', ext=6000, overlap=4000),
        ])
        result = GraphSimplificationEngine(cleanup_iterations=5).simplify(graph)

        assert result.converged
        assert [r.transitive_edges for r in result.rounds] == [1, 0]
        assert result.rounds[0].to_dict()['iteration'] == 1

    def test_iteration_bound(self, graph_factory):
        graph = graph_factory(reads('A', 'B', 'C'), [
            arc('A', 'B', ext=3000, overlap=7000),
            arc('B', 'C', ext=3000, overlap=7000),
            arc('A', 'C', ext=6000, overlap=4000),
        ])
        result = GraphSimplificationEngine(cleanup_iterations=1).simplify(graph)

        assert not result.converged
        assert len(result.rounds) == 1
        assert result.graph is graph

# Ilesta v0.1.0
# Any usage is subject to this software's license.

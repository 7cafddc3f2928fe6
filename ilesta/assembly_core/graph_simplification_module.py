#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Graph Simplification — transitive reduction, tip trimming, bubble popping
and short-edge removal, iterated over a shared overlap graph.

Each pass is a plain function taking the graph it mutates, so passes can be
run and tested on their own. ``GraphSimplificationEngine`` runs them in
fixed order for a bounded number of rounds, stopping early once a round
removes nothing.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Set, Tuple
import logging

from .data_structures import complement, node_read
from .overlap_graph_module import OverlapGraph

logger = logging.getLogger(__name__)

# Absolute slack when comparing aggregate path supports.
SUPPORT_TOLERANCE = 1e-9


# ============================================================================
#                           RESULT TYPES
# ============================================================================

@dataclass
class BubbleCounts:
    """Outcome of one bubble-popping pass."""
    popped: int = 0
    unresolved: int = 0
    reads_removed: int = 0
    edges_removed: int = 0


@dataclass
class SimplificationRound:
    """Removals made by each pass in one cleanup round."""
    iteration: int
    transitive_edges: int = 0
    tip_reads: int = 0
    bubbles_popped: int = 0
    bubbles_unresolved: int = 0
    bubble_reads: int = 0
    bubble_edges: int = 0
    short_edges: int = 0

    @property
    def total_removed(self) -> int:
        return (self.transitive_edges + self.tip_reads + self.bubble_reads
                + self.bubble_edges + self.short_edges)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class SimplificationResult:
    """
    Result of iterated graph simplification.

    Attributes:
        graph: The simplified graph (same object that was passed in)
        rounds: Per-round removal counts
        converged: True if a round removed nothing
    """
    graph: OverlapGraph
    rounds: List[SimplificationRound] = field(default_factory=list)
    converged: bool = False


@dataclass
class _Branch:
    first: int
    internal: List[int]
    support: int


# ============================================================================
#                           PASSES
# ============================================================================

def reduce_transitive_edges(graph: OverlapGraph, fuzz: int) -> int:
    """
    Remove arcs implied by a shorter two-arc chain.

    ``u -> w`` (extension ℓ) is transitive if some ``u -> v`` with a strictly
    shorter extension and an arc ``v -> w`` exist and the chain length is
    within ``fuzz`` of ℓ. All transitive arcs are found on the unmodified
    graph before any is removed, so running the pass again removes nothing.

    Args:
        graph: Graph to reduce in place
        fuzz: Allowed length discrepancy in bases

    Returns:
        Number of arc pairs (arc + mirror) removed
    """
    transitive: Set[Tuple[int, int]] = set()
    for u in graph.nodes():
        out = graph.out_edges(u)
        if len(out) < 2:
            continue
        for i, uw in enumerate(out):
            for uv in out[:i]:
                if uv.ext_len >= uw.ext_len:
                    continue
                vw = graph.get_edge(uv.target, uw.target)
                if vw is None:
                    continue
                if abs(uv.ext_len + vw.ext_len - uw.ext_len) <= fuzz:
                    transitive.add((u, uw.target))
                    break

    removed = 0
    for u, w in sorted(transitive):
        if graph.has_edge(u, w):
            graph.remove_edge(u, w)
            removed += 1
    logger.debug(f"Transitive reduction removed {removed} arc pairs")
    return removed


def trim_tips(graph: OverlapGraph, max_tip_len: int) -> int:
    """
    Remove short dead-end chains hanging off a merge point.

    From every node without predecessors, follow single out-arcs. If within
    ``max_tip_len`` nodes the walk reaches a node with two or more
    predecessors, the walked reads are removed. Walks that run into a dead
    end, a branch, a cycle or the length limit are kept. Degrees are read
    from the live graph, so of two tips meeting at the same node only the
    first is cut.

    Args:
        graph: Graph to trim in place
        max_tip_len: Maximum tip length in nodes

    Returns:
        Number of reads removed
    """
    if max_tip_len < 1:
        return 0

    removed_reads = 0
    for start in graph.nodes():
        if not graph.has_node(start) or graph.in_degree(start) != 0:
            continue

        chain = [start]
        chain_reads = {node_read(start)}
        junction = None
        cur = start
        while graph.out_degree(cur) == 1:
            nxt = graph.successors(cur)[0]
            if graph.in_degree(nxt) >= 2:
                junction = nxt
                break
            if node_read(nxt) in chain_reads:
                break
            chain.append(nxt)
            chain_reads.add(node_read(nxt))
            if len(chain) > max_tip_len:
                break
            cur = nxt

        if junction is None or len(chain) > max_tip_len:
            continue
        if node_read(junction) in chain_reads:
            continue

        logger.debug(
            f"Trimming tip of {len(chain)} node(s) from {graph.node_name(start)} "
            f"into {graph.node_name(junction)}"
        )
        for read_id in sorted(chain_reads):
            graph.remove_read(read_id)
            removed_reads += 1

    return removed_reads


def _walk_branch(
    graph: OverlapGraph,
    source: int,
    first: int,
    support: int,
    max_bubble_length: int
):
    """
    Follow one out-arc of ``source`` through simple nodes.

    Returns:
        (sink, _Branch), or None when the branch is not part of a bubble
    """
    internal: List[int] = []
    seen_reads = {node_read(source)}
    cur = first
    while graph.in_degree(cur) == 1:
        if (graph.out_degree(cur) != 1
                or len(internal) >= max_bubble_length
                or node_read(cur) in seen_reads):
            return None
        internal.append(cur)
        seen_reads.add(node_read(cur))
        edge = graph.out_edges(cur)[0]
        support += edge.support
        cur = edge.target
    if node_read(cur) in seen_reads:
        return None
    return cur, _Branch(first=first, internal=internal, support=support)


def _branch_intact(graph: OverlapGraph, source: int, branch: _Branch, sink: int) -> bool:
    path = [source] + branch.internal + [sink]
    return all(graph.has_edge(a, b) for a, b in zip(path, path[1:]))


def pop_bubbles(
    graph: OverlapGraph,
    max_bubble_length: int,
    min_support_ratio: float
) -> BubbleCounts:
    """
    Resolve bubbles by aggregate support.

    A bubble is two or more branches leaving the same node and meeting again
    at the first node with several predecessors, each branch having at most
    ``max_bubble_length`` internal nodes. Branch support is the sum of its
    arc supports. The best branch is kept and the others are removed when
    ``best >= min_support_ratio * second_best`` and ``best > second_best``;
    otherwise the bubble is left for a later round.

    Args:
        graph: Graph to modify in place
        max_bubble_length: Maximum internal nodes per branch
        min_support_ratio: Required support margin of the best branch

    Returns:
        BubbleCounts
    """
    counts = BubbleCounts()
    for source in graph.nodes():
        if not graph.has_node(source) or graph.out_degree(source) < 2:
            continue

        by_sink: Dict[int, List[_Branch]] = {}
        for edge in graph.out_edges(source):
            walked = _walk_branch(graph, source, edge.target, edge.support, max_bubble_length)
            if walked is None:
                continue
            sink, branch = walked
            by_sink.setdefault(sink, []).append(branch)

        for sink in sorted(by_sink):
            branches = by_sink[sink]
            if len(branches) < 2:
                continue
            branches.sort(key=lambda b: (-b.support, len(b.internal), b.internal, b.first))
            best, second = branches[0], branches[1]

            resolved = (best.support > second.support
                        and best.support + SUPPORT_TOLERANCE >= min_support_ratio * second.support)
            if not resolved:
                counts.unresolved += 1
                logger.debug(
                    f"Bubble {graph.node_name(source)} -> {graph.node_name(sink)} unresolved "
                    f"(support {best.support} vs {second.support})"
                )
                continue
            if not all(_branch_intact(graph, source, b, sink) for b in branches):
                continue

            keep_reads = {node_read(n) for n in best.internal}
            keep_reads.update((node_read(source), node_read(sink)))
            for loser in branches[1:]:
                if loser.internal:
                    for read_id in sorted({node_read(n) for n in loser.internal} - keep_reads):
                        if graph.has_node(read_id << 1):
                            graph.remove_read(read_id)
                            counts.reads_removed += 1
                elif graph.has_edge(source, sink):
                    graph.remove_edge(source, sink)
                    counts.edges_removed += 1
            counts.popped += 1
            logger.debug(
                f"Popped bubble {graph.node_name(source)} -> {graph.node_name(sink)} "
                f"keeping support {best.support} over {second.support}"
            )

    return counts


def remove_short_edges(graph: OverlapGraph, short_edge_ratio: float) -> int:
    """
    Prune arcs with a much shorter overlap than their neighbours.

    An arc is short when its overlap is below ``short_edge_ratio`` times the
    longest overlap among the out-arcs of its source, or among the in-arcs
    of its target. A short arc is only removed while its source keeps
    another out-arc and its target keeps another in-arc.

    Returns:
        Number of arc pairs removed
    """
    candidates = {}
    for node in graph.nodes():
        for arcs in (graph.out_edges(node), graph.in_edges(node)):
            if len(arcs) < 2:
                continue
            threshold = max(e.overlap_len for e in arcs) * short_edge_ratio
            for edge in arcs:
                if edge.overlap_len < threshold:
                    candidates[(edge.source, edge.target)] = edge

    removed = 0
    for edge in sorted(candidates.values(), key=lambda e: (e.overlap_len, e.source, e.target)):
        u, v = edge.source, edge.target
        if not graph.has_edge(u, v):
            continue
        if graph.out_degree(u) < 2 or graph.in_degree(v) < 2:
            continue
        graph.remove_edge(u, v)
        removed += 1
    logger.debug(f"Short-edge removal pruned {removed} arc pairs")
    return removed


# ============================================================================
#                           ENGINE
# ============================================================================

class GraphSimplificationEngine:
    """
    Iterated overlap graph cleanup.

    Pass order per round: transitive reduction, tip trimming, bubble
    popping, short-edge removal. The graph invariants are checked after every
    pass; a violation raises GraphInvariantError and aborts the run.
    """

    def __init__(
        self,
        fuzz: int = 10,
        max_tip_len: int = 4,
        max_bubble_length: int = 100,
        min_support_ratio: float = 1.1,
        short_edge_ratio: float = 0.8,
        cleanup_iterations: int = 2
    ):
        """
        Initialize simplification engine.

        Args:
            fuzz: Length tolerance for transitive reduction (bases)
            max_tip_len: Maximum tip length (nodes)
            max_bubble_length: Maximum bubble branch length (nodes)
            min_support_ratio: Support margin to pop a bubble
            short_edge_ratio: Overlap fraction below which arcs are short
            cleanup_iterations: Maximum number of rounds
        """
        self.fuzz = fuzz
        self.max_tip_len = max_tip_len
        self.max_bubble_length = max_bubble_length
        self.min_support_ratio = min_support_ratio
        self.short_edge_ratio = short_edge_ratio
        self.cleanup_iterations = cleanup_iterations
        self.logger = logging.getLogger(f"{__name__}.GraphSimplificationEngine")

    def simplify(self, graph: OverlapGraph) -> SimplificationResult:
        """
        Simplify ``graph`` in place.

        Args:
            graph: Overlap graph (exclusively owned for the duration)

        Returns:
            SimplificationResult with per-round counts
        """
        result = SimplificationResult(graph=graph)
        graph.check_invariants()
        self.logger.info(
            f"Starting graph cleanup: {graph.n_nodes:,} nodes, {graph.n_edges:,} arcs"
        )

        for iteration in range(1, self.cleanup_iterations + 1):
            self.logger.info(f"=== Cleanup iteration {iteration} ===")
            stats = SimplificationRound(iteration=iteration)

            stats.transitive_edges = reduce_transitive_edges(graph, self.fuzz)
            graph.check_invariants()
            self.logger.info(f"  Transitive reduction: removed {stats.transitive_edges:,} arc pairs")

            stats.tip_reads = trim_tips(graph, self.max_tip_len)
            graph.check_invariants()
            self.logger.info(f"  Tip trimming: removed {stats.tip_reads:,} reads")

            bubbles = pop_bubbles(graph, self.max_bubble_length, self.min_support_ratio)
            graph.check_invariants()
            stats.bubbles_popped = bubbles.popped
            stats.bubbles_unresolved = bubbles.unresolved
            stats.bubble_reads = bubbles.reads_removed
            stats.bubble_edges = bubbles.edges_removed
            self.logger.info(
                f"  Bubble popping: popped {bubbles.popped:,} "
                f"({bubbles.reads_removed:,} reads, {bubbles.edges_removed:,} arcs), "
                f"{bubbles.unresolved:,} unresolved"
            )

            stats.short_edges = remove_short_edges(graph, self.short_edge_ratio)
            graph.check_invariants()
            self.logger.info(f"  Short-edge removal: removed {stats.short_edges:,} arc pairs")

            result.rounds.append(stats)
            if stats.total_removed == 0:
                result.converged = True
                self.logger.info(f"Graph reached a fixed point after {iteration} iteration(s)")
                break

        self.logger.info(
            f"Graph cleanup complete: {graph.n_nodes:,} nodes, {graph.n_edges:,} arcs"
        )
        return result

# Ilesta v0.1.0
# Any usage is subject to this software's license.

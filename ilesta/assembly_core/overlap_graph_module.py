#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Overlap Graph — orientation-aware read-end graph and its builder.

The graph is an index-based arena: node ``2r`` is read ``r`` traversed
forward and node ``2r + 1`` its reverse complement. Only out-arcs are stored;
the in-arcs of ``v`` are the complements of the out-arcs of ``v ^ 1``, so an
arc and its mirror are always inserted and removed together.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .data_structures import (
    OverlapEdge,
    OverlapEntry,
    ReadIndex,
    complement,
    flip_strand,
    node_from_strand,
    node_read,
    node_strand,
)
from ..io.overlap_store import OverlapSet

logger = logging.getLogger(__name__)


class GraphInvariantError(Exception):
    """Internal graph consistency violated (missing mirror, dangling arc, ...)."""
    pass


# ============================================================================
#                           OVERLAP GRAPH
# ============================================================================

class OverlapGraph:
    """
    Directed overlap graph over oriented read ends.

    Attributes:
        reads: Read index (node ids derive from read ids)
        out_arcs: node -> {target node -> OverlapEdge}, present for every
            live node (possibly empty)
    """

    def __init__(self, reads: ReadIndex):
        self.reads = reads
        self.out_arcs: Dict[int, Dict[int, OverlapEdge]] = {}

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_read(self, read_id: int):
        """Create both oriented nodes of a read."""
        node = read_id << 1
        self.out_arcs.setdefault(node, {})
        self.out_arcs.setdefault(node | 1, {})

    def has_node(self, node: int) -> bool:
        return node in self.out_arcs

    def nodes(self) -> List[int]:
        """Live node ids in ascending order."""
        return sorted(self.out_arcs)

    def read_ids(self) -> List[int]:
        return sorted({node_read(n) for n in self.out_arcs})

    @property
    def n_nodes(self) -> int:
        return len(self.out_arcs)

    @property
    def n_reads(self) -> int:
        return len(self.out_arcs) // 2

    @property
    def n_edges(self) -> int:
        return sum(len(arcs) for arcs in self.out_arcs.values())

    def node_name(self, node: int) -> str:
        return f"{self.reads.name_of(node_read(node))}{node_strand(node)}"

    def read_length(self, node: int) -> int:
        return self.reads.length_of(node_read(node))

    # ------------------------------------------------------------------
    # Adjacency
    # ------------------------------------------------------------------

    def successors(self, node: int) -> List[int]:
        return sorted(self.out_arcs.get(node, {}))

    def predecessors(self, node: int) -> List[int]:
        return sorted(complement(w) for w in self.out_arcs.get(complement(node), {}))

    def out_degree(self, node: int) -> int:
        return len(self.out_arcs.get(node, {}))

    def in_degree(self, node: int) -> int:
        return len(self.out_arcs.get(complement(node), {}))

    def out_edges(self, node: int) -> List[OverlapEdge]:
        """Out-arcs of ``node`` sorted by extension length, then target."""
        return sorted(self.out_arcs.get(node, {}).values(), key=lambda e: (e.ext_len, e.target))

    def in_edges(self, node: int) -> List[OverlapEdge]:
        """Arcs ending at ``node`` (looked up through their mirrors)."""
        edges = []
        for mirror_target in sorted(self.out_arcs.get(complement(node), {})):
            edges.append(self.out_arcs[complement(mirror_target)][node])
        return edges

    def get_edge(self, source: int, target: int) -> Optional[OverlapEdge]:
        return self.out_arcs.get(source, {}).get(target)

    def has_edge(self, source: int, target: int) -> bool:
        return target in self.out_arcs.get(source, {})

    def edges(self) -> Iterator[OverlapEdge]:
        """All arcs, in (source, target) order."""
        for source in sorted(self.out_arcs):
            arcs = self.out_arcs[source]
            for target in sorted(arcs):
                yield arcs[target]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_edge_pair(self, forward: OverlapEdge, mirror: OverlapEdge):
        """
        Insert an arc and its mirror.

        Raises:
            GraphInvariantError: If the pair is not mirror-consistent, is a
                self-loop, or touches a missing node
        """
        if mirror.source != complement(forward.target) or mirror.target != complement(forward.source):
            raise GraphInvariantError(
                f"Arc {forward.source}->{forward.target} and "
                f"{mirror.source}->{mirror.target} are not mirrors"
            )
        if node_read(forward.source) == node_read(forward.target):
            raise GraphInvariantError(f"Self-loop on read {node_read(forward.source)}")
        for node in (forward.source, forward.target):
            if node not in self.out_arcs:
                raise GraphInvariantError(f"Arc references missing node {node}")
        self.out_arcs[forward.source][forward.target] = forward
        self.out_arcs[mirror.source][mirror.target] = mirror

    def remove_edge(self, source: int, target: int):
        """
        Remove ``source -> target`` and its mirror as one step.

        Raises:
            GraphInvariantError: If the arc exists without its mirror
        """
        arcs = self.out_arcs.get(source)
        if arcs is None or target not in arcs:
            raise GraphInvariantError(f"Cannot remove missing arc {source}->{target}")
        mirror_arcs = self.out_arcs.get(complement(target))
        if mirror_arcs is None or complement(source) not in mirror_arcs:
            raise GraphInvariantError(
                f"Arc {self.node_name(source)}->{self.node_name(target)} has no mirror"
            )
        del arcs[target]
        del mirror_arcs[complement(source)]

    def remove_read(self, read_id: int) -> int:
        """
        Remove both nodes of a read with every incident arc.

        Returns:
            Number of arcs removed (mirrors included)
        """
        node = read_id << 1
        removed = 0
        for n in (node, node | 1):
            if n not in self.out_arcs:
                continue
            for target in list(self.out_arcs[n]):
                self.remove_edge(n, target)
                removed += 2
        self.out_arcs.pop(node, None)
        self.out_arcs.pop(node | 1, None)
        return removed

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def check_invariants(self):
        """
        Verify the arena.

        Every arc must target a live node, join two different reads and have
        a mirror with the same support; both nodes of a read must be present
        together.

        Raises:
            GraphInvariantError: On the first violation found
        """
        for source in sorted(self.out_arcs):
            if complement(source) not in self.out_arcs:
                raise GraphInvariantError(f"Node {source} present without its complement")
            for target, edge in sorted(self.out_arcs[source].items()):
                if edge.source != source or edge.target != target:
                    raise GraphInvariantError(f"Arc {source}->{target} is stored under the wrong key")
                if target not in self.out_arcs:
                    raise GraphInvariantError(f"Dangling arc {source}->{target}")
                if node_read(source) == node_read(target):
                    raise GraphInvariantError(f"Self-loop arc on node {source}")
                mirror = self.out_arcs[complement(target)].get(complement(source))
                if mirror is None:
                    raise GraphInvariantError(
                        f"Arc {self.node_name(source)}->{self.node_name(target)} has no mirror"
                    )
                if mirror.support != edge.support:
                    raise GraphInvariantError(
                        f"Support mismatch on {self.node_name(source)}->{self.node_name(target)}: "
                        f"{edge.support} vs mirror {mirror.support}"
                    )

    def edge_signature(self) -> Set[Tuple[int, int, int, int]]:
        """(source, target, ext_len, support) of every arc, for comparisons."""
        return {(e.source, e.target, e.ext_len, e.support) for e in self.edges()}


# ============================================================================
#                           GRAPH BUILDER
# ============================================================================

def _collapse_key(entry: OverlapEntry, reads: ReadIndex) -> Tuple:
    """Ordering for multi-edge collapse (smaller wins)."""
    names = tuple(sorted((reads.name_of(entry.read_a), reads.name_of(entry.read_b))))
    return (-entry.support, -entry.overlap_len, names, entry.ext_len_a)


class OverlapGraphBuilder:
    """
    Build an OverlapGraph from filtered dovetail overlaps.

    Every non-contained read named by an overlap contributes its two nodes.
    Each overlap inserts one arc and its mirror. When several overlaps land
    on the same oriented node pair, the one with the highest support is kept
    (ties: longer overlap, lexicographically smaller read-name pair, shorter
    extension, first seen).
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.OverlapGraphBuilder")
        self.stats: Dict[str, int] = {}

    def build(
        self,
        reads: ReadIndex,
        entries: Iterable[OverlapEntry],
        contained: Optional[Set[int]] = None
    ) -> OverlapGraph:
        """
        Build the graph.

        Args:
            reads: Read index the entries refer to
            entries: Dovetail overlap entries
            contained: Read ids excluded from the layout

        Returns:
            OverlapGraph with mirror invariant verified

        Raises:
            GraphInvariantError: If the result is inconsistent
        """
        contained = contained or set()
        self.stats = {
            'entries': 0,
            'skipped_contained': 0,
            'skipped_self': 0,
            'collapsed_multi_edges': 0,
        }

        chosen: Dict[Tuple[int, int], OverlapEntry] = {}
        for entry in entries:
            self.stats['entries'] += 1
            if entry.read_a in contained or entry.read_b in contained:
                self.stats['skipped_contained'] += 1
                continue
            if entry.read_a == entry.read_b:
                self.stats['skipped_self'] += 1
                continue

            source = node_from_strand(entry.read_a, entry.strand_a)
            target = node_from_strand(entry.read_b, entry.strand_b)
            # The mirror of an arc lands on the same canonical pair.
            key = min((source, target), (complement(target), complement(source)))
            if key != (source, target):
                entry = OverlapEntry(
                    read_a=entry.read_b,
                    strand_a=flip_strand(entry.strand_b),
                    read_b=entry.read_a,
                    strand_b=flip_strand(entry.strand_a),
                    ext_len_a=entry.ext_len_b,
                    ext_len_b=entry.ext_len_a,
                    support=entry.support,
                    overlap_len=entry.overlap_len,
                    identity=entry.identity,
                )

            current = chosen.get(key)
            if current is None:
                chosen[key] = entry
                continue
            self.stats['collapsed_multi_edges'] += 1
            if _collapse_key(entry, reads) < _collapse_key(current, reads):
                chosen[key] = entry

        graph = OverlapGraph(reads)
        for entry in chosen.values():
            graph.add_read(entry.read_a)
            graph.add_read(entry.read_b)

        for (source, target), entry in sorted(chosen.items()):
            forward = OverlapEdge(
                source=source,
                target=target,
                ext_len=entry.ext_len_a,
                overlap_len=entry.overlap_len,
                support=entry.support,
                identity=entry.identity,
            )
            mirror = OverlapEdge(
                source=complement(target),
                target=complement(source),
                ext_len=entry.ext_len_b,
                overlap_len=entry.overlap_len,
                support=entry.support,
                identity=entry.identity,
            )
            graph.add_edge_pair(forward, mirror)

        graph.check_invariants()

        self.logger.info(
            f"Built overlap graph: {graph.n_reads:,} reads, {graph.n_nodes:,} nodes, "
            f"{graph.n_edges:,} arcs"
        )
        if self.stats['collapsed_multi_edges']:
            self.logger.info(f"  Collapsed {self.stats['collapsed_multi_edges']:,} multi-edges")
        return graph


def build_overlap_graph(overlaps: OverlapSet) -> OverlapGraph:
    """Build the overlap graph for a filtered overlap set."""
    return OverlapGraphBuilder().build(
        overlaps.reads, overlaps.entries, overlaps.contained_ids
    )

# Ilesta v0.1.0
# Any usage is subject to this software's license.

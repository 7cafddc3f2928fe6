#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Unitig Extraction — walks the simplified overlap graph into maximal
non-branching paths, lays out their reads and materializes sequences.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Set, Tuple

from .data_structures import Unitig, UnitigMember, complement, flip_strand, node_read, node_strand
from .overlap_graph_module import OverlapGraph
from ..io.io_core_module import oriented_sequence

logger = logging.getLogger(__name__)


@dataclass
class UnitigLink:
    """Surviving arc between the ends of two unitigs (GFA L line)."""
    from_name: str
    from_orient: str
    to_name: str
    to_orient: str
    overlap: int

    def key(self) -> Tuple[str, str, str, str]:
        return (self.from_name, self.from_orient, self.to_name, self.to_orient)

    def mirror_key(self) -> Tuple[str, str, str, str]:
        return (self.to_name, flip_strand(self.to_orient), self.from_name, flip_strand(self.from_orient))


def unitig_sequence(members: List[UnitigMember], sequences: Dict[str, str]) -> str:
    """Concatenate the trimmed, oriented spans of the member reads."""
    parts = []
    for member in members:
        seq = oriented_sequence(sequences[member.read_name], member.strand)
        parts.append(seq[member.trim_start:member.trim_end])
    return "".join(parts)


class UnitigExtractor:
    """
    Extract unitigs from a simplified overlap graph.

    A node starts a unitig unless it has exactly one predecessor and that
    predecessor has exactly one successor. Walks follow unambiguous arcs and
    mark each visited node together with its complement, so a unitig and
    its reverse complement are emitted once. Nodes left over afterwards lie
    on isolated cycles and are emitted as circular unitigs.
    """

    def __init__(self, threads: int = 1):
        self.threads = threads
        self.logger = logging.getLogger(f"{__name__}.UnitigExtractor")

    # ------------------------------------------------------------------
    # Path discovery
    # ------------------------------------------------------------------

    @staticmethod
    def is_unitig_start(graph: OverlapGraph, node: int) -> bool:
        if graph.in_degree(node) != 1:
            return True
        pred = graph.predecessors(node)[0]
        return graph.out_degree(pred) != 1

    @staticmethod
    def _walk(graph: OverlapGraph, start: int, visited: Set[int]) -> Tuple[List[int], bool]:
        path = [start]
        visited.add(start)
        visited.add(complement(start))
        cur = start
        while graph.out_degree(cur) == 1:
            nxt = graph.successors(cur)[0]
            if nxt == start:
                return path, graph.in_degree(start) == 1
            if graph.in_degree(nxt) != 1 or nxt in visited:
                break
            path.append(nxt)
            visited.add(nxt)
            visited.add(complement(nxt))
            cur = nxt
        return path, False

    def find_paths(self, graph: OverlapGraph) -> List[Tuple[List[int], bool]]:
        """
        Partition the graph's reads into maximal paths.

        Returns:
            List of (node path, is_circular)
        """
        visited: Set[int] = set()
        paths: List[Tuple[List[int], bool]] = []
        nodes = graph.nodes()

        for node in nodes:
            if node in visited or not self.is_unitig_start(graph, node):
                continue
            paths.append(self._walk(graph, node, visited))

        for node in nodes:
            if node in visited:
                continue
            paths.append(self._walk(graph, node, visited))

        return paths

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _layout(self, graph: OverlapGraph, path: List[int], circular: bool) -> List[UnitigMember]:
        members = []
        for i, node in enumerate(path):
            read_id = node_read(node)
            length = graph.reads.length_of(read_id)
            if i + 1 < len(path):
                trim_end = min(graph.get_edge(node, path[i + 1]).ext_len, length)
            elif circular:
                trim_end = min(graph.get_edge(node, path[0]).ext_len, length)
            else:
                trim_end = length
            members.append(UnitigMember(
                read_id=read_id,
                read_name=graph.reads.name_of(read_id),
                strand=node_strand(node),
                trim_start=0,
                trim_end=trim_end,
            ))
        return members

    def extract(self, graph: OverlapGraph) -> List[Unitig]:
        """
        Extract unitigs with read layouts (sequences not yet attached).

        Args:
            graph: Simplified overlap graph (read only)

        Returns:
            Unitigs numbered from 1, linear ones first
        """
        paths = self.find_paths(graph)
        # Stable sort: linear paths in discovery order, then cycles.
        paths.sort(key=lambda p: p[1])

        unitigs = []
        for i, (path, circular) in enumerate(paths, start=1):
            unitigs.append(Unitig(
                unitig_id=i,
                nodes=path,
                members=self._layout(graph, path, circular),
                circular=circular,
            ))

        n_circular = sum(1 for u in unitigs if u.circular)
        self.logger.info(
            f"Extracted {len(unitigs):,} unitigs ({n_circular:,} circular) "
            f"from {graph.n_reads:,} reads"
        )
        return unitigs

    # ------------------------------------------------------------------
    # Links between unitig ends
    # ------------------------------------------------------------------

    def find_links(self, graph: OverlapGraph, unitigs: List[Unitig]) -> List[UnitigLink]:
        """
        Collect arcs joining the end of one unitig to the start of another.

        Each link is reported once; its reverse-complement twin is dropped.
        """
        tails: Dict[int, Tuple[Unitig, str]] = {}
        heads: Dict[int, Tuple[Unitig, str]] = {}
        for unitig in unitigs:
            tails[unitig.end_node] = (unitig, '+')
            tails[complement(unitig.start_node)] = (unitig, '-')
            heads[unitig.start_node] = (unitig, '+')
            heads[complement(unitig.end_node)] = (unitig, '-')

        internal: Set[Tuple[int, int]] = set()
        for unitig in unitigs:
            for a, b in zip(unitig.nodes, unitig.nodes[1:]):
                internal.add((a, b))
                internal.add((complement(b), complement(a)))

        links: Dict[Tuple[str, str, str, str], UnitigLink] = {}
        for edge in graph.edges():
            if (edge.source, edge.target) in internal:
                continue
            tail = tails.get(edge.source)
            head = heads.get(edge.target)
            if tail is None or head is None:
                self.logger.debug(
                    f"Arc {graph.node_name(edge.source)}->{graph.node_name(edge.target)} "
                    f"does not join unitig ends"
                )
                continue
            link = UnitigLink(
                from_name=tail[0].name,
                from_orient=tail[1],
                to_name=head[0].name,
                to_orient=head[1],
                overlap=max(graph.read_length(edge.source) - edge.ext_len, 0),
            )
            canonical = min(link.key(), link.mirror_key())
            links.setdefault(canonical, link)

        return [links[k] for k in sorted(links)]

    # ------------------------------------------------------------------
    # Sequences
    # ------------------------------------------------------------------

    def materialize(self, unitigs: List[Unitig], sequences: Dict[str, str]):
        """
        Attach sequences to unitigs.

        Args:
            unitigs: Unitigs from :meth:`extract`
            sequences: Read name -> forward sequence for every member read
        """
        jobs = [
            (u.members, {m.read_name: sequences[m.read_name] for m in u.members})
            for u in unitigs
        ]
        if self.threads > 1 and len(unitigs) > 1:
            with ProcessPoolExecutor(max_workers=self.threads) as executor:
                results = list(executor.map(
                    unitig_sequence,
                    [members for members, _ in jobs],
                    [seqs for _, seqs in jobs],
                    chunksize=max(1, len(jobs) // (self.threads * 4)),
                ))
        else:
            results = [unitig_sequence(members, seqs) for members, seqs in jobs]

        for unitig, sequence in zip(unitigs, results):
            unitig.sequence = sequence

        total = sum(len(s) for s in results)
        self.logger.info(f"Materialized {len(unitigs):,} unitig sequences ({total:,} bp)")


def extract_unitigs(graph: OverlapGraph, threads: int = 1) -> List[Unitig]:
    """Extract unitigs from ``graph`` without attaching sequences."""
    return UnitigExtractor(threads=threads).extract(graph)

# Ilesta v0.1.0
# Any usage is subject to this software's license.

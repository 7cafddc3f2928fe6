#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Graph Analysis — structural diagnostics for overlap graphs: connected
components, degree distributions, compressible nodes, tip lengths and the
most branched nodes.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import Counter
from typing import Any, Dict, List, Tuple
import logging

import numpy as np

from ..assembly_core.data_structures import complement, node_read
from ..assembly_core.overlap_graph_module import OverlapGraph

logger = logging.getLogger(__name__)


def weakly_connected_components(graph: OverlapGraph) -> List[List[int]]:
    """
    Components of the graph ignoring arc direction.

    A read's two nodes always fall in the same component, so components are
    returned as sorted lists of read ids, largest first.
    """
    parent: Dict[int, int] = {r: r for r in graph.read_ids()}

    def find(x: int) -> int:
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    for edge in graph.edges():
        a, b = find(node_read(edge.source)), find(node_read(edge.target))
        if a != b:
            parent[max(a, b)] = min(a, b)

    groups: Dict[int, List[int]] = {}
    for read_id in parent:
        groups.setdefault(find(read_id), []).append(read_id)
    components = [sorted(members) for members in groups.values()]
    components.sort(key=lambda c: (-len(c), c[0]))
    return components


def component_sizes_sorted(graph: OverlapGraph) -> List[int]:
    """Component sizes (in reads), largest first."""
    return [len(c) for c in weakly_connected_components(graph)]


def analyze_degrees(graph: OverlapGraph) -> Tuple[Dict[int, int], Dict[int, int]]:
    """
    Degree histograms.

    Returns:
        (in-degree -> node count, out-degree -> node count)
    """
    in_hist = Counter(graph.in_degree(n) for n in graph.nodes())
    out_hist = Counter(graph.out_degree(n) for n in graph.nodes())
    return dict(sorted(in_hist.items())), dict(sorted(out_hist.items()))


def compressible_node_stats(graph: OverlapGraph) -> Tuple[int, int, float]:
    """
    Count nodes with exactly one predecessor and one successor.

    Returns:
        (compressible nodes, total nodes, fraction)
    """
    total = graph.n_nodes
    compressible = sum(
        1 for n in graph.nodes()
        if graph.in_degree(n) == 1 and graph.out_degree(n) == 1
    )
    fraction = compressible / total if total else 0.0
    return compressible, total, fraction


def tip_length_distribution(graph: OverlapGraph, max_walk: int = 100) -> List[int]:
    """
    Length (in arcs) of the linear run leaving every source node.

    Args:
        graph: Overlap graph
        max_walk: Maximum arcs followed from one source

    Returns:
        One length per node without predecessors
    """
    lengths = []
    for start in graph.nodes():
        if graph.in_degree(start) != 0:
            continue
        length = 0
        cur = start
        seen = {start}
        while length < max_walk and graph.out_degree(cur) == 1:
            nxt = graph.successors(cur)[0]
            length += 1
            if graph.in_degree(nxt) != 1 or nxt in seen:
                break
            seen.add(nxt)
            cur = nxt
        lengths.append(length)
    return lengths


def branching_summary(graph: OverlapGraph, top_k: int = 10) -> List[Tuple[str, int, int]]:
    """
    Most connected branching nodes.

    Returns:
        Up to ``top_k`` (node name, in-degree, out-degree), sorted by total
        degree descending
    """
    rows = []
    for node in graph.nodes():
        in_deg, out_deg = graph.in_degree(node), graph.out_degree(node)
        if in_deg > 1 or out_deg > 1:
            rows.append((graph.node_name(node), in_deg, out_deg))
    rows.sort(key=lambda r: (-(r[1] + r[2]), r[0]))
    return rows[:top_k]


def mirror_consistency(graph: OverlapGraph) -> int:
    """Number of arcs whose mirror is missing (0 for a consistent graph)."""
    return sum(
        1 for e in graph.edges()
        if not graph.has_edge(complement(e.target), complement(e.source))
    )


def summarize_graph(graph: OverlapGraph, top_k: int = 5) -> Dict[str, Any]:
    """
    Collect all diagnostics into a JSON-serializable dict.

    Args:
        graph: Overlap graph
        top_k: Number of branching nodes to report

    Returns:
        Summary dict
    """
    sizes = np.array(component_sizes_sorted(graph), dtype=np.int64)
    in_hist, out_hist = analyze_degrees(graph)
    compressible, total, fraction = compressible_node_stats(graph)
    tips = np.array(tip_length_distribution(graph), dtype=np.int64)

    summary = {
        'reads': graph.n_reads,
        'nodes': graph.n_nodes,
        'arcs': graph.n_edges,
        'components': int(sizes.size),
        'largest_component': int(sizes.max()) if sizes.size else 0,
        'singleton_components': int((sizes == 1).sum()),
        'mean_component_size': float(sizes.mean()) if sizes.size else 0.0,
        'in_degree_histogram': {str(k): v for k, v in in_hist.items()},
        'out_degree_histogram': {str(k): v for k, v in out_hist.items()},
        'compressible_nodes': compressible,
        'compressible_fraction': round(fraction, 4),
        'source_runs': int(tips.size),
        'median_source_run': float(np.median(tips)) if tips.size else 0.0,
        'top_branching_nodes': [
            {'node': name, 'in': i, 'out': o}
            for name, i, o in branching_summary(graph, top_k)
        ],
        'missing_mirrors': mirror_consistency(graph),
    }
    return summary


def log_graph_summary(graph: OverlapGraph, label: str = "graph"):
    """Log a one-screen summary of the graph structure."""
    summary = summarize_graph(graph)
    logger.info(
        f"{label}: {summary['reads']:,} reads, {summary['arcs']:,} arcs, "
        f"{summary['components']:,} components (largest {summary['largest_component']:,} reads)"
    )
    logger.info(
        f"{label}: {summary['compressible_nodes']:,}/{summary['nodes']:,} compressible nodes "
        f"({summary['compressible_fraction']:.1%})"
    )
    for row in summary['top_branching_nodes']:
        logger.debug(f"{label}: branching node {row['node']} in={row['in']} out={row['out']}")
    return summary

# Ilesta v0.1.0
# Any usage is subject to this software's license.

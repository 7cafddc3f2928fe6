#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Assembly Export — unitig FASTA, GFA v1 assembly graph, DOT overlap graph
dump and statistics JSON.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..assembly_core.data_structures import Unitig
from ..assembly_core.overlap_graph_module import OverlapGraph
from ..assembly_core.unitig_extraction_module import UnitigLink
from ..io.io_core_module import Read, write_fasta

logger = logging.getLogger(__name__)


# ============================================================================
#                           UNITIG FASTA
# ============================================================================

def write_unitigs_fasta(
    unitigs: list[Unitig],
    output_path: str | Path,
    line_width: int = 80
) -> int:
    """
    Export unitig sequences to FASTA.

    Headers carry the unitig name plus length and read count tags, e.g.
    ``>utg000001l LN:i:25000 RC:i:3``.

    Args:
        unitigs: Unitigs with sequences attached
        output_path: Output FASTA path
        line_width: Bases per line (0 = no wrapping)

    Returns:
        Number of records written
    """
    output_path = Path(output_path)
    logger.info(f"Writing {len(unitigs)} unitigs to {output_path}")

    missing = [u.name for u in unitigs if u.sequence is None]
    if missing:
        raise ValueError(f"Unitigs without sequence cannot be written: {', '.join(missing[:5])}")

    records = (
        Read(
            name=u.name,
            sequence=u.sequence,
            description=f"LN:i:{len(u.sequence)} RC:i:{u.n_reads}",
        )
        for u in unitigs
    )
    count = write_fasta(records, output_path, line_width=line_width)

    logger.info(f"Exported {count} unitigs ({sum(len(u.sequence) for u in unitigs):,} bp)")
    return count


# ============================================================================
#                           GFA EXPORT
# ============================================================================

@dataclass
class GFASegment:
    """Represents a GFA S-line (segment)."""
    name: str
    sequence: str
    length: int
    read_count: int

    def to_gfa_line(self) -> str:
        """
        Convert to GFA S-line format.

        Format: S <name> <sequence|*> LN:i:<length> RC:i:<reads>
        """
        seq_str = self.sequence if self.sequence else '*'
        return f"S\t{self.name}\t{seq_str}\tLN:i:{self.length}\tRC:i:{self.read_count}"


@dataclass
class GFALink:
    """Represents a GFA L-line (link/edge)."""
    from_name: str
    from_orient: str
    to_name: str
    to_orient: str
    overlap: str

    @classmethod
    def from_unitig_link(cls, link: UnitigLink) -> 'GFALink':
        return cls(
            from_name=link.from_name,
            from_orient=link.from_orient,
            to_name=link.to_name,
            to_orient=link.to_orient,
            overlap=f"{link.overlap}M",
        )

    def to_gfa_line(self) -> str:
        """
        Convert to GFA L-line format.

        Format: L <from> <from_orient> <to> <to_orient> <overlap>
        """
        return f"L\t{self.from_name}\t{self.from_orient}\t{self.to_name}\t{self.to_orient}\t{self.overlap}"


def read_layout_lines(unitig: Unitig) -> list[str]:
    """
    GFA ``a`` lines (read layout) for one unitig.

    Format: a <unitig> <offset> <read>:<start>-<end> <strand> <span>, with
    start/end on the oriented read.
    """
    lines = []
    offset = 0
    for member in unitig.members:
        lines.append(
            f"a\t{unitig.name}\t{offset}\t{member.read_name}:{member.trim_start}-{member.trim_end}"
            f"\t{member.strand}\t{member.span}"
        )
        offset += member.span
    return lines


def export_unitigs_to_gfa(
    unitigs: list[Unitig],
    links: list[UnitigLink],
    output_path: str | Path,
    include_sequence: bool = True,
    include_layout: bool = True
) -> None:
    """
    Export unitigs and their remaining connections as GFA v1.

    Args:
        unitigs: Extracted unitigs
        links: Links between unitig ends
        output_path: Output GFA path
        include_sequence: Write sequences into S lines (else '*')
        include_layout: Write read layout ``a`` lines
    """
    output_path = Path(output_path)
    logger.info(f"Exporting assembly graph to GFA: {output_path}")

    segments = [
        GFASegment(
            name=u.name,
            sequence=(u.sequence or '') if include_sequence else '',
            length=len(u.sequence) if u.sequence is not None else u.length,
            read_count=u.n_reads,
        )
        for u in unitigs
    ]
    gfa_links = [GFALink.from_unitig_link(link) for link in links]

    with open(output_path, 'w') as f:
        f.write("H\tVN:Z:1.0\n")
        for seg, unitig in zip(segments, unitigs):
            f.write(seg.to_gfa_line() + "\n")
            if include_layout:
                for line in read_layout_lines(unitig):
                    f.write(line + "\n")
        for link in gfa_links:
            f.write(link.to_gfa_line() + "\n")

    logger.info(f"GFA export complete: {output_path}")
    logger.info(f"  Segments: {len(segments)}")
    logger.info(f"  Links: {len(gfa_links)}")


# ============================================================================
#                           DOT EXPORT
# ============================================================================

def _dot_quote(name: str) -> str:
    return '"' + name.replace('\\', '\\\\').replace('"', '\\"') + '"'


def write_graph_dot(graph: OverlapGraph, output_path: str | Path) -> None:
    """
    Dump the overlap graph as a DOT digraph.

    Nodes are oriented read ends (``read+`` / ``read-``); arcs are labelled
    with extension length and support.
    """
    output_path = Path(output_path)
    logger.info(f"Writing graph visualization to {output_path}")

    with open(output_path, 'w') as f:
        f.write("digraph overlap_graph {\n")
        for node in graph.nodes():
            f.write(f"  {_dot_quote(graph.node_name(node))};\n")
        for edge in graph.edges():
            f.write(
                f"  {_dot_quote(graph.node_name(edge.source))} -> "
                f"{_dot_quote(graph.node_name(edge.target))} "
                f"[label=\"ext={edge.ext_len} sup={edge.support}\"];\n"
            )
        f.write("}\n")

    logger.info(f"  Nodes: {graph.n_nodes:,}, arcs: {graph.n_edges:,}")


# ============================================================================
#                           STATISTICS
# ============================================================================

def calculate_nx(lengths: list[int], fraction: float) -> tuple[int, int]:
    """
    Nx/Lx of a length distribution.

    Returns:
        (Nx length, Lx count); (0, 0) for an empty distribution
    """
    ordered = sorted(lengths, reverse=True)
    target = sum(ordered) * fraction
    cumsum = 0
    for i, length in enumerate(ordered):
        cumsum += length
        if cumsum >= target:
            return length, i + 1
    return 0, 0


def export_assembly_stats(
    unitigs: list[Unitig],
    output_path: str | Path,
    extra: dict[str, Any] | None = None
) -> dict[str, Any]:
    """
    Calculate and export unitig statistics to JSON.

    Args:
        unitigs: Extracted unitigs
        output_path: Output JSON path
        extra: Additional sections (filter counters, graph summary, cleanup
            rounds) stored alongside the unitig statistics

    Returns:
        Dictionary of statistics
    """
    output_path = Path(output_path)
    logger.info("Calculating assembly statistics...")

    lengths = [len(u.sequence) if u.sequence is not None else u.length for u in unitigs]
    n50, l50 = calculate_nx(lengths, 0.5)
    n90, l90 = calculate_nx(lengths, 0.9)

    stats: dict[str, Any] = {
        'num_unitigs': len(unitigs),
        'num_circular': sum(1 for u in unitigs if u.circular),
        'total_length': sum(lengths),
        'max_length': max(lengths) if lengths else 0,
        'min_length': min(lengths) if lengths else 0,
        'mean_length': sum(lengths) / len(lengths) if lengths else 0,
        'n50': n50,
        'l50': l50,
        'n90': n90,
        'l90': l90,
        'reads_in_unitigs': sum(u.n_reads for u in unitigs),
    }
    if extra:
        stats.update(extra)

    with open(output_path, 'w') as f:
        json.dump(stats, f, indent=2)

    logger.info(f"Assembly statistics exported to {output_path}")
    logger.info(f"  Total length: {stats['total_length']:,} bp")
    logger.info(f"  N50: {stats['n50']:,} bp")
    logger.info(f"  L50: {stats['l50']:,}")

    return stats

# Ilesta v0.1.0
# Any usage is subject to this software's license.

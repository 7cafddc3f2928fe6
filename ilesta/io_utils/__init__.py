"""
Ilesta v0.1.0

Assembly output module for Ilesta.

assembly_export.py - Unitig FASTA, GFA, DOT and statistics JSON export
"""

from .assembly_export import (
    GFASegment,
    GFALink,
    write_unitigs_fasta,
    export_unitigs_to_gfa,
    write_graph_dot,
    export_assembly_stats,
    calculate_nx,
)

__all__ = [
    "GFASegment",
    "GFALink",
    "write_unitigs_fasta",
    "export_unitigs_to_gfa",
    "write_graph_dot",
    "export_assembly_stats",
    "calculate_nx",
]

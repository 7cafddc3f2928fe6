"""
Assembly Core module for Ilesta.

This module provides the overlap graph engine:
- Alignment filtering and overlap geometry classification
- Orientation-aware overlap graph construction
- Iterated graph simplification (transitive reduction, tips, bubbles,
  short edges)
- Unitig extraction

Engine modules are imported directly from their submodules; only the shared
data structures are re-exported here.
"""

from .data_structures import (
    END_3P,
    END_5P,
    make_node,
    node_from_strand,
    node_read,
    node_end,
    node_strand,
    complement,
    ReadInfo,
    ReadIndex,
    OverlapClass,
    OverlapRecord,
    OverlapEntry,
    OverlapEdge,
    UnitigMember,
    Unitig,
)

__all__ = [
    "END_3P",
    "END_5P",
    "make_node",
    "node_from_strand",
    "node_read",
    "node_end",
    "node_strand",
    "complement",
    "ReadInfo",
    "ReadIndex",
    "OverlapClass",
    "OverlapRecord",
    "OverlapEntry",
    "OverlapEdge",
    "UnitigMember",
    "Unitig",
]

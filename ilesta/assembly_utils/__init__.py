"""
Assembly Utilities module for Ilesta.

This module provides diagnostics for overlap graphs:
- Connected components and degree distributions
- Compressible node and tip statistics
- Branching summaries for logs and the graph-stats command
"""

from .graph_analysis import (
    weakly_connected_components,
    component_sizes_sorted,
    analyze_degrees,
    compressible_node_stats,
    tip_length_distribution,
    branching_summary,
    summarize_graph,
    log_graph_summary,
)

__all__ = [
    "weakly_connected_components",
    "component_sizes_sorted",
    "analyze_degrees",
    "compressible_node_stats",
    "tip_length_distribution",
    "branching_summary",
    "summarize_graph",
    "log_graph_summary",
]

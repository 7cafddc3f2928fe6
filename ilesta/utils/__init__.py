"""
Utilities module for Ilesta.

This module provides core utilities for the assembly pipeline:
- Pipeline orchestration and coordination
- Logging setup shared by the command line entry points
"""

from .pipeline import (
    AssemblyPipeline,
    AssemblyResult,
    run_alignment_filtering,
    make_alignment_filter,
    setup_logging,
)

__all__ = [
    "AssemblyPipeline",
    "AssemblyResult",
    "run_alignment_filtering",
    "make_alignment_filter",
    "setup_logging",
]

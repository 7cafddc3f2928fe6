"""
Read and overlap I/O module for Ilesta.

Handles reading sequencing reads, streaming PAF alignments and the binary
overlap store.

CONSOLIDATED MODULES:
- io_core_module.py: Read structure, gzip handling, FASTA/FASTQ I/O
- paf_module.py: PAF parsing and writing
- overlap_store.py: Filtered overlap set and its binary format
"""

from .io_core_module import (
    Read,
    ReadsFileError,
    is_gzipped,
    open_file,
    detect_read_format,
    read_sequences,
    load_read_sequences,
    reverse_complement,
    oriented_sequence,
    write_fasta,
)

from .paf_module import (
    PafParseError,
    parse_paf_line,
    iter_paf_lines,
    iter_paf_batches,
    write_paf,
)

from .overlap_store import (
    OverlapSet,
    OverlapStoreError,
    read_overlaps,
    write_overlaps,
)

__all__ = [
    "Read",
    "ReadsFileError",
    "is_gzipped",
    "open_file",
    "detect_read_format",
    "read_sequences",
    "load_read_sequences",
    "reverse_complement",
    "oriented_sequence",
    "write_fasta",
    "PafParseError",
    "parse_paf_line",
    "iter_paf_lines",
    "iter_paf_batches",
    "write_paf",
    "OverlapSet",
    "OverlapStoreError",
    "read_overlaps",
    "write_overlaps",
]

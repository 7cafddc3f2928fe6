#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Core read I/O module for Ilesta.

Consolidated module containing:
- Read data structure
- Gzip-aware file opening
- FASTA/FASTQ parsing through Biopython
- Selective sequence loading for unitig materialization
- FASTA writing with line wrapping
"""

# =============================================================================
# SECTION 1: IMPORTS AND DEPENDENCIES
# =============================================================================

import gzip
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Collection, Dict, Iterable, Iterator, Optional, TextIO, Union

from Bio import SeqIO
from Bio.Seq import reverse_complement as _bio_reverse_complement

logger = logging.getLogger(__name__)

FASTA_SUFFIXES = ('.fa', '.fasta', '.fna', '.fas')
FASTQ_SUFFIXES = ('.fq', '.fastq')


class ReadsFileError(Exception):
    """Reads file is unusable for the requested reads."""
    pass


# =============================================================================
# SECTION 2: READ DATA STRUCTURE
# =============================================================================

@dataclass
class Read:
    """
    Sequencing read.

    Attributes:
        name: Read identifier
        sequence: DNA sequence (uppercase)
        quality: Quality string (Phred+33), None for FASTA input
        description: Free text written after the name in FASTA headers
    """
    name: str
    sequence: str
    quality: Optional[str] = None
    description: str = ""

    def __post_init__(self):
        self.sequence = self.sequence.upper()

    @property
    def length(self) -> int:
        return len(self.sequence)


def reverse_complement(sequence: str) -> str:
    return _bio_reverse_complement(sequence)


def oriented_sequence(sequence: str, strand: str) -> str:
    """Sequence as read on the given strand."""
    return sequence if strand == '+' else reverse_complement(sequence)


# =============================================================================
# SECTION 3: FILE HANDLING
# =============================================================================

def is_gzipped(filepath: Union[str, Path]) -> bool:
    """
    Check if file is gzip compressed.

    Args:
        filepath: Path to file

    Returns:
        True if file is gzipped
    """
    filepath = Path(filepath)
    return filepath.suffix in ('.gz', '.gzip')


def open_file(filepath: Union[str, Path], mode: str = 'r') -> TextIO:
    """
    Open file with automatic gzip detection.

    Args:
        filepath: Path to file
        mode: File mode ('r' or 'w')

    Returns:
        File handle
    """
    filepath = Path(filepath)

    if is_gzipped(filepath):
        if 'r' in mode:
            return gzip.open(filepath, 'rt')
        else:
            return gzip.open(filepath, 'wt')
    else:
        return open(filepath, mode)


def detect_read_format(filepath: Union[str, Path]) -> str:
    """
    Decide whether a reads file is FASTA or FASTQ.

    The file extension is used when recognised (ignoring a trailing .gz),
    otherwise the first non-blank character of the file decides.

    Returns:
        'fasta' or 'fastq'
    """
    filepath = Path(filepath)
    suffixes = [s.lower() for s in filepath.suffixes if s.lower() not in ('.gz', '.gzip')]
    if suffixes:
        if suffixes[-1] in FASTQ_SUFFIXES:
            return 'fastq'
        if suffixes[-1] in FASTA_SUFFIXES:
            return 'fasta'

    with open_file(filepath, 'r') as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            if line.startswith('@'):
                return 'fastq'
            if line.startswith('>'):
                return 'fasta'
            break
    raise ReadsFileError(f"Cannot determine reads file format: {filepath}")


# =============================================================================
# SECTION 4: READ PARSING
# =============================================================================

def read_sequences(filepath: Union[str, Path]) -> Iterator[Read]:
    """
    Read a FASTA or FASTQ file and yield Read objects.

    Args:
        filepath: Path to reads file (can be gzipped)

    Yields:
        Read objects

    Raises:
        FileNotFoundError: If the file does not exist
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"Reads file not found: {filepath}")

    fmt = detect_read_format(filepath)
    with open_file(filepath, 'r') as handle:
        for record in SeqIO.parse(handle, fmt):
            quality = None
            if fmt == 'fastq':
                phred = record.letter_annotations.get('phred_quality', [])
                quality = ''.join(chr(q + 33) for q in phred)
            yield Read(name=record.id, sequence=str(record.seq), quality=quality)


def load_read_sequences(
    filepath: Union[str, Path],
    wanted: Collection[str]
) -> Dict[str, str]:
    """
    Load sequences for a subset of reads.

    Only reads named in ``wanted`` are kept in memory, so the reads file is
    streamed once regardless of its size.

    Args:
        filepath: Path to FASTA/FASTQ reads file
        wanted: Names of the reads to load

    Returns:
        Dict mapping read name to forward-strand sequence

    Raises:
        FileNotFoundError: If the file does not exist
        ReadsFileError: If any wanted read is absent from the file
    """
    wanted = set(wanted)
    sequences: Dict[str, str] = {}
    if not wanted:
        return sequences

    for read in read_sequences(filepath):
        if read.name in wanted and read.name not in sequences:
            sequences[read.name] = read.sequence
            if len(sequences) == len(wanted):
                break

    missing = sorted(wanted - sequences.keys())
    if missing:
        preview = ", ".join(missing[:5])
        raise ReadsFileError(
            f"{len(missing)} read(s) used by the assembly are missing from "
            f"{filepath}: {preview}{' ...' if len(missing) > 5 else ''}"
        )

    logger.info(f"Loaded {len(sequences):,} read sequences from {filepath}")
    return sequences


# =============================================================================
# SECTION 5: FASTA OUTPUT
# =============================================================================

def write_fasta(
    reads: Iterable[Read],
    filepath: Union[str, Path],
    line_width: int = 80
) -> int:
    """
    Write Read objects to a FASTA file.

    Args:
        reads: Iterable of Read objects
        filepath: Output FASTA file path (.gz compresses)
        line_width: Number of bases per line (0 = no wrapping)

    Returns:
        Number of sequences written
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open_file(filepath, 'w') as handle:
        for read in reads:
            header = f">{read.name}"
            if read.description:
                header += f" {read.description}"
            handle.write(header + "\n")

            if line_width > 0:
                for i in range(0, len(read.sequence), line_width):
                    handle.write(read.sequence[i:i + line_width] + "\n")
            else:
                handle.write(read.sequence + "\n")
            count += 1

    return count

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

PAF alignment I/O: streaming line reader, record parser and writer.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple, Union

from .io_core_module import open_file
from ..assembly_core.data_structures import OverlapRecord

logger = logging.getLogger(__name__)

PAF_MIN_FIELDS = 12


class PafParseError(ValueError):
    """A PAF line could not be turned into an alignment record."""
    pass


def parse_paf_line(line: str, line_no: int = 0) -> OverlapRecord:
    """
    Parse one PAF line.

    Only the twelve mandatory columns are read; SAM-like tags are ignored.

    Args:
        line: Tab-separated PAF line
        line_no: 1-based input line number (kept on the record for ordering)

    Returns:
        OverlapRecord

    Raises:
        PafParseError: On a missing column, non-integer coordinate, bad strand
            or inconsistent coordinates
    """
    fields = line.rstrip('\r\n').split('\t')
    if len(fields) < PAF_MIN_FIELDS:
        raise PafParseError(f"line {line_no}: expected {PAF_MIN_FIELDS} fields, got {len(fields)}")

    try:
        qlen, qstart, qend = int(fields[1]), int(fields[2]), int(fields[3])
        tlen, tstart, tend = int(fields[6]), int(fields[7]), int(fields[8])
        matches, block, mapq = int(fields[9]), int(fields[10]), int(fields[11])
    except ValueError as e:
        raise PafParseError(f"line {line_no}: non-integer field ({e})") from e

    strand = fields[4]
    if strand not in ('+', '-'):
        raise PafParseError(f"line {line_no}: invalid strand {strand!r}")
    if not fields[0] or not fields[5]:
        raise PafParseError(f"line {line_no}: empty read name")
    if not (0 <= qstart <= qend <= qlen) or not (0 <= tstart <= tend <= tlen):
        raise PafParseError(f"line {line_no}: coordinates out of range")
    if block <= 0 or matches < 0:
        raise PafParseError(f"line {line_no}: invalid match/block length")

    return OverlapRecord(
        query_name=fields[0],
        query_length=qlen,
        query_start=qstart,
        query_end=qend,
        strand=strand,
        target_name=fields[5],
        target_length=tlen,
        target_start=tstart,
        target_end=tend,
        match_length=matches,
        block_length=block,
        mapq=mapq,
        line_no=line_no,
    )


def iter_paf_lines(filepath: Union[str, Path]) -> Iterator[Tuple[int, str]]:
    """
    Stream (line_no, line) pairs from a PAF file, skipping blanks and comments.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Alignment file not found: {filepath}")

    with open_file(filepath, 'r') as handle:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip() or line.startswith('#'):
                continue
            yield line_no, line


def iter_paf_batches(
    filepath: Union[str, Path],
    batch_size: int
) -> Iterator[List[Tuple[int, str]]]:
    """Group the PAF line stream into lists of at most ``batch_size`` lines."""
    batch: List[Tuple[int, str]] = []
    for item in iter_paf_lines(filepath):
        batch.append(item)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def write_paf(records: Iterable[OverlapRecord], filepath: Union[str, Path]) -> int:
    """
    Write records as PAF lines (with support and class tags).

    Returns:
        Number of lines written
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open_file(filepath, 'w') as handle:
        for record in records:
            handle.write(record.to_paf_line() + "\n")
            count += 1
    logger.info(f"Wrote {count:,} filtered alignments to {filepath}")
    return count

# Ilesta v0.1.0
# Any usage is subject to this software's license.

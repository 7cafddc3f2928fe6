#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Overlap Record Store: in-memory set of filtered overlaps and its binary
on-disk form, which lets reruns skip alignment filtering.

Layout (little-endian):
    magic       4 bytes  b"ILOV"
    version     u32
    n_reads     u32
    reads       n_reads x (u16 name_len, name bytes, u32 read_length)
    n_overlaps  u64
    overlaps    n_overlaps x OVERLAP_DTYPE
    n_contained u32
    contained   n_contained x CONTAINMENT_DTYPE

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, List, Union

import numpy as np

from ..assembly_core.data_structures import OverlapEntry, ReadIndex

logger = logging.getLogger(__name__)

MAGIC = b"ILOV"
FORMAT_VERSION = 1

OVERLAP_DTYPE = np.dtype([
    ('read_a', '<u4'),
    ('read_b', '<u4'),
    ('orientation', 'u1'),
    ('ext_len_a', '<u4'),
    ('ext_len_b', '<u4'),
    ('support', '<u4'),
    ('overlap_len', '<u4'),
    ('identity', '<f8'),
])

CONTAINMENT_DTYPE = np.dtype([
    ('contained', '<u4'),
    ('container', '<u4'),
])


class OverlapStoreError(Exception):
    """Binary overlap file is corrupt, truncated or of an unknown version."""
    pass


@dataclass
class OverlapSet:
    """
    Filtered overlaps ready for graph construction.

    Attributes:
        reads: Read index covering every read named by an overlap
        entries: Dovetail overlaps, one per oriented read pair
        containment: Contained read name -> container read name
    """
    reads: ReadIndex
    entries: List[OverlapEntry] = field(default_factory=list)
    containment: Dict[str, str] = field(default_factory=dict)

    @property
    def contained_ids(self) -> set:
        return {self.reads.id_of(name) for name in self.containment}


# ============================================================================
#                           WRITING
# ============================================================================

def entries_to_array(entries: List[OverlapEntry]) -> np.ndarray:
    """Pack overlap entries into a structured array."""
    array = np.zeros(len(entries), dtype=OVERLAP_DTYPE)
    for i, entry in enumerate(entries):
        array[i] = (
            entry.read_a,
            entry.read_b,
            entry.orientation,
            entry.ext_len_a,
            entry.ext_len_b,
            entry.support,
            entry.overlap_len,
            entry.identity,
        )
    return array


def write_overlaps(overlaps: OverlapSet, filepath: Union[str, Path]) -> Path:
    """
    Serialize an overlap set to the binary format.

    Args:
        overlaps: Filtered overlap set
        filepath: Output path

    Returns:
        Path written
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    records = entries_to_array(overlaps.entries)
    contained = np.array(
        [(overlaps.reads.id_of(c), overlaps.reads.id_of(p))
         for c, p in sorted(overlaps.containment.items())],
        dtype=CONTAINMENT_DTYPE,
    )

    with open(filepath, 'wb') as f:
        f.write(MAGIC)
        f.write(struct.pack('<II', FORMAT_VERSION, len(overlaps.reads)))
        for read in overlaps.reads:
            name = read.name.encode('utf-8')
            f.write(struct.pack('<H', len(name)))
            f.write(name)
            f.write(struct.pack('<I', read.length))
        f.write(struct.pack('<Q', len(records)))
        f.write(records.tobytes())
        f.write(struct.pack('<I', len(contained)))
        f.write(contained.tobytes())

    logger.info(
        f"Wrote {len(records):,} overlaps over {len(overlaps.reads):,} reads to {filepath}"
    )
    return filepath


# ============================================================================
#                           READING
# ============================================================================

def _read_exact(f: BinaryIO, n: int, what: str) -> bytes:
    data = f.read(n)
    if len(data) != n:
        raise OverlapStoreError(f"Truncated overlap file while reading {what}")
    return data


def read_overlaps(filepath: Union[str, Path]) -> OverlapSet:
    """
    Load an overlap set written by :func:`write_overlaps`.

    Raises:
        FileNotFoundError: If the file does not exist
        OverlapStoreError: On bad magic, unsupported version or truncation
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Overlap file not found: {filepath}")

    with open(filepath, 'rb') as f:
        if _read_exact(f, 4, "magic") != MAGIC:
            raise OverlapStoreError(f"Not an Ilesta overlap file: {filepath}")
        version, n_reads = struct.unpack('<II', _read_exact(f, 8, "header"))
        if version != FORMAT_VERSION:
            raise OverlapStoreError(
                f"Unsupported overlap file version {version} (expected {FORMAT_VERSION})"
            )

        reads = ReadIndex()
        for _ in range(n_reads):
            (name_len,) = struct.unpack('<H', _read_exact(f, 2, "read name length"))
            name = _read_exact(f, name_len, "read name").decode('utf-8')
            (length,) = struct.unpack('<I', _read_exact(f, 4, "read length"))
            reads.add(name, length)

        (n_overlaps,) = struct.unpack('<Q', _read_exact(f, 8, "overlap count"))
        raw = _read_exact(f, n_overlaps * OVERLAP_DTYPE.itemsize, "overlap records")
        records = np.frombuffer(raw, dtype=OVERLAP_DTYPE)

        (n_contained,) = struct.unpack('<I', _read_exact(f, 4, "containment count"))
        raw = _read_exact(f, n_contained * CONTAINMENT_DTYPE.itemsize, "containment map")
        contained = np.frombuffer(raw, dtype=CONTAINMENT_DTYPE)

    entries: List[OverlapEntry] = []
    for rec in records:
        read_a, read_b = int(rec['read_a']), int(rec['read_b'])
        if read_a >= n_reads or read_b >= n_reads:
            raise OverlapStoreError(f"Overlap references unknown read id in {filepath}")
        strand_a, strand_b = OverlapEntry.strands_from_orientation(int(rec['orientation']))
        entries.append(OverlapEntry(
            read_a=read_a,
            strand_a=strand_a,
            read_b=read_b,
            strand_b=strand_b,
            ext_len_a=int(rec['ext_len_a']),
            ext_len_b=int(rec['ext_len_b']),
            support=int(rec['support']),
            overlap_len=int(rec['overlap_len']),
            identity=float(rec['identity']),
        ))

    containment = {
        reads.name_of(int(row['contained'])): reads.name_of(int(row['container']))
        for row in contained
    }

    logger.info(f"Loaded {len(entries):,} overlaps over {n_reads:,} reads from {filepath}")
    return OverlapSet(reads=reads, entries=entries, containment=containment)

# Ilesta v0.1.0
# Any usage is subject to this software's license.

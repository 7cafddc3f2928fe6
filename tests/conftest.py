#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Pytest configuration and shared fixtures.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest
from pathlib import Path
import random
import tempfile
import shutil

from ilesta.assembly_core.data_structures import OverlapEntry, ReadIndex
from ilesta.assembly_core.overlap_graph_module import OverlapGraphBuilder
from ilesta.io.io_core_module import reverse_complement


@pytest.fixture
def temp_output_dir():
    """Create temporary output directory for tests."""
    temp_dir = tempfile.mkdtemp(prefix="ilesta_test_")
    yield Path(temp_dir)
    # Cleanup after test
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def genome():
    """Deterministic random 40 kb genome."""
    rng = random.Random(1322)
    return "".join(rng.choice("ACGT") for _ in range(40000))


def paf_line(query, qlen, qstart, qend, strand, target, tlen, tstart, tend,
             identity=0.95, mapq=60):
    """Format one PAF line; block length is the query span."""
    block = qend - qstart
    matches = int(block * identity)
    return "\t".join(str(f) for f in (
        query, qlen, qstart, qend, strand, target, tlen, tstart, tend, matches, block, mapq
    ))


@pytest.fixture
def make_paf_line():
    return paf_line


def _read_interval(read, x, y):
    """Genome interval [x, y) in the read's own coordinates."""
    name, start, end, strand = read
    if strand == '+':
        return x - start, y - start
    return end - y, end - x


def layout_alignments(layout, min_len=1):
    """
    PAF lines for every overlapping pair of reads placed on a genome.

    Args:
        layout: List of (name, start, end, strand) genome placements
        min_len: Shortest overlap reported
    """
    lines = []
    for i, q in enumerate(layout):
        for t in layout[i + 1:]:
            x, y = max(q[1], t[1]), min(q[2], t[2])
            if y - x < min_len:
                continue
            qs, qe = _read_interval(q, x, y)
            ts, te = _read_interval(t, x, y)
            strand = '+' if q[3] == t[3] else '-'
            lines.append(paf_line(q[0], q[2] - q[1], qs, qe, strand,
                                  t[0], t[2] - t[1], ts, te))
    return lines


@pytest.fixture
def write_dataset(temp_output_dir, genome):
    """
    Write reads and alignments for a read layout on the test genome.

    Each alignment is repeated ``copies`` times so it reaches the support
    threshold; ``extra_lines`` are appended verbatim.
    """
    def _write(layout, copies=3, extra_lines=(), min_len=2000, name="dataset"):
        reads_path = temp_output_dir / f"{name}.fa"
        paf_path = temp_output_dir / f"{name}.paf"
        with open(reads_path, 'w') as f:
            for read_name, start, end, strand in layout:
                seq = genome[start:end]
                if strand == '-':
                    seq = reverse_complement(seq)
                f.write(f">{read_name}\n{seq}\n")
        lines = layout_alignments(layout, min_len=min_len)
        with open(paf_path, 'w') as f:
            for line in lines:
                for _ in range(copies):
                    f.write(line + "\n")
            for line in extra_lines:
                f.write(line + "\n")
        return {'reads': reads_path, 'paf': paf_path, 'genome': genome, 'layout': layout}
    return _write


@pytest.fixture
def chain_layout():
    """Three reads tiling 18 kb, the third sequenced on the reverse strand."""
    return [
        ('readA', 0, 10000, '+'),
        ('readB', 4000, 14000, '+'),
        ('readC', 8000, 18000, '-'),
    ]


@pytest.fixture
def graph_factory():
    """
    Build an OverlapGraph from compact arc descriptions.

    ``reads`` is a list of (name, length); ``arcs`` a list of
    (name_a, strand_a, name_b, strand_b, ext_a, ext_b, support, overlap_len).
    """
    def _build(reads, arcs, contained=None):
        index = ReadIndex.from_reads(reads)
        entries = [
            OverlapEntry(
                read_a=index.id_of(a), strand_a=sa,
                read_b=index.id_of(b), strand_b=sb,
                ext_len_a=ext_a, ext_len_b=ext_b,
                support=support, overlap_len=overlap, identity=95.0,
            )
            for a, sa, b, sb, ext_a, ext_b, support, overlap in arcs
        ]
        contained_ids = {index.id_of(n) for n in (contained or [])}
        return OverlapGraphBuilder().build(index, entries, contained_ids)
    return _build

# Ilesta v0.1.0
# Any usage is subject to this software's license.

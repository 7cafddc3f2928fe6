#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Alignment Filter: turns raw pairwise alignments into high-confidence
dovetail overlaps and a containment map.

Records are streamed and aggregated per oriented read pair, so memory grows
with the number of distinct pairs rather than the number of alignments. Each
pair keeps its alignment count (support) and one representative alignment,
chosen by a total order so the result does not depend on input chunking or
worker scheduling.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import logging
import math
from collections import deque
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field, replace, asdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .data_structures import OverlapClass, OverlapEntry, OverlapRecord, ReadIndex
from ..io.paf_module import PafParseError, iter_paf_batches, iter_paf_lines, parse_paf_line
from ..io.overlap_store import OverlapSet

logger = logging.getLogger(__name__)

PairKey = Tuple[str, str, str]

MAX_REPORTED_MALFORMED = 5


class NoOverlapsError(Exception):
    """No overlap survived filtering; there is nothing to assemble."""
    pass


# ============================================================================
#                           RESULT TYPES
# ============================================================================

@dataclass
class FilterStats:
    """Counters for every way a record or pair can leave the filter."""
    total_records: int = 0
    malformed: int = 0
    self_alignments: int = 0
    short: int = 0
    low_identity: int = 0
    distinct_pairs: int = 0
    low_support_pairs: int = 0
    internal: int = 0
    containments: int = 0
    contained_reads: int = 0
    dovetails: int = 0
    dovetails_on_contained: int = 0
    malformed_lines: List[int] = field(default_factory=list)

    def merge(self, other: 'FilterStats'):
        """Add per-record counters from a partial result."""
        self.total_records += other.total_records
        self.malformed += other.malformed
        self.self_alignments += other.self_alignments
        self.short += other.short
        self.low_identity += other.low_identity
        self.malformed_lines = sorted(self.malformed_lines + other.malformed_lines)[:MAX_REPORTED_MALFORMED]

    def to_dict(self) -> Dict[str, int]:
        stats = asdict(self)
        stats.pop('malformed_lines')
        return stats


@dataclass
class PairAggregate:
    """Support count and representative alignment of one oriented read pair."""
    count: int
    best: OverlapRecord

    def add(self, record: OverlapRecord, count: int = 1):
        self.count += count
        if record.rank_key() < self.best.rank_key():
            self.best = record


@dataclass
class FilterResult:
    """
    Output of alignment filtering.

    Attributes:
        overlaps: Dovetail overlap entries, read index and containment map
        records: Representative alignment of every promoted pair that was
            not internal, with support and class set (filtered PAF content)
        stats: Filter counters
    """
    overlaps: OverlapSet
    records: List[OverlapRecord]
    stats: FilterStats

    @property
    def containment(self) -> Dict[str, str]:
        return self.overlaps.containment


# ============================================================================
#                           AGGREGATION (worker side)
# ============================================================================

def aggregate_records(
    records: Iterable[OverlapRecord],
    min_overlap_length: int,
    min_percent_identity: float,
    aggregates: Optional[Dict[PairKey, PairAggregate]] = None,
    stats: Optional[FilterStats] = None
) -> Tuple[Dict[PairKey, PairAggregate], FilterStats]:
    """
    Apply per-record thresholds and aggregate survivors by canonical pair.

    Args:
        records: Parsed alignment records
        min_overlap_length: Minimum alignment block length
        min_percent_identity: Minimum percent identity
        aggregates: Existing aggregate table to extend
        stats: Existing counters to extend

    Returns:
        (aggregates, stats)
    """
    if aggregates is None:
        aggregates = {}
    if stats is None:
        stats = FilterStats()

    for record in records:
        stats.total_records += 1
        if record.query_name == record.target_name:
            stats.self_alignments += 1
            continue
        if record.block_length < min_overlap_length:
            stats.short += 1
            continue
        if record.percent_identity < min_percent_identity:
            stats.low_identity += 1
            continue

        key = record.canonical_key
        aggregate = aggregates.get(key)
        if aggregate is None:
            aggregates[key] = PairAggregate(count=1, best=record)
        else:
            aggregate.add(record)

    return aggregates, stats


def _parse_lines(lines: Iterable[Tuple[int, str]], stats: FilterStats) -> Iterable[OverlapRecord]:
    for line_no, line in lines:
        try:
            yield parse_paf_line(line, line_no)
        except PafParseError as e:
            stats.total_records += 1
            stats.malformed += 1
            if len(stats.malformed_lines) < MAX_REPORTED_MALFORMED:
                stats.malformed_lines.append(line_no)
            logger.debug(f"Skipping malformed alignment: {e}")


def aggregate_paf_batch(
    lines: List[Tuple[int, str]],
    min_overlap_length: int,
    min_percent_identity: float
) -> Tuple[Dict[PairKey, PairAggregate], FilterStats]:
    """Parse and aggregate one batch of PAF lines (runs in a worker process)."""
    stats = FilterStats()
    return aggregate_records(
        _parse_lines(lines, stats), min_overlap_length, min_percent_identity, stats=stats
    )


def merge_aggregates(
    target: Dict[PairKey, PairAggregate],
    partial: Dict[PairKey, PairAggregate]
):
    """Fold a partial aggregate table into ``target`` in canonical key order."""
    for key in sorted(partial):
        aggregate = partial[key]
        existing = target.get(key)
        if existing is None:
            target[key] = PairAggregate(count=aggregate.count, best=aggregate.best)
        else:
            existing.add(aggregate.best, aggregate.count)


# ============================================================================
#                           ALIGNMENT FILTER
# ============================================================================

class AlignmentFilter:
    """
    Threshold filter and geometry classifier for pairwise alignments.

    Per record: malformed lines, self-alignments, short blocks and
    low-identity alignments are counted and dropped. Per pair: fewer than
    ``min_overlap_count`` corroborating alignments drops the pair, and the
    representative alignment is classified as dovetail, containment or
    internal match.
    """

    def __init__(
        self,
        min_overlap_length: int = 2000,
        min_overlap_count: int = 3,
        min_percent_identity: float = 5.0,
        overhang_ratio: float = 0.8,
        max_overhang: Optional[int] = None,
        threads: int = 1,
        batch_size: int = 100000
    ):
        """
        Initialize filter.

        Args:
            min_overlap_length: Minimum alignment block length
            min_overlap_count: Minimum alignments supporting a read pair
            min_percent_identity: Minimum percent identity of an alignment
            overhang_ratio: Maximum overhang as a fraction of mapped length
            max_overhang: Absolute overhang cap in bases (None = no cap)
            threads: Worker processes for PAF parsing (1 = in-process)
            batch_size: PAF lines per worker batch
        """
        self.min_overlap_length = min_overlap_length
        self.min_overlap_count = min_overlap_count
        self.min_percent_identity = min_percent_identity
        self.overhang_ratio = overhang_ratio
        self.max_overhang = max_overhang
        self.threads = threads
        self.batch_size = batch_size
        self.logger = logging.getLogger(f"{__name__}.AlignmentFilter")

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def classify(self, record: OverlapRecord) -> OverlapClass:
        """
        Classify alignment geometry.

        Overhang is the unaligned sequence that would have to match for the
        alignment to be a true end-to-end overlap. It is compared against
        ``overhang_ratio`` of the mapped length, capped by ``max_overhang``.
        """
        b1, e1, l1 = record.query_start, record.query_end, record.query_length
        b2, e2 = record.target_coords()
        l2 = record.target_length
        r1, r2 = l1 - e1, l2 - e2

        overhang = min(b1, b2) + min(r1, r2)
        maplen = max(e1 - b1, e2 - b2)
        allowed = math.ceil(maplen * self.overhang_ratio)
        if self.max_overhang is not None:
            allowed = min(allowed, self.max_overhang)

        if overhang > allowed:
            return OverlapClass.INTERNAL
        if b1 <= b2 and r1 <= r2:
            return OverlapClass.QUERY_CONTAINED
        if b1 >= b2 and r1 >= r2:
            return OverlapClass.TARGET_CONTAINED
        if b1 > b2:
            return OverlapClass.DOVETAIL_FORWARD
        return OverlapClass.DOVETAIL_REVERSE

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def filter_records(self, records: Iterable[OverlapRecord]) -> FilterResult:
        """
        Filter already-parsed alignment records in process.

        Raises:
            NoOverlapsError: If no dovetail overlap survives
        """
        aggregates, stats = aggregate_records(
            records, self.min_overlap_length, self.min_percent_identity
        )
        return self._promote(aggregates, stats)

    def filter_file(self, paf_path: Union[str, Path]) -> FilterResult:
        """
        Stream and filter a PAF file.

        Args:
            paf_path: PAF file (optionally gzipped)

        Returns:
            FilterResult

        Raises:
            FileNotFoundError: If the file does not exist
            NoOverlapsError: If no dovetail overlap survives
        """
        self.logger.info(f"Filtering alignments from {paf_path}")
        if self.threads > 1:
            aggregates, stats = self._aggregate_parallel(paf_path)
        else:
            stats = FilterStats()
            aggregates, stats = aggregate_records(
                _parse_lines(iter_paf_lines(paf_path), stats),
                self.min_overlap_length,
                self.min_percent_identity,
                stats=stats,
            )
        return self._promote(aggregates, stats)

    def _aggregate_parallel(
        self,
        paf_path: Union[str, Path]
    ) -> Tuple[Dict[PairKey, PairAggregate], FilterStats]:
        """Aggregate PAF batches in worker processes, at most 2x threads in flight."""
        aggregates: Dict[PairKey, PairAggregate] = {}
        stats = FilterStats()
        n_batches = 0

        def absorb(future):
            partial, partial_stats = future.result()
            merge_aggregates(aggregates, partial)
            stats.merge(partial_stats)

        with ProcessPoolExecutor(max_workers=self.threads) as executor:
            pending = deque()
            for batch in iter_paf_batches(paf_path, self.batch_size):
                pending.append(executor.submit(
                    aggregate_paf_batch, batch,
                    self.min_overlap_length, self.min_percent_identity,
                ))
                n_batches += 1
                if len(pending) >= 2 * self.threads:
                    absorb(pending.popleft())
            for future in as_completed(pending):
                absorb(future)

        self.logger.info(f"Aggregated {n_batches} batches with {self.threads} workers")
        return aggregates, stats

    # ------------------------------------------------------------------
    # Promotion and classification
    # ------------------------------------------------------------------

    def _promote(
        self,
        aggregates: Dict[PairKey, PairAggregate],
        stats: FilterStats
    ) -> FilterResult:
        stats.distinct_pairs = len(aggregates)
        if stats.malformed:
            self.logger.warning(
                f"Skipped {stats.malformed:,} malformed alignment records "
                f"(first at lines {stats.malformed_lines})"
            )

        classified: List[OverlapRecord] = []
        containment: Dict[str, str] = {}
        for key in sorted(aggregates):
            aggregate = aggregates[key]
            if aggregate.count < self.min_overlap_count:
                stats.low_support_pairs += 1
                continue

            record = replace(aggregate.best, support=aggregate.count)
            record.overlap_class = self.classify(record)

            if record.overlap_class is OverlapClass.INTERNAL:
                stats.internal += 1
                continue
            if record.overlap_class is OverlapClass.QUERY_CONTAINED:
                stats.containments += 1
                containment.setdefault(record.query_name, record.target_name)
            elif record.overlap_class is OverlapClass.TARGET_CONTAINED:
                stats.containments += 1
                containment.setdefault(record.target_name, record.query_name)
            classified.append(record)

        stats.contained_reads = len(containment)

        dovetails: List[OverlapRecord] = []
        for record in classified:
            if not record.overlap_class.is_dovetail:
                continue
            if record.query_name in containment or record.target_name in containment:
                stats.dovetails_on_contained += 1
                continue
            dovetails.append(record)
        stats.dovetails = len(dovetails)

        self._log_stats(stats)

        if not dovetails:
            raise NoOverlapsError("no overlaps after filtering")

        lengths: Dict[str, int] = {}
        for record in classified:
            lengths.setdefault(record.query_name, record.query_length)
            lengths.setdefault(record.target_name, record.target_length)
        reads = ReadIndex.from_reads((name, lengths[name]) for name in sorted(lengths))

        entries = [OverlapEntry.from_record(record, reads) for record in dovetails]
        overlaps = OverlapSet(reads=reads, entries=entries, containment=containment)
        return FilterResult(overlaps=overlaps, records=classified, stats=stats)

    def _log_stats(self, stats: FilterStats):
        self.logger.info(f"  Alignment records: {stats.total_records:,}")
        self.logger.info(
            f"  Dropped records: {stats.self_alignments:,} self, {stats.short:,} short, "
            f"{stats.low_identity:,} low identity, {stats.malformed:,} malformed"
        )
        self.logger.info(
            f"  Read pairs: {stats.distinct_pairs:,} "
            f"({stats.low_support_pairs:,} below support {self.min_overlap_count})"
        )
        self.logger.info(
            f"  Internal matches: {stats.internal:,}, containments: {stats.containments:,} "
            f"({stats.contained_reads:,} contained reads)"
        )
        self.logger.info(
            f"  Dovetail overlaps kept: {stats.dovetails:,} "
            f"({stats.dovetails_on_contained:,} dropped on contained reads)"
        )

# Ilesta v0.1.0
# Any usage is subject to this software's license.

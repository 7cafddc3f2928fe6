#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

Tests for alignment filtering and overlap classification.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest

from ilesta.assembly_core.alignment_filter_module import (
    AlignmentFilter,
    FilterStats,
    NoOverlapsError,
    PairAggregate,
    merge_aggregates,
)
from ilesta.assembly_core.data_structures import OverlapClass, OverlapEntry, ReadIndex
from ilesta.io.paf_module import parse_paf_line


def record(make_paf_line, *args, line_no=1, **kwargs):
    return parse_paf_line(make_paf_line(*args, **kwargs), line_no)


class TestClassification:
    """Test overlap geometry classification."""

    def test_forward_dovetail(self, make_paf_line):
        """Query end overlapping target start is a forward dovetail."""
        rec = record(make_paf_line, 'a', 10000, 6000, 10000, '+', 'b', 10000, 0, 4000)
        assert AlignmentFilter().classify(rec) is OverlapClass.DOVETAIL_FORWARD

    def test_reverse_dovetail(self, make_paf_line):
        """Query start overlapping target end is a reverse dovetail."""
        rec = record(make_paf_line, 'b', 10000, 0, 4000, '+', 'a', 10000, 6000, 10000)
        assert AlignmentFilter().classify(rec) is OverlapClass.DOVETAIL_REVERSE

    def test_query_contained(self, make_paf_line):
        rec = record(make_paf_line, 'short', 3000, 0, 3000, '+', 'long', 10000, 2000, 5000)
        assert AlignmentFilter().classify(rec) is OverlapClass.QUERY_CONTAINED

    def test_target_contained(self, make_paf_line):
        rec = record(make_paf_line, 'long', 10000, 2000, 5000, '+', 'short', 3000, 0, 3000)
        assert AlignmentFilter().classify(rec) is OverlapClass.TARGET_CONTAINED

    def test_internal_match(self, make_paf_line):
        """Large unaligned overhangs on both sides make an internal match."""
        rec = record(make_paf_line, 'a', 10000, 3000, 7000, '+', 'b', 10000, 2000, 6000)
        assert AlignmentFilter().classify(rec) is OverlapClass.INTERNAL

    def test_max_overhang_caps_allowance(self, make_paf_line):
        """A 100 bp overhang is fine by ratio but not under a 50 bp cap."""
        rec = record(make_paf_line, 'a', 10000, 6100, 10000, '+', 'b', 10000, 100, 4000)
        assert AlignmentFilter().classify(rec).is_dovetail
        assert AlignmentFilter(max_overhang=50).classify(rec) is OverlapClass.INTERNAL

    def test_reverse_strand_uses_target_orientation(self, make_paf_line):
        """Target coordinates are flipped into the query's orientation."""
        # Query end overlaps the end of the target's forward strand.
        rec = record(make_paf_line, 'a', 10000, 6000, 10000, '-', 'b', 10000, 6000, 10000)
        assert rec.target_coords() == (0, 4000)
        assert AlignmentFilter().classify(rec) is OverlapClass.DOVETAIL_FORWARD

    def test_entry_layout_forward(self, make_paf_line):
        rec = record(make_paf_line, 'a', 10000, 6000, 10000, '+', 'b', 12000, 0, 4000)
        rec.overlap_class = OverlapClass.DOVETAIL_FORWARD
        reads = ReadIndex.from_reads([('a', 10000), ('b', 12000)])
        entry = OverlapEntry.from_record(rec, reads)

        assert (entry.read_a, entry.strand_a, entry.read_b, entry.strand_b) == (0, '+', 1, '+')
        assert entry.ext_len_a == 6000
        assert entry.ext_len_b == 8000
        assert entry.overlap_len == 4000

    def test_entry_layout_reverse(self, make_paf_line):
        """Reverse dovetails are laid out with the target first."""
        rec = record(make_paf_line, 'b', 10000, 0, 4000, '-', 'a', 10000, 0, 4000)
        rec.overlap_class = AlignmentFilter().classify(rec)
        assert rec.overlap_class is OverlapClass.DOVETAIL_REVERSE

        reads = ReadIndex.from_reads([('a', 10000), ('b', 10000)])
        entry = OverlapEntry.from_record(rec, reads)
        assert (entry.read_a, entry.strand_a, entry.read_b, entry.strand_b) == (0, '-', 1, '+')
        assert entry.ext_len_a == 6000
        assert entry.ext_len_b == 6000

    def test_entry_rejects_containment(self, make_paf_line):
        rec = record(make_paf_line, 'short', 3000, 0, 3000, '+', 'long', 10000, 2000, 5000)
        rec.overlap_class = OverlapClass.QUERY_CONTAINED
        reads = ReadIndex.from_reads([('long', 10000), ('short', 3000)])
        with pytest.raises(ValueError):
            OverlapEntry.from_record(rec, reads)


class TestFiltering:
    """Test record thresholds and pair promotion."""

    def dovetail(self, make_paf_line, line_no=1, identity=0.95, qs=6000):
        return record(make_paf_line, 'a', 10000, qs, 10000, '+', 'b', 10000, 0, 10000 - qs,
                      line_no=line_no, identity=identity)

    def test_support_threshold(self, make_paf_line):
        """A pair with fewer alignments than required never becomes an overlap."""
        records = [self.dovetail(make_paf_line, line_no=i) for i in range(1, 3)]
        with pytest.raises(NoOverlapsError, match="no overlaps after filtering"):
            AlignmentFilter(min_overlap_count=3).filter_records(records)

    def test_support_counted_across_directions(self, make_paf_line):
        """Alignments reported from either read count towards the same pair."""
        records = [
            self.dovetail(make_paf_line, line_no=1),
            self.dovetail(make_paf_line, line_no=2),
            record(make_paf_line, 'b', 10000, 0, 4000, '+', 'a', 10000, 6000, 10000, line_no=3),
        ]
        result = AlignmentFilter(min_overlap_count=3).filter_records(records)
        assert len(result.overlaps.entries) == 1
        assert result.overlaps.entries[0].support == 3
        assert result.stats.distinct_pairs == 1

    def test_identity_threshold(self, make_paf_line):
        records = [self.dovetail(make_paf_line, line_no=i, identity=0.5) for i in range(1, 4)]
        with pytest.raises(NoOverlapsError):
            AlignmentFilter(min_percent_identity=80.0).filter_records(records)

        result = AlignmentFilter(min_percent_identity=40.0).filter_records(records)
        assert result.stats.low_identity == 0
        assert result.overlaps.entries[0].identity == pytest.approx(50.0)

    def test_short_and_self_alignments_dropped(self, make_paf_line):
        records = [self.dovetail(make_paf_line, line_no=i) for i in range(1, 4)]
        records.append(record(make_paf_line, 'a', 10000, 9000, 10000, '+', 'b', 10000, 0, 1000,
                              line_no=4))
        records.append(record(make_paf_line, 'a', 10000, 0, 5000, '+', 'a', 10000, 0, 5000,
                              line_no=5))
        result = AlignmentFilter().filter_records(records)

        assert result.stats.total_records == 5
        assert result.stats.short == 1
        assert result.stats.self_alignments == 1
        assert result.overlaps.entries[0].support == 3

    def test_representative_is_longest_block(self, make_paf_line):
        records = [
            self.dovetail(make_paf_line, line_no=1, qs=7000),
            self.dovetail(make_paf_line, line_no=2, qs=5000),
            self.dovetail(make_paf_line, line_no=3, qs=6000),
        ]
        result = AlignmentFilter().filter_records(records)
        (promoted,) = result.records
        assert promoted.line_no == 2
        assert promoted.support == 3
        assert result.overlaps.entries[0].ext_len_a == 5000

    def test_internal_pairs_dropped(self, make_paf_line):
        records = [self.dovetail(make_paf_line, line_no=i) for i in range(1, 4)]
        records += [
            record(make_paf_line, 'a', 10000, 3000, 7000, '+', 'c', 10000, 2000, 6000, line_no=i)
            for i in range(4, 7)
        ]
        result = AlignmentFilter().filter_records(records)
        assert result.stats.internal == 1
        assert 'c' not in result.overlaps.reads

    def test_contained_read_excluded(self, make_paf_line):
        """Dovetails touching a contained read are dropped; the containment is kept."""
        records = [self.dovetail(make_paf_line, line_no=i) for i in range(1, 4)]
        records += [
            record(make_paf_line, 'c', 3000, 0, 3000, '+', 'b', 10000, 2000, 5000, line_no=i)
            for i in range(4, 7)
        ]
        records += [
            record(make_paf_line, 'a', 10000, 8000, 10000, '+', 'c', 3000, 0, 2000, line_no=i)
            for i in range(7, 10)
        ]
        result = AlignmentFilter().filter_records(records)

        assert result.containment == {'c': 'b'}
        assert result.stats.contained_reads == 1
        assert result.stats.dovetails_on_contained == 1
        assert len(result.overlaps.entries) == 1
        for entry in result.overlaps.entries:
            assert result.overlaps.reads.name_of(entry.read_a) != 'c'
            assert result.overlaps.reads.name_of(entry.read_b) != 'c'

    def test_zero_survivors_raises(self):
        with pytest.raises(NoOverlapsError, match="no overlaps after filtering"):
            AlignmentFilter().filter_records([])


class TestFileFiltering:
    """Test streaming and parallel filtering of PAF files."""

    def test_malformed_lines_counted(self, temp_output_dir, make_paf_line):
        paf = temp_output_dir / "aln.paf"
        good = make_paf_line('a', 10000, 6000, 10000, '+', 'b', 10000, 0, 4000)
        paf.write_text("\n".join([good, good, "garbage line", good, "a\t1\t2", "# comment", ""]))

        result = AlignmentFilter().filter_file(paf)
        assert result.stats.malformed == 2
        assert result.stats.malformed_lines == [3, 5]
        assert len(result.overlaps.entries) == 1

    def test_missing_file(self, temp_output_dir):
        with pytest.raises(FileNotFoundError):
            AlignmentFilter().filter_file(temp_output_dir / "missing.paf")

    def test_parallel_matches_serial(self, write_dataset, chain_layout):
        """Worker count and batch size do not change the promoted overlaps."""
        data = write_dataset(chain_layout)
        serial = AlignmentFilter(threads=1).filter_file(data['paf'])
        parallel = AlignmentFilter(threads=2, batch_size=2).filter_file(data['paf'])

        assert parallel.overlaps.entries == serial.overlaps.entries
        assert [r.line_no for r in parallel.records] == [r.line_no for r in serial.records]
        assert parallel.stats.to_dict() == serial.stats.to_dict()

    def test_merge_aggregates_is_order_independent(self, make_paf_line):
        first = record(make_paf_line, 'a', 10000, 6000, 10000, '+', 'b', 10000, 0, 4000, line_no=1)
        second = record(make_paf_line, 'a', 10000, 5000, 10000, '+', 'b', 10000, 0, 5000, line_no=9)
        key = first.canonical_key

        left = {key: PairAggregate(count=2, best=first)}
        merge_aggregates(left, {key: PairAggregate(count=1, best=second)})
        right = {key: PairAggregate(count=1, best=second)}
        merge_aggregates(right, {key: PairAggregate(count=2, best=first)})

        assert left[key].count == right[key].count == 3
        assert left[key].best.line_no == right[key].best.line_no == 9

    def test_stats_merge(self):
        stats = FilterStats(total_records=3, malformed=1, malformed_lines=[7])
        stats.merge(FilterStats(total_records=2, malformed=1, malformed_lines=[2]))
        assert stats.total_records == 5
        assert stats.malformed_lines == [2, 7]
        assert 'malformed_lines' not in stats.to_dict()

# Ilesta v0.1.0
# Any usage is subject to this software's license.

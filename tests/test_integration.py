#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Ilesta v0.1.0

End-to-end assembly tests on synthetic read layouts.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import json

import pytest

from ilesta.assembly_core.alignment_filter_module import NoOverlapsError
from ilesta.assembly_core.data_structures import ReadIndex
from ilesta.config.schema import AssemblyParameters, ConfigValidationError, load_config
from ilesta.io.io_core_module import ReadsFileError, read_sequences, reverse_complement
from ilesta.io.overlap_store import OverlapSet, write_overlaps
from ilesta.utils.pipeline import AssemblyPipeline, run_alignment_filtering


def same_strand_or_rc(sequence, expected):
    return sequence == expected or sequence == reverse_complement(expected)


class TestAssemblyPipeline:
    """Test complete assembly runs."""

    def test_three_read_chain(self, write_dataset, chain_layout, temp_output_dir):
        """Three tiled reads (one reverse) assemble into one linear unitig."""
        data = write_dataset(chain_layout)
        outdir = temp_output_dir / "out"
        result = AssemblyPipeline(
            config=load_config(), output_dir=outdir,
            reads_path=data['reads'], paf_path=data['paf'],
        ).run()

        assert len(result.unitigs) == 1
        (unitig,) = result.unitigs
        assert not unitig.circular
        assert unitig.n_reads == 3
        assert same_strand_or_rc(unitig.sequence, data['genome'][:18000])
        assert result.links == []

        # The implied readA -> readC overlap is removed by transitive reduction.
        assert result.rounds[0].transitive_edges == 1
        stats = json.loads((outdir / "unitigs.stats.json").read_text())
        assert stats['num_unitigs'] == 1
        assert stats['total_length'] == 18000
        assert stats['simplification']['converged'] is True

    def test_uneven_support_chain(self, write_dataset, make_paf_line, temp_output_dir):
        """Overlaps of 3000 and 2500 bp seen 5 and 4 times give one clean unitig."""
        layout = [
            ('readA', 0, 5000, '+'),
            ('readB', 2000, 7000, '+'),
            ('readC', 4500, 9500, '-'),
        ]
        ab = make_paf_line('readA', 5000, 2000, 5000, '+', 'readB', 5000, 0, 3000)
        bc = make_paf_line('readB', 5000, 2500, 5000, '-', 'readC', 5000, 2500, 5000)
        data = write_dataset(layout, copies=0, extra_lines=[ab] * 5 + [bc] * 4)

        result = AssemblyPipeline(
            config=load_config(), output_dir=temp_output_dir / "out",
            reads_path=data['reads'], paf_path=data['paf'],
        ).run()

        (unitig,) = result.unitigs
        assert unitig.n_reads == 3
        assert unitig.length == 9500
        assert same_strand_or_rc(unitig.sequence, data['genome'][:9500])
        for stats in result.rounds:
            assert stats.tip_reads == stats.bubbles_popped == 0

    def test_fasta_output(self, write_dataset, chain_layout, temp_output_dir):
        data = write_dataset(chain_layout)
        outdir = temp_output_dir / "out"
        AssemblyPipeline(
            config=load_config(), output_dir=outdir,
            reads_path=data['reads'], paf_path=data['paf'],
        ).run()

        (record,) = list(read_sequences(outdir / "unitigs.fa"))
        assert record.name == 'utg000001l'
        assert same_strand_or_rc(record.sequence, data['genome'][:18000])
        gfa = (outdir / "unitigs.gfa").read_text().splitlines()
        assert sum(1 for line in gfa if line.startswith('a\t')) == 3
        assert (outdir / "ilesta.log").exists()

    def test_low_support_branch_never_joins(self, write_dataset, chain_layout, make_paf_line,
                                            temp_output_dir):
        """A read seen in a single alignment stays out of the graph."""
        single_alignment = [
            make_paf_line('readB', 10000, 6000, 10000, '+', 'readX', 10000, 0, 4000),
        ]
        layout = chain_layout + [('readX', 30000, 40000, '+')]
        data = write_dataset(layout, extra_lines=single_alignment)
        result = AssemblyPipeline(
            config=load_config(), output_dir=temp_output_dir / "out",
            reads_path=data['reads'], paf_path=data['paf'],
        ).run()

        names = {result.graph.reads.name_of(r) for r in result.graph.read_ids()}
        assert 'readX' not in names
        assert len(result.unitigs) == 1

    def test_contained_read_left_out(self, write_dataset, chain_layout, temp_output_dir):
        layout = chain_layout + [('readS', 5000, 9000, '+')]
        data = write_dataset(layout)
        config = load_config()
        result = AssemblyPipeline(
            config=config, output_dir=temp_output_dir / "out",
            reads_path=data['reads'], paf_path=data['paf'],
        ).run()

        placed = {m.read_name for u in result.unitigs for m in u.members}
        assert placed == {'readA', 'readB', 'readC'}
        assert result.stats['contained_reads'] == 1

    def test_zero_overlaps_writes_nothing(self, write_dataset, chain_layout, temp_output_dir):
        data = write_dataset(chain_layout, copies=1)
        outdir = temp_output_dir / "out"
        pipeline = AssemblyPipeline(
            config=load_config(), output_dir=outdir,
            reads_path=data['reads'], paf_path=data['paf'],
        )
        with pytest.raises(NoOverlapsError, match="no overlaps after filtering"):
            pipeline.run()
        assert not outdir.exists()

    def test_empty_overlap_store_writes_nothing(self, write_dataset, chain_layout,
                                                temp_output_dir):
        data = write_dataset(chain_layout)
        ovb = temp_output_dir / "empty.ovb"
        write_overlaps(OverlapSet(reads=ReadIndex.from_reads([('readA', 10000)])), ovb)
        outdir = temp_output_dir / "out"
        pipeline = AssemblyPipeline(
            config=load_config(), output_dir=outdir,
            reads_path=data['reads'], overlaps_path=ovb,
        )
        with pytest.raises(NoOverlapsError, match="no overlaps after filtering"):
            pipeline.run()
        assert not outdir.exists()

    def test_invalid_config_fails_before_io(self, temp_output_dir):
        config = load_config()
        config['simplification']['min_support_ratio'] = 0.2
        pipeline = AssemblyPipeline(
            config=config, output_dir=temp_output_dir / "out",
            reads_path=temp_output_dir / "missing.fa", paf_path=temp_output_dir / "missing.paf",
        )
        with pytest.raises(ConfigValidationError):
            pipeline.run()

    def test_missing_read_sequence(self, write_dataset, chain_layout, temp_output_dir):
        data = write_dataset(chain_layout)
        data['reads'].write_text(">readA\nACGT\n")
        with pytest.raises(ReadsFileError):
            AssemblyPipeline(
                config=load_config(), output_dir=temp_output_dir / "out",
                reads_path=data['reads'], paf_path=data['paf'],
            ).run()

    def test_rerun_from_binary_overlaps(self, write_dataset, chain_layout, temp_output_dir):
        """Assembling from the stored overlaps matches assembling from alignments."""
        data = write_dataset(chain_layout)
        ovb = temp_output_dir / "chain.ovb"
        run_alignment_filtering(data['paf'], ovb, AssemblyParameters())

        from_paf = AssemblyPipeline(
            config=load_config(), output_dir=temp_output_dir / "a",
            reads_path=data['reads'], paf_path=data['paf'],
        ).run()
        from_ovb = AssemblyPipeline(
            config=load_config(), output_dir=temp_output_dir / "b",
            reads_path=data['reads'], overlaps_path=ovb,
        ).run()

        assert from_ovb.graph.edge_signature() == from_paf.graph.edge_signature()
        assert [u.sequence for u in from_ovb.unitigs] == [u.sequence for u in from_paf.unitigs]

    def test_filtered_paf_holds_promoted_alignments(self, write_dataset, chain_layout,
                                                    temp_output_dir):
        data = write_dataset(chain_layout)
        filtered = temp_output_dir / "chain.filtered.paf"
        result = run_alignment_filtering(data['paf'], temp_output_dir / "chain.ovb",
                                         AssemblyParameters(), filtered)

        lines = filtered.read_text().splitlines()
        assert len(lines) == len(result.records) == 3
        pairs = {tuple(sorted((line.split('\t')[0], line.split('\t')[5]))) for line in lines}
        assert pairs == {('readA', 'readB'), ('readB', 'readC'), ('readA', 'readC')}

    def test_needs_exactly_one_overlap_source(self, temp_output_dir):
        with pytest.raises(ValueError):
            AssemblyPipeline(config=load_config(), output_dir=temp_output_dir,
                             reads_path=temp_output_dir / "r.fa")

# Ilesta v0.1.0
# Any usage is subject to this software's license.

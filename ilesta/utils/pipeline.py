"""
Ilesta Assembly Pipeline Orchestrator.

Coordinates the complete overlap-graph assembly run:
- Filtering: PAF alignments -> dovetail overlaps + containment map
  (or loading a previously written binary overlap file)
- Graph: orientation-aware overlap graph construction
- Simplification: iterated transitive reduction, tip trimming, bubble
  popping and short-edge removal
- Layout: unitig extraction and sequence materialization
- Output: unitig FASTA, GFA, DOT dump, statistics JSON

Key behaviour:
- Thresholds are validated before any input is opened
- The output directory is only created once filtering has produced
  overlaps, so a failed filtering step leaves nothing behind
"""

from pathlib import Path
from typing import Optional, Dict, Any, List, Union
import logging
import time
from dataclasses import dataclass, field

from ..config.schema import AssemblyParameters, check_config, validate_parameters
from ..assembly_core.data_structures import Unitig
from ..assembly_core.alignment_filter_module import AlignmentFilter, FilterResult, NoOverlapsError
from ..assembly_core.overlap_graph_module import OverlapGraph, build_overlap_graph
from ..assembly_core.graph_simplification_module import (
    GraphSimplificationEngine,
    SimplificationRound,
)
from ..assembly_core.unitig_extraction_module import UnitigExtractor, UnitigLink
from ..assembly_utils.graph_analysis import log_graph_summary
from ..io.io_core_module import load_read_sequences
from ..io.overlap_store import read_overlaps, write_overlaps
from ..io.paf_module import write_paf
from ..io_utils.assembly_export import (
    export_assembly_stats,
    export_unitigs_to_gfa,
    write_graph_dot,
    write_unitigs_fasta,
)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Union[str, int] = 'INFO'):
    """Configure console logging for a run."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()]
    )
    logging.getLogger().setLevel(level)


def make_alignment_filter(params: AssemblyParameters) -> AlignmentFilter:
    return AlignmentFilter(
        min_overlap_length=params.min_overlap_length,
        min_overlap_count=params.min_overlap_count,
        min_percent_identity=params.min_percent_identity,
        overhang_ratio=params.overhang_ratio,
        max_overhang=params.max_overhang,
        threads=params.threads,
        batch_size=params.batch_size,
    )


def run_alignment_filtering(
    paf_path: Union[str, Path],
    output_overlaps: Union[str, Path],
    params: AssemblyParameters,
    filtered_paf: Optional[Union[str, Path]] = None
) -> FilterResult:
    """
    Filter a PAF file and persist the binary overlap set.

    Args:
        paf_path: Input PAF alignments
        output_overlaps: Binary overlap file to write
        params: Validated thresholds
        filtered_paf: Optional path for the promoted alignments as PAF

    Returns:
        FilterResult

    Raises:
        NoOverlapsError: If nothing survives filtering (nothing is written)
    """
    validate_parameters(params)
    result = make_alignment_filter(params).filter_file(paf_path)
    write_overlaps(result.overlaps, output_overlaps)
    if filtered_paf:
        write_paf(result.records, filtered_paf)
    return result


@dataclass
class AssemblyResult:
    """
    Result of an assembly run.

    Attributes:
        graph: Simplified overlap graph
        unitigs: Extracted unitigs with sequences
        links: Links between unitig ends
        rounds: Per-round simplification counts
        output_files: Output kind -> path
        stats: Statistics written to the stats JSON
    """
    graph: OverlapGraph
    unitigs: List[Unitig] = field(default_factory=list)
    links: List[UnitigLink] = field(default_factory=list)
    rounds: List[SimplificationRound] = field(default_factory=list)
    output_files: Dict[str, Path] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Assembly Pipeline
# ============================================================================

class AssemblyPipeline:
    """
    End-to-end overlap graph assembly.

    Exactly one of ``paf_path`` / ``overlaps_path`` supplies the overlaps;
    a binary overlap file bypasses alignment filtering.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        output_dir: Union[str, Path],
        reads_path: Union[str, Path],
        paf_path: Optional[Union[str, Path]] = None,
        overlaps_path: Optional[Union[str, Path]] = None,
        filtered_paf: Optional[Union[str, Path]] = None
    ):
        """
        Initialize pipeline.

        Args:
            config: Configuration dictionary (see config.schema)
            output_dir: Directory for all outputs
            reads_path: FASTA/FASTQ reads
            paf_path: PAF alignments
            overlaps_path: Binary overlap file from a previous run
            filtered_paf: Optional path for the promoted alignments as PAF
        """
        if (paf_path is None) == (overlaps_path is None):
            raise ValueError("Provide exactly one of an alignment file or an overlap file")

        self.config = config
        self.output_dir = Path(output_dir)
        self.reads_path = Path(reads_path)
        self.paf_path = Path(paf_path) if paf_path else None
        self.overlaps_path = Path(overlaps_path) if overlaps_path else None
        self.filtered_paf = Path(filtered_paf) if filtered_paf else None

        self.params = AssemblyParameters.from_config(config)
        self.output_config = config.get('output', {})
        self.prefix = self.output_config.get('prefix', 'unitigs')
        self.logger = logging.getLogger(__name__)
        self._log_handler: Optional[logging.Handler] = None
        self._filter_result: Optional[FilterResult] = None

    # ------------------------------------------------------------------

    def run(self) -> AssemblyResult:
        """
        Run the complete pipeline.

        Returns:
            AssemblyResult

        Raises:
            ConfigValidationError: On out-of-range thresholds (before any I/O)
            FileNotFoundError: If an input file is missing
            NoOverlapsError: If no overlap survives filtering
            GraphInvariantError: On internal graph inconsistency
            ReadsFileError: If a unitig read is missing from the reads file
        """
        check_config(self.config)
        for path in (self.reads_path, self.paf_path, self.overlaps_path):
            if path is not None and not path.exists():
                raise FileNotFoundError(f"Input file not found: {path}")

        start = time.time()
        self.logger.info("=" * 60)
        self.logger.info("Starting Ilesta assembly")
        self.logger.info("=" * 60)

        try:
            self._step_banner(1, "OVERLAPS")
            overlaps, filter_stats = self._load_overlaps()

            self.output_dir.mkdir(parents=True, exist_ok=True)
            self._attach_log_file()
            output_files: Dict[str, Path] = {}
            if self.paf_path is not None:
                output_files['overlaps'] = write_overlaps(
                    overlaps, self.output_dir / f"{self.prefix}.overlaps.ovb"
                )
                if self.filtered_paf is not None:
                    write_paf(self._filter_result.records, self.filtered_paf)
                    output_files['filtered_paf'] = self.filtered_paf

            self._step_banner(2, "GRAPH CONSTRUCTION")
            graph = build_overlap_graph(overlaps)
            initial_summary = log_graph_summary(graph, "initial graph")

            self._step_banner(3, "GRAPH SIMPLIFICATION")
            engine = GraphSimplificationEngine(
                fuzz=self.params.fuzz,
                max_tip_len=self.params.max_tip_len,
                max_bubble_length=self.params.max_bubble_length,
                min_support_ratio=self.params.min_support_ratio,
                short_edge_ratio=self.params.short_edge_ratio,
                cleanup_iterations=self.params.cleanup_iterations,
            )
            simplified = engine.simplify(graph)
            final_summary = log_graph_summary(graph, "simplified graph")

            if self.output_config.get('write_dot', True):
                dot_path = self.output_dir / "graph.dot"
                write_graph_dot(graph, dot_path)
                output_files['dot'] = dot_path

            self._step_banner(4, "UNITIG EXTRACTION")
            extractor = UnitigExtractor(threads=self.params.threads)
            unitigs = extractor.extract(graph)
            links = extractor.find_links(graph, unitigs)
            wanted = {m.read_name for u in unitigs for m in u.members}
            sequences = load_read_sequences(self.reads_path, wanted)
            extractor.materialize(unitigs, sequences)

            self._step_banner(5, "OUTPUT")
            fasta_path = self.output_dir / f"{self.prefix}.fa"
            write_unitigs_fasta(unitigs, fasta_path, line_width=self.output_config.get('line_width', 80))
            output_files['fasta'] = fasta_path

            gfa_path = self.output_dir / f"{self.prefix}.gfa"
            export_unitigs_to_gfa(
                unitigs, links, gfa_path,
                include_sequence=self.output_config.get('include_sequence', True),
            )
            output_files['gfa'] = gfa_path

            extra = {
                'filtering': filter_stats,
                'initial_graph': initial_summary,
                'final_graph': final_summary,
                'simplification': {
                    'converged': simplified.converged,
                    'rounds': [r.to_dict() for r in simplified.rounds],
                },
                'contained_reads': len(overlaps.containment),
            }
            stats: Dict[str, Any] = extra
            if self.output_config.get('write_stats', True):
                stats_path = self.output_dir / f"{self.prefix}.stats.json"
                stats = export_assembly_stats(unitigs, stats_path, extra=extra)
                output_files['stats'] = stats_path

            elapsed = time.time() - start
            self.logger.info("=" * 60)
            self.logger.info(f"Assembly complete: {len(unitigs):,} unitigs in {elapsed:.1f}s")
            for kind, path in output_files.items():
                self.logger.info(f"  {kind}: {path}")
            self.logger.info("=" * 60)

            return AssemblyResult(
                graph=graph,
                unitigs=unitigs,
                links=links,
                rounds=simplified.rounds,
                output_files=output_files,
                stats=stats,
            )

        except Exception as e:
            self.logger.error(f"Assembly failed: {e}")
            raise
        finally:
            self._detach_log_file()

    # ------------------------------------------------------------------

    def _load_overlaps(self):
        self._filter_result = None
        if self.overlaps_path is not None:
            self.logger.info(f"Loading precomputed overlaps from {self.overlaps_path}")
            overlaps = read_overlaps(self.overlaps_path)
            if not overlaps.entries:
                raise NoOverlapsError(f"no overlaps after filtering in {self.overlaps_path}")
            return overlaps, {}

        self._filter_result = make_alignment_filter(self.params).filter_file(self.paf_path)
        return self._filter_result.overlaps, self._filter_result.stats.to_dict()

    def _step_banner(self, number: int, name: str):
        self.logger.info("=" * 60)
        self.logger.info(f"STEP {number}/5: {name}")
        self.logger.info("=" * 60)

    def _attach_log_file(self):
        log_file = self.output_config.get('logging', {}).get('log_file')
        if not log_file:
            return
        handler = logging.FileHandler(self.output_dir / log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)
        self._log_handler = handler

    def _detach_log_file(self):
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
            self._log_handler.close()
            self._log_handler = None

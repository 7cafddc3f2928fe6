#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Command-line interface for Ilesta.

This module provides the main CLI entry point and all subcommands for
the Ilesta overlap graph assembler.
"""

import json
import sys
import click
from pathlib import Path
import yaml

from .version import __version__
from .config.schema import (
    AssemblyParameters,
    ConfigValidationError,
    check_config,
    load_config,
    save_config_template,
    validate_config,
    validate_parameters,
)


# Exceptions that end a run with a one-line message instead of a traceback.
def _run_errors():
    from .assembly_core.alignment_filter_module import NoOverlapsError
    from .assembly_core.overlap_graph_module import GraphInvariantError
    from .io.io_core_module import ReadsFileError
    from .io.overlap_store import OverlapStoreError
    return (ConfigValidationError, NoOverlapsError, GraphInvariantError,
            ReadsFileError, OverlapStoreError, FileNotFoundError, OSError)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-error output')
@click.pass_context
def main(ctx, verbose, quiet):
    """
    Ilesta: Overlap Graph Assembler for Long Reads

    Builds unitigs from all-vs-all read alignments (PAF) by filtering
    overlaps, constructing an orientation-aware overlap graph and
    simplifying it (transitive reduction, tips, bubbles, short edges).
    """
    # Ensure context object exists
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet


def _log_level(ctx, config) -> str:
    if ctx.obj.get('VERBOSE'):
        return 'DEBUG'
    if ctx.obj.get('QUIET'):
        return 'WARNING'
    return config['output']['logging']['level']


def _resolve_config(config_file, overrides):
    """Load config (defaults + file) and apply CLI overrides that were given."""
    config = check_config(load_config(Path(config_file) if config_file else None))
    params = AssemblyParameters.from_config(config)
    for name, value in overrides.items():
        if value is not None:
            setattr(params, name, value)
    return params.apply_to(config), validate_parameters(params)


def filtering_options(f):
    """Alignment filtering thresholds shared by several commands."""
    options = [
        click.option('--min-overlap-length', '-l', type=int, default=None,
                     help='Minimum alignment block length [2000]'),
        click.option('--min-overlap-count', '-c', type=int, default=None,
                     help='Minimum alignments supporting a read pair [3]'),
        click.option('--min-percent-identity', '-i', type=float, default=None,
                     help='Minimum percent identity of an alignment [5.0]'),
        click.option('--overhang-ratio', type=float, default=None,
                     help='Maximum overhang as a fraction of mapped length [0.8]'),
        click.option('--max-overhang', type=int, default=None,
                     help='Absolute overhang cap in bp [off]'),
        click.option('--threads', '-t', type=int, default=None,
                     help='Worker processes [1]'),
        click.option('--config', 'config_file', type=click.Path(exists=True), default=None,
                     help='YAML configuration file (CLI options override it)'),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def simplification_options(f):
    """Graph simplification thresholds."""
    options = [
        click.option('--max-bubble-length', type=int, default=None,
                     help='Maximum internal nodes per bubble branch [100]'),
        click.option('--min-support-ratio', type=float, default=None,
                     help='Support margin required to pop a bubble [1.1]'),
        click.option('--max-tip-len', type=int, default=None,
                     help='Maximum tip length in nodes [4]'),
        click.option('--fuzz', type=int, default=None,
                     help='Transitive reduction length tolerance in bp [10]'),
        click.option('--cleanup-iterations', type=int, default=None,
                     help='Maximum simplification rounds [2]'),
        click.option('--short-edge-ratio', type=float, default=None,
                     help='Overlap fraction below which arcs are short [0.8]'),
    ]
    for option in reversed(options):
        f = option(f)
    return f


# ============================================================================
# Configuration Management Commands
# ============================================================================

@main.group()
def config():
    """Configuration management commands."""
    pass


@config.command('init')
@click.option('--output', '-o', type=click.Path(), default='ilesta_config.yaml',
              help='Output configuration file path')
@click.option('--template', '-t',
              type=click.Choice(['default', 'sensitive', 'strict']),
              default='default', help='Configuration template type')
def config_init(output, template):
    """Generate a template configuration file with all available parameters."""
    click.echo(f"Generating {template} configuration template: {output}")

    try:
        save_config_template(Path(output), template=template)
        click.echo(f"✓ Configuration file created: {output}")
        click.echo("\nThe configuration file includes:")
        click.echo("  • Alignment filtering thresholds")
        click.echo("  • Graph simplification thresholds")
        click.echo("  • Runtime and output settings")
        click.echo("\nEdit this file to customize your assembly.")
    except OSError as e:
        click.echo(f"✗ Error creating configuration: {e}", err=True)
        sys.exit(1)


@config.command('validate')
@click.argument('config_file', type=click.Path(exists=True))
def config_validate(config_file):
    """Validate a configuration file."""
    click.echo(f"Validating configuration file: {config_file}")

    try:
        config = load_config(Path(config_file))
    except ConfigValidationError as e:
        click.echo(f"✗ Error validating configuration: {e}", err=True)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        click.echo("\n✗ Configuration validation failed:")
        for error in errors:
            click.echo(f"  • {error}", err=True)
        sys.exit(1)

    click.echo("✓ Configuration is valid")
    params = AssemblyParameters.from_config(config)
    click.echo("\nKey Settings:")
    click.echo(f"  Min overlap: {params.min_overlap_length} bp x {params.min_overlap_count} alignments")
    click.echo(f"  Cleanup rounds: {params.cleanup_iterations}")
    click.echo(f"  Threads: {params.threads}")


@config.command('show')
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--format', '-f', type=click.Choice(['yaml', 'summary']), default='summary',
              help='Output format')
def config_show(config_file, format):
    """Display configuration settings."""
    try:
        config = load_config(Path(config_file))
    except ConfigValidationError as e:
        click.echo(f"✗ Error reading configuration: {e}", err=True)
        sys.exit(1)

    if format == 'yaml':
        click.echo(yaml.dump(config, default_flow_style=False, sort_keys=False))
        return

    click.echo(f"Configuration from: {config_file}")
    click.echo("=" * 60)
    for section in ('filtering', 'simplification', 'runtime'):
        click.echo(f"\n{section.capitalize()}:")
        for key, value in config.get(section, {}).items():
            click.echo(f"  {key}: {value}")
    output = config.get('output', {})
    click.echo("\nOutput:")
    click.echo(f"  Prefix: {output.get('prefix')}")
    click.echo(f"  DOT dump: {output.get('write_dot')}")
    click.echo(f"  Log level: {output.get('logging', {}).get('level')}")


# ============================================================================
# Assembly Commands
# ============================================================================

@main.command('alignment-filtering')
@click.option('--input-paf', '-f', required=True, type=click.Path(exists=True),
              help='All-vs-all read alignments (PAF, optionally gzipped)')
@click.option('--output-overlaps', default='overlaps.ovb', type=click.Path(),
              help='Binary overlap file to write')
@click.option('--filtered-paf', type=click.Path(), default=None,
              help='Also write the promoted alignments as PAF')
@filtering_options
@click.pass_context
def alignment_filtering(ctx, input_paf, output_overlaps, filtered_paf, config_file,
                        min_overlap_length, min_overlap_count, min_percent_identity,
                        overhang_ratio, max_overhang, threads):
    """Filter alignments into a reusable binary overlap file."""
    from .utils.pipeline import run_alignment_filtering, setup_logging

    try:
        config, params = _resolve_config(config_file, {
            'min_overlap_length': min_overlap_length,
            'min_overlap_count': min_overlap_count,
            'min_percent_identity': min_percent_identity,
            'overhang_ratio': overhang_ratio,
            'max_overhang': max_overhang,
            'threads': threads,
        })
        setup_logging(_log_level(ctx, config))
        result = run_alignment_filtering(input_paf, output_overlaps, params, filtered_paf)
    except _run_errors() as e:
        click.echo(f"✗ Alignment filtering failed: {e}", err=True)
        ctx.exit(1)

    stats = result.stats
    if not ctx.obj.get('QUIET'):
        click.echo(f"✓ Wrote {stats.dovetails:,} overlaps to {output_overlaps}")
        click.echo(f"  Alignment records: {stats.total_records:,} ({stats.malformed:,} malformed)")
        click.echo(f"  Contained reads: {stats.contained_reads:,}")


@main.command()
@click.option('--input-paf', '-f', type=click.Path(exists=True), default=None,
              help='All-vs-all read alignments (PAF)')
@click.option('--overlaps', 'overlaps_file', type=click.Path(exists=True), default=None,
              help='Binary overlap file from alignment-filtering (skips filtering)')
@click.option('--reads', '-r', required=True, type=click.Path(exists=True),
              help='Reads (FASTA/FASTQ, optionally gzipped)')
@click.option('--prefix', '-p', default=None, help='Output file prefix [unitigs]')
@click.option('--output', '-o', default='.', type=click.Path(), help='Output directory')
@click.option('--filtered-paf', type=click.Path(), default=None,
              help='Also write the promoted alignments as PAF')
@click.option('--no-dot', is_flag=True, help='Skip the DOT graph dump')
@filtering_options
@simplification_options
@click.pass_context
def assemble(ctx, input_paf, overlaps_file, reads, prefix, output, filtered_paf, no_dot,
             config_file, min_overlap_length, min_overlap_count, min_percent_identity,
             overhang_ratio, max_overhang, threads, max_bubble_length, min_support_ratio,
             max_tip_len, fuzz, cleanup_iterations, short_edge_ratio):
    """Assemble unitigs from alignments (or a binary overlap file) and reads."""
    from .utils.pipeline import AssemblyPipeline, setup_logging

    if (input_paf is None) == (overlaps_file is None):
        raise click.UsageError("Provide exactly one of --input-paf or --overlaps")

    try:
        config, params = _resolve_config(config_file, {
            'min_overlap_length': min_overlap_length,
            'min_overlap_count': min_overlap_count,
            'min_percent_identity': min_percent_identity,
            'overhang_ratio': overhang_ratio,
            'max_overhang': max_overhang,
            'threads': threads,
            'max_bubble_length': max_bubble_length,
            'min_support_ratio': min_support_ratio,
            'max_tip_len': max_tip_len,
            'fuzz': fuzz,
            'cleanup_iterations': cleanup_iterations,
            'short_edge_ratio': short_edge_ratio,
        })
        if prefix:
            config['output']['prefix'] = prefix
        if no_dot:
            config['output']['write_dot'] = False
        setup_logging(_log_level(ctx, config))

        pipeline = AssemblyPipeline(
            config=config,
            output_dir=output,
            reads_path=reads,
            paf_path=input_paf,
            overlaps_path=overlaps_file,
            filtered_paf=filtered_paf,
        )
        result = pipeline.run()
    except _run_errors() as e:
        click.echo(f"\n✗ Assembly failed: {e}", err=True)
        ctx.exit(1)

    if not ctx.obj.get('QUIET'):
        click.echo("\n" + "=" * 60)
        click.echo("✓ Assembly completed successfully!")
        click.echo("=" * 60)
        click.echo(f"Unitigs: {len(result.unitigs):,}")
        for kind, path in result.output_files.items():
            click.echo(f"  {kind}: {path}")


@main.command('graph-stats')
@click.option('--overlaps', 'overlaps_file', required=True, type=click.Path(exists=True),
              help='Binary overlap file')
@click.option('--simplify/--no-simplify', default=False,
              help='Run graph simplification before reporting')
@click.option('--config', 'config_file', type=click.Path(exists=True), default=None,
              help='YAML configuration file (simplification thresholds)')
@click.option('--json', 'as_json', is_flag=True, help='Print the summary as JSON')
@click.pass_context
def graph_stats(ctx, overlaps_file, simplify, config_file, as_json):
    """Report structural statistics of the overlap graph."""
    from .assembly_core.overlap_graph_module import build_overlap_graph
    from .assembly_core.graph_simplification_module import GraphSimplificationEngine
    from .assembly_utils.graph_analysis import summarize_graph
    from .io.overlap_store import read_overlaps
    from .utils.pipeline import setup_logging

    try:
        config, params = _resolve_config(config_file, {})
        setup_logging('WARNING' if as_json else _log_level(ctx, config))
        graph = build_overlap_graph(read_overlaps(overlaps_file))
        if simplify:
            GraphSimplificationEngine(
                fuzz=params.fuzz,
                max_tip_len=params.max_tip_len,
                max_bubble_length=params.max_bubble_length,
                min_support_ratio=params.min_support_ratio,
                short_edge_ratio=params.short_edge_ratio,
                cleanup_iterations=params.cleanup_iterations,
            ).simplify(graph)
        summary = summarize_graph(graph)
    except _run_errors() as e:
        click.echo(f"✗ Graph statistics failed: {e}", err=True)
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(summary, indent=2))
        return

    click.echo(f"Overlap graph: {overlaps_file}")
    click.echo("=" * 60)
    click.echo(f"  Reads: {summary['reads']:,}")
    click.echo(f"  Nodes: {summary['nodes']:,}")
    click.echo(f"  Arcs: {summary['arcs']:,}")
    click.echo(f"  Components: {summary['components']:,} "
               f"(largest {summary['largest_component']:,} reads, "
               f"{summary['singleton_components']:,} singletons)")
    click.echo(f"  Compressible nodes: {summary['compressible_nodes']:,} "
               f"({summary['compressible_fraction']:.1%})")
    click.echo(f"  Source runs: {summary['source_runs']:,} "
               f"(median {summary['median_source_run']:.1f} arcs)")
    click.echo(f"  In-degree histogram: {summary['in_degree_histogram']}")
    click.echo(f"  Out-degree histogram: {summary['out_degree_histogram']}")
    for row in summary['top_branching_nodes']:
        click.echo(f"  Branching: {row['node']} in={row['in']} out={row['out']}")


if __name__ == '__main__':
    sys.exit(main())

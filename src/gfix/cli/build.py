"""CLI commands for preparing a data directory and building tracks."""

import click
import logging
from pathlib import Path
from typing import Optional, Tuple

from ..configs.config_loader import load_build_config
from ..configs.track_config import BuildSettings
from ..data.sources import create_feature_source, read_fai
from ..database.builder import TrackBuilder
from ..database.registry import TrackRegistry
from ..exceptions import GfixError
from ..utils.file_utils import read_json

logger = logging.getLogger(__name__)


@click.command()
@click.option('--out', '-o', 'out_dir', type=click.Path(path_type=Path),
              default='data', help='Data directory (default: data)')
@click.option('--fai', type=click.Path(exists=True, path_type=Path),
              help='FASTA index (.fai) listing the reference sequences')
@click.option('--json', 'json_file', type=click.Path(exists=True, path_type=Path),
              help='JSON list of reference sequence objects')
@click.option('--seq', 'seqs', multiple=True,
              help='Reference sequence as NAME:LENGTH (repeatable)')
def refseqs(out_dir: Path, fai: Optional[Path], json_file: Optional[Path], seqs: Tuple[str, ...]):
    """Register the reference sequences of a data directory.

    Examples:

    \b
    # From a samtools FASTA index
    gfix refseqs --fai genome.fa.fai

    \b
    # Listed on the command line
    gfix refseqs --seq chr1:248956422 --seq chr2:242193529
    """
    logging.basicConfig(level=logging.INFO)

    entries = []
    try:
        if fai:
            entries.extend(read_fai(fai))
        if json_file:
            entries.extend(read_json(json_file))
        for seq in seqs:
            name, sep, length = seq.rpartition(':')
            if not sep or not name or not length.isdigit():
                raise click.BadParameter(f"expected NAME:LENGTH, got '{seq}'", param_hint='--seq')
            entries.append({'name': name, 'start': 0, 'end': int(length), 'length': int(length)})

        if not entries:
            raise click.UsageError("Give reference sequences with --fai, --json or --seq")

        TrackRegistry(out_dir).write_ref_seqs(entries)
    except (GfixError, ValueError, OSError) as e:
        click.echo(f"Error registering reference sequences: {e}", err=True)
        raise click.ClickException(str(e))

    click.echo(f"Registered {len(entries)} reference sequences in {out_dir}")


@click.command()
@click.option('--conf', '-c', 'conf_file', type=click.Path(path_type=Path), required=True,
              help='Build configuration file (JSON)')
@click.option('--out', '-o', 'out_dir', type=click.Path(path_type=Path),
              default='data', help='Data directory (default: data)')
@click.option('--ref', help='Only build on the reference sequence with this name')
@click.option('--refid', help='Only build on the reference sequence with this id')
@click.option('--track', 'track_label', help='Only build the track with this label')
@click.option('--compress', is_flag=True,
              help='Gzip chunk files (raises the default chunk size)')
@click.option('--chunk-bytes', type=int, default=None,
              help='Uncompressed bytes per chunk (default: 50000, x4 with --compress)')
@click.option('--sort-mem', type=int, default=None,
              help='Bytes of rows buffered before sorting spills to disk (default: 512 MiB)')
@click.option('--tmp-dir', type=click.Path(path_type=Path), default=None,
              help='Directory for temporary sort runs')
@click.option('--workers', '-w', type=int, default=1,
              help='Number of worker processes (default: 1)')
@click.option('--progress/--no-progress', default=False,
              help='Show per-track progress bars')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Only report warnings and errors')
def build(conf_file: Path, out_dir: Path, ref: Optional[str], refid: Optional[str],
          track_label: Optional[str], compress: bool, chunk_bytes: Optional[int],
          sort_mem: Optional[int], tmp_dir: Optional[Path], workers: int,
          progress: bool, verbose: bool, quiet: bool):
    """Build chunked feature tracks from a feature database.

    Every configured track is built on every registered reference
    sequence. A track that fails is reported and the others continue.

    Examples:

    \b
    # Build all tracks
    gfix build --conf tracks.json

    \b
    # Rebuild one track on chr1 with compression and 4 workers
    gfix build -c tracks.json --ref chr1 --track genes --compress -w 4
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    elif quiet:
        logging.basicConfig(level=logging.WARNING)
    else:
        logging.basicConfig(level=logging.INFO)

    settings = BuildSettings(
        chunk_bytes=chunk_bytes,
        compress=compress,
        workers=max(1, workers),
        progress=progress,
        tmp_dir=tmp_dir,
    )
    if sort_mem is not None:
        settings.sort_memory = sort_mem

    try:
        config = load_build_config(conf_file)
        source = create_feature_source(config.db_adaptor, config.db_args, base_dir=config.base_dir)
        builder = TrackBuilder(TrackRegistry(out_dir), source, settings)
        stats = builder.build_all(config, ref=ref, refid=refid, track=track_label)
    except GfixError as e:
        click.echo(f"Error building tracks: {e}", err=True)
        raise click.ClickException(str(e))

    if not quiet:
        click.echo("\n" + "=" * 60)
        click.echo("TRACK BUILD COMPLETED")
        click.echo("=" * 60)
        click.echo(f"Tracks built: {stats.tracks_built:,}")
        click.echo(f"Tracks without features: {stats.tracks_empty:,}")
        click.echo(f"Tracks failed: {stats.tracks_failed:,}")
        click.echo(f"Features written: {stats.features_written:,}")
        click.echo(f"Rows written: {stats.rows_written:,}")
        click.echo(f"Features skipped: {stats.features_skipped:,}")
        click.echo(f"Build time: {stats.build_time_seconds:.1f} seconds")
        click.echo(f"Data directory: {out_dir}")

    if stats.failures:
        for error in stats.failures:
            click.echo(f"  {error}", err=True)
        raise click.ClickException(f"{len(stats.failures)} track(s) failed to build")

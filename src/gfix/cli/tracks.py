"""CLI commands for inspecting built tracks."""

import click
import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from ..database.reader import TrackReader
from ..database.registry import TrackRegistry
from ..exceptions import GfixError
from ..utils.file_utils import read_json

logger = logging.getLogger(__name__)


def _published_tracks(registry: TrackRegistry, label: Optional[str] = None,
                      ref: Optional[str] = None) -> List[Tuple[str, str]]:
    """(label, ref) pairs of published tracks, optionally filtered."""
    pairs = []
    for entry in registry.track_entries():
        if label is not None and entry['label'] != label:
            continue
        for track_ref in registry.track_refs(entry['label']):
            if ref is None or track_ref == ref:
                pairs.append((entry['label'], track_ref))
    return pairs


@click.command()
@click.argument('track')
@click.argument('ref')
@click.argument('start', type=int)
@click.argument('end', type=int)
@click.option('--data', '-d', 'data_dir', type=click.Path(exists=True, path_type=Path),
              default='data', help='Data directory (default: data)')
@click.option('--features', 'as_features', is_flag=True,
              help='Print assembled features instead of raw rows')
def query(track: str, ref: str, start: int, end: int, data_dir: Path, as_features: bool):
    """Print rows of TRACK on REF overlapping [START, END).

    Coordinates are 0-based and half-open. Output is one JSON value per line.
    """
    try:
        reader = TrackReader(data_dir, track, ref)
        if as_features:
            for feature in reader.query_features(start, end):
                click.echo(json.dumps(feature.to_dict(), separators=(',', ':')))
        else:
            for row in reader.query_rows(start, end):
                click.echo(json.dumps(row, separators=(',', ':')))
    except (GfixError, FileNotFoundError) as e:
        raise click.ClickException(str(e))


@click.command()
@click.argument('name')
@click.option('--data', '-d', 'data_dir', type=click.Path(exists=True, path_type=Path),
              default='data', help='Data directory (default: data)')
@click.option('--track', help='Only search this track')
def names(name: str, data_dir: Path, track: Optional[str]):
    """Look up features by NAME or ID (case-insensitive)."""
    registry = TrackRegistry(data_dir)
    try:
        if track:
            records = []
            for label, ref in _published_tracks(registry, label=track):
                records.extend(TrackReader(data_dir, label, ref).lookup_name(name))
        else:
            records = registry.lookup_name(name)
    except (GfixError, FileNotFoundError) as e:
        raise click.ClickException(str(e))

    if not records:
        click.echo(f"No features named '{name}'")
        return

    for record in records:
        click.echo(f"{record.track}\t{record.ref}:{record.start}-{record.end}\t"
                   f"{', '.join(record.names)}")


@click.command()
@click.argument('track', required=False)
@click.argument('ref', required=False)
@click.option('--data', '-d', 'data_dir', type=click.Path(exists=True, path_type=Path),
              default='data', help='Data directory (default: data)')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def verify(track: Optional[str], ref: Optional[str], data_dir: Path, verbose: bool):
    """Check built tracks against their manifests.

    Verifies every published track, or only TRACK (on REF).
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    pairs = _published_tracks(TrackRegistry(data_dir), label=track, ref=ref)
    if not pairs:
        raise click.ClickException("No published tracks to verify")

    failed = 0
    for label, track_ref in pairs:
        try:
            results = TrackReader(data_dir, label, track_ref).verify_track()
        except (GfixError, FileNotFoundError, ValueError) as e:
            results = {'valid': False, 'errors': [str(e)], 'statistics': {}}

        status = "VALID" if results['valid'] else "INVALID"
        click.echo(f"{label} on {track_ref}: {status}")

        errors = results['errors']
        for error in errors[:10]:
            click.echo(f"  - {error}")
        if len(errors) > 10:
            click.echo(f"  ... and {len(errors) - 10} more errors")
        if not results['valid']:
            failed += 1

    if failed:
        raise click.ClickException(f"{failed} of {len(pairs)} tracks failed verification")


@click.command()
@click.option('--data', '-d', 'data_dir', type=click.Path(exists=True, path_type=Path),
              default='data', help='Data directory (default: data)')
def info(data_dir: Path):
    """Show reference sequences, tracks and the last build."""
    registry = TrackRegistry(data_dir)

    click.echo("Track Data Information")
    click.echo("=" * 60)

    try:
        ref_seqs = registry.ref_seqs()
        pairs = _published_tracks(registry)
    except GfixError as e:
        raise click.ClickException(str(e))

    click.echo(f"Reference sequences: {len(ref_seqs)}")

    metadata_file = data_dir / 'build_metadata.json'
    if metadata_file.exists():
        metadata = read_json(metadata_file)
        click.echo(f"Last build: {metadata.get('tracks_built', 0)} built, "
                   f"{metadata.get('tracks_failed', 0)} failed, "
                   f"{metadata.get('features_skipped', 0):,} features skipped")

    if not pairs:
        click.echo("No tracks built. Run 'gfix build' first.")
        return

    click.echo(f"\n{'Track':<24}{'Ref':<16}{'Features':>12}{'Chunks':>8}{'Size (KB)':>12}")
    for label, ref in pairs:
        try:
            stats = TrackReader(data_dir, label, ref).get_statistics()
        except (FileNotFoundError, ValueError) as e:
            click.echo(f"{label:<24}{ref:<16}  unreadable: {e}")
            continue
        click.echo(f"{label:<24}{ref:<16}{stats['feature_count']:>12,}"
                   f"{stats['chunk_count']:>8}{stats['disk_bytes'] / 1024:>12.1f}")

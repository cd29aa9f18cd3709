"""Track builder: drives sources through the flatten/sort/chunk pipeline.

For every (reference sequence, track) unit the builder pulls features
from the source, flattens them into rows, feeds primary-feature names to
the name index and all rows to the external sorter, then drains the
sorted stream into the chunk writer. The finished track is published
through the registry. Units are independent; a failed unit is reported
and the batch moves on.
"""

import logging
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from ..configs.config_loader import BuildConfig
from ..configs.track_config import BuildSettings, assemble_track_config
from ..core.chunk_writer import ChunkedTrackWriter
from ..core.flattener import FeatureFlattener
from ..core.name_index import NameIndexBuilder
from ..core.sorter import ExternalSorter
from ..data.compression import get_codec
from ..data.sources import FeatureSource
from ..exceptions import ConfigError, FeatureError, GfixError, TrackBuildError
from ..utils.file_utils import sanitize_filename, write_json_atomic
from .registry import NAMES_DIRNAME, TrackRegistry, TrackStorage
from .schema import TrackManifest

logger = logging.getLogger(__name__)


BUILD_METADATA_FILENAME = 'build_metadata.json'


@dataclass
class TrackResult:
    """Outcome of one (reference sequence, track) unit."""
    ref: str
    label: str
    status: str = 'pending'  # built, empty or failed
    feature_count: int = 0
    row_count: int = 0
    chunk_count: int = 0
    runs_spilled: int = 0
    elapsed_seconds: float = 0.0
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    storage: Optional[TrackStorage] = None
    manifest: Optional[TrackManifest] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ref': self.ref,
            'track': self.label,
            'status': self.status,
            'feature_count': self.feature_count,
            'row_count': self.row_count,
            'chunk_count': self.chunk_count,
            'runs_spilled': self.runs_spilled,
            'features_skipped': len(self.skipped),
            'elapsed_seconds': round(self.elapsed_seconds, 3),
        }


@dataclass
class BuildStats:
    """Statistics for a batch of track builds."""
    tracks_built: int = 0
    tracks_empty: int = 0
    tracks_failed: int = 0
    features_written: int = 0
    rows_written: int = 0
    features_skipped: int = 0
    build_time_seconds: float = 0.0
    results: List[TrackResult] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[TrackBuildError] = field(default_factory=list)

    def record(self, result: TrackResult) -> None:
        """Add a finished unit to the totals."""
        self.results.append(result)
        self.skipped.extend(result.skipped)
        self.features_skipped += len(result.skipped)
        if result.status == 'built':
            self.tracks_built += 1
            self.features_written += result.feature_count
            self.rows_written += result.row_count
        elif result.status == 'empty':
            self.tracks_empty += 1

    def record_failure(self, error: TrackBuildError) -> None:
        self.failures.append(error)
        self.tracks_failed += 1


def build_track_unit(root: Path, source: FeatureSource, settings: BuildSettings,
                     ref: str, track_config: Dict[str, Any],
                     merged_config: Dict[str, Any]) -> TrackResult:
    """Build one track on one reference sequence into a staging directory.

    Runs in the calling process or in a pool worker. The result carries
    the staging handle and manifest; publishing is left to the caller.
    Malformed features are skipped and listed in ``TrackResult.skipped``.

    Args:
        root: Registry root directory
        source: Feature source
        settings: Build settings
        ref: Reference sequence name
        track_config: Track options as written in the configuration
        merged_config: Track options merged with the track defaults

    Returns:
        Result with status ``built`` or ``empty``

    Raises:
        TrackBuildError: If the unit failed; its staging directory is removed
    """
    registry = TrackRegistry(root)
    label = track_config['track']
    feature_types = track_config.get('feature') or []
    result = TrackResult(ref=ref, label=label)
    started = time.time()

    if not feature_types:
        logger.info(f"Track '{label}' lists no feature types, skipping")
        result.status = 'empty'
        return result

    try:
        storage = registry.allocate(label, ref)
    except GfixError as e:
        raise TrackBuildError(ref, label, 0, e) from e

    try:
        flattener = FeatureFlattener(label, merged_config)
        names = NameIndexBuilder(storage.names_directory, hash_chars=settings.name_hash_chars)

        with ExternalSorter(settings.sort_memory, flattener.start_index, flattener.end_index,
                            tmp_dir=settings.tmp_dir) as sorter:
            features = tqdm(source.features(ref, feature_types), desc=f"{label} on {ref}",
                            unit=' features', disable=not settings.progress)
            for feature in features:
                try:
                    flat = flattener.flatten(feature, ref)
                except FeatureError as e:
                    logger.warning(f"Skipping feature {e.feature_id or feature.label} "
                                   f"in '{label}' on '{ref}': {e}")
                    result.skipped.append({
                        'ref': ref,
                        'track': label,
                        'feature': e.feature_id or feature.label,
                        'error': type(e).__name__,
                        'message': str(e),
                    })
                    continue

                if flat.name_record is not None:
                    names.add_name(flat.name_record)
                for row in flat.rows:
                    sorter.add(row)
                result.feature_count += 1

            sorter.finish()
            result.runs_spilled = sorter.runs_spilled
            logger.info(f"Got {result.feature_count:,} features for '{label}' on '{ref}'")

            if result.feature_count == 0:
                registry.discard(storage)
                result.status = 'empty'
                result.elapsed_seconds = time.time() - started
                return result

            writer = ChunkedTrackWriter(
                storage.directory,
                flattener.headers,
                chunk_bytes=settings.resolved_chunk_bytes(),
                codec=get_codec('gzip' if settings.compress else None),
                label=label,
                ref=ref,
                start_index=flattener.start_index,
                end_index=flattener.end_index,
            )
            for row in sorter:
                writer.add_sorted(row)

        name_index = None
        if names.record_count:
            names.finalize()
            name_index = NAMES_DIRNAME
        manifest = writer.finish(name_index=name_index)

    except Exception as e:
        registry.discard(storage)
        if not isinstance(e, GfixError):
            logger.exception(f"Unexpected error in '{label}' on '{ref}'")
        raise TrackBuildError(ref, label, result.feature_count, e) from e
    except BaseException:
        registry.discard(storage)
        raise

    result.status = 'built'
    result.row_count = manifest.row_count
    result.chunk_count = len(manifest.chunks)
    result.storage = storage
    result.manifest = manifest
    result.elapsed_seconds = time.time() - started
    return result


class TrackBuilder:
    """Builds configured tracks into a registry."""

    def __init__(self, registry: TrackRegistry, source: FeatureSource,
                 settings: Optional[BuildSettings] = None):
        """Initialize track builder.

        Args:
            registry: Registry that owns the output layout
            source: Feature source for all tracks
            settings: Build settings (defaults if omitted)
        """
        self.registry = registry
        self.source = source
        self.settings = settings or BuildSettings()

    def merged_config(self, track_config: Dict[str, Any],
                      defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Track options merged over the defaults, as stored in the track list."""
        overrides = {'key': track_config['track']}
        overrides.update(track_config)
        overrides['compress'] = self.settings.compress
        return assemble_track_config(defaults, overrides)

    def build_track(self, ref: str, track_config: Dict[str, Any],
                    defaults: Optional[Dict[str, Any]] = None) -> TrackResult:
        """Build and publish one track on one reference sequence.

        Tracks without features are not registered.

        Raises:
            TrackBuildError: If building or publishing failed
        """
        merged = self.merged_config(track_config, defaults)
        result = build_track_unit(self.registry.root, self.source, self.settings,
                                  ref, track_config, merged)
        return self._publish(result, merged)

    def _publish(self, result: TrackResult, merged: Dict[str, Any]) -> TrackResult:
        if result.status != 'built':
            return result
        try:
            self.registry.register(result.storage, result.manifest, merged)
        except GfixError as e:
            self.registry.discard(result.storage)
            raise TrackBuildError(result.ref, result.label, result.feature_count, e) from e
        return result

    def build_all(self, config: BuildConfig, ref: Optional[str] = None,
                  refid: Optional[str] = None, track: Optional[str] = None) -> BuildStats:
        """Build every configured track on every selected reference sequence.

        Args:
            config: Build configuration
            ref: Only this reference sequence (by name)
            refid: Only this reference sequence (by id)
            track: Only the track with this label

        Returns:
            Batch statistics, including per-unit failures

        Raises:
            ConfigError: If ``track`` names no configured track, or two track
                labels map to the same directory
            RegistryError: If no reference sequences match
        """
        started = time.time()
        ref_seqs = self.registry.select_ref_seqs(ref=ref, refid=refid)
        tracks = config.select_tracks(track)
        if track is not None and not tracks:
            raise ConfigError(f"No track labelled '{track}' in the configuration")

        stored_as = {}
        for track_config in tracks:
            label = track_config['track']
            other = stored_as.setdefault(sanitize_filename(label), label)
            if other != label:
                raise ConfigError(f"Track labels '{other}' and '{label}' would share "
                                  f"the directory '{sanitize_filename(label)}'")

        units = [(ref_seq['name'], track_config)
                 for ref_seq in ref_seqs for track_config in tracks]
        logger.info(f"Building {len(tracks)} tracks on {len(ref_seqs)} reference sequences "
                    f"({len(units)} units, {self.settings.workers} workers)")

        stats = BuildStats()
        if self.settings.workers > 1 and len(units) > 1:
            self._build_parallel(units, config.track_defaults, stats)
        else:
            for seg_name, track_config in units:
                logger.info(f"Working on track '{track_config['track']}' on '{seg_name}'")
                try:
                    stats.record(self.build_track(seg_name, track_config, config.track_defaults))
                except TrackBuildError as e:
                    logger.error(str(e))
                    stats.record_failure(e)

        stats.build_time_seconds = time.time() - started
        logger.info(f"Build completed in {stats.build_time_seconds:.1f}s: "
                    f"{stats.tracks_built} built, {stats.tracks_empty} empty, "
                    f"{stats.tracks_failed} failed, {stats.features_skipped:,} features skipped")

        self._write_build_metadata(stats, ref_seqs)
        return stats

    def _build_parallel(self, units: List[tuple], defaults: Dict[str, Any],
                        stats: BuildStats) -> None:
        """Build units in worker processes; publish in this process."""
        with ProcessPoolExecutor(max_workers=self.settings.workers) as executor:
            futures = {}
            for seg_name, track_config in units:
                merged = self.merged_config(track_config, defaults)
                future = executor.submit(build_track_unit, self.registry.root, self.source,
                                         self.settings, seg_name, track_config, merged)
                futures[future] = (seg_name, track_config['track'], merged)

            for future in as_completed(futures):
                seg_name, label, merged = futures[future]
                try:
                    stats.record(self._publish(future.result(), merged))
                except TrackBuildError as e:
                    logger.error(str(e))
                    stats.record_failure(e)
                except Exception as e:
                    # Worker died or its result could not be sent back
                    error = TrackBuildError(seg_name, label, 0, e)
                    logger.error(str(error))
                    stats.record_failure(error)

    def _write_build_metadata(self, stats: BuildStats, ref_seqs: List[Dict[str, Any]]) -> None:
        """Write metadata about the build batch."""
        metadata = {
            'build_time': time.time(),
            'build_duration_seconds': stats.build_time_seconds,
            'settings': self.settings.to_dict(),
            'ref_seqs': [ref_seq['name'] for ref_seq in ref_seqs],
            'tracks_built': stats.tracks_built,
            'tracks_empty': stats.tracks_empty,
            'tracks_failed': stats.tracks_failed,
            'features_written': stats.features_written,
            'rows_written': stats.rows_written,
            'features_skipped': stats.features_skipped,
            'units': [result.to_dict() for result in stats.results],
            'skipped': stats.skipped,
            'failures': [
                {
                    'ref': error.ref,
                    'track': error.track,
                    'feature_count': error.feature_count,
                    'error': type(error.cause).__name__,
                    'message': str(error.cause),
                }
                for error in stats.failures
            ],
        }

        metadata_file = self.registry.root / BUILD_METADATA_FILENAME
        write_json_atomic(metadata_file, metadata, indent=2)
        logger.info(f"Build metadata written to: {metadata_file}")

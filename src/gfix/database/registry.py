"""Track registry: on-disk layout of a data directory.

Layout under the registry root::

    seq/refSeqs.json                    reference sequences
    trackList.json                      one entry per track label
    tracks/<label>/<ref>/trackData.json track manifest
    tracks/<label>/<ref>/lf-<id>.json   chunk payloads
    tracks/<label>/<ref>/names/         name index buckets

A track is built in a private staging directory next to its final
location and published with a rename, so a reader never sees a partly
written track.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.name_index import NameIndex
from ..exceptions import RegistryError
from ..utils.file_utils import ensure_output_dir, read_json, sanitize_filename, write_json_atomic
from .schema import FORMAT_VERSION, NameRecord, TrackManifest

logger = logging.getLogger(__name__)


REFSEQS_PATH = Path('seq') / 'refSeqs.json'
TRACK_LIST_FILENAME = 'trackList.json'
TRACKS_DIRNAME = 'tracks'
NAMES_DIRNAME = 'names'
MANIFEST_FILENAME = 'trackData.json'

_STAGING_MARKER = '.staging-'


@dataclass
class TrackStorage:
    """Handle on the staging directory of one track under construction."""
    label: str
    ref: str
    directory: Path
    final_directory: Path

    @property
    def names_directory(self) -> Path:
        return self.directory / NAMES_DIRNAME


class TrackRegistry:
    """Owns the directory and manifest layout of a data directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def tracks_dir(self) -> Path:
        return self.root / TRACKS_DIRNAME

    @property
    def track_list_path(self) -> Path:
        return self.root / TRACK_LIST_FILENAME

    def track_dir(self, label: str, ref: str) -> Path:
        """Published directory of a track on one reference sequence."""
        return self.tracks_dir / sanitize_filename(label) / sanitize_filename(ref)

    def manifest_path(self, label: str, ref: str) -> Path:
        return self.track_dir(label, ref) / MANIFEST_FILENAME

    # Reference sequences ---------------------------------------------------

    def ref_seqs(self) -> List[Dict[str, Any]]:
        """Reference sequences known to this data directory."""
        path = self.root / REFSEQS_PATH
        if not path.exists():
            return []
        try:
            return read_json(path)
        except (OSError, ValueError) as e:
            raise RegistryError(f"Could not read reference sequences from {path}: {e}") from e

    def write_ref_seqs(self, ref_seqs: List[Dict[str, Any]]) -> None:
        """Replace the reference sequence list.

        Each entry needs a ``name``; ``id``, ``start``, ``end`` and
        ``length`` are kept when present.
        """
        entries = []
        for ref_seq in ref_seqs:
            if not ref_seq.get('name'):
                raise RegistryError(f"Reference sequence entry without a name: {ref_seq!r}")
            entry = dict(ref_seq)
            if 'length' in entry and 'end' not in entry:
                entry.setdefault('start', 0)
                entry['end'] = entry['start'] + entry['length']
            entries.append(entry)

        path = self.root / REFSEQS_PATH
        try:
            ensure_output_dir(path.parent)
            write_json_atomic(path, entries, indent=2)
        except OSError as e:
            raise RegistryError(f"Could not write reference sequences to {path}: {e}") from e
        logger.info(f"Registered {len(entries)} reference sequences")

    def select_ref_seqs(self, ref: Optional[str] = None, refid: Optional[str] = None) -> List[Dict[str, Any]]:
        """Pick the reference sequences to process.

        Args:
            ref: Only the sequence with this name
            refid: Only the sequence with this id (takes precedence over ``ref``)

        Raises:
            RegistryError: If nothing matches, or no sequences are registered
        """
        ref_seqs = self.ref_seqs()
        if refid is not None:
            ref_seqs = [r for r in ref_seqs if str(r.get('id')) == str(refid)]
            if not ref_seqs:
                raise RegistryError(f"No reference sequence with id '{refid}' "
                                    f"(register reference sequences first)")
        elif ref is not None:
            ref_seqs = [r for r in ref_seqs if r.get('name') == ref]
            if not ref_seqs:
                raise RegistryError(f"No reference sequence named '{ref}' "
                                    f"(register reference sequences first)")
        if not ref_seqs:
            raise RegistryError(f"No reference sequences registered in {self.root}")
        return ref_seqs

    # Track storage ---------------------------------------------------------

    def allocate(self, label: str, ref: str) -> TrackStorage:
        """Create a private staging directory for a new build of a track.

        Raises:
            RegistryError: If another track label or reference sequence
                already maps to the same directory, or storage failed
        """
        self._check_directory_clash(label, ref)
        final_directory = self.track_dir(label, ref)
        try:
            ensure_output_dir(final_directory.parent)
            staging = tempfile.mkdtemp(
                prefix=f".{final_directory.name}{_STAGING_MARKER}",
                dir=final_directory.parent,
            )
        except OSError as e:
            raise RegistryError(f"Could not allocate storage for track '{label}' on '{ref}': {e}") from e

        logger.debug(f"Allocated staging directory {staging} for '{label}' on '{ref}'")
        return TrackStorage(label=label, ref=ref, directory=Path(staging),
                            final_directory=final_directory)

    def _check_directory_clash(self, label: str, ref: str) -> None:
        label_dir = sanitize_filename(label)
        for entry in self._read_track_list().get('tracks', []):
            other = entry.get('label')
            if other is not None and other != label and sanitize_filename(other) == label_dir:
                raise RegistryError(f"Track label '{label}' clashes with registered track "
                                    f"'{other}' (both stored under '{label_dir}')")

        ref_dir = sanitize_filename(ref)
        for ref_seq in self.ref_seqs():
            other = ref_seq.get('name')
            if other is not None and other != ref and sanitize_filename(other) == ref_dir:
                raise RegistryError(f"Reference sequence '{ref}' clashes with '{other}' "
                                    f"(both stored under '{ref_dir}')")

    def discard(self, storage: TrackStorage) -> None:
        """Remove a staging directory without publishing it."""
        if storage.directory.exists():
            logger.debug(f"Discarding staging directory {storage.directory}")
            shutil.rmtree(storage.directory, ignore_errors=True)

    def register(self, storage: TrackStorage, manifest: TrackManifest,
                 track_config: Optional[Dict[str, Any]] = None) -> Path:
        """Publish a finished track and record it in the track list.

        The staging directory replaces any earlier build of the same
        track. The track list entry for the label is inserted or updated.

        Args:
            storage: Staging handle returned by ``allocate``
            manifest: Manifest written by the chunk writer
            track_config: Merged track configuration for the track list entry

        Returns:
            Published track directory

        Raises:
            RegistryError: If the manifest is missing or publishing fails
        """
        if not (storage.directory / MANIFEST_FILENAME).exists():
            raise RegistryError(f"Refusing to register track '{storage.label}' on "
                                f"'{storage.ref}': no manifest in {storage.directory}")

        final_directory = storage.final_directory
        retired = None
        try:
            # mkdtemp creates owner-only directories
            os.chmod(storage.directory, 0o755)
            if final_directory.exists():
                retired = Path(tempfile.mkdtemp(prefix=f".{final_directory.name}.old-",
                                                dir=final_directory.parent))
                os.replace(final_directory, retired / final_directory.name)
            os.replace(storage.directory, final_directory)
        except OSError as e:
            if retired is not None and not final_directory.exists():
                os.replace(retired / final_directory.name, final_directory)
            raise RegistryError(f"Could not publish track '{storage.label}' on "
                                f"'{storage.ref}': {e}") from e
        finally:
            if retired is not None:
                shutil.rmtree(retired, ignore_errors=True)

        self._upsert_track_entry(storage.label, manifest, track_config or {})
        logger.info(f"Registered track '{storage.label}' on '{storage.ref}' "
                    f"({manifest.feature_count:,} features)")
        return final_directory

    # Track list ------------------------------------------------------------

    def _read_track_list(self) -> Dict[str, Any]:
        if not self.track_list_path.exists():
            return {'formatVersion': FORMAT_VERSION, 'tracks': []}
        try:
            return read_json(self.track_list_path)
        except (OSError, ValueError) as e:
            raise RegistryError(f"Could not read {self.track_list_path}: {e}") from e

    def _upsert_track_entry(self, label: str, manifest: TrackManifest,
                            track_config: Dict[str, Any]) -> None:
        track_list = self._read_track_list()

        entry = dict(track_config)
        entry.update({
            'label': label,
            'key': track_config.get('key', label),
            'type': 'FeatureTrack',
            'urlTemplate': f"{TRACKS_DIRNAME}/{sanitize_filename(label)}/{{refseq}}/{MANIFEST_FILENAME}",
            'compress': manifest.compression is not None,
        })

        tracks = [t for t in track_list.get('tracks', []) if t.get('label') != label]
        tracks.append(entry)
        track_list['tracks'] = tracks

        try:
            write_json_atomic(self.track_list_path, track_list, indent=2)
        except OSError as e:
            raise RegistryError(f"Could not update {self.track_list_path}: {e}") from e

    def track_entries(self) -> List[Dict[str, Any]]:
        """Track list entries, in registration order."""
        return list(self._read_track_list().get('tracks', []))

    def track_refs(self, label: str) -> List[str]:
        """Reference sequences for which a track has been published."""
        label_dir = self.tracks_dir / sanitize_filename(label)
        if not label_dir.exists():
            return []
        return sorted(
            path.name for path in label_dir.iterdir()
            if path.is_dir() and not path.name.startswith('.')
            and (path / MANIFEST_FILENAME).exists()
        )

    def lookup_name(self, name: str) -> List[NameRecord]:
        """Search every published track for a feature name or ID."""
        results: List[NameRecord] = []
        for entry in self.track_entries():
            label = entry['label']
            for ref in self.track_refs(label):
                names_dir = self.track_dir(label, ref) / NAMES_DIRNAME
                if not names_dir.exists():
                    continue
                results.extend(NameIndex(names_dir).lookup(name))
        return results

"""
Track Reader

Range queries over a published track. The interval index in the
manifest selects the chunks that can hold overlapping rows, so a query
only decodes those chunk files.
"""

import json
import logging
import zlib
from pathlib import Path
from typing import Any, Dict, Iterator, List

from ..core.flattener import assemble
from ..core.interval_index import IntervalIndex, effective_end, overlaps
from ..core.name_index import NameIndex
from ..core.sorter import interval_sort_key
from ..data.compression import is_gzip_file, read_payload
from ..data.features import Feature
from ..exceptions import SchemaViolationError
from .registry import TrackRegistry
from .schema import NameRecord, PRIMARY_CLASS, SUBFEATURE_CLASS, TrackManifest, check_row

logger = logging.getLogger(__name__)


class TrackReader:
    """Reader for one published track on one reference sequence."""

    def __init__(self, root: Path, label: str, ref: str):
        """Initialize reader and load the track manifest.

        Args:
            root: Registry root directory
            label: Track label
            ref: Reference sequence name
        """
        self.registry = TrackRegistry(root)
        self.label = label
        self.ref = ref
        self.track_dir = self.registry.track_dir(label, ref)

        manifest_file = self.registry.manifest_path(label, ref)
        if not manifest_file.exists():
            raise FileNotFoundError(f"Track '{label}' on '{ref}' not found: {manifest_file}")

        with open(manifest_file, 'r', encoding='utf-8') as f:
            self.manifest = TrackManifest.from_dict(json.load(f))

        self.index = IntervalIndex.from_list(self.manifest.interval_index)
        self._start = self.manifest.start_index
        self._end = self.manifest.end_index

    def read_chunk(self, chunk_id: int) -> List[List[Any]]:
        """Decode all rows of one chunk."""
        chunk = self.manifest.chunk(chunk_id)
        return json.loads(read_payload(self.track_dir / chunk.file))

    def chunk_ids_for(self, start: int, end: int) -> List[int]:
        """Ids of the chunks whose extent overlaps ``[start, end)``."""
        return self.index.query(start, end)

    def query_rows(self, start: int, end: int) -> Iterator[List[Any]]:
        """Yield rows overlapping ``[start, end)`` in sort order.

        Both primary and sub-feature rows are returned.
        """
        for chunk_id in self.chunk_ids_for(start, end):
            for row in self.read_chunk(chunk_id):
                if overlaps(row[self._start], row[self._end], start, end):
                    yield row

    def query_features(self, start: int, end: int) -> List[Feature]:
        """Features whose primary row overlaps ``[start, end)``, with sub-features.

        Sub-features are collected from the span of the matching primary
        features, so a sub-feature lying outside its parent is not attached.
        """
        primaries = [row for row in self.query_rows(start, end) if row[0] == PRIMARY_CLASS]
        if not primaries:
            return []

        span_start = min(row[self._start] for row in primaries)
        span_end = max(effective_end(row[self._start], row[self._end]) for row in primaries)
        subfeatures = [row for row in self.query_rows(span_start, span_end)
                       if row[0] == SUBFEATURE_CLASS]

        return assemble(primaries + subfeatures, self.manifest.headers, ref=self.ref)

    def iter_rows(self) -> Iterator[List[Any]]:
        """Yield every row of the track in sort order."""
        for chunk in self.manifest.chunks:
            yield from self.read_chunk(chunk.id)

    def lookup_name(self, name: str) -> List[NameRecord]:
        """Find features of this track by name or ID (case-insensitive)."""
        if not self.manifest.name_index:
            return []
        return NameIndex(self.track_dir / self.manifest.name_index).lookup(name)

    def get_statistics(self) -> Dict[str, Any]:
        """Summary statistics of the track."""
        chunks = self.manifest.chunks
        payload_bytes = sum(chunk.bytes for chunk in chunks)
        disk_bytes = sum((self.track_dir / chunk.file).stat().st_size for chunk in chunks)

        return {
            'label': self.label,
            'ref': self.ref,
            'feature_count': self.manifest.feature_count,
            'row_count': self.manifest.row_count,
            'chunk_count': len(chunks),
            'chunk_bytes': self.manifest.chunk_bytes,
            'compression': self.manifest.compression,
            'min_start': self.manifest.min_start,
            'max_end': self.manifest.max_end,
            'payload_bytes': payload_bytes,
            'disk_bytes': disk_bytes,
            'largest_chunk_bytes': max((chunk.bytes for chunk in chunks), default=0),
            'mean_rows_per_chunk': (self.manifest.row_count / len(chunks)) if chunks else 0.0,
            'has_name_index': self.manifest.name_index is not None,
        }

    def verify_track(self) -> Dict[str, Any]:
        """Check the track's chunks against its manifest.

        Verifies that every chunk decodes, that row counts and sizes match
        the manifest, that rows are sorted across chunk boundaries, that
        every row lies inside its chunk's extent, and that the interval
        index finds every chunk.

        Returns:
            Verification results with ``valid``, ``errors`` and ``statistics``
        """
        logger.info(f"Verifying track '{self.label}' on '{self.ref}'...")

        results = {
            'valid': True,
            'errors': [],
            'statistics': {},
        }
        errors = results['errors']

        key = interval_sort_key(self._start, self._end)
        last_key = None
        last_chunk_start = None
        total_rows = 0
        total_features = 0

        if len(self.index) != len(self.manifest.chunks):
            errors.append(f"Interval index holds {len(self.index)} chunks, "
                          f"manifest lists {len(self.manifest.chunks)}")

        for chunk in self.manifest.chunks:
            path = self.track_dir / chunk.file
            if not path.exists():
                errors.append(f"Chunk {chunk.id}: file {chunk.file} is missing")
                continue

            if (self.manifest.compression == 'gzip') != is_gzip_file(path):
                errors.append(f"Chunk {chunk.id}: compression does not match the manifest")

            try:
                payload = read_payload(path)
                rows = json.loads(payload)
            except (OSError, ValueError, EOFError, zlib.error) as e:
                errors.append(f"Chunk {chunk.id}: could not decode {chunk.file}: {e}")
                continue

            if len(payload) != chunk.bytes:
                errors.append(f"Chunk {chunk.id}: payload is {len(payload)} bytes, "
                              f"manifest says {chunk.bytes}")
            if len(payload) > self.manifest.chunk_bytes and len(rows) > 1:
                errors.append(f"Chunk {chunk.id}: {len(payload)} bytes exceeds the "
                              f"{self.manifest.chunk_bytes} byte budget")
            if len(rows) != chunk.rows:
                errors.append(f"Chunk {chunk.id}: holds {len(rows)} rows, manifest says {chunk.rows}")

            if last_chunk_start is not None and chunk.start < last_chunk_start:
                errors.append(f"Chunk {chunk.id}: starts before the previous chunk")
            last_chunk_start = chunk.start

            if chunk.id not in self.index.query(chunk.start, chunk.end):
                errors.append(f"Chunk {chunk.id}: not found by the interval index")

            for row in rows:
                try:
                    check_row(row, self.manifest.headers)
                except SchemaViolationError as e:
                    errors.append(f"Chunk {chunk.id}: {e}")
                    continue

                row_key = key(row)
                if last_key is not None and row_key < last_key:
                    errors.append(f"Chunk {chunk.id}: row at {row[self._start]} is out of order")
                last_key = row_key

                if row[self._start] < chunk.start or \
                        effective_end(row[self._start], row[self._end]) > chunk.end:
                    errors.append(f"Chunk {chunk.id}: row {row[self._start]}-{row[self._end]} "
                                  f"lies outside [{chunk.start}, {chunk.end})")

                total_rows += 1
                if row[0] == PRIMARY_CLASS:
                    total_features += 1

        if total_rows != self.manifest.row_count:
            errors.append(f"Track holds {total_rows} rows, manifest says {self.manifest.row_count}")
        if total_features != self.manifest.feature_count:
            errors.append(f"Track holds {total_features} features, "
                          f"manifest says {self.manifest.feature_count}")

        results['valid'] = not errors
        results['statistics'] = {
            'chunks_checked': len(self.manifest.chunks),
            'rows_checked': total_rows,
            'features_checked': total_features,
        }

        logger.info(f"Track verification complete: "
                    f"{'VALID' if results['valid'] else 'INVALID'}")
        return results

"""Write a sorted row stream as size-bounded chunks plus an interval index."""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from ..data.compression import Codec, IdentityCodec
from ..database.schema import (ChunkInfo, HeaderSchema, TrackManifest,
                               PRIMARY_CLASS, check_row)
from ..exceptions import ChunkWriteError, InvariantError, SortOrderError
from ..utils.file_utils import atomic_write_bytes, write_json_atomic
from .interval_index import IntervalIndex, effective_end
from .sorter import interval_sort_key

logger = logging.getLogger(__name__)


DEFAULT_CHUNK_BYTES = 50000
COMPRESSED_CHUNK_MULTIPLIER = 4

MANIFEST_FILENAME = 'trackData.json'


class ChunkedTrackWriter:
    """Accumulates sorted rows into chunks and persists them.

    A chunk's serialized payload (``[row,row,...]`` as compact JSON) never
    exceeds ``chunk_bytes`` unless the chunk holds a single row that is
    larger than the budget by itself. Rows are never split.
    """

    def __init__(self, directory: Path, headers: List[HeaderSchema],
                 chunk_bytes: int = DEFAULT_CHUNK_BYTES,
                 codec: Optional[Codec] = None,
                 label: str = '', ref: str = '',
                 start_index: int = 1, end_index: int = 2):
        """Initialize writer.

        Args:
            directory: Existing directory that receives chunk files and the manifest
            headers: Track header schemas indexed by row class
            chunk_bytes: Uncompressed size budget per chunk
            codec: Payload compression (default: none)
            label: Track label recorded in the manifest
            ref: Reference sequence name recorded in the manifest
            start_index: Row position of the start coordinate
            end_index: Row position of the end coordinate
        """
        if chunk_bytes <= 0:
            raise ValueError(f"Chunk budget must be positive, got {chunk_bytes}")

        self.directory = Path(directory)
        self.headers = headers
        self.chunk_bytes = chunk_bytes
        self.codec = codec or IdentityCodec()
        self.label = label
        self.ref = ref
        self.start_index = start_index
        self.end_index = end_index
        self._key = interval_sort_key(start_index, end_index)

        self._chunks: List[ChunkInfo] = []
        self._lines: List[str] = []
        self._bytes = 0
        self._chunk_start: Optional[int] = None
        self._chunk_max_end: Optional[int] = None
        self._last_key = None

        self.feature_count = 0
        self.row_count = 0
        self._finished = False

    @property
    def chunks(self) -> List[ChunkInfo]:
        """Chunks sealed so far."""
        return list(self._chunks)

    def add_sorted(self, row: List[Any]) -> None:
        """Append the next row of the sorted stream.

        Raises:
            SchemaViolationError: If the row does not fit the track headers
            SortOrderError: If the row sorts before the previous one
            ChunkWriteError: If sealing the open chunk fails
        """
        if self._finished:
            raise InvariantError("Cannot add rows to a finished track writer")

        check_row(row, self.headers)

        key = self._key(row)
        if self._last_key is not None and key < self._last_key:
            raise SortOrderError(
                f"Row {row[self.start_index]}-{row[self.end_index]} arrived after "
                f"{self._last_key[0]}-{-self._last_key[1]}"
            )
        self._last_key = key

        line = json.dumps(row, separators=(',', ':'))
        line_bytes = len(line.encode('utf-8')) + 1  # plus separator or bracket

        if self._lines and self._bytes + line_bytes > self.chunk_bytes:
            self._seal()

        if not self._lines:
            self._bytes = 1  # opening bracket
            self._chunk_start = row[self.start_index]
            self._chunk_max_end = effective_end(row[self.start_index], row[self.end_index])
        else:
            self._chunk_max_end = max(self._chunk_max_end,
                                      effective_end(row[self.start_index], row[self.end_index]))

        self._lines.append(line)
        self._bytes += line_bytes

        self.row_count += 1
        if row[0] == PRIMARY_CLASS:
            self.feature_count += 1

    def _seal(self) -> None:
        """Serialize, encode and write the open chunk, then record it."""
        chunk_id = len(self._chunks)
        filename = f"lf-{chunk_id}.json{self.codec.suffix}"
        payload = ('[' + ','.join(self._lines) + ']').encode('utf-8')

        try:
            atomic_write_bytes(self.directory / filename, self.codec.encode(payload))
        except OSError as e:
            raise ChunkWriteError(f"Could not write chunk {filename} for track "
                                  f"'{self.label}' on '{self.ref}': {e}") from e

        chunk = ChunkInfo(
            id=chunk_id,
            start=self._chunk_start,
            end=self._chunk_max_end,
            file=filename,
            rows=len(self._lines),
            bytes=len(payload),
        )
        self._chunks.append(chunk)
        logger.debug(f"Sealed chunk {chunk_id} [{chunk.start}, {chunk.end}): "
                     f"{chunk.rows:,} rows, {chunk.bytes:,} bytes")

        self._lines = []
        self._bytes = 0
        self._chunk_start = None
        self._chunk_max_end = None

    def finish(self, name_index: Optional[str] = None) -> TrackManifest:
        """Seal the last chunk, build the interval index and write the manifest.

        Args:
            name_index: Path of the track's name index, relative to the track directory

        Returns:
            Manifest describing the written track
        """
        if self._finished:
            raise InvariantError("Track writer already finished")
        self._finished = True

        if self._lines:
            self._seal()

        index = IntervalIndex.build((c.start, c.end, c.id) for c in self._chunks)

        manifest = TrackManifest(
            label=self.label,
            ref=self.ref,
            feature_count=self.feature_count,
            row_count=self.row_count,
            headers=self.headers,
            chunk_bytes=self.chunk_bytes,
            compression=self.codec.name,
            chunks=list(self._chunks),
            interval_index=index.to_list(),
            min_start=self._chunks[0].start if self._chunks else None,
            max_end=max(c.end for c in self._chunks) if self._chunks else None,
            name_index=name_index,
            start_index=self.start_index,
            end_index=self.end_index,
        )

        try:
            write_json_atomic(self.directory / MANIFEST_FILENAME, manifest.to_dict())
        except OSError as e:
            raise ChunkWriteError(f"Could not write manifest for track '{self.label}' "
                                  f"on '{self.ref}': {e}") from e

        logger.info(f"Wrote {len(self._chunks)} chunks ({self.row_count:,} rows, "
                    f"{self.feature_count:,} features) for '{self.label}' on '{self.ref}'")
        return manifest

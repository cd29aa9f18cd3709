"""Hash-bucketed on-disk name index for feature search.

Name records arrive in feature order and are grouped by the first hex
digits of the MD5 of the lowercased name. Buckets are held in memory up
to ``max_buffered`` entries, then merged into their JSON bucket files.
Lookups load a single bucket.
"""

import hashlib
import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List

from ..database.schema import NameRecord
from ..exceptions import NameIndexStateError, NameIndexWriteError
from ..utils.file_utils import ensure_output_dir, read_json, write_json_atomic

logger = logging.getLogger(__name__)


META_FILENAME = 'meta.json'


def bucket_for(name: str, hash_chars: int) -> str:
    """Bucket id for a name (case-insensitive)."""
    return hashlib.md5(name.lower().encode('utf-8')).hexdigest()[:hash_chars]


class NameIndexBuilder:
    """Collects name records for one track and writes the bucket files."""

    def __init__(self, directory: Path, hash_chars: int = 3, max_buffered: int = 50000):
        """Initialize builder.

        Args:
            directory: Directory for bucket files (created if missing)
            hash_chars: Hex digits of the name hash used as bucket id
            max_buffered: Buffered name entries before buckets are flushed
        """
        self.directory = Path(directory)
        self.hash_chars = hash_chars
        self.max_buffered = max_buffered

        self._buffer: Dict[str, Dict[str, List[Dict[str, Any]]]] = defaultdict(lambda: defaultdict(list))
        self._buffered = 0
        self._finalized = False

        self.record_count = 0
        self.name_count = 0

    def add_name(self, record: NameRecord) -> None:
        """Add a name record; every alias in ``record.names`` becomes a key."""
        if self._finalized:
            raise NameIndexStateError("Cannot add names to a finalized name index")

        entry = record.to_dict()
        for name in record.names:
            key = name.lower()
            self._buffer[bucket_for(key, self.hash_chars)][key].append(entry)
            self._buffered += 1
            self.name_count += 1
        self.record_count += 1

        if self._buffered >= self.max_buffered:
            self._flush()

    def _flush(self) -> None:
        """Merge buffered entries into their bucket files."""
        if not self._buffer:
            return

        ensure_output_dir(self.directory)
        logger.debug(f"Flushing {self._buffered:,} names into {len(self._buffer)} buckets")

        for bucket, entries in self._buffer.items():
            bucket_file = self.directory / f"{bucket}.json"
            try:
                existing = read_json(bucket_file) if bucket_file.exists() else {}
                for key, records in entries.items():
                    existing.setdefault(key, []).extend(records)
                write_json_atomic(bucket_file, existing)
            except (OSError, json.JSONDecodeError) as e:
                raise NameIndexWriteError(f"Could not update name bucket {bucket_file}: {e}") from e

        self._buffer.clear()
        self._buffered = 0

    def finalize(self) -> Dict[str, Any]:
        """Flush remaining names and seal the index.

        Returns:
            Index metadata as written to ``meta.json``
        """
        if self._finalized:
            raise NameIndexStateError("Name index already finalized")

        self._flush()
        self._finalized = True

        meta = {
            'hash_chars': self.hash_chars,
            'record_count': self.record_count,
            'name_count': self.name_count,
        }
        try:
            ensure_output_dir(self.directory)
            write_json_atomic(self.directory / META_FILENAME, meta)
        except OSError as e:
            raise NameIndexWriteError(f"Could not write name index metadata: {e}") from e

        return meta


class NameIndex:
    """Read access to a finalized name index."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        meta_file = self.directory / META_FILENAME
        if not meta_file.exists():
            raise FileNotFoundError(f"Name index not found: {meta_file}")
        self.meta = read_json(meta_file)
        self.hash_chars = self.meta['hash_chars']

    def lookup(self, name: str) -> List[NameRecord]:
        """Find records whose name or ID equals ``name`` (case-insensitive)."""
        key = name.lower()
        bucket_file = self.directory / f"{bucket_for(key, self.hash_chars)}.json"
        if not bucket_file.exists():
            return []
        bucket = read_json(bucket_file)
        return [NameRecord.from_dict(entry) for entry in bucket.get(key, [])]

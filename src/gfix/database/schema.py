"""On-disk schema definitions for feature tracks."""

import json
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Set

from ..exceptions import SchemaViolationError


FORMAT_VERSION = 1

PRIMARY_CLASS = 0
SUBFEATURE_CLASS = 1


@dataclass
class HeaderSchema:
    """Column layout for one row kind of a track.

    Row position 0 holds the class index, so column ``attributes[i]``
    lives at row position ``i + 1``.
    """
    attributes: List[str]
    is_array_attr: Set[str] = field(default_factory=set)

    @property
    def width(self) -> int:
        """Number of values in a row of this kind, class index included."""
        return len(self.attributes) + 1

    def index_of(self, column: str) -> int:
        """Row position of a named column."""
        return self.attributes.index(column) + 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert header to dictionary."""
        return {
            'attributes': list(self.attributes),
            'isArrayAttr': sorted(self.is_array_attr),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HeaderSchema':
        """Create header from dictionary."""
        return cls(attributes=list(data['attributes']),
                   is_array_attr=set(data.get('isArrayAttr', [])))


@dataclass
class NameRecord:
    """Searchable name of a primary feature."""
    names: List[str]
    track: str
    ref: str
    start: int
    end: int
    uid: int

    @property
    def name(self) -> str:
        return self.names[0]

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NameRecord':
        """Create record from dictionary."""
        return cls(**data)

    def to_json(self) -> str:
        """Convert record to JSON string."""
        return json.dumps(self.to_dict(), separators=(',', ':'))


@dataclass
class ChunkInfo:
    """Directory entry for one sealed chunk."""
    id: int
    start: int
    end: int
    file: str
    rows: int
    bytes: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert chunk entry to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChunkInfo':
        """Create chunk entry from dictionary."""
        return cls(**data)


@dataclass
class TrackManifest:
    """Contents of ``trackData.json`` for one track on one reference."""
    label: str
    ref: str
    feature_count: int
    row_count: int
    headers: List[HeaderSchema]
    chunk_bytes: int
    compression: Optional[str] = None
    chunks: List[ChunkInfo] = field(default_factory=list)
    interval_index: List[Any] = field(default_factory=list)
    min_start: Optional[int] = None
    max_end: Optional[int] = None
    name_index: Optional[str] = None
    start_index: int = 1
    end_index: int = 2
    format_version: int = FORMAT_VERSION

    @property
    def url_template(self) -> str:
        suffix = '.gz' if self.compression == 'gzip' else ''
        return f"lf-{{chunk}}.json{suffix}"

    def chunk(self, chunk_id: int) -> ChunkInfo:
        """Look up a chunk entry by id."""
        return self.chunks[chunk_id]

    def to_dict(self) -> Dict[str, Any]:
        """Convert manifest to dictionary."""
        return {
            'formatVersion': self.format_version,
            'label': self.label,
            'ref': self.ref,
            'featureCount': self.feature_count,
            'rowCount': self.row_count,
            'headers': [header.to_dict() for header in self.headers],
            'startIndex': self.start_index,
            'endIndex': self.end_index,
            'compression': self.compression,
            'chunkBytes': self.chunk_bytes,
            'urlTemplate': self.url_template,
            'chunks': [chunk.to_dict() for chunk in self.chunks],
            'intervalIndex': self.interval_index,
            'minStart': self.min_start,
            'maxEnd': self.max_end,
            'nameIndex': self.name_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrackManifest':
        """Create manifest from dictionary."""
        return cls(
            label=data['label'],
            ref=data['ref'],
            feature_count=data['featureCount'],
            row_count=data['rowCount'],
            headers=[HeaderSchema.from_dict(h) for h in data['headers']],
            chunk_bytes=data['chunkBytes'],
            compression=data.get('compression'),
            chunks=[ChunkInfo.from_dict(c) for c in data.get('chunks', [])],
            interval_index=data.get('intervalIndex', []),
            min_start=data.get('minStart'),
            max_end=data.get('maxEnd'),
            name_index=data.get('nameIndex'),
            start_index=data.get('startIndex', 1),
            end_index=data.get('endIndex', 2),
            format_version=data.get('formatVersion', FORMAT_VERSION),
        )

    def to_json(self) -> str:
        """Convert manifest to JSON string."""
        return json.dumps(self.to_dict(), separators=(',', ':'))


def check_row(row: List[Any], headers: List[HeaderSchema]) -> HeaderSchema:
    """Return the header for a row after checking its class index and width.

    Raises:
        SchemaViolationError: If the row does not match any track header
    """
    if not isinstance(row, list) or not row:
        raise SchemaViolationError(f"Row must be a non-empty list, got: {row!r}")

    class_index = row[0]
    if not isinstance(class_index, int) or not 0 <= class_index < len(headers):
        raise SchemaViolationError(f"Unknown row class index {class_index!r}")

    header = headers[class_index]
    if len(row) != header.width:
        raise SchemaViolationError(
            f"Row of class {class_index} has {len(row)} values, expected {header.width}"
        )
    return header

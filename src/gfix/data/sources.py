"""Feature sources: where features for a reference sequence come from.

A source hands out ``Feature`` trees for one reference sequence at a
time, optionally restricted to a list of ``type`` or ``type:source``
filters. Sources only hold paths and settings so they can be shipped to
worker processes.
"""

import csv
import gzip
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Type, Union
from urllib.parse import unquote

import ijson
import pandas as pd

from ..exceptions import ConfigError, FeatureSourceError
from .compression import is_gzip_file
from .features import Feature, parse_phase, parse_score, parse_strand

logger = logging.getLogger(__name__)


GFF3_COLUMNS = ['seqid', 'source', 'type', 'start', 'end', 'score', 'strand', 'phase', 'attributes']

# Attributes that describe structure rather than content
_STRUCTURAL_ATTRIBUTES = ('Parent',)


class FeatureSource(ABC):
    """Base class for feature sources."""

    @abstractmethod
    def features(self, ref: str, types: Optional[List[str]] = None) -> Iterator[Feature]:
        """Yield top-level features on ``ref`` matching ``types``.

        Args:
            ref: Reference sequence name
            types: ``type`` or ``type:source`` filters (None for all)

        Yields:
            Feature trees in source order
        """
        pass


class ListFeatureSource(FeatureSource):
    """In-memory source over a list of features or feature dictionaries."""

    def __init__(self, features: Iterable[Union[Feature, Dict[str, Any]]]):
        self._features = [f if isinstance(f, Feature) else Feature.from_dict(f) for f in features]

    def features(self, ref: str, types: Optional[List[str]] = None) -> Iterator[Feature]:
        for feature in self._features:
            if feature.ref == ref and feature.matches_type(types):
                yield feature


class JsonFeatureSource(FeatureSource):
    """Streams features from a JSON array of feature objects.

    The array is parsed incrementally with ijson, so files larger than
    memory can be used. Gzip files are detected by their magic bytes.
    """

    def __init__(self, file: Union[str, Path], prefix: str = 'item'):
        """Initialize source.

        Args:
            file: JSON (or gzipped JSON) file
            prefix: ijson prefix of the feature objects (default: top-level array)
        """
        self.file = Path(file)
        self.prefix = prefix

    def _open(self):
        if not self.file.exists():
            raise FeatureSourceError(f"Feature file not found: {self.file}")
        if is_gzip_file(self.file):
            return gzip.open(self.file, 'rb')
        return open(self.file, 'rb')

    def features(self, ref: str, types: Optional[List[str]] = None) -> Iterator[Feature]:
        with self._open() as f:
            try:
                for position, item in enumerate(ijson.items(f, self.prefix, use_float=True)):
                    try:
                        feature = Feature.from_dict(item)
                    except (AttributeError, TypeError, ValueError) as e:
                        logger.warning(f"{self.file.name}: skipping item {position} "
                                       f"under '{self.prefix}', not a feature object: {e}")
                        continue
                    if feature.ref == ref and feature.matches_type(types):
                        yield feature
            except ijson.JSONError as e:
                raise FeatureSourceError(f"Malformed JSON in {self.file}: {e}") from e


def parse_gff3_attributes(text: str) -> Dict[str, Any]:
    """Parse a GFF3 attribute column.

    Comma-separated values become lists; single values stay scalars.
    Percent-encoded characters are decoded.
    """
    attributes: Dict[str, Any] = {}
    if not text or text == '.':
        return attributes

    for pair in text.strip().split(';'):
        if not pair:
            continue
        key, sep, value = pair.partition('=')
        key = unquote(key.strip())
        if not sep:
            attributes[key] = None
            continue
        values = [unquote(v) for v in value.split(',')]
        attributes[key] = values[0] if len(values) == 1 else values
    return attributes


def _gff3_int(value: str) -> Optional[int]:
    value = value.strip()
    if value in ('', '.'):
        return None
    try:
        return int(value)
    except ValueError:
        # Left for the flattener to reject
        return None


class GFF3FeatureSource(FeatureSource):
    """Reads features from a GFF3 file.

    Rows are read in chunks with pandas. GFF3 coordinates are 1-based and
    inclusive; features are converted to 0-based half-open intervals.
    Sub-features are attached to their parents through ``Parent``/``ID``
    attributes; a row with several parents is attached to each of them.
    Rows whose parent is never defined are treated as top-level features.
    """

    def __init__(self, file: Union[str, Path], chunk_size: int = 100000):
        """Initialize source.

        Args:
            file: GFF3 file (plain or gzipped)
            chunk_size: Rows per pandas read chunk
        """
        self.file = Path(file)
        self.chunk_size = chunk_size

    def _read_rows(self, ref: str) -> Iterator[Dict[str, str]]:
        """Yield raw GFF3 rows on ``ref`` in file order."""
        if not self.file.exists():
            raise FeatureSourceError(f"GFF3 file not found: {self.file}")

        try:
            reader = pd.read_csv(
                self.file,
                sep='\t',
                header=None,
                names=GFF3_COLUMNS,
                dtype=str,
                na_filter=False,
                quoting=csv.QUOTE_NONE,
                compression='infer',
                chunksize=self.chunk_size,
            )
            with reader:
                for chunk in reader:
                    fasta = chunk.index[chunk['seqid'] == '##FASTA']
                    if len(fasta):
                        chunk = chunk.loc[:fasta[0] - 1]
                    matching = chunk[chunk['seqid'] == ref]
                    for record in matching.to_dict('records'):
                        yield record
                    if len(fasta):
                        return
        except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
            raise FeatureSourceError(f"Could not parse GFF3 file {self.file}: {e}") from e

    def features(self, ref: str, types: Optional[List[str]] = None) -> Iterator[Feature]:
        nodes: List[Dict[str, Any]] = []
        by_id: Dict[str, Dict[str, Any]] = {}

        for record in self._read_rows(ref):
            attributes = parse_gff3_attributes(record['attributes'])
            parents = attributes.pop('Parent', None)
            if isinstance(parents, str):
                parents = [parents]

            start = _gff3_int(record['start'])
            node = {
                'feature': dict(
                    ref=ref,
                    start=start - 1 if start is not None else None,
                    end=_gff3_int(record['end']),
                    type=record['type'],
                    strand=parse_strand(record['strand']),
                    source=record['source'] if record['source'] not in ('', '.') else None,
                    score=parse_score(record['score']),
                    phase=parse_phase(record['phase']),
                    attributes=attributes,
                ),
                'parents': parents or [],
                'children': [],
            }
            nodes.append(node)

            ident = attributes.get('ID')
            if isinstance(ident, str) and ident not in by_id:
                by_id[ident] = node

        top_level = []
        for node in nodes:
            linked = False
            for parent_id in node['parents']:
                parent = by_id.get(parent_id)
                if parent is None or parent is node:
                    logger.warning(f"{self.file.name}: parent '{parent_id}' of a "
                                   f"{node['feature']['type']} on {ref} is not defined")
                    continue
                parent['children'].append(node)
                linked = True
            if not linked:
                top_level.append(node)

        for node in top_level:
            feature = _build_feature(node)
            if feature.matches_type(types):
                yield feature


def _build_feature(node: Dict[str, Any], _seen: Optional[set] = None) -> Feature:
    seen = _seen or set()
    if id(node) in seen:
        raise FeatureSourceError(f"Cyclic Parent references at feature "
                                 f"{node['feature']['attributes'].get('ID')}")
    seen = seen | {id(node)}
    return Feature(
        subfeatures=[_build_feature(child, seen) for child in node['children']],
        **node['feature'],
    )


def read_fai(file: Union[str, Path]) -> List[Dict[str, Any]]:
    """Reference sequences from a FASTA index (``.fai``) file."""
    try:
        df = pd.read_csv(file, sep='\t', header=None, usecols=[0, 1],
                         names=['name', 'length'], dtype={'name': str, 'length': 'int64'})
    except (pd.errors.ParserError, ValueError, OSError) as e:
        raise FeatureSourceError(f"Could not read FASTA index {file}: {e}") from e

    return [
        {'name': row.name, 'start': 0, 'end': int(row.length), 'length': int(row.length)}
        for row in df.itertuples(index=False)
    ]


_ADAPTORS: Dict[str, Type[FeatureSource]] = {
    'memory': ListFeatureSource,
    'json': JsonFeatureSource,
    'gff3': GFF3FeatureSource,
}


def create_feature_source(adaptor: str, db_args: Optional[Dict[str, Any]] = None,
                          base_dir: Optional[Path] = None) -> FeatureSource:
    """Instantiate a feature source from configuration.

    Args:
        adaptor: Adaptor name (``json``, ``gff3`` or ``memory``)
        db_args: Keyword arguments for the adaptor; leading dashes on keys
            are ignored, so ``-file`` and ``file`` are equivalent
        base_dir: Directory that relative ``file`` arguments are resolved against

    Raises:
        ConfigError: If the adaptor is unknown or its arguments are invalid
    """
    source_class = _ADAPTORS.get(str(adaptor).lower())
    if source_class is None:
        raise ConfigError(f"Unknown db_adaptor '{adaptor}' "
                          f"(available: {', '.join(sorted(_ADAPTORS))})")

    kwargs = {key.lstrip('-'): value for key, value in (db_args or {}).items()}
    if 'file' in kwargs and base_dir is not None:
        file_path = Path(kwargs['file'])
        if not file_path.is_absolute():
            kwargs['file'] = Path(base_dir) / file_path

    try:
        return source_class(**kwargs)
    except TypeError as e:
        raise ConfigError(f"Invalid db_args for adaptor '{adaptor}': {e}") from e

"""Feature model shared by sources, the flattener and the track reader."""

import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


_STRAND_SYMBOLS = {
    '+': 1, '1': 1, '+1': 1,
    '-': -1, '-1': -1,
    '.': 0, '0': 0,
}


def parse_strand(value: Any) -> Optional[int]:
    """Normalize a strand symbol to +1, -1, 0 or None (unknown)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value in (1, -1, 0) else None
    return _STRAND_SYMBOLS.get(str(value).strip())


def first_value(value: Any) -> Any:
    """Return the first element of a list value, or the value itself."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def parse_score(value: Any) -> Optional[float]:
    """Parse a feature score; unparseable scores are dropped with a warning."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip() in ('', '.'):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        score = None
    if score is None or not math.isfinite(score):
        logger.warning(f"Ignoring non-numeric score {value!r}")
        return None
    return score


def parse_phase(value: Any) -> Optional[int]:
    """Parse a CDS phase (0, 1 or 2); anything else is dropped with a warning."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if value in ('', '.'):
            return None
    try:
        phase = int(value) if isinstance(value, str) or value == int(value) else None
    except (TypeError, ValueError, OverflowError):
        phase = None
    if phase not in (0, 1, 2):
        logger.warning(f"Ignoring invalid phase {value!r}")
        return None
    return phase


@dataclass(frozen=True)
class Feature:
    """A genomic annotation on one reference sequence.

    Coordinates are 0-based and half-open. ``start`` and ``end`` are
    optional because sources pass through whatever they read; the
    flattener rejects features without them.
    """
    ref: Optional[str]
    start: Optional[int]
    end: Optional[int]
    type: str = ""
    strand: Optional[int] = None
    source: Optional[str] = None
    score: Optional[float] = None
    phase: Optional[int] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    subfeatures: List['Feature'] = field(default_factory=list)

    @property
    def name(self) -> Optional[str]:
        return first_value(self.attributes.get('Name'))

    @property
    def id(self) -> Optional[str]:
        return first_value(self.attributes.get('ID'))

    @property
    def label(self) -> str:
        """Human-readable identifier used in error reports."""
        ident = self.name or self.id
        if ident:
            return str(ident)
        return f"{self.type or 'feature'}@{self.ref}:{self.start}-{self.end}"

    def matches_type(self, types: Optional[List[str]]) -> bool:
        """Check a ``type`` or ``type:source`` filter list."""
        if not types:
            return True
        for type_filter in types:
            wanted_type, _, wanted_source = type_filter.partition(':')
            if wanted_type != self.type:
                continue
            if not wanted_source or wanted_source == self.source:
                return True
        return False

    @classmethod
    def from_dict(cls, data: Dict[str, Any], ref: Optional[str] = None) -> 'Feature':
        """Create a feature (and its sub-features) from a plain dictionary.

        Accepts ``seq_id``/``seqid``/``chrom`` as aliases for ``ref`` and
        ``children`` as an alias for ``subfeatures``. Top-level ``name``
        and ``id`` keys are folded into the ``Name``/``ID`` attributes.
        """
        feature_ref = data.get('ref', data.get('seq_id', data.get('seqid', data.get('chrom', ref))))

        attributes = dict(data.get('attributes') or {})
        if data.get('name') is not None and 'Name' not in attributes:
            attributes['Name'] = data['name']
        if data.get('id') is not None and 'ID' not in attributes:
            attributes['ID'] = data['id']

        children = data.get('subfeatures', data.get('children')) or []

        return cls(
            ref=feature_ref,
            start=data.get('start'),
            end=data.get('end'),
            type=data.get('type', ''),
            strand=parse_strand(data.get('strand')),
            source=data.get('source'),
            score=parse_score(data.get('score')),
            phase=parse_phase(data.get('phase')),
            attributes=attributes,
            subfeatures=[cls.from_dict(child, ref=feature_ref) for child in children],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert feature to dictionary."""
        return asdict(self)


"""Flatten hierarchical features into fixed-shape track rows.

Every track has two header schemas, discovered once from the track
configuration: one for primary features and one for sub-features. A
primary feature becomes one row of class 0; each of its sub-features, at
any depth, becomes one row of class 1 that points at its immediate parent
through the ``Parent`` column.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..data.features import Feature, parse_strand
from ..data.validators import require_coordinates
from ..database.schema import HeaderSchema, NameRecord, PRIMARY_CLASS, SUBFEATURE_CLASS
from ..exceptions import InvalidFeatureError


CORE_COLUMNS = ['Start', 'End', 'Strand', 'Source', 'Phase', 'Type', 'Score', 'Id', 'Name', 'Uid']
SUBFEATURE_COLUMNS = CORE_COLUMNS + ['Parent']

# Row positions (class index occupies position 0)
START_INDEX = 1
END_INDEX = 2


@dataclass
class FlatFeature:
    """Rows and name record produced from one primary feature."""
    primary: List[Any]
    subfeature_rows: List[List[Any]] = field(default_factory=list)
    name_record: Optional[NameRecord] = None

    @property
    def rows(self) -> List[List[Any]]:
        return [self.primary] + self.subfeature_rows


class FeatureFlattener:
    """Converts features of one track into rows under fixed headers."""

    start_index = START_INDEX
    end_index = END_INDEX

    def __init__(self, track_label: str, track_config: Optional[Dict[str, Any]] = None):
        """Initialize flattener and discover the track's header schemas.

        Args:
            track_label: Track label written into name records
            track_config: Track configuration; ``extra_attributes`` lists
                attribute names kept as columns, ``array_attributes`` marks
                which of those are multi-valued
        """
        track_config = track_config or {}
        self.track_label = track_label

        extras = [name for name in (track_config.get('extra_attributes') or [])
                  if name not in SUBFEATURE_COLUMNS and name not in ('ID', 'Name')]
        arrays = set(track_config.get('array_attributes') or []) & set(extras)

        self.feature_header = HeaderSchema(CORE_COLUMNS + extras, set(arrays))
        self.subfeature_header = HeaderSchema(SUBFEATURE_COLUMNS + extras, set(arrays))
        self.extra_attributes = extras

        self._next_uid = 0

    @property
    def headers(self) -> List[HeaderSchema]:
        """Header schemas indexed by row class."""
        return [self.feature_header, self.subfeature_header]

    def flatten(self, feature: Feature, ref: str) -> FlatFeature:
        """Flatten a feature and all of its sub-features.

        Args:
            feature: Primary feature from the source
            ref: Reference sequence name the feature was read from

        Returns:
            Primary row, sub-feature rows and optional name record

        Raises:
            FeatureError: If the feature or any sub-feature is malformed.
                No uids are consumed in that case.
        """
        uid = self._next_uid
        primary = self._make_row(PRIMARY_CLASS, self.feature_header, feature, uid, None, feature.label)

        subfeature_rows: List[List[Any]] = []
        next_uid = uid + 1
        pending = [(uid, child, f"{feature.label} > {child.label}")
                   for child in feature.subfeatures]
        # Depth-first preorder so sibling order is recoverable from uids
        pending.reverse()
        while pending:
            parent_uid, child, label = pending.pop()
            child_uid = next_uid
            next_uid += 1
            subfeature_rows.append(
                self._make_row(SUBFEATURE_CLASS, self.subfeature_header, child, child_uid, parent_uid, label)
            )
            grandchildren = [(child_uid, grandchild, f"{label} > {grandchild.label}")
                             for grandchild in child.subfeatures]
            pending.extend(reversed(grandchildren))

        self._next_uid = next_uid

        return FlatFeature(
            primary=primary,
            subfeature_rows=subfeature_rows,
            name_record=self._name_record(ref, primary, uid),
        )

    def _make_row(self, class_index: int, header: HeaderSchema, feature: Feature,
                  uid: int, parent_uid: Optional[int], label: str) -> List[Any]:
        start, end = require_coordinates(feature.start, feature.end, label)

        values = {
            'Start': start,
            'End': end,
            'Strand': parse_strand(feature.strand),
            'Source': feature.source,
            'Phase': feature.phase,
            'Type': feature.type,
            'Score': feature.score,
            'Id': _single_value('ID', feature.attributes.get('ID'), label),
            'Name': _single_value('Name', feature.attributes.get('Name'), label),
            'Uid': uid,
            'Parent': parent_uid,
        }

        row = [class_index]
        for column in header.attributes:
            if column in values:
                row.append(values[column])
            elif column in header.is_array_attr:
                row.append(_array_value(feature.attributes.get(column)))
            else:
                row.append(_single_value(column, feature.attributes.get(column), label))
        return row

    def _name_record(self, ref: str, primary: List[Any], uid: int) -> Optional[NameRecord]:
        name = primary[self.feature_header.index_of('Name')]
        ident = primary[self.feature_header.index_of('Id')]

        names = []
        for value in (name, ident):
            if value is not None and str(value) not in names:
                names.append(str(value))
        if not names:
            return None

        return NameRecord(
            names=names,
            track=self.track_label,
            ref=ref,
            start=primary[START_INDEX],
            end=primary[END_INDEX],
            uid=uid,
        )


def _single_value(column: str, value: Any, label: str) -> Any:
    """Unwrap one-element lists for single-valued columns."""
    if isinstance(value, (list, tuple)):
        if len(value) > 1:
            raise InvalidFeatureError(
                f"{label}: attribute '{column}' has {len(value)} values "
                f"but is not declared multi-valued",
                feature_id=label,
            )
        return value[0] if value else None
    return value


def _array_value(value: Any) -> Optional[List[Any]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def row_to_dict(row: List[Any], header: HeaderSchema) -> Dict[str, Any]:
    """Map a row's values onto its column names."""
    return dict(zip(header.attributes, row[1:]))


def assemble(rows: List[List[Any]], headers: List[HeaderSchema], ref: Optional[str] = None) -> List[Feature]:
    """Rebuild feature trees from flattened rows.

    Primary rows are returned in the order given. Sub-feature rows are
    attached to their parent through the ``Parent`` column and ordered by
    uid, which restores the original sibling order. Sub-feature rows
    whose parent is absent from ``rows`` are dropped.

    Args:
        rows: Primary and sub-feature rows, in any order
        headers: Track header schemas indexed by row class
        ref: Reference sequence assigned to the rebuilt features

    Returns:
        List of primary features with nested sub-features
    """
    feature_header = headers[PRIMARY_CLASS]
    subfeature_header = headers[SUBFEATURE_CLASS]

    primaries = []
    children = defaultdict(list)
    for row in rows:
        if row[0] == PRIMARY_CLASS:
            primaries.append(row_to_dict(row, feature_header))
        else:
            values = row_to_dict(row, subfeature_header)
            children[values['Parent']].append(values)

    def build(values: Dict[str, Any], header: HeaderSchema) -> Feature:
        attributes = {}
        if values.get('Id') is not None:
            attributes['ID'] = values['Id']
        if values.get('Name') is not None:
            attributes['Name'] = values['Name']
        for column in header.attributes:
            if column in SUBFEATURE_COLUMNS:
                continue
            if values.get(column) is not None:
                attributes[column] = values[column]

        kids = sorted(children.get(values['Uid'], []), key=lambda v: v['Uid'])
        return Feature(
            ref=ref,
            start=values['Start'],
            end=values['End'],
            type=values['Type'],
            strand=values['Strand'],
            source=values['Source'],
            score=values['Score'],
            phase=values['Phase'],
            attributes=attributes,
            subfeatures=[build(kid, subfeature_header) for kid in kids],
        )

    return [build(values, feature_header) for values in primaries]

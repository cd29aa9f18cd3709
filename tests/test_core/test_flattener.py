"""Tests for feature flattening and reassembly."""

import pytest

from gfix.core.flattener import (
    CORE_COLUMNS, END_INDEX, START_INDEX, SUBFEATURE_COLUMNS,
    FeatureFlattener, assemble, row_to_dict
)
from gfix.database.schema import PRIMARY_CLASS, SUBFEATURE_CLASS
from gfix.exceptions import FeatureError, InvalidFeatureError, MissingCoordinateError


class TestHeaderDiscovery:
    """Test header schemas derived from the track configuration."""

    def test_headers_include_declared_extras(self, track_config):
        """Test core columns followed by extra attributes."""
        flattener = FeatureFlattener('genes', track_config)

        assert flattener.feature_header.attributes == CORE_COLUMNS + ['Note', 'Alias']
        assert flattener.subfeature_header.attributes == SUBFEATURE_COLUMNS + ['Note', 'Alias']
        assert flattener.feature_header.is_array_attr == {'Alias'}
        assert flattener.headers == [flattener.feature_header, flattener.subfeature_header]

    def test_start_end_positions(self):
        """Test Start and End sit at fixed row positions."""
        flattener = FeatureFlattener('genes')
        assert flattener.feature_header.index_of('Start') == START_INDEX == 1
        assert flattener.feature_header.index_of('End') == END_INDEX == 2
        assert flattener.subfeature_header.index_of('Start') == START_INDEX
        assert flattener.subfeature_header.index_of('End') == END_INDEX

    def test_core_column_names_are_not_duplicated(self):
        """Test extras that collide with core columns are ignored."""
        flattener = FeatureFlattener('genes', {'extra_attributes': ['Start', 'ID', 'Name', 'Note']})
        assert flattener.extra_attributes == ['Note']


class TestFlatten:
    """Test flattening of feature trees into rows."""

    def test_primary_row_values(self, track_config, gene_with_transcript):
        """Test the primary row carries core columns and extras in header order."""
        flat = FeatureFlattener('genes', track_config).flatten(gene_with_transcript, 'chr1')

        assert flat.primary == [
            PRIMARY_CLASS, 100, 300, 1, 'test', None, 'gene', None,
            'gene1', 'BRCA', 0, 'tumour suppressor', ['FANCS', 'BRCC1'],
        ]

    def test_subfeature_rows_link_to_parents(self, track_config, gene_with_transcript):
        """Test every level of sub-features is flattened with its parent uid."""
        flattener = FeatureFlattener('genes', track_config)
        flat = flattener.flatten(gene_with_transcript, 'chr1')
        header = flattener.subfeature_header

        assert len(flat.subfeature_rows) == 3
        mrna, exon1, exon2 = [row_to_dict(row, header) for row in flat.subfeature_rows]

        assert all(row[0] == SUBFEATURE_CLASS for row in flat.subfeature_rows)
        assert (mrna['Uid'], mrna['Parent'], mrna['Type']) == (1, 0, 'mRNA')
        assert (exon1['Uid'], exon1['Parent'], exon1['Id']) == (2, 1, 'exon1')
        assert (exon2['Uid'], exon2['Parent'], exon2['Note']) == (3, 1, 'last')
        assert len(flat.rows) == 4

    def test_row_width_matches_header(self, track_config, gene_with_transcript):
        """Test every row has one value per column plus the class index."""
        flattener = FeatureFlattener('genes', track_config)
        flat = flattener.flatten(gene_with_transcript, 'chr1')

        assert len(flat.primary) == flattener.feature_header.width
        for row in flat.subfeature_rows:
            assert len(row) == flattener.subfeature_header.width

    def test_uids_continue_across_features(self, feature_factory):
        """Test uids are unique across the whole track."""
        flattener = FeatureFlattener('genes')
        first = flattener.flatten(feature_factory(0, 10, subfeatures=[feature_factory(2, 4)]), 'chr1')
        second = flattener.flatten(feature_factory(20, 30), 'chr1')

        assert first.primary[flattener.feature_header.index_of('Uid')] == 0
        assert second.primary[flattener.feature_header.index_of('Uid')] == 2

    def test_name_record(self, track_config, gene_with_transcript):
        """Test name records carry the name, the ID alias and the location."""
        flat = FeatureFlattener('genes', track_config).flatten(gene_with_transcript, 'chr1')

        record = flat.name_record
        assert record.names == ['BRCA', 'gene1']
        assert (record.track, record.ref, record.start, record.end, record.uid) == \
            ('genes', 'chr1', 100, 300, 0)

    def test_name_record_absent_without_name_or_id(self, feature_factory):
        """Test anonymous features produce no name record."""
        flat = FeatureFlattener('genes').flatten(feature_factory(0, 10), 'chr1')
        assert flat.name_record is None

    def test_name_equal_to_id_is_listed_once(self, feature_factory):
        """Test a name identical to the ID is not duplicated."""
        flat = FeatureFlattener('genes').flatten(feature_factory(0, 10, name='X', ident='X'), 'chr1')
        assert flat.name_record.names == ['X']

    def test_scalar_in_array_column_is_wrapped(self, track_config, feature_factory):
        """Test multi-valued columns always hold lists."""
        flattener = FeatureFlattener('genes', track_config)
        flat = flattener.flatten(feature_factory(0, 10, Alias='ONLY'), 'chr1')
        assert flat.primary[flattener.feature_header.index_of('Alias')] == ['ONLY']

    def test_one_element_list_in_single_column_is_unwrapped(self, track_config, feature_factory):
        """Test single-valued columns unwrap one-element lists."""
        flattener = FeatureFlattener('genes', track_config)
        flat = flattener.flatten(feature_factory(0, 10, Note=['hello']), 'chr1')
        assert flat.primary[flattener.feature_header.index_of('Note')] == 'hello'

    def test_list_in_single_column_is_rejected(self, track_config, feature_factory):
        """Test several values in a single-valued column are an input error."""
        flattener = FeatureFlattener('genes', track_config)
        with pytest.raises(InvalidFeatureError):
            flattener.flatten(feature_factory(0, 10, Note=['a', 'b']), 'chr1')

    def test_zero_length_feature_is_accepted(self, feature_factory):
        """Test insertion points (start == end) flatten normally."""
        flat = FeatureFlattener('genes').flatten(feature_factory(50, 50), 'chr1')
        assert flat.primary[START_INDEX] == flat.primary[END_INDEX] == 50


class TestFlattenErrors:
    """Test malformed features are rejected without side effects."""

    def test_missing_end(self, feature_factory):
        """Test a feature without an end raises MissingCoordinateError."""
        with pytest.raises(MissingCoordinateError):
            FeatureFlattener('genes').flatten(feature_factory(10, None), 'chr1')

    def test_end_before_start(self, feature_factory):
        """Test an inverted interval raises InvalidFeatureError."""
        with pytest.raises(InvalidFeatureError):
            FeatureFlattener('genes').flatten(feature_factory(10, 5), 'chr1')

    def test_non_integer_coordinate(self, feature_factory):
        """Test a fractional coordinate is rejected."""
        with pytest.raises(InvalidFeatureError):
            FeatureFlattener('genes').flatten(feature_factory(10.5, 20), 'chr1')

    def test_bad_subfeature_rejects_whole_feature(self, feature_factory):
        """Test an error at any depth fails the whole feature."""
        bad_child = feature_factory(5, 8, subfeatures=[feature_factory(None, 7)])
        feature = feature_factory(0, 10, name='parent', subfeatures=[bad_child])

        with pytest.raises(FeatureError) as exc_info:
            FeatureFlattener('genes').flatten(feature, 'chr1')
        assert 'parent' in str(exc_info.value)

    def test_failed_feature_consumes_no_uids(self, feature_factory):
        """Test uids are only assigned to features that flatten."""
        flattener = FeatureFlattener('genes')
        with pytest.raises(FeatureError):
            flattener.flatten(feature_factory(0, 10, subfeatures=[feature_factory(1, None)]), 'chr1')

        flat = flattener.flatten(feature_factory(0, 10), 'chr1')
        assert flat.primary[flattener.feature_header.index_of('Uid')] == 0


class TestAssemble:
    """Test rebuilding feature trees from rows."""

    def test_round_trip(self, track_config, gene_with_transcript):
        """Test flatten followed by assemble restores the feature tree."""
        flattener = FeatureFlattener('genes', track_config)
        flat = flattener.flatten(gene_with_transcript, 'chr1')

        assert assemble(flat.rows, flattener.headers, ref='chr1') == [gene_with_transcript]

    def test_round_trip_with_shuffled_rows(self, track_config, gene_with_transcript):
        """Test sibling order comes from uids, not row order."""
        flattener = FeatureFlattener('genes', track_config)
        flat = flattener.flatten(gene_with_transcript, 'chr1')
        rows = [flat.primary] + list(reversed(flat.subfeature_rows))

        assert assemble(rows, flattener.headers, ref='chr1') == [gene_with_transcript]

    def test_multiple_features(self, feature_factory):
        """Test primaries are returned in row order with their own children."""
        flattener = FeatureFlattener('genes')
        first = feature_factory(0, 10, name='a', subfeatures=[feature_factory(1, 2, type='exon')])
        second = feature_factory(5, 20, name='b', subfeatures=[feature_factory(6, 7, type='exon')])
        rows = flattener.flatten(first, 'chr1').rows + flattener.flatten(second, 'chr1').rows

        assert assemble(rows, flattener.headers, ref='chr1') == [first, second]

    def test_orphan_subfeature_rows_are_dropped(self, feature_factory):
        """Test sub-feature rows without their primary are ignored."""
        flattener = FeatureFlattener('genes')
        flat = flattener.flatten(feature_factory(0, 10, subfeatures=[feature_factory(1, 2)]), 'chr1')

        assert assemble(flat.subfeature_rows, flattener.headers) == []

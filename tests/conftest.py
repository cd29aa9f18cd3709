"""Pytest configuration and shared fixtures."""

import json

import pytest

from gfix.data.features import Feature
from gfix.data.sources import ListFeatureSource
from gfix.database.registry import TrackRegistry


def make_feature(start, end, ref='chr1', type='gene', name=None, ident=None,
                 subfeatures=None, **attributes):
    """Build a Feature with the common fields filled in."""
    if name is not None:
        attributes['Name'] = name
    if ident is not None:
        attributes['ID'] = ident
    return Feature(
        ref=ref,
        start=start,
        end=end,
        type=type,
        strand=1,
        source='test',
        attributes=attributes,
        subfeatures=subfeatures or [],
    )


@pytest.fixture
def track_config():
    """Track configuration with one single-valued and one multi-valued extra."""
    return {
        'track': 'genes',
        'feature': ['gene'],
        'extra_attributes': ['Note', 'Alias'],
        'array_attributes': ['Alias'],
    }


@pytest.fixture
def gene_with_transcript():
    """Gene -> mRNA -> two exons, with attributes on every level."""
    exons = [
        make_feature(120, 150, type='exon', ident='exon1'),
        make_feature(180, 200, type='exon', ident='exon2', Note='last'),
    ]
    mrna = make_feature(110, 200, type='mRNA', ident='tx1', name='BRCA-201', subfeatures=exons)
    return make_feature(100, 300, name='BRCA', ident='gene1', Note='tumour suppressor',
                        Alias=['FANCS', 'BRCC1'], subfeatures=[mrna])


@pytest.fixture
def sample_features(gene_with_transcript):
    """A handful of overlapping features on two reference sequences."""
    return [
        make_feature(100, 200, name='geneA', ident='A'),
        make_feature(150, 170, name='geneB', ident='B'),
        make_feature(100, 300, name='geneC', ident='C'),
        make_feature(5000, 5000, name='insertion', ident='ins1'),
        make_feature(40, 60, ref='chr2', name='geneD', ident='D'),
        make_feature(10, 20, type='repeat', name='rep1'),
        gene_with_transcript,
    ]


@pytest.fixture
def sample_source(sample_features):
    """In-memory feature source over ``sample_features``."""
    return ListFeatureSource(sample_features)


@pytest.fixture
def temp_dir(tmp_path):
    """Temporary directory for test files."""
    return tmp_path


@pytest.fixture
def registry(temp_dir):
    """Registry with chr1 and chr2 registered."""
    registry = TrackRegistry(temp_dir / 'data')
    registry.write_ref_seqs([
        {'name': 'chr1', 'id': 1, 'length': 100000},
        {'name': 'chr2', 'id': 2, 'length': 50000},
    ])
    return registry


@pytest.fixture
def features_json(temp_dir, sample_features):
    """JSON feature file holding ``sample_features``."""
    path = temp_dir / 'features.json'
    path.write_text(json.dumps([feature.to_dict() for feature in sample_features]))
    return path


@pytest.fixture
def build_config_file(temp_dir, features_json):
    """Build configuration reading ``features_json``."""
    config = {
        'db_adaptor': 'json',
        'db_args': {'-file': features_json.name},
        'TRACK DEFAULTS': {'class': 'feature', 'autocomplete': 'all'},
        'tracks': [
            {
                'track': 'genes',
                'feature': ['gene'],
                'key': 'Genes',
                'extra_attributes': ['Note', 'Alias'],
                'array_attributes': ['Alias'],
                'urlTemplate': 'https://example.org/{name}',
            },
            {
                'track': 'repeats',
                'feature': ['repeat'],
            },
        ],
    }
    path = temp_dir / 'tracks.json'
    path.write_text(json.dumps(config))
    return path


@pytest.fixture
def feature_factory():
    """Factory for test features (see ``make_feature``)."""
    return make_feature

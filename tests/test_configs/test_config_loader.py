"""Tests for loading build configuration files."""

import json

import pytest

from gfix.configs.config_loader import BuildConfig, load_build_config
from gfix.exceptions import ConfigError


def _write(temp_dir, data, name='conf.json'):
    path = temp_dir / name
    path.write_text(json.dumps(data) if not isinstance(data, str) else data)
    return path


class TestLoadBuildConfig:
    """Test reading configuration files."""

    def test_load(self, build_config_file):
        """Test all sections are read."""
        config = load_build_config(build_config_file)

        assert config.db_adaptor == 'json'
        assert config.db_args == {'-file': 'features.json'}
        assert config.track_defaults == {'class': 'feature', 'autocomplete': 'all'}
        assert [t['track'] for t in config.tracks] == ['genes', 'repeats']
        assert config.base_dir == build_config_file.resolve().parent

    def test_missing_file(self, temp_dir):
        """Test a missing file is a configuration error."""
        with pytest.raises(ConfigError, match='not found'):
            load_build_config(temp_dir / 'missing.json')

    def test_invalid_json(self, temp_dir):
        """Test a file that is not JSON is a configuration error."""
        with pytest.raises(ConfigError):
            load_build_config(_write(temp_dir, '{"tracks": ['))

    @pytest.mark.parametrize("data", [
        [],
        {'tracks': []},
        {'db_adaptor': 'json'},
        {'db_adaptor': 'json', 'tracks': {}},
        {'db_adaptor': 'json', 'tracks': ['genes']},
        {'db_adaptor': 'json', 'tracks': [{'feature': ['gene']}]},
        {'db_adaptor': 'json', 'tracks': [], 'db_args': ['-file']},
    ])
    def test_invalid_structure(self, temp_dir, data):
        """Test structurally invalid configurations are rejected."""
        with pytest.raises(ConfigError):
            load_build_config(_write(temp_dir, data))


class TestSelectTracks:
    """Test choosing tracks to build."""

    def test_select(self):
        """Test all tracks, one track, or none are selected by label."""
        config = BuildConfig(db_adaptor='memory',
                             tracks=[{'track': 'genes'}, {'track': 'repeats'}])

        assert len(config.select_tracks()) == 2
        assert config.select_tracks('repeats') == [{'track': 'repeats'}]
        assert config.select_tracks('snps') == []

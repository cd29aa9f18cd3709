"""Loader for JSON build configuration files."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..data.validators import validate_track_config
from ..exceptions import ConfigError

logger = logging.getLogger(__name__)


DEFAULTS_KEY = 'TRACK DEFAULTS'


@dataclass
class BuildConfig:
    """Parsed build configuration.

    Attributes:
        db_adaptor: Feature source adaptor name
        db_args: Keyword arguments for the adaptor
        track_defaults: Options applied to every track
        tracks: Per-track options, each with ``track`` and ``feature``
        base_dir: Directory of the configuration file
    """
    db_adaptor: str
    db_args: Dict[str, Any] = field(default_factory=dict)
    track_defaults: Dict[str, Any] = field(default_factory=dict)
    tracks: List[Dict[str, Any]] = field(default_factory=list)
    base_dir: Optional[Path] = None

    def select_tracks(self, label: Optional[str] = None) -> List[Dict[str, Any]]:
        """Track configurations to build, optionally only the one labelled ``label``."""
        if label is None:
            return list(self.tracks)
        return [t for t in self.tracks if t.get('track') == label]

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> 'BuildConfig':
        """Create a configuration from a parsed JSON document.

        Raises:
            ConfigError: If required sections are missing or a track is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError("Build configuration must be a JSON object")
        if not data.get('db_adaptor'):
            raise ConfigError("Build configuration has no 'db_adaptor'")

        tracks = data.get('tracks')
        if not isinstance(tracks, list):
            raise ConfigError("Build configuration needs a 'tracks' list")

        errors = []
        for i, track in enumerate(tracks):
            if not isinstance(track, dict):
                errors.append(f"tracks[{i}]: not an object")
                continue
            valid, track_errors = validate_track_config(track)
            if not valid:
                label = track.get('track', f"tracks[{i}]")
                errors.extend(f"{label}: {error}" for error in track_errors)
        if errors:
            raise ConfigError("Invalid track configuration:\n  " + "\n  ".join(errors))

        db_args = data.get('db_args') or {}
        if not isinstance(db_args, dict):
            raise ConfigError("'db_args' must be an object")

        return cls(
            db_adaptor=data['db_adaptor'],
            db_args=db_args,
            track_defaults=data.get(DEFAULTS_KEY) or {},
            tracks=tracks,
            base_dir=base_dir,
        )


def load_build_config(config_path: Path) -> BuildConfig:
    """Load a build configuration file.

    Args:
        config_path: Path to JSON configuration file

    Returns:
        Parsed configuration

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise ConfigError(f"Configuration file '{config_path}' not found or not readable")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read configuration file '{config_path}': {e}") from e

    config = BuildConfig.from_dict(data, base_dir=config_path.resolve().parent)
    logger.debug(f"Loaded configuration with {len(config.tracks)} tracks from {config_path}")
    return config

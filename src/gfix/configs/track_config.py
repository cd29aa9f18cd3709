"""Per-track configuration and build settings."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.chunk_writer import COMPRESSED_CHUNK_MULTIPLIER, DEFAULT_CHUNK_BYTES
from ..core.sorter import DEFAULT_MEMORY_BUDGET


# Legacy option names and their track list spelling
RENAMED_KEYS = {
    'class': 'className',
    'subfeature_classes': 'subfeatureClasses',
    'urlTemplate': 'linkTemplate',
}

# Options that only affect rendering; grouped under ``style``
STYLE_KEYS = (
    'subfeatureClasses',
    'arrowheadClass',
    'className',
    'histCss',
    'featureCss',
    'linkTemplate',
)


def assemble_track_config(defaults: Optional[Dict[str, Any]],
                          track_config: Dict[str, Any]) -> Dict[str, Any]:
    """Merge track options over the track defaults.

    Legacy key names are renamed, then rendering options are moved into
    a nested ``style`` dictionary. Style options given explicitly under
    ``style`` are kept; flat options of the same name win.

    Args:
        defaults: ``TRACK DEFAULTS`` section of the build configuration
        track_config: Options of one track

    Returns:
        New merged configuration dictionary
    """
    merged = dict(defaults or {})
    merged.update(track_config)

    for old_key, new_key in RENAMED_KEYS.items():
        if old_key in merged:
            merged[new_key] = merged.pop(old_key)

    style = dict(merged.get('style') or {})
    for key in STYLE_KEYS:
        if key in merged:
            style[key] = merged.pop(key)
    if style:
        merged['style'] = style

    return merged


@dataclass
class BuildSettings:
    """Tunable limits for building tracks.

    Attributes:
        sort_memory: Bytes of rows buffered before the sorter spills a run
        chunk_bytes: Uncompressed chunk size budget; None picks the default
        compress: Gzip chunk payloads
        workers: Parallel worker processes (1 builds in-process)
        name_hash_chars: Hex digits of the name hash used for bucket files
        progress: Show progress bars
        tmp_dir: Parent directory for sort runs (default: system temp)
    """
    sort_memory: int = DEFAULT_MEMORY_BUDGET
    chunk_bytes: Optional[int] = None
    compress: bool = False
    workers: int = 1
    name_hash_chars: int = 3
    progress: bool = False
    tmp_dir: Optional[Path] = None

    def resolved_chunk_bytes(self) -> int:
        """Chunk budget in effect.

        Without an explicit budget the default is used, scaled up when
        compressing since gzip shrinks the written payload.
        """
        if self.chunk_bytes is not None:
            return self.chunk_bytes
        if self.compress:
            return DEFAULT_CHUNK_BYTES * COMPRESSED_CHUNK_MULTIPLIER
        return DEFAULT_CHUNK_BYTES

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return {
            'sort_memory': self.sort_memory,
            'chunk_bytes': self.resolved_chunk_bytes(),
            'compress': self.compress,
            'workers': self.workers,
            'name_hash_chars': self.name_hash_chars,
        }

"""On-disk track store: layout, building and reading."""

# Submodules are available for import but not loaded at package level
# This prevents circular import issues during installation
# Import submodules explicitly when needed:
#   from gfix.database.builder import TrackBuilder
#   from gfix.database.reader import TrackReader
#   from gfix.database.registry import TrackRegistry

__all__ = [
    "builder",
    "reader",
    "registry",
    "schema",
]

"""Core track building pipeline: flatten, sort, chunk and index."""

# Submodules are available for import but not loaded at package level
# This prevents circular import issues during installation
# Import submodules explicitly when needed:
#   from gfix.core.flattener import FeatureFlattener
#   from gfix.core.sorter import ExternalSorter
#   from gfix.core.chunk_writer import ChunkedTrackWriter

__all__ = [
    "chunk_writer",
    "flattener",
    "interval_index",
    "name_index",
    "sorter",
]

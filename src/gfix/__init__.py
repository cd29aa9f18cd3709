"""
GFIX - Genomic Feature IndeXer

Converts streams of genomic annotation features into coordinate-sorted,
chunked and interval-indexed feature tracks that can be queried by
region or by name without loading a whole track into memory.
"""

try:
    from .__version__ import __version__
except ImportError:
    __version__ = "dev"

__author__ = "GFIX Team"
__email__ = "gfix@example.com"

# Submodules are available for import but not loaded at package level
# This prevents circular import issues during installation
# Import submodules explicitly when needed:
#   from gfix.core.sorter import ExternalSorter
#   from gfix.database.builder import TrackBuilder
#   from gfix.data.sources import create_feature_source

__all__ = [
    "__version__",
]

"""Feature model, input sources and payload codecs."""

# Submodules are available for import but not loaded at package level
# This prevents circular import issues during installation
# Import submodules explicitly when needed:
#   from gfix.data.features import Feature
#   from gfix.data.sources import GFF3FeatureSource
#   from gfix.data.compression import get_codec

__all__ = [
    "compression",
    "features",
    "sources",
    "validators",
]

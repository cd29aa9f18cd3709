"""Utility functions and helpers."""

# Submodules are available for import but not loaded at package level
# This prevents circular import issues during installation
# Import submodules explicitly when needed:
#   from gfix.utils.file_utils import write_json_atomic

__all__ = [
    "file_utils",
]

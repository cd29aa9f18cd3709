"""Command line interfaces."""

# Submodules are available for import but not loaded at package level
# This prevents circular import issues during installation
# Import submodules explicitly when needed:
#   from gfix.cli.main import main
#   from gfix.cli.build import build

__all__ = [
    "build",
    "main",
    "tracks",
]

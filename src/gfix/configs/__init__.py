"""Build configuration and per-track settings."""

# Submodules are available for import but not loaded at package level
# This prevents circular import issues during installation
# Import submodules explicitly when needed:
#   from gfix.configs.config_loader import load_build_config
#   from gfix.configs.track_config import BuildSettings

__all__ = [
    "config_loader",
    "track_config",
]

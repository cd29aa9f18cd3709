"""Exception hierarchy for track building.

Three families matter to callers:

- ``FeatureError``: a single malformed input feature. The builder skips
  the feature, reports it and carries on with the track.
- ``ResourceError``: temporary storage, chunk or registry I/O failed.
  Fatal for the current track; nothing is registered.
- ``InvariantError``: an upstream component handed over data that breaks
  a structural rule (wrong row width, unsorted stream, misuse of a
  sealed object). Fatal for the current track.
"""

from typing import Optional


class GfixError(Exception):
    """Base class for all package errors."""


class ConfigError(GfixError):
    """Configuration file or settings are invalid."""


# Input errors ----------------------------------------------------------------

class FeatureError(GfixError):
    """A single feature could not be flattened."""

    def __init__(self, message: str, feature_id: Optional[str] = None):
        super().__init__(message)
        self.feature_id = feature_id


class MissingCoordinateError(FeatureError):
    """Feature or sub-feature lacks a start or end coordinate."""


class InvalidFeatureError(FeatureError):
    """Feature values do not fit the track's header schema."""


# Resource errors -------------------------------------------------------------

class ResourceError(GfixError):
    """Storage needed to build a track is unavailable or failed."""


class TempStorageError(ResourceError):
    """Temporary run storage could not be created or written."""


class RunCorruptedError(ResourceError):
    """A spilled sort run is truncated or unreadable."""


class ChunkWriteError(ResourceError):
    """A chunk payload or track manifest could not be written."""


class NameIndexWriteError(ResourceError):
    """Name index bucket files could not be written."""


class RegistryError(ResourceError):
    """Track registry layout is missing or could not be updated."""


class FeatureSourceError(ResourceError):
    """Feature source could not be opened or parsed."""


# Invariant violations --------------------------------------------------------

class InvariantError(GfixError):
    """Programming error in a collaborator; never silently coerced."""


class SchemaViolationError(InvariantError):
    """Row width or class index does not match the track headers."""


class SortOrderError(InvariantError):
    """Rows reached the chunk writer out of sort order."""


class SorterStateError(InvariantError):
    """External sorter used outside its add/finish/drain lifecycle."""


class NameIndexStateError(InvariantError):
    """Name index modified after it was finalized."""


# Per-track failure -----------------------------------------------------------

class TrackBuildError(GfixError):
    """A (reference sequence, track) unit failed to build.

    Carries enough context to re-run just that unit.
    """

    def __init__(self, ref: str, track: str, feature_count: int, cause: BaseException):
        self.ref = ref
        self.track = track
        self.feature_count = feature_count
        self.cause = cause
        super().__init__(
            f"Track '{track}' on '{ref}' failed after {feature_count:,} features: "
            f"{type(cause).__name__}: {cause}"
        )

    def __reduce__(self):
        return self.__class__, (self.ref, self.track, self.feature_count, self.cause)

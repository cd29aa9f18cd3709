"""Data validation utilities."""

from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import InvalidFeatureError, MissingCoordinateError


def coerce_coordinate(value: Any) -> Optional[int]:
    """Convert a coordinate value to int.

    Args:
        value: Raw coordinate from a feature source

    Returns:
        Integer coordinate, or None if the value is missing

    Raises:
        ValueError: If the value is present but not an integral number
    """
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValueError(f"Coordinate must be numeric, got: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != int(value):
            raise ValueError(f"Coordinate must be integral, got: {value!r}")
        return int(value)
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    raise ValueError(f"Coordinate must be numeric, got: {value!r}")


def validate_coordinates(start: Any, end: Any) -> Tuple[bool, List[str]]:
    """Validate a start/end coordinate pair.

    Args:
        start: Start coordinate (0-based, inclusive)
        end: End coordinate (0-based, exclusive)

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []
    values = {}

    for field_name, value in (('start', start), ('end', end)):
        try:
            coerced = coerce_coordinate(value)
        except ValueError as e:
            errors.append(str(e))
            continue
        if coerced is None:
            errors.append(f"Missing coordinate field: {field_name}")
        elif coerced < 0:
            errors.append(f"Coordinate {field_name}={coerced} cannot be negative")
        else:
            values[field_name] = coerced

    if len(values) == 2 and values['end'] < values['start']:
        errors.append(f"End {values['end']} is before start {values['start']}")

    return len(errors) == 0, errors


def require_coordinates(start: Any, end: Any, label: str) -> Tuple[int, int]:
    """Return validated integer coordinates or raise a feature error.

    Args:
        start: Raw start coordinate
        end: Raw end coordinate
        label: Feature label used in the error message

    Raises:
        MissingCoordinateError: If start or end is absent
        InvalidFeatureError: If a coordinate is malformed or end < start
    """
    is_valid, errors = validate_coordinates(start, end)
    if is_valid:
        return coerce_coordinate(start), coerce_coordinate(end)

    message = f"{label}: {'; '.join(errors)}"
    if any(error.startswith("Missing coordinate") for error in errors):
        raise MissingCoordinateError(message, feature_id=label)
    raise InvalidFeatureError(message, feature_id=label)


def validate_track_config(track_config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate one entry of the ``tracks`` list in a build configuration.

    Args:
        track_config: Track configuration dictionary

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    label = track_config.get('track')
    if not isinstance(label, str) or not label.strip():
        errors.append("Track label ('track') must be a non-empty string")

    feature_types = track_config.get('feature', [])
    if not isinstance(feature_types, list) or not all(isinstance(t, str) for t in feature_types):
        errors.append("'feature' must be a list of feature type names")

    for key in ('extra_attributes', 'array_attributes'):
        value = track_config.get(key, [])
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            errors.append(f"'{key}' must be a list of attribute names")

    extras = track_config.get('extra_attributes') or []
    arrays = track_config.get('array_attributes') or []
    if isinstance(extras, list) and isinstance(arrays, list):
        undeclared = set(arrays) - set(extras)
        if undeclared:
            errors.append(f"Array attributes not declared in extra_attributes: {sorted(undeclared)}")

    return len(errors) == 0, errors

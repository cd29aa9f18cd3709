"""File handling utilities."""

import json
import os
import re
from pathlib import Path
from typing import Any


def sanitize_filename(name: str, max_length: int = 100) -> str:
    """Sanitize a track label or reference name for use as a path component.

    Args:
        name: Original track label/reference name
        max_length: Maximum length for the sanitized name

    Returns:
        Sanitized name safe for filesystem use
    """
    # Remove or replace unsafe characters
    sanitized = re.sub(r'[<>:"/\\|?*\x00-\x1f]', '_', name)
    if sanitized in ('', '.', '..'):
        sanitized = sanitized.replace('.', '_') or '_'

    # Truncate if too long
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def ensure_output_dir(output_path: Path) -> Path:
    """Ensure output directory exists.

    Args:
        output_path: Path to output directory

    Returns:
        Path object for the created directory
    """
    output_path.mkdir(parents=True, exist_ok=True)
    return output_path


def atomic_write_bytes(file_path: Path, data: bytes) -> None:
    """Write a file so readers see either the old content or the new one.

    Data goes to a sibling temp file that is fsynced and then renamed over
    the destination. The temp file is removed if anything fails.

    Raises:
        OSError: If the file could not be written
    """
    file_path = Path(file_path)
    tmp_path = file_path.with_name(file_path.name + '.tmp')
    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, file_path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def write_json_atomic(file_path: Path, data: Any, indent: int = None) -> None:
    """Serialize ``data`` as JSON and write it atomically."""
    separators = (',', ':') if indent is None else (',', ': ')
    text = json.dumps(data, indent=indent, separators=separators)
    atomic_write_bytes(file_path, text.encode('utf-8'))


def read_json(file_path: Path) -> Any:
    """Load a JSON document from disk."""
    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)

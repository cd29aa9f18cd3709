"""
Pluggable payload compression for chunk files.
A codec is a byte-stream transform; gzip is the built-in compressed format.
"""

import gzip
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Type, Union


GZIP_MAGIC = b'\x1f\x8b'


class Codec(ABC):
    """Transform applied to serialized chunk payloads."""

    name: Optional[str] = None
    suffix: str = ''

    @abstractmethod
    def encode(self, data: bytes) -> bytes:
        """Compress a payload."""
        pass

    @abstractmethod
    def decode(self, data: bytes) -> bytes:
        """Decompress a payload."""
        pass


class IdentityCodec(Codec):
    """Stores payloads unchanged."""

    def encode(self, data: bytes) -> bytes:
        return data

    def decode(self, data: bytes) -> bytes:
        return data


class GzipCodec(Codec):
    """Gzip payloads; written files carry a ``.gz`` suffix."""

    name = 'gzip'
    suffix = '.gz'

    def __init__(self, compresslevel: int = 6):
        self.compresslevel = compresslevel

    def encode(self, data: bytes) -> bytes:
        # Fixed mtime keeps output byte-identical across builds
        return gzip.compress(data, compresslevel=self.compresslevel, mtime=0)

    def decode(self, data: bytes) -> bytes:
        return gzip.decompress(data)


_CODECS: Dict[Optional[str], Type[Codec]] = {
    None: IdentityCodec,
    'none': IdentityCodec,
    'gzip': GzipCodec,
}


def get_codec(name: Optional[str]) -> Codec:
    """Return a codec instance by name (None or 'none' for no compression).

    Raises:
        ValueError: If the codec name is unknown
    """
    if name not in _CODECS:
        raise ValueError(f"Unknown compression codec: {name}")
    return _CODECS[name]()


def is_gzip_file(file_path: Union[str, Path]) -> bool:
    """
    Detect if file is gzip compressed by its magic bytes.

    Args:
        file_path: Path to file

    Returns:
        True if file is gzip compressed, False otherwise
    """
    with open(file_path, 'rb') as f:
        return f.read(2) == GZIP_MAGIC


def read_payload(file_path: Union[str, Path]) -> bytes:
    """Read a chunk file, transparently decompressing gzip payloads."""
    with open(file_path, 'rb') as f:
        data = f.read()
    if data[:2] == GZIP_MAGIC:
        return GzipCodec().decode(data)
    return data

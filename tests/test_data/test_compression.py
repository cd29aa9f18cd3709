"""Tests for chunk payload compression."""

import gzip

import pytest

from gfix.data.compression import (
    GzipCodec, IdentityCodec, get_codec, is_gzip_file, read_payload
)


PAYLOAD = b'[[0,1,2,"a"],[0,3,4,"b"]]'


class TestCodecs:
    """Test codec lookup and behaviour."""

    def test_get_codec(self):
        """Test codecs are found by name."""
        assert isinstance(get_codec(None), IdentityCodec)
        assert isinstance(get_codec('none'), IdentityCodec)
        assert isinstance(get_codec('gzip'), GzipCodec)

    def test_unknown_codec(self):
        """Test an unknown codec name is rejected."""
        with pytest.raises(ValueError):
            get_codec('zstd')

    def test_gzip_round_trip(self):
        """Test gzip output is standard gzip and decodes to the payload."""
        codec = GzipCodec()
        encoded = codec.encode(PAYLOAD)
        assert gzip.decompress(encoded) == PAYLOAD
        assert codec.decode(encoded) == PAYLOAD

    def test_gzip_is_deterministic(self):
        """Test encoding the same payload twice gives identical bytes."""
        assert GzipCodec().encode(PAYLOAD) == GzipCodec().encode(PAYLOAD)

    def test_suffixes(self):
        """Test file suffixes of the built-in codecs."""
        assert IdentityCodec().suffix == ''
        assert GzipCodec().suffix == '.gz'


class TestFiles:
    """Test reading chunk files from disk."""

    def test_detect_and_read(self, temp_dir):
        """Test gzip files are detected and transparently decompressed."""
        plain = temp_dir / 'lf-0.json'
        packed = temp_dir / 'lf-0.json.gz'
        plain.write_bytes(PAYLOAD)
        packed.write_bytes(GzipCodec().encode(PAYLOAD))

        assert not is_gzip_file(plain)
        assert is_gzip_file(packed)
        assert read_payload(plain) == PAYLOAD
        assert read_payload(packed) == PAYLOAD

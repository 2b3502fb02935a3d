# SPDX-License-Identifier: Apache-2.0
"""
Vector codec: fixed-width binary packing and dimensionality checks.
"""

import struct

import pytest

from redisvec_sdk.vector.codec import VectorCodec
from redisvec_sdk.vector.vector_base import DimensionError, InvalidArgumentError


def test_vector_codec_encodes_four_bytes_per_float32_element():
    """Verify float32 vectors pack to four bytes per element."""
    assert len(VectorCodec(3).encode([1, 2, 3])) == 12


def test_vector_codec_encodes_eight_bytes_per_float64_element():
    """Verify float64 vectors pack to eight bytes per element."""
    codec = VectorCodec(3, float64=True)
    assert codec.width == 8
    assert len(codec.encode([1, 2, 3])) == 24


def test_vector_codec_decode_inverts_encode_for_representable_values():
    """Verify decoding an encoded vector returns the exact values."""
    codec = VectorCodec(4)
    values = [1.5, -2.25, 0.0, 1024.0]
    assert codec.decode(codec.encode(values)) == values


def test_vector_codec_float64_keeps_full_precision():
    """Verify float64 encoding keeps values float32 would round."""
    codec = VectorCodec(2, float64=True)
    values = [0.1, 1e-300]
    assert codec.decode(codec.encode(values)) == values


def test_vector_codec_little_endian_layout():
    """Verify the little-endian codec matches the vector-set blob layout."""
    codec = VectorCodec(None, byte_order="<")
    assert codec.encode([1.0, 2.0]) == struct.pack("<2f", 1.0, 2.0)


def test_vector_codec_wrong_length_raises_dimension_error():
    """Verify a wrong-length vector raises DimensionError with expected/actual details."""
    codec = VectorCodec(3)
    with pytest.raises(DimensionError) as exc_info:
        codec.encode([1, 2])

    err = exc_info.value
    assert isinstance(err, InvalidArgumentError)
    assert err.code == "DIMENSION_MISMATCH"
    assert "expected 3 dimensions" in str(err)
    assert err.details == {"expected": 3, "actual": 2}


@pytest.mark.parametrize("vector", [["a", 1, 2], ["1", 2, 3], [True, 1, 2], [None, 1, 2]])
def test_vector_codec_rejects_non_numeric_entries(vector):
    """Verify strings, booleans and None are rejected as vector entries."""
    with pytest.raises(InvalidArgumentError) as exc_info:
        VectorCodec(3).check(vector)
    assert not isinstance(exc_info.value, DimensionError)


def test_vector_codec_rejects_non_sequence_vector():
    """Verify a string is not accepted as a vector."""
    with pytest.raises(InvalidArgumentError):
        VectorCodec(3).check("abc")


def test_vector_codec_without_dimensions_accepts_any_length():
    """Verify a codec without declared dimensions accepts any non-empty length."""
    codec = VectorCodec(None)
    assert codec.check([1]) == [1.0]
    assert codec.check(range(5)) == [0.0, 1.0, 2.0, 3.0, 4.0]


def test_vector_codec_rejects_empty_vector():
    """Verify empty vectors are rejected."""
    with pytest.raises(DimensionError):
        VectorCodec(None).check([])


def test_vector_codec_decode_rejects_blob_of_wrong_size():
    """Verify blobs whose size does not match the element width are rejected."""
    with pytest.raises(DimensionError):
        VectorCodec(3).decode(b"\x00" * 8)
    with pytest.raises(DimensionError):
        VectorCodec(None).decode(b"\x00" * 5)


def test_vector_codec_decode_rejects_text_replies():
    """Verify decode only accepts binary replies."""
    with pytest.raises(InvalidArgumentError):
        VectorCodec(1).decode("abcd")


@pytest.mark.parametrize("dimensions", [0, -1, 2.5, True])
def test_vector_codec_rejects_bad_dimensions(dimensions):
    """Verify non-positive, fractional and boolean dimensions are rejected."""
    with pytest.raises(InvalidArgumentError):
        VectorCodec(dimensions)

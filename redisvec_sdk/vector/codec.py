# redisvec_sdk/vector/codec.py
# SPDX-License-Identifier: Apache-2.0
"""
Vector and metadata codecs.

``VectorCodec`` packs a dense numeric sequence into the binary blob the
server stores and searches (IEEE-754, 4 or 8 bytes per element, no padding)
and unpacks it again. ``MetadataCodec`` maps caller attributes onto the
record representation of a collection and plans full-replace metadata
updates without ever touching the reserved vector field.
"""

from __future__ import annotations

import json
import math
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from redisvec_sdk.vector.vector_base import (
    VECTOR_FIELD,
    DimensionError,
    InvalidArgumentError,
    InvalidMetadataError,
    as_text,
)

STORAGE_TYPES: Tuple[str, ...] = ("hash", "json")

_HASH_SCALARS = (str, bytes, int, float)


def _hash_value(value: Any) -> Any:
    try:
        return as_text(value)
    except UnicodeDecodeError:
        return bytes(value)


class VectorCodec:
    """
    Fixed-width binary encoding of vectors.

    Args:
        dimensions: Declared dimensionality, or None to accept any length
        float64: Use 8-byte doubles instead of 4-byte floats
        byte_order: ``struct`` byte-order character; "=" is machine-native,
            "<" is the little-endian layout vector-sets require
    """

    def __init__(
        self,
        dimensions: Optional[int],
        *,
        float64: bool = False,
        byte_order: str = "=",
    ) -> None:
        if dimensions is not None and (
            isinstance(dimensions, bool) or not isinstance(dimensions, int) or dimensions <= 0
        ):
            raise InvalidArgumentError("dimensions must be a positive integer")
        if byte_order not in ("=", "<", ">"):
            raise InvalidArgumentError(f"invalid byte order: {byte_order!r}")
        self._dimensions = dimensions
        self._float64 = bool(float64)
        self._byte_order = byte_order
        self._fmt = "d" if self._float64 else "f"

    @property
    def dimensions(self) -> Optional[int]:
        return self._dimensions

    @property
    def width(self) -> int:
        """Bytes per element."""
        return 8 if self._float64 else 4

    def check(self, vector: Iterable[Any]) -> List[float]:
        """Validate ``vector`` and return it as a list of floats."""
        if isinstance(vector, (str, bytes)) or not isinstance(vector, Iterable):
            raise InvalidArgumentError("vector must be a sequence of numbers")
        values = list(vector)
        if self._dimensions is not None and len(values) != self._dimensions:
            raise DimensionError(
                f"expected {self._dimensions} dimensions",
                details={"expected": self._dimensions, "actual": len(values)},
            )
        if not values:
            raise DimensionError("vector must not be empty")
        try:
            floats = [float(x) for x in values]
        except (TypeError, ValueError):
            raise InvalidArgumentError("vector must contain only numeric values") from None
        if any(isinstance(x, (bool, str, bytes)) for x in values):
            raise InvalidArgumentError("vector must contain only numeric values")
        return floats

    def encode(self, vector: Iterable[Any]) -> bytes:
        values = self.check(vector)
        return struct.pack(f"{self._byte_order}{len(values)}{self._fmt}", *values)

    def decode(self, blob: Any) -> List[float]:
        # str replies mean the transport decoded the blob (decode_responses=True)
        if not isinstance(blob, (bytes, bytearray)):
            raise InvalidArgumentError(f"expected a binary blob, got {type(blob).__name__}")
        count, rest = divmod(len(blob), self.width)
        if rest or (self._dimensions is not None and count != self._dimensions):
            raise DimensionError(
                f"blob of {len(blob)} bytes does not hold "
                f"{self._dimensions if self._dimensions is not None else 'whole'} "
                f"{'float64' if self._float64 else 'float32'} values",
                details={"bytes": len(blob), "width": self.width},
            )
        return list(struct.unpack(f"{self._byte_order}{count}{self._fmt}", bytes(blob)))


@dataclass(frozen=True)
class MetadataUpdate:
    """
    Plan for a full-replace metadata update of one stored record.

    Attributes:
        existed: Whether the target record exists; when False nothing is written
        delete: Existing attribute names to remove (never the vector field)
        write: Encoded attributes to (re)write
    """
    existed: bool
    delete: List[str] = field(default_factory=list)
    write: Dict[str, Any] = field(default_factory=dict)


class MetadataCodec:
    """
    Attribute encoding for a storage representation.

    ``hash`` records keep attributes as loose scalar fields next to the
    binary vector field; ``json`` documents keep them as JSON members next
    to the vector array. In both the vector field name is reserved.
    """

    def __init__(self, storage: str = "hash", *, vector_field: str = VECTOR_FIELD) -> None:
        if storage not in STORAGE_TYPES:
            raise InvalidArgumentError(
                f"invalid storage: {storage!r}",
                details={"allowed": list(STORAGE_TYPES)},
            )
        self._storage = storage
        self._vector_field = vector_field

    @property
    def storage(self) -> str:
        return self._storage

    @property
    def vector_field(self) -> str:
        return self._vector_field

    def encode(self, attributes: Optional[Mapping[Any, Any]]) -> Dict[str, Any]:
        """Normalize keys to strings and validate values for the storage type."""
        if attributes is None:
            return {}
        if not isinstance(attributes, Mapping):
            raise InvalidMetadataError("metadata must be a mapping")

        encoded: Dict[str, Any] = {}
        for key, value in attributes.items():
            name = as_text(key) if isinstance(key, bytes) else str(key)
            if name == self._vector_field:
                raise InvalidMetadataError(
                    f"metadata cannot contain the reserved field '{self._vector_field}'"
                )
            encoded[name] = self._encode_value(name, value)
        return encoded

    def _encode_value(self, name: str, value: Any) -> Any:
        if self._storage == "hash":
            if isinstance(value, bool):
                return int(value)
            if not isinstance(value, _HASH_SCALARS):
                raise InvalidMetadataError(
                    f"metadata value for '{name}' must be a scalar for hash storage",
                    details={"type": type(value).__name__},
                )
            if isinstance(value, float) and not math.isfinite(value):
                raise InvalidMetadataError(f"metadata value for '{name}' must be finite")
            return value
        try:
            json.dumps(value, allow_nan=False)
        except (TypeError, ValueError):
            raise InvalidMetadataError(
                f"metadata value for '{name}' is not JSON-serializable",
                details={"type": type(value).__name__},
            ) from None
        return value

    def hash_fields(self, encoded: Mapping[str, Any]) -> List[Any]:
        """Flatten encoded attributes into ``[field, value, ...]`` HSET arguments."""
        args: List[Any] = []
        for name, value in encoded.items():
            args.extend((name, value))
        return args

    def document(self, vector: Sequence[float], encoded: Mapping[str, Any]) -> str:
        """Serialize a JSON document holding the vector and its attributes."""
        doc: Dict[str, Any] = {self._vector_field: list(vector)}
        doc.update(encoded)
        return json.dumps(doc, separators=(",", ":"))

    # --- update planning ---

    def _existing(self, existing_keys: Optional[Iterable[Any]]) -> List[str]:
        return [as_text(k) for k in (existing_keys or [])]

    def merge(
        self,
        existing_keys: Optional[Iterable[Any]],
        new_attributes: Optional[Mapping[Any, Any]],
    ) -> MetadataUpdate:
        """
        Plan a full replacement of the stored attributes with ``new_attributes``.

        Documents drop only the members absent from the new mapping; hash
        records drop every attribute field and rewrite the supplied set.
        """
        encoded = self.encode(new_attributes)
        existing = self._existing(existing_keys)
        if not existing:
            return MetadataUpdate(existed=False)

        stale = [k for k in existing if k != self._vector_field]
        if self._storage == "json":
            stale = [k for k in stale if k not in encoded]
        return MetadataUpdate(existed=True, delete=stale, write=encoded)

    def remove(self, existing_keys: Optional[Iterable[Any]]) -> MetadataUpdate:
        """Plan removal of every attribute, keeping the vector field."""
        existing = self._existing(existing_keys)
        if not existing:
            return MetadataUpdate(existed=False)
        return MetadataUpdate(
            existed=True,
            delete=[k for k in existing if k != self._vector_field],
        )

    # --- decoding ---

    def decode_hash(self, fields: Mapping[Any, Any]) -> Dict[str, Any]:
        """Stored hash fields -> attributes; binary values that are not UTF-8 stay bytes."""
        return {
            as_text(k): _hash_value(v)
            for k, v in fields.items()
            if as_text(k) != self._vector_field
        }

    def decode_document(self, doc: Any) -> Dict[str, Any]:
        if isinstance(doc, (bytes, str)):
            doc = json.loads(as_text(doc))
        if not isinstance(doc, Mapping):
            return {}
        return {k: v for k, v in doc.items() if k != self._vector_field}


__all__ = [
    "STORAGE_TYPES",
    "VectorCodec",
    "MetadataCodec",
    "MetadataUpdate",
]

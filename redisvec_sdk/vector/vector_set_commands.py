# redisvec_sdk/vector/vector_set_commands.py
# SPDX-License-Identifier: Apache-2.0
"""
Command construction for the native vector-set (``V*``) backend.

A vector-set has no schema step: the set key is created by the first
``VADD`` and its dimensionality is fixed by that insert. Per-insert options
(quantization, random-projection reduction, graph degree, construction
breadth) are captured once in ``VectorSetConfig`` and repeated on every
``VADD``. Vectors travel as little-endian FP32 blobs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from redisvec_sdk.vector.codec import VectorCodec
from redisvec_sdk.vector.vector_base import ID_TYPES, InvalidArgumentError, InvalidMetadataError

QUANTIZATION_TYPES: Dict[Optional[str], str] = {
    None: "NOQUANT",
    "none": "NOQUANT",
    "binary": "BIN",
    "int8": "Q8",
}


def _optional_int(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be a positive integer")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"{name} must be a positive integer") from None
    if value <= 0:
        raise InvalidArgumentError(f"{name} must be a positive integer")
    return value


@dataclass(frozen=True)
class VectorSetConfig:
    """
    Options of one vector-set.

    Attributes:
        m: Maximum graph links per node (``VADD ... M``)
        ef_construction: Exploration factor while inserting (``VADD ... EF``)
        ef_search: Default exploration factor for ``VSIM``
        epsilon: Default ``VSIM`` distance bound
        quantization: None / "none", "binary" or "int8"
        reduce: Random-projection target dimensionality
        id_type: "string" or "integer"
    """
    m: Optional[int] = None
    ef_construction: Optional[int] = None
    ef_search: Optional[int] = None
    epsilon: Optional[float] = None
    quantization: Optional[str] = None
    reduce: Optional[int] = None
    id_type: str = "string"

    def __post_init__(self) -> None:
        for name in ("m", "ef_construction", "ef_search", "reduce"):
            object.__setattr__(self, name, _optional_int(name, getattr(self, name)))
        if self.epsilon is not None:
            try:
                object.__setattr__(self, "epsilon", float(self.epsilon))
            except (TypeError, ValueError):
                raise InvalidArgumentError("epsilon must be a number") from None
        if self.quantization not in QUANTIZATION_TYPES:
            raise InvalidArgumentError(
                "invalid quantization",
                details={"allowed": [k for k in QUANTIZATION_TYPES if k is not None]},
            )
        if self.id_type not in ID_TYPES:
            raise InvalidArgumentError("invalid id_type", details={"allowed": list(ID_TYPES)})

    @property
    def quant_type(self) -> str:
        return QUANTIZATION_TYPES[self.quantization]


class VectorSetCommandBuilder:
    """Emit wire commands for one vector-set key."""

    def __init__(self, key: str, config: VectorSetConfig) -> None:
        self._key = key
        self._config = config
        self._codec = VectorCodec(None, byte_order="<")

    @property
    def key(self) -> str:
        return self._key

    @property
    def codec(self) -> VectorCodec:
        return self._codec

    def add(self, item_id: Any, vector: Sequence[float], attributes: Optional[Any] = None) -> List[Any]:
        config = self._config
        command: List[Any] = ["VADD", self._key]
        if config.reduce is not None:
            command.extend(["REDUCE", config.reduce])
        command.extend(["FP32", self._codec.encode(vector), item_id, config.quant_type])
        if attributes is not None:
            command.extend(["SETATTR", encode_attributes(attributes)])
        if config.m is not None:
            command.extend(["M", config.m])
        if config.ef_construction is not None:
            command.extend(["EF", config.ef_construction])
        return command

    def similar(
        self,
        query: List[Any],
        count: int,
        *,
        with_attributes: bool = False,
        ef: Optional[int] = None,
        exact: bool = False,
        filter: Optional[str] = None,
    ) -> List[Any]:
        """``VSIM`` for ``query`` (``["FP32", blob]`` or ``["ELE", id]``)."""
        ef = self._config.ef_search if ef is None else _optional_int("ef", ef)
        command: List[Any] = ["VSIM", self._key, *query]
        if with_attributes:
            command.append("WITHATTRIBS")
        if ef is not None:
            command.extend(["EF", ef])
        if self._config.epsilon is not None:
            command.extend(["EPSILON", self._config.epsilon])
        if filter is not None:
            if not isinstance(filter, str) or not filter.strip():
                raise InvalidArgumentError("filter must be a non-empty string")
            command.extend(["FILTER", filter])
        if exact:
            command.append("TRUTH")
        command.extend(["WITHSCORES", "COUNT", int(count)])
        return command

    def by_vector(self, vector: Sequence[float]) -> List[Any]:
        return ["FP32", self._codec.encode(vector)]

    def by_element(self, item_id: Any) -> List[Any]:
        return ["ELE", item_id]

    def info(self) -> List[Any]:
        return ["VINFO", self._key]

    def dimensions(self) -> List[Any]:
        return ["VDIM", self._key]

    def count(self) -> List[Any]:
        return ["VCARD", self._key]

    def contains(self, item_id: Any) -> List[Any]:
        return ["VISMEMBER", self._key, item_id]

    def remove(self, item_id: Any) -> List[Any]:
        return ["VREM", self._key, item_id]

    def embedding(self, item_id: Any) -> List[Any]:
        return ["VEMB", self._key, item_id]

    def get_attributes(self, item_id: Any) -> List[Any]:
        return ["VGETATTR", self._key, item_id]

    def set_attributes(self, item_id: Any, attributes: Optional[Any]) -> List[Any]:
        # an empty string clears the attributes
        payload = "" if attributes is None else encode_attributes(attributes)
        return ["VSETATTR", self._key, item_id, payload]

    def links(self, item_id: Any) -> List[Any]:
        return ["VLINKS", self._key, item_id, "WITHSCORES"]

    def sample(self, count: int) -> List[Any]:
        return ["VRANDMEMBER", self._key, int(count)]

    def drop(self) -> List[Any]:
        return ["DEL", self._key]


def encode_attributes(attributes: Any) -> str:
    try:
        return json.dumps(attributes, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError):
        raise InvalidMetadataError(
            "metadata is not JSON-serializable",
            details={"type": type(attributes).__name__},
        ) from None


__all__ = [
    "QUANTIZATION_TYPES",
    "VectorSetConfig",
    "VectorSetCommandBuilder",
    "encode_attributes",
]

# redisvec_sdk/vector/index_commands.py
# SPDX-License-Identifier: Apache-2.0
"""
Command construction for the inverted-index (``FT.*``) backend.

An index collection is described by a frozen ``IndexSchema``: the base
vector field declaration (dimensions, element type, distance metric), the
record representation (HASH fields or JSON documents), the id domain, optional
filterable metadata fields, and exactly one algorithm parameter block:

- ``FlatParams``       brute-force index, capacity hints only
- ``HnswParams``       HNSW graph: degree, construction/runtime breadth, epsilon
- ``SvsVamanaParams``  Vamana graph with optional LVQ / LeanVec compression

The blocks are independent tagged values; the schema composes one of them
and merges its parameters into the base vector field declaration.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from redisvec_sdk.vector.codec import STORAGE_TYPES
from redisvec_sdk.vector.keyspace import Keyspace
from redisvec_sdk.vector.vector_base import (
    ID_TYPES,
    SCORE_FIELD,
    VECTOR_FIELD,
    InvalidArgumentError,
)

DISTANCE_METRICS: Dict[str, str] = {
    "l2": "L2",
    "cosine": "COSINE",
    "inner_product": "IP",
}

VECTOR_TYPES: Dict[str, str] = {
    "float32": "FLOAT32",
    "float64": "FLOAT64",
}

METADATA_FIELD_TYPES: Dict[str, str] = {
    "tag": "TAG",
    "text": "TEXT",
    "numeric": "NUMERIC",
}

SVS_COMPRESSION: Tuple[str, ...] = (
    "LVQ4",
    "LVQ8",
    "LVQ4x4",
    "LVQ4x8",
    "LeanVec4x8",
    "LeanVec8x8",
)

_VECTOR_FIELD_REF = re.compile(r"@" + re.escape(VECTOR_FIELD) + r"\b")


def _positive(name: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidArgumentError(f"{name} must be a positive integer")


def _non_negative_number(name: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise InvalidArgumentError(f"{name} must be a non-negative number")


def _set(params: Dict[str, Any], name: str, value: Any) -> None:
    if value is not None:
        params[name] = value


class IndexState(Enum):
    """Lifecycle of an index collection as seen by one client."""
    UNCONFIGURED = "unconfigured"
    SCHEMA_DECLARED = "schema_declared"
    CREATED = "created"
    DROPPED = "dropped"


# =============================================================================
# Algorithm parameter blocks
# =============================================================================


@dataclass(frozen=True)
class FlatParams:
    """Brute-force index. ``initial_cap`` / ``block_size`` are capacity hints."""
    initial_cap: Optional[int] = None
    block_size: Optional[int] = None

    algorithm: ClassVar[str] = "FLAT"
    cosine_distance: ClassVar[bool] = True
    vector_types: ClassVar[Tuple[str, ...]] = ("float32", "float64")

    def __post_init__(self) -> None:
        _positive("initial_cap", self.initial_cap)
        _positive("block_size", self.block_size)

    def create_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        _set(params, "INITIAL_CAP", self.initial_cap)
        _set(params, "BLOCK_SIZE", self.block_size)
        return params


@dataclass(frozen=True)
class HnswParams:
    """
    HNSW graph index.

    Attributes:
        initial_cap: Capacity hint
        m: Maximum outgoing edges per node
        ef_construction: Candidate list size while building the graph
        ef_runtime: Default candidate list size at query time
        epsilon: Relative factor bounding range-query boundaries
    """
    initial_cap: Optional[int] = None
    m: Optional[int] = None
    ef_construction: Optional[int] = None
    ef_runtime: Optional[int] = None
    epsilon: Optional[float] = None

    algorithm: ClassVar[str] = "HNSW"
    cosine_distance: ClassVar[bool] = True
    vector_types: ClassVar[Tuple[str, ...]] = ("float32", "float64")

    def __post_init__(self) -> None:
        _positive("initial_cap", self.initial_cap)
        _positive("m", self.m)
        _positive("ef_construction", self.ef_construction)
        _positive("ef_runtime", self.ef_runtime)
        _non_negative_number("epsilon", self.epsilon)

    def create_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        _set(params, "INITIAL_CAP", self.initial_cap)
        _set(params, "M", self.m)
        _set(params, "EF_CONSTRUCTION", self.ef_construction)
        _set(params, "EF_RUNTIME", self.ef_runtime)
        _set(params, "EPSILON", self.epsilon)
        return params


@dataclass(frozen=True)
class SvsVamanaParams:
    """
    SVS-VAMANA graph index with optional vector compression.

    Attributes:
        compression: One of ``SVS_COMPRESSION`` (LVQ / LeanVec variants)
        construction_window_size: Search window while building the graph
        graph_max_degree: Maximum edges per node
        search_window_size: Default search window at query time
        epsilon: Range-query boundary factor
        training_threshold: Vectors collected before compression is trained
        reduce: Target dimensionality for LeanVec compression

    Cosine distance is withheld for this algorithm and only float32 vectors
    are accepted.
    """
    compression: Optional[str] = None
    construction_window_size: Optional[int] = None
    graph_max_degree: Optional[int] = None
    search_window_size: Optional[int] = None
    epsilon: Optional[float] = None
    training_threshold: Optional[int] = None
    reduce: Optional[int] = None

    algorithm: ClassVar[str] = "SVS-VAMANA"
    cosine_distance: ClassVar[bool] = False
    vector_types: ClassVar[Tuple[str, ...]] = ("float32",)

    def __post_init__(self) -> None:
        if self.compression is not None and self.compression not in SVS_COMPRESSION:
            raise InvalidArgumentError(
                "invalid compression",
                details={"allowed": list(SVS_COMPRESSION)},
            )
        _positive("construction_window_size", self.construction_window_size)
        _positive("graph_max_degree", self.graph_max_degree)
        _positive("search_window_size", self.search_window_size)
        _non_negative_number("epsilon", self.epsilon)
        _positive("training_threshold", self.training_threshold)
        _positive("reduce", self.reduce)
        if self.training_threshold is not None and self.compression is None:
            raise InvalidArgumentError("training_threshold requires compression")
        if self.reduce is not None and not (self.compression or "").startswith("LeanVec"):
            raise InvalidArgumentError("reduce requires LeanVec compression")

    def create_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        _set(params, "COMPRESSION", self.compression)
        _set(params, "CONSTRUCTION_WINDOW_SIZE", self.construction_window_size)
        _set(params, "GRAPH_MAX_DEGREE", self.graph_max_degree)
        _set(params, "SEARCH_WINDOW_SIZE", self.search_window_size)
        _set(params, "EPSILON", self.epsilon)
        _set(params, "TRAINING_THRESHOLD", self.training_threshold)
        _set(params, "REDUCE", self.reduce)
        return params


AlgorithmParams = Union[FlatParams, HnswParams, SvsVamanaParams]

ALGORITHMS: Dict[str, type] = {
    "flat": FlatParams,
    "hnsw": HnswParams,
    "svs_vamana": SvsVamanaParams,
}


def resolve_algorithm(algorithm: Union[None, str, AlgorithmParams]) -> AlgorithmParams:
    """Accept a parameter block or an algorithm name ("flat", "hnsw", "svs_vamana")."""
    if algorithm is None:
        return HnswParams()
    if isinstance(algorithm, str):
        key = algorithm.strip().lower().replace("-", "_")
        if key not in ALGORITHMS:
            raise InvalidArgumentError(
                f"invalid algorithm: {algorithm!r}",
                details={"allowed": sorted(ALGORITHMS)},
            )
        return ALGORITHMS[key]()
    if not isinstance(algorithm, tuple(ALGORITHMS.values())):
        raise InvalidArgumentError(f"invalid algorithm block: {type(algorithm).__name__}")
    return algorithm


# =============================================================================
# Schema
# =============================================================================


@dataclass(frozen=True)
class IndexSchema:
    """
    Declared schema of an index collection.

    Attributes:
        dimensions: Vector length, fixed for the collection
        distance: "l2", "cosine", "inner_product", or None (storage only, no search)
        type: "float32" or "float64"
        storage: "hash" (binary field) or "json" (document)
        id_type: "string" or "integer"
        algorithm: One algorithm parameter block
        metadata_fields: Filterable attribute name -> "tag" | "text" | "numeric"
    """
    dimensions: int
    distance: Optional[str] = None
    type: str = "float32"
    storage: str = "hash"
    id_type: str = "string"
    algorithm: AlgorithmParams = field(default_factory=HnswParams)
    metadata_fields: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.dimensions, bool) or not isinstance(self.dimensions, int) or self.dimensions <= 0:
            raise InvalidArgumentError("dimensions must be a positive integer")
        if self.distance is not None and str(self.distance) not in DISTANCE_METRICS:
            raise InvalidArgumentError(
                "invalid distance",
                details={"allowed": sorted(DISTANCE_METRICS)},
            )
        if self.type not in VECTOR_TYPES:
            raise InvalidArgumentError("invalid type", details={"allowed": sorted(VECTOR_TYPES)})
        if self.storage not in STORAGE_TYPES:
            raise InvalidArgumentError("invalid storage", details={"allowed": list(STORAGE_TYPES)})
        if self.id_type not in ID_TYPES:
            raise InvalidArgumentError("invalid id_type", details={"allowed": list(ID_TYPES)})

        object.__setattr__(self, "algorithm", resolve_algorithm(self.algorithm))
        if self.distance == "cosine" and not self.algorithm.cosine_distance:
            raise InvalidArgumentError(
                f"cosine distance not supported for {self.algorithm.algorithm}"
            )
        if self.type not in self.algorithm.vector_types:
            raise InvalidArgumentError(
                f"type {self.type} not supported for {self.algorithm.algorithm}",
                details={"allowed": list(self.algorithm.vector_types)},
            )

        fields: Dict[str, str] = {}
        for name, kind in dict(self.metadata_fields or {}).items():
            if not isinstance(name, str) or not name or name == VECTOR_FIELD:
                raise InvalidArgumentError(f"invalid metadata field name: {name!r}")
            if kind not in METADATA_FIELD_TYPES:
                raise InvalidArgumentError(
                    f"invalid metadata field type for {name!r}",
                    details={"allowed": sorted(METADATA_FIELD_TYPES)},
                )
            fields[name] = kind
        object.__setattr__(self, "metadata_fields", fields)

    @property
    def distance_metric(self) -> Optional[str]:
        """Server metric token (L2 / COSINE / IP) or None."""
        return DISTANCE_METRICS[self.distance] if self.distance is not None else None

    @property
    def float64(self) -> bool:
        return self.type == "float64"

    @property
    def json(self) -> bool:
        return self.storage == "json"


# =============================================================================
# Command builder
# =============================================================================


class IndexCommandBuilder:
    """Emit wire commands for one index collection."""

    def __init__(self, keyspace: Keyspace, schema: IndexSchema) -> None:
        self._keyspace = keyspace
        self._schema = schema

    @property
    def index_name(self) -> str:
        return self._keyspace.index_name

    # --- schema lifecycle ---

    def create(self) -> List[Any]:
        schema = self._schema
        if schema.distance_metric is None:
            raise InvalidArgumentError("distance is required to create an index")

        params: Dict[str, Any] = {
            "TYPE": VECTOR_TYPES[schema.type],
            "DIM": schema.dimensions,
            "DISTANCE_METRIC": schema.distance_metric,
        }
        params.update(schema.algorithm.create_params())

        command: List[Any] = ["FT.CREATE", self.index_name, "ON", "JSON" if schema.json else "HASH"]
        command.extend(["PREFIX", 1, self._keyspace.prefix, "SCHEMA"])
        if schema.json:
            command.extend([f"$.{VECTOR_FIELD}", "AS"])
        command.extend([VECTOR_FIELD, "VECTOR", schema.algorithm.algorithm, len(params) * 2])
        for name, value in params.items():
            command.extend([name, value])

        for name, kind in schema.metadata_fields.items():
            if schema.json:
                command.extend([f"$.{name}", "AS"])
            command.extend([name, METADATA_FIELD_TYPES[kind]])
        return command

    def info(self) -> List[Any]:
        return ["FT.INFO", self.index_name]

    def drop_index(self) -> List[Any]:
        return ["FT.DROPINDEX", self.index_name]

    # --- items ---

    def add(self, key: str, blob: bytes, vector: Sequence[float], metadata: Mapping[str, Any], codec: Any) -> List[Any]:
        """HSET of the binary vector plus attributes, or JSON.SET of a whole document."""
        if self._schema.json:
            return ["JSON.SET", key, "$", codec.document(vector, metadata)]
        return ["HSET", key, VECTOR_FIELD, blob, *codec.hash_fields(metadata)]

    def get_vector(self, key: str) -> List[Any]:
        if self._schema.json:
            return ["JSON.GET", key, f"$.{VECTOR_FIELD}"]
        return ["HGET", key, VECTOR_FIELD]

    def get_record(self, key: str) -> List[Any]:
        if self._schema.json:
            return ["JSON.GET", key, "$"]
        return ["HGETALL", key]

    def field_names(self, key: str) -> List[Any]:
        if self._schema.json:
            return ["JSON.OBJKEYS", key, "$"]
        return ["HKEYS", key]

    def delete_fields(self, key: str, names: Sequence[str]) -> List[List[Any]]:
        if not names:
            return []
        if self._schema.json:
            return [["JSON.DEL", key, _json_path(name)] for name in names]
        return [["HDEL", key, *names]]

    def write_fields(self, key: str, encoded: Mapping[str, Any], codec: Any) -> List[List[Any]]:
        if not encoded:
            return []
        if self._schema.json:
            return [
                ["JSON.SET", key, _json_path(name), json.dumps(value)]
                for name, value in encoded.items()
            ]
        return [["HSET", key, *codec.hash_fields(encoded)]]

    def exists(self, key: str) -> List[Any]:
        return ["EXISTS", key]

    def remove(self, keys: Sequence[str]) -> List[Any]:
        return ["DEL", *keys]

    # --- search ---

    def search(
        self,
        blob: bytes,
        count: int,
        *,
        filter: Optional[str] = None,
        with_metadata: bool = False,
    ) -> List[Any]:
        """
        KNN query with the vector bound as a binary parameter.

        Without metadata only the score field is returned.
        """
        if self._schema.distance_metric is None:
            raise InvalidArgumentError("distance is required to search")
        base = "*"
        if filter is not None:
            if not isinstance(filter, str) or not filter.strip():
                raise InvalidArgumentError("filter must be a non-empty string")
            if _VECTOR_FIELD_REF.search(filter):
                raise InvalidArgumentError(
                    f"filter cannot reference the vector field '@{VECTOR_FIELD}'"
                )
            base = f"({filter})"

        command: List[Any] = [
            "FT.SEARCH",
            self.index_name,
            f"{base}=>[KNN {int(count)} @{VECTOR_FIELD} $BLOB]",
            "PARAMS",
            2,
            "BLOB",
            blob,
        ]
        if not with_metadata:
            command.extend(["RETURN", 1, SCORE_FIELD])
        command.extend(["SORTBY", SCORE_FIELD, "LIMIT", 0, int(count), "DIALECT", 2])
        return command


def _json_path(name: str) -> str:
    return f"$[{json.dumps(name)}]"


__all__ = [
    "DISTANCE_METRICS",
    "VECTOR_TYPES",
    "METADATA_FIELD_TYPES",
    "SVS_COMPRESSION",
    "IndexState",
    "FlatParams",
    "HnswParams",
    "SvsVamanaParams",
    "AlgorithmParams",
    "ALGORITHMS",
    "resolve_algorithm",
    "IndexSchema",
    "IndexCommandBuilder",
]

# redisvec_sdk/vector/vector_set_adapter.py
# SPDX-License-Identifier: Apache-2.0
"""
Redis vector-set collection client.

A vector-set is a single key (``vector_set_prefix + name``) holding an HNSW
graph of elements. There is no schema step: the first ``VADD`` creates the
set and fixes its dimensionality, and the server rejects later inserts of a
different length. Similarity is reported on a [0, 1] scale and converted to
cosine distance (``2 * (1 - similarity)``).

Usage
-----
    from redisvec_sdk.vector import VectorSetClient

    products = VectorSetClient(None, "products", quantization="int8")
    products.add_all(["a", "b"], [[0.1, 0.2], [0.3, 0.1]], metadata=[{"k": 1}, None])
    products.search([0.1, 0.2], count=1, with_metadata=True)
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from redis.exceptions import ResponseError

from redisvec_sdk.vector.config import RedisVectorConfig
from redisvec_sdk.vector.keyspace import coerce_id, validate_name
from redisvec_sdk.vector.results import (
    METRIC_VECTOR_SET,
    decode_links_reply,
    decode_similarity_reply,
    distance_from_score,
)
from redisvec_sdk.vector.vector_base import (
    BaseRedisVectorClient,
    DimensionError,
    InvalidArgumentError,
    InvalidMetadataError,
    ItemID,
    ItemNotFoundError,
    MalformedResponseError,
    MetricsSink,
    SearchResult,
    Transport,
    VectorCapabilities,
    as_text,
    bool_result,
    decode_nested,
    pairs_to_dict,
)
from redisvec_sdk.vector.vector_set_commands import VectorSetCommandBuilder, VectorSetConfig

logger = logging.getLogger(__name__)


def _check_count(count: Any) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidArgumentError("count must be a positive integer")
    return count


def _check_attributes(metadata: Any) -> Mapping[str, Any]:
    if not isinstance(metadata, Mapping):
        raise InvalidMetadataError("metadata must be a mapping")
    return metadata


class VectorSetClient(BaseRedisVectorClient):
    """
    One collection backed by a native vector-set.

    Args:
        transport: ``redis.Redis`` (or compatible); None connects from ``config``
        name: Collection name; must not contain ":"
        m: Graph links per node
        ef_construction: Exploration factor on insert
        ef_search: Default exploration factor on search
        epsilon: Default search distance bound
        quantization: None, "binary" or "int8"; fixed when the set is created
        reduce: Random-projection target dimensionality
        id_type: "string" or "integer"
        config: Key layout and connection settings
        metrics: Metrics sink (defaults to ``NoopMetrics``)
    """

    _component = "vector_redis_set"
    _backend_name = "vector sets"

    def __init__(
        self,
        transport: Optional[Transport],
        name: str,
        *,
        m: Optional[int] = None,
        ef_construction: Optional[int] = None,
        ef_search: Optional[int] = None,
        epsilon: Optional[float] = None,
        quantization: Optional[str] = None,
        reduce: Optional[int] = None,
        id_type: str = "string",
        config: Optional[RedisVectorConfig] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        name = validate_name(name)
        settings = VectorSetConfig(
            m=m,
            ef_construction=ef_construction,
            ef_search=ef_search,
            epsilon=epsilon,
            quantization=quantization,
            reduce=reduce,
            id_type=id_type,
        )
        super().__init__(transport, config=config, metrics=metrics)
        self._name = name
        self._settings = settings
        self._key = f"{self.config.vector_set_prefix}{name}"
        self._commands = VectorSetCommandBuilder(self._key, settings)

    @property
    def name(self) -> str:
        return self._name

    @property
    def key(self) -> str:
        return self._key

    @property
    def settings(self) -> VectorSetConfig:
        return self._settings

    def _coerce(self, item_id: Any) -> ItemID:
        return coerce_id(item_id, self._settings.id_type)

    def _restore(self, element: Any) -> ItemID:
        text = as_text(element)
        if self._settings.id_type == "integer":
            try:
                return int(text)
            except ValueError:
                raise MalformedResponseError(
                    "element is not an integer id", details={"id": text}
                ) from None
        return text

    # ------------------------------------------------------------------ #
    # Set
    # ------------------------------------------------------------------ #

    def exists(self) -> bool:
        return self._run("exists", *self._commands.info()) is not None

    def info(self) -> Optional[Dict[str, Any]]:
        reply = self._run("info", *self._commands.info())
        if reply is None:
            return None
        return {
            as_text(k).replace("-", "_"): decode_nested(v)
            for k, v in pairs_to_dict(reply).items()
        }

    def dimensions(self) -> Optional[int]:
        try:
            reply = self._run("dimensions", *self._commands.dimensions())
        except ResponseError as exc:
            if "key does not exist" not in str(exc).lower():
                raise
            return None
        return int(reply)

    def count(self) -> int:
        return int(self._run("count", *self._commands.count()) or 0)

    def drop(self) -> bool:
        return bool_result(self._run("drop", *self._commands.drop()))

    def capabilities(self) -> VectorCapabilities:
        return VectorCapabilities(
            server="redis",
            version=self._server_version(),
            backend="vector_set",
            algorithm="HNSW",
            storage=None,
            id_type=self._settings.id_type,
            supported_metrics=("cosine",),
            supported_types=("float32",),
            supports_metadata_filtering=True,
            supports_aliases=False,
            supports_quantization=True,
            supports_exact_search=True,
        )

    # ------------------------------------------------------------------ #
    # Items
    # ------------------------------------------------------------------ #

    def add(self, item_id: Any, vector: Sequence[float], metadata: Optional[Mapping[str, Any]] = None) -> bool:
        return self.add_all([item_id], [vector], None if metadata is None else [metadata])[0]

    def add_all(
        self,
        ids: Iterable[Any],
        vectors: Iterable[Sequence[float]],
        metadata: Optional[Iterable[Optional[Mapping[str, Any]]]] = None,
    ) -> List[bool]:
        """
        Insert or overwrite elements; one boolean per item (True = newly added).

        Vectors of a batch must agree on their length. Agreement with the
        set's established dimensionality is checked by the server per item.
        """
        ids = [self._coerce(i) for i in ids]
        vectors = list(vectors)
        if len(ids) != len(vectors):
            raise InvalidArgumentError(
                "different sizes", details={"ids": len(ids), "vectors": len(vectors)}
            )
        attributes: List[Optional[Mapping[str, Any]]] = [None] * len(ids)
        if metadata is not None:
            attributes = list(metadata)
            if len(attributes) != len(ids):
                raise InvalidArgumentError(
                    "different sizes", details={"ids": len(ids), "metadata": len(attributes)}
                )
        if not ids:
            return []

        values = [self._commands.codec.check(v) for v in vectors]
        if len({len(v) for v in values}) > 1:
            raise DimensionError("different dimensions")

        commands = [
            self._commands.add(i, v, None if a is None else _check_attributes(a))
            for i, v, a in zip(ids, values, attributes)
        ]
        replies = self._pipelined("add_all", commands)

        results = [not isinstance(r, Exception) and bool_result(r) for r in replies]
        failed = sum(1 for r in replies if isinstance(r, Exception))
        self._count("items_added", len(replies) - failed)
        if failed:
            self._count("items_failed", failed)
        return results

    def contains(self, item_id: Any) -> bool:
        return bool_result(self._run("contains", *self._commands.contains(self._coerce(item_id))))

    def remove(self, item_id: Any) -> bool:
        return bool_result(self._run("remove", *self._commands.remove(self._coerce(item_id))))

    def remove_all(self, ids: Iterable[Any]) -> List[bool]:
        commands = [self._commands.remove(self._coerce(i)) for i in ids]
        replies = self._pipelined("remove_all", commands)
        results = [not isinstance(r, Exception) and bool_result(r) for r in replies]
        self._count("keys_deleted", sum(results))
        return results

    def find(self, item_id: Any) -> Optional[List[float]]:
        reply = self._run("find", *self._commands.embedding(self._coerce(item_id)))
        if reply is None:
            return None
        return [float(as_text(x)) for x in reply]

    # ------------------------------------------------------------------ #
    # Metadata
    # ------------------------------------------------------------------ #

    def metadata(self, item_id: Any) -> Optional[Dict[str, Any]]:
        reply = self._run("metadata", *self._commands.get_attributes(self._coerce(item_id)))
        if reply is None:
            return None
        return json.loads(as_text(reply))

    def set_metadata(self, item_id: Any, metadata: Mapping[str, Any]) -> bool:
        command = self._commands.set_attributes(self._coerce(item_id), _check_attributes(metadata))
        return bool_result(self._run("set_metadata", *command))

    def remove_metadata(self, item_id: Any) -> bool:
        command = self._commands.set_attributes(self._coerce(item_id), None)
        return bool_result(self._run("remove_metadata", *command))

    # ------------------------------------------------------------------ #
    # Search
    # ------------------------------------------------------------------ #

    def search(
        self,
        vector: Sequence[float],
        count: int = 5,
        *,
        with_metadata: bool = False,
        ef: Optional[int] = None,
        exact: bool = False,
        filter: Optional[str] = None,
    ) -> List[SearchResult]:
        """
        K nearest elements of ``vector``, closest first.

        ``exact`` forces a brute-force scan; ``filter`` is a vector-set
        attribute expression such as ``".year > 2000"``.
        """
        count = _check_count(count)
        command = self._commands.similar(
            self._commands.by_vector(vector),
            count,
            with_attributes=with_metadata,
            ef=ef,
            exact=exact,
            filter=filter,
        )
        return self._similar("search", command, with_metadata)

    def search_by_id(
        self,
        item_id: Any,
        count: int = 5,
        *,
        with_metadata: bool = False,
        ef: Optional[int] = None,
        exact: bool = False,
        filter: Optional[str] = None,
    ) -> List[SearchResult]:
        """Neighbors of a stored element, excluding the element itself."""
        count = _check_count(count)
        query_id = self._coerce(item_id)
        command = self._commands.similar(
            self._commands.by_element(query_id),
            count + 1,
            with_attributes=with_metadata,
            ef=ef,
            exact=exact,
            filter=filter,
        )
        try:
            results = self._similar("search_by_id", command, with_metadata)
        except ResponseError as exc:
            if "not found" not in str(exc).lower():
                raise
            raise ItemNotFoundError(
                f"Could not find item {query_id}", details={"op": "search_by_id"}
            ) from exc
        return [r for r in results if r.id != query_id][:count]

    nearest = search_by_id

    def _similar(self, op: str, command: List[Any], with_metadata: bool) -> List[SearchResult]:
        reply = self._run(op, *command)
        self._count("searches")
        results: List[SearchResult] = []
        for element, score, attrs in decode_similarity_reply(reply, with_attributes=with_metadata):
            meta = None
            if with_metadata:
                meta = json.loads(as_text(attrs)) if attrs else {}
            results.append(
                SearchResult(
                    id=self._restore(element),
                    distance=distance_from_score(score, METRIC_VECTOR_SET),
                    metadata=meta,
                )
            )
        return results

    # ------------------------------------------------------------------ #
    # Graph inspection
    # ------------------------------------------------------------------ #

    def links(self, item_id: Any) -> Optional[List[Dict[ItemID, float]]]:
        """Neighbors of an element per graph layer (id -> raw similarity), or None."""
        reply = self._run("links", *self._commands.links(self._coerce(item_id)))
        layers = decode_links_reply(reply)
        if layers is None:
            return None
        return [{self._restore(k): score for k, score in layer} for layer in layers]

    def sample(self, n: Optional[int] = None) -> Any:
        """
        Random elements. Without ``n`` a single id (or None for an empty set);
        with ``n`` a list (negative ``n`` allows repeats).
        """
        count = 1 if n is None else int(n)
        reply = self._run("sample", *self._commands.sample(count)) or []
        if not isinstance(reply, (list, tuple)):
            reply = [reply]
        ids = [self._restore(e) for e in reply]
        if n is None:
            return ids[0] if ids else None
        return ids


__all__ = [
    "VectorSetClient",
]

# redisvec_sdk/vector/index_adapter.py
# SPDX-License-Identifier: Apache-2.0
"""
Redis Query Engine collection client.

Items are stored as HASH records (binary vector field ``v`` plus loose scalar
attributes) or JSON documents (``{"v": [...], ...attributes}``) under
``global_prefix + collection + ":" + id``, and searched through an ``FT.*``
index declared over that prefix.

Usage
-----
    import redis
    from redisvec_sdk.vector import IndexClient, HnswParams

    r = redis.Redis(decode_responses=False)
    items = IndexClient(r, "items", dimensions=3, distance="l2", algorithm=HnswParams(m=16))
    items.create()
    items.add_all([1, 2, 3], [[1, 1, 1], [2, 2, 2], [1, 1, 2]])
    items.search_by_id(1, count=2)
    # [SearchResult(id='3', distance=1.0), SearchResult(id='2', distance=1.732...)]

Semantics
---------
- Every vector is validated against the declared dimensionality before any
  remote command is issued; a bad item rejects the whole batch.
- Batch inserts go out as one non-transactional pipeline; a failing item
  reports ``False`` without affecting its siblings.
- Metadata updates are full replacements applied in one MULTI/EXEC block
  under WATCH of the item key; they never create missing items, even when the
  item is deleted concurrently.
- Ids in search results are recovered from the returned keys, so a client
  addressing an alias returns the ids of the collection behind it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from redis.exceptions import ResponseError

from redisvec_sdk.vector.codec import MetadataCodec, VectorCodec
from redisvec_sdk.vector.config import RedisVectorConfig
from redisvec_sdk.vector.index_commands import (
    DISTANCE_METRICS,
    AlgorithmParams,
    FlatParams,
    IndexCommandBuilder,
    IndexSchema,
    IndexState,
    SvsVamanaParams,
)
from redisvec_sdk.vector.keyspace import Keyspace
from redisvec_sdk.vector.results import RawMatch, ResultDecoder, distance_from_score
from redisvec_sdk.vector.vector_base import (
    BaseRedisVectorClient,
    InvalidArgumentError,
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

logger = logging.getLogger(__name__)

_MISSING_INDEX = ("unknown index name", "no such index")


def _is_missing_index(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _MISSING_INDEX)


def _check_count(count: Any) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidArgumentError("count must be a positive integer")
    return count


def _json_first(reply: Any) -> Any:
    """``JSON.GET key $...`` replies are JSON arrays of matches; take the first."""
    if reply is None:
        return None
    value = json.loads(as_text(reply))
    if isinstance(value, list):
        return value[0] if value else None
    return value


class IndexClient(BaseRedisVectorClient):
    """
    One collection backed by an inverted index.

    Args:
        transport: ``redis.Redis`` (or compatible); None connects from ``config``
        name: Collection name; must not contain ":"
        dimensions: Vector length
        distance: "l2", "cosine" or "inner_product"; required for create/search
        type: "float32" or "float64"
        storage: "hash" or "json"
        id_type: "string" or "integer"
        algorithm: ``FlatParams`` / ``HnswParams`` / ``SvsVamanaParams`` or a name
        metadata_fields: Filterable attributes, name -> "tag" | "text" | "numeric"
        config: Key layout and connection settings
        metrics: Metrics sink (defaults to ``NoopMetrics``)
    """

    _component = "vector_redis_index"
    _backend_name = "Redis Query Engine"

    def __init__(
        self,
        transport: Optional[Transport],
        name: str,
        *,
        dimensions: int,
        distance: Optional[str] = None,
        type: str = "float32",
        storage: str = "hash",
        id_type: str = "string",
        algorithm: Union[None, str, AlgorithmParams] = None,
        metadata_fields: Optional[Mapping[str, str]] = None,
        config: Optional[RedisVectorConfig] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        schema = IndexSchema(
            dimensions=dimensions,
            distance=distance,
            type=type,
            storage=storage,
            id_type=id_type,
            algorithm=algorithm,
            metadata_fields=metadata_fields or {},
        )
        cfg = config or RedisVectorConfig()
        keyspace = Keyspace(
            name,
            global_prefix=cfg.global_prefix,
            index_prefix=cfg.index_prefix,
            id_type=id_type,
            scan_count=cfg.scan_count,
        )
        super().__init__(transport, config=cfg, metrics=metrics)

        self._schema = schema
        self._keyspace = keyspace
        self._codec = VectorCodec(schema.dimensions, float64=schema.float64)
        self._metadata_codec = MetadataCodec(schema.storage)
        self._commands = IndexCommandBuilder(keyspace, schema)
        self._decoder = ResultDecoder(keyspace)
        self._state = IndexState.SCHEMA_DECLARED

    @property
    def name(self) -> str:
        return self._keyspace.name

    @property
    def schema(self) -> IndexSchema:
        return self._schema

    @property
    def keyspace(self) -> Keyspace:
        return self._keyspace

    @property
    def state(self) -> IndexState:
        """Last lifecycle transition observed by this client (informational)."""
        return self._state

    # ------------------------------------------------------------------ #
    # Schema lifecycle
    # ------------------------------------------------------------------ #

    def create(self) -> None:
        """Declare the index on the server. Server errors (e.g. it already exists) propagate."""
        self._run("create", *self._commands.create())
        self._state = IndexState.CREATED

    def exists(self) -> bool:
        try:
            self._run("exists", *self._commands.info())
        except ValueError:
            # redis-py float parsing chokes on values such as "-nan"
            logger.debug("FT.INFO reply for %s could not be parsed", self._keyspace.index_name)
            return True
        except ResponseError as exc:
            if _is_missing_index(exc):
                return False
            raise
        return True

    def info(self) -> Dict[str, Any]:
        reply = self._run("info", *self._commands.info())
        return {as_text(k): decode_nested(v) for k, v in pairs_to_dict(reply).items()}

    def count(self) -> int:
        num_docs = self.info().get("num_docs")
        if num_docs is None:
            raise MalformedResponseError("FT.INFO reply has no 'num_docs'")
        return int(float(num_docs))

    def drop(self) -> int:
        """Drop the index (tolerating a missing one) and delete every item key."""
        try:
            self._run("drop", *self._commands.drop_index())
        except ResponseError as exc:
            if not _is_missing_index(exc):
                raise
            logger.debug("index %s did not exist on drop", self._keyspace.index_name)
        deleted = self._keyspace.scan_delete(self._run)
        self._count("keys_deleted", deleted)
        self._state = IndexState.DROPPED
        return deleted

    def promote(self, alias: str) -> None:
        """Point ``alias`` at this collection's index."""
        self._keyspace.promote(self._run, alias)

    def capabilities(self) -> VectorCapabilities:
        algorithm = self._schema.algorithm
        return VectorCapabilities(
            server="redis",
            version=self._server_version(),
            backend="index",
            algorithm=algorithm.algorithm,
            storage=self._schema.storage,
            id_type=self._schema.id_type,
            supported_metrics=tuple(
                m for m in DISTANCE_METRICS if m != "cosine" or algorithm.cosine_distance
            ),
            supported_types=tuple(algorithm.vector_types),
            supports_metadata_filtering=True,
            supports_aliases=True,
            supports_quantization=isinstance(algorithm, SvsVamanaParams),
            supports_exact_search=isinstance(algorithm, FlatParams),
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
        Insert or overwrite items.

        Returns one boolean per item in submission order: for hash storage,
        whether the record was newly created; for JSON storage, ``True`` on
        success. Failed items report ``False``.
        """
        ids = list(ids)
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

        # everything is validated before anything is sent
        keys = [self._keyspace.item_key(i) for i in ids]
        values = [self._codec.check(v) for v in vectors]
        encoded = [self._metadata_codec.encode(a) for a in attributes]

        commands = [
            self._commands.add(key, self._codec.encode(vals), vals, attrs, self._metadata_codec)
            for key, vals, attrs in zip(keys, values, encoded)
        ]
        replies = self._pipelined("add_all", commands)

        results: List[bool] = []
        for reply, attrs in zip(replies, encoded):
            if isinstance(reply, Exception):
                results.append(False)
            elif self._schema.json:
                results.append(True)
            else:
                # HSET counts new fields; a new record adds v plus every attribute
                results.append(reply == 1 + len(attrs))
        failed = sum(1 for r in replies if isinstance(r, Exception))
        self._count("items_added", len(replies) - failed)
        if failed:
            self._count("items_failed", failed)
        return results

    def contains(self, item_id: Any) -> bool:
        return bool_result(self._run("contains", *self._commands.exists(self._keyspace.item_key(item_id))))

    def remove(self, item_id: Any) -> bool:
        return self.remove_all([item_id]) == 1

    def remove_all(self, ids: Iterable[Any]) -> int:
        keys = [self._keyspace.item_key(i) for i in ids]
        if not keys:
            return 0
        deleted = int(self._run("remove_all", *self._commands.remove(keys)) or 0)
        self._count("keys_deleted", deleted)
        return deleted

    def find(self, item_id: Any) -> Optional[List[float]]:
        """Stored vector for ``item_id`` or None."""
        reply = self._run("find", *self._commands.get_vector(self._keyspace.item_key(item_id)))
        if reply is None:
            return None
        if self._schema.json:
            value = _json_first(reply)
            return [float(x) for x in value] if value is not None else None
        return self._codec.decode(reply)

    # ------------------------------------------------------------------ #
    # Metadata
    # ------------------------------------------------------------------ #

    def metadata(self, item_id: Any) -> Optional[Dict[str, Any]]:
        reply = self._run("metadata", *self._commands.get_record(self._keyspace.item_key(item_id)))
        if self._schema.json:
            doc = _json_first(reply)
            return None if doc is None else self._metadata_codec.decode_document(doc)
        fields = pairs_to_dict(reply)
        if not fields:
            return None
        return self._metadata_codec.decode_hash(fields)

    def set_metadata(self, item_id: Any, metadata: Mapping[str, Any]) -> bool:
        """Replace every attribute of an existing item. Returns False if it does not exist."""
        key = self._keyspace.item_key(item_id)
        self._metadata_codec.encode(metadata)

        def plan(reply: Any) -> Optional[List[List[Any]]]:
            update = self._metadata_codec.merge(self._field_names(reply), metadata)
            if not update.existed:
                return None
            commands = self._commands.delete_fields(key, update.delete)
            return commands + self._commands.write_fields(key, update.write, self._metadata_codec)

        return self._watched("set_metadata", key, self._commands.field_names(key), plan)

    def remove_metadata(self, item_id: Any) -> bool:
        key = self._keyspace.item_key(item_id)

        def plan(reply: Any) -> Optional[List[List[Any]]]:
            update = self._metadata_codec.remove(self._field_names(reply))
            if not update.existed:
                return None
            return self._commands.delete_fields(key, update.delete)

        return self._watched("remove_metadata", key, self._commands.field_names(key), plan)

    def _field_names(self, reply: Any) -> List[Any]:
        if reply is None:
            return []
        # JSON.OBJKEYS with a $ path answers one list per matched path
        if self._schema.json and reply and isinstance(reply[0], (list, tuple)):
            return list(reply[0])
        return list(reply)

    # ------------------------------------------------------------------ #
    # Search
    # ------------------------------------------------------------------ #

    def search(
        self,
        vector: Sequence[float],
        count: int = 5,
        *,
        filter: Optional[str] = None,
        with_metadata: bool = False,
    ) -> List[SearchResult]:
        """
        K nearest neighbors of ``vector``, closest first.

        ``filter`` is a query-engine expression over the declared metadata
        fields, e.g. ``"@category:{shoes}"``.
        """
        count = _check_count(count)
        blob = self._codec.encode(vector)
        return self._search_blob("search", blob, count, filter=filter, with_metadata=with_metadata)

    def search_by_id(
        self,
        item_id: Any,
        count: int = 5,
        *,
        filter: Optional[str] = None,
        with_metadata: bool = False,
    ) -> List[SearchResult]:
        """Neighbors of a stored item, excluding the item itself."""
        count = _check_count(count)
        query_id = self._keyspace.coerce_id(item_id)
        reply = self._run("search_by_id", *self._commands.get_vector(self._keyspace.item_key(query_id)))
        if self._schema.json:
            value = _json_first(reply)
            blob = self._codec.encode(value) if value is not None else None
        else:
            blob = reply
        if blob is None:
            raise ItemNotFoundError(f"Could not find item {query_id}", details={"op": "search_by_id"})

        results = self._search_blob(
            "search_by_id", blob, count + 1, filter=filter, with_metadata=with_metadata
        )
        return [r for r in results if r.id != query_id][:count]

    nearest = search_by_id

    def _search_blob(
        self,
        op: str,
        blob: bytes,
        count: int,
        *,
        filter: Optional[str],
        with_metadata: bool,
    ) -> List[SearchResult]:
        command = self._commands.search(blob, count, filter=filter, with_metadata=with_metadata)
        matches = self._decoder.decode(self._run(op, *command))
        self._count("searches")
        metric = self._schema.distance_metric
        return [
            SearchResult(
                id=m.id,
                distance=distance_from_score(m.score, metric),
                metadata=self._match_metadata(m) if with_metadata else None,
            )
            for m in matches
        ]

    def _match_metadata(self, match: RawMatch) -> Dict[str, Any]:
        attributes = match.attributes or {}
        if self._schema.json:
            doc = attributes.get("$")
            if doc is not None:
                return self._metadata_codec.decode_document(doc)
        return self._metadata_codec.decode_hash(attributes)


__all__ = [
    "IndexClient",
]

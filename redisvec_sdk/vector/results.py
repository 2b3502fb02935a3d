# redisvec_sdk/vector/results.py
# SPDX-License-Identifier: Apache-2.0
"""
Search reply decoding and distance conversion.

Search replies arrive in one of two shapes depending on the RESP protocol the
transport negotiated, which this package does not control:

- map shape (RESP3)::

    {"results": [{"id": key, "extra_attributes": {"__v_score": "1", ...}}, ...], ...}

- positional shape (RESP2)::

    [total, key, ["__v_score", "1", ...], key, [...], ...]

The shape is picked by inspecting the reply's structure only. Vector-set
``VSIM`` and ``VLINKS`` replies likewise come flat (RESP2) or as maps (RESP3).

``distance_from_score`` is the single place that knows how raw server scores
relate to distances for each metric.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from redisvec_sdk.vector.keyspace import Keyspace
from redisvec_sdk.vector.vector_base import (
    SCORE_FIELD,
    InvalidArgumentError,
    ItemID,
    MalformedResponseError,
    as_text,
    pairs_to_dict,
)

# Server metric tokens, plus the native vector-set similarity scale
METRIC_L2 = "L2"
METRIC_IP = "IP"
METRIC_COSINE = "COSINE"
METRIC_VECTOR_SET = "VSET"


def distance_from_score(score: float, metric: Optional[str]) -> float:
    """
    Convert a raw server score into a distance.

    - L2: the server reports squared euclidean distance
    - IP: the server reports ``1 - dot``; distance is ``1 - score``
    - COSINE: the server reports cosine distance as-is
    - VSET: vector-sets report similarity in [0, 1]; distance is ``2 * (1 - s)``
    """
    score = float(score)
    if metric == METRIC_L2:
        # tiny negative squares show up from float rounding
        return math.sqrt(max(0.0, score))
    if metric == METRIC_IP:
        return 1.0 - score
    if metric == METRIC_COSINE:
        return score
    if metric == METRIC_VECTOR_SET:
        return 2.0 * (1.0 - score)
    raise InvalidArgumentError(f"unknown distance metric: {metric!r}")


@dataclass(frozen=True)
class RawMatch:
    """
    One decoded search hit before distance conversion.

    Attributes:
        id: Id segment of the key, coerced to the collection's id domain
        score: Raw score reported by the server
        attributes: Remaining returned fields (score field removed), or None
    """
    id: ItemID
    score: float
    attributes: Optional[Dict[str, Any]]


def _lookup(mapping: Mapping[Any, Any], name: str) -> Any:
    if name in mapping:
        return mapping[name]
    return mapping.get(name.encode("utf-8"))


class ResultDecoder:
    """Normalize ``FT.SEARCH`` replies into ``RawMatch`` lists in server order."""

    def __init__(self, keyspace: Keyspace, *, score_field: str = SCORE_FIELD) -> None:
        self._keyspace = keyspace
        self._score_field = score_field

    def decode(self, reply: Any) -> List[RawMatch]:
        if isinstance(reply, Mapping):
            entries = self._map_entries(reply)
        elif isinstance(reply, (list, tuple)):
            entries = self._positional_entries(reply)
        else:
            raise MalformedResponseError(
                f"unexpected search reply of type {type(reply).__name__}"
            )

        # an alias may be repointed between requests, never within one reply
        prefix_length: Optional[int] = None
        matches: List[RawMatch] = []
        for key, attributes in entries:
            if prefix_length is None:
                prefix_length = self._keyspace.find_prefix_length(key)
            matches.append(self._match(key, attributes, prefix_length))
        return matches

    def _map_entries(self, reply: Mapping[Any, Any]) -> List[Tuple[Any, Any]]:
        results = _lookup(reply, "results")
        if results is None:
            raise MalformedResponseError("search reply has no 'results'")
        entries: List[Tuple[Any, Any]] = []
        for entry in results:
            if not isinstance(entry, Mapping):
                raise MalformedResponseError("search result entry is not a mapping")
            entries.append((_lookup(entry, "id"), _lookup(entry, "extra_attributes") or {}))
        return entries

    def _positional_entries(self, reply: Sequence[Any]) -> List[Tuple[Any, Any]]:
        if not reply:
            return []
        try:
            total = int(reply[0])
        except (TypeError, ValueError):
            raise MalformedResponseError("search reply does not start with a count") from None
        rest = reply[1:]
        # the count is the total number of matches, not the number returned
        count = min(total, len(rest) // 2)
        return [(rest[2 * i], rest[2 * i + 1]) for i in range(count)]

    def _match(self, key: Any, attributes: Any, prefix_length: int) -> RawMatch:
        fields = {as_text(k): v for k, v in pairs_to_dict(attributes).items()}
        raw_score = fields.pop(self._score_field, None)
        if raw_score is None:
            raise MalformedResponseError(
                f"search result has no '{self._score_field}' field"
            )
        try:
            score = float(as_text(raw_score))
        except (TypeError, ValueError):
            raise MalformedResponseError("search score is not a number") from None
        return RawMatch(
            id=self._keyspace.strip_key(key, prefix_length),
            score=score,
            attributes=fields or None,
        )


# =============================================================================
# Vector-set replies
# =============================================================================


def decode_similarity_reply(reply: Any, *, with_attributes: bool) -> List[Tuple[str, float, Any]]:
    """
    ``VSIM ... WITHSCORES [WITHATTRIBS]`` -> ``[(element, score, attributes)]``.

    Flat replies hold ``element, score`` pairs (or ``element, score, attrs``
    triples with attributes); map replies hold ``element -> score`` (or
    ``element -> [score, attrs]``).
    """
    if reply is None:
        return []
    out: List[Tuple[str, float, Any]] = []
    if isinstance(reply, Mapping):
        for element, value in reply.items():
            attrs = None
            if with_attributes and isinstance(value, (list, tuple)):
                value, attrs = value[0], (value[1] if len(value) > 1 else None)
            out.append((as_text(element), float(as_text(value)), attrs))
        return out
    if not isinstance(reply, (list, tuple)):
        raise MalformedResponseError(f"unexpected VSIM reply of type {type(reply).__name__}")

    step = 3 if with_attributes else 2
    if len(reply) % step:
        raise MalformedResponseError("VSIM reply length does not match its layout")
    for i in range(0, len(reply), step):
        attrs = reply[i + 2] if with_attributes else None
        out.append((as_text(reply[i]), float(as_text(reply[i + 1])), attrs))
    return out


def decode_links_reply(reply: Any) -> Optional[List[List[Tuple[str, float]]]]:
    """``VLINKS ... WITHSCORES`` -> one ``[(element, score)]`` list per graph layer."""
    if reply is None:
        return None
    if not isinstance(reply, (list, tuple)):
        raise MalformedResponseError(f"unexpected VLINKS reply of type {type(reply).__name__}")
    layers: List[List[Tuple[str, float]]] = []
    for layer in reply:
        layers.append(
            [(as_text(k), float(as_text(v))) for k, v in pairs_to_dict(layer).items()]
        )
    return layers


__all__ = [
    "METRIC_L2",
    "METRIC_IP",
    "METRIC_COSINE",
    "METRIC_VECTOR_SET",
    "distance_from_score",
    "RawMatch",
    "ResultDecoder",
    "decode_similarity_reply",
    "decode_links_reply",
]

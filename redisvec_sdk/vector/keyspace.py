# redisvec_sdk/vector/keyspace.py
# SPDX-License-Identifier: Apache-2.0
"""
Derived key-space of an index collection.

Every item lives at ``global_prefix + collection + ":" + id`` and the
collection's index is named ``index_prefix + collection``. Ids are recovered
from keys returned by the server by cutting a prefix whose length is read off
the key itself, so results reached through an alias (whose name differs from
the collection name) still map back to the right ids.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

from redisvec_sdk.vector.vector_base import (
    ID_TYPES,
    KEY_SEPARATOR,
    InvalidArgumentError,
    InvalidNameError,
    ItemID,
    MalformedResponseError,
    as_text,
)

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., Any]

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def validate_name(name: Any) -> str:
    """Collection and alias names: non-empty strings without the separator."""
    if not isinstance(name, str) or not name:
        raise InvalidNameError("Invalid name", details={"reason": "empty or not a string"})
    if KEY_SEPARATOR in name:
        raise InvalidNameError("Invalid name", details={"reason": f"contains '{KEY_SEPARATOR}'"})
    return name


def coerce_id(item_id: Any, id_type: str) -> ItemID:
    """Coerce a caller-supplied id into the collection's id domain."""
    if id_type == "integer":
        if isinstance(item_id, bool):
            raise InvalidArgumentError("integer ids must be integers", details={"id": repr(item_id)})
        try:
            value = int(as_text(item_id))
        except (TypeError, ValueError):
            raise InvalidArgumentError(
                "integer ids must be integers", details={"id": repr(item_id)}
            ) from None
        if isinstance(item_id, float) and value != item_id:
            raise InvalidArgumentError("integer ids must be integers", details={"id": repr(item_id)})
        if value < 0:
            raise InvalidArgumentError("integer ids must be non-negative", details={"id": value})
        return value
    if item_id is None:
        raise InvalidArgumentError("id must not be None")
    return as_text(item_id) if isinstance(item_id, bytes) else str(item_id)


class Keyspace:
    """
    Key and index naming for one collection.

    Args:
        name: Collection name (no ":" allowed)
        global_prefix: Prefix shared by all item keys, ending with ":"
        index_prefix: Prefix of index and alias names
        id_type: "string" or "integer"
        scan_count: COUNT hint for each SCAN page in ``scan_delete``
    """

    def __init__(
        self,
        name: str,
        *,
        global_prefix: str,
        index_prefix: str,
        id_type: str = "string",
        scan_count: int = 100,
    ) -> None:
        if id_type not in ID_TYPES:
            raise InvalidArgumentError("invalid id_type", details={"allowed": list(ID_TYPES)})
        self._name = validate_name(name)
        self._global_prefix = global_prefix
        self._index_prefix = index_prefix
        self._id_type = id_type
        self._scan_count = scan_count
        self._prefix = f"{global_prefix}{name}{KEY_SEPARATOR}"
        self._index_name = self.derive_index_name(name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def index_name(self) -> str:
        return self._index_name

    @property
    def global_prefix(self) -> str:
        return self._global_prefix

    @property
    def id_type(self) -> str:
        return self._id_type

    def derive_index_name(self, name: str) -> str:
        return f"{self._index_prefix}{validate_name(name)}"

    def coerce_id(self, item_id: Any) -> ItemID:
        return coerce_id(item_id, self._id_type)

    def restore_id(self, text: Any) -> ItemID:
        """Id segment of a stored key -> id in the collection's domain."""
        text = as_text(text)
        if self._id_type == "integer":
            try:
                return int(text)
            except ValueError:
                raise MalformedResponseError(
                    "stored key does not end with an integer id",
                    details={"id": text},
                ) from None
        return text

    def item_key(self, item_id: Any) -> str:
        return f"{self._prefix}{self.coerce_id(item_id)}"

    def find_prefix_length(self, key: Any) -> int:
        """
        Length of ``global_prefix + collection + ":"`` in ``key``.

        The collection segment is located from the key itself; the prefix of
        the queried name cannot be used because it may be an alias.
        """
        key = as_text(key)
        start = len(self._global_prefix)
        if not key.startswith(self._global_prefix):
            raise MalformedResponseError(
                "key outside the item key-space",
                details={"global_prefix": self._global_prefix},
            )
        pos = key.find(KEY_SEPARATOR, start)
        if pos < 0:
            raise MalformedResponseError(
                "key has no collection segment",
                details={"global_prefix": self._global_prefix},
            )
        return pos + 1

    def strip_key(self, key: Any, prefix_length: int) -> ItemID:
        return self.restore_id(as_text(key)[prefix_length:])

    # --- remote operations (runner is the owning client's command primitive) ---

    def scan_pattern(self) -> str:
        return _GLOB_SPECIAL.sub(r"\\\1", self._prefix) + "*"

    def scan_delete(self, run: CommandRunner, *, op: str = "drop") -> int:
        """
        Delete every key under the collection prefix, one SCAN page at a time.

        Best effort: keys written concurrently may be missed.
        """
        cursor: Any = 0
        deleted = 0
        pattern = self.scan_pattern()
        while True:
            reply = run(op, "SCAN", cursor, "MATCH", pattern, "COUNT", self._scan_count)
            try:
                cursor, keys = reply
                cursor = int(as_text(cursor))
            except (TypeError, ValueError):
                raise MalformedResponseError("unexpected SCAN reply") from None
            if keys:
                deleted += int(run(op, "DEL", *keys) or 0)
            if cursor == 0:
                break
        logger.debug("deleted %d keys under %s", deleted, self._prefix)
        return deleted

    def promote(self, run: CommandRunner, alias: str) -> None:
        """Point ``alias`` at this collection's index (idempotent)."""
        run("promote", "FT.ALIASUPDATE", self.derive_index_name(alias), self._index_name)


__all__ = [
    "Keyspace",
    "validate_name",
    "coerce_id",
]

# redisvec_sdk/vector/config.py
# SPDX-License-Identifier: Apache-2.0
"""
Client configuration.

Configuration is explicit: every client receives a ``RedisVectorConfig``
(or the defaults) plus a transport handle. ``from_env`` is a convenience for
processes that configure themselves through the environment:

    REDISVEC_URL               connection URL (falls back to REDIS_URL)
    REDISVEC_GLOBAL_PREFIX     prefix of every item key          (rv:items:)
    REDISVEC_INDEX_PREFIX      prefix of every index name        (rv-idx-)
    REDISVEC_VECTOR_SET_PREFIX prefix of every vector-set key    (rv:vs:)
    REDISVEC_SCAN_COUNT        page size for cursor scans        (100)
    REDISVEC_PROTOCOL          RESP protocol version, 2 or 3     (2)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from redisvec_sdk.vector.vector_base import KEY_SEPARATOR, InvalidArgumentError

logger = logging.getLogger(__name__)

DEFAULT_URL = "redis://localhost:6379/0"


@dataclass(frozen=True)
class RedisVectorConfig:
    """
    Key layout and connection settings shared by the collection clients.

    Attributes:
        url: Connection URL used by ``connect`` when no transport is given
        global_prefix: Prefix of every item key; must end with ":"
        index_prefix: Prefix of every index (and alias) name
        vector_set_prefix: Prefix of every vector-set key; must end with ":"
        scan_count: COUNT hint for each SCAN page during bulk deletion
        protocol: RESP protocol version negotiated by ``connect``
    """
    url: str = DEFAULT_URL
    global_prefix: str = "rv:items:"
    index_prefix: str = "rv-idx-"
    vector_set_prefix: str = "rv:vs:"
    scan_count: int = 100
    protocol: int = 2

    def __post_init__(self) -> None:
        for name in ("global_prefix", "vector_set_prefix"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.endswith(KEY_SEPARATOR):
                raise InvalidArgumentError(
                    f"{name} must be a string ending with '{KEY_SEPARATOR}'",
                    code="BAD_CONFIG",
                )
        if not isinstance(self.index_prefix, str) or KEY_SEPARATOR in self.index_prefix:
            raise InvalidArgumentError(
                f"index_prefix must be a string without '{KEY_SEPARATOR}'",
                code="BAD_CONFIG",
            )
        if not isinstance(self.scan_count, int) or self.scan_count <= 0:
            raise InvalidArgumentError("scan_count must be a positive integer", code="BAD_CONFIG")
        if self.protocol not in (2, 3):
            raise InvalidArgumentError("protocol must be 2 or 3", code="BAD_CONFIG")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RedisVectorConfig":
        """Build a config from environment variables, keeping defaults for unset ones."""
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        url = env.get("REDISVEC_URL") or env.get("REDIS_URL")
        if url:
            kwargs["url"] = url
        for var, field_name in (
            ("REDISVEC_GLOBAL_PREFIX", "global_prefix"),
            ("REDISVEC_INDEX_PREFIX", "index_prefix"),
            ("REDISVEC_VECTOR_SET_PREFIX", "vector_set_prefix"),
        ):
            if env.get(var):
                kwargs[field_name] = env[var]
        for var, field_name in (
            ("REDISVEC_SCAN_COUNT", "scan_count"),
            ("REDISVEC_PROTOCOL", "protocol"),
        ):
            raw = env.get(var)
            if not raw:
                continue
            try:
                kwargs[field_name] = int(raw)
            except ValueError:
                raise InvalidArgumentError(
                    f"{var} must be an integer",
                    code="BAD_CONFIG",
                    details={"value": raw},
                ) from None

        return cls(**kwargs)


def connect(config: Optional[RedisVectorConfig] = None, **kwargs: Any) -> Any:
    """
    Open a ``redis.Redis`` client for ``config``.

    Replies are kept as bytes (``decode_responses=False``) because vector
    blobs are binary; the decoders turn keys and field names into text.
    """
    import redis

    config = config or RedisVectorConfig()
    kwargs.setdefault("protocol", config.protocol)
    kwargs["decode_responses"] = False
    logger.debug("connecting to %s (RESP%s)", config.url.split("@")[-1], kwargs["protocol"])
    return redis.Redis.from_url(config.url, **kwargs)


__all__ = [
    "DEFAULT_URL",
    "RedisVectorConfig",
    "connect",
]

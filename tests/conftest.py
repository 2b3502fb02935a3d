# SPDX-License-Identifier: Apache-2.0
"""
Shared fixtures.

Every client-level test runs against ``FakeRedis`` once per reply protocol
(RESP2 flat replies and RESP3 map replies), so both decoding paths are
exercised by the same assertions.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from redisvec_sdk.vector.config import RedisVectorConfig
from redisvec_sdk.vector.index_adapter import IndexClient
from redisvec_sdk.vector.vector_set_adapter import VectorSetClient
from tests.fake_redis import FakeRedis


class RecordingMetrics:
    """Metrics sink that keeps every observation for assertions."""

    def __init__(self) -> None:
        self.observations: List[Dict[str, Any]] = []
        self.counters: Dict[str, int] = {}

    def observe(self, *, component: str, op: str, ms: float, ok: bool, code: str = "OK", extra: Optional[Dict[str, Any]] = None) -> None:
        self.observations.append({"component": component, "op": op, "ok": ok, "code": code, "extra": extra})

    def counter(self, *, component: str, name: str, value: int = 1, extra: Optional[Dict[str, Any]] = None) -> None:
        self.counters[name] = self.counters.get(name, 0) + value


@pytest.fixture(params=[2, 3], ids=["resp2", "resp3"])
def protocol(request) -> int:
    return request.param


@pytest.fixture
def server(protocol) -> FakeRedis:
    return FakeRedis(protocol=protocol)


@pytest.fixture
def config() -> RedisVectorConfig:
    return RedisVectorConfig()


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def make_index(server, config, metrics):
    """Factory for index clients sharing the fake server (3 dims, L2 by default)."""

    def factory(name: str = "items", **kwargs: Any) -> IndexClient:
        kwargs.setdefault("dimensions", 3)
        kwargs.setdefault("distance", "l2")
        kwargs.setdefault("config", config)
        kwargs.setdefault("metrics", metrics)
        return IndexClient(server, name, **kwargs)

    return factory


@pytest.fixture
def make_vector_set(server, config, metrics):
    def factory(name: str = "items", **kwargs: Any) -> VectorSetClient:
        kwargs.setdefault("config", config)
        kwargs.setdefault("metrics", metrics)
        return VectorSetClient(server, name, **kwargs)

    return factory

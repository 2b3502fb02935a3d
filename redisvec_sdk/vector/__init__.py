# redisvec_sdk/vector/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
redisvec SDK - Public API

Collection clients for the two Redis vector backends plus the shared types,
errors and configuration. All public names are re-exported here for clean
imports.
"""

from redisvec_sdk.vector.vector_base import (
    # Wire constants
    VECTOR_FIELD,
    SCORE_FIELD,

    # Core types
    ItemID,
    SearchResult,
    VectorCapabilities,

    # Error types
    VectorAdapterError,
    InvalidArgumentError,
    DimensionError,
    InvalidNameError,
    InvalidMetadataError,
    ItemNotFoundError,
    BackendUnavailableError,
    MalformedResponseError,

    # Metrics and transport
    MetricsSink,
    NoopMetrics,
    Transport,
)
from redisvec_sdk.vector.config import RedisVectorConfig, connect
from redisvec_sdk.vector.index_commands import (
    FlatParams,
    HnswParams,
    SvsVamanaParams,
    IndexSchema,
    IndexState,
)
from redisvec_sdk.vector.index_adapter import IndexClient
from redisvec_sdk.vector.vector_set_commands import VectorSetConfig
from redisvec_sdk.vector.vector_set_adapter import VectorSetClient

__all__ = [
    "VECTOR_FIELD",
    "SCORE_FIELD",
    "ItemID",
    "SearchResult",
    "VectorCapabilities",
    "VectorAdapterError",
    "InvalidArgumentError",
    "DimensionError",
    "InvalidNameError",
    "InvalidMetadataError",
    "ItemNotFoundError",
    "BackendUnavailableError",
    "MalformedResponseError",
    "MetricsSink",
    "NoopMetrics",
    "Transport",
    "RedisVectorConfig",
    "connect",
    "FlatParams",
    "HnswParams",
    "SvsVamanaParams",
    "IndexSchema",
    "IndexState",
    "IndexClient",
    "VectorSetConfig",
    "VectorSetClient",
]

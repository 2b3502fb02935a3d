# SPDX-License-Identifier: Apache-2.0
"""
Index schema validation and FT.* / record command construction.
"""

import pytest

from redisvec_sdk.vector.codec import MetadataCodec
from redisvec_sdk.vector.index_commands import (
    FlatParams,
    HnswParams,
    IndexCommandBuilder,
    IndexSchema,
    SvsVamanaParams,
    resolve_algorithm,
)
from redisvec_sdk.vector.keyspace import Keyspace
from redisvec_sdk.vector.vector_base import InvalidArgumentError

KEYSPACE = Keyspace("items", global_prefix="rv:items:", index_prefix="rv-idx-")


def builder(**schema):
    schema.setdefault("dimensions", 3)
    schema.setdefault("distance", "l2")
    return IndexCommandBuilder(KEYSPACE, IndexSchema(**schema))


def test_index_commands_create_hash_hnsw():
    """Verify the FT.CREATE layout for a hash-backed HNSW index."""
    command = builder(algorithm=HnswParams(m=16, ef_construction=200)).create()
    assert command == [
        "FT.CREATE", "rv-idx-items", "ON", "HASH", "PREFIX", 1, "rv:items:items:", "SCHEMA",
        "v", "VECTOR", "HNSW", 10,
        "TYPE", "FLOAT32", "DIM", 3, "DISTANCE_METRIC", "L2", "M", 16, "EF_CONSTRUCTION", 200,
    ]


def test_index_commands_create_json_flat_with_metadata_fields():
    """Verify the FT.CREATE layout for a JSON FLAT index with metadata fields."""
    command = builder(
        storage="json",
        type="float64",
        distance="inner_product",
        algorithm=FlatParams(initial_cap=1000),
        metadata_fields={"genre": "tag", "year": "numeric"},
    ).create()
    assert command == [
        "FT.CREATE", "rv-idx-items", "ON", "JSON", "PREFIX", 1, "rv:items:items:", "SCHEMA",
        "$.v", "AS", "v", "VECTOR", "FLAT", 8,
        "TYPE", "FLOAT64", "DIM", 3, "DISTANCE_METRIC", "IP", "INITIAL_CAP", 1000,
        "$.genre", "AS", "genre", "TAG", "$.year", "AS", "year", "NUMERIC",
    ]


def test_index_commands_create_svs_vamana_with_compression():
    """Verify SVS-VAMANA compression parameters follow the common vector attributes."""
    params = SvsVamanaParams(compression="LeanVec4x8", reduce=2, training_threshold=1024)
    command = builder(algorithm=params).create()
    assert command[10:12] == ["SVS-VAMANA", 12]
    assert command[18:] == ["COMPRESSION", "LeanVec4x8", "TRAINING_THRESHOLD", 1024, "REDUCE", 2]


def test_index_commands_create_requires_distance():
    """Verify FT.CREATE cannot be built without a distance metric."""
    with pytest.raises(InvalidArgumentError):
        builder(distance=None).create()


@pytest.mark.parametrize(
    "schema",
    [
        {"distance": "hamming"},
        {"type": "float16"},
        {"storage": "set"},
        {"id_type": "uuid"},
        {"dimensions": 0},
        {"dimensions": "3"},
        {"metadata_fields": {"v": "tag"}},
        {"metadata_fields": {"genre": "geo"}},
        {"algorithm": "ivf"},
    ],
)
def test_index_commands_schema_validation(schema):
    """Verify invalid schema settings raise InvalidArgumentError."""
    with pytest.raises(InvalidArgumentError):
        builder(**schema)


def test_index_commands_svs_vamana_withholds_cosine_and_float64():
    """Verify SVS-VAMANA schemas reject cosine distance and float64 vectors."""
    with pytest.raises(InvalidArgumentError):
        IndexSchema(dimensions=3, distance="cosine", algorithm=SvsVamanaParams())
    with pytest.raises(InvalidArgumentError):
        IndexSchema(dimensions=3, distance="l2", type="float64", algorithm=SvsVamanaParams())


def test_index_commands_svs_vamana_parameter_dependencies():
    """Verify SVS-VAMANA compression, reduce and training threshold constraints."""
    with pytest.raises(InvalidArgumentError):
        SvsVamanaParams(compression="LVQ16")
    with pytest.raises(InvalidArgumentError):
        SvsVamanaParams(reduce=2)
    with pytest.raises(InvalidArgumentError):
        SvsVamanaParams(compression="LVQ8", reduce=2)
    with pytest.raises(InvalidArgumentError):
        SvsVamanaParams(training_threshold=100)
    assert SvsVamanaParams(compression="LVQ8", training_threshold=100).create_params() == {
        "COMPRESSION": "LVQ8",
        "TRAINING_THRESHOLD": 100,
    }


def test_index_commands_algorithm_by_name():
    """Verify algorithms resolve from names, with HNSW as the default."""
    assert resolve_algorithm(None) == HnswParams()
    assert resolve_algorithm("flat") == FlatParams()
    assert resolve_algorithm("SVS-VAMANA") == SvsVamanaParams()
    schema = IndexSchema(dimensions=3, algorithm="flat")
    assert isinstance(schema.algorithm, FlatParams)


def test_index_commands_search_without_metadata_returns_only_score():
    """Verify the full KNN command layout when only scores are returned."""
    command = builder().search(b"blob", 5)
    assert command == [
        "FT.SEARCH", "rv-idx-items", "*=>[KNN 5 @v $BLOB]", "PARAMS", 2, "BLOB", b"blob",
        "RETURN", 1, "__v_score", "SORTBY", "__v_score", "LIMIT", 0, 5, "DIALECT", 2,
    ]


def test_index_commands_search_with_filter_and_metadata():
    """Verify filters wrap the KNN base query and metadata drops RETURN."""
    command = builder().search(b"blob", 3, filter="@genre:{drama}", with_metadata=True)
    assert command[2] == "(@genre:{drama})=>[KNN 3 @v $BLOB]"
    assert "RETURN" not in command


@pytest.mark.parametrize("expr", ["@v:[0 1]", "@genre:{a} @v:{b}", "  "])
def test_index_commands_search_rejects_bad_filters(expr):
    """Verify filters on the vector field and blank filters are rejected."""
    with pytest.raises(InvalidArgumentError):
        builder().search(b"blob", 3, filter=expr)


def test_index_commands_filter_may_name_fields_starting_with_v():
    """Verify fields that merely start with v are allowed in filters."""
    command = builder().search(b"blob", 3, filter="@votes:[1 5]")
    assert command[2].startswith("(@votes:[1 5])")


def test_index_commands_record_commands_per_storage():
    """Verify item read and write commands for hash and JSON storage."""
    hashes = builder()
    docs = builder(storage="json")
    codec = MetadataCodec("hash")
    key = "rv:items:items:1"

    assert hashes.add(key, b"blob", [1.0], {"a": 1}, codec) == ["HSET", key, "v", b"blob", "a", 1]
    assert docs.add(key, b"blob", [1.0], {"a": 1}, MetadataCodec("json")) == [
        "JSON.SET", key, "$", '{"v":[1.0],"a":1}',
    ]
    assert hashes.get_vector(key) == ["HGET", key, "v"]
    assert docs.get_vector(key) == ["JSON.GET", key, "$.v"]
    assert hashes.get_record(key) == ["HGETALL", key]
    assert docs.get_record(key) == ["JSON.GET", key, "$"]
    assert hashes.field_names(key) == ["HKEYS", key]
    assert docs.field_names(key) == ["JSON.OBJKEYS", key, "$"]
    assert hashes.delete_fields(key, ["a", "b"]) == [["HDEL", key, "a", "b"]]
    assert docs.delete_fields(key, ["a"]) == [["JSON.DEL", key, '$["a"]']]
    assert hashes.delete_fields(key, []) == []
    assert docs.write_fields(key, {"a": [1]}, codec) == [["JSON.SET", key, '$["a"]', "[1]"]]
    assert hashes.remove([key]) == ["DEL", key]
    assert hashes.drop_index() == ["FT.DROPINDEX", "rv-idx-items"]
    assert hashes.info() == ["FT.INFO", "rv-idx-items"]

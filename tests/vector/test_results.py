# SPDX-License-Identifier: Apache-2.0
"""
Reply decoding (map and positional shapes) and score-to-distance conversion.
"""

import math

import pytest

from redisvec_sdk.vector.keyspace import Keyspace
from redisvec_sdk.vector.results import (
    METRIC_COSINE,
    METRIC_IP,
    METRIC_L2,
    METRIC_VECTOR_SET,
    RawMatch,
    ResultDecoder,
    decode_links_reply,
    decode_similarity_reply,
    distance_from_score,
)
from redisvec_sdk.vector.vector_base import InvalidArgumentError, MalformedResponseError


@pytest.fixture
def decoder():
    return ResultDecoder(Keyspace("items", global_prefix="rv:items:", index_prefix="rv-idx-"))


def test_results_distance_conversion_per_metric():
    """Verify raw scores convert to distances for every metric."""
    assert distance_from_score(1.0, METRIC_L2) == 1.0
    assert distance_from_score(3.0, METRIC_L2) == pytest.approx(math.sqrt(3))
    assert distance_from_score(-5.0, METRIC_IP) == 6.0
    assert distance_from_score(0.0, METRIC_COSINE) == 0.0
    assert distance_from_score(0.25, METRIC_COSINE) == 0.25
    assert distance_from_score(1.0, METRIC_VECTOR_SET) == 0.0
    assert distance_from_score(0.5, METRIC_VECTOR_SET) == 1.0


def test_results_l2_clamps_rounding_negatives():
    """Verify tiny negative squared distances clamp to zero."""
    assert distance_from_score(-1e-9, METRIC_L2) == 0.0


def test_results_unknown_metric_is_rejected():
    """Verify unknown or missing metrics raise InvalidArgumentError."""
    with pytest.raises(InvalidArgumentError):
        distance_from_score(1.0, "HAMMING")
    with pytest.raises(InvalidArgumentError):
        distance_from_score(1.0, None)


def test_results_decodes_positional_shape(decoder):
    """Verify RESP2 flat replies decode to matches with attributes."""
    reply = [
        2,
        b"rv:items:items:3", [b"__v_score", b"1"],
        b"rv:items:items:2", [b"__v_score", b"3", b"genre", b"drama"],
    ]
    assert decoder.decode(reply) == [
        RawMatch(id="3", score=1.0, attributes=None),
        RawMatch(id="2", score=3.0, attributes={"genre": b"drama"}),
    ]


def test_results_decodes_map_shape(decoder):
    """Verify RESP3 map replies decode to matches."""
    reply = {
        b"total_results": 1,
        b"results": [
            {b"id": b"rv:items:items:3", b"extra_attributes": {b"__v_score": b"0.5"}, b"values": []},
        ],
    }
    assert decoder.decode(reply) == [RawMatch(id="3", score=0.5, attributes=None)]


def test_results_map_shape_with_text_keys(decoder):
    """Verify map replies with text keys decode the same as bytes."""
    reply = {"results": [{"id": "rv:items:items:a", "extra_attributes": {"__v_score": "2"}}]}
    assert decoder.decode(reply)[0].id == "a"


def test_results_positional_count_is_total_not_returned(decoder):
    """Verify the leading total does not drive how many entries are read."""
    # total counts every match; only one page came back
    reply = [10, b"rv:items:items:1", [b"__v_score", b"0"]]
    assert [m.id for m in decoder.decode(reply)] == ["1"]


def test_results_empty_replies(decoder):
    """Verify empty replies of either shape yield no matches."""
    assert decoder.decode([0]) == []
    assert decoder.decode([]) == []
    assert decoder.decode({b"results": []}) == []


def test_results_ids_recovered_through_alias():
    """Verify ids are recovered from keys of the collection behind an alias."""
    decoder = ResultDecoder(Keyspace("live", global_prefix="rv:items:", index_prefix="rv-idx-", id_type="integer"))
    reply = [1, b"rv:items:items_v2:5", [b"__v_score", b"0"]]
    assert decoder.decode(reply)[0].id == 5


def test_results_prefix_length_computed_once_per_reply(decoder):
    """Verify ids of differing lengths decode with one shared prefix length."""
    reply = [
        2,
        b"rv:items:items:1", [b"__v_score", b"0"],
        b"rv:items:items:22", [b"__v_score", b"1"],
    ]
    assert [m.id for m in decoder.decode(reply)] == ["1", "22"]


@pytest.mark.parametrize(
    "reply",
    [
        "nope",
        [b"x", b"key", []],
        {b"total_results": 0},
        {b"results": ["not a mapping"]},
        [1, b"rv:items:items:1", [b"other", b"1"]],
        [1, b"rv:items:items:1", [b"__v_score"]],
        [1, b"rv:items:items:1", [b"__v_score", b"abc"]],
    ],
)
def test_results_malformed_replies_raise(decoder, reply):
    """Verify unrecognized reply shapes raise MalformedResponseError."""
    with pytest.raises(MalformedResponseError) as exc_info:
        decoder.decode(reply)
    assert exc_info.value.code == "MALFORMED_RESPONSE"


def test_results_similarity_reply_flat_and_map():
    """Verify VSIM replies decode identically from flat and map shapes."""
    flat = [b"a", b"1", b"b", b"0.5"]
    mapped = {b"a": 1.0, b"b": 0.5}
    expected = [("a", 1.0, None), ("b", 0.5, None)]
    assert decode_similarity_reply(flat, with_attributes=False) == expected
    assert decode_similarity_reply(mapped, with_attributes=False) == expected


def test_results_similarity_reply_with_attributes():
    """Verify VSIM replies carry attributes when requested."""
    flat = [b"a", b"1", b'{"k":1}', b"b", b"0.5", None]
    mapped = {b"a": [1.0, b'{"k":1}'], b"b": [0.5, None]}
    expected = [("a", 1.0, b'{"k":1}'), ("b", 0.5, None)]
    assert decode_similarity_reply(flat, with_attributes=True) == expected
    assert decode_similarity_reply(mapped, with_attributes=True) == expected


def test_results_similarity_reply_rejects_ragged_layout():
    """Verify a flat VSIM reply of the wrong arity is rejected."""
    with pytest.raises(MalformedResponseError):
        decode_similarity_reply([b"a", b"1", b"b"], with_attributes=False)


def test_results_links_reply_per_layer():
    """Verify VLINKS replies decode per layer from either shape."""
    assert decode_links_reply(None) is None
    reply = [[b"b", b"0.9", b"c", b"0.8"], {b"d": 0.7}]
    assert decode_links_reply(reply) == [[("b", 0.9), ("c", 0.8)], [("d", 0.7)]]

import json

import pytest

from auditlog.utils.errors import InvalidEventDataError, MetaValueError
from auditlog.utils.serialization import (
    decode_meta_map,
    decode_meta_value,
    encode_meta_map,
    encode_meta_value,
)


def test_encoding_is_self_describing():
    assert json.loads(encode_meta_value("admin")) == {"t": "str", "v": "admin"}
    assert json.loads(encode_meta_value(None)) == {"t": "null"}


@pytest.mark.parametrize(
    "value",
    [
        True,
        1,
        "1",
        1.5,
        ["administrator", "editor"],
        {"roles": ["editor"], "count": 2, "active": False, "extra": None},
        [],
        {},
    ],
)
def test_values_keep_their_exact_type(value):
    decoded = decode_meta_value(encode_meta_value(value))

    assert decoded == value
    assert type(decoded) is type(value)


def test_bool_inside_containers_stays_bool():
    decoded = decode_meta_value(encode_meta_value({"flags": [True, 0]}))

    assert decoded["flags"][0] is True
    assert decoded["flags"][1] == 0 and decoded["flags"][1] is not False


def test_tuples_are_stored_as_lists():
    assert decode_meta_value(encode_meta_value((1, 2))) == [1, 2]


@pytest.mark.parametrize("value", [float("inf"), {1: "a"}, {"a": {2: "b"}}, object(), b"bytes"])
def test_unsupported_values_are_rejected(value):
    with pytest.raises(MetaValueError):
        encode_meta_value(value)


@pytest.mark.parametrize(
    "text",
    ["not json", '{"v": 1}', '{"t": "int", "v": "1"}', '{"t": "bool", "v": 1}', '{"t": "blob", "v": ""}'],
)
def test_corrupt_text_is_rejected(text):
    with pytest.raises(MetaValueError):
        decode_meta_value(text)


def test_meta_map_validates_names():
    assert decode_meta_map(encode_meta_map({"Username": "admin"})) == {"Username": "admin"}

    with pytest.raises(InvalidEventDataError):
        encode_meta_map({"x" * 101: 1})
    with pytest.raises(InvalidEventDataError):
        encode_meta_map({"": 1})

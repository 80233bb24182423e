import json

import pytest

from spray.data import TransactionVersion
from spray.json_builder import JsonBuilder, b58encode, render


def test_b58encode_known_value():
    assert b58encode(b"hello world") == "StV1DL6CwTryKyV"


def test_b58encode_leading_zeros_become_ones():
    encoded = b58encode(b"\x00\x00" + b"hello world")
    assert encoded == "11" + b58encode(b"hello world")


def test_b58encode_empty():
    assert b58encode(b"") == ""


def test_object_drops_trailing_comma():
    def build(json_out):
        json_out.begin_object()
        json_out.safe_prop("a")
        json_out.number(1)
        json_out.comma()
        json_out.safe_prop("b")
        json_out.number_list([1, 2, 3])
        json_out.comma()
        json_out.end_object()

    text = render(build)
    assert ",}" not in text and ",]" not in text
    assert json.loads(text) == {"a": 1, "b": [1, 2, 3]}


def test_empty_containers():
    assert json.loads(render(lambda j: (j.begin_object(), j.end_object()))) == {}
    assert json.loads(render(lambda j: j.number_list([]))) == []


def test_prop_context_manager():
    builder = JsonBuilder()
    builder.begin_object()
    with builder.prop("x"):
        builder.boolean(True)
    with builder.prop("y"):
        builder.null()
    builder.end_object()
    assert json.loads(builder.getvalue()) == {"x": True, "y": None}


def test_string_escaping_round_trips():
    original = 'quote " backslash \\ newline \n tab \t ctl \x01 é'
    builder = JsonBuilder()
    builder.string(original)
    text = builder.getvalue()
    assert json.loads(text) == original
    assert "é" in text


def test_safe_str_is_not_escaped():
    builder = JsonBuilder()
    builder.safe_str("abc")
    assert json.loads(builder.getvalue()) == "abc"


def test_number_str_quotes_number():
    builder = JsonBuilder()
    builder.number_str(18446744073709551615)
    assert json.loads(builder.getvalue()) == "18446744073709551615"


def test_number_rejects_bool():
    with pytest.raises(TypeError):
        JsonBuilder().number(True)


def test_binary_is_prefixed_hex():
    builder = JsonBuilder()
    builder.binary(bytes.fromhex("deadbeef"))
    assert json.loads(builder.getvalue()) == "0x" + bytes.fromhex("deadbeef").hex()


def test_base58_list():
    items = [b"hello world", b"\x00"]
    text = render(lambda j: j.base58_list(items))
    assert json.loads(text) == [b58encode(item) for item in items]


def test_array_with_callback():
    text = render(lambda j: j.array(["a", "b"], lambda jj, s: jj.safe_str(s)))
    assert json.loads(text) == ["a", "b"]


def test_value_is_compact():
    text = render(lambda j: j.value([0, 1, {"k": "v"}]))
    assert " " not in text
    assert json.loads(text) == [0, 1, {"k": "v"}]


def test_value_uses_to_json():
    text = render(lambda j: j.value(TransactionVersion()))
    assert json.loads(text) == "legacy"


def test_raw_is_inserted_verbatim():
    def build(j):
        j.begin_array()
        j.raw('{"z":[]}')
        j.comma()
        j.end_array()

    assert json.loads(render(build)) == [{"z": []}]
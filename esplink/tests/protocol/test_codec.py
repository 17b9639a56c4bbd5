from __future__ import annotations

import json

import pytest

from esplink.protocol.core.codec import (
    WireMessage,
    bytes_to_hex,
    decode,
    encode,
    encode_text,
    hex_to_bytes,
)
from esplink.protocol.errors import FrameDecodeError, PayloadDecodeError


def test_decode_object_exposes_type_and_fields():
    msg = decode('{"type":"ACK","cmd":"DELETE_FILE"}')

    assert isinstance(msg, WireMessage)
    assert msg.type == "ACK"
    assert msg["cmd"] == "DELETE_FILE"
    assert dict(msg) == {"type": "ACK", "cmd": "DELETE_FILE"}


def test_decode_without_type_is_tolerated():
    msg = decode('{"hello":1}')

    assert msg.type is None
    assert msg.get("hello") == 1


def test_decode_non_string_type_is_treated_as_missing():
    assert decode('{"type":5}').type is None


@pytest.mark.parametrize("frame", ["not json", "{\"type\":", "[1,2]", "\"text\"", "42"])
def test_decode_rejects_non_objects(frame):
    with pytest.raises(FrameDecodeError) as exc:
        decode(frame)

    assert exc.value.frame == frame


def test_wire_message_is_read_only():
    msg = decode('{"type":"PONG"}')

    with pytest.raises(TypeError):
        msg["type"] = "X"  # type: ignore[index]


def test_wire_message_freezes_nested_values():
    msg = decode('{"type":"FILE_LIST","files":["x.csv",{"name":"d","type":"dir"}]}')

    with pytest.raises(AttributeError):
        msg["files"].append("injected.csv")
    with pytest.raises(TypeError):
        msg["files"][1]["name"] = "other"

    assert msg["files"][0] == "x.csv"
    assert msg["files"][1]["name"] == "d"


@pytest.mark.parametrize("frame", ["[" * 100000 + "]" * 100000, '{"a":' * 100000 + "1" + "}" * 100000])
def test_decode_too_deeply_nested_raises_frame_error(frame):
    with pytest.raises(FrameDecodeError):
        decode(frame)


def test_encode_is_compact_and_newline_terminated():
    out = encode({"type": "UPLOAD_FILE", "filename": "a.txt", "hexdata": "4142"})

    assert out == b'{"type":"UPLOAD_FILE","filename":"a.txt","hexdata":"4142"}\n'
    assert out.count(b"\n") == 1


def test_encode_keeps_non_ascii_as_utf8():
    out = encode({"type": "WRITE_CONFIG", "config": {"Machine": "Präge"}})

    assert "Präge".encode("utf-8") in out
    assert json.loads(out.decode("utf-8")) == {"type": "WRITE_CONFIG", "config": {"Machine": "Präge"}}


def test_encode_text_has_no_terminator():
    assert encode_text({"type": "PING"}) == '{"type":"PING"}'


def test_bytes_to_hex_is_lowercase_without_separators():
    assert bytes_to_hex(b"\x00\x0f\xab\xff") == "000fabff"
    assert bytes_to_hex(b"") == ""


@pytest.mark.parametrize("data", [b"", b"\x00", b"AB", bytes(range(256))])
def test_hex_roundtrip(data):
    assert hex_to_bytes(bytes_to_hex(data)) == data


def test_hex_to_bytes_accepts_uppercase():
    assert hex_to_bytes("4A4b") == b"JK"


@pytest.mark.parametrize("text", ["4", "abc", "zz", "41 42", "0x41", "4g"])
def test_hex_to_bytes_rejects_bad_input(text):
    with pytest.raises(PayloadDecodeError):
        hex_to_bytes(text)

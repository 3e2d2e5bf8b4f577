import json
import socket

import pytest

from lanchat.codec import (
    LineReader,
    MAX_LINE_BYTES,
    decode_announcement,
    decode_message,
    encode_announcement,
    encode_message,
)
from lanchat.errors import DecodeError
from lanchat.state import ChatMessage, MessageEnvelope


def make_envelope(**overrides) -> MessageEnvelope:
    values = dict(
        message_id="m-1",
        text="olá, tudo bem?",
        sender_name="maria",
        sender_id="peer-a",
        timestamp_ms=1_700_000_000_000,
    )
    values.update(overrides)
    return MessageEnvelope(**values)


def test_announcement_round_trip():
    data = encode_announcement("peer-a", "maria", 8080)
    announcement = decode_announcement(data)
    assert announcement.peer_id == "peer-a"
    assert announcement.display_name == "maria"
    assert announcement.listen_port == 8080


def test_announcement_uses_wire_field_names():
    payload = json.loads(encode_announcement("peer-a", "maria", 443))
    assert payload == {"peerId": "peer-a", "displayName": "maria", "listenPort": 443}


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"[1, 2, 3]",
        b'{"peerId": "a", "displayName": "b"}',
        b'{"peerId": "a", "displayName": "b", "listenPort": "80"}',
        b'{"peerId": "a", "displayName": "b", "listenPort": true}',
        b"\xff\xfe",
        b'{"peerId": "a", "displayName": "b", "listenPort": 70000}',
        b'{"peerId": "a", "displayName": "b", "listenPort": -1}',
        b'{"peerId": "a", "displayName": "b", "listenPort": 0}',
    ],
)
def test_malformed_announcement_raises_decode_error(raw):
    with pytest.raises(DecodeError):
        decode_announcement(raw)


def test_message_round_trip_is_newline_terminated():
    envelope = make_envelope()
    line = encode_message(envelope)
    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    assert decode_message(line.rstrip(b"\n")) == envelope


def test_message_missing_field_is_decode_error_not_partial():
    payload = json.loads(encode_message(make_envelope()))
    del payload["timestampMs"]
    with pytest.raises(DecodeError):
        decode_message(json.dumps(payload))


def test_oversized_message_is_rejected():
    with pytest.raises(ValueError):
        encode_message(make_envelope(text="x" * MAX_LINE_BYTES))


def test_chat_message_envelope_conversion_marks_remote():
    local = ChatMessage(text="oi", sender_name="maria", sender_id="peer-a", is_local=True)
    received = ChatMessage.from_envelope(local.to_envelope())
    assert received.message_id == local.message_id
    assert received.timestamp_ms == local.timestamp_ms
    assert received.is_local is False


def test_line_reader_frames_lines_across_chunks():
    left, right = socket.socketpair()
    try:
        first = encode_message(make_envelope(message_id="1"))
        second = encode_message(make_envelope(message_id="2"))
        left.sendall(first[:10])
        left.sendall(first[10:] + second)
        left.close()
        reader = LineReader(right)
        assert decode_message(reader.read_line()).message_id == "1"
        assert decode_message(reader.read_line()).message_id == "2"
        assert reader.read_line() is None
    finally:
        right.close()


def test_line_reader_skips_oversized_line_and_continues():
    left, right = socket.socketpair()
    try:
        reader = LineReader(right, max_line_bytes=64)
        left.sendall(b"x" * 200 + b"\n" + encode_message(make_envelope()))
        left.close()
        with pytest.raises(DecodeError):
            reader.read_line()
        assert decode_message(reader.read_line()) == make_envelope()
    finally:
        right.close()

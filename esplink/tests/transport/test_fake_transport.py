from __future__ import annotations

import pytest

from esplink.transport.errors import TransportIOError, TransportOpenError
from esplink.transport.fake import FakeTransport


def test_open_close_counts_and_state():
    t = FakeTransport("COM1")
    assert t.is_open() is False

    t.open()
    assert t.is_open() is True
    t.close()
    t.close()

    assert t.open_count == 1
    assert t.close_count == 1
    assert t.is_open() is False


def test_open_error_raises_transport_open_error():
    t = FakeTransport("COM1", open_error="port busy")

    with pytest.raises(TransportOpenError):
        t.open()

    assert t.is_open() is False


def test_read_returns_staged_chunks_in_order_and_splits_to_n():
    t = FakeTransport()
    t.open()
    t.feed(b"abcdef")
    t.feed_line("xy")

    assert t.read(4) == b"abcd"
    assert t.read(4) == b"ef"
    assert t.read(4) == b"xy\n"
    assert t.read(4) == b""


def test_read_when_closed_raises():
    t = FakeTransport()
    with pytest.raises(TransportIOError):
        t.read(1)


def test_fail_next_read_raises_once():
    t = FakeTransport()
    t.open()
    t.fail_next_read()

    with pytest.raises(TransportIOError):
        t.read(1)
    assert t.read(1) == b""


def test_fail_next_write_raises_once():
    t = FakeTransport()
    t.open()
    t.fail_next_write()

    with pytest.raises(TransportIOError):
        t.write(b"x\n")
    assert t.write(b"y\n") == 2
    assert t.lines() == ["y"]


def test_lines_decodes_written_frames_across_writes():
    t = FakeTransport()
    t.open()
    t.write(b'{"type":"PING"}\n{"type":')
    t.write(b'"LIST_FILES"}\n')

    assert t.lines() == ['{"type":"PING"}', '{"type":"LIST_FILES"}']


def test_open_error_carries_port():
    t = FakeTransport("COM9", open_error="Access denied")

    with pytest.raises(TransportOpenError) as exc:
        t.open()

    assert exc.value.port == "COM9"
    assert str(exc.value) == "Access denied"

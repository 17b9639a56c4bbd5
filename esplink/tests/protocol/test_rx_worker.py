from __future__ import annotations

import threading
import time

from esplink.protocol._internal.rx_worker import RxWorker


class FakeReader:
    def __init__(self, chunks=(), error=None):
        self._chunks = list(chunks)
        self._error = error
        self.calls = 0

    def read(self, n: int) -> bytes:
        self.calls += 1
        if self._chunks:
            return self._chunks.pop(0)
        if self._error is not None:
            raise self._error
        return b""


def _wait_for(pred, timeout=1.0):
    deadline = time.time() + timeout
    while not pred() and time.time() < deadline:
        time.sleep(0.005)
    return pred()


def test_rx_worker_delivers_chunks_in_order_and_stops_cleanly():
    reader = FakeReader([b"a", b"", b"b"])
    got = []
    w = RxWorker(reader.read, got.append, lambda e: None)

    w.start()
    assert _wait_for(lambda: got == [b"a", b"b"])
    w.stop()
    w.join(timeout=0.5)

    assert not w.is_alive()
    assert w.stopped


def test_rx_worker_reports_read_error_once_and_exits():
    boom = OSError("unplugged")
    reader = FakeReader([b"x"], error=boom)
    errors = []
    done = threading.Event()

    def on_error(e):
        errors.append(e)
        done.set()

    w = RxWorker(reader.read, lambda d: None, on_error)
    w.start()

    assert done.wait(1.0)
    w.join(timeout=0.5)

    assert not w.is_alive()
    assert errors == [boom]


def test_rx_worker_stopped_before_error_stays_silent():
    errors = []
    gate = threading.Event()

    def read(n):
        gate.wait(1.0)
        raise OSError("port closed")

    w = RxWorker(read, lambda d: None, errors.append)
    w.start()
    w.stop()
    gate.set()
    w.join(timeout=0.5)

    assert errors == []

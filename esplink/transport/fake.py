# esplink/transport/fake.py
from __future__ import annotations

import threading
from collections import deque
from typing import Deque, List, Optional

from .base import Transport
from .errors import TransportIOError, TransportOpenError
from .params import SerialSettings


class FakeTransport(Transport):
    """
    In-memory transport for tests and demos.

    - feed(data) stages an inbound chunk; each read() returns at most one
      staged chunk (split to n bytes), or b"" when nothing is staged.
    - written collects every outbound write, lines() decodes them.
    - fail_next_read(exc) / fail_next_write(exc) make the next call raise
      TransportIOError.
    """

    def __init__(
        self,
        port: str = "fake0",
        settings: Optional[SerialSettings] = None,
        *,
        open_error: Optional[str] = None,
    ):
        self.port = port
        self.settings = settings or SerialSettings()
        self.open_error = open_error
        self.written: List[bytes] = []
        self.open_count = 0
        self.close_count = 0
        self._open = False
        self._inbound: Deque[bytes] = deque()
        self._read_error: Optional[Exception] = None
        self._write_error: Optional[Exception] = None
        self._lock = threading.Lock()

    # ---------------- test controls ----------------
    def feed(self, data: bytes) -> None:
        with self._lock:
            self._inbound.append(bytes(data))

    def feed_line(self, text: str) -> None:
        self.feed(text.encode("utf-8") + b"\n")

    def fail_next_read(self, exc: Optional[Exception] = None) -> None:
        with self._lock:
            self._read_error = exc or TransportIOError("fake read failure")

    def fail_next_write(self, exc: Optional[Exception] = None) -> None:
        with self._lock:
            self._write_error = exc or TransportIOError("fake write failure")

    def lines(self) -> List[str]:
        text = b"".join(self.written).decode("utf-8", errors="replace")
        return [ln for ln in text.split("\n") if ln]

    # ---------------- Transport ----------------
    def open(self) -> None:
        if self.open_error is not None:
            raise TransportOpenError(self.open_error, port=self.port)
        self._open = True
        self.open_count += 1

    def close(self) -> None:
        if self._open:
            self.close_count += 1
        self._open = False

    def is_open(self) -> bool:
        return self._open

    def read(self, n: int) -> bytes:
        with self._lock:
            if self._read_error is not None:
                exc, self._read_error = self._read_error, None
                raise exc
            if not self._open:
                raise TransportIOError("read while transport not open")
            if not self._inbound:
                return b""
            chunk = self._inbound.popleft()
            if len(chunk) > n:
                self._inbound.appendleft(chunk[n:])
                chunk = chunk[:n]
            return chunk

    def write(self, data: bytes) -> int:
        with self._lock:
            if self._write_error is not None:
                exc, self._write_error = self._write_error, None
                raise exc
        if not self._open:
            raise TransportIOError("write while transport not open")
        self.written.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        if not self._open:
            raise TransportIOError("flush while transport not open")

# esplink/protocol/_internal/rx_worker.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional


class RxWorker(threading.Thread):
    """
    Thread that continuously reads from a transport and hands chunks on.

    It never touches session state: on_chunk/on_error only enqueue work for
    the owning loop. A read error ends the worker.
    """

    def __init__(
        self,
        read: Callable[[int], bytes],
        on_chunk: Callable[[bytes], None],
        on_error: Callable[[Exception], None],
        *,
        read_size: int = 256,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(daemon=True, name="esplink-rx")
        self._read = read
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._read_size = int(read_size)
        self._log = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                data = self._read(self._read_size)
            except Exception as e:
                if not self._stop_event.is_set():
                    self._log.warning("RX_READ_FAILED err=%s", e)
                    self._stop_event.set()
                    self._on_error(e)
                return

            if data:
                if not self._stop_event.is_set():
                    self._on_chunk(data)
            else:
                self._stop_event.wait(0.001)

    def stop(self) -> None:
        self._stop_event.set()

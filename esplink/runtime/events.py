# esplink/runtime/events.py
from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Generic, Iterator, List, Optional, TypeVar

from esplink.core.errors import EspLinkError
from esplink.model.device import DeviceConfig, DeviceTimeInfo, DownloadResult, FileSystemEntry
from esplink.protocol.core.codec import WireMessage
from esplink.runtime.state import ConnectionState

T = TypeVar("T")

Callback = Callable[[Any], None]

# Channel kinds exposed by EventBus (attribute names).
EVENT_KINDS = (
    "state",
    "status",
    "error",
    "operation",
    "file_list",
    "config",
    "time",
    "serial_number",
    "download",
    "raw_log",
    "message",
)


class Listener(Generic[T]):
    """
    Queue-backed subscription: an independent cursor over one channel.

    Iterating blocks until the listener is closed.
    """

    _CLOSED = object()

    def __init__(self, channel: "Channel[T]", maxsize: int = 0):
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._channel = channel
        self._closed = False
        self._unsubscribe = channel.subscribe(self._put)

    def _put(self, value: T) -> None:
        try:
            self._queue.put_nowait(value)
        except queue.Full:
            self._channel._log.warning("LISTENER_QUEUE_FULL channel=%s", self._channel.name)

    def get(self, timeout: Optional[float] = None) -> T:
        """Next event; raises queue.Empty on timeout and EOFError once closed."""
        item = self._queue.get(timeout=timeout)
        if item is self._CLOSED:
            self._queue.put_nowait(self._CLOSED)
            raise EOFError(f"listener on {self._channel.name!r} closed")
        return item

    def drain(self) -> List[T]:
        out: List[T] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return out
            if item is self._CLOSED:
                self._queue.put_nowait(self._CLOSED)
                return out
            out.append(item)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        try:
            self._queue.put_nowait(self._CLOSED)
        except queue.Full:
            pass

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except EOFError:
                return

    def __enter__(self) -> "Listener[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Channel(Generic[T]):
    """One typed publish/subscribe stream."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, cb: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(cb)

        def _unsubscribe() -> None:
            with self._lock:
                if cb in self._subscribers:
                    self._subscribers.remove(cb)

        return _unsubscribe

    def listen(self, maxsize: int = 0) -> Listener[T]:
        return Listener(self, maxsize=maxsize)

    def publish(self, value: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for cb in subscribers:
            try:
                cb(value)
            except Exception:
                self._log.exception("EVENT_CALLBACK_ERROR channel=%s", self.name)


class EventBus:
    """
    Typed channels consumed by UI-layer collaborators.

      state          ConnectionState
      status         str (status line)
      error          EspLinkError
      operation      str (operation succeeded)
      file_list      list[FileSystemEntry]
      config         DeviceConfig
      time           DeviceTimeInfo
      serial_number  str
      download       DownloadResult
      raw_log        str (terminal text; outgoing prefixed "> ")
      message        WireMessage (every decoded report)
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)

        self.state: Channel[ConnectionState] = Channel("state", self._log)
        self.status: Channel[str] = Channel("status", self._log)
        self.error: Channel[EspLinkError] = Channel("error", self._log)
        self.operation: Channel[str] = Channel("operation", self._log)
        self.file_list: Channel[List[FileSystemEntry]] = Channel("file_list", self._log)
        self.config: Channel[DeviceConfig] = Channel("config", self._log)
        self.time: Channel[DeviceTimeInfo] = Channel("time", self._log)
        self.serial_number: Channel[str] = Channel("serial_number", self._log)
        self.download: Channel[DownloadResult] = Channel("download", self._log)
        self.raw_log: Channel[str] = Channel("raw_log", self._log)
        self.message: Channel[WireMessage] = Channel("message", self._log)

    def channel(self, kind: str) -> Channel[Any]:
        if kind not in EVENT_KINDS:
            raise KeyError(f"Unknown event kind '{kind}' (known: {', '.join(EVENT_KINDS)})")
        return getattr(self, kind)

    def subscribe(self, kind: str, cb: Callback) -> Callable[[], None]:
        return self.channel(kind).subscribe(cb)

    def listen(self, kind: str, maxsize: int = 0) -> Listener[Any]:
        return self.channel(kind).listen(maxsize=maxsize)

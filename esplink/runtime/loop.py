# esplink/runtime/loop.py
"""
Single owning execution context for session state.

Three kinds of stimuli reach the session: transport reads, the connection
timeout and the heartbeat. A Loop serializes all of them (and every command
call) onto one context, so session fields are only ever mutated there.

- SessionLoop: one daemon thread draining a work queue and a timer heap;
  transport reads happen on RxWorker threads that only enqueue chunks.
- ManualLoop: deterministic, single-threaded, virtual clock. The caller
  drives it with advance()/pump(). Used by tests and by embedders that
  already own an event loop.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Any, Callable, List, Optional, Protocol as TypingProtocol, Tuple

from esplink.protocol._internal.rx_worker import RxWorker


class ReaderHandle(TypingProtocol):
    def stop(self) -> None: ...


class TimerHandle:
    """Cancelable one-shot or periodic timer."""

    def __init__(self, due: float, period: Optional[float], fn: Callable[[], Any]):
        self.due = due
        self.period = period
        self.fn = fn
        self.cancelled = False
        self.fired = False

    @property
    def active(self) -> bool:
        return not self.cancelled and not (self.period is None and self.fired)

    def cancel(self) -> None:
        self.cancelled = True


def run_into(fut: Future, fn: Callable[..., Any], args: Tuple[Any, ...], log: logging.Logger) -> None:
    if not fut.set_running_or_notify_cancel():
        return
    try:
        result = fn(*args)
    except Exception as e:
        log.exception("LOOP_TASK_FAILED fn=%s", getattr(fn, "__qualname__", fn))
        fut.set_exception(e)
    else:
        fut.set_result(result)


class Loop(ABC):
    """Owner of session state. All callbacks run on the loop's context."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)
        self._timers: List[Tuple[float, int, TimerHandle]] = []
        self._timer_seq = itertools.count()

    @abstractmethod
    def time(self) -> float: ...

    @abstractmethod
    def submit(self, fn: Callable[..., Any], *args: Any) -> Future: ...

    @abstractmethod
    def start_reader(
        self,
        read: Callable[[int], bytes],
        on_chunk: Callable[[bytes], None],
        on_error: Callable[[Exception], None],
    ) -> ReaderHandle: ...

    def close(self) -> None:
        return None

    # ---------------- Timers ----------------
    def call_at(self, when: float, fn: Callable[[], Any]) -> TimerHandle:
        return self._schedule(TimerHandle(float(when), None, fn))

    def call_later(self, delay_s: float, fn: Callable[[], Any]) -> TimerHandle:
        return self.call_at(self.time() + float(delay_s), fn)

    def call_every(self, period_s: float, fn: Callable[[], Any]) -> TimerHandle:
        period = float(period_s)
        if period <= 0:
            raise ValueError("period must be > 0")
        return self._schedule(TimerHandle(self.time() + period, period, fn))

    def _schedule(self, handle: TimerHandle) -> TimerHandle:
        self._push_timer(handle)
        return handle

    def _push_timer(self, handle: TimerHandle) -> None:
        heapq.heappush(self._timers, (handle.due, next(self._timer_seq), handle))

    def _next_due(self) -> Optional[float]:
        while self._timers and self._timers[0][2].cancelled:
            heapq.heappop(self._timers)
        return self._timers[0][0] if self._timers else None

    def _fire(self, handle: TimerHandle) -> None:
        if handle.period is None:
            handle.fired = True
        else:
            handle.due += handle.period
            self._push_timer(handle)
        try:
            handle.fn()
        except Exception:
            self._log.exception("TIMER_CALLBACK_ERROR fn=%s", getattr(handle.fn, "__qualname__", handle.fn))


class SessionLoop(Loop):
    """Threaded loop: one daemon thread owns all session state."""

    def __init__(self, *, name: str = "esplink-loop", read_size: int = 256, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self._name = name
        self._read_size = read_size
        self._queue: "queue.Queue[Optional[Tuple[Future, Callable[..., Any], Tuple[Any, ...]]]]" = queue.Queue()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    def time(self) -> float:
        return time.monotonic()

    def in_loop(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def _ensure_started(self) -> None:
        with self._start_lock:
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
                self._log.info("LOOP_STARTED name=%s", self._name)

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        fut: Future = Future()
        if self.in_loop():
            run_into(fut, fn, args, self._log)
            return fut
        if self._stop_event.is_set():
            self._log.debug("LOOP_CLOSED dropped fn=%s", getattr(fn, "__qualname__", fn))
            fut.cancel()
            return fut
        self._ensure_started()
        self._queue.put((fut, fn, args))
        return fut

    def _schedule(self, handle: TimerHandle) -> TimerHandle:
        if self.in_loop():
            self._push_timer(handle)
        else:
            self.submit(self._push_timer, handle)
        return handle

    def start_reader(self, read, on_chunk, on_error) -> RxWorker:
        worker = RxWorker(
            read,
            lambda data: self.submit(on_chunk, data),
            lambda exc: self.submit(on_error, exc),
            read_size=self._read_size,
            logger=self._log,
        )
        worker.start()
        return worker

    def _run(self) -> None:
        while not self._stop_event.is_set():
            due = self._next_due()
            timeout = None if due is None else max(0.0, due - self.time())
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                item = None

            if item is not None:
                fut, fn, args = item
                run_into(fut, fn, args, self._log)

            now = self.time()
            while True:
                due = self._next_due()
                if due is None or due > now:
                    break
                _, _, handle = heapq.heappop(self._timers)
                self._fire(handle)

        self._log.info("LOOP_STOPPED name=%s", self._name)

    def close(self) -> None:
        self._stop_event.set()
        self._queue.put(None)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)


class ManualReader:
    def __init__(self, read, on_chunk, on_error):
        self.read = read
        self.on_chunk = on_chunk
        self.on_error = on_error
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class ManualLoop(Loop):
    """
    Deterministic loop with a virtual clock.

    submit() runs immediately on the calling thread. Timers fire during
    advance(); readers are polled by pump() (advance() pumps first).
    """

    def __init__(self, *, start: float = 0.0, read_size: int = 256, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self._now = float(start)
        self._read_size = read_size
        self._readers: List[ManualReader] = []

    def time(self) -> float:
        return self._now

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        fut: Future = Future()
        run_into(fut, fn, args, self._log)
        return fut

    def start_reader(self, read, on_chunk, on_error) -> ManualReader:
        reader = ManualReader(read, on_chunk, on_error)
        self._readers.append(reader)
        return reader

    def pending_timers(self) -> List[TimerHandle]:
        return sorted((h for _, _, h in self._timers if h.active), key=lambda h: h.due)

    def pump(self, max_reads: int = 1000) -> int:
        """Poll active readers until they return no data. Returns chunks delivered."""
        delivered = 0
        for reader in list(self._readers):
            while not reader.stopped and delivered < max_reads:
                try:
                    data = reader.read(self._read_size)
                except Exception as e:
                    reader.stopped = True
                    reader.on_error(e)
                    break
                if not data:
                    break
                reader.on_chunk(data)
                delivered += 1
        self._readers = [r for r in self._readers if not r.stopped]
        return delivered

    def advance(self, seconds: float) -> None:
        """Move the virtual clock forward, firing every timer that comes due."""
        target = self._now + float(seconds)
        self.pump()
        while True:
            due = self._next_due()
            if due is None or due > target:
                break
            _, _, handle = heapq.heappop(self._timers)
            self._now = max(self._now, handle.due)
            self._fire(handle)
            self.pump()
        self._now = target

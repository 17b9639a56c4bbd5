# esplink/runtime/session.py
from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future
from functools import partial
from typing import Any, Deque, Optional, Tuple

import yaml

from esplink.app.config import EspLinkConfig
from esplink.core.errors import (
    ConfigError,
    DeviceConnectError,
    DeviceDisconnectedError,
    ProtocolTimeoutError,
)
from esplink.model.device import DownloadResult
from esplink.protocol.core import LineFramer, Protocol
from esplink.protocol.core.codec import decode
from esplink.protocol.errors import FrameDecodeError
from esplink.protocol.router import CommandRouter
from esplink.runtime.events import EventBus
from esplink.runtime.loop import Loop, ReaderHandle, SessionLoop, TimerHandle
from esplink.runtime.state import ConnectionState, SessionStatus
from esplink.transport.base import Transport
from esplink.transport.errors import TransportError
from esplink.transport.registry import TransportDriverRegistry

# The watchdog checks this long after the deadline so that silence of exactly
# pong_timeout_s still counts as alive.
LIVENESS_CHECK_SLACK_S = 0.001


def load_protocol(protocol_dir: Optional[str] = None) -> Protocol:
    """Load the protocol vocabulary; YAML problems surface as ConfigError."""
    try:
        return Protocol.load(protocol_dir)
    except FileNotFoundError as e:
        raise ConfigError(
            "Protocol definition files are missing.",
            hint=str(e),
            details={"protocol_dir": protocol_dir},
        ) from None
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(
            "Protocol definition files are invalid.",
            hint=str(e),
            details={"protocol_dir": protocol_dir},
        ) from None


class _RouterLink:
    """SessionLink handed to the router; forwards to the session's loop-side hooks."""

    def __init__(self, session: "EspSession"):
        self._session = session

    @property
    def state(self) -> ConnectionState:
        return self._session._state

    def is_open(self) -> bool:
        return self._session._is_link_open()

    def write_line(self, data: bytes) -> bool:
        return self._session._write_line(data)

    def accept_handshake(self, device: Any) -> None:
        self._session._accept_handshake(device)

    def touch_liveness(self) -> None:
        self._session._touch_liveness()

    def set_status(self, message: str) -> None:
        self._session._set_status(message)

    def device_disconnected(self) -> None:
        self._session._on_device_disconnected()

class EspSession:
    """
    Connection to one ESP32 controller over a byte transport.

    Responsibilities:
      - connection lifecycle: DISCONNECTED -> CONNECTING -> CONNECTED
      - handshake, heartbeat and timeout-driven forced disconnects
      - feeding received bytes through framer/codec into the router
      - exposing events (self.events) and commands (self.commands)

    All state lives on the loop; public methods only enqueue work there.
    One instance is meant to be shared by every collaborator of a process.
    """

    def __init__(
        self,
        config: Optional[EspLinkConfig] = None,
        *,
        protocol: Optional[Protocol] = None,
        drivers: Optional[TransportDriverRegistry] = None,
        loop: Optional[Loop] = None,
        events: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config or EspLinkConfig()
        self._log = logger or logging.getLogger(__name__)
        self._proto = protocol or load_protocol(self._config.protocol_dir)
        self._drivers = drivers or TransportDriverRegistry.default()
        self._loop = loop or SessionLoop(logger=self._log)
        self.events = events or EventBus(self._log)

        self._state = ConnectionState.DISCONNECTED
        self._status_message = "Ready"
        self._port: Optional[str] = None
        self._transport: Optional[Transport] = None
        self._reader: Optional[ReaderHandle] = None
        self._framer = LineFramer(on_raw=self._log_raw, logger=self._log)
        self._output: Deque[str] = deque(maxlen=self._config.raw_log_limit)
        self._last_liveness: Optional[float] = None

        self._connect_timer: Optional[TimerHandle] = None
        self._settle_timer: Optional[TimerHandle] = None
        self._heartbeat_timer: Optional[TimerHandle] = None
        self._liveness_timer: Optional[TimerHandle] = None
        self._connect_future: Optional[Future] = None

        # bumped on every teardown; callbacks from an older transport are ignored
        self._generation = 0

        self.commands = CommandRouter(self._proto, self.events, _RouterLink(self), self._loop, logger=self._log)

    # ---------------- Queries ----------------
    @property
    def config(self) -> EspLinkConfig:
        return self._config

    @property
    def protocol(self) -> Protocol:
        return self._proto

    @property
    def loop(self) -> Loop:
        return self._loop

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def current_port(self) -> Optional[str]:
        return self._port

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def raw_output(self) -> Tuple[str, ...]:
        return tuple(self._output)

    @property
    def pending_download(self) -> Optional[Any]:
        return self.commands.pending_download

    @property
    def last_download(self) -> Optional[DownloadResult]:
        return self.commands.last_download

    def status(self) -> SessionStatus:
        age = None
        if self._last_liveness is not None and self._state is not ConnectionState.DISCONNECTED:
            age = max(0.0, self._loop.time() - self._last_liveness)
        return SessionStatus(
            state=self._state,
            port=self._port,
            status_message=self._status_message,
            last_liveness_age_s=age,
            pending_download=self.commands.pending_download,
        )

    # ---------------- Lifecycle API ----------------
    def connect(self, port: str) -> Future:
        """
        Open `port` and start the handshake.

        The returned future resolves once the handshake has been sent (not
        when the device accepted it: watch events.state for CONNECTED). It
        fails with DeviceConnectError when the port cannot be opened and is
        cancelled when the attempt is torn down before the handshake.
        """
        done: Future = Future()
        queued = self._loop.submit(self._begin_connect, port, done)
        if queued.cancelled():
            done.cancel()
        return done

    def disconnect(self) -> Future:
        """Tear down the session. Always safe; resolves once the transport is closed."""
        return self._loop.submit(self._teardown)

    def close(self) -> None:
        """Disconnect and stop the loop."""
        try:
            self.disconnect().result(timeout=2.0)
        except Exception:
            self._log.exception("SESSION_CLOSE_DISCONNECT_FAILED")
        self._loop.close()

    def __enter__(self) -> "EspSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- Connect sequence (loop context) ----------------
    def _begin_connect(self, port: str, done: Future) -> None:
        if self._transport is not None or self._state is not ConnectionState.DISCONNECTED:
            self._log.info("SESSION_RECONNECT old_port=%s new_port=%s", self._port, port)
            self._teardown()

        cfg = self._config
        self._log.info("SESSION_CONNECT port=%s driver=%s", port, cfg.driver)

        try:
            transport = self._drivers.create(cfg.driver, port=port, settings=cfg.serial)
            transport.open()
        except TransportError as e:
            self._log.warning("TRANSPORT_OPEN_FAILED port=%s err=%s", port, e)
            err = DeviceConnectError(
                f"Could not open {port}.",
                hint=str(e),
                details={"port": port, "driver": cfg.driver},
            )
            self._set_status(f"Error opening {port}: {e}")
            self.events.error.publish(err)
            done.set_exception(err)
            return

        self._transport = transport
        self._port = port
        self._framer.reset()
        self._output.clear()

        self._set_state(ConnectionState.CONNECTING)
        self._set_status(f"Connecting to {port}...")

        self._connect_timer = self._loop.call_later(cfg.connect_timeout_s, self._on_connect_timeout)

        gen = self._generation
        self._reader = self._loop.start_reader(
            transport.read,
            partial(self._on_chunk, gen),
            partial(self._on_read_error, gen),
        )

        # Boot noise after a reset is discarded once the settle delay has passed.
        self._connect_future = done
        self._settle_timer = self._loop.call_later(cfg.settle_delay_s, self._finish_connect)

    def _finish_connect(self) -> None:
        self._settle_timer = None
        if self._transport is None:
            return

        self._framer.reset()
        self._output.clear()
        self.commands.send_handshake()

        done, self._connect_future = self._connect_future, None
        if done is not None and not done.done():
            done.set_result(None)

    def _on_connect_timeout(self) -> None:
        self._connect_timer = None
        if self._state is not ConnectionState.CONNECTING:
            return
        self._log.warning("HANDSHAKE_TIMEOUT port=%s timeout_s=%.1f", self._port, self._config.connect_timeout_s)
        self._fail(
            ProtocolTimeoutError(
                "Connection timeout - no response from device.",
                hint="Check that the firmware is running and the port is correct.",
                details={"phase": "handshake", "port": self._port},
            )
        )

    # ---------------- Hooks used by the router (loop context) ----------------
    def _is_link_open(self) -> bool:
        return self._transport is not None and self._transport.is_open()

    def _accept_handshake(self, device: Any) -> None:
        if self._state is ConnectionState.CONNECTING:
            self._log.info("HANDSHAKE_ACCEPTED device=%s", device)
            self._set_state(ConnectionState.CONNECTED)
            self._set_status("Connected")
            self.events.operation.publish(f"Handshake complete: {device}")
            if self._config.initialize_on_connect:
                self.commands.initialize_device()
        self._touch_liveness()

    def _touch_liveness(self) -> None:
        self._last_liveness = self._loop.time()

    def _on_device_disconnected(self) -> None:
        self._log.warning("DEVICE_REPORTED_DISCONNECT port=%s", self._port)
        self._fail(
            DeviceDisconnectedError(
                "Device reported disconnection.",
                details={"port": self._port, "cause": "device_status"},
            )
        )

    def _write_line(self, data: bytes) -> bool:
        transport = self._transport
        if transport is None:
            return False
        try:
            transport.write(data)
            transport.flush()
        except TransportError as e:
            self._log.warning("TRANSPORT_WRITE_FAILED port=%s err=%s", self._port, e)
            self._fail(
                DeviceDisconnectedError(
                    "Write error - device disconnected?",
                    hint=str(e),
                    details={"port": self._port, "cause": "transport_write"},
                )
            )
            return False

        self._log_raw("> " + data.decode("utf-8", errors="replace"))
        return True

    def _set_status(self, message: str) -> None:
        self._status_message = message
        self.events.status.publish(message)

    # ---------------- Receive path (loop context) ----------------
    def _on_chunk(self, gen: int, data: bytes) -> None:
        if gen != self._generation or self._transport is None:
            return

        for frame in self._framer.feed(data):
            try:
                msg = decode(frame)
            except FrameDecodeError as e:
                self._log.warning("FRAME_DECODE_FAILED err=%s", e)
                continue

            self._touch_liveness()
            self.commands.dispatch(msg)
            if gen != self._generation:
                # a handler tore the session down; drop the rest of this chunk
                return

    def _on_read_error(self, gen: int, exc: Exception) -> None:
        if gen != self._generation:
            return
        self._log.warning("TRANSPORT_READ_FAILED port=%s err=%s", self._port, exc)
        self._fail(
            DeviceDisconnectedError(
                f"Read error: {exc}",
                hint="The device was unplugged or the port was closed by another program.",
                details={"port": self._port, "cause": "transport_read"},
            )
        )

    def _log_raw(self, text: str) -> None:
        self._output.append(text)
        self.events.raw_log.publish(text)

    # ---------------- Heartbeat (loop context) ----------------
    def _on_heartbeat(self) -> None:
        if self._state is not ConnectionState.CONNECTED:
            return
        self._log.debug("HEARTBEAT_PING port=%s", self._port)
        self.commands.ping()

    def _liveness_deadline(self) -> float:
        last = self._last_liveness if self._last_liveness is not None else self._loop.time()
        return last + self._config.pong_timeout_s

    def _check_liveness(self) -> None:
        """
        Watchdog armed just past last_liveness + pong_timeout. Frames received
        in the meantime moved the deadline, so re-arm instead of failing. Only
        silence longer than pong_timeout drops the link.
        """
        self._liveness_timer = None
        if self._state is not ConnectionState.CONNECTED:
            return

        deadline = self._liveness_deadline()
        now = self._loop.time()
        if now <= deadline:
            self._liveness_timer = self._loop.call_at(deadline + LIVENESS_CHECK_SLACK_S, self._check_liveness)
            return

        elapsed = now - (deadline - self._config.pong_timeout_s)
        self._log.warning("HEARTBEAT_TIMEOUT port=%s elapsed_s=%.1f", self._port, elapsed)
        self._fail(
            ProtocolTimeoutError(
                "Connection lost - no response from device.",
                details={"phase": "heartbeat", "port": self._port, "elapsed_s": elapsed},
            )
        )

    # ---------------- State machine (loop context) ----------------
    def _set_state(self, new_state: ConnectionState) -> None:
        if self._state is new_state:
            return

        old = self._state
        self._state = new_state

        if new_state is ConnectionState.DISCONNECTED:
            self._cancel_timers()
        elif new_state is ConnectionState.CONNECTED:
            self._cancel(self._connect_timer)
            self._connect_timer = None
            self._touch_liveness()
            self._cancel(self._heartbeat_timer)
            self._cancel(self._liveness_timer)
            self._heartbeat_timer = self._loop.call_every(self._config.heartbeat_interval_s, self._on_heartbeat)
            self._liveness_timer = self._loop.call_at(self._liveness_deadline() + LIVENESS_CHECK_SLACK_S, self._check_liveness)

        self._log.info("STATE_CHANGED %s -> %s port=%s", old.value, new_state.value, self._port)
        self.events.state.publish(new_state)

    def _fail(self, err: Exception) -> None:
        """Connection-level failure: report first, then tear down."""
        self.events.error.publish(err)
        self._teardown()

    def _teardown(self) -> None:
        if self._transport is None and self._state is ConnectionState.DISCONNECTED:
            return

        self._log.info("SESSION_TEARDOWN port=%s state=%s", self._port, self._state.value)
        self._generation += 1
        self._cancel_timers()

        done, self._connect_future = self._connect_future, None
        if done is not None and not done.done():
            done.cancel()

        reader, self._reader = self._reader, None
        if reader is not None:
            reader.stop()

        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                transport.close()
            except Exception:
                self._log.exception("TRANSPORT_CLOSE_FAILED")

        join = getattr(reader, "join", None)
        if join is not None:
            join(timeout=0.5)

        self._framer.reset()
        self._port = None
        self._last_liveness = None
        self.commands.reset()

        self._set_state(ConnectionState.DISCONNECTED)
        self._set_status("Disconnected")

    def _cancel_timers(self) -> None:
        for timer in (self._connect_timer, self._settle_timer, self._heartbeat_timer, self._liveness_timer):
            self._cancel(timer)
        self._connect_timer = None
        self._settle_timer = None
        self._heartbeat_timer = None
        self._liveness_timer = None

    @staticmethod
    def _cancel(timer: Optional[TimerHandle]) -> None:
        if timer is not None:
            timer.cancel()

# esplink/cli/commands.py
from __future__ import annotations

import argparse
import logging
import queue
import time
from concurrent.futures import CancelledError
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from esplink.app.config import EspLinkConfig
from esplink.core.errors import EspLinkError, ProtocolTimeoutError
from esplink.model.device import DeviceConfig, DeviceTimeInfo, FileSystemEntry
from esplink.model.records import parse_rows
from esplink.runtime.events import EventBus
from esplink.runtime.session import EspSession
from esplink.runtime.state import ConnectionState
from esplink.utils.hashing import sha256_bytes

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------- Logging ----------------

def configure_logging(verbose: int = 0, log_file: Optional[str] = None) -> None:
    """
    Root logger setup for the CLI (presentation-layer concern).
    Library code only ever calls logging.getLogger(__name__).
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG

    logging.basicConfig(level=level, format=LOG_FORMAT)
    if log_file:
        configure_file_logging(Path(log_file))


def configure_file_logging(app_log_path: Path) -> None:
    """Add a file handler to the root logger (idempotent)."""
    root = logging.getLogger()
    app_log_path.parent.mkdir(parents=True, exist_ok=True)
    target = str(app_log_path.resolve())

    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target:
            return

    fh = logging.FileHandler(app_log_path, encoding="utf-8", delay=True)
    fh.setLevel(logging.INFO)
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(fh)

    if root.level > logging.INFO:
        root.setLevel(logging.INFO)


# ---------------- Event waiting ----------------

class EventWaiter:
    """
    Collects events from a few channels so the CLI can block on one of them.

    Error events always end the wait by being raised, except when waiting
    for the error channel itself.
    """

    def __init__(self, events: EventBus, kinds: Sequence[str]):
        self._queue: "queue.Queue[Tuple[str, Any]]" = queue.Queue()
        wanted = list(dict.fromkeys(list(kinds) + ["error"]))
        self._unsubs = [events.subscribe(k, partial(self._put, k)) for k in wanted]

    def _put(self, kind: str, value: Any) -> None:
        self._queue.put((kind, value))

    def wait(
        self,
        kind: str,
        timeout_s: float,
        predicate: Optional[Callable[[Any], bool]] = None,
        *,
        what: Optional[str] = None,
    ) -> Any:
        deadline = time.monotonic() + timeout_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProtocolTimeoutError(
                    f"No {what or kind} from device within {timeout_s:.1f}s.",
                    hint="Increase --timeout or check the device firmware.",
                    details={"phase": "response", "waiting_for": kind},
                )
            try:
                got, value = self._queue.get(timeout=remaining)
            except queue.Empty:
                continue

            if got == "error" and kind != "error":
                raise value
            if got == kind and (predicate is None or predicate(value)):
                return value

    def collect(self, kind: str, window_s: float) -> List[Any]:
        """Everything published on `kind` during the next window_s seconds."""
        out: List[Any] = []
        deadline = time.monotonic() + window_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return out
            try:
                got, value = self._queue.get(timeout=remaining)
            except queue.Empty:
                return out
            if got == kind:
                out.append(value)

    def close(self) -> None:
        for unsub in self._unsubs:
            unsub()
        self._unsubs = []


def _is_ack(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("ACK:")


# ---------------- Session helpers ----------------

def load_config(path: Optional[str]) -> EspLinkConfig:
    if path is None:
        return EspLinkConfig()
    return EspLinkConfig.from_yaml(path)


@contextmanager
def connected_session(
    port: str,
    cfg: EspLinkConfig,
    timeout_s: float,
    kinds: Sequence[str] = (),
    *,
    session_factory: Callable[[EspLinkConfig], EspSession] = EspSession,
) -> Iterator[Tuple[EspSession, EventWaiter]]:
    """
    Connect, wait for the handshake to be accepted and hand out the session
    plus a waiter subscribed to `kinds`. Always disconnects on exit.
    """
    session = session_factory(cfg)
    waiter = EventWaiter(session.events, ["state", *kinds])
    try:
        try:
            session.connect(port).result(timeout=timeout_s + cfg.settle_delay_s)
        except CancelledError:
            # torn down before the handshake went out; the error channel says why
            raise waiter.wait("error", 1.0, what="connect error") from None
        except FutureTimeout:
            raise ProtocolTimeoutError(
                f"Could not start the handshake on {port} within {timeout_s:.1f}s.",
                details={"phase": "handshake", "port": port},
            ) from None

        waiter.wait(
            "state",
            timeout_s,
            lambda s: s is ConnectionState.CONNECTED,
            what="handshake",
        )
        yield session, waiter
    finally:
        waiter.close()
        session.close()


# ---------------- Printing ----------------

def print_files(entries: Sequence[FileSystemEntry]) -> None:
    if not entries:
        print("(no files)")
        return
    for e in entries:
        if e.is_directory:
            print(f"  {e.full_path}/")
        else:
            print(f"  {e.full_path}  ({e.size_bytes} bytes)")


def print_config(cfg: DeviceConfig) -> None:
    print(f"Board serial:  {cfg.board_serial or '-'}")
    print(f"Machine:       {cfg.machine_name or '-'}")
    print(f"Last updated:  {cfg.last_updated or '-'}")
    print(f"Drivers:       {', '.join(cfg.drivers) or '-'}")
    print(f"Jobs:          {', '.join(cfg.jobs) or '-'}")


def print_time(info: DeviceTimeInfo) -> None:
    print(f"RTC:    {info.rtc_time or '-'} (available={info.rtc_available})")
    print(f"ESP:    {info.esp_time or '-'}")
    print(f"Local:  {info.local_time or '-'}")


# ---------------- Commands ----------------

def cmd_status(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["serial_number"]) as (session, waiter):
        session.commands.get_board_serial()
        serial = waiter.wait("serial_number", args.timeout, what="board serial")
        st = session.status()
        print(f"Port:     {st.port}")
        print(f"State:    {st.state.value}")
        print(f"Status:   {st.status_message}")
        print(f"Serial:   {serial or '-'}")
        print(f"Protocol: v{session.protocol.version}")
        print(f"Proto id: {session.protocol.fingerprint[:12]}")
    return 0


def cmd_ls(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["file_list"]) as (session, waiter):
        session.commands.list_files()
        print_files(waiter.wait("file_list", args.timeout, what="file list"))
    return 0


def cmd_get(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    local = Path(args.local)
    with connected_session(args.port, cfg, args.timeout, ["download"]) as (session, waiter):
        session.commands.download_file(args.remote, str(local))
        result = waiter.wait("download", args.timeout, what="file data")
    local.parent.mkdir(parents=True, exist_ok=True)
    local.write_bytes(result.data)
    print(f"Downloaded {args.remote} -> {local} ({len(result.data)} bytes)")
    print(f"sha256: {sha256_bytes(result.data)}")
    return 0


def cmd_put(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    local = Path(args.local)
    try:
        data = local.read_bytes()
    except OSError as e:
        raise EspLinkError(f"Cannot read {local}.", hint=str(e), details={"path": str(local)}) from None

    remote = args.remote or local.name
    with connected_session(args.port, cfg, args.timeout, ["operation"]) as (session, waiter):
        session.commands.upload_file(remote, data)
        waiter.wait("operation", args.timeout, _is_ack, what="upload acknowledgement")
    print(f"Uploaded {local} -> {remote} ({len(data)} bytes)")
    return 0


def cmd_rm(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["operation"]) as (session, waiter):
        session.commands.delete_file(args.remote)
        waiter.wait("operation", args.timeout, _is_ack, what="delete acknowledgement")
    print(f"Deleted {args.remote}")
    return 0


def cmd_config(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["config"]) as (session, waiter):
        session.commands.read_config()
        print_config(waiter.wait("config", args.timeout, what="configuration"))
    return 0


def cmd_time(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["time"]) as (session, waiter):
        session.commands.fetch_device_time()
        print_time(waiter.wait("time", args.timeout, what="device time"))
    return 0


def cmd_sync_time(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["operation"]) as (session, waiter):
        session.commands.sync_time()
        waiter.wait("operation", args.timeout, _is_ack, what="time sync acknowledgement")
    print("Device time synchronized (UTC)")
    return 0


def cmd_clear(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["operation"]) as (session, waiter):
        session.commands.clear_data_file(args.name)
        waiter.wait("operation", args.timeout, _is_ack, what="clear acknowledgement")
    print(f"Cleared {args.name} (header kept)")
    return 0


def cmd_rows(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["download"]) as (session, waiter):
        session.commands.download_file(args.remote, args.remote)
        result = waiter.wait("download", args.timeout, what="file data")

    rows = parse_rows(result.data.decode("utf-8", errors="replace"))
    if not rows:
        print("(no rows)")
        return 0
    for row in rows:
        print(row)
    return 0


def cmd_raw(args: argparse.Namespace, cfg: EspLinkConfig) -> int:
    with connected_session(args.port, cfg, args.timeout, ["raw_log"]) as (session, waiter):
        session.commands.send_raw(args.text)
        window = min(args.timeout, 1.0)
        for text in waiter.collect("raw_log", window):
            print(text, end="" if text.endswith("\n") else "\n")
    return 0


COMMANDS = {
    "status": cmd_status,
    "ls": cmd_ls,
    "get": cmd_get,
    "put": cmd_put,
    "rm": cmd_rm,
    "config": cmd_config,
    "time": cmd_time,
    "sync-time": cmd_sync_time,
    "clear": cmd_clear,
    "rows": cmd_rows,
    "raw": cmd_raw,
}

# esplink/protocol/router.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from esplink.core.errors import DeviceReportedError, PayloadError
from esplink.model.device import DeviceConfig, DeviceTimeInfo, DownloadResult, parse_file_list
from esplink.runtime.events import EventBus
from esplink.runtime.state import ConnectionState

from .core import Protocol, WireMessage
from .core.codec import bytes_to_hex, encode, hex_to_bytes
from .errors import PayloadDecodeError, UnknownCommand

if TYPE_CHECKING:
    from esplink.interfaces.session_link import SessionLink
    from esplink.runtime.loop import Loop


def format_device_time(when: datetime) -> str:
    """SYNC_TIME format: 'Y,M,D,h,m,s' without zero padding."""
    return f"{when.year},{when.month},{when.day},{when.hour},{when.minute},{when.second}"


class CommandRouter:
    """
    Maps outbound commands to wire frames and inbound reports to events.

    Every command method is fire-and-forget: the work is queued on the
    session loop and silently dropped when the transport is not open.
    """

    def __init__(
        self,
        proto: Protocol,
        events: EventBus,
        link: "SessionLink",
        loop: "Loop",
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self._proto = proto
        self._events = events
        self._link = link
        self._loop = loop
        self._log = logger or logging.getLogger(__name__)

        self._pending_download: Optional[Any] = None
        self._last_download: Optional[DownloadResult] = None

        self._handlers: Dict[str, Callable[[WireMessage], None]] = {
            "handshake_accept": self._on_handshake_accept,
            "heartbeat_reply": self._on_heartbeat_reply,
            "command_ack": self._on_command_ack,
            "command_nak": self._on_command_nak,
            "error_report": self._on_error_report,
            "serial_number_report": self._on_serial_number_report,
            "file_list_report": self._on_file_list_report,
            "config_report": self._on_config_report,
            "time_report": self._on_time_report,
            "file_data_report": self._on_file_data_report,
            "status_report": self._on_status_report,
        }

        self._commands: Dict[str, Callable[..., None]] = {
            "ping": self.ping,
            "list_files": self.list_files,
            "upload_file": self.upload_file,
            "download_file": self.download_file,
            "delete_file": self.delete_file,
            "read_config": self.read_config,
            "write_config": self.write_config,
            "get_board_serial": self.get_board_serial,
            "fetch_device_time": self.fetch_device_time,
            "sync_time": self.sync_time,
            "clear_data_file": self.clear_data_file,
            "send_raw": self.send_raw,
            "initialize_device": self.initialize_device,
        }

    # ---------------- State ----------------
    @property
    def pending_download(self) -> Optional[Any]:
        return self._pending_download

    @property
    def last_download(self) -> Optional[DownloadResult]:
        return self._last_download

    def command_kinds(self) -> list[str]:
        return sorted(self._commands)

    def reset(self) -> None:
        """Drop per-session state (pending download). Loop context only."""
        if self._pending_download is not None:
            self._log.info("DOWNLOAD_ABORTED token=%r", self._pending_download)
        self._pending_download = None

    # ---------------- Command API ----------------
    def invoke(self, kind: str, **args: Any) -> None:
        """Generic entry point: invoke("upload_file", remote_name="a.txt", data=b"AB")."""
        try:
            method = self._commands[kind]
        except KeyError:
            raise UnknownCommand(kind) from None
        method(**args)

    def ping(self) -> None:
        self._submit("PING")

    def list_files(self) -> None:
        self._submit("LIST_FILES")

    def upload_file(self, remote_name: str, data: bytes) -> None:
        self._submit("UPLOAD_FILE", filename=remote_name, hexdata=bytes_to_hex(data))

    def download_file(self, remote_name: str, destination: Any) -> None:
        """
        Request a file. `destination` is an opaque token handed back with the
        bytes. Only one download can be pending: a second call replaces the
        token of the first.
        """
        self._loop.submit(self._request_download, remote_name, destination)

    def delete_file(self, remote_name: str) -> None:
        self._submit("DELETE_FILE", filename=remote_name)

    def read_config(self) -> None:
        self._submit("READ_CONFIG")

    def write_config(self, config: DeviceConfig) -> None:
        self._submit("WRITE_CONFIG", config=config.to_wire())

    def get_board_serial(self) -> None:
        self._submit("GET_SERIAL")

    def fetch_device_time(self) -> None:
        self._submit("FETCH_TIME")

    def sync_time(self, when: Optional[datetime] = None) -> None:
        when = when or datetime.now(timezone.utc)
        self._log.info("SYNC_TIME when=%s", when.isoformat())
        self._submit("SYNC_TIME", time=format_device_time(when))

    def clear_data_file(self, remote_name: str) -> None:
        """Clear a CSV data file on the device, keeping its header line."""
        self._submit("CLEAR_CSV", filename=remote_name)

    def send_raw(self, text: str) -> None:
        line = text if text.endswith("\n") else text + "\n"
        self._loop.submit(self._transmit_raw, line)

    def initialize_device(self) -> None:
        """Sync UTC time, then request file list, config and board serial."""
        self._loop.submit(self._initialize_device)

    # ---------------- Transmit (loop context) ----------------
    def _submit(self, cmd_name: str, **fields: Any) -> None:
        self._loop.submit(self._transmit, cmd_name, fields)

    def _transmit(self, cmd_name: str, fields: Dict[str, Any]) -> bool:
        if not self._link.is_open():
            self._log.debug("CMD_DROPPED_NOT_OPEN cmd=%s", cmd_name)
            return False
        frame = encode(self._proto.build_command(cmd_name, **fields))
        self._log.debug("SENDING_FRAME cmd=%s len=%d", cmd_name, len(frame))
        return self._link.write_line(frame)

    def _transmit_raw(self, line: str) -> bool:
        if not self._link.is_open():
            self._log.debug("RAW_DROPPED_NOT_OPEN len=%d", len(line))
            return False
        return self._link.write_line(line.encode("utf-8"))

    def send_handshake(self) -> bool:
        """Sent by the session once the settle delay has passed."""
        return self._transmit(
            "HANDSHAKE",
            {"device": self._proto.client_name, "version": self._proto.version},
        )

    def _request_download(self, remote_name: str, destination: Any) -> None:
        if not self._link.is_open():
            self._log.debug("CMD_DROPPED_NOT_OPEN cmd=DOWNLOAD_FILE")
            return
        if self._pending_download is not None:
            self._log.warning(
                "DOWNLOAD_TOKEN_REPLACED old=%r new=%r", self._pending_download, destination
            )
        self._pending_download = destination
        self._transmit("DOWNLOAD_FILE", {"filename": remote_name})

    def _initialize_device(self) -> None:
        if self._link.state is not ConnectionState.CONNECTED:
            return
        self.sync_time(datetime.now(timezone.utc))
        self.list_files()
        self.read_config()
        self.get_board_serial()

    # ---------------- Inbound dispatch (loop context) ----------------
    def dispatch(self, msg: WireMessage) -> None:
        self._events.message.publish(msg)

        handler_key = self._proto.report_handler(msg.type)
        if handler_key is None:
            self._log.debug("REPORT_UNRECOGNIZED type=%r", msg.type)
            return

        handler = self._handlers.get(handler_key)
        if handler is None:
            self._log.warning("REPORT_HANDLER_MISSING type=%s handler=%s", msg.type, handler_key)
            return
        handler(msg)

    def _on_handshake_accept(self, msg: WireMessage) -> None:
        device = msg.get("device")
        if device != self._proto.device_name:
            self._log.warning("HANDSHAKE_REJECTED device=%r", device)
            return
        self._link.accept_handshake(device)

    def _on_heartbeat_reply(self, msg: WireMessage) -> None:
        self._link.touch_liveness()

    def _on_command_ack(self, msg: WireMessage) -> None:
        self._events.operation.publish(f"ACK: {msg.get('cmd')}")

    def _on_command_nak(self, msg: WireMessage) -> None:
        cmd = msg.get("cmd")
        error_msg = msg.get("error_msg")
        self._log.warning("DEVICE_NAK cmd=%s error=%s", cmd, error_msg)
        self._events.error.publish(
            DeviceReportedError(
                f"NAK: {cmd} ({error_msg})",
                details={"cmd": cmd, "error_msg": error_msg},
            )
        )

    def _on_error_report(self, msg: WireMessage) -> None:
        error_msg = msg.get("error_msg")
        self._log.warning("DEVICE_ERROR error=%s", error_msg)
        self._events.error.publish(
            DeviceReportedError(f"Device error: {error_msg}", details={"error_msg": error_msg})
        )

    def _on_serial_number_report(self, msg: WireMessage) -> None:
        serial = msg.get("serial")
        self._events.serial_number.publish(serial if isinstance(serial, str) else "")
        self._link.set_status("Serial number retrieved")

    def _on_file_list_report(self, msg: WireMessage) -> None:
        entries = parse_file_list(msg.get("files"), parent_path=self._proto.flash_root)
        self._events.file_list.publish(entries)
        self._link.set_status("File list updated")

    def _on_config_report(self, msg: WireMessage) -> None:
        self._events.config.publish(DeviceConfig.from_wire(msg.get("config")))
        self._link.set_status("Configuration loaded")

    def _on_time_report(self, msg: WireMessage) -> None:
        self._events.time.publish(DeviceTimeInfo.from_wire(msg))
        self._link.set_status("Device time updated")

    def _on_file_data_report(self, msg: WireMessage) -> None:
        hexdata = msg.get("hexdata")
        token = self._pending_download
        if token is None or not isinstance(hexdata, str) or not hexdata:
            self._log.debug("FILE_DATA_IGNORED pending=%r len=%d", token, len(hexdata or "") if isinstance(hexdata, str) else 0)
            return

        self._pending_download = None
        try:
            data = hex_to_bytes(hexdata)
        except PayloadDecodeError as e:
            self._log.warning("FILE_DATA_DECODE_FAILED token=%r err=%s", token, e)
            self._events.error.publish(
                PayloadError("Downloaded data could not be decoded.", hint=str(e), details={"token": token})
            )
            return

        result = DownloadResult(token=token, data=data)
        self._last_download = result
        self._log.info("DOWNLOAD_COMPLETE token=%r bytes=%d", token, len(data))
        self._events.download.publish(result)
        self._events.operation.publish(f"File downloaded: {token}")

    def _on_status_report(self, msg: WireMessage) -> None:
        if msg.get("status") == self._proto.disconnected_status and self._link.state is ConnectionState.CONNECTED:
            self._link.device_disconnected()

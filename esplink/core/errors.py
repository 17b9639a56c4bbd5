# esplink/core/errors.py
from __future__ import annotations


class EspLinkError(Exception):
    """
    Base class for all expected operational errors in esplink.

    Instances are raised to callers (configuration, connect futures) and
    published on the session's error channel.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, UI messages, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration errors (no hardware access yet)
# ---------------------------------------------------------------------------

class ConfigError(EspLinkError):
    """
    Configuration input is invalid.

    Examples:
      - unknown config key
      - wrong value type (e.g. string timeout)
      - unknown transport driver key
      - protocol YAML files missing or malformed
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Transport / connection lifecycle errors
# ---------------------------------------------------------------------------

class DeviceConnectError(EspLinkError):
    """
    Transport could not be opened.

    Examples:
      - serial port not found
      - permission denied
      - port already in use by another program
    """
    code = "device_connect_error"


class DeviceDisconnectedError(EspLinkError):
    """
    Device was connected (or connecting) but is no longer reachable.

    Examples:
      - USB cable unplugged (read/write failure)
      - device reported STATUS=disconnected
    """
    code = "device_disconnected"


# ---------------------------------------------------------------------------
# Protocol / communication errors
# ---------------------------------------------------------------------------

class ProtocolTimeoutError(EspLinkError):
    """
    A protocol time window expired.

    details["phase"] is "handshake" (no acceptance within the connection
    timeout) or "heartbeat" (no inbound frame within the pong timeout).
    """
    code = "protocol_timeout"


class DeviceReportedError(EspLinkError):
    """
    The device answered with NAK or ERROR. The connection stays open.
    """
    code = "device_reported_error"


class PayloadError(EspLinkError):
    """
    A report carried a payload that could not be decoded (e.g. invalid hex).
    """
    code = "payload_decode_error"

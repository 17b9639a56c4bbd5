# esplink/interfaces/session_link.py
from __future__ import annotations

from typing import Any, Protocol

from esplink.runtime.state import ConnectionState


class SessionLink(Protocol):
    """
    What CommandRouter needs from the session that owns it.

    Every call happens on the session loop.
    """

    @property
    def state(self) -> ConnectionState: ...

    def is_open(self) -> bool: ...

    def write_line(self, data: bytes) -> bool:
        """Write one encoded frame; False when it could not be sent."""
        ...

    def accept_handshake(self, device: Any) -> None: ...
    def touch_liveness(self) -> None: ...
    def set_status(self, message: str) -> None: ...
    def device_disconnected(self) -> None: ...

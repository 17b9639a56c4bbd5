# esplink/runtime/state.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class SessionStatus:
    """
    A snapshot of the session, safe to share across threads.
    """
    state: ConnectionState
    port: Optional[str]
    status_message: str
    last_liveness_age_s: Optional[float] = None
    pending_download: Optional[Any] = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

# esplink/transport/errors.py
from __future__ import annotations

from typing import Optional


class TransportError(Exception):
    """Base class for transport-layer failures. `port` is set when known."""

    def __init__(self, message: str, *, port: Optional[str] = None):
        super().__init__(message)
        self.port = port


class TransportOpenError(TransportError):
    """Port missing, busy or access denied."""


class TransportIOError(TransportError):
    """Read/write/flush on a closed or vanished port."""

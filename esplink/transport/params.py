# esplink/transport/params.py
from __future__ import annotations

import platform
from dataclasses import dataclass
from typing import Optional, Tuple

VALID_PARITIES = ("N", "E", "O", "M", "S")
VALID_BYTESIZES = (5, 6, 7, 8)
VALID_STOPBITS = (1, 2)


def modem_signal_policy(system: Optional[str] = None) -> Tuple[bool, bool]:
    """
    Return the (dtr, rts) levels to apply before opening the port.

    On Linux/macOS both lines stay passive: toggling DTR resets most ESP32
    dev boards. On Windows DTR is asserted as a "host present" indicator.
    """
    system = system or platform.system()
    if system == "Windows":
        return True, False
    return False, False


@dataclass(frozen=True)
class SerialSettings:
    """
    Line settings for the serial transport (115200 8N1 by default).

    dtr/rts: None = platform policy (see modem_signal_policy()).
    """
    baudrate: int = 115200
    bytesize: int = 8
    parity: str = "N"
    stopbits: int = 1
    read_timeout_s: float = 0.05
    write_timeout_s: float = 1.0
    dtr: Optional[bool] = None
    rts: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.baudrate <= 0:
            raise ValueError(f"baudrate must be > 0, got {self.baudrate}")
        if self.bytesize not in VALID_BYTESIZES:
            raise ValueError(f"bytesize must be one of {VALID_BYTESIZES}, got {self.bytesize}")
        if self.parity not in VALID_PARITIES:
            raise ValueError(f"parity must be one of {VALID_PARITIES}, got {self.parity!r}")
        if self.stopbits not in VALID_STOPBITS:
            raise ValueError(f"stopbits must be one of {VALID_STOPBITS}, got {self.stopbits}")
        if self.read_timeout_s < 0 or self.write_timeout_s < 0:
            raise ValueError("timeouts must be >= 0")

    def signals(self, system: Optional[str] = None) -> Tuple[bool, bool]:
        dtr, rts = modem_signal_policy(system)
        return (
            dtr if self.dtr is None else bool(self.dtr),
            rts if self.rts is None else bool(self.rts),
        )

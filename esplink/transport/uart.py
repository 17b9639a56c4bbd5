# esplink/transport/uart.py
from __future__ import annotations

from typing import Optional

import serial
from serial import SerialException

from .base import Transport
from .errors import TransportIOError, TransportOpenError
from .params import SerialSettings


class SerialTransport(Transport):
    """
    Serial transport implemented via pyserial.

    Notes:
      - DTR/RTS levels are set *before* the port opens, so the lines are never
        toggled (an ESP32 auto-reset circuit would reboot the board).
      - read(n) returns whatever arrived within read_timeout_s (maybe b"").
    """

    def __init__(self, port: str, settings: Optional[SerialSettings] = None):
        self.port = port
        self.settings = settings or SerialSettings()
        self.ser: Optional[serial.Serial] = None

    def open(self) -> None:
        s = self.settings
        dtr, rts = s.signals()
        try:
            ser = serial.Serial()
            ser.port = self.port
            ser.baudrate = s.baudrate
            ser.bytesize = s.bytesize
            ser.parity = s.parity
            ser.stopbits = s.stopbits
            ser.timeout = s.read_timeout_s
            ser.write_timeout = s.write_timeout_s
            ser.dtr = dtr
            ser.rts = rts
            ser.open()
            ser.reset_input_buffer()
            ser.reset_output_buffer()
            self.ser = ser
        except (SerialException, ValueError) as e:
            self.ser = None
            raise TransportOpenError(f"could not open serial port {self.port!r}: {e}", port=self.port) from None

    def close(self) -> None:
        if self.ser is not None:
            try:
                self.ser.close()
            finally:
                self.ser = None

    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    def read(self, n: int) -> bytes:
        ser = self.ser
        if ser is None:
            raise TransportIOError("read while transport not open")

        try:
            # Block for the first byte (up to timeout), then take what is buffered.
            data = ser.read(1)
            if data:
                waiting = ser.in_waiting
                if waiting:
                    data += ser.read(min(waiting, max(n - 1, 0)))
            return data
        except (SerialException, OSError, TypeError, AttributeError) as e:
            # pyserial raises TypeError/AttributeError when the port is closed under a read
            self.ser = None
            raise TransportIOError(f"serial read failed (device disconnected?): {e}", port=self.port) from None

    def write(self, data: bytes) -> int:
        if self.ser is None:
            raise TransportIOError("write while transport not open")

        try:
            return self.ser.write(data)
        except (SerialException, OSError) as e:
            self.ser = None
            raise TransportIOError(f"serial write failed (device disconnected?): {e}", port=self.port) from None

    def flush(self) -> None:
        if self.ser is None:
            raise TransportIOError("flush while transport not open")

        try:
            self.ser.flush()
        except (SerialException, OSError) as e:
            self.ser = None
            raise TransportIOError(f"serial flush failed (device disconnected?): {e}", port=self.port) from None

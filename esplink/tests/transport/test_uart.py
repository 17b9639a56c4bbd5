from __future__ import annotations

import pytest

import esplink.transport.uart as uart_mod
from esplink.transport.errors import TransportIOError, TransportOpenError
from esplink.transport.params import SerialSettings


class FakeSerial:
    def __init__(self):
        self.port = None
        self.baudrate = None
        self.bytesize = None
        self.parity = None
        self.stopbits = None
        self.timeout = None
        self.write_timeout = None
        self.dtr = None
        self.rts = None
        self.is_open = False

        # dtr/rts as seen at the moment open() was called
        self.signals_at_open = None

        self._read_chunks = []
        self._write_ret = 0
        self._raise_on_open = None
        self._raise_on_read = None
        self._raise_on_write = None
        self._raise_on_flush = None

        self.reset_in_called = 0
        self.reset_out_called = 0
        self.flush_called = 0
        self.close_called = 0
        self.read_sizes = []

    def open(self):
        if self._raise_on_open is not None:
            raise self._raise_on_open
        self.signals_at_open = (self.dtr, self.rts)
        self.is_open = True

    @property
    def in_waiting(self) -> int:
        return sum(len(c) for c in self._read_chunks)

    def reset_input_buffer(self):
        self.reset_in_called += 1

    def reset_output_buffer(self):
        self.reset_out_called += 1

    def read(self, n: int) -> bytes:
        self.read_sizes.append(n)
        if self._raise_on_read is not None:
            raise self._raise_on_read
        if not self._read_chunks:
            return b""
        chunk = self._read_chunks.pop(0)
        if len(chunk) > n:
            self._read_chunks.insert(0, chunk[n:])
            chunk = chunk[:n]
        return chunk

    def write(self, data: bytes) -> int:
        if self._raise_on_write is not None:
            raise self._raise_on_write
        return self._write_ret

    def flush(self) -> None:
        self.flush_called += 1
        if self._raise_on_flush is not None:
            raise self._raise_on_flush

    def close(self) -> None:
        self.close_called += 1
        self.is_open = False


@pytest.fixture
def fake_serial(monkeypatch):
    s = FakeSerial()
    monkeypatch.setattr(uart_mod.serial, "Serial", lambda: s)
    return s


def test_open_applies_settings_and_resets_buffers(fake_serial, monkeypatch):
    monkeypatch.setattr("esplink.transport.params.platform.system", lambda: "Linux")

    t = uart_mod.SerialTransport("/dev/ttyUSB0", SerialSettings(baudrate=57600, read_timeout_s=0.1))
    t.open()

    assert t.ser is fake_serial
    assert t.is_open() is True
    assert fake_serial.port == "/dev/ttyUSB0"
    assert fake_serial.baudrate == 57600
    assert (fake_serial.bytesize, fake_serial.parity, fake_serial.stopbits) == (8, "N", 1)
    assert fake_serial.timeout == 0.1
    assert fake_serial.reset_in_called == 1
    assert fake_serial.reset_out_called == 1


def test_open_sets_signals_before_opening_on_linux(fake_serial, monkeypatch):
    monkeypatch.setattr("esplink.transport.params.platform.system", lambda: "Linux")

    uart_mod.SerialTransport("/dev/ttyUSB0").open()

    assert fake_serial.signals_at_open == (False, False)


def test_open_asserts_dtr_on_windows(fake_serial, monkeypatch):
    monkeypatch.setattr("esplink.transport.params.platform.system", lambda: "Windows")

    uart_mod.SerialTransport("COM3").open()

    assert fake_serial.signals_at_open == (True, False)


def test_open_honours_explicit_signal_overrides(fake_serial, monkeypatch):
    monkeypatch.setattr("esplink.transport.params.platform.system", lambda: "Windows")

    uart_mod.SerialTransport("COM3", SerialSettings(dtr=False, rts=True)).open()

    assert fake_serial.signals_at_open == (False, True)


def test_open_serial_exception_raises_transport_open_error(fake_serial):
    fake_serial._raise_on_open = uart_mod.SerialException("no port")

    t = uart_mod.SerialTransport("COM404")
    with pytest.raises(TransportOpenError):
        t.open()

    assert t.ser is None
    assert t.is_open() is False


def test_read_not_open_raises():
    t = uart_mod.SerialTransport("COM1")
    with pytest.raises(TransportIOError):
        t.read(1)


def test_write_not_open_raises():
    t = uart_mod.SerialTransport("COM1")
    with pytest.raises(TransportIOError):
        t.write(b"\x00")


def test_flush_not_open_raises():
    t = uart_mod.SerialTransport("COM1")
    with pytest.raises(TransportIOError):
        t.flush()


def test_read_returns_first_byte_plus_buffered(fake_serial):
    fake_serial._read_chunks = [b"{\"type\":\"PONG\"}\n"]

    t = uart_mod.SerialTransport("COM1")
    t.open()

    assert t.read(256) == b"{\"type\":\"PONG\"}\n"
    assert fake_serial.read_sizes[0] == 1


def test_read_never_exceeds_n(fake_serial):
    fake_serial._read_chunks = [b"abcdefgh"]

    t = uart_mod.SerialTransport("COM1")
    t.open()

    assert t.read(3) == b"abc"
    assert t.read(3) == b"def"


def test_read_timeout_returns_empty(fake_serial):
    t = uart_mod.SerialTransport("COM1")
    t.open()

    assert t.read(10) == b""


def test_read_serial_exception_clears_ser_and_raises(fake_serial):
    fake_serial._raise_on_read = uart_mod.SerialException("read fail")

    t = uart_mod.SerialTransport("COM1")
    t.open()

    with pytest.raises(TransportIOError):
        t.read(1)

    assert t.ser is None


def test_write_returns_bytes_written(fake_serial):
    fake_serial._write_ret = 4

    t = uart_mod.SerialTransport("COM1")
    t.open()

    assert t.write(b"abcd") == 4


def test_write_serial_exception_clears_ser_and_raises(fake_serial):
    fake_serial._raise_on_write = uart_mod.SerialException("write fail")

    t = uart_mod.SerialTransport("COM1")
    t.open()

    with pytest.raises(TransportIOError):
        t.write(b"x")

    assert t.ser is None


def test_flush_serial_exception_clears_ser_and_raises(fake_serial):
    fake_serial._raise_on_flush = uart_mod.SerialException("flush fail")

    t = uart_mod.SerialTransport("COM1")
    t.open()

    with pytest.raises(TransportIOError):
        t.flush()

    assert t.ser is None


def test_close_closes_and_clears(fake_serial):
    t = uart_mod.SerialTransport("COM1")
    t.open()
    t.close()
    t.close()

    assert fake_serial.close_called == 1
    assert t.ser is None

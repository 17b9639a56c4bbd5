from __future__ import annotations

import pytest

from esplink.transport.params import SerialSettings, modem_signal_policy


def test_defaults_are_115200_8n1():
    s = SerialSettings()

    assert (s.baudrate, s.bytesize, s.parity, s.stopbits) == (115200, 8, "N", 1)
    assert s.dtr is None and s.rts is None


@pytest.mark.parametrize(
    "system, expected",
    [
        ("Windows", (True, False)),
        ("Linux", (False, False)),
        ("Darwin", (False, False)),
    ],
)
def test_modem_signal_policy(system, expected):
    assert modem_signal_policy(system) == expected


def test_signals_overrides_win_over_policy():
    assert SerialSettings(dtr=False).signals("Windows") == (False, False)
    assert SerialSettings(rts=True).signals("Linux") == (False, True)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"baudrate": 0},
        {"bytesize": 9},
        {"parity": "X"},
        {"stopbits": 3},
        {"read_timeout_s": -1.0},
    ],
)
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValueError):
        SerialSettings(**kwargs)

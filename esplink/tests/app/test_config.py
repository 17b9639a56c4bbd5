from __future__ import annotations

from pathlib import Path

import pytest

from esplink.app.config import EspLinkConfig
from esplink.core.errors import ConfigError
from esplink.transport.params import SerialSettings


def test_defaults():
    cfg = EspLinkConfig()

    assert cfg.driver == "serial"
    assert cfg.serial == SerialSettings()
    assert (cfg.connect_timeout_s, cfg.settle_delay_s) == (5.0, 1.0)
    assert (cfg.heartbeat_interval_s, cfg.pong_timeout_s) == (3.0, 10.0)
    assert cfg.initialize_on_connect is False
    assert cfg.protocol_dir is None


def test_from_mapping_overrides_and_casts():
    cfg = EspLinkConfig.from_mapping(
        {
            "connect_timeout_s": 8,
            "initialize_on_connect": 1,
            "serial": {"baudrate": 9600, "dtr": None, "rts": False},
        }
    )

    assert cfg.connect_timeout_s == 8.0
    assert isinstance(cfg.connect_timeout_s, float)
    assert cfg.initialize_on_connect is True
    assert cfg.serial.baudrate == 9600
    assert cfg.serial.dtr is None
    assert cfg.serial.rts is False


def test_from_mapping_none_gives_defaults():
    assert EspLinkConfig.from_mapping(None) == EspLinkConfig()


@pytest.mark.parametrize(
    "data, key",
    [
        ({"colour": "blue"}, "colour"),
        ({"serial": {"speed": 1}}, "serial.speed"),
        ({"connect_timeout_s": "5"}, "connect_timeout_s"),
        ({"raw_log_limit": 1.5}, "raw_log_limit"),
        ({"initialize_on_connect": "yes"}, "initialize_on_connect"),
        ({"serial": {"baudrate": True}}, "serial.baudrate"),
    ],
)
def test_from_mapping_rejects_bad_input(data, key):
    with pytest.raises(ConfigError) as exc:
        EspLinkConfig.from_mapping(data)

    assert exc.value.details["key"] == key
    assert exc.value.code == "config_error"


def test_invalid_serial_values_become_config_error():
    with pytest.raises(ConfigError):
        EspLinkConfig.from_mapping({"serial": {"parity": "Q"}})


def test_non_positive_timeouts_rejected():
    with pytest.raises(ConfigError):
        EspLinkConfig(pong_timeout_s=0)
    with pytest.raises(ConfigError):
        EspLinkConfig(settle_delay_s=-1)


def test_from_yaml(tmp_path: Path):
    p = tmp_path / "esplink.yml"
    p.write_text(
        "driver: fake\n"
        "pong_timeout_s: 20\n"
        "serial:\n"
        "  baudrate: 57600\n",
        encoding="utf-8",
    )

    cfg = EspLinkConfig.from_yaml(p)

    assert cfg.driver == "fake"
    assert cfg.pong_timeout_s == 20.0
    assert cfg.serial.baudrate == 57600


def test_from_yaml_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError):
        EspLinkConfig.from_yaml(tmp_path / "nope.yml")


def test_from_yaml_invalid_yaml(tmp_path: Path):
    p = tmp_path / "bad.yml"
    p.write_text("serial: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        EspLinkConfig.from_yaml(p)


def test_from_yaml_non_mapping_root(tmp_path: Path):
    p = tmp_path / "list.yml"
    p.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        EspLinkConfig.from_yaml(p)


def test_to_dict_includes_serial():
    d = EspLinkConfig().to_dict()

    assert d["driver"] == "serial"
    assert d["serial"]["baudrate"] == 115200

# esplink/app/config.py
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from esplink.core.errors import ConfigError
from esplink.transport.params import SerialSettings

# key -> schema type, used to validate mappings loaded from YAML
_SESSION_KEYS: Dict[str, str] = {
    "driver": "str",
    "connect_timeout_s": "float",
    "settle_delay_s": "float",
    "heartbeat_interval_s": "float",
    "pong_timeout_s": "float",
    "raw_log_limit": "int",
    "initialize_on_connect": "bool",
    "protocol_dir": "path",
}

_SERIAL_KEYS: Dict[str, str] = {
    "baudrate": "int",
    "bytesize": "int",
    "parity": "str",
    "stopbits": "int",
    "read_timeout_s": "float",
    "write_timeout_s": "float",
    "dtr": "optbool",
    "rts": "optbool",
}


@dataclass(frozen=True)
class EspLinkConfig:
    driver: str = "serial"
    serial: SerialSettings = field(default_factory=SerialSettings)
    connect_timeout_s: float = 5.0
    settle_delay_s: float = 1.0
    heartbeat_interval_s: float = 3.0
    pong_timeout_s: float = 10.0
    raw_log_limit: int = 1000
    initialize_on_connect: bool = False
    protocol_dir: Optional[str] = None  # None = bundled protocol YAML

    def __post_init__(self) -> None:
        for name in ("connect_timeout_s", "heartbeat_interval_s", "pong_timeout_s"):
            if getattr(self, name) <= 0:
                raise ConfigError(
                    f"Config value '{name}' must be > 0.",
                    details={"key": name, "value": getattr(self, name)},
                )
        if self.settle_delay_s < 0:
            raise ConfigError(
                "Config value 'settle_delay_s' must be >= 0.",
                details={"key": "settle_delay_s", "value": self.settle_delay_s},
            )
        if self.raw_log_limit <= 0:
            raise ConfigError(
                "Config value 'raw_log_limit' must be > 0.",
                details={"key": "raw_log_limit", "value": self.raw_log_limit},
            )

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "EspLinkConfig":
        """
        Build a config from a plain mapping (e.g. parsed YAML).

        Unknown keys and wrong value types raise ConfigError; missing keys
        keep their defaults.
        """
        data = data or {}
        if not isinstance(data, Mapping):
            raise ConfigError(
                "Config root must be a mapping.",
                details={"got": type(data).__name__},
            )

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "serial":
                kwargs["serial"] = _serial_from_mapping(value)
                continue
            if key not in _SESSION_KEYS:
                raise ConfigError(
                    f"Unknown config key '{key}'.",
                    hint=f"Valid keys: {sorted(list(_SESSION_KEYS) + ['serial'])}",
                    details={"key": key},
                )
            kwargs[key] = _cast(key, value, _SESSION_KEYS[key])

        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "EspLinkConfig":
        p = Path(path)
        try:
            with p.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigError(
                f"Config file not found: {p}",
                details={"path": str(p)},
            ) from None
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Config file is not valid YAML: {p}",
                hint=str(e),
                details={"path": str(p)},
            ) from None

        return cls.from_mapping(data)

    def to_dict(self) -> Dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "serial"}
        out["serial"] = {f.name: getattr(self.serial, f.name) for f in fields(self.serial)}
        return out


def _serial_from_mapping(data: Any) -> SerialSettings:
    if data is None:
        return SerialSettings()
    if not isinstance(data, Mapping):
        raise ConfigError(
            "Config key 'serial' must be a mapping.",
            details={"key": "serial", "got": type(data).__name__},
        )

    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in _SERIAL_KEYS:
            raise ConfigError(
                f"Unknown serial setting '{key}'.",
                hint=f"Valid settings: {sorted(_SERIAL_KEYS)}",
                details={"key": f"serial.{key}"},
            )
        kwargs[key] = _cast(f"serial.{key}", value, _SERIAL_KEYS[key])

    try:
        return SerialSettings(**kwargs)
    except ValueError as e:
        raise ConfigError(
            "Invalid serial settings.",
            hint=str(e),
            details={"serial": dict(data)},
        ) from None


def _cast(key: str, value: Any, type_name: str) -> Any:
    try:
        return _cast_value(value, type_name)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Invalid value for config key '{key}'.",
            hint=str(e),
            details={"key": key, "value": value, "expected_type": type_name},
        ) from None


def _cast_value(value: Any, type_name: str) -> Any:
    if value is None:
        if type_name in ("path", "optbool"):
            return None
        raise TypeError(f"Expected {type_name}, got null")

    if type_name == "str":
        if not isinstance(value, str):
            raise TypeError(f"Expected str, got {type(value).__name__}")
        return value

    if type_name == "path":
        if not isinstance(value, (str, Path)):
            raise TypeError(f"Expected path string, got {type(value).__name__}")
        return str(value)

    if type_name == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Expected int, got {type(value).__name__}")
        return value

    if type_name == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"Expected float, got {type(value).__name__}")
        return float(value)

    if type_name in ("bool", "optbool"):
        if isinstance(value, bool):
            return value
        # accept 0/1 int
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise TypeError(f"Expected bool (or 0/1), got {type(value).__name__}")

    raise TypeError(f"Unknown schema type '{type_name}'")

# esplink/model/device.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple


def _as_str(v: Any) -> str:
    return v if isinstance(v, str) else ""


def _as_int(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        return 0
    return v


def _as_str_list(v: Any) -> List[str]:
    if not isinstance(v, (list, tuple)):
        return []
    return [x for x in v if isinstance(x, str)]


def strip_flash_root(path: str, root: str = "/flash") -> str:
    prefix = root.rstrip("/") + "/"
    return path[len(prefix):] if path.startswith(prefix) else path


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "dir"


@dataclass(frozen=True)
class FileSystemEntry:
    """A file or directory on the device flash."""
    parent_path: str
    name: str
    kind: EntryKind = EntryKind.FILE
    size_bytes: int = 0

    @property
    def full_path(self) -> str:
        return f"{self.parent_path.rstrip('/')}/{self.name}"

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    def remote_name(self, root: str = "/flash") -> str:
        """Name to pass to file commands: full path with the flash root stripped."""
        return strip_flash_root(self.full_path, root)

    @classmethod
    def from_wire(cls, item: Any, *, parent_path: str) -> Optional["FileSystemEntry"]:
        """
        Entries come either as objects {name, type, size} or as bare names.
        type == "dir" marks a directory; anything else is a file.
        Returns None for items of any other shape.
        """
        if isinstance(item, str):
            return cls(parent_path=parent_path, name=item)
        if isinstance(item, Mapping):
            kind = EntryKind.DIRECTORY if item.get("type") == "dir" else EntryKind.FILE
            return cls(
                parent_path=parent_path,
                name=_as_str(item.get("name")),
                kind=kind,
                size_bytes=_as_int(item.get("size")),
            )
        return None


def parse_file_list(items: Any, *, parent_path: str) -> List[FileSystemEntry]:
    if not isinstance(items, (list, tuple)):
        return []
    out: List[FileSystemEntry] = []
    for item in items:
        entry = FileSystemEntry.from_wire(item, parent_path=parent_path)
        if entry is not None:
            out.append(entry)
    return out


@dataclass(frozen=True)
class DeviceConfig:
    """
    Device configuration as stored on the board.

    drivers/jobs keep their order: it is the display/edit order on the device.
    """
    board_serial: str = ""
    machine_name: str = ""
    last_updated: str = ""
    drivers: Tuple[str, ...] = field(default_factory=tuple)
    jobs: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "drivers", tuple(self.drivers))
        object.__setattr__(self, "jobs", tuple(self.jobs))

    @classmethod
    def empty(cls) -> "DeviceConfig":
        return cls()

    def with_changes(self, **changes: Any) -> "DeviceConfig":
        return replace(self, **changes)

    def to_wire(self) -> dict:
        return {
            "board_serial": self.board_serial,
            "Machine": self.machine_name,
            "last_updated": self.last_updated,
            "Driver": list(self.drivers),
            "Jobs": list(self.jobs),
        }

    @classmethod
    def from_wire(cls, obj: Any) -> "DeviceConfig":
        if not isinstance(obj, Mapping):
            obj = {}
        return cls(
            board_serial=_as_str(obj.get("board_serial")),
            machine_name=_as_str(obj.get("Machine")),
            last_updated=_as_str(obj.get("last_updated")),
            drivers=tuple(_as_str_list(obj.get("Driver"))),
            jobs=tuple(_as_str_list(obj.get("Jobs"))),
        )


@dataclass(frozen=True)
class DeviceTimeInfo:
    rtc_time: str = ""
    esp_time: str = ""
    local_time: str = ""
    rtc_available: bool = False

    @classmethod
    def from_wire(cls, obj: Mapping[str, Any]) -> "DeviceTimeInfo":
        avail = obj.get("m5_available")
        return cls(
            rtc_time=_as_str(obj.get("rtc")),
            esp_time=_as_str(obj.get("esp")),
            local_time=_as_str(obj.get("local")),
            rtc_available=avail if isinstance(avail, bool) else False,
        )


@dataclass(frozen=True)
class DownloadResult:
    """Bytes of a completed download, keyed to the caller's destination token."""
    token: Any
    data: bytes

from .device import (
    DeviceConfig,
    DeviceTimeInfo,
    DownloadResult,
    EntryKind,
    FileSystemEntry,
    parse_file_list,
    strip_flash_root,
)
from .records import DataRow, parse_rows, parse_table

__all__ = [
    "DeviceConfig", "DeviceTimeInfo", "DownloadResult",
    "EntryKind", "FileSystemEntry", "parse_file_list", "strip_flash_root",
    "DataRow", "parse_rows", "parse_table",
]

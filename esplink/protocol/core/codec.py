from __future__ import annotations

import json
import re
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from ..errors import FrameDecodeError, PayloadDecodeError

LINE_TERMINATOR = b"\n"

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


def freeze(value: Any) -> Any:
    """Read-only view of decoded JSON: objects become MappingProxyType, arrays tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


class WireMessage(Mapping[str, Any]):
    """
    Immutable decoded report.

    Behaves as a read-only mapping of the JSON object; nested objects and
    arrays are frozen too. `type` is the discriminator, or None when absent /
    not a string.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any]):
        self._fields = MappingProxyType({k: freeze(v) for k, v in fields.items()})

    @property
    def type(self) -> Optional[str]:
        t = self._fields.get("type")
        return t if isinstance(t, str) else None

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"WireMessage({dict(self._fields)!r})"


def decode(frame: str) -> WireMessage:
    """Parse one frame as a JSON object."""
    try:
        obj = json.loads(frame)
    except ValueError as e:
        raise FrameDecodeError(frame, str(e)) from None
    except RecursionError:
        # valid JSON nested deeper than the parser can follow
        raise FrameDecodeError(frame, "nesting too deep") from None
    if not isinstance(obj, dict):
        raise FrameDecodeError(frame, f"expected JSON object, got {type(obj).__name__}")
    try:
        return WireMessage(obj)
    except RecursionError:
        raise FrameDecodeError(frame, "nesting too deep") from None


def encode_text(command: Mapping[str, Any]) -> str:
    """Compact JSON of a command, without the line terminator."""
    return json.dumps(dict(command), separators=(",", ":"), ensure_ascii=False)


def encode(command: Mapping[str, Any]) -> bytes:
    """Compact JSON + single newline, UTF-8 encoded."""
    return encode_text(command).encode("utf-8") + LINE_TERMINATOR


def bytes_to_hex(data: bytes) -> str:
    """Lowercase hex, two digits per byte, no separators."""
    return bytes(data).hex()


def hex_to_bytes(text: str) -> bytes:
    """Inverse of bytes_to_hex(). Rejects odd length and any non-hex character."""
    if len(text) % 2 != 0:
        raise PayloadDecodeError(f"odd-length hex payload ({len(text)} chars)")
    if not _HEX_RE.fullmatch(text):
        raise PayloadDecodeError("hex payload contains non-hex characters")
    return bytes.fromhex(text)

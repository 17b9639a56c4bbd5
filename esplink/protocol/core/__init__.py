# protocol/core/__init__.py

from .defs import Protocol
from .framer import LineFramer, strip_non_printable
from .codec import WireMessage, decode, encode, encode_text, bytes_to_hex, hex_to_bytes

__all__ = [
    "Protocol",
    "LineFramer", "strip_non_printable",
    "WireMessage", "decode", "encode", "encode_text", "bytes_to_hex", "hex_to_bytes",
]

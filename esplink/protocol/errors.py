# esplink/protocol/errors.py

class ProtocolError(Exception):
    """Base for protocol-level failures (framing/decode/command semantics)."""

class FrameDecodeError(ProtocolError):
    """A received line is not a JSON object. Never fatal to the stream."""
    def __init__(self, frame: str, reason: str):
        super().__init__(f"cannot decode frame ({reason}): {frame[:80]!r}")
        self.frame = frame
        self.reason = reason

class PayloadDecodeError(ProtocolError, ValueError):
    """Hex payload has odd length or non-hex characters."""

class UnknownCommand(ProtocolError):
    def __init__(self, cmd: str):
        super().__init__(f"unknown command: {cmd}")
        self.cmd = cmd

class MissingCommandField(ProtocolError):
    def __init__(self, cmd: str, field: str):
        super().__init__(f"missing field '{field}' for command {cmd}")
        self.cmd = cmd
        self.field = field

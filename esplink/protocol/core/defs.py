from __future__ import annotations

from typing import Any, Dict, List, Optional

from esplink.utils.hashing import combined_digest

from ..errors import MissingCommandField, UnknownCommand
from ..loader import ProtocolLoader


class Protocol:
    """Runtime access to the JSON-line protocol vocabulary."""

    def __init__(self, loader: ProtocolLoader):
        self.constants: Dict[str, Any] = loader.constants
        self.commands: Dict[str, Dict[str, Any]] = {k: (v or {}) for k, v in loader.commands.items()}
        self.reports: Dict[str, Dict[str, Any]] = loader.reports
        self.version: int = loader.protocol_version()
        self.file_hashes: Dict[str, str] = dict(loader.file_hashes)
        self.fingerprint: str = combined_digest(self.file_hashes)

        # Fast lookup: wire type -> handler key
        self.report_handlers: Dict[str, str] = {
            str(name): str(rep["handler"]) for name, rep in self.reports.items()
        }

    @classmethod
    def load(cls, config_dir: Optional[str] = None) -> "Protocol":
        """Load from a directory of YAML files (bundled definitions by default)."""
        loader = ProtocolLoader(config_dir)
        loader.load_all()
        return cls(loader)

    # ---------------- Constants ----------------
    @property
    def client_name(self) -> str:
        return str(self.constants.get("client_name", "EspLinkHost"))

    @property
    def device_name(self) -> str:
        return str(self.constants.get("device_name", "ESP32"))

    @property
    def flash_root(self) -> str:
        return str(self.constants.get("flash_root", "/flash"))

    @property
    def disconnected_status(self) -> str:
        return str(self.constants.get("disconnected_status", "disconnected"))

    # ---------------- Commands ----------------
    def get_command_def(self, cmd_name: str) -> Dict[str, Any]:
        if cmd_name not in self.commands:
            raise UnknownCommand(cmd_name)
        return self.commands[cmd_name]

    def command_fields(self, cmd_name: str) -> List[str]:
        return [str(f) for f in self.get_command_def(cmd_name).get("fields", [])]

    def public_commands(self) -> List[str]:
        return [name for name, cmd in self.commands.items() if not cmd.get("internal", False)]

    def build_command(self, cmd_name: str, **args: Any) -> Dict[str, Any]:
        """
        Build a wire command object: {"type": cmd_name, <fields in YAML order>}.
        Extra arguments are rejected, like missing ones.
        """
        fields = self.command_fields(cmd_name)
        extra = set(args) - set(fields)
        if extra:
            raise ValueError(f"Unexpected fields for {cmd_name}: {sorted(extra)}")

        obj: Dict[str, Any] = {"type": cmd_name}
        for name in fields:
            if name not in args:
                raise MissingCommandField(cmd_name, name)
            obj[name] = args[name]
        return obj

    # ---------------- Reports ----------------
    def report_handler(self, msg_type: Optional[str]) -> Optional[str]:
        if msg_type is None:
            return None
        return self.report_handlers.get(msg_type)

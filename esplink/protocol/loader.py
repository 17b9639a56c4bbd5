# esplink/protocol/loader.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from esplink.utils.hashing import sha256_file

BUNDLED_PROTOCOL_DIR = Path(__file__).resolve().parents[1] / "metadata" / "protocol"


class ProtocolLoader:
    """Load all protocol YAML files into dicts + keep per-file SHA256 hashes."""

    REQUIRED_FILES = (
        "constants.yml",
        "commands.yml",
        "reports.yml",
    )

    def __init__(self, config_dir: Path | str | None = None):
        self.config_dir = Path(config_dir) if config_dir is not None else BUNDLED_PROTOCOL_DIR

        # Full documents
        self.constants_doc: Dict[str, Any] = {}
        self.commands_doc: Dict[str, Any] = {}
        self.reports_doc: Dict[str, Any] = {}

        # Extracted structures used by Protocol(...)
        self.constants: Dict[str, Any] = {}
        self.commands: Dict[str, Any] = {}
        self.reports: Dict[str, Any] = {}

        # File fingerprints (filename -> sha256 hex)
        self.file_hashes: Dict[str, str] = {}

    def load_all(self) -> None:
        # Ensure required files exist + compute hashes
        self.file_hashes.clear()
        for fn in self.REQUIRED_FILES:
            path = self.config_dir / fn
            if not path.exists():
                raise FileNotFoundError(f"Protocol file not found: {path}")
            self.file_hashes[fn] = sha256_file(path)

        # Load YAML documents
        self.constants_doc = self._load_yaml("constants.yml")
        self.commands_doc = self._load_yaml("commands.yml")
        self.reports_doc = self._load_yaml("reports.yml")

        # Extract payloads
        self.constants = self.constants_doc
        self.commands = self.commands_doc.get("commands", {}) or {}
        self.reports = self.reports_doc.get("reports", {}) or {}

        # Basic shape validation
        if not isinstance(self.constants, dict):
            raise ValueError("constants.yml must be a mapping")
        if not isinstance(self.commands, dict):
            raise ValueError("commands.yml must contain 'commands' mapping")
        if not isinstance(self.reports, dict):
            raise ValueError("reports.yml must contain 'reports' mapping")

        for name, cmd in self.commands.items():
            fields = (cmd or {}).get("fields", [])
            if not isinstance(fields, list):
                raise ValueError(f"commands.yml: 'fields' of {name} must be a list")

        for name, rep in self.reports.items():
            if not isinstance(rep, dict) or not rep.get("handler"):
                raise ValueError(f"reports.yml: report {name} needs a 'handler'")

    def protocol_version(self) -> int:
        """
        Canonical wire protocol version.
        Defaults to 0 if not specified.
        """
        v = self.constants.get("protocol_version", 0)
        try:
            return int(v)
        except Exception:
            raise ValueError(f"Invalid protocol version in constants.yml: {v!r}")

    def _load_yaml(self, filename: str) -> Dict[str, Any]:
        path = self.config_dir / filename
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

# esplink/utils/hashing.py
from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Mapping


def sha256_file(path: Path) -> str:
    """
    SHA256 of a file, streamed in 1 MiB chunks. Lowercase hex digest.
    """
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def combined_digest(file_hashes: Mapping[str, str]) -> str:
    """
    Single digest over a set of per-file digests.

    Order-independent (names are sorted); a renamed file changes the result.
    """
    h = hashlib.sha256()
    for name in sorted(file_hashes):
        h.update(f"{name}={file_hashes[name]}\n".encode("utf-8"))
    return h.hexdigest()

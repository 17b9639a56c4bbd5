from __future__ import annotations

import hashlib
from pathlib import Path

from esplink.utils.hashing import combined_digest, sha256_bytes, sha256_file


def test_sha256_file_matches_hashlib(tmp_path: Path):
    p = tmp_path / "Data_jobs.csv"
    p.write_bytes(b"Machine,Driver\n" * 1000)

    assert sha256_file(p) == hashlib.sha256(p.read_bytes()).hexdigest()


def test_sha256_bytes():
    assert sha256_bytes(b"") == hashlib.sha256(b"").hexdigest()


def test_combined_digest_is_order_independent():
    a = {"commands.yml": "aa", "reports.yml": "bb"}
    b = {"reports.yml": "bb", "commands.yml": "aa"}

    assert combined_digest(a) == combined_digest(b)


def test_combined_digest_sees_renames_and_changes():
    base = combined_digest({"commands.yml": "aa"})

    assert combined_digest({"commands2.yml": "aa"}) != base
    assert combined_digest({"commands.yml": "ab"}) != base

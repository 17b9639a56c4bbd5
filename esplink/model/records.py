# esplink/model/records.py
from __future__ import annotations

from dataclasses import astuple, dataclass
from typing import List

FIELDS = ("machine", "driver", "job", "date", "start_time", "end_time", "duration")


@dataclass(frozen=True)
class DataRow:
    """One line of the device's job log (Data_jobs.csv)."""
    machine: str = ""
    driver: str = ""
    job: str = ""
    date: str = ""
    start_time: str = ""
    end_time: str = ""
    duration: str = ""

    @classmethod
    def from_csv_line(cls, line: str) -> "DataRow":
        # missing trailing columns stay empty; extra columns are ignored
        parts = [p.strip() for p in line.split(",")]
        parts += [""] * (len(FIELDS) - len(parts))
        return cls(*parts[: len(FIELDS)])

    def as_list(self) -> List[str]:
        return list(astuple(self))

    def __str__(self) -> str:
        return ",".join(self.as_list())


def parse_rows(text: str) -> List[DataRow]:
    """Parse the job log, skipping the header line and blank lines."""
    lines = text.replace("\r\n", "\n").split("\n")
    return [DataRow.from_csv_line(ln) for ln in lines[1:] if ln.strip()]


def parse_table(text: str) -> List[List[str]]:
    """Trimmed cells of every line whose first cell is non-empty (header included)."""
    rows = [[c.strip() for c in ln.split(",")] for ln in text.replace("\r\n", "\n").split("\n")]
    return [r for r in rows if r and r[0]]

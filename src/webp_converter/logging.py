from __future__ import annotations

import csv
import json
import threading
from dataclasses import asdict, dataclass
from io import StringIO
from pathlib import Path
from typing import Any

from .models import ConversionSummary
from .utils import atomic_write

_SUMMARY_LOCK = threading.Lock()

SUMMARY_HEADER = [
    "run_id",
    "started_at",
    "completed_at",
    "total",
    "converted",
    "skipped",
    "failed",
    "duration_s",
]


@dataclass(slots=True)
class RunLogEntry:
    run_id: str
    source: str
    output: str
    state: str
    message: str
    source_format: str | None = None
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RunLogger:
    def __init__(self, log_file: Path) -> None:
        self._log_file = log_file
        self._lock = threading.Lock()

    @property
    def log_file(self) -> Path:
        return self._log_file

    def append(self, entry: RunLogEntry) -> None:
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        with self._lock:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            with self._log_file.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


def summary_row(run_id: str, summary: ConversionSummary) -> list[str]:
    return [
        run_id,
        summary.started_at.isoformat(),
        summary.completed_at.isoformat(),
        str(summary.total),
        str(summary.converted),
        str(summary.skipped),
        str(summary.failed),
        f"{summary.duration.total_seconds():.3f}",
    ]


def write_summary_csv(path: Path, header: list[str], rows: list[list[str]]) -> None:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    writer.writerows(rows)
    atomic_write(path, buffer.getvalue())


def append_summary_csv(path: Path, run_id: str, summary: ConversionSummary) -> None:
    with _SUMMARY_LOCK:
        header = SUMMARY_HEADER
        rows: list[list[str]] = []
        if path.exists():
            with path.open("r", encoding="utf-8", newline="") as handle:
                reader = list(csv.reader(handle))
            if reader:
                header = reader[0]
                rows = reader[1:]
        rows.append(summary_row(run_id, summary))
        write_summary_csv(path, header, rows)


__all__ = [
    "RunLogEntry",
    "RunLogger",
    "SUMMARY_HEADER",
    "append_summary_csv",
    "summary_row",
    "write_summary_csv",
]

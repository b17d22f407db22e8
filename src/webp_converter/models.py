"""Domain models for folder-to-WebP conversion runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ConversionOptions:
    """Configuration for a single folder run. Read-only once the run starts."""

    input_folder: str | Path
    output_folder: str | Path
    quality: int = 85
    overwrite_existing: bool = False
    include_subfolders: bool = True
    max_width: int | None = None
    max_height: int | None = None

    @property
    def input_path(self) -> Path:
        return Path(self.input_folder)

    @property
    def output_path(self) -> Path:
        return Path(self.output_folder)

    def as_dict(self) -> dict[str, Any]:
        return {
            "input_folder": str(self.input_folder),
            "output_folder": str(self.output_folder),
            "quality": self.quality,
            "overwrite_existing": self.overwrite_existing,
            "include_subfolders": self.include_subfolders,
            "max_width": self.max_width,
            "max_height": self.max_height,
        }


class ConversionState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ConversionProgress:
    input_file_name: str
    output_file_name: str
    state: ConversionState
    message: str

    def as_dict(self) -> dict[str, str]:
        return {
            "input_file_name": self.input_file_name,
            "output_file_name": self.output_file_name,
            "state": self.state.value,
            "message": self.message,
        }


ProgressSink = Callable[[ConversionProgress], None]


@dataclass(frozen=True, slots=True)
class ConversionSummary:
    """Counts for a completed run; ``total == converted + skipped + failed``."""

    total: int
    converted: int
    skipped: int
    failed: int
    started_at: datetime
    completed_at: datetime

    @property
    def duration(self) -> timedelta:
        return self.completed_at - self.started_at

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "converted": self.converted,
            "skipped": self.skipped,
            "failed": self.failed,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": self.duration.total_seconds(),
        }


@dataclass(frozen=True, slots=True)
class CancelledOutcome:
    """Returned instead of a summary when a run stops at a cancellation check."""

    started_at: datetime
    cancelled_at: datetime
    total: int | None = None
    processed: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "cancelled": True,
            "started_at": self.started_at.isoformat(),
            "cancelled_at": self.cancelled_at.isoformat(),
            "total": self.total,
            "processed": self.processed,
        }


RunResult = Union[ConversionSummary, CancelledOutcome]


@dataclass(slots=True)
class _SummaryBuilder:
    started_at: datetime = field(default_factory=utc_now)
    total: int = 0
    converted: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.converted + self.skipped + self.failed

    def record(self, state: ConversionState) -> None:
        if state is ConversionState.SUCCEEDED:
            self.converted += 1
        elif state is ConversionState.SKIPPED:
            self.skipped += 1
        elif state is ConversionState.FAILED:
            self.failed += 1
        else:
            raise ValueError(f"Not a terminal state: {state.value}")

    def freeze(self) -> ConversionSummary:
        return ConversionSummary(
            total=self.total,
            converted=self.converted,
            skipped=self.skipped,
            failed=self.failed,
            started_at=self.started_at,
            completed_at=utc_now(),
        )

    def cancel(self, *, enumerated: bool) -> CancelledOutcome:
        return CancelledOutcome(
            started_at=self.started_at,
            cancelled_at=utc_now(),
            total=self.total if enumerated else None,
            processed=self.processed,
        )


__all__ = [
    "CancelledOutcome",
    "ConversionOptions",
    "ConversionProgress",
    "ConversionState",
    "ConversionSummary",
    "ProgressSink",
    "RunResult",
    "utc_now",
]

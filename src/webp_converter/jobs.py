from __future__ import annotations

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .config import AppConfig
from .core import ConversionService
from .models import (
    CancelledOutcome,
    ConversionOptions,
    ConversionProgress,
    ConversionState,
    ConversionSummary,
    RunResult,
)
from .utils import generate_run_id
from .validation import validate_options


ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).strftime(ISO_FORMAT)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_active(self) -> bool:
        return self in {JobStatus.QUEUED, JobStatus.RUNNING}


@dataclass(slots=True)
class JobRecord:
    job_id: str
    status: JobStatus
    options: dict[str, object] = field(default_factory=dict)
    submitted_at: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    total: int | None = None
    converted: int = 0
    skipped: int = 0
    failed: int = 0
    cancel_requested: bool = False
    summary: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def processed(self) -> int:
        return self.converted + self.skipped + self.failed

    def to_payload(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "options": dict(self.options),
            "submitted_at": self.submitted_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "total": self.total,
            "converted": self.converted,
            "skipped": self.skipped,
            "failed": self.failed,
            "processed": self.processed,
            "cancel_requested": self.cancel_requested,
            "summary": self.summary,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass(slots=True)
class JobHandle:
    record: JobRecord
    options: ConversionOptions
    cancel_event: threading.Event
    events: list[ConversionProgress] = field(default_factory=list)
    dropped_events: int = 0
    future: Future[RunResult | None] | None = None


class JobManager:
    """Runs folder conversions in the background and tracks their progress."""

    def __init__(self, config: AppConfig, service: ConversionService) -> None:
        self._config = config
        self._service = service
        pool_size = config.runtime.jobs.worker_pool_size
        if pool_size <= 0:
            pool_size = min(4, max(1, os.cpu_count() or 1))
        self._max_events = max(1, config.runtime.jobs.max_events)
        self._executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="job-worker")
        self._jobs: dict[str, JobHandle] = {}
        self._lock = threading.Lock()

    def submit(self, options: ConversionOptions) -> JobRecord:
        validate_options(options)
        job_id = generate_run_id("job")
        record = JobRecord(
            job_id=job_id,
            status=JobStatus.QUEUED,
            options=options.as_dict(),
            submitted_at=_iso(_utc_now()),
        )
        handle = JobHandle(record=record, options=options, cancel_event=threading.Event())
        with self._lock:
            self._jobs[job_id] = handle
            handle.future = self._executor.submit(self._run_job, handle)
            return self._snapshot(record)

    def _run_job(self, handle: JobHandle) -> RunResult | None:
        job_id = handle.record.job_id
        self._update(job_id, status=JobStatus.RUNNING, started_at=_iso(_utc_now()))

        def _progress(event: ConversionProgress) -> None:
            self._record_event(job_id, event)

        try:
            result = self._service.convert_folder(
                handle.options,
                _progress,
                handle.cancel_event,
                run_id=job_id,
            )
        except Exception as exc:
            self._update(
                job_id,
                status=JobStatus.FAILED,
                finished_at=_iso(_utc_now()),
                error_code=str(getattr(exc, "code", "RUN_ERROR")),
                error_message=str(exc) or type(exc).__name__,
            )
            return None

        if isinstance(result, CancelledOutcome):
            self._update(
                job_id,
                status=JobStatus.CANCELED,
                finished_at=_iso(result.cancelled_at),
                total=result.total,
                summary=result.as_dict(),
            )
        else:
            self._update(
                job_id,
                status=JobStatus.SUCCEEDED,
                finished_at=_iso(result.completed_at),
                total=result.total,
                summary=result.as_dict(),
                counts=result,
            )
        return result

    def _record_event(self, job_id: str, event: ConversionProgress) -> None:
        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                return
            handle.events.append(event)
            overflow = len(handle.events) - self._max_events
            if overflow > 0:
                del handle.events[:overflow]
                handle.dropped_events += overflow
            record = handle.record
            if event.state is ConversionState.SUCCEEDED:
                record.converted += 1
            elif event.state is ConversionState.SKIPPED:
                record.skipped += 1
            elif event.state is ConversionState.FAILED:
                record.failed += 1

    def _update(
        self,
        job_id: str,
        *,
        status: JobStatus,
        started_at: str | None = None,
        finished_at: str | None = None,
        total: int | None = None,
        summary: dict[str, Any] | None = None,
        counts: ConversionSummary | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                return
            record = handle.record
            record.status = status
            if started_at:
                record.started_at = started_at
            if finished_at:
                record.finished_at = finished_at
            if total is not None:
                record.total = total
            if summary is not None:
                record.summary = summary
            if counts is not None:
                record.converted = counts.converted
                record.skipped = counts.skipped
                record.failed = counts.failed
            if error_code is not None:
                record.error_code = error_code
            if error_message is not None:
                record.error_message = error_message

    def cancel(self, job_id: str) -> bool:
        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None or not handle.record.status.is_active:
                return False
            handle.record.cancel_requested = True
            handle.cancel_event.set()
            return True

    def get_status(self, job_id: str) -> JobRecord | None:
        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                return None
            return self._snapshot(handle.record)

    def events(self, job_id: str, since: int = 0) -> tuple[list[ConversionProgress], int] | None:
        """Return events after cursor *since* and the cursor to pass next time.

        Events older than the buffer limit are dropped and cannot be replayed.
        """

        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                return None
            start = max(0, since - handle.dropped_events)
            events = handle.events[start:]
            return events, handle.dropped_events + len(handle.events)

    def wait(self, job_id: str, timeout: float | None = None) -> JobRecord | None:
        with self._lock:
            handle = self._jobs.get(job_id)
        if handle is None:
            return None
        if handle.future is not None:
            handle.future.result(timeout=timeout)
        return self.get_status(job_id)

    def list_jobs(self, limit: int = 50) -> list[dict[str, Any]]:
        with self._lock:
            records = [handle.record.to_payload() for handle in self._jobs.values()]
        if limit <= 0:
            return records
        return records[-limit:]

    def shutdown(self) -> None:
        with self._lock:
            handles = list(self._jobs.values())
        for handle in handles:
            if handle.record.status.is_active:
                handle.cancel_event.set()
        self._executor.shutdown(wait=False)

    @staticmethod
    def _snapshot(record: JobRecord) -> JobRecord:
        return replace(record, options=dict(record.options))


__all__ = [
    "JobHandle",
    "JobManager",
    "JobRecord",
    "JobStatus",
]

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from ..models import ConversionProgress


class JobRequest(BaseModel):
    input_folder: str
    output_folder: str
    quality: int | None = None
    overwrite_existing: bool | None = None
    include_subfolders: bool | None = None
    max_width: int | None = None
    max_height: int | None = None


class ProgressEvent(BaseModel):
    input_file_name: str
    output_file_name: str
    state: str
    message: str

    @classmethod
    def from_progress(cls, event: ConversionProgress) -> ProgressEvent:
        return cls(**event.as_dict())


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    options: dict[str, Any]
    submitted_at: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    total: int | None = None
    converted: int = 0
    skipped: int = 0
    failed: int = 0
    processed: int = 0
    cancel_requested: bool = False
    summary: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    events: list[ProgressEvent] = []
    next_cursor: int = 0


class HealthStatus(BaseModel):
    status: str
    version: str


__all__ = ["HealthStatus", "JobRequest", "JobStatusResponse", "ProgressEvent"]

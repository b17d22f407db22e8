from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ...config import AppConfig
from ...jobs import JobManager, JobRecord
from ...validation import OptionsError
from ..dependencies import get_config, get_job_manager
from ..schemas import JobRequest, JobStatusResponse, ProgressEvent

router = APIRouter(prefix="/api/v1", tags=["jobs"])


@router.post("/jobs", summary="Start a folder conversion", status_code=202)
def submit_job(
    request: JobRequest,
    manager: JobManager = Depends(get_job_manager),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    try:
        options = config.build_options(
            request.input_folder,
            request.output_folder,
            quality=request.quality,
            overwrite_existing=request.overwrite_existing,
            include_subfolders=request.include_subfolders,
            max_width=request.max_width,
            max_height=request.max_height,
        )
        record = manager.submit(options)
    except OptionsError as exc:
        raise HTTPException(status_code=400, detail=exc.code) from exc
    return {
        "job_id": record.job_id,
        "status": record.status.value,
        "submitted_at": record.submitted_at,
    }


@router.get("/jobs", summary="List conversion jobs")
def list_jobs(
    limit: int = Query(50, ge=1, le=500),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    return {"jobs": manager.list_jobs(limit)}


@router.get("/jobs/{job_id}", summary="Retrieve job status and progress", response_model=JobStatusResponse)
def get_job(
    job_id: str,
    since: int = Query(0, ge=0, description="Event cursor returned by the previous poll"),
    manager: JobManager = Depends(get_job_manager),
) -> JobStatusResponse:
    record = manager.get_status(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="JOB_NOT_FOUND")
    return _serialize(record, manager, since)


@router.post("/jobs/{job_id}/cancel", summary="Cancel a queued or running job", response_model=JobStatusResponse)
def cancel_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> JobStatusResponse:
    if manager.get_status(job_id) is None:
        raise HTTPException(status_code=404, detail="JOB_NOT_FOUND")
    if not manager.cancel(job_id):
        raise HTTPException(status_code=409, detail="NOT_CANCELABLE")
    record = manager.get_status(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="JOB_NOT_FOUND")
    return _serialize(record, manager, 0)


def _serialize(record: JobRecord, manager: JobManager, since: int) -> JobStatusResponse:
    events, cursor = manager.events(record.job_id, since) or ([], since)
    return JobStatusResponse(
        **record.to_payload(),
        events=[ProgressEvent.from_progress(event) for event in events],
        next_cursor=cursor,
    )


__all__ = ["router"]

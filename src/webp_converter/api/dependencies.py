"""FastAPI dependency providers for application services."""

from __future__ import annotations

from fastapi import HTTPException, Request

from ..config import AppConfig
from ..jobs import JobManager


def get_config(request: Request) -> AppConfig:
    config = getattr(request.app.state, "config", None)
    if config is None:
        raise HTTPException(status_code=503, detail="CONFIG_UNAVAILABLE")
    return config


def get_job_manager(request: Request) -> JobManager:
    manager = getattr(request.app.state, "job_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="MANAGER_UNAVAILABLE")
    return manager


__all__ = ["get_config", "get_job_manager"]

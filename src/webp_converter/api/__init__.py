from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .. import __version__
from ..config import AppConfig, load_config
from ..core import ConversionService
from ..jobs import JobManager
from ..settings import Settings, get_settings
from .routers import health, jobs


def create_app(config: AppConfig | None = None, *, require_enabled: bool = True) -> FastAPI:
    config = config or _prepare_config(get_settings())
    if require_enabled and not config.runtime.enable_local_api:
        raise RuntimeError("Local API is disabled. Enable it via configuration or environment.")

    service = ConversionService(config)
    manager = JobManager(config, service)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        manager.shutdown()
        service.shutdown(wait=False)

    app = FastAPI(title="Local WebP Converter", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.service = service
    app.state.job_manager = manager

    app.include_router(health.router)
    app.include_router(jobs.router)
    return app


def _prepare_config(settings: Settings) -> AppConfig:
    config = load_config(settings.config_path)
    if settings.enable_local_api is not None:
        config.runtime.enable_local_api = settings.enable_local_api
    return config


__all__ = ["create_app"]

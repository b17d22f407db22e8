from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .models import ConversionOptions


CONFIG_FILE = Path("config.toml")


@dataclass(slots=True)
class DefaultsConfig:
    quality: int = 85
    include_subfolders: bool = True
    overwrite_existing: bool = False
    max_width: int | None = None
    max_height: int | None = None


@dataclass(slots=True)
class JobsConfig:
    worker_pool_size: int = 2
    max_events: int = 1000


@dataclass(slots=True)
class RuntimeConfig:
    log_dir: Path | None = None
    log_file: str = "log.jsonl"
    summary_csv: str = "summary.csv"
    worker_threads: int = 1
    enable_local_api: bool = False
    jobs: JobsConfig = field(default_factory=JobsConfig)

    @property
    def log_path(self) -> Path | None:
        if self.log_dir is None:
            return None
        return self.log_dir / self.log_file

    @property
    def summary_path(self) -> Path | None:
        if self.log_dir is None:
            return None
        return self.log_dir / self.summary_csv


@dataclass(slots=True)
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class AppConfig:
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    api: APIConfig = field(default_factory=APIConfig)

    def build_options(
        self,
        input_folder: str | Path,
        output_folder: str | Path,
        **overrides: Any,
    ) -> ConversionOptions:
        """Merge configured defaults with per-run overrides; ``None`` keeps the default."""

        values: dict[str, Any] = {
            "quality": self.defaults.quality,
            "include_subfolders": self.defaults.include_subfolders,
            "overwrite_existing": self.defaults.overwrite_existing,
            "max_width": self.defaults.max_width,
            "max_height": self.defaults.max_height,
        }
        for key, value in overrides.items():
            if key not in values:
                raise TypeError(f"Unknown conversion option: {key}")
            if value is not None:
                values[key] = value
        return ConversionOptions(input_folder=input_folder, output_folder=output_folder, **values)


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _optional_dimension(value: object) -> int | None:
    if value is None:
        return None
    number = int(value)  # type: ignore[arg-type]
    return number if number > 0 else None


def _build_defaults(data: Mapping[str, object] | None) -> DefaultsConfig:
    if not data:
        return DefaultsConfig()
    return DefaultsConfig(
        quality=int(data.get("quality", 85)),  # type: ignore[arg-type]
        include_subfolders=bool(data.get("include_subfolders", True)),
        overwrite_existing=bool(data.get("overwrite_existing", False)),
        max_width=_optional_dimension(data.get("max_width")),
        max_height=_optional_dimension(data.get("max_height")),
    )


def _build_jobs(data: Mapping[str, object] | None) -> JobsConfig:
    if not data:
        return JobsConfig()
    return JobsConfig(
        worker_pool_size=int(data.get("worker_pool_size", 2)),  # type: ignore[arg-type]
        max_events=int(data.get("max_events", 1000)),  # type: ignore[arg-type]
    )


def _build_runtime(data: Mapping[str, object] | None, jobs_data: Mapping[str, object] | None) -> RuntimeConfig:
    jobs = _build_jobs(jobs_data)
    if not data:
        return RuntimeConfig(jobs=jobs)
    log_dir = data.get("log_dir")
    return RuntimeConfig(
        log_dir=Path(str(log_dir)) if log_dir else None,
        log_file=str(data.get("log_file", "log.jsonl")),
        summary_csv=str(data.get("summary_csv", "summary.csv")),
        worker_threads=int(data.get("worker_threads", 1)),  # type: ignore[arg-type]
        enable_local_api=bool(data.get("enable_local_api", False)),
        jobs=jobs,
    )


def _build_api(data: Mapping[str, object] | None) -> APIConfig:
    if not data:
        return APIConfig()
    return APIConfig(host=str(data.get("host", "127.0.0.1")), port=int(data.get("port", 8000)))  # type: ignore[arg-type]


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object] | None:
    value = raw.get(name)
    return value if isinstance(value, Mapping) else None


def load_config(path: Path | None = None) -> AppConfig:
    path = path or CONFIG_FILE
    raw = _read_toml(path)
    return AppConfig(
        defaults=_build_defaults(_section(raw, "defaults")),
        runtime=_build_runtime(_section(raw, "runtime"), _section(raw, "jobs")),
        api=_build_api(_section(raw, "api")),
    )


def dump_config(config: AppConfig) -> str:
    payload = {
        "defaults": {
            "quality": config.defaults.quality,
            "include_subfolders": config.defaults.include_subfolders,
            "overwrite_existing": config.defaults.overwrite_existing,
            "max_width": config.defaults.max_width,
            "max_height": config.defaults.max_height,
        },
        "runtime": {
            "log_dir": str(config.runtime.log_dir) if config.runtime.log_dir else None,
            "log_file": config.runtime.log_file,
            "summary_csv": config.runtime.summary_csv,
            "worker_threads": config.runtime.worker_threads,
            "enable_local_api": config.runtime.enable_local_api,
        },
        "jobs": {
            "worker_pool_size": config.runtime.jobs.worker_pool_size,
            "max_events": config.runtime.jobs.max_events,
        },
        "api": {
            "host": config.api.host,
            "port": config.api.port,
        },
    }
    return json.dumps(payload, indent=2)

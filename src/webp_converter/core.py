from __future__ import annotations

import concurrent.futures
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Event
from typing import Callable

from .codec import convert_image
from .config import AppConfig
from .detection import DetectionError, detect_image_format
from .logging import RunLogEntry, RunLogger, append_summary_csv
from .models import (
    CancelledOutcome,
    ConversionOptions,
    ConversionProgress,
    ConversionState,
    ConversionSummary,
    ProgressSink,
    RunResult,
    _SummaryBuilder,
)
from .utils import OutputPaths, generate_run_id, iter_image_files, map_output_paths, run_sync
from .validation import validate_options

MESSAGE_SKIPPED = "already exists, skipped"
MESSAGE_PROCESSING = "converting"
MESSAGE_SUCCEEDED = "done"

ImageConverter = Callable[[Path, Path, ConversionOptions], None]


def _noop_sink(_: ConversionProgress) -> None:
    return None


@dataclass(slots=True)
class _RunContext:
    run_id: str
    options: ConversionOptions
    sink: ProgressSink
    cancellation: Event | None
    logger: RunLogger | None
    builder: _SummaryBuilder

    @property
    def cancelled(self) -> bool:
        return self.cancellation is not None and self.cancellation.is_set()


class ConversionService:
    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        converter: ImageConverter = convert_image,
    ) -> None:
        self._config = config or AppConfig()
        self._converter = converter
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, self._config.runtime.worker_threads),
            thread_name_prefix="webp-run",
        )

    @property
    def config(self) -> AppConfig:
        return self._config

    def __enter__(self) -> ConversionService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def convert_folder(
        self,
        options: ConversionOptions,
        progress: ProgressSink | None = None,
        cancellation: Event | None = None,
        *,
        run_id: str | None = None,
    ) -> RunResult:
        """Convert every supported image under ``options.input_folder``.

        Returns a :class:`ConversionSummary` on completion, or a
        :class:`CancelledOutcome` if *cancellation* was set before enumeration
        or between files. Options errors raise before anything is scanned;
        errors while listing files or creating the output root propagate.
        """

        validate_options(options)
        return self._run(options, progress, cancellation, run_id)

    def submit(
        self,
        options: ConversionOptions,
        progress: ProgressSink | None = None,
        cancellation: Event | None = None,
        *,
        run_id: str | None = None,
    ) -> concurrent.futures.Future[RunResult]:
        """Validate now, then run the folder pass on the service's worker pool."""

        validate_options(options)
        return self._executor.submit(self._run, options, progress, cancellation, run_id)

    async def convert_folder_async(
        self,
        options: ConversionOptions,
        progress: ProgressSink | None = None,
        cancellation: Event | None = None,
        *,
        run_id: str | None = None,
    ) -> RunResult:
        validate_options(options)
        return await run_sync(self._run, options, progress, cancellation, run_id)

    def _run(
        self,
        options: ConversionOptions,
        progress: ProgressSink | None,
        cancellation: Event | None,
        run_id: str | None,
    ) -> RunResult:
        context = _RunContext(
            run_id=run_id or generate_run_id(),
            options=options,
            sink=progress or _noop_sink,
            cancellation=cancellation,
            logger=self._build_logger(),
            builder=_SummaryBuilder(),
        )
        if context.cancelled:
            return context.builder.cancel(enumerated=False)

        files = list(iter_image_files(options.input_path, recursive=options.include_subfolders))
        context.builder.total = len(files)
        options.output_path.mkdir(parents=True, exist_ok=True)

        for source in files:
            if context.cancelled:
                return context.builder.cancel(enumerated=True)
            paths = map_output_paths(source, options.input_path, options.output_path)
            state = self._process_file(source, paths, context)
            context.builder.record(state)

        summary = context.builder.freeze()
        self._record_summary(context.run_id, summary)
        return summary

    def _process_file(self, source: Path, paths: OutputPaths, context: _RunContext) -> ConversionState:
        if paths.output_path.is_file() and not context.options.overwrite_existing:
            self._emit(context, paths, ConversionState.SKIPPED, MESSAGE_SKIPPED)
            self._log_file(context, source, paths, ConversionState.SKIPPED, MESSAGE_SKIPPED, 0.0)
            return ConversionState.SKIPPED

        self._emit(context, paths, ConversionState.PROCESSING, MESSAGE_PROCESSING)
        start = time.perf_counter()
        try:
            self._converter(source, paths.output_path, context.options)
        except Exception as exc:
            elapsed = (time.perf_counter() - start) * 1000
            message = str(exc) or type(exc).__name__
            self._emit(context, paths, ConversionState.FAILED, message)
            self._log_file(context, source, paths, ConversionState.FAILED, message, elapsed)
            return ConversionState.FAILED

        elapsed = (time.perf_counter() - start) * 1000
        self._emit(context, paths, ConversionState.SUCCEEDED, MESSAGE_SUCCEEDED)
        self._log_file(context, source, paths, ConversionState.SUCCEEDED, MESSAGE_SUCCEEDED, elapsed)
        return ConversionState.SUCCEEDED

    def _emit(
        self,
        context: _RunContext,
        paths: OutputPaths,
        state: ConversionState,
        message: str,
    ) -> None:
        event = ConversionProgress(
            input_file_name=paths.input_display,
            output_file_name=paths.output_display,
            state=state,
            message=message,
        )
        try:
            context.sink(event)
        except Exception as exc:
            # A failing sink must not change the file's outcome.
            if context.logger is not None:
                context.logger.append(
                    RunLogEntry(
                        run_id=context.run_id,
                        source=paths.input_display,
                        output=paths.output_display,
                        state="sink_error",
                        message=str(exc) or type(exc).__name__,
                    )
                )

    def _build_logger(self) -> RunLogger | None:
        log_path = self._config.runtime.log_path
        if log_path is None:
            return None
        return RunLogger(log_path)

    def _log_file(
        self,
        context: _RunContext,
        source: Path,
        paths: OutputPaths,
        state: ConversionState,
        message: str,
        elapsed_ms: float,
    ) -> None:
        if context.logger is None:
            return
        try:
            source_format: str | None = detect_image_format(source).value
        except DetectionError:
            source_format = None
        context.logger.append(
            RunLogEntry(
                run_id=context.run_id,
                source=str(source),
                output=str(paths.output_path),
                state=state.value,
                message=message,
                source_format=source_format,
                elapsed_ms=round(elapsed_ms, 3),
            )
        )

    def _record_summary(self, run_id: str, summary: ConversionSummary) -> None:
        summary_path = self._config.runtime.summary_path
        if summary_path is None:
            return
        append_summary_csv(summary_path, run_id, summary)


__all__ = [
    "CancelledOutcome",
    "ConversionService",
    "ConversionSummary",
    "ImageConverter",
    "MESSAGE_PROCESSING",
    "MESSAGE_SKIPPED",
    "MESSAGE_SUCCEEDED",
]

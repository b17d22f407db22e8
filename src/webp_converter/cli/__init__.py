from __future__ import annotations

import concurrent.futures
from pathlib import Path
from threading import Event

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import AppConfig, dump_config, load_config
from ..core import ConversionService
from ..models import (
    CancelledOutcome,
    ConversionOptions,
    ConversionProgress,
    ConversionState,
    ConversionSummary,
    RunResult,
)
from ..validation import MAX_QUALITY, MIN_QUALITY, OptionsError

console = Console()

app = typer.Typer(help="Batch-convert PNG/JPEG/BMP/TIFF images to WebP")

STATE_STYLES = {
    ConversionState.PROCESSING: "cyan",
    ConversionState.SUCCEEDED: "green",
    ConversionState.SKIPPED: "yellow",
    ConversionState.FAILED: "red",
}


def _load_config(path: Path | None) -> AppConfig:
    return load_config(path)


def _ask_yes_no(prompt: str, default_yes: bool) -> bool:
    answer = typer.prompt(prompt, default="", show_default=False)
    if not answer.strip():
        return default_yes
    return answer.strip().lower() == "y"


def _ask_optional_int(prompt: str, default: int | None) -> int | None:
    hint = f"default {default}" if default is not None else "blank for no limit"
    answer = typer.prompt(f"{prompt} ({hint})", default="", show_default=False)
    if not answer.strip():
        return default
    try:
        value = int(answer)
    except ValueError:
        value = 0
    if value > 0:
        return value
    if default is None:
        console.print("Invalid value, no limit will be applied.")
    else:
        console.print(f"Invalid value, using default {default}.")
    return default


def _ask_quality(default: int) -> int:
    answer = typer.prompt(f"WebP quality ({MIN_QUALITY}-{MAX_QUALITY}, default {default})", default="", show_default=False)
    if not answer.strip():
        return default
    try:
        quality = int(answer)
    except ValueError:
        quality = 0
    if MIN_QUALITY <= quality <= MAX_QUALITY:
        return quality
    console.print(f"Invalid quality, using default {default}.")
    return default


def _prompt_options(cfg: AppConfig, input_folder: Path | None) -> ConversionOptions:
    if input_folder is None:
        input_folder = Path(typer.prompt("Input folder"))
    output_answer = typer.prompt("Output folder (blank to use the input folder)", default="", show_default=False)
    output_folder = Path(output_answer) if output_answer.strip() else input_folder
    quality = _ask_quality(cfg.defaults.quality)
    subfolders_default = cfg.defaults.include_subfolders
    include_subfolders = _ask_yes_no(
        "Include subfolders? (Y/n)" if subfolders_default else "Include subfolders? (y/N)",
        default_yes=subfolders_default,
    )
    overwrite_default = cfg.defaults.overwrite_existing
    overwrite = _ask_yes_no(
        "Overwrite existing output files? (Y/n)" if overwrite_default else "Overwrite existing output files? (y/N)",
        default_yes=overwrite_default,
    )
    max_width = _ask_optional_int("Max width in pixels", cfg.defaults.max_width)
    max_height = _ask_optional_int("Max height in pixels", cfg.defaults.max_height)
    return ConversionOptions(
        input_folder=input_folder,
        output_folder=output_folder,
        quality=quality,
        overwrite_existing=overwrite,
        include_subfolders=include_subfolders,
        max_width=max_width,
        max_height=max_height,
    )


def print_progress(event: ConversionProgress) -> None:
    style = STATE_STYLES.get(event.state, "white")
    console.print(
        f"{escape(event.input_file_name)} -> {escape(event.output_file_name)}: "
        f"[{style}]{event.state.value}[/{style}] - {escape(event.message)}"
    )


def print_summary(summary: ConversionSummary) -> None:
    table = Table(title="Conversion summary")
    table.add_column("Total", justify="right")
    table.add_column("Converted", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Duration", justify="right")
    table.add_row(
        str(summary.total),
        str(summary.converted),
        str(summary.skipped),
        str(summary.failed),
        f"{summary.duration.total_seconds():.2f}s",
    )
    console.print(table)


def _wait_for(future: concurrent.futures.Future[RunResult]) -> RunResult:
    # Poll so Ctrl-C reaches the main thread while the worker runs.
    while True:
        try:
            return future.result(timeout=0.2)
        except concurrent.futures.TimeoutError:
            continue


@app.command()
def convert(
    input_folder: Path | None = typer.Argument(None, help="Folder containing source images"),
    output_folder: Path | None = typer.Argument(None, help="Folder receiving .webp files"),
    quality: int | None = typer.Option(None, "--quality", "-q", help="WebP quality (1-100)"),
    subfolders: bool | None = typer.Option(
        None, "--subfolders/--no-subfolders", help="Include subfolders (default from config)"
    ),
    overwrite: bool | None = typer.Option(
        None, "--overwrite/--no-overwrite", help="Overwrite existing .webp files (default from config)"
    ),
    max_width: int | None = typer.Option(None, "--max-width", help="Maximum output width in pixels"),
    max_height: int | None = typer.Option(None, "--max-height", help="Maximum output height in pixels"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Prompt for every option"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    if interactive or input_folder is None:
        options = _prompt_options(cfg, input_folder)
    else:
        options = cfg.build_options(
            input_folder,
            output_folder if output_folder is not None else input_folder,
            quality=quality,
            include_subfolders=subfolders,
            overwrite_existing=overwrite,
            max_width=max_width,
            max_height=max_height,
        )

    cancellation = Event()
    with ConversionService(cfg) as service:
        try:
            future = service.submit(options, print_progress, cancellation)
        except OptionsError as exc:
            console.print(f"[red]Invalid options[/red]: {exc.code} - {escape(str(exc))}")
            raise typer.Exit(1) from exc
        try:
            try:
                result = _wait_for(future)
            except KeyboardInterrupt:
                cancellation.set()
                console.print("[yellow]Cancelling after the current file...[/yellow]")
                result = future.result()
        except Exception as exc:
            console.print(f"[red]Conversion failed[/red]: {escape(str(exc))}")
            raise typer.Exit(1) from exc

    if isinstance(result, CancelledOutcome):
        console.print(f"[yellow]Cancelled[/yellow] after {result.processed} file(s).")
        raise typer.Exit(130)
    print_summary(result)


@app.command("show-config")
def show_config(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    console.print_json(dump_config(_load_config(config)))


@app.command()
def serve(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", help="Bind port"),
) -> None:
    import uvicorn

    from ..api import create_app

    cfg = _load_config(config)
    cfg.runtime.enable_local_api = True
    uvicorn.run(create_app(cfg), host=host or cfg.api.host, port=port or cfg.api.port)


if __name__ == "__main__":
    app()

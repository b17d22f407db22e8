from __future__ import annotations

import asyncio
import csv
import json
import threading
from pathlib import Path

import pytest
from PIL import Image

from webp_converter.config import AppConfig, RuntimeConfig
from webp_converter.core import MESSAGE_SKIPPED, ConversionService
from webp_converter.models import (
    CancelledOutcome,
    ConversionOptions,
    ConversionProgress,
    ConversionState,
    ConversionSummary,
)
from webp_converter.validation import InvalidInputError, InvalidOutputError, InvalidQualityError


def build_options(tmp_path: Path, **overrides: object) -> ConversionOptions:
    values: dict[str, object] = {
        "input_folder": tmp_path / "input",
        "output_folder": tmp_path / "output",
        "quality": 85,
    }
    values.update(overrides)
    return ConversionOptions(**values)  # type: ignore[arg-type]


def run(options: ConversionOptions, **kwargs: object) -> ConversionSummary:
    with ConversionService() as service:
        result = service.convert_folder(options, **kwargs)  # type: ignore[arg-type]
    assert isinstance(result, ConversionSummary)
    return result


def test_convert_single_png(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")
    summary = run(build_options(tmp_path))
    assert (summary.total, summary.converted, summary.skipped, summary.failed) == (1, 1, 0, 0)
    output = tmp_path / "output" / "test.webp"
    assert output.exists()
    with Image.open(output) as image:
        assert image.format == "WEBP"
        assert image.size == (100, 100)


def test_convert_all_supported_extensions(tmp_path: Path, make_image) -> None:
    for name in ("a.png", "b.jpg", "c.jpeg", "d.bmp", "e.tiff", "F.PNG"):
        make_image(tmp_path / "input" / name)
    (tmp_path / "input" / "notes.txt").write_text("ignore me", encoding="utf-8")
    summary = run(build_options(tmp_path))
    assert summary.total == 6
    assert summary.converted == 6
    for stem in ("a", "b", "c", "d", "e", "F"):
        assert (tmp_path / "output" / f"{stem}.webp").exists()


def test_subfolders_mirrored_when_included(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "root.png")
    make_image(tmp_path / "input" / "subfolder" / "nested.png")
    summary = run(build_options(tmp_path, include_subfolders=True))
    assert summary.total == 2
    assert summary.converted == 2
    assert (tmp_path / "output" / "root.webp").exists()
    assert (tmp_path / "output" / "subfolder" / "nested.webp").exists()


def test_subfolders_ignored_when_excluded(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "root.png")
    make_image(tmp_path / "input" / "subfolder" / "nested.png")
    summary = run(build_options(tmp_path, include_subfolders=False))
    assert summary.total == 1
    assert summary.converted == 1
    assert (tmp_path / "output" / "root.webp").exists()
    assert not (tmp_path / "output" / "subfolder" / "nested.webp").exists()


def test_existing_output_skipped_without_overwrite(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")
    existing = tmp_path / "output" / "test.webp"
    existing.parent.mkdir(parents=True)
    existing.write_bytes(b"existing")
    events: list[ConversionProgress] = []

    summary = run(build_options(tmp_path, overwrite_existing=False), progress=events.append)

    assert (summary.total, summary.converted, summary.skipped) == (1, 0, 1)
    assert existing.read_bytes() == b"existing"
    assert [event.state for event in events] == [ConversionState.SKIPPED]
    assert events[0].message == MESSAGE_SKIPPED


def test_existing_output_replaced_with_overwrite(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")
    existing = tmp_path / "output" / "test.webp"
    existing.parent.mkdir(parents=True)
    existing.write_bytes(b"existing")

    summary = run(build_options(tmp_path, overwrite_existing=True))

    assert (summary.total, summary.converted, summary.skipped) == (1, 1, 0)
    assert existing.read_bytes() != b"existing"
    with Image.open(existing) as image:
        assert image.format == "WEBP"


def test_max_width_preserves_aspect_ratio(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "large.png", size=(500, 300))
    summary = run(build_options(tmp_path, max_width=200))
    assert summary.converted == 1
    with Image.open(tmp_path / "output" / "large.webp") as image:
        assert image.size == (200, 120)


def test_max_height_resizes(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "tall.png", size=(300, 500))
    run(build_options(tmp_path, max_height=200))
    with Image.open(tmp_path / "output" / "tall.webp") as image:
        assert image.height <= 200
        assert image.size == (120, 200)


def test_small_images_never_upscaled(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "small.png", size=(150, 80))
    run(build_options(tmp_path, max_width=200, max_height=400))
    with Image.open(tmp_path / "output" / "small.webp") as image:
        assert image.size == (150, 80)


@pytest.mark.parametrize("quality", [0, -1, 101])
def test_invalid_quality_rejected_before_scanning(tmp_path: Path, make_image, quality: int) -> None:
    make_image(tmp_path / "input" / "test.png")
    with ConversionService() as service:
        with pytest.raises(InvalidQualityError):
            service.convert_folder(build_options(tmp_path, quality=quality))
    assert not (tmp_path / "output").exists()


def test_missing_input_folder_rejected(tmp_path: Path) -> None:
    with ConversionService() as service:
        with pytest.raises(InvalidInputError):
            service.convert_folder(build_options(tmp_path, input_folder=tmp_path / "missing"))


def test_blank_output_folder_rejected(tmp_path: Path) -> None:
    (tmp_path / "input").mkdir()
    with ConversionService() as service:
        with pytest.raises(InvalidOutputError):
            service.convert_folder(build_options(tmp_path, output_folder="   "))


def test_empty_folder_returns_zero_total(tmp_path: Path) -> None:
    (tmp_path / "input").mkdir()
    summary = run(build_options(tmp_path))
    assert summary.total == 0
    assert summary.converted == 0
    assert (tmp_path / "output").is_dir()


def test_cancelled_before_start_returns_outcome(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")
    cancel = threading.Event()
    cancel.set()
    events: list[ConversionProgress] = []
    with ConversionService() as service:
        result = service.convert_folder(build_options(tmp_path), events.append, cancel)
    assert isinstance(result, CancelledOutcome)
    assert result.processed == 0
    assert result.total is None
    assert events == []
    assert not (tmp_path / "output").exists()


def test_cancelled_between_files_keeps_finished_work(tmp_path: Path, make_image) -> None:
    for name in ("a.png", "b.png", "c.png"):
        make_image(tmp_path / "input" / name)
    cancel = threading.Event()
    events: list[ConversionProgress] = []

    def sink(event: ConversionProgress) -> None:
        events.append(event)
        if event.state is ConversionState.SUCCEEDED:
            cancel.set()

    with ConversionService() as service:
        result = service.convert_folder(build_options(tmp_path), sink, cancel)

    assert isinstance(result, CancelledOutcome)
    assert result.total == 3
    assert result.processed == 1
    assert [event.state for event in events] == [ConversionState.PROCESSING, ConversionState.SUCCEEDED]
    assert (tmp_path / "output" / "a.webp").exists()
    assert not (tmp_path / "output" / "b.webp").exists()


def test_progress_events_follow_state_machine(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "sub" / "nested.png")
    events: list[ConversionProgress] = []
    run(build_options(tmp_path), progress=events.append)
    assert events == [
        ConversionProgress("sub/nested.png", "sub/nested.webp", ConversionState.PROCESSING, "converting"),
        ConversionProgress("sub/nested.png", "sub/nested.webp", ConversionState.SUCCEEDED, "done"),
    ]


def test_corrupt_file_is_isolated(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "good.png")
    (tmp_path / "input" / "bad.png").write_bytes(b"not an image")
    events: list[ConversionProgress] = []

    summary = run(build_options(tmp_path), progress=events.append)

    assert (summary.total, summary.converted, summary.failed) == (2, 1, 1)
    failures = [event for event in events if event.state is ConversionState.FAILED]
    assert len(failures) == 1
    assert failures[0].input_file_name == "bad.png"
    assert "bad.png" in failures[0].message
    assert (tmp_path / "output" / "good.webp").exists()
    assert not (tmp_path / "output" / "bad.webp").exists()


def test_converter_errors_reported_verbatim(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")

    def broken(source: Path, destination: Path, options: ConversionOptions) -> None:
        raise OSError("disk full")

    events: list[ConversionProgress] = []
    with ConversionService(converter=broken) as service:
        summary = service.convert_folder(build_options(tmp_path), events.append)
    assert isinstance(summary, ConversionSummary)
    assert summary.failed == 1
    assert events[-1] == ConversionProgress("test.png", "test.webp", ConversionState.FAILED, "disk full")


def test_case_variants_counted_once(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "A.png")
    if (tmp_path / "input" / "a.png").exists():
        pytest.skip("file system is case-insensitive")
    make_image(tmp_path / "input" / "a.png", color="blue")
    summary = run(build_options(tmp_path))
    assert (summary.total, summary.converted) == (1, 1)
    assert (tmp_path / "output" / "A.webp").exists()
    assert not (tmp_path / "output" / "a.webp").exists()


def test_directory_at_output_path_is_not_skipped(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")
    (tmp_path / "output" / "test.webp").mkdir(parents=True)
    events: list[ConversionProgress] = []

    summary = run(build_options(tmp_path, overwrite_existing=False), progress=events.append)

    assert (summary.total, summary.skipped, summary.failed) == (1, 0, 1)
    assert [event.state for event in events] == [ConversionState.PROCESSING, ConversionState.FAILED]
    assert (tmp_path / "output" / "test.webp").is_dir()


def test_second_run_skips_everything(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "one.png")
    make_image(tmp_path / "input" / "nested" / "two.jpg")
    first = run(build_options(tmp_path))
    second = run(build_options(tmp_path))
    assert first.converted == 2
    assert second.skipped == first.converted
    assert second.converted == 0
    assert second.total == second.converted + second.skipped + second.failed


def test_failing_sink_does_not_abort_run(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "a.png")
    make_image(tmp_path / "input" / "b.png")

    def sink(event: ConversionProgress) -> None:
        raise RuntimeError("listener crashed")

    summary = run(build_options(tmp_path), progress=sink)
    assert summary.converted == 2


def test_summary_timings(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")
    summary = run(build_options(tmp_path))
    assert summary.completed_at >= summary.started_at
    assert summary.duration.total_seconds() >= 0
    assert summary.as_dict()["total"] == 1


def test_submit_returns_future(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")
    with ConversionService() as service:
        future = service.submit(build_options(tmp_path))
        result = future.result(timeout=30)
    assert isinstance(result, ConversionSummary)
    assert result.converted == 1


def test_submit_validates_synchronously(tmp_path: Path) -> None:
    (tmp_path / "input").mkdir()
    with ConversionService() as service:
        with pytest.raises(InvalidQualityError):
            service.submit(build_options(tmp_path, quality=101))


def test_convert_folder_async(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "test.png")
    with ConversionService() as service:
        result = asyncio.run(service.convert_folder_async(build_options(tmp_path)))
    assert isinstance(result, ConversionSummary)
    assert result.converted == 1


def test_run_log_and_summary_csv(tmp_path: Path, make_image) -> None:
    make_image(tmp_path / "input" / "good.png")
    (tmp_path / "input" / "bad.png").write_bytes(b"broken")
    config = AppConfig(runtime=RuntimeConfig(log_dir=tmp_path / "logs"))
    with ConversionService(config) as service:
        service.convert_folder(build_options(tmp_path), run_id="run-test")

    lines = (tmp_path / "logs" / "log.jsonl").read_text(encoding="utf-8").splitlines()
    entries = [json.loads(line) for line in lines]
    assert {entry["state"] for entry in entries} == {"succeeded", "failed"}
    assert all(entry["run_id"] == "run-test" for entry in entries)
    assert all(entry["source_format"] == "png" for entry in entries)

    with (tmp_path / "logs" / "summary.csv").open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    assert rows[0][0] == "run_id"
    assert rows[1][0] == "run-test"
    assert rows[1][3:7] == ["2", "1", "0", "1"]

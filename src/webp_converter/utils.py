from __future__ import annotations

import asyncio
import hashlib
import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, TypeVar

from .detection import OUTPUT_EXTENSION, is_supported_image

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class OutputPaths:
    input_display: str
    output_display: str
    output_path: Path


def generate_run_id(prefix: str = "run") -> str:
    epoch_ms = int(time.time() * 1000)
    random_bits = hashlib.sha256(os.urandom(16)).hexdigest()[:8]
    return f"{prefix}-{epoch_ms}-{random_bits}"


def iter_image_files(root: Path, *, recursive: bool = True) -> Iterator[Path]:
    """Yield supported images under *root*, sorted, each path at most once.

    Paths that differ only by case are treated as the same file.
    """

    base = root.absolute()
    candidates = base.rglob("*") if recursive else base.iterdir()
    seen: set[str] = set()
    for file_path in sorted(candidates):
        if not file_path.is_file() or not is_supported_image(file_path):
            continue
        key = str(file_path).casefold()
        if key in seen:
            continue
        seen.add(key)
        yield file_path


def map_output_paths(source: Path, input_root: Path, output_root: Path) -> OutputPaths:
    relative = source.absolute().relative_to(input_root.absolute())
    output_relative = relative.with_suffix(OUTPUT_EXTENSION)
    output_path = output_root / output_relative
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return OutputPaths(
        input_display=relative.as_posix(),
        output_display=output_relative.as_posix(),
        output_path=output_path,
    )


def atomic_write(path: Path, data: str, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, encoding=encoding) as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
    os.replace(tmp.name, path)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "wb", delete=False, dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        except BaseException:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    try:
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


async def run_sync(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Execute *func* in a worker thread and return the result."""

    return await asyncio.to_thread(func, *args, **kwargs)


__all__ = [
    "OutputPaths",
    "atomic_write",
    "atomic_write_bytes",
    "generate_run_id",
    "iter_image_files",
    "map_output_paths",
    "run_sync",
]

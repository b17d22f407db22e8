from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

ImageFactory = Callable[..., Path]


@pytest.fixture
def make_image() -> ImageFactory:
    def _make(path: Path, size: tuple[int, int] = (100, 100), mode: str = "RGB", color: object = "red") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new(mode, size, color).save(path)
        return path

    return _make

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from webp_converter.codec import (
    DecodeError,
    ImageConversionError,
    compute_target_size,
    convert_image,
    decode_image,
    encode_webp,
)
from webp_converter.models import ConversionOptions


def options(**overrides: object) -> ConversionOptions:
    values: dict[str, object] = {"input_folder": ".", "output_folder": "out"}
    values.update(overrides)
    return ConversionOptions(**values)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("size", "max_width", "max_height", "expected"),
    [
        ((500, 300), None, None, None),
        ((500, 300), 200, None, (200, 120)),
        ((300, 500), None, 200, (120, 200)),
        ((500, 300), 1000, 150, (250, 150)),
        ((100, 100), 200, None, None),
        ((100, 100), 100, 100, None),
        ((5000, 2), 100, None, (100, 1)),
    ],
)
def test_compute_target_size(size, max_width, max_height, expected) -> None:
    assert compute_target_size(size, max_width, max_height) == expected


def test_convert_image_writes_webp(tmp_path: Path, make_image) -> None:
    source = make_image(tmp_path / "source.bmp", size=(64, 32))
    destination = tmp_path / "out" / "source.webp"
    destination.parent.mkdir()
    convert_image(source, destination, options(quality=50))
    with Image.open(destination) as image:
        assert image.format == "WEBP"
        assert image.size == (64, 32)


def test_convert_image_keeps_alpha(tmp_path: Path, make_image) -> None:
    source = make_image(tmp_path / "alpha.png", mode="RGBA", color=(255, 0, 0, 128))
    destination = tmp_path / "alpha.webp"
    convert_image(source, destination, options())
    with Image.open(destination) as image:
        assert image.mode == "RGBA"


@pytest.mark.parametrize("mode", ["L", "P", "CMYK", "1"])
def test_encode_webp_handles_other_modes(mode: str) -> None:
    image = Image.new(mode, (10, 10))
    payload = encode_webp(image, 80)
    assert payload[:4] == b"RIFF"
    assert payload[8:12] == b"WEBP"


def test_lower_quality_produces_smaller_output(tmp_path: Path) -> None:
    image = Image.effect_noise((128, 128), 64).convert("RGB")
    assert len(encode_webp(image, 10)) < len(encode_webp(image, 95))


def test_decode_corrupt_file(tmp_path: Path) -> None:
    source = tmp_path / "broken.jpg"
    source.write_bytes(b"\xff\xd8garbage")
    with pytest.raises(DecodeError) as exc:
        decode_image(source)
    assert isinstance(exc.value, ImageConversionError)
    assert "broken.jpg" in str(exc.value)


def test_decode_missing_file(tmp_path: Path) -> None:
    with pytest.raises(DecodeError):
        decode_image(tmp_path / "missing.png")


def test_failed_decode_leaves_no_output(tmp_path: Path) -> None:
    source = tmp_path / "broken.png"
    source.write_bytes(b"nope")
    destination = tmp_path / "broken.webp"
    with pytest.raises(DecodeError):
        convert_image(source, destination, options())
    assert list(tmp_path.iterdir()) == [source]

"""Single-image decode, resize and WebP encode backed by Pillow."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .models import ConversionOptions
from .utils import atomic_write_bytes

# Pillow's default WebP method; 0 is fastest, 6 is slowest.
WEBP_METHOD = 4


class ImageConversionError(RuntimeError):
    code = "CONVERSION_FAILED"


class DecodeError(ImageConversionError):
    code = "DECODE_FAILED"


class EncodeError(ImageConversionError):
    code = "ENCODE_FAILED"


class WriteError(ImageConversionError):
    code = "WRITE_FAILED"


def compute_target_size(
    size: tuple[int, int],
    max_width: int | None,
    max_height: int | None,
) -> tuple[int, int] | None:
    """Return the downscaled size, or ``None`` when the image already fits."""

    if max_width is None and max_height is None:
        return None
    width, height = size
    bound_w = max_width if max_width is not None else width
    bound_h = max_height if max_height is not None else height
    ratio = min(bound_w / width, bound_h / height)
    if ratio >= 1:
        return None
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def decode_image(source: Path) -> Image.Image:
    try:
        with Image.open(source) as handle:
            handle.load()
            return handle.copy()
    except FileNotFoundError as exc:
        raise DecodeError(f"Source file does not exist: {source.name}") from exc
    except UnidentifiedImageError as exc:
        raise DecodeError(f"Unsupported or corrupt image: {source.name}") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(f"Failed to decode {source.name}: {exc}") from exc


def resize_image(image: Image.Image, options: ConversionOptions) -> Image.Image:
    target = compute_target_size(image.size, options.max_width, options.max_height)
    if target is None:
        return image
    return image.resize(target, Image.Resampling.LANCZOS)


def _prepare_mode(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "RGBA"):
        return image
    if image.mode in ("LA", "PA") or "transparency" in image.info:
        return image.convert("RGBA")
    return image.convert("RGB")


def encode_webp(image: Image.Image, quality: int) -> bytes:
    buffer = BytesIO()
    try:
        _prepare_mode(image).save(buffer, format="WEBP", quality=quality, method=WEBP_METHOD)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"Failed to encode WebP: {exc}") from exc
    return buffer.getvalue()


def convert_image(source: Path, destination: Path, options: ConversionOptions) -> None:
    """Convert *source* to WebP at *destination*, replacing any existing file."""

    image = resize_image(decode_image(source), options)
    payload = encode_webp(image, options.quality)
    try:
        atomic_write_bytes(destination, payload)
    except OSError as exc:
        raise WriteError(f"Failed to write {destination.name}: {exc}") from exc


__all__ = [
    "DecodeError",
    "EncodeError",
    "ImageConversionError",
    "WEBP_METHOD",
    "WriteError",
    "compute_target_size",
    "convert_image",
    "decode_image",
    "encode_webp",
    "resize_image",
]

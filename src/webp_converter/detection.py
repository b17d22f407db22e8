from __future__ import annotations

from enum import Enum
from pathlib import Path


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    BMP = "bmp"
    TIFF = "tiff"


EXTENSION_MAP: dict[str, ImageFormat] = {
    ".png": ImageFormat.PNG,
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".bmp": ImageFormat.BMP,
    ".tiff": ImageFormat.TIFF,
}

SUPPORTED_EXTENSIONS: tuple[str, ...] = tuple(EXTENSION_MAP)

OUTPUT_EXTENSION = ".webp"


class DetectionError(RuntimeError):
    """Raised when a path does not carry a supported image extension."""


def is_supported_image(path: Path) -> bool:
    return path.suffix.lower() in EXTENSION_MAP


def detect_image_format(path: Path) -> ImageFormat:
    extension = path.suffix.lower()
    image_format = EXTENSION_MAP.get(extension)
    if image_format is None:
        raise DetectionError(f"Unsupported file extension: {extension or '<none>'}")
    return image_format


__all__ = [
    "DetectionError",
    "EXTENSION_MAP",
    "ImageFormat",
    "OUTPUT_EXTENSION",
    "SUPPORTED_EXTENSIONS",
    "detect_image_format",
    "is_supported_image",
]

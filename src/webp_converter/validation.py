from __future__ import annotations

from pathlib import Path

from .models import ConversionOptions

MIN_QUALITY = 1
MAX_QUALITY = 100


class OptionsError(ValueError):
    """Raised when a run's options are rejected before any work starts."""

    code = "INVALID_OPTIONS"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidInputError(OptionsError):
    code = "INVALID_INPUT"


class InvalidOutputError(OptionsError):
    code = "INVALID_OUTPUT"


class InvalidQualityError(OptionsError):
    code = "INVALID_QUALITY"


class InvalidDimensionError(OptionsError):
    code = "INVALID_DIMENSION"


def _is_blank(value: str | Path | None) -> bool:
    return value is None or not str(value).strip()


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_options(options: ConversionOptions) -> None:
    if _is_blank(options.input_folder) or not Path(options.input_folder).is_dir():
        raise InvalidInputError(f"Input folder does not exist: {options.input_folder}")
    if _is_blank(options.output_folder):
        raise InvalidOutputError("Output folder must not be blank")
    quality = options.quality
    if isinstance(quality, bool) or not isinstance(quality, int) or not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidQualityError(
            f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality!r}"
        )
    for name in ("max_width", "max_height"):
        value = getattr(options, name)
        if value is not None and not _is_positive_int(value):
            raise InvalidDimensionError(f"{name} must be a positive integer, got {value!r}")


__all__ = [
    "InvalidDimensionError",
    "InvalidInputError",
    "InvalidOutputError",
    "InvalidQualityError",
    "MAX_QUALITY",
    "MIN_QUALITY",
    "OptionsError",
    "validate_options",
]

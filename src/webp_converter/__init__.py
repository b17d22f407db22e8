"""Batch conversion of PNG/JPEG/BMP/TIFF folders to WebP."""

__version__ = "0.1.0"

from .config import AppConfig, load_config
from .core import ConversionService
from .models import (
    CancelledOutcome,
    ConversionOptions,
    ConversionProgress,
    ConversionState,
    ConversionSummary,
    RunResult,
)
from .validation import (
    InvalidDimensionError,
    InvalidInputError,
    InvalidOutputError,
    InvalidQualityError,
    OptionsError,
)

__all__ = [
    "AppConfig",
    "CancelledOutcome",
    "ConversionOptions",
    "ConversionProgress",
    "ConversionService",
    "ConversionState",
    "ConversionSummary",
    "InvalidDimensionError",
    "InvalidInputError",
    "InvalidOutputError",
    "InvalidQualityError",
    "OptionsError",
    "RunResult",
    "__version__",
    "load_config",
]

"""
config.py - Resolved compression settings.

Settings are built once, with every default applied, before any pipeline
runs. Pipelines read fields directly and never fall back to defaults
themselves.

JSON layout (all sections and keys optional):

    {
      "pdf":  {"strip_info": true, "strip_metadata": true,
               "remove_unused_fonts": true,
               "image_quality_min": 65, "image_quality_max": 80,
               "jpeg_quality": 70, "jpeg_max_length": 2000,
               "cmyk_profile": "USWebCoatedSWOP.icc"},
      "jpeg": {"quality": 70, "max_length": 3000, "exif": "orientation"},
      "png":  {"quality_min": 65, "quality_max": 80, "colors": 256},
      "gif":  {"quality_min": 0, "quality_max": 80, "colors": 256, "loop": 0},
      "webp": {"quality": 70, "lossless": false, "method": 4}
    }
"""

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

EXIF_POLICIES = ("all", "orientation", "none")

T = TypeVar("T")


def _check_quality(name: str, value: int):
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise ConfigError(f"{name} must be an integer in 0-100, got {value!r}")


def _check_quality_range(prefix: str, low: int, high: int):
    _check_quality(f"{prefix}quality_min", low)
    _check_quality(f"{prefix}quality_max", high)
    if low > high:
        raise ConfigError(f"{prefix}quality_min ({low}) exceeds {prefix}quality_max ({high})")


def _check_length(name: str, value: Optional[int], required: bool = False):
    if value is None and not required:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")


def _check_flag(name: str, value: bool):
    if not isinstance(value, bool):
        raise ConfigError(f"{name} must be true or false, got {value!r}")


def _check_path(name: str, value: Optional[str]):
    if value is not None and (not isinstance(value, str) or not value):
        raise ConfigError(f"{name} must be a file path, got {value!r}")


def _check_colors(value: int):
    if isinstance(value, bool) or not isinstance(value, int) or not 2 <= value <= 256:
        raise ConfigError(f"colors must be an integer in 2-256, got {value!r}")


@dataclass(frozen=True)
class PdfConfig:
    """Settings for the PDF content-recompression engine."""
    strip_info: bool = False
    strip_metadata: bool = False
    remove_unused_fonts: bool = False
    image_quality_min: int = 65     # Flate images, quantizer lower bound
    image_quality_max: int = 80     # Flate images, quantizer upper bound
    jpeg_quality: int = 70          # DCT images
    jpeg_max_length: int = 2000     # Long edge cap for DCT images, in pixels
    cmyk_profile: Optional[str] = None  # ICC file for CMYK images without a profile

    def __post_init__(self):
        _check_flag("strip_info", self.strip_info)
        _check_flag("strip_metadata", self.strip_metadata)
        _check_flag("remove_unused_fonts", self.remove_unused_fonts)
        _check_quality_range("image_", self.image_quality_min, self.image_quality_max)
        _check_quality("jpeg_quality", self.jpeg_quality)
        _check_length("jpeg_max_length", self.jpeg_max_length, required=True)
        _check_path("cmyk_profile", self.cmyk_profile)


@dataclass(frozen=True)
class JpegConfig:
    """Settings for standalone JPEG files."""
    quality: int = 70
    max_length: Optional[int] = None
    exif: str = "orientation"
    cmyk_profile: Optional[str] = None

    def __post_init__(self):
        _check_quality("quality", self.quality)
        _check_length("max_length", self.max_length)
        if self.exif not in EXIF_POLICIES:
            raise ConfigError(f"exif must be one of {', '.join(EXIF_POLICIES)}, got {self.exif!r}")
        _check_path("cmyk_profile", self.cmyk_profile)


@dataclass(frozen=True)
class PngConfig:
    """Settings for standalone PNG files."""
    quality_min: int = 65
    quality_max: int = 80
    colors: int = 256
    max_length: Optional[int] = None

    def __post_init__(self):
        _check_quality_range("", self.quality_min, self.quality_max)
        _check_colors(self.colors)
        _check_length("max_length", self.max_length)


@dataclass(frozen=True)
class GifConfig:
    """Settings for standalone GIF files, still or animated."""
    quality_min: int = 0
    quality_max: int = 80
    colors: int = 256
    max_length: Optional[int] = None
    loop: Optional[int] = None      # None keeps the source loop count, 0 loops forever

    def __post_init__(self):
        _check_quality_range("", self.quality_min, self.quality_max)
        _check_colors(self.colors)
        _check_length("max_length", self.max_length)
        if self.loop is not None and (
            isinstance(self.loop, bool) or not isinstance(self.loop, int) or not 0 <= self.loop <= 65535
        ):
            raise ConfigError(f"loop must be an integer in 0-65535, got {self.loop!r}")


@dataclass(frozen=True)
class WebpConfig:
    """Settings for standalone WebP files, still or animated."""
    quality: int = 70
    lossless: bool = False
    method: int = 4                 # encoder effort, 0 (fast) to 6 (small)
    max_length: Optional[int] = None

    def __post_init__(self):
        _check_quality("quality", self.quality)
        _check_flag("lossless", self.lossless)
        if isinstance(self.method, bool) or not isinstance(self.method, int) or not 0 <= self.method <= 6:
            raise ConfigError(f"method must be an integer in 0-6, got {self.method!r}")
        _check_length("max_length", self.max_length)


@dataclass(frozen=True)
class Config:
    """Top-level configuration, one section per pipeline."""
    pdf: PdfConfig = field(default_factory=PdfConfig)
    jpeg: JpegConfig = field(default_factory=JpegConfig)
    png: PngConfig = field(default_factory=PngConfig)
    gif: GifConfig = field(default_factory=GifConfig)
    webp: WebpConfig = field(default_factory=WebpConfig)


def _build_section(cls: Type[T], name: str, raw: Any) -> T:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"Section '{name}' must be an object")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{name}': {', '.join(unknown)}")

    try:
        return cls(**raw)
    except ConfigError as e:
        raise ConfigError(f"Section '{name}': {e}") from e


def config_from_dict(raw: Dict[str, Any]) -> Config:
    """Build a resolved Config from a decoded JSON document."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be an object")

    unknown = sorted(set(raw) - {"pdf", "jpeg", "png", "gif", "webp"})
    if unknown:
        raise ConfigError(f"Unknown section(s): {', '.join(unknown)}")

    return Config(
        pdf=_build_section(PdfConfig, "pdf", raw.get("pdf")),
        jpeg=_build_section(JpegConfig, "jpeg", raw.get("jpeg")),
        png=_build_section(PngConfig, "png", raw.get("png")),
        gif=_build_section(GifConfig, "gif", raw.get("gif")),
        webp=_build_section(WebpConfig, "webp", raw.get("webp")),
    )


def _relative_to(config_path: Path, value: Optional[str]) -> Optional[str]:
    if value is None or Path(value).is_absolute():
        return value
    return str(config_path.parent / value)


def load_config(path: Optional[Path] = None) -> Config:
    """
    Load configuration from a JSON file.

    Args:
        path: JSON file, or None for built-in defaults

    Returns:
        Fully resolved Config
    """
    if path is None:
        return Config()

    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    config = config_from_dict(raw)

    # Profile paths are relative to the config file
    config = replace(
        config,
        pdf=replace(config.pdf, cmyk_profile=_relative_to(path, config.pdf.cmyk_profile)),
        jpeg=replace(config.jpeg, cmyk_profile=_relative_to(path, config.jpeg.cmyk_profile)),
    )
    logger.debug(f"Loaded config from {path}: {config}")
    return config

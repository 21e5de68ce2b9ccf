"""
compression.py - Image decode, normalization and re-encode primitives.

Supports:
- JPEG decode to RGB, grayscale or CMYK, normalized to sRGB via ICC
- Aspect-preserving bicubic downscale
- Baseline JPEG encode with a fixed encoder policy
- Palette quantization bounded by a min/max quality pair
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import imagequant
import numpy as np
from PIL import Image, ImageCms

from .exceptions import ImageDecodeError, RecompressError
from .profiles import default_cmyk_profile, gray_profile, profile_from_bytes, srgb_profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncoderPolicy:
    """JPEG encoder settings. Fixed so output size is reproducible."""
    progressive: bool = False   # single scan
    optimize: bool = True       # optimized Huffman tables
    smoothing: int = 0
    subsampling: int = 2        # 4:2:0 chroma subsampling


JPEG_POLICY = EncoderPolicy()


@dataclass
class DecodedImage:
    """A decoded raster in its native pixel format."""
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def pixel_format(self) -> str:
        return self.image.mode

    def to_rgb(self) -> Image.Image:
        raise NotImplementedError


class RgbImage(DecodedImage):
    def to_rgb(self) -> Image.Image:
        return self.image


class GrayImage(DecodedImage):
    def to_rgb(self) -> Image.Image:
        """Gamma 2.2 gray -> sRGB."""
        try:
            return ImageCms.profileToProfile(
                self.image,
                gray_profile(),
                srgb_profile(),
                renderingIntent=ImageCms.Intent.PERCEPTUAL,
                outputMode="RGB",
            )
        except ImageCms.PyCMSError as e:
            raise ImageDecodeError(f"Gray color transform failed: {e}") from e


@dataclass
class CmykImage(DecodedImage):
    icc_profile: Optional[bytes] = None

    def to_rgb(self) -> Image.Image:
        """CMYK -> sRGB, perceptual, using the image's profile when it has one."""
        source = profile_from_bytes(self.icc_profile) or default_cmyk_profile()
        try:
            return ImageCms.profileToProfile(
                self.image,
                source,
                srgb_profile(),
                renderingIntent=ImageCms.Intent.PERCEPTUAL,
                outputMode="RGB",
            )
        except ImageCms.PyCMSError as e:
            raise ImageDecodeError(f"CMYK color transform failed: {e}") from e


def decode_jpeg(
    data: bytes,
    icc_profile: Optional[bytes] = None,
    cmyk_fallback: Optional[bytes] = None
) -> DecodedImage:
    """
    Decode JPEG bytes.

    Args:
        data: JPEG stream
        icc_profile: Profile supplied by the container (overrides embedded)
        cmyk_fallback: Profile for CMYK data that carries none

    Returns:
        RgbImage, GrayImage or CmykImage

    Raises:
        ImageDecodeError: data is not a decodable JPEG
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Failed to decode JPEG image: {e}") from e

    if image.format != "JPEG":
        raise ImageDecodeError(f"Expected JPEG data, got {image.format}")

    logger.debug(f"decode_jpeg: {image.width}x{image.height} {image.mode}")

    if image.mode == "RGB":
        return RgbImage(image)
    if image.mode == "L":
        return GrayImage(image)
    if image.mode == "CMYK":
        profile = icc_profile or image.info.get("icc_profile") or cmyk_fallback
        return CmykImage(image, icc_profile=profile)

    raise ImageDecodeError(f"Unsupported JPEG pixel format: {image.mode}")


def scaled_size(width: int, height: int, max_length: int) -> Tuple[int, int]:
    """Size that fits max_length on the long edge, rounded to nearest."""
    longest = max(width, height)
    if longest <= max_length:
        return width, height
    ratio = max_length / longest
    return max(1, int(width * ratio + 0.5)), max(1, int(height * ratio + 0.5))


def downscale(image: np.ndarray, max_length: Optional[int]) -> np.ndarray:
    """
    Shrink image so neither side exceeds max_length. Never enlarges.

    Uses bicubic (Catmull-Rom class) resampling.
    """
    if not max_length:
        return image

    height, width = image.shape[:2]
    new_width, new_height = scaled_size(width, height, max_length)
    if (new_width, new_height) == (width, height):
        return image

    logger.debug(f"downscale: {width}x{height} -> {new_width}x{new_height}")
    return cv2.resize(image, (new_width, new_height), interpolation=cv2.INTER_CUBIC)


def encode_jpeg(
    image: np.ndarray,
    quality: int,
    policy: EncoderPolicy = JPEG_POLICY,
    exif: Optional[bytes] = None
) -> bytes:
    """
    Encode an RGB array as baseline JPEG.

    Returns:
        JPEG bytes
    """
    img = Image.fromarray(np.ascontiguousarray(image))
    if img.mode != "RGB":
        img = img.convert("RGB")

    options = dict(
        format="JPEG",
        quality=quality,
        optimize=policy.optimize,
        progressive=policy.progressive,
        smooth=policy.smoothing,
        subsampling=policy.subsampling,
    )
    if exif:
        options["exif"] = exif

    buffer = io.BytesIO()
    try:
        img.save(buffer, **options)
    except (OSError, ValueError) as e:
        raise RecompressError(f"JPEG encoder rejected image: {e}") from e

    return buffer.getvalue()


def expand_to_rgba(samples: bytes, width: int, height: int, channels: int) -> np.ndarray:
    """
    Turn packed 8-bit RGB or gray samples into an opaque RGBA array.

    Gray is replicated into R, G and B.
    """
    expected = width * height * channels
    if len(samples) < expected:
        raise ImageDecodeError(
            f"Image data too short: {len(samples)} bytes for {width}x{height}x{channels}"
        )

    pixels = np.frombuffer(samples, dtype=np.uint8, count=expected).reshape(height, width, channels)
    rgba = np.empty((height, width, 4), dtype=np.uint8)
    rgba[:, :, :3] = pixels
    rgba[:, :, 3] = 255
    return rgba


def quantize(
    rgba: np.ndarray,
    quality_min: int,
    quality_max: int,
    max_colors: int = 256
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Reduce an RGBA array to a palette.

    Args:
        rgba: (height, width, 4) uint8
        quality_min: Fail rather than go below this quality (0-100)
        quality_max: Use the fewest colors that reach this quality (0-100)
        max_colors: Palette size limit

    Returns:
        (palette as (n, 4) uint8, indices as (height, width) uint8)
    """
    height, width = rgba.shape[:2]
    try:
        indices, palette = imagequant.quantize_raw_rgba_bytes(
            np.ascontiguousarray(rgba).tobytes(),
            width,
            height,
            max_colors=max_colors,
            min_quality=quality_min,
            max_quality=quality_max,
        )
    except (RuntimeError, ValueError) as e:
        raise RecompressError(
            f"Quantization failed (quality {quality_min}-{quality_max}): {e}"
        ) from e

    palette = np.frombuffer(bytes(palette), dtype=np.uint8).reshape(-1, 4)
    indices = np.frombuffer(bytes(indices), dtype=np.uint8).reshape(height, width)

    # the binding pads the palette to 256 entries
    palette = palette[: int(indices.max()) + 1]
    logger.debug(f"quantize: {width}x{height} -> {len(palette)} colors")
    return palette, indices


def render_palette(palette: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Map palette indices back to an RGBA array."""
    return palette[indices]

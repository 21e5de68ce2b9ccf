"""
formats.py - Standalone JPEG, PNG, GIF and WebP compression.

JPEG files go through the same decode / sRGB / downscale / encode path as
JPEG images inside PDFs, plus an EXIF policy:
- "all":         keep the original EXIF block
- "orientation": keep only the Orientation tag
- "none":        apply the orientation to the pixels and drop EXIF

PNG files are quantized to a palette and written as optimized PNG.

GIF and WebP files, still or animated, are decoded frame by frame to RGBA,
optionally downscaled and written back: GIF frames through the palette
quantizer, WebP frames through the WebP encoder at the configured quality.
"""

import io
import logging
from dataclasses import dataclass
from typing import List

import numpy as np
from PIL import Image, ImageSequence

from .compression import JPEG_POLICY, decode_jpeg, downscale, encode_jpeg, quantize
from .config import GifConfig, JpegConfig, PngConfig, WebpConfig
from .exceptions import ImageDecodeError, RecompressError
from .profiles import load_profile_file

logger = logging.getLogger(__name__)

ORIENTATION_TAG = 0x0112

# EXIF orientation -> transpose that makes the image upright
ORIENTATION_TRANSPOSE = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


@dataclass
class Frame:
    """One decoded animation frame."""
    pixels: np.ndarray      # (height, width, 4) RGBA
    duration: int           # milliseconds


def _open_image(data: bytes, kind: str) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Failed to decode {kind} image: {e}") from e
    return image


def _read_frames(image: Image.Image, kind: str) -> List[Frame]:
    """Every frame, composited, as RGBA."""
    frames = []
    try:
        for frame in ImageSequence.Iterator(image):
            frames.append(Frame(
                pixels=np.asarray(frame.convert("RGBA")),
                duration=int(frame.info.get("duration", 0)),
            ))
    except (OSError, SyntaxError, ValueError, EOFError) as e:
        raise ImageDecodeError(f"Failed to decode {kind} frame {len(frames)}: {e}") from e

    if not frames:
        raise ImageDecodeError(f"No frames found in {kind} image")
    return frames

def compress_jpeg_bytes(data: bytes, config: JpegConfig) -> bytes:
    """Recompress a JPEG file."""
    cmyk_fallback = load_profile_file(config.cmyk_profile) if config.cmyk_profile else None
    decoded = decode_jpeg(data, cmyk_fallback=cmyk_fallback)

    source_exif = decoded.image.getexif()
    orientation = source_exif.get(ORIENTATION_TAG)
    rgb = decoded.to_rgb()

    exif = None
    if config.exif == "all":
        exif = decoded.image.info.get("exif")
    elif config.exif == "orientation":
        if orientation:
            kept = Image.Exif()
            kept[ORIENTATION_TAG] = orientation
            exif = kept.tobytes()
    else:
        method = ORIENTATION_TRANSPOSE.get(orientation)
        if method is not None:
            logger.debug(f"Applying EXIF orientation {orientation}")
            rgb = rgb.transpose(method)

    pixels = downscale(np.asarray(rgb), config.max_length)
    output = encode_jpeg(pixels, config.quality, JPEG_POLICY, exif=exif)

    height, width = pixels.shape[:2]
    logger.info(
        f"JPEG: {decoded.pixel_format} {decoded.width}x{decoded.height} -> "
        f"RGB {width}x{height} | q={config.quality} | exif={config.exif}"
    )
    return output


def compress_png_bytes(data: bytes, config: PngConfig) -> bytes:
    """Quantize a PNG file to a palette and write it back optimized."""
    image = _open_image(data, "PNG")

    rgba = downscale(np.asarray(image.convert("RGBA")), config.max_length)
    height, width = rgba.shape[:2]

    palette, indices = quantize(rgba, config.quality_min, config.quality_max, config.colors)

    output_image = Image.frombytes("P", (width, height), indices.tobytes())
    output_image.putpalette(palette.tobytes(), rawmode="RGBA")

    buffer = io.BytesIO()
    try:
        output_image.save(buffer, format="PNG", optimize=True)
    except (OSError, ValueError) as e:
        raise RecompressError(f"PNG encoder failed: {e}") from e

    logger.info(
        f"PNG: {image.mode} {image.width}x{image.height} -> "
        f"{len(palette)} colors {width}x{height}"
    )
    return buffer.getvalue()


def _palette_frame(rgba: np.ndarray, config: GifConfig) -> Image.Image:
    """Quantize an RGBA frame into a GIF-ready "P" image."""
    palette, indices = quantize(rgba, config.quality_min, config.quality_max, config.colors)
    height, width = indices.shape

    # GIF has one fully transparent index and no partial alpha
    transparent = np.flatnonzero(palette[:, 3] < 128)
    if transparent.size:
        indices = np.where(np.isin(indices, transparent), transparent[0], indices).astype(np.uint8)

    image = Image.frombytes("P", (width, height), np.ascontiguousarray(indices).tobytes())
    image.putpalette(np.ascontiguousarray(palette[:, :3]).tobytes())
    if transparent.size:
        image.info["transparency"] = int(transparent[0])
    return image


def compress_gif_bytes(data: bytes, config: GifConfig) -> bytes:
    """Re-quantize every frame of a GIF and write it back optimized."""
    image = _open_image(data, "GIF")
    source_loop = image.info.get("loop")
    frames = _read_frames(image, "GIF")

    images = [_palette_frame(downscale(frame.pixels, config.max_length), config) for frame in frames]

    options = dict(
        format="GIF",
        save_all=True,
        append_images=images[1:],
        duration=[frame.duration for frame in frames],
        disposal=2,     # frames are full composites
        optimize=True,
    )
    loop = config.loop if config.loop is not None else source_loop
    if loop is not None:
        options["loop"] = loop

    buffer = io.BytesIO()
    try:
        images[0].save(buffer, **options)
    except (OSError, ValueError) as e:
        raise RecompressError(f"GIF encoder failed: {e}") from e

    logger.info(
        f"GIF: {len(frames)} frame(s) {image.width}x{image.height} -> "
        f"{images[0].width}x{images[0].height}, up to {config.colors} colors"
    )
    return buffer.getvalue()


def compress_webp_bytes(data: bytes, config: WebpConfig) -> bytes:
    """Re-encode a WebP file at the configured quality."""
    image = _open_image(data, "WebP")
    source_loop = image.info.get("loop", 0)
    frames = _read_frames(image, "WebP")

    # Drop the alpha plane when no frame uses it
    opaque = all(bool((frame.pixels[:, :, 3] == 255).all()) for frame in frames)
    channels = 3 if opaque else 4
    images = [
        Image.fromarray(np.ascontiguousarray(downscale(frame.pixels, config.max_length)[:, :, :channels]))
        for frame in frames
    ]

    options = dict(
        format="WEBP",
        quality=config.quality,
        lossless=config.lossless,
        method=config.method,
    )
    if len(images) > 1:
        options.update(
            save_all=True,
            append_images=images[1:],
            duration=[frame.duration for frame in frames],
            loop=source_loop,
        )

    buffer = io.BytesIO()
    try:
        images[0].save(buffer, **options)
    except (OSError, ValueError) as e:
        raise RecompressError(f"WebP encoder failed: {e}") from e

    logger.info(
        f"WebP: {len(frames)} frame(s) {image.width}x{image.height} -> "
        f"{images[0].width}x{images[0].height} {images[0].mode} | "
        f"q={config.quality} | lossless={config.lossless}"
    )
    return buffer.getvalue()

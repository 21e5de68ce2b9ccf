"""
profiles.py - ICC profiles used to normalize decoded images to sRGB.

Pillow's ImageCms can only create sRGB, Lab and XYZ profiles, so the gray
and CMYK source profiles are built here as minimal ICC v2 profiles:

- Gray: monitor class, single gamma 2.2 kTRC curve, D50 white point.
- CMYK: output class with a 16-bit A2B0 lookup table (CMYK -> Lab) sampled
  from a subtractive ink model. Used only when neither the PDF nor the
  JPEG carries a CMYK profile and no profile file is configured.
"""

import io
import logging
import struct
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
from PIL import ImageCms

from .exceptions import ConfigError, ImageDecodeError

logger = logging.getLogger(__name__)

GRAY_GAMMA = 2.2
CMYK_GRID_POINTS = 9

D50 = (0.9642, 1.0, 0.8249)

# Bradford-adapted sRGB -> XYZ (D50)
SRGB_TO_XYZ_D50 = np.array([
    [0.4360747, 0.3850649, 0.1430804],
    [0.2225045, 0.7168786, 0.0606169],
    [0.0139322, 0.0971045, 0.7141733],
])


def _s15f16(value: float) -> bytes:
    return struct.pack(">i", int(round(value * 65536)))


def _xyz_tag(xyz: Tuple[float, float, float]) -> bytes:
    return b"XYZ " + bytes(4) + b"".join(_s15f16(v) for v in xyz)


def _desc_tag(text: str) -> bytes:
    ascii_text = text.encode("ascii") + b"\0"
    return (
        b"desc" + bytes(4)
        + struct.pack(">I", len(ascii_text)) + ascii_text
        + struct.pack(">II", 0, 0)          # no Unicode description
        + struct.pack(">HB", 0, 0) + bytes(67)  # no ScriptCode description
    )


def _text_tag(text: str) -> bytes:
    return b"text" + bytes(4) + text.encode("ascii") + b"\0"


def _curve_tag(gamma: float) -> bytes:
    # u8Fixed8Number gamma
    return b"curv" + bytes(4) + struct.pack(">IH", 1, int(round(gamma * 256)))


def _build_profile(device_class: bytes, color_space: bytes, pcs: bytes,
                   tags: List[Tuple[bytes, bytes]]) -> bytes:
    """Assemble header, tag table and 4-byte aligned tag data."""
    table_size = 4 + 12 * len(tags)
    offset = 128 + table_size
    entries = []
    body = b""
    for signature, data in tags:
        padding = (-len(data)) % 4
        entries.append(struct.pack(">4sII", signature, offset, len(data)))
        body += data + bytes(padding)
        offset += len(data) + padding

    size = offset
    header = (
        struct.pack(">I", size)
        + bytes(4)                          # preferred CMM
        + struct.pack(">I", 0x02100000)     # version 2.1
        + device_class + color_space + pcs
        + struct.pack(">6H", 2024, 1, 1, 0, 0, 0)
        + b"acsp"
        + bytes(4 + 4 + 4 + 4 + 8)          # platform, flags, manufacturer, model, attributes
        + struct.pack(">I", 0)              # perceptual
        + b"".join(_s15f16(v) for v in D50)
        + bytes(4)                          # creator
        + bytes(44)                         # profile id and reserved
    )
    assert len(header) == 128
    return header + struct.pack(">I", len(tags)) + b"".join(entries) + body


def gray_profile_bytes(gamma: float = GRAY_GAMMA) -> bytes:
    """ICC v2 gray profile with a pure gamma tone curve."""
    return _build_profile(b"mntr", b"GRAY", b"XYZ ", [
        (b"desc", _desc_tag(f"Gray gamma {gamma:g}")),
        (b"cprt", _text_tag("No copyright, use freely")),
        (b"wtpt", _xyz_tag(D50)),
        (b"kTRC", _curve_tag(gamma)),
    ])


def _lab_from_cmyk(cmyk: np.ndarray) -> np.ndarray:
    """
    Map CMYK fractions (N, 4) to CIE Lab (N, 3) under D50.

    Inks are treated as subtractive filters over sRGB primaries.
    """
    c, m, y, k = (cmyk[:, i] for i in range(4))
    rgb = np.stack([(1 - c) * (1 - k), (1 - m) * (1 - k), (1 - y) * (1 - k)], axis=1)

    linear = np.where(rgb <= 0.04045, rgb / 12.92, ((rgb + 0.055) / 1.055) ** 2.4)
    xyz = linear @ SRGB_TO_XYZ_D50.T / np.array(D50)

    delta = 6 / 29
    f = np.where(xyz > delta ** 3, np.cbrt(xyz), xyz / (3 * delta ** 2) + 4 / 29)
    lab = np.empty_like(xyz)
    lab[:, 0] = 116 * f[:, 1] - 16
    lab[:, 1] = 500 * (f[:, 0] - f[:, 1])
    lab[:, 2] = 200 * (f[:, 1] - f[:, 2])
    return lab


def _lut16_tag(grid_points: int) -> bytes:
    """lut16Type A2B0: identity curves, CMYK grid -> Lab (ICC v2 encoding)."""
    axis = np.linspace(0.0, 1.0, grid_points)
    # First input channel varies slowest
    grid = np.stack(np.meshgrid(axis, axis, axis, axis, indexing="ij"), axis=-1).reshape(-1, 4)
    lab = _lab_from_cmyk(grid)

    encoded = np.empty_like(lab)
    encoded[:, 0] = lab[:, 0] * 65280 / 100
    encoded[:, 1:] = (lab[:, 1:] + 128) * 256
    clut = np.clip(np.round(encoded), 0, 65535).astype(">u2")

    identity_matrix = b"".join(_s15f16(v) for v in (1, 0, 0, 0, 1, 0, 0, 0, 1))
    identity_curve = struct.pack(">2H", 0, 65535)
    return (
        b"mft2" + bytes(4)
        + struct.pack(">BBBB", 4, 3, grid_points, 0)
        + identity_matrix
        + struct.pack(">HH", 2, 2)
        + identity_curve * 4
        + clut.tobytes()
        + identity_curve * 3
    )


def cmyk_profile_bytes(grid_points: int = CMYK_GRID_POINTS) -> bytes:
    """ICC v2 CMYK output profile for documents without their own."""
    return _build_profile(b"prtr", b"CMYK", b"Lab ", [
        (b"desc", _desc_tag("media_reducer default CMYK")),
        (b"cprt", _text_tag("No copyright, use freely")),
        (b"wtpt", _xyz_tag(D50)),
        (b"A2B0", _lut16_tag(grid_points)),
    ])


@lru_cache(maxsize=None)
def srgb_profile() -> ImageCms.ImageCmsProfile:
    return ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB"))


@lru_cache(maxsize=None)
def gray_profile() -> ImageCms.ImageCmsProfile:
    return ImageCms.ImageCmsProfile(io.BytesIO(gray_profile_bytes()))


@lru_cache(maxsize=None)
def default_cmyk_profile() -> ImageCms.ImageCmsProfile:
    return ImageCms.ImageCmsProfile(io.BytesIO(cmyk_profile_bytes()))


def load_profile_file(path: Path) -> bytes:
    """Read an ICC profile file configured by the user."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ConfigError(f"Cannot read ICC profile {path}: {e}") from e
    if len(data) < 128 or data[36:40] != b"acsp":
        raise ConfigError(f"Not an ICC profile: {path}")
    return data


def profile_from_bytes(data: Optional[bytes]) -> Optional[ImageCms.ImageCmsProfile]:
    """Open an embedded ICC profile, or None when there is none."""
    if not data:
        return None
    try:
        return ImageCms.ImageCmsProfile(io.BytesIO(data))
    except (OSError, ImageCms.PyCMSError) as e:
        raise ImageDecodeError(f"Invalid embedded ICC profile: {e}") from e

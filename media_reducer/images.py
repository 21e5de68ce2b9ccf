"""
images.py - Recompression of image XObjects inside a PDF.

Every stream with /Subtype /Image is dispatched on its filter and color
space:

- DCTDecode: decode, normalize to sRGB, downscale, re-encode as JPEG
- FlateDecode with 8-bit DeviceRGB/DeviceGray: quantize, re-deflate
- anything else: left byte-identical

All replacements are computed before any is committed, so a failure leaves
the graph untouched by this pass.
"""

import logging
import zlib
from dataclasses import dataclass
from typing import List, Optional, Set

import numpy as np
import pikepdf
from pikepdf import Array, Name, Stream

from .compression import (
    JPEG_POLICY,
    decode_jpeg,
    downscale,
    encode_jpeg,
    expand_to_rgba,
    quantize,
    render_palette,
)
from .config import PdfConfig
from .document import DocumentGraph, ObjectId, StreamReplacement
from .exceptions import ImageDecodeError, ParseError
from .profiles import load_profile_file

logger = logging.getLogger(__name__)

CASE_DCT = "dct"
CASE_FLATE = "flate"

FLATE_CHANNELS = {"/DeviceRGB": 3, "/DeviceGray": 1}

# Entries independent of the pixel encoding, kept on a rewritten image
CARRIED_KEYS = (
    "/SMask",
    "/OC",
    "/StructParent",
    "/Intent",
    "/Metadata",
    "/Alternates",
    "/OPI",
    "/ID",
    "/Name",
)


@dataclass
class ImageDescriptor:
    """Encoding facts of an image stream, read fresh from its dictionary."""
    object_id: ObjectId
    filter: Optional[str]
    color_space: Optional[str]
    width: Optional[int]
    height: Optional[int]
    bits_per_component: Optional[int]
    image_mask: bool = False
    has_decode: bool = False

    @classmethod
    def from_stream(cls, object_id: ObjectId, stream: Stream) -> "ImageDescriptor":
        return cls(
            object_id=object_id,
            filter=_single_filter(stream.get(Name.Filter)),
            color_space=_name_or_none(stream.get(Name.ColorSpace)),
            width=_int_or_none(stream.get(Name.Width)),
            height=_int_or_none(stream.get(Name.Height)),
            bits_per_component=_int_or_none(stream.get(Name.BitsPerComponent)),
            image_mask=bool(stream.get(Name.ImageMask, False)),
            has_decode=Name.Decode in stream,
        )

    @property
    def case(self) -> Optional[str]:
        """CASE_DCT, CASE_FLATE, or None for pass-through."""
        if self.image_mask or self.has_decode:
            return None
        if self.filter == "/DCTDecode":
            return CASE_DCT
        if (
            self.filter == "/FlateDecode"
            and self.color_space in FLATE_CHANNELS
            and self.bits_per_component == 8
        ):
            return CASE_FLATE
        return None

    def require_size(self):
        """Width and Height must be positive for an image to be rewritten."""
        for key, value in (("Width", self.width), ("Height", self.height)):
            if value is None or value <= 0:
                raise ParseError(f"Image {self.object_id}: missing or invalid /{key}")


@dataclass
class ImagePassReport:
    recompressed: int = 0
    skipped: int = 0
    bytes_before: int = 0
    bytes_after: int = 0


def _single_filter(value) -> Optional[str]:
    """Filter name, unwrapping one-element arrays. Chains yield None."""
    if isinstance(value, Array):
        if len(value) != 1:
            return None
        value = value[0]
    return _name_or_none(value)


def _name_or_none(value) -> Optional[str]:
    if isinstance(value, Name):
        return str(value)
    return None


def _int_or_none(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _iccbased_profile(stream: Stream) -> Optional[bytes]:
    """Profile bytes of an [/ICCBased <stream>] color space."""
    cs = stream.get(Name.ColorSpace)
    if isinstance(cs, Array) and len(cs) == 2 and cs[0] == Name.ICCBased:
        try:
            return cs[1].read_bytes()
        except pikepdf.PdfError as e:
            raise ImageDecodeError(f"Unreadable ICC profile stream: {e}") from e
    return None


def _mask_ids(graph: DocumentGraph) -> Set[ObjectId]:
    """Ids of streams used as /SMask or /Mask by another image."""
    masks = set()
    for _, obj in graph.objects():
        if not isinstance(obj, Stream) or obj.get(Name.Subtype) != Name.Image:
            continue
        for key in (Name.SMask, Name.Mask):
            target = obj.get(key)
            if isinstance(target, Stream) and target.is_indirect:
                masks.add(target.objgen)
    return masks


def _image_entries(stream: Stream, width: int, height: int) -> dict:
    """
    Dictionary of a rewritten image.

    Layer, structure, intent and mask entries are carried over. A color key
    /Mask array is dropped, its ranges refer to the old color space.
    """
    entries = {
        "/Type": Name.XObject,
        "/Subtype": Name.Image,
        "/Width": width,
        "/Height": height,
        "/ColorSpace": Name.DeviceRGB,
        "/BitsPerComponent": 8,
        "/Interpolate": True,
    }
    for key in CARRIED_KEYS:
        if key in stream:
            entries[key] = stream[key]
    if isinstance(stream.get("/Mask"), Stream):
        entries["/Mask"] = stream["/Mask"]
    return entries


class ImageRecompressor:
    """Builds replacements for every recompressible image in a document."""

    def __init__(self, config: PdfConfig):
        self.config = config
        self.skipped = 0
        self.cmyk_fallback = (
            load_profile_file(config.cmyk_profile) if config.cmyk_profile else None
        )

    def recompress_dct(self, descriptor: ImageDescriptor, stream: Stream) -> StreamReplacement:
        """Decode, normalize to sRGB, downscale and re-encode a JPEG image."""
        decoded = decode_jpeg(
            stream.read_raw_bytes(),
            icc_profile=_iccbased_profile(stream),
            cmyk_fallback=self.cmyk_fallback,
        )
        pixels = np.asarray(decoded.to_rgb())
        pixels = downscale(pixels, self.config.jpeg_max_length)

        # Dimensions come from the buffer, not from the scale ratio
        height, width = pixels.shape[:2]
        data = encode_jpeg(pixels, self.config.jpeg_quality, JPEG_POLICY)

        logger.debug(
            f"Image {descriptor.object_id}: {decoded.pixel_format} "
            f"{decoded.width}x{decoded.height} -> RGB {width}x{height}, "
            f"{len(data):,} bytes"
        )
        return StreamReplacement(
            descriptor.object_id, data, Name.DCTDecode,
            entries=_image_entries(stream, width, height),
        )

    def recompress_flate(self, descriptor: ImageDescriptor, stream: Stream) -> StreamReplacement:
        """Quantize a raw RGB/gray raster and deflate the result."""
        try:
            samples = stream.read_bytes()
        except pikepdf.PdfError as e:
            raise ImageDecodeError(f"Image {descriptor.object_id}: {e}") from e

        width, height = descriptor.width, descriptor.height
        rgba = expand_to_rgba(samples, width, height, FLATE_CHANNELS[descriptor.color_space])
        palette, indices = quantize(
            rgba, self.config.image_quality_min, self.config.image_quality_max
        )

        # Fully opaque input, so alpha carries nothing
        rgb = np.ascontiguousarray(render_palette(palette, indices)[:, :, :3])
        data = zlib.compress(rgb.tobytes(), level=9)

        logger.debug(
            f"Image {descriptor.object_id}: {descriptor.color_space} {width}x{height} "
            f"-> {len(palette)} colors, {len(data):,} bytes"
        )
        return StreamReplacement(
            descriptor.object_id, data, Name.FlateDecode,
            entries=_image_entries(stream, width, height),
        )

    def plan(self, graph: DocumentGraph) -> List[StreamReplacement]:
        """Compute replacements for every image. Does not mutate the graph."""
        masks = _mask_ids(graph)
        replacements = []
        skipped = 0

        for object_id, obj in graph.objects():
            if not isinstance(obj, Stream) or obj.get(Name.Subtype) != Name.Image:
                continue

            descriptor = ImageDescriptor.from_stream(object_id, obj)
            case = descriptor.case
            if case is None or object_id in masks:
                logger.debug(
                    f"Image {object_id}: passing through "
                    f"(filter={descriptor.filter}, colorspace={descriptor.color_space})"
                )
                skipped += 1
                continue

            descriptor.require_size()
            if case == CASE_DCT:
                replacements.append(self.recompress_dct(descriptor, obj))
            else:
                replacements.append(self.recompress_flate(descriptor, obj))

        self.skipped = skipped
        return replacements


def recompress_images(graph: DocumentGraph, config: PdfConfig) -> ImagePassReport:
    """
    Recompress every supported image stream in place.

    Raises:
        ImageDecodeError: an image could not be decoded (nothing is replaced)
        RecompressError: an encoder rejected its parameters
    """
    recompressor = ImageRecompressor(config)
    replacements = recompressor.plan(graph)

    report = ImagePassReport(recompressed=len(replacements), skipped=recompressor.skipped)
    for replacement in replacements:
        report.bytes_before += len(graph.get(replacement.object_id).read_raw_bytes())
        report.bytes_after += replacement.size
        graph.replace_stream(replacement)

    logger.info(
        f"Images: {report.recompressed} recompressed, {report.skipped} passed through, "
        f"{report.bytes_before:,} -> {report.bytes_after:,} bytes"
    )
    return report

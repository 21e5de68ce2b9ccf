from __future__ import annotations

import io
import zlib
from typing import Callable

import numpy as np
import pikepdf
import pytest
from PIL import Image
from pikepdf import Dictionary, Name, Stream

from media_reducer.document import DocumentGraph


def gradient(width: int, height: int, channels: int) -> np.ndarray:
    """Deterministic smooth test pattern."""
    y = np.arange(height)[:, None]
    x = np.arange(width)[None, :]
    planes = [
        lambda: x * 255 // max(width - 1, 1),
        lambda: y * 255 // max(height - 1, 1),
        lambda: (x + y) * 255 // max(width + height - 2, 1),
        lambda: (width - x) * 255 // max(width, 1),
    ]
    # one plane at a time keeps large patterns cheap
    pixels = np.empty((height, width, channels), dtype=np.uint8)
    for channel in range(channels):
        pixels[:, :, channel] = planes[channel]()
    return pixels


def encode_image(mode: str, width: int, height: int, fmt: str = "JPEG", **options) -> bytes:
    channels = {"L": 1, "RGB": 3, "CMYK": 4, "RGBA": 4}[mode]
    pixels = gradient(width, height, channels)
    if channels == 1:
        pixels = pixels[:, :, 0]
    image = Image.frombytes(mode, (width, height), np.ascontiguousarray(pixels).tobytes())
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **options)
    return buffer.getvalue()


@pytest.fixture()
def jpeg_factory() -> Callable[..., bytes]:
    def _create(mode: str = "RGB", width: int = 64, height: int = 48, **options) -> bytes:
        return encode_image(mode, width, height, "JPEG", quality=90, **options)

    return _create


@pytest.fixture()
def png_factory() -> Callable[..., bytes]:
    def _create(mode: str = "RGBA", width: int = 64, height: int = 48) -> bytes:
        return encode_image(mode, width, height, "PNG")

    return _create


@pytest.fixture()
def pdf():
    document = pikepdf.new()
    yield document
    document.close()


@pytest.fixture()
def add_page(pdf: pikepdf.Pdf) -> Callable[..., pikepdf.Dictionary]:
    """Append a page with optional fonts and XObjects; returns the page dict."""

    def _create(fonts: dict | None = None, xobjects: dict | None = None) -> pikepdf.Dictionary:
        pdf.add_blank_page(page_size=(200, 200))
        page = pdf.pages[-1].obj
        resources = Dictionary({})
        if fonts is not None:
            resources["/Font"] = Dictionary(fonts)
        if xobjects is not None:
            resources["/XObject"] = Dictionary(xobjects)
        page.Resources = resources
        return page

    return _create


@pytest.fixture()
def make_font(pdf: pikepdf.Pdf) -> Callable[..., pikepdf.Dictionary]:
    def _create(base: str = "Helvetica", **extra) -> pikepdf.Dictionary:
        font = Dictionary({
            "/Type": Name.Font,
            "/Subtype": Name.Type1,
            "/BaseFont": Name("/" + base),
        })
        for key, value in extra.items():
            font["/" + key] = value
        return pdf.make_indirect(font)

    return _create


@pytest.fixture()
def make_image(pdf: pikepdf.Pdf) -> Callable[..., pikepdf.Stream]:
    """Indirect image XObject with raw (already encoded) data."""

    def _create(
        data: bytes,
        width: int,
        height: int,
        filter: str | None = "/DCTDecode",
        colorspace="/DeviceRGB",
        bpc: int = 8,
        **extra,
    ) -> pikepdf.Stream:
        image = Stream(pdf, data)
        image["/Type"] = Name.XObject
        image["/Subtype"] = Name.Image
        image["/Width"] = width
        image["/Height"] = height
        image["/ColorSpace"] = Name(colorspace) if isinstance(colorspace, str) else colorspace
        image["/BitsPerComponent"] = bpc
        if filter is not None:
            image["/Filter"] = Name(filter)
        for key, value in extra.items():
            image["/" + key] = value
        return pdf.make_indirect(image)

    return _create


@pytest.fixture()
def flate_image(make_image) -> Callable[..., pikepdf.Stream]:
    def _create(mode: str = "RGB", width: int = 40, height: int = 30) -> pikepdf.Stream:
        channels = 3 if mode == "RGB" else 1
        pixels = gradient(width, height, channels)
        colorspace = "/DeviceRGB" if mode == "RGB" else "/DeviceGray"
        return make_image(
            zlib.compress(pixels.tobytes()), width, height,
            filter="/FlateDecode", colorspace=colorspace,
        )

    return _create


@pytest.fixture()
def pdf_bytes() -> Callable[[pikepdf.Pdf], bytes]:
    def _save(document: pikepdf.Pdf) -> bytes:
        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    return _save


@pytest.fixture()
def image_pdf(pdf, add_page, make_image, make_font, jpeg_factory, pdf_bytes) -> bytes:
    """One page with a JPEG image, a CCITT image and a used font; plus an orphan font."""
    photo = make_image(jpeg_factory("RGB", 120, 80), 120, 80)
    fax = make_image(b"\x00\x01\x02\x03fax", 8, 8, filter="/CCITTFaxDecode",
                     colorspace="/DeviceGray", bpc=1)
    used = make_font("Helvetica")
    orphan = make_font("Courier")
    add_page(fonts={"/F1": used}, xobjects={"/Im0": photo, "/Im1": fax})

    # reachable from the catalog but from no page
    pdf.Root.PieceInfo = Dictionary({"/Editor": Dictionary({"/Private": orphan})})

    pdf.docinfo["/Title"] = "Sample"
    pdf.Root.Metadata = pdf.make_indirect(Stream(pdf, b"<x:xmpmeta/>"))
    return pdf_bytes(pdf)



@pytest.fixture()
def reopen(pdf, pdf_bytes) -> Callable[[], DocumentGraph]:
    """Save the in-memory document and parse it back, as the engine sees files."""
    graphs = []

    def _reopen() -> DocumentGraph:
        graph = DocumentGraph.parse(pdf_bytes(pdf))
        graphs.append(graph)
        return graph

    yield _reopen
    for graph in graphs:
        graph.close()


def xobject_id(graph: DocumentGraph, name: str, page: int = 0):
    """Object id of a page XObject, looked up by resource name."""
    return graph.pdf.pages[page].Resources.XObject[name].objgen


def font_id(graph: DocumentGraph, name: str, page: int = 0):
    return graph.pdf.pages[page].Resources.Font[name].objgen


def animation_frames(width: int, height: int, count: int, mode: str = "RGBA") -> list:
    """Distinct frames: the gradient shifted sideways per frame."""
    base = gradient(width, height, 4 if mode == "RGBA" else 3)
    return [
        Image.fromarray(np.ascontiguousarray(np.roll(base, shift=index * 7, axis=1)))
        for index in range(count)
    ]


@pytest.fixture()
def gif_factory() -> Callable[..., bytes]:
    def _create(width: int = 48, height: int = 32, frames: int = 3, loop: int = 0) -> bytes:
        images = [image.convert("RGB").quantize(64) for image in animation_frames(width, height, frames)]
        buffer = io.BytesIO()
        images[0].save(buffer, format="GIF", save_all=True, append_images=images[1:],
                       duration=[80 + 20 * i for i in range(frames)], loop=loop)
        return buffer.getvalue()

    return _create


@pytest.fixture()
def webp_factory() -> Callable[..., bytes]:
    def _create(width: int = 64, height: int = 48, frames: int = 1, mode: str = "RGB") -> bytes:
        images = animation_frames(width, height, frames, mode)
        buffer = io.BytesIO()
        if frames > 1:
            images[0].save(buffer, format="WEBP", quality=95, save_all=True,
                           append_images=images[1:], duration=100, loop=0)
        else:
            images[0].save(buffer, format="WEBP", quality=95)
        return buffer.getvalue()

    return _create

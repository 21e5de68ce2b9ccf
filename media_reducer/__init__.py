"""
media_reducer - Media file compression.

PDF documents are recompressed in place: metadata redaction, unused font
removal and re-encoding of embedded JPEG and raw raster images. JPEG,
PNG, GIF and WebP files are re-encoded directly.
"""

__version__ = "1.0.0"

from .compressor import CompressionResult, compress_bytes, compress_file
from .config import Config, GifConfig, JpegConfig, PdfConfig, PngConfig, WebpConfig, load_config
from .exceptions import (
    ConfigError,
    FileAccessError,
    ImageDecodeError,
    ParseError,
    RecompressError,
    ReducerError,
    SerializeError,
    UnsupportedFormatError,
)
from .pipeline import PdfReport, compress_pdf_bytes

__all__ = [
    "CompressionResult",
    "compress_bytes",
    "compress_file",
    "compress_pdf_bytes",
    "Config",
    "GifConfig",
    "JpegConfig",
    "PdfConfig",
    "PngConfig",
    "WebpConfig",
    "PdfReport",
    "load_config",
    "ConfigError",
    "FileAccessError",
    "ImageDecodeError",
    "ParseError",
    "RecompressError",
    "ReducerError",
    "SerializeError",
    "UnsupportedFormatError",
]

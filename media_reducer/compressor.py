"""
compressor.py - Detect a file's type and run the matching pipeline.

Output is written to a temporary file next to the destination and renamed
into place, so a failed run never leaves a partial file behind.
"""

import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .config import Config
from .exceptions import FileAccessError, UnsupportedFormatError
from .file_type import HEADER_SIZE, FileType, detect
from .formats import compress_gif_bytes, compress_jpeg_bytes, compress_png_bytes, compress_webp_bytes
from .pipeline import PdfReport, compress_pdf_bytes

logger = logging.getLogger(__name__)

SUPPORTED_TYPES = (FileType.PDF, FileType.JPEG, FileType.PNG, FileType.GIF, FileType.WEBP)


@dataclass
class CompressionResult:
    """Result of compressing one file."""
    input_path: Path
    output_path: Path
    file_type: FileType

    input_size: int = 0
    output_size: int = 0
    total_time: float = 0.0

    pdf_report: Optional[PdfReport] = None

    @property
    def reduction_pct(self) -> float:
        if self.input_size == 0:
            return 0
        return (1 - self.output_size / self.input_size) * 100

    def summary(self) -> str:
        text = (
            f"Input:  {self.input_path.name} ({self.input_size:,} bytes)\n"
            f"Output: {self.output_path.name} ({self.output_size:,} bytes)\n"
            f"Type: {self.file_type.value}\n"
            f"Reduction: {self.reduction_pct:.1f}%\n"
            f"Time: {self.total_time:.1f}s"
        )
        if self.pdf_report is not None:
            text += "\n" + self.pdf_report.summary()
        return text


def compress_bytes(data: bytes, config: Config) -> Tuple[bytes, FileType, Optional[PdfReport]]:
    """
    Compress an in-memory file of any supported type.

    Returns:
        (compressed bytes, detected type, PDF report or None)
    """
    file_type = detect(data[:HEADER_SIZE])
    if file_type is None:
        raise UnsupportedFormatError("Could not determine file format")
    if file_type not in SUPPORTED_TYPES:
        raise UnsupportedFormatError(f"Not supported file format: {file_type.value}")

    if file_type is FileType.PDF:
        output, report = compress_pdf_bytes(data, config.pdf)
        return output, file_type, report
    if file_type is FileType.JPEG:
        return compress_jpeg_bytes(data, config.jpeg), file_type, None
    if file_type is FileType.GIF:
        return compress_gif_bytes(data, config.gif), file_type, None
    if file_type is FileType.WEBP:
        return compress_webp_bytes(data, config.webp), file_type, None
    return compress_png_bytes(data, config.png), file_type, None


def write_atomic(path: Path, data: bytes):
    """Write data to path via a temporary file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_name, path)
    except OSError:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise


def compress_file(input_path: Path, output_path: Path, config: Optional[Config] = None) -> CompressionResult:
    """
    Compress input_path into output_path.

    Args:
        input_path: PDF, JPEG, PNG, GIF or WebP file
        output_path: Destination (parent directories are created)
        config: Resolved configuration, defaults if None

    Returns:
        CompressionResult with sizes and the PDF report

    Raises:
        ReducerError subclasses; output_path is not created on failure
    """
    input_path = Path(input_path)
    output_path = Path(output_path)
    config = config or Config()

    start_time = time.time()
    try:
        data = input_path.read_bytes()
    except OSError as e:
        raise FileAccessError(f"Failed to open input file: {input_path}: {e}") from e

    logger.info(f"Processing {input_path.name}: {len(data):,} bytes")
    output, file_type, report = compress_bytes(data, config)

    try:
        write_atomic(output_path, output)
    except OSError as e:
        raise FileAccessError(f"Failed to write output file: {output_path}: {e}") from e

    result = CompressionResult(
        input_path=input_path,
        output_path=output_path,
        file_type=file_type,
        input_size=len(data),
        output_size=len(output),
        total_time=time.time() - start_time,
        pdf_report=report,
    )
    logger.info(f"\n{result.summary()}")
    return result

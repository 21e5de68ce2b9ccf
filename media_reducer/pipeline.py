"""
pipeline.py - PDF content-recompression engine.

Pipeline:
1. Parse the document into an object graph
2. Strip /Info and /Metadata (if configured)
3. Remove fonts no page uses (if configured)
4. Recompress image streams
5. Serialize

Passes run strictly in this order over one graph; each sees the graph as
the previous pass left it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from .config import PdfConfig
from .document import DocumentGraph, ObjectId
from .fonts import remove_unused_fonts
from .images import ImagePassReport, recompress_images
from .metadata import redact_metadata

logger = logging.getLogger(__name__)


@dataclass
class PdfReport:
    """What the engine changed in one document."""
    metadata_removed: List[str] = field(default_factory=list)
    fonts_removed: List[ObjectId] = field(default_factory=list)
    images: ImagePassReport = field(default_factory=ImagePassReport)

    def summary(self) -> str:
        return (
            f"Images: {self.images.recompressed} recompressed, "
            f"{self.images.skipped} passed through\n"
            f"Fonts removed: {len(self.fonts_removed)}\n"
            f"Metadata removed: {', '.join(self.metadata_removed) or 'none'}"
        )


def run_passes(graph: DocumentGraph, config: PdfConfig) -> PdfReport:
    """Apply every mutating pass to graph, in order."""
    report = PdfReport()

    report.metadata_removed = redact_metadata(
        graph, strip_info=config.strip_info, strip_metadata=config.strip_metadata
    )

    if config.remove_unused_fonts:
        report.fonts_removed = remove_unused_fonts(graph)

    report.images = recompress_images(graph, config)
    return report


def compress_pdf_bytes(data: bytes, config: PdfConfig) -> Tuple[bytes, PdfReport]:
    """
    Compress a PDF held in memory.

    Args:
        data: PDF bytes
        config: Resolved PDF settings

    Returns:
        (compressed PDF bytes, report)

    Raises:
        ParseError, ImageDecodeError, RecompressError, SerializeError
    """
    graph = DocumentGraph.parse(data)
    try:
        report = run_passes(graph, config)
    except Exception:
        graph.close()
        raise

    # serialize() consumes the graph
    output = graph.serialize()
    logger.debug(f"PDF: {len(data):,} -> {len(output):,} bytes")
    return output, report

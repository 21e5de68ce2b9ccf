"""
file_type.py - File type detection from leading magic bytes.
"""

from enum import Enum
from typing import Optional


class FileType(Enum):
    GIF = "gif"
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    HEIF = "heif"
    PDF = "pdf"


HEIF_BRANDS = {b"heic", b"heix", b"hevc", b"hevx", b"heim", b"heis", b"mif1", b"msf1"}

# Bytes needed to recognize every supported signature
HEADER_SIZE = 24


def detect(header: bytes) -> Optional[FileType]:
    """Identify a file from its first bytes, or None if unknown."""
    if header[:6] in (b"GIF87a", b"GIF89a"):
        return FileType.GIF
    if header[:8] == b"\x89PNG\r\n\x1a\n":
        return FileType.PNG
    if header[:3] == b"\xff\xd8\xff":
        return FileType.JPEG
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return FileType.WEBP
    if header[4:8] == b"ftyp" and header[8:12] in HEIF_BRANDS:
        return FileType.HEIF
    if header[:5] == b"%PDF-":
        return FileType.PDF
    return None

"""
exceptions.py - Error taxonomy for media_reducer.

Every error carries the name of the stage that failed so the CLI can
report a single terminal line.
"""

from typing import Optional


class ReducerError(Exception):
    """Base class for all media_reducer errors."""

    stage = "compress"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class FileAccessError(ReducerError):
    """Reading the input or writing the output failed."""

    stage = "io"


class ParseError(ReducerError):
    """The document structure is malformed. No partial result is produced."""

    stage = "parse"


class ImageDecodeError(ReducerError):
    """An embedded image could not be decoded. Fatal for the whole run."""

    stage = "decode"


class RecompressError(ReducerError):
    """An encoder or the quantizer rejected its parameters."""

    stage = "recompress"


class SerializeError(ReducerError):
    """Writing the final document failed."""

    stage = "serialize"


class ConfigError(ReducerError):
    """Configuration is missing, malformed or out of range."""

    stage = "config"


class UnsupportedFormatError(ReducerError):
    """The input file type has no compression pipeline."""

    stage = "detect"

"""
metadata.py - Removal of document-level informational dictionaries.
"""

import logging
from typing import List

from pikepdf import Name

from .document import DocumentGraph

logger = logging.getLogger(__name__)


def redact_metadata(graph: DocumentGraph, strip_info: bool, strip_metadata: bool) -> List[str]:
    """
    Remove /Info and /Metadata entries.

    Args:
        graph: Document to mutate
        strip_info: Remove /Info from the trailer
        strip_metadata: Remove /Metadata from the trailer and the catalog

    Returns:
        Locations removed, e.g. ["trailer/Info", "catalog/Metadata"]
    """
    removed = []
    trailer = graph.trailer

    if strip_info and Name.Info in trailer:
        del trailer[Name.Info]
        removed.append("trailer/Info")

    if strip_metadata:
        if Name.Metadata in trailer:
            del trailer[Name.Metadata]
            removed.append("trailer/Metadata")

        catalog = graph.catalog()
        if catalog is not None and Name.Metadata in catalog:
            del catalog[Name.Metadata]
            removed.append("catalog/Metadata")

    if removed:
        logger.info(f"Removed metadata: {', '.join(removed)}")
    return removed

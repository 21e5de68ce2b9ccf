"""
fonts.py - Mark-and-sweep removal of unused font objects.

Mark: collect every font referenced from page resources.
Sweep: delete every /Type /Font dictionary that was not marked.

Marking starts from page resources, the appearance streams of page
annotations and the AcroForm default resources (/DR). It also follows
fonts kept alive by marked objects:
- /DescendantFonts of composite fonts
- /Resources of Type3 fonts and of Form XObjects
"""

import logging
from typing import Iterator, List, Set

import pikepdf
from pikepdf import Array, Dictionary, Name, Stream

from .document import DocumentGraph, ObjectId
from .exceptions import ParseError

logger = logging.getLogger(__name__)


class FontMarker:
    """Accumulates the set of font object ids reachable from pages."""

    def __init__(self):
        self.used: Set[ObjectId] = set()
        self._visited_resources: Set[ObjectId] = set()
        self._visited_forms: Set[ObjectId] = set()

    def mark_resources(self, resources: Dictionary):
        """Mark fonts in a resource dictionary and in nested Form XObjects."""
        pending = [resources]
        while pending:
            res = pending.pop()
            if not isinstance(res, Dictionary):
                continue
            if res.is_indirect:
                if res.objgen in self._visited_resources:
                    continue
                self._visited_resources.add(res.objgen)

            # /Font may be inline or a reference; pikepdf resolves both
            fonts = res.get(Name.Font)
            if isinstance(fonts, Dictionary):
                for _, font in fonts.items():
                    pending.extend(self._mark_font(font))

            xobjects = res.get(Name.XObject)
            if isinstance(xobjects, Dictionary):
                for _, xobj in xobjects.items():
                    if not isinstance(xobj, Stream) or xobj.get(Name.Subtype) != Name.Form:
                        continue
                    if xobj.objgen in self._visited_forms:
                        continue
                    self._visited_forms.add(xobj.objgen)
                    if Name.Resources in xobj:
                        pending.append(xobj.Resources)

    def _mark_font(self, font) -> List[Dictionary]:
        """Mark a font and its descendants; return resources to scan next."""
        nested = []
        stack = [font]
        while stack:
            current = stack.pop()
            if not isinstance(current, Dictionary):
                continue
            if current.is_indirect:
                if current.objgen in self.used:
                    continue
                self.used.add(current.objgen)

            descendants = current.get(Name.DescendantFonts)
            if isinstance(descendants, Array):
                stack.extend(descendants)

            # Type3 glyph procedures can draw with other fonts
            if Name.Resources in current:
                nested.append(current.Resources)
        return nested


def _appearance_streams(page: Dictionary) -> Iterator[Stream]:
    """Appearance streams with resources, from every annotation on a page."""
    annotations = page.get(Name.Annots)
    if not isinstance(annotations, Array):
        return
    for annotation in annotations:
        if not isinstance(annotation, Dictionary):
            continue
        appearances = annotation.get(Name.AP)
        if not isinstance(appearances, Dictionary):
            continue
        for key in (Name.N, Name.R, Name.D):
            entry = appearances.get(key)
            # either one stream or a dictionary of state -> stream
            if isinstance(entry, Stream):
                candidates = [entry]
            elif isinstance(entry, Dictionary):
                candidates = [state for _, state in entry.items()]
            else:
                continue
            for stream in candidates:
                if isinstance(stream, Stream) and Name.Resources in stream:
                    yield stream


def collect_used_fonts(graph: DocumentGraph) -> Set[ObjectId]:
    """
    Mark phase: ids of every font reachable from any page.

    A page whose resources cannot be resolved is skipped with a warning.
    Fonts only that page used will then be swept.
    """
    marker = FontMarker()

    for page_id in graph.page_ids():
        try:
            resources = graph.page_resources(page_id)
            if resources is not None:
                marker.mark_resources(resources)
            for appearance in _appearance_streams(graph.get(page_id)):
                marker.mark_resources(appearance.Resources)
        except (ParseError, pikepdf.PdfError, KeyError) as e:
            logger.warning(f"Skipping fonts of page {page_id}: {e}")

    # Form fields draw with the AcroForm default resources
    catalog = graph.catalog()
    acroform = catalog.get(Name.AcroForm) if catalog is not None else None
    if isinstance(acroform, Dictionary) and isinstance(acroform.get(Name.DR), Dictionary):
        marker.mark_resources(acroform.DR)

    logger.debug(f"Marked {len(marker.used)} fonts as used")
    return marker.used


def find_unused_fonts(graph: DocumentGraph, used: Set[ObjectId]) -> List[ObjectId]:
    """Ids of /Type /Font dictionaries absent from the usage set."""
    unused = []
    for object_id, obj in graph.objects():
        if not isinstance(obj, Dictionary):
            continue
        if obj.get(Name.Type) == Name.Font and object_id not in used:
            unused.append(object_id)
    return unused


def remove_unused_fonts(graph: DocumentGraph) -> List[ObjectId]:
    """
    Delete unused font objects.

    The mark phase finishes over all pages before anything is deleted,
    since fonts are shared between pages.

    Returns:
        Ids of the deleted fonts
    """
    used = collect_used_fonts(graph)
    unused = find_unused_fonts(graph, used)

    for object_id in unused:
        logger.debug(f"Removing unused font {object_id}")
    graph.delete_all(unused)

    logger.info(f"Fonts: {len(used)} used, {len(unused)} removed")
    return unused

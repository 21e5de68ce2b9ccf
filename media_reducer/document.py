"""
document.py - Object graph access over pikepdf.

DocumentGraph owns one parsed pikepdf.Pdf for the duration of a compression
run. Passes read through it and write back through replace_stream() and
delete(), and the graph is consumed by serialize() at the end.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

import pikepdf
from pikepdf import Array, Dictionary, Name, Pdf, Stream

from .exceptions import ParseError, SerializeError

logger = logging.getLogger(__name__)

ObjectId = Tuple[int, int]


@dataclass
class StreamReplacement:
    """New payload and dictionary for an existing stream object."""
    object_id: ObjectId
    data: bytes
    filter: Name
    entries: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.data)


def _refers_to(value, targets: Set[ObjectId]) -> bool:
    return isinstance(value, pikepdf.Object) and value.is_indirect and value.objgen in targets


def _is_direct_container(value) -> bool:
    return isinstance(value, (Dictionary, Array)) and not value.is_indirect


def _unlink(root, targets: Set[ObjectId]):
    """Drop references to targets from root and its direct children."""
    pending = [root]
    while pending:
        container = pending.pop()
        if isinstance(container, Array):
            for index in reversed(range(len(container))):
                item = container[index]
                if _refers_to(item, targets):
                    del container[index]
                elif _is_direct_container(item):
                    pending.append(item)
        elif isinstance(container, (Dictionary, Stream)):
            for key in list(container.keys()):
                item = container[key]
                if _refers_to(item, targets):
                    del container[key]
                elif _is_direct_container(item):
                    pending.append(item)


class DocumentGraph:
    """
    Mutable object graph of a parsed PDF.

    Object ids are pikepdf objgen tuples (number, generation). References
    are resolved by pikepdf, so an object reached through a reference keeps
    its objgen and can be passed back to get(), replace_stream() or delete().
    """

    def __init__(self, pdf: Pdf):
        self.pdf = pdf
        self._deleted: Set[ObjectId] = set()

    @classmethod
    def parse(cls, data: bytes) -> "DocumentGraph":
        """Parse PDF bytes. Raises ParseError on malformed input."""
        try:
            pdf = pikepdf.open(io.BytesIO(data))
        except pikepdf.PasswordError as e:
            raise ParseError(f"Document is encrypted: {e}") from e
        except pikepdf.PdfError as e:
            raise ParseError(f"Malformed document: {e}") from e
        logger.debug(f"Parsed PDF {pdf.pdf_version}: {len(pdf.objects)} objects")
        return cls(pdf)

    def __enter__(self) -> "DocumentGraph":
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.pdf.close()

    # -- reading ---------------------------------------------------------

    def objects(self) -> Iterator[Tuple[ObjectId, Any]]:
        """Yield (objgen, object) once for every live indirect object."""
        seen = set()
        for obj in list(self.pdf.objects):
            if not isinstance(obj, pikepdf.Object):
                continue
            # a document built in memory can list one object twice
            object_id = obj.objgen
            if object_id in seen or object_id in self._deleted:
                continue
            seen.add(object_id)
            yield object_id, obj

    def get(self, object_id: ObjectId):
        """Return the object with this id. Raises KeyError if absent."""
        if object_id in self._deleted:
            raise KeyError(object_id)
        obj = self.pdf.get_object(object_id)
        if obj is None:
            raise KeyError(object_id)
        return obj

    def __contains__(self, object_id: ObjectId) -> bool:
        try:
            self.get(object_id)
        except KeyError:
            return False
        return True

    @property
    def trailer(self) -> Dictionary:
        return self.pdf.trailer

    def catalog(self) -> Optional[Dictionary]:
        """Resolve trailer /Root, or None if it is not a dictionary."""
        root = self.pdf.trailer.get(Name.Root)
        if isinstance(root, Dictionary):
            return root
        return None

    def page_ids(self) -> List[ObjectId]:
        """Object ids of all pages, in document order."""
        try:
            return [page.obj.objgen for page in self.pdf.pages]
        except pikepdf.PdfError as e:
            raise ParseError(f"Cannot read page tree: {e}") from e

    def page_resources(self, page_id: ObjectId) -> Optional[Dictionary]:
        """
        Resolve the resource dictionary that applies to a page.

        /Resources is inheritable, so the /Parent chain is followed until
        a node defines it. Returns None when no node does.

        Raises:
            ParseError: resources are not a dictionary or the chain loops
        """
        node = self.get(page_id)
        seen = set()
        while isinstance(node, Dictionary):
            if node.objgen != (0, 0):
                if node.objgen in seen:
                    raise ParseError(f"Page tree loop at {node.objgen}")
                seen.add(node.objgen)

            if Name.Resources in node:
                resources = node.Resources
                if not isinstance(resources, Dictionary):
                    raise ParseError(f"Page {page_id}: /Resources is not a dictionary")
                return resources

            node = node.get(Name.Parent)
        return None

    # -- writing ---------------------------------------------------------

    def replace_stream(self, replacement: StreamReplacement):
        """
        Replace a stream's payload and dictionary, keeping its object id.

        The stream is rewritten in place, so every reference to it stays
        valid. qpdf owns /Length and sets it from the new payload.
        """
        stream = self.get(replacement.object_id)
        if not isinstance(stream, Stream):
            raise KeyError(f"{replacement.object_id} is not a stream")

        for key in list(stream.keys()):
            if key != "/Length":
                del stream[key]
        stream.write(replacement.data, filter=replacement.filter)
        for key, value in replacement.entries.items():
            stream[key] = value

    def delete(self, object_id: ObjectId):
        """Remove one object. See delete_all()."""
        self.delete_all([object_id])

    def delete_all(self, object_ids: Iterable[ObjectId]):
        """
        Remove objects from the graph.

        Every reference to them is dropped: dictionary entries are removed
        and array elements are cut out. Nothing reaches the objects any
        more, so serialize() leaves them out of the file. Afterwards get()
        raises KeyError for them.
        """
        targets = set(object_ids) - self._deleted
        if not targets:
            return

        for object_id, obj in list(self.objects()):
            if object_id not in targets:
                _unlink(obj, targets)
        _unlink(self.pdf.trailer, targets)

        self._deleted |= targets
        logger.debug(f"Deleted {len(targets)} objects")

    # -- finalizing ------------------------------------------------------

    def serialize(self) -> bytes:
        """
        Write the document to bytes and release it.

        Only objects reachable from the trailer are written, which also
        prunes anything the passes left unreferenced.
        """
        buffer = io.BytesIO()
        try:
            self.pdf.save(
                buffer,
                compress_streams=True,
                object_stream_mode=pikepdf.ObjectStreamMode.generate,
                fix_metadata_version=False,
            )
        except pikepdf.PdfError as e:
            raise SerializeError(f"Failed to write document: {e}") from e
        finally:
            self.close()

        data = buffer.getvalue()
        logger.debug(f"Serialized document: {len(data):,} bytes")
        return data

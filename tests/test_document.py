from __future__ import annotations

import io

import pikepdf
import pytest
from pikepdf import Dictionary, Name

from media_reducer.document import DocumentGraph, StreamReplacement
from media_reducer.exceptions import ParseError

from conftest import xobject_id


def test_parse_rejects_garbage() -> None:
    with pytest.raises(ParseError):
        DocumentGraph.parse(b"this is not a pdf")


def test_parse_and_serialize_roundtrip(image_pdf: bytes) -> None:
    graph = DocumentGraph.parse(image_pdf)
    assert len(graph.page_ids()) == 1

    output = graph.serialize()

    with pikepdf.open(io.BytesIO(output)) as reopened:
        assert len(reopened.pages) == 1


def test_page_resources_are_inherited_from_parent(pdf, add_page, make_font) -> None:
    page = add_page()
    del page["/Resources"]
    font = make_font()
    pdf.Root.Pages.Resources = Dictionary({"/Font": Dictionary({"/F1": font})})

    graph = DocumentGraph(pdf)
    resources = graph.page_resources(page.objgen)

    assert resources is not None
    assert resources.Font.F1.objgen == font.objgen


def test_page_without_resources_returns_none(pdf, add_page) -> None:
    page = add_page()
    del page["/Resources"]
    assert DocumentGraph(pdf).page_resources(page.objgen) is None


def test_non_dictionary_resources_raise_parse_error(pdf, add_page) -> None:
    page = add_page()
    page.Resources = 42
    with pytest.raises(ParseError):
        DocumentGraph(pdf).page_resources(page.objgen)


def test_replace_stream_keeps_id_and_references(pdf, add_page, make_image) -> None:
    image = make_image(b"old data", 4, 4)
    page = add_page(xobjects={"/Im0": image})
    graph = DocumentGraph(pdf)

    graph.replace_stream(StreamReplacement(
        image.objgen, b"new payload", Name.DCTDecode,
        entries={"/Width": 2, "/Height": 2, "/Subtype": Name.Image},
    ))

    replaced = graph.get(image.objgen)
    assert replaced.read_raw_bytes() == b"new payload"
    assert replaced.Length == len(b"new payload")
    assert replaced.Filter == Name.DCTDecode
    assert replaced.Width == 2
    assert Name.ColorSpace not in replaced
    # the page still reaches the same object
    assert page.Resources.XObject.Im0.objgen == image.objgen
    assert page.Resources.XObject.Im0.read_raw_bytes() == b"new payload"


def test_delete_removes_object(pdf, make_font) -> None:
    font = make_font()
    graph = DocumentGraph(pdf)
    assert font.objgen in graph

    graph.delete(font.objgen)

    assert font.objgen not in graph
    with pytest.raises(KeyError):
        graph.get(font.objgen)


def test_catalog_resolves_root(pdf) -> None:
    graph = DocumentGraph(pdf)
    assert graph.catalog().Type == Name.Catalog


def test_replace_stream_on_parsed_document(add_page, flate_image, reopen) -> None:
    image = flate_image("RGB", 8, 4)
    image["/DecodeParms"] = Dictionary({"/Predictor": 1})
    add_page(xobjects={"/Im0": image})
    graph = reopen()
    image_id = xobject_id(graph, "/Im0")

    graph.replace_stream(StreamReplacement(
        image_id, b"replacement", Name.DCTDecode,
        entries={"/Width": 8, "/Height": 4, "/Subtype": Name.Image},
    ))

    replaced = graph.get(image_id)
    assert replaced.read_raw_bytes() == b"replacement"
    assert int(replaced.Length) == len(b"replacement")
    assert Name.DecodeParms not in replaced

    with pikepdf.open(io.BytesIO(graph.serialize())) as reopened:
        written = reopened.pages[0].Resources.XObject.Im0
        assert written.read_raw_bytes() == b"replacement"
        assert written.Filter == Name.DCTDecode


def test_delete_unlinks_every_reference(pdf, add_page, make_font, reopen) -> None:
    orphan = make_font("Courier")
    add_page()
    pdf.Root.PieceInfo = Dictionary({
        "/Editor": Dictionary({"/Private": orphan, "/Keep": 1}),
        "/Fonts": pikepdf.Array([orphan, 2]),
    })
    graph = reopen()
    orphan_id = graph.catalog().PieceInfo.Editor.Private.objgen

    graph.delete(orphan_id)

    assert orphan_id not in graph
    assert all(object_id != orphan_id for object_id, _ in graph.objects())
    piece_info = graph.catalog().PieceInfo
    assert Name("/Private") not in piece_info.Editor
    assert piece_info.Editor.Keep == 1
    assert list(piece_info.Fonts) == [2]

    with pikepdf.open(io.BytesIO(graph.serialize())) as reopened:
        fonts = [obj for obj in reopened.objects
                 if isinstance(obj, Dictionary) and obj.get("/Type") == Name.Font]
        assert fonts == []


def test_objects_are_listed_once(pdf, add_page, make_font) -> None:
    make_font()
    add_page()
    ids = [object_id for object_id, _ in DocumentGraph(pdf).objects()]
    assert len(ids) == len(set(ids))

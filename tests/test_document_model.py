import asyncio

import pytest

from document_model import (
    CONTAINER_TYPES,
    Capability,
    Document,
    NodeType,
    all_descendants,
    format_node,
    parse_hex_color,
    solid_paint,
    supports,
)
from node_errors import ToolExecutionError


def test_capability_table():
    assert supports(NodeType.STAR, Capability.INNER_RADIUS)
    assert not supports(NodeType.POLYGON, Capability.INNER_RADIUS)
    assert supports(NodeType.RECTANGLE, Capability.CORNER_RADIUS)
    assert not supports(NodeType.SLICE, Capability.FILLS)
    assert not supports(NodeType.SECTION, Capability.STROKES)
    assert set(CONTAINER_TYPES) == {NodeType.PAGE, NodeType.FRAME, NodeType.COMPONENT, NodeType.GROUP, NodeType.SECTION}


def test_kind_defaults(empty_document):
    star = empty_document.create_node(NodeType.STAR)
    assert (star.width, star.height, star.point_count, star.inner_radius) == (100.0, 100.0, 5, 0.382)
    frame = empty_document.create_node(NodeType.FRAME)
    assert (frame.width, frame.height) == (200.0, 200.0)
    slice_node = empty_document.create_node(NodeType.SLICE)
    assert slice_node.fills is None and slice_node.corner_radius is None


def test_generated_ids_skip_snapshot_ids():
    document = Document.from_dict({"pages": [{"id": "0:1", "children": [{"id": "1:1", "type": "RECTANGLE"}]}]})
    node = document.create_node(NodeType.ELLIPSE)
    assert node.id != "1:1"


def test_unloaded_page_hides_its_subtree(document):
    archive = document.find_page("0:2")
    assert archive.loaded is False
    assert document.find_by_id("20:1") is None
    with pytest.raises(ToolExecutionError) as excinfo:
        archive.children
    assert excinfo.value.code == "page_not_loaded"

    asyncio.run(document.load_all_pages_async())
    assert document.find_by_id("20:1").name == "Old Frame"


def test_find_in_page_is_scoped(document):
    home = document.current_page
    assert document.find_in_page(home, "10:4").name == "Dot"
    asyncio.run(document.load_all_pages_async())
    assert document.find_in_page(home, "20:2") is None


def test_remove_is_terminal(document):
    header = document.find_by_id("10:1")
    header.remove()
    assert document.find_by_id("10:1") is None
    assert document.find_by_id("10:4") is None
    assert header.removed and header.children[0].removed


def test_clone_is_detached_deep_copy(document):
    header = document.find_by_id("10:1")
    copy = document.clone(header)
    assert copy.parent is None
    assert copy.id != header.id
    assert [child.name for child in copy.children] == ["Logo", "Nav"]
    assert {child.id for child in copy.children}.isdisjoint({"10:2", "10:3"})
    copy.children[0].name = "Changed"
    assert header.children[0].name == "Logo"


def test_resize_rejects_degenerate_sizes(empty_document):
    node = empty_document.create_node(NodeType.RECTANGLE)
    with pytest.raises(ToolExecutionError) as excinfo:
        node.resize(0, 10)
    assert excinfo.value.code == "invalid_dimensions"


def test_insert_child_moves_between_parents(document):
    header = document.find_by_id("10:1")
    card = document.find_by_id("10:5")
    header.insert_child(0, card)
    assert card.parent is header
    assert header.children[0] is card
    assert card not in document.current_page.children


def test_all_descendants_depth_and_visibility(document):
    page = document.current_page
    names = [node.name for node in all_descendants(page)]
    assert names == ["Home", "Header", "Logo", "Nav", "Dot", "Card", "Hidden Star"]
    assert "Hidden Star" not in [n.name for n in all_descendants(page, include_hidden=False)]
    assert [n.name for n in all_descendants(page, max_depth=1)] == ["Home", "Header", "Card", "Hidden Star"]


def test_parse_hex_color():
    assert parse_hex_color("#F00").r == 1.0
    color = parse_hex_color("#00FF0080")
    assert (color.r, color.g, color.b) == (0.0, 1.0, 0.0)
    assert color.a == pytest.approx(128 / 255)
    with pytest.raises(ToolExecutionError):
        parse_hex_color("#GGGGGG")
    with pytest.raises(ToolExecutionError):
        parse_hex_color("red")


def test_solid_paint():
    paint = solid_paint("#0000FF")
    assert paint == {"type": "SOLID", "visible": True, "opacity": 1.0, "color": {"r": 0.0, "g": 0.0, "b": 1.0}}


@pytest.mark.parametrize("detail", ["minimal", "standard", "detailed"])
def test_format_node_is_idempotent(document, detail):
    node = document.find_by_id("10:1")
    first = format_node(node, detail)
    second = format_node(node, detail)
    assert first == second
    assert first is not second


def test_format_node_detail_levels(document):
    logo = document.find_by_id("10:2")
    assert format_node(logo, "minimal") == {"id": "10:2", "name": "Logo", "type": "RECTANGLE"}
    standard = format_node(logo, "standard")
    assert standard["parentId"] == "10:1"
    assert "fills" not in standard
    detailed = format_node(logo, "detailed")
    assert detailed["cornerRadius"] == 0.0
    assert "pointCount" not in detailed
    detailed["fills"].append({"type": "SOLID"})
    assert logo.fills == []


def test_format_page_has_no_geometry(document):
    data = format_node(document.current_page, "detailed")
    assert "x" not in data and "visible" not in data
    assert data["children"] == ["10:1", "10:5", "10:6"]


def test_pages_have_no_visibility_or_lock_capability():
    assert not supports(NodeType.PAGE, Capability.VISIBILITY)
    assert not supports(NodeType.PAGE, Capability.LOCK)
    for node_type in NodeType:
        if node_type != NodeType.PAGE:
            assert supports(node_type, Capability.VISIBILITY)
            assert supports(node_type, Capability.LOCK)

"""
Document Model - In-memory scene tree

This module provides the document tree the node engine operates on:
typed scene nodes with a static per-kind capability table, pages with
lazy loading, the node locator, the tree walker, the mutation primitives
and the response formatter.
"""

import copy
import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from node_errors import (
    INVALID_DIMENSIONS,
    INVALID_PARAMETER,
    PAGE_NOT_LOADED,
    UNSUPPORTED_OPERATION,
    node_error,
)

logger = logging.getLogger(__name__)


class NodeType(str, Enum):
    PAGE = "PAGE"
    FRAME = "FRAME"
    GROUP = "GROUP"
    SECTION = "SECTION"
    COMPONENT = "COMPONENT"
    RECTANGLE = "RECTANGLE"
    ELLIPSE = "ELLIPSE"
    STAR = "STAR"
    POLYGON = "POLYGON"
    SLICE = "SLICE"
    TEXT = "TEXT"


class Capability(str, Enum):
    CHILDREN = "children"
    GEOMETRY = "geometry"
    ROTATION = "rotation"
    FILLS = "fills"
    STROKES = "strokes"
    OPACITY = "opacity"
    BLEND_MODE = "blendMode"
    CORNER_RADIUS = "cornerRadius"
    CLIPS_CONTENT = "clipsContent"
    POINT_COUNT = "pointCount"
    INNER_RADIUS = "innerRadius"
    SECTION_CONTENTS = "sectionContentsHidden"
    VISIBILITY = "visible"
    LOCK = "locked"


# Pages are always shown and never locked
_SCENE = frozenset({Capability.GEOMETRY, Capability.VISIBILITY, Capability.LOCK})
_SHAPE = _SCENE | {
    Capability.ROTATION, Capability.FILLS, Capability.STROKES,
    Capability.OPACITY, Capability.BLEND_MODE,
}
_FRAME_LIKE = _SHAPE | {Capability.CHILDREN, Capability.CORNER_RADIUS, Capability.CLIPS_CONTENT}

CAPABILITIES: Dict[NodeType, FrozenSet[Capability]] = {
    NodeType.PAGE: frozenset({Capability.CHILDREN}),
    NodeType.FRAME: _FRAME_LIKE,
    NodeType.COMPONENT: _FRAME_LIKE,
    NodeType.GROUP: _SCENE | {
        Capability.CHILDREN, Capability.ROTATION, Capability.OPACITY, Capability.BLEND_MODE,
    },
    NodeType.SECTION: _SCENE | {Capability.CHILDREN, Capability.FILLS, Capability.SECTION_CONTENTS},
    NodeType.RECTANGLE: _SHAPE | {Capability.CORNER_RADIUS},
    NodeType.ELLIPSE: _SHAPE,
    NodeType.STAR: _SHAPE | {Capability.POINT_COUNT, Capability.INNER_RADIUS},
    NodeType.POLYGON: _SHAPE | {Capability.POINT_COUNT},
    NodeType.SLICE: _SCENE | {Capability.ROTATION},
    NodeType.TEXT: _SHAPE,
}

CONTAINER_TYPES: List[NodeType] = [t for t, caps in CAPABILITIES.items() if Capability.CHILDREN in caps]

DEFAULT_SIZES: Dict[NodeType, tuple] = {
    NodeType.FRAME: (200.0, 200.0),
    NodeType.SECTION: (300.0, 200.0),
}


def supports(node_type: NodeType, capability: Capability) -> bool:
    return capability in CAPABILITIES[node_type]


# ============================================
# ================ COLORS ====================
# ============================================

class RGBAColor(BaseModel):
    model_config = ConfigDict(extra='forbid')
    r: float
    g: float
    b: float
    a: Optional[float] = 1.0


def _sanitize_color_value(value: float, default: float = 0.0) -> float:
    """Sanitizes a color component to be a float between 0.0 and 1.0."""
    try:
        v = float(value)
        return max(0.0, min(1.0, v))
    except (ValueError, TypeError):
        return default


def parse_hex_color(value: str) -> RGBAColor:
    """Parse '#RGB', '#RRGGBB' or '#RRGGBBAA' into an RGBAColor."""
    text = str(value).strip().lstrip("#")
    if len(text) == 3:
        text = "".join(ch * 2 for ch in text)
    if len(text) not in (6, 8):
        raise node_error(INVALID_PARAMETER, f"Invalid hex color: {value}", value=value)
    try:
        channels = [int(text[i:i + 2], 16) / 255 for i in range(0, len(text), 2)]
    except ValueError:
        raise node_error(INVALID_PARAMETER, f"Invalid hex color: {value}", value=value)
    alpha = channels[3] if len(channels) == 4 else 1.0
    return RGBAColor(r=channels[0], g=channels[1], b=channels[2], a=alpha)


def solid_paint(hex_color: str) -> Dict[str, Any]:
    color = parse_hex_color(hex_color)
    return {
        "type": "SOLID",
        "visible": True,
        "opacity": _sanitize_color_value(color.a, 1.0),
        "color": {"r": color.r, "g": color.g, "b": color.b},
    }


# ============================================
# ================ NODES =====================
# ============================================

class SceneNode:
    """A typed element of the document tree.

    Attributes a kind does not support (per CAPABILITIES) stay None.
    """

    def __init__(self, node_id: str, node_type: NodeType, name: str = "") -> None:
        self.id = node_id
        self.type = node_type
        self.name = name or node_type.value.title()
        self.parent: Optional["SceneNode"] = None
        self.removed = False
        self._children: List["SceneNode"] = []

        self.visible = True
        self.locked = False

        geometric = self.supports(Capability.GEOMETRY)
        width, height = DEFAULT_SIZES.get(node_type, (100.0, 100.0))
        self.x: Optional[float] = 0.0 if geometric else None
        self.y: Optional[float] = 0.0 if geometric else None
        self.width: Optional[float] = width if geometric else None
        self.height: Optional[float] = height if geometric else None
        self.rotation: Optional[float] = 0.0 if self.supports(Capability.ROTATION) else None
        self.opacity: Optional[float] = 1.0 if self.supports(Capability.OPACITY) else None
        self.blend_mode: Optional[str] = "PASS_THROUGH" if self.supports(Capability.BLEND_MODE) else None

        self.fills: Optional[List[Dict[str, Any]]] = [] if self.supports(Capability.FILLS) else None
        has_strokes = self.supports(Capability.STROKES)
        self.strokes: Optional[List[Dict[str, Any]]] = [] if has_strokes else None
        self.stroke_weight: Optional[float] = 1.0 if has_strokes else None
        self.stroke_align: Optional[str] = "INSIDE" if has_strokes else None

        corners = self.supports(Capability.CORNER_RADIUS)
        self.corner_radius: Optional[float] = 0.0 if corners else None
        self.top_left_radius: Optional[float] = 0.0 if corners else None
        self.top_right_radius: Optional[float] = 0.0 if corners else None
        self.bottom_left_radius: Optional[float] = 0.0 if corners else None
        self.bottom_right_radius: Optional[float] = 0.0 if corners else None
        self.clips_content: Optional[bool] = True if self.supports(Capability.CLIPS_CONTENT) else None

        self.point_count: Optional[int] = None
        if self.supports(Capability.POINT_COUNT):
            self.point_count = 5 if node_type == NodeType.STAR else 3
        self.inner_radius: Optional[float] = 0.382 if self.supports(Capability.INNER_RADIUS) else None

        sections = self.supports(Capability.SECTION_CONTENTS)
        self.section_contents_hidden: Optional[bool] = False if sections else None
        self.dev_status: Optional[str] = None

    def __repr__(self) -> str:
        return f"<{self.type.value} {self.id} {self.name!r}>"

    def supports(self, capability: Capability) -> bool:
        return supports(self.type, capability)

    @property
    def is_container(self) -> bool:
        return self.supports(Capability.CHILDREN)

    @property
    def children(self) -> List["SceneNode"]:
        return self._children

    # Mutation primitives
    def move_to(self, x: float, y: float) -> None:
        if not self.supports(Capability.GEOMETRY):
            return
        self.x = float(x)
        self.y = float(y)

    def resize(self, width: float, height: float) -> None:
        if not self.supports(Capability.GEOMETRY):
            return
        if width < 0.01 or height < 0.01:
            raise node_error(
                INVALID_DIMENSIONS,
                f"Invalid size {width}x{height} for node {self.id}: width and height must be at least 0.01",
                nodeId=self.id, width=width, height=height,
            )
        self.width = float(width)
        self.height = float(height)

    def append_child(self, child: "SceneNode") -> None:
        self.insert_child(len(self.children), child)

    def insert_child(self, index: int, child: "SceneNode") -> None:
        if not self.is_container:
            raise node_error(
                UNSUPPORTED_OPERATION,
                f"Node type '{self.type.value}' cannot contain child nodes",
                nodeId=self.id,
            )
        if child.parent is not None:
            child.parent.children.remove(child)
        index = max(0, min(index, len(self.children)))
        self.children.insert(index, child)
        child.parent = self

    def remove(self) -> None:
        """Detach the node; removal is terminal for the whole subtree."""
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None
        for node in walk_nodes(self):
            node.removed = True


class PageNode(SceneNode):
    """A root-level container; its subtree is unreadable until loaded."""

    def __init__(self, node_id: str, name: str = "", loaded: bool = False) -> None:
        super().__init__(node_id, NodeType.PAGE, name or "Page")
        self.loaded = loaded

    @property
    def children(self) -> List[SceneNode]:
        if not self.loaded:
            raise node_error(
                PAGE_NOT_LOADED,
                f"Page \"{self.name}\" ({self.id}) is not loaded; call load_async() first",
                pageId=self.id,
            )
        return self._children

    async def load_async(self) -> None:
        if not self.loaded:
            logger.debug(f"📄 Loading page {self.id} ({self.name})")
            self.loaded = True


def walk_nodes(root: SceneNode) -> Iterable[SceneNode]:
    """Yield root and every node below it, pre-order, ignoring page load state."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node._children))


def all_descendants(
    root: SceneNode,
    include_hidden: bool = True,
    max_depth: Optional[int] = None,
    current_depth: int = 0,
) -> List[SceneNode]:
    """Pre-order walk of root's subtree, root included.

    Hidden nodes (and everything under them) are skipped unless include_hidden.
    Descent stops at max_depth; deeper nodes are never visited.
    """
    if not include_hidden and not root.visible:
        return []
    nodes = [root]
    if root.is_container and (max_depth is None or current_depth < max_depth):
        for child in root.children:
            nodes.extend(all_descendants(child, include_hidden, max_depth, current_depth + 1))
    return nodes


# ============================================
# =============== DOCUMENT ===================
# ============================================

class Document:
    """The document handle threaded through every node operation."""

    def __init__(self, name: str = "Untitled") -> None:
        self.name = name
        self.pages: List[PageNode] = []
        self._current_page: Optional[PageNode] = None
        self._counters: Dict[str, int] = {}
        self._used_ids: set = set()

    @property
    def current_page(self) -> PageNode:
        if self._current_page is None:
            self.create_page("Page 1")
        return self._current_page

    def _allocate_id(self, prefix: str, node_id: Optional[str]) -> str:
        # Ids stay unique even when snapshots supply their own
        if node_id is None:
            while True:
                self._counters[prefix] = self._counters.get(prefix, 0) + 1
                node_id = f"{prefix}:{self._counters[prefix]}"
                if node_id not in self._used_ids:
                    break
        self._used_ids.add(node_id)
        return node_id

    def create_page(self, name: str = "", node_id: Optional[str] = None, loaded: Optional[bool] = None) -> PageNode:
        node_id = self._allocate_id("0", node_id)
        first = not self.pages
        # The active page is always resident; others start unloaded unless told otherwise
        page = PageNode(node_id, name or f"Page {len(self.pages) + 1}", loaded=first if loaded is None else loaded)
        self.pages.append(page)
        if first:
            page.loaded = True
            self._current_page = page
        return page

    def create_node(self, node_type: NodeType, name: str = "", node_id: Optional[str] = None) -> SceneNode:
        """Create a detached node with its kind defaults."""
        if node_type == NodeType.PAGE:
            raise node_error(UNSUPPORTED_OPERATION, "Use create_page() to create pages")
        return SceneNode(self._allocate_id("1", node_id), node_type, name)

    def clone(self, node: SceneNode) -> SceneNode:
        """Return a detached deep copy of node's subtree with fresh ids."""
        if node.type == NodeType.PAGE:
            raise node_error(UNSUPPORTED_OPERATION, f"Page {node.id} cannot be cloned", nodeId=node.id)
        duplicate = self.create_node(node.type, node.name)
        for attr, value in vars(node).items():
            if attr in ("id", "parent", "_children", "removed"):
                continue
            setattr(duplicate, attr, copy.deepcopy(value))
        for child in node.children:
            duplicate.append_child(self.clone(child))
        return duplicate

    async def load_all_pages_async(self) -> None:
        for page in self.pages:
            await page.load_async()

    # Node locator
    def find_by_id(self, node_id: str) -> Optional[SceneNode]:
        """Search every page node and every loaded page's subtree."""
        for page in self.pages:
            if page.id == node_id:
                return page
        for page in self.pages:
            if page.loaded:
                found = self.find_in_page(page, node_id)
                if found is not None:
                    return found
        return None

    def find_in_page(self, page: PageNode, node_id: str) -> Optional[SceneNode]:
        if page.id == node_id:
            return page
        if not page.loaded:
            return None
        for node in walk_nodes(page):
            if node.id == node_id and not node.removed:
                return node
        return None

    def find_page(self, page_id: str) -> Optional[PageNode]:
        return next((p for p in self.pages if p.id == page_id), None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        """Build a document from a JSON snapshot.

        Shape: {"name", "currentPageId"?, "pages": [{"id", "name", "loaded"?, "children": [...]}]}
        where each child is {"id", "type", "name", geometry/visual keys..., "children"?}.
        """
        document = cls(data.get("name", "Untitled"))
        for page_data in data.get("pages", []):
            page = document.create_page(page_data.get("name", ""), node_id=page_data.get("id"),
                                        loaded=page_data.get("loaded"))
            for child_data in page_data.get("children", []):
                page._children.append(document._node_from_dict(child_data, page))
        current_id = data.get("currentPageId")
        if current_id:
            page = document.find_page(current_id)
            if page is not None:
                page.loaded = True
                document._current_page = page
        return document

    def _node_from_dict(self, data: Dict[str, Any], parent: SceneNode) -> SceneNode:
        node = self.create_node(NodeType(str(data["type"]).upper()), data.get("name", ""), node_id=data.get("id"))
        for key, attr in _SNAPSHOT_FIELDS.items():
            if key in data and getattr(node, attr) is not None:
                setattr(node, attr, data[key])
        for key in ("visible", "locked"):
            if key in data:
                setattr(node, key, bool(data[key]))
        node.parent = parent
        for child_data in data.get("children", []):
            node._children.append(self._node_from_dict(child_data, node))
        return node


_SNAPSHOT_FIELDS = {
    "x": "x", "y": "y", "width": "width", "height": "height",
    "rotation": "rotation", "opacity": "opacity", "blendMode": "blend_mode",
    "cornerRadius": "corner_radius", "pointCount": "point_count", "innerRadius": "inner_radius",
    "clipsContent": "clips_content", "sectionContentsHidden": "section_contents_hidden",
    "fills": "fills", "strokes": "strokes", "strokeWeight": "stroke_weight",
}


# ============================================
# ============== FORMATTING ==================
# ============================================

_DETAILED_FIELDS = (
    ("rotation", "rotation"),
    ("opacity", "opacity"),
    ("blendMode", "blend_mode"),
    ("fills", "fills"),
    ("strokes", "strokes"),
    ("strokeWeight", "stroke_weight"),
    ("strokeAlign", "stroke_align"),
    ("cornerRadius", "corner_radius"),
    ("topLeftRadius", "top_left_radius"),
    ("topRightRadius", "top_right_radius"),
    ("bottomLeftRadius", "bottom_left_radius"),
    ("bottomRightRadius", "bottom_right_radius"),
    ("clipsContent", "clips_content"),
    ("pointCount", "point_count"),
    ("innerRadius", "inner_radius"),
    ("sectionContentsHidden", "section_contents_hidden"),
    ("devStatus", "dev_status"),
)


def format_node(node: SceneNode, detail: str = "standard") -> Dict[str, Any]:
    """Serialize a node into a plain record.

    Always builds fresh containers, so formatting an unmodified node twice
    yields equal, independent output.
    """
    data: Dict[str, Any] = {"id": node.id, "name": node.name, "type": node.type.value}
    if detail == "minimal":
        return data

    if node.supports(Capability.GEOMETRY):
        data.update({"x": node.x, "y": node.y, "width": node.width, "height": node.height})
    if node.type != NodeType.PAGE:
        data["visible"] = node.visible
        data["locked"] = node.locked
        data["parentId"] = node.parent.id if node.parent is not None else None

    if detail == "detailed":
        for key, attr in _DETAILED_FIELDS:
            value = getattr(node, attr)
            if value is not None:
                data[key] = copy.deepcopy(value)
        if node.is_container and (node.type != NodeType.PAGE or node.loaded):
            data["children"] = [child.id for child in node.children]
    return data

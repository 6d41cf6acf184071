"""
Placement - Smart positioning and overlap detection for new nodes

When a creation request carries no coordinates, find_smart_position picks a
spot next to existing siblings that does not overlap any of them. When it
does carry coordinates, check_for_overlaps reports which siblings the new
box would cover; the warning is advisory and never blocks placement.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from document_model import Capability, NodeType, SceneNode

logger = logging.getLogger(__name__)

# Gap kept between a placed node and the sibling it is placed beside
PLACEMENT_SPACING = 20.0


@dataclass
class Bounds:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def overlaps(self, other: "Bounds") -> bool:
        # Touching edges do not count
        return (
            self.x < other.right
            and self.right > other.x
            and self.y < other.bottom
            and self.bottom > other.y
        )


@dataclass
class PlacementResult:
    x: float
    y: float
    reason: str


@dataclass
class OverlapInfo:
    overlapping_nodes: List[SceneNode] = field(default_factory=list)

    @property
    def has_overlap(self) -> bool:
        return bool(self.overlapping_nodes)


def node_bounds(node: SceneNode) -> Optional[Bounds]:
    if not node.supports(Capability.GEOMETRY):
        return None
    return Bounds(node.x, node.y, node.width, node.height)


def _sibling_bounds(parent: SceneNode) -> List[tuple]:
    pairs = []
    for child in parent.children:
        bounds = node_bounds(child)
        if bounds is not None:
            pairs.append((child, bounds))
    return pairs


def check_for_overlaps(box: Bounds, parent: SceneNode) -> OverlapInfo:
    """Collect the parent's children whose bounding boxes intersect box."""
    info = OverlapInfo()
    for sibling, bounds in _sibling_bounds(parent):
        if box.overlaps(bounds):
            info.overlapping_nodes.append(sibling)
    return info


def create_overlap_warning(info: OverlapInfo, x: float, y: float) -> str:
    names = ", ".join(f"'{node.name}' ({node.id})" for node in info.overlapping_nodes)
    count = len(info.overlapping_nodes)
    return (
        f"Node placed at ({x:g}, {y:g}) overlaps with {count} existing node(s): {names}. "
        "Omit x and y to let the node be placed automatically."
    )


def _fits_inside(box: Bounds, parent: SceneNode) -> bool:
    if parent.type == NodeType.PAGE or not parent.supports(Capability.GEOMETRY):
        return True
    return box.x >= 0 and box.y >= 0 and box.right <= parent.width and box.bottom <= parent.height


def find_smart_position(width: float, height: float, parent: SceneNode) -> PlacementResult:
    """Pick a deterministic, non-overlapping position among the parent's children.

    Candidates are the parent's origin, plus the slots to the right of and
    below each sibling, both in the sibling's row or column and along the
    parent's top and left edges. They are ranked by distance from the
    top-left corner of existing content. If none is free the node goes to
    the right of all content, which cannot overlap anything.
    """
    siblings = _sibling_bounds(parent)
    if not siblings:
        return PlacementResult(0.0, 0.0, "No existing siblings; placed at origin")

    occupied: Sequence[Bounds] = [bounds for _, bounds in siblings]
    origin_x = min(b.x for b in occupied)
    origin_y = min(b.y for b in occupied)

    candidates = [(Bounds(0.0, 0.0, width, height), -1, 0, None, "origin")]
    for order, (sibling, bounds) in enumerate(siblings):
        right_x = bounds.right + PLACEMENT_SPACING
        below_y = bounds.bottom + PLACEMENT_SPACING
        candidates.append((Bounds(right_x, bounds.y, width, height), order, 0, sibling, "beside"))
        candidates.append((Bounds(bounds.x, below_y, width, height), order, 1, sibling, "below"))
        candidates.append((Bounds(right_x, 0.0, width, height), order, 2, sibling, "beside"))
        candidates.append((Bounds(0.0, below_y, width, height), order, 3, sibling, "below"))

    def rank(candidate):
        box, order, side, _, _ = candidate
        distance = (box.x - origin_x) ** 2 + (box.y - origin_y) ** 2
        return (distance, box.y, box.x, order, side)

    for box, _, _, sibling, relation in sorted(candidates, key=rank):
        if not _fits_inside(box, parent):
            continue
        if any(box.overlaps(other) for other in occupied):
            continue
        if sibling is None:
            logger.debug(f"📐 Placed {width:g}x{height:g} at the parent's origin")
            return PlacementResult(box.x, box.y, "Placed at the parent's origin, clear of existing nodes")
        logger.debug(f"📐 Placed {width:g}x{height:g} {relation} '{sibling.name}' at ({box.x:g}, {box.y:g})")
        return PlacementResult(box.x, box.y, f"Placed {relation} nearest node '{sibling.name}' ({sibling.id})")

    fallback_x = max(b.right for b in occupied) + PLACEMENT_SPACING
    return PlacementResult(fallback_x, origin_y, "No free slot near existing content; placed to the right of all siblings")

"""
Node Properties - Typed item parameters and per-kind property appliers

NodeItemParams is the strongly-typed record every scalarized bulk item is
validated into before any node is touched. The apply_* helpers write those
values onto a node, consulting the static capability table so unsupported
attributes are skipped quietly and out-of-range values are clamped.
"""

import logging
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from document_model import Capability, SceneNode, solid_paint

logger = logging.getLogger(__name__)

DetailLevel = Literal["minimal", "standard", "detailed"]
StrokeAlign = Literal["INSIDE", "OUTSIDE", "CENTER"]


class NodeItemParams(BaseModel):
    """One scalarized item of a node operation (camelCase on the wire).

    Ids and names are opaque text, so numbers decoded from JSON arrays are
    accepted as their string form.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
        coerce_numbers_to_str=True,
    )

    node_id: Optional[str] = None
    parent_id: Optional[str] = None
    detail: Optional[DetailLevel] = None

    name: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: Optional[float] = None
    visible: Optional[bool] = None
    locked: Optional[bool] = None
    opacity: Optional[float] = None
    blend_mode: Optional[str] = None

    fill_color: Optional[str] = None
    fill_opacity: Optional[float] = None
    stroke_color: Optional[str] = None
    stroke_opacity: Optional[float] = None
    stroke_weight: Optional[float] = None
    stroke_align: Optional[StrokeAlign] = None

    corner_radius: Optional[float] = None
    top_left_radius: Optional[float] = None
    top_right_radius: Optional[float] = None
    bottom_left_radius: Optional[float] = None
    bottom_right_radius: Optional[float] = None
    clips_content: Optional[bool] = None

    section_contents_hidden: Optional[bool] = None
    dev_status: Optional[str] = None

    point_count: Optional[int] = None
    inner_radius: Optional[float] = None

    offset_x: Optional[float] = None
    offset_y: Optional[float] = None


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def apply_common_properties(node: SceneNode, params: NodeItemParams) -> None:
    """Visual attributes shared by all kinds that support them."""
    if params.rotation is not None and node.supports(Capability.ROTATION):
        node.rotation = params.rotation
    if params.visible is not None and node.supports(Capability.VISIBILITY):
        node.visible = params.visible
    if params.locked is not None and node.supports(Capability.LOCK):
        node.locked = params.locked
    if params.opacity is not None and node.supports(Capability.OPACITY):
        node.opacity = _clamp_unit(params.opacity)
    if params.blend_mode is not None and node.supports(Capability.BLEND_MODE):
        node.blend_mode = params.blend_mode.upper()

    if node.supports(Capability.FILLS):
        if params.fill_color:
            node.fills = [solid_paint(params.fill_color)]
        if params.fill_opacity is not None and node.fills:
            fills = [dict(paint) for paint in node.fills]
            fills[0]["opacity"] = _clamp_unit(params.fill_opacity)
            node.fills = fills

    if node.supports(Capability.STROKES):
        if params.stroke_color:
            node.strokes = [solid_paint(params.stroke_color)]
        if params.stroke_opacity is not None and node.strokes:
            strokes = [dict(paint) for paint in node.strokes]
            strokes[0]["opacity"] = _clamp_unit(params.stroke_opacity)
            node.strokes = strokes
        if params.stroke_weight is not None:
            node.stroke_weight = max(0.0, params.stroke_weight)
        if params.stroke_align is not None:
            node.stroke_align = params.stroke_align


def apply_corner_radius(node: SceneNode, params: NodeItemParams) -> None:
    if not node.supports(Capability.CORNER_RADIUS):
        return
    if params.corner_radius is not None:
        radius = max(0.0, params.corner_radius)
        node.corner_radius = radius
        node.top_left_radius = node.top_right_radius = radius
        node.bottom_left_radius = node.bottom_right_radius = radius
    for attr in ("top_left_radius", "top_right_radius", "bottom_left_radius", "bottom_right_radius"):
        value = getattr(params, attr)
        if value is not None:
            setattr(node, attr, max(0.0, value))


def apply_frame_properties(node: SceneNode, params: NodeItemParams) -> None:
    if params.clips_content is not None and node.supports(Capability.CLIPS_CONTENT):
        node.clips_content = params.clips_content
    apply_corner_radius(node, params)


def apply_section_properties(node: SceneNode, params: NodeItemParams) -> None:
    if not node.supports(Capability.SECTION_CONTENTS):
        return
    if params.section_contents_hidden is not None:
        node.section_contents_hidden = params.section_contents_hidden
    if params.dev_status is not None:
        node.dev_status = params.dev_status


def apply_star_properties(node: SceneNode, params: NodeItemParams) -> None:
    apply_polygon_properties(node, params)
    if params.inner_radius is not None and node.supports(Capability.INNER_RADIUS):
        node.inner_radius = _clamp_unit(params.inner_radius)


def apply_polygon_properties(node: SceneNode, params: NodeItemParams) -> None:
    if params.point_count is not None and node.supports(Capability.POINT_COUNT):
        node.point_count = max(3, params.point_count)


def apply_no_kind_properties(node: SceneNode, params: NodeItemParams) -> None:
    """Ellipses and slices carry nothing beyond the common attributes."""

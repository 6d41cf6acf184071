"""
Manage Nodes - Operation router for node requests

Entry point of the node engine. A request is a flat parameter bag with an
`operation` tag. `list` goes through the traversal/filter engine; every
other operation is fanned out into scalarized items that run one after
another against the document, each with its own success or failure record.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from bulk_params import (
    BulkItem,
    distribute_bulk_params,
    normalize_bulk_params,
    run_bulk,
    validate_count,
)
from document_model import (
    CONTAINER_TYPES,
    Capability,
    Document,
    NodeType,
    PageNode,
    SceneNode,
    format_node,
)
from node_errors import (
    INVALID_PARAMETER,
    INVALID_PARENT_TYPE,
    MISSING_PARAMETER,
    NODE_NOT_FOUND,
    NODE_TYPE_MISMATCH,
    PARENT_NOT_FOUND,
    UNKNOWN_OPERATION,
    UNSUPPORTED_OPERATION,
    node_error,
)
from node_properties import (
    NodeItemParams,
    apply_common_properties,
    apply_corner_radius,
    apply_frame_properties,
    apply_no_kind_properties,
    apply_polygon_properties,
    apply_section_properties,
    apply_star_properties,
)
from node_query import ListNodesParams, query_nodes
from placement import Bounds, check_for_overlaps, create_overlap_warning, find_smart_position

logger = logging.getLogger(__name__)

KIND_APPLIERS: Dict[NodeType, Callable[[SceneNode, NodeItemParams], None]] = {
    NodeType.RECTANGLE: apply_corner_radius,
    NodeType.ELLIPSE: apply_no_kind_properties,
    NodeType.FRAME: apply_frame_properties,
    NodeType.SECTION: apply_section_properties,
    NodeType.SLICE: apply_no_kind_properties,
    NodeType.STAR: apply_star_properties,
    NodeType.POLYGON: apply_polygon_properties,
}

CREATE_OPERATIONS: Dict[str, NodeType] = {f"create_{kind.value.lower()}": kind for kind in KIND_APPLIERS}
UPDATE_OPERATIONS: Dict[str, NodeType] = {f"update_{kind.value.lower()}": kind for kind in KIND_APPLIERS}

VALID_OPERATIONS = ["get", "list", "update", "delete", "duplicate"] + list(CREATE_OPERATIONS) + list(UPDATE_OPERATIONS)

DEFAULT_DETAIL = "standard"
DEFAULT_DUPLICATE_OFFSET = 10.0


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for issue in error.errors():
        location = ".".join(str(part) for part in issue.get("loc", ())) or "params"
        parts.append(f"{location}: {issue.get('msg')}")
    return "; ".join(parts)


def _validate(model: type, params: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(params)
    except ValidationError as e:
        raise node_error(INVALID_PARAMETER, f"Invalid parameters: {_describe_validation_error(e)}")


def _require_node(document: Document, node_id: Optional[str]) -> SceneNode:
    if not node_id:
        raise node_error(MISSING_PARAMETER, "nodeId is required for this item")
    node = document.find_by_id(node_id)
    if node is None:
        raise node_error(NODE_NOT_FOUND, f"Node with ID {node_id} not found", nodeId=node_id)
    return node


async def _resolve_parent(document: Document, parent_id: Optional[str]) -> SceneNode:
    if not parent_id:
        return document.current_page
    parent = document.find_by_id(parent_id)
    if parent is None:
        raise node_error(PARENT_NOT_FOUND, f"Parent node with ID {parent_id} not found", parentId=parent_id)
    if not parent.is_container:
        valid = ", ".join(t.value for t in CONTAINER_TYPES)
        raise node_error(
            INVALID_PARENT_TYPE,
            f"Parent node type '{parent.type.value}' cannot contain child nodes. Valid container types: {valid}",
            parentId=parent_id, parentType=parent.type.value,
        )
    if isinstance(parent, PageNode):
        await parent.load_async()
    return parent


def _apply_geometry_update(node: SceneNode, params: NodeItemParams) -> None:
    if params.name is not None:
        node.name = params.name
    if not node.supports(Capability.GEOMETRY):
        return
    if params.x is not None or params.y is not None:
        node.move_to(
            params.x if params.x is not None else node.x,
            params.y if params.y is not None else node.y,
        )
    if params.width is not None or params.height is not None:
        node.resize(
            params.width if params.width is not None else node.width,
            params.height if params.height is not None else node.height,
        )


# ============================================
# ============ ITEM EXECUTORS ================
# ============================================

async def _get_item(document: Document, params: NodeItemParams, item: BulkItem) -> Dict[str, Any]:
    node = _require_node(document, params.node_id)
    return format_node(node, params.detail or DEFAULT_DETAIL)


async def _update_item(document: Document, params: NodeItemParams, item: BulkItem) -> Dict[str, Any]:
    node = _require_node(document, params.node_id)
    _apply_geometry_update(node, params)
    apply_common_properties(node, params)
    return format_node(node, params.detail or DEFAULT_DETAIL)


async def _delete_item(document: Document, params: NodeItemParams, item: BulkItem) -> Dict[str, Any]:
    node = _require_node(document, params.node_id)
    if node.type == NodeType.PAGE:
        raise node_error(UNSUPPORTED_OPERATION, f"Page {node.id} cannot be deleted with node operations", nodeId=node.id)
    info = format_node(node, params.detail or DEFAULT_DETAIL)
    node.remove()
    return info


def _make_update_kind_item(kind: NodeType):
    async def _update_kind_item(document: Document, params: NodeItemParams, item: BulkItem) -> Dict[str, Any]:
        node = _require_node(document, params.node_id)
        if node.type != kind:
            raise node_error(
                NODE_TYPE_MISMATCH,
                f"Node {node.id} is not a {kind.value.lower()} (type: {node.type.value})",
                nodeId=node.id, expectedType=kind.value, actualType=node.type.value,
            )
        _apply_geometry_update(node, params)
        KIND_APPLIERS[kind](node, params)
        apply_common_properties(node, params)
        return format_node(node, params.detail or DEFAULT_DETAIL)
    return _update_kind_item


def _make_create_item(kind: NodeType):
    async def _create_item(document: Document, params: NodeItemParams, item: BulkItem) -> Dict[str, Any]:
        node = document.create_node(kind, params.name or kind.value.title())
        width = params.width if params.width is not None else node.width
        height = params.height if params.height is not None else node.height
        node.resize(width, height)
        KIND_APPLIERS[kind](node, params)
        apply_common_properties(node, params)

        # Nothing is attached until every property has applied cleanly
        parent = await _resolve_parent(document, params.parent_id)
        warning = position_reason = None
        if params.x is not None or params.y is not None:
            x = params.x or 0.0
            y = params.y or 0.0
            overlap = check_for_overlaps(Bounds(x, y, width, height), parent)
            if overlap.has_overlap:
                warning = create_overlap_warning(overlap, x, y)
                logger.warning(f"⚠️ {warning}")
        else:
            placement = find_smart_position(width, height, parent)
            x, y, position_reason = placement.x, placement.y, placement.reason

        parent.append_child(node)
        node.move_to(x, y)

        response = format_node(node, params.detail or DEFAULT_DETAIL)
        if warning:
            response["warning"] = warning
        if position_reason:
            response["positionReason"] = position_reason
        return response
    return _create_item


class _DuplicatePlan:
    """Tracks how many copies of each source have been made in one request."""

    def __init__(self) -> None:
        self.copies: Dict[str, int] = {}

    async def __call__(self, document: Document, params: NodeItemParams, item: BulkItem) -> Dict[str, Any]:
        node = _require_node(document, params.node_id)
        if node.type == NodeType.PAGE:
            raise node_error(UNSUPPORTED_OPERATION, f"Page {node.id} cannot be duplicated with node operations", nodeId=node.id)
        duplicate = document.clone(node)
        ordinal = self.copies.get(node.id, 0) + 1
        self.copies[node.id] = ordinal

        if node.supports(Capability.GEOMETRY):
            dx = self._offset(params.offset_x, "offsetX", item, ordinal)
            dy = self._offset(params.offset_y, "offsetY", item, ordinal)
            duplicate.move_to(node.x + dx, node.y + dy)

        parent = node.parent
        if parent is not None:
            parent.insert_child(parent.children.index(node) + ordinal, duplicate)
        return format_node(duplicate, params.detail or DEFAULT_DETAIL)

    @staticmethod
    def _offset(value: Optional[float], key: str, item: BulkItem, ordinal: int) -> float:
        offset = value if value is not None else DEFAULT_DUPLICATE_OFFSET
        # Per-item arrays are absolute; a single value steps out copy by copy
        if key in item.array_keys:
            return offset
        return offset * ordinal


ItemExecutor = Callable[[Document, NodeItemParams, BulkItem], Awaitable[Dict[str, Any]]]


def _executor_for(operation: str) -> ItemExecutor:
    if operation in CREATE_OPERATIONS:
        return _make_create_item(CREATE_OPERATIONS[operation])
    if operation in UPDATE_OPERATIONS:
        return _make_update_kind_item(UPDATE_OPERATIONS[operation])
    if operation == "duplicate":
        return _DuplicatePlan()
    return {"get": _get_item, "update": _update_item, "delete": _delete_item}[operation]


# ============================================
# ================ ROUTER ====================
# ============================================

async def list_nodes(document: Document, params: Dict[str, Any]) -> Dict[str, Any]:
    list_params: ListNodesParams = _validate(ListNodesParams, params)
    detail = list_params.detail or ("standard" if list_params.has_filters else "minimal")
    nodes = await query_nodes(document, list_params)
    logger.info(f"📋 list: {len(nodes)} node(s) at detail={detail}")
    return {"success": True, "data": [format_node(node, detail) for node in nodes]}


async def run_bulk_operation(document: Document, operation: str, params: Dict[str, Any]) -> Dict[str, Any]:
    params = normalize_bulk_params(params)
    count = validate_count(params, operation)

    node_ids = params.get("nodeId")
    if operation in CREATE_OPERATIONS:
        if node_ids is not None:
            raise node_error(
                INVALID_PARAMETER,
                f"Parameter 'nodeId' is not valid for {operation}; use parentId to choose the container",
                parameter="nodeId", operation=operation,
            )
    elif node_ids is None or node_ids == [] or node_ids == "":
        raise node_error(MISSING_PARAMETER, f"Parameter 'nodeId' is required for {operation}", parameter="nodeId")

    items = distribute_bulk_params(params, count)
    executor = _executor_for(operation)
    logger.info(f"🧰 {operation}: fanning out {len(items)} item(s)")

    async def execute(item: BulkItem) -> Dict[str, Any]:
        item_params: NodeItemParams = _validate(NodeItemParams, item.params)
        return await executor(document, item_params, item)

    return await run_bulk(operation, items, execute)


async def manage_nodes(document: Document, request: Dict[str, Any]) -> Dict[str, Any]:
    """Run one node request against the document.

    Returns {"success": True, "data": [...]} for `list` and the bulk summary
    for every other operation. Request-level validation failures raise
    ToolExecutionError before anything is mutated.
    """
    if not isinstance(request, dict):
        raise node_error(INVALID_PARAMETER, "Request must be an object with an 'operation' key")
    operation = request.get("operation")
    if not operation:
        raise node_error(MISSING_PARAMETER, "operation parameter is required", parameter="operation")
    if operation not in VALID_OPERATIONS:
        raise node_error(
            UNKNOWN_OPERATION,
            f"Unknown node operation: {operation}. Valid operations: {', '.join(VALID_OPERATIONS)}",
            operation=operation, validOperations=VALID_OPERATIONS,
        )

    params = {key: value for key, value in request.items() if key != "operation"}
    logger.info(f"🧭 manage_nodes: operation={operation} params={sorted(params)}")
    if operation == "list":
        return await list_nodes(document, params)
    return await run_bulk_operation(document, operation, params)

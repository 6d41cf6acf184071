"""
Node Tools - OpenAI Agent tool surface for the node engine

Exposes the node engine to an in-process agent as a single `figma_nodes`
tool. The tool runs against the document registered with set_document().
"""

import json
import logging
from typing import Any, Dict, Optional

from agents import function_tool

from document_model import Document
from manage_nodes import manage_nodes
from node_errors import UNKNOWN_ERROR, ToolExecutionError

logger = logging.getLogger(__name__)


# Global document instance (set by the bridge or by the embedding application)
_document: Optional[Document] = None


def set_document(document: Document) -> None:
    """Set the global document instance."""
    global _document
    _document = document


def get_document() -> Document:
    """Get the global document instance."""
    if _document is None:
        raise RuntimeError("Document not initialized. Call set_document() first.")
    return _document


def _to_json_string(result: Any) -> str:
    """Convert an engine result to a JSON string for model reasoning."""
    try:
        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False)
    except (TypeError, ValueError):
        return json.dumps({"result": str(result)}, ensure_ascii=False)


async def figma_nodes(operation: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Create, update, delete, duplicate, inspect or list nodes, singly or in bulk.

    Purpose & Use Case
    --------------------
    One entry point for every node operation. Any parameter may be a single
    value or an array; arrays fan the request out into one item per index,
    and shorter arrays cycle (`width: [100, 200]` over three nodes yields
    100, 200, 100). Arrays sent as JSON text are decoded first.

    Parameters (Args)
    ------------------
    operation (str): One of `get`, `list`, `update`, `delete`, `duplicate`,
        `create_<kind>` or `update_<kind>` where kind is rectangle, ellipse,
        frame, section, slice, star or polygon.
    params (dict, optional): Flat parameter bag. Common keys:
        - `nodeId` (str | List[str]): Target node(s); required for get/update/delete/duplicate.
        - `parentId` (str): Container for created nodes; defaults to the current page.
        - `name`, `x`, `y`, `width`, `height`, `rotation`, `visible`, `locked`, `opacity`, `blendMode`.
        - `fillColor`, `fillOpacity`, `strokeColor`, `strokeOpacity`, `strokeWeight`, `strokeAlign`.
        - `cornerRadius` (rectangle/frame), `clipsContent` (frame), `pointCount` (star/polygon),
          `innerRadius` (star), `sectionContentsHidden` / `devStatus` (section).
        - `count`, `offsetX`, `offsetY`: duplicate only.
        - list only: `pageId`, `traversal`, `filterByType`, `filterByName`, `filterByVisibility`,
          `filterByLockedState`, `maxDepth`, `maxResults`, `includeAllPages`.
        - `detail`: `minimal` | `standard` | `detailed`.

    Returns
    -------
    (str): JSON string. `list` returns {"success": true, "data": [...]}; every other
        operation returns {"success", "operation", "total", "succeeded", "failed", "results"},
        where failed items appear in place as {"success": false, "index", "nodeId", "code", "error"}.
        Creations without x/y carry a `positionReason`; creations whose explicit position
        overlaps a sibling carry a `warning`.

    Raises (Errors & Pitfalls)
    --------------------------
    ToolExecutionError: Request-level validation failures, raised before anything changes:
        `missing_parameter`, `unknown_operation`, `invalid_parameter` (including `count`
        outside duplicate), `invalid_regex`, and list-time `node_not_found` / `page_not_found`.
    """
    try:
        request = dict(params or {})
        request["operation"] = operation
        logger.info(f"🧩 figma_nodes: operation={operation}")
        result = await manage_nodes(get_document(), request)
        return _to_json_string(result)
    except ToolExecutionError as te:
        logger.error(f"❌ Tool figma_nodes failed: {getattr(te, 'message', str(te))}")
        raise
    except Exception as e:
        logger.error(f"❌ Unexpected error in figma_nodes: {str(e)}")
        raise ToolExecutionError({
            "code": UNKNOWN_ERROR,
            "message": f"Failed to run node operation: {str(e)}",
            "details": {"operation": operation},
        })


figma_nodes_tool = function_tool(figma_nodes, strict_mode=False)

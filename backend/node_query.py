"""
Node Query - Traversal and filtering for the `list` operation

A list request resolves a target page, optional starting nodes and a
traversal mode, walks the tree (loading pages on demand), then runs the
filter pipeline in a fixed order: visibility, page exclusion, type, name,
locked state, result cap.
"""

import logging
import re
from typing import List, Literal, Optional, Pattern, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from bulk_params import parse_array_param
from document_model import Document, NodeType, PageNode, SceneNode, all_descendants
from node_errors import INVALID_REGEX, NODE_NOT_FOUND, PAGE_NOT_FOUND, node_error

logger = logging.getLogger(__name__)

Traversal = Literal["descendants", "children", "ancestors", "siblings"]
Visibility = Literal["visible", "hidden", "all"]


class ListNodesParams(BaseModel):
    """Normalized parameters of a `list` request."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
        coerce_numbers_to_str=True,
    )

    page_id: Optional[str] = None
    node_id: Optional[Union[str, List[str]]] = None
    traversal: Optional[Traversal] = None
    filter_by_type: List[str] = []
    filter_by_name: Optional[str] = None
    filter_by_visibility: Visibility = "visible"
    filter_by_locked_state: Optional[bool] = None
    max_depth: Optional[int] = None
    max_results: Optional[int] = None
    include_all_pages: bool = False
    detail: Optional[Literal["minimal", "standard", "detailed"]] = None

    @field_validator("node_id", mode="before")
    @classmethod
    def _decode_node_ids(cls, value):
        return parse_array_param(value)

    @field_validator("filter_by_type", mode="before")
    @classmethod
    def _decode_types(cls, value):
        value = parse_array_param(value)
        if value is None:
            return []
        return [value] if isinstance(value, str) else value

    @property
    def start_ids(self) -> List[str]:
        if self.node_id is None:
            return []
        return [self.node_id] if isinstance(self.node_id, str) else list(self.node_id)

    @property
    def has_filters(self) -> bool:
        """True when anything beyond maxDepth narrows the listing."""
        return bool(
            self.node_id is not None
            or self.traversal is not None
            or self.filter_by_type
            or self.filter_by_name is not None
            or self.filter_by_visibility != "visible"
            or self.filter_by_locked_state is not None
            or self.max_results is not None
            or self.include_all_pages
        )

    def compile_name_filter(self) -> Optional[Pattern]:
        if self.filter_by_name is None:
            return None
        try:
            return re.compile(self.filter_by_name, re.IGNORECASE)
        except re.error as e:
            raise node_error(
                INVALID_REGEX,
                f"Invalid filterByName regular expression '{self.filter_by_name}': {e}",
                filterByName=self.filter_by_name,
            )


# ============================================
# ============== TRAVERSAL ===================
# ============================================

async def resolve_target_page(document: Document, params: ListNodesParams) -> PageNode:
    if not params.page_id:
        return document.current_page
    await document.load_all_pages_async()
    page = document.find_page(params.page_id)
    if page is None:
        available = ", ".join(f"{p.name} ({p.id})" for p in document.pages)
        raise node_error(
            PAGE_NOT_FOUND,
            f"Page not found: {params.page_id}. Available pages: {available}",
            pageId=params.page_id,
        )
    await page.load_async()
    return page


def _find_start_node(document: Document, params: ListNodesParams, page: PageNode, node_id: str) -> SceneNode:
    if params.page_id and not params.include_all_pages:
        node = document.find_in_page(page, node_id)
        if node is None:
            raise node_error(
                NODE_NOT_FOUND,
                f"Node not found in page \"{page.name}\" ({page.id}): {node_id}",
                nodeId=node_id, pageId=page.id,
            )
        return node
    node = document.find_by_id(node_id)
    if node is None:
        raise node_error(NODE_NOT_FOUND, f"Node not found: {node_id}", nodeId=node_id)
    return node


async def _traverse_from(start: SceneNode, params: ListNodesParams, include_hidden: bool) -> List[SceneNode]:
    mode = params.traversal or "descendants"

    if mode == "children":
        if isinstance(start, PageNode):
            await start.load_async()
        return list(start.children) if start.is_container else []

    if mode == "ancestors":
        ancestors = []
        current = start.parent
        while current is not None and current.type != NodeType.PAGE:
            ancestors.append(current)
            current = current.parent
        return ancestors

    if mode == "siblings":
        parent = start.parent
        if parent is None:
            return []
        return [child for child in parent.children if child is not start]

    # descendants
    if isinstance(start, PageNode):
        await start.load_async()
        nodes: List[SceneNode] = []
        for child in start.children:
            nodes.extend(all_descendants(child, include_hidden, params.max_depth, current_depth=1))
        return nodes
    return all_descendants(start, include_hidden, params.max_depth)


async def collect_nodes(document: Document, params: ListNodesParams) -> List[SceneNode]:
    """Resolve the unfiltered node sequence for a list request."""
    include_hidden = params.filter_by_visibility != "visible"
    target_page = await resolve_target_page(document, params)

    if params.include_all_pages:
        await document.load_all_pages_async()

    # An explicit but empty start set selects nothing
    if params.node_id is not None:
        nodes: List[SceneNode] = []
        for node_id in params.start_ids:
            start = _find_start_node(document, params, target_page, node_id)
            nodes.extend(await _traverse_from(start, params, include_hidden))
        return nodes

    if params.include_all_pages:
        nodes = []
        for page in document.pages:
            await page.load_async()
            nodes.extend(all_descendants(page, include_hidden, params.max_depth))
        return nodes

    return all_descendants(target_page, include_hidden, params.max_depth)


# ============================================
# ============ FILTER PIPELINE ===============
# ============================================

def filter_nodes(nodes: List[SceneNode], params: ListNodesParams, name_pattern: Optional[Pattern] = None) -> List[SceneNode]:
    """Apply the filter stages in their fixed order; each keeps traversal order."""
    if params.filter_by_visibility == "visible":
        nodes = [node for node in nodes if node.visible]
    elif params.filter_by_visibility == "hidden":
        nodes = [node for node in nodes if not node.visible]

    if not params.include_all_pages:
        nodes = [node for node in nodes if node.type != NodeType.PAGE]

    if params.filter_by_type:
        wanted = {str(t).upper() for t in params.filter_by_type}
        nodes = [node for node in nodes if node.type.value in wanted]

    if name_pattern is not None:
        nodes = [node for node in nodes if name_pattern.search(node.name)]

    if params.filter_by_locked_state is not None:
        nodes = [node for node in nodes if node.locked == params.filter_by_locked_state]

    # maxResults of 0 means no cap
    if params.max_results and len(nodes) > params.max_results:
        nodes = nodes[:params.max_results]

    return nodes


async def query_nodes(document: Document, params: ListNodesParams) -> List[SceneNode]:
    # Compile first so a bad pattern fails before any page is loaded
    name_pattern = params.compile_name_filter()
    nodes = await collect_nodes(document, params)
    logger.debug(f"🔎 Traversal produced {len(nodes)} node(s) before filtering")
    return filter_nodes(nodes, params, name_pattern)

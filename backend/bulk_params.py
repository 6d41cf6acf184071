"""
Bulk Params - Fan-out of scalar/array parameter bags

A bulk request is a flat parameter bag whose values are scalars, lists, or
JSON text encoding a list. This module turns such a bag into one scalarized
parameter set per item, runs the items one after another with per-item
failure isolation, and assembles the bulk summary.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

from node_errors import INVALID_PARAMETER, UNKNOWN_ERROR, ToolExecutionError, node_error

logger = logging.getLogger(__name__)

# Keys that never fan out
NON_BULK_KEYS = frozenset({"operation", "count"})

DUPLICATE_OPERATION = "duplicate"


@dataclass
class BulkItem:
    """One scalarized slice of a bulk request."""

    index: int
    params: Dict[str, Any]
    # Keys whose value came from an array in the incoming request
    array_keys: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def node_id(self) -> Optional[str]:
        value = self.params.get("nodeId")
        return str(value) if value is not None else None


def parse_array_param(value: Any) -> Any:
    """Decode JSON text that encodes a list; anything else is returned unchanged.

    Malformed JSON stays a plain string. Callers rely on this, so it is not an error.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not (text.startswith("[") and text.endswith("]")):
        return value
    try:
        parsed = json.loads(text)
    except ValueError:
        logger.debug(f"🧩 Treating unparseable array-like string as scalar: {value[:80]}")
        return value
    return parsed if isinstance(parsed, list) else value


def normalize_bulk_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of params with JSON-encoded arrays decoded."""
    return {key: (value if key in NON_BULK_KEYS else parse_array_param(value))
            for key, value in params.items()}


def validate_count(params: Dict[str, Any], operation: str) -> Optional[int]:
    """Check the duplicate-only `count` parameter and return it as an int."""
    count = params.get("count")
    if count is None:
        return None
    if operation != DUPLICATE_OPERATION:
        raise node_error(
            INVALID_PARAMETER,
            f"Parameter 'count' is only valid for duplicate operations (got operation '{operation}')",
            parameter="count", operation=operation,
        )
    try:
        count = int(count)
    except (TypeError, ValueError):
        raise node_error(INVALID_PARAMETER, f"Parameter 'count' must be an integer, got {count!r}", parameter="count")
    if count < 1:
        raise node_error(INVALID_PARAMETER, f"Parameter 'count' must be at least 1, got {count}", parameter="count")
    return count


def bulk_item_count(params: Dict[str, Any], count: Optional[int] = None) -> int:
    """Number of items a (normalized) bag represents: the longest array, at least 1.

    An explicit duplicate count raises the number independently of array lengths.
    """
    lengths = [len(value) for key, value in params.items()
               if key not in NON_BULK_KEYS and isinstance(value, list)]
    total = max(lengths, default=1)
    if count is not None:
        total = max(total, count)
    return max(1, total)


def distribute_bulk_params(params: Dict[str, Any], count: Optional[int] = None) -> List[BulkItem]:
    """Split a normalized bag into scalarized items, cycling shorter arrays."""
    total = bulk_item_count(params, count)
    array_keys = frozenset(key for key, value in params.items()
                           if key not in NON_BULK_KEYS and isinstance(value, list))
    items: List[BulkItem] = []
    for index in range(total):
        item_params: Dict[str, Any] = {}
        for key, value in params.items():
            if key in NON_BULK_KEYS:
                continue
            if key in array_keys:
                # An empty array contributes nothing to this item
                if value:
                    item_params[key] = value[index % len(value)]
            else:
                item_params[key] = value
        items.append(BulkItem(index=index, params=item_params, array_keys=array_keys))
    return items


def failure_record(error: Exception, item: BulkItem) -> Dict[str, Any]:
    code = error.code if isinstance(error, ToolExecutionError) else UNKNOWN_ERROR
    message = error.message if isinstance(error, ToolExecutionError) and error.message else str(error)
    return {
        "success": False,
        "index": item.index,
        "nodeId": item.node_id,
        "code": code,
        "error": message,
    }


def create_bulk_summary(results: List[Dict[str, Any]], operation: str) -> Dict[str, Any]:
    failed = sum(1 for result in results if result.get("success") is False)
    return {
        "success": failed == 0,
        "operation": operation,
        "total": len(results),
        "succeeded": len(results) - failed,
        "failed": failed,
        "results": results,
    }


async def run_bulk(
    operation: str,
    items: List[BulkItem],
    execute: Callable[[BulkItem], Awaitable[Dict[str, Any]]],
) -> Dict[str, Any]:
    """Execute items strictly in order; a failing item never stops the rest."""
    results: List[Dict[str, Any]] = []
    for item in items:
        try:
            results.append(await execute(item))
        except Exception as e:
            logger.warning(f"⚠️ {operation} item {item.index} failed (nodeId={item.node_id}): {e}")
            results.append(failure_record(e, item))
    summary = create_bulk_summary(results, operation)
    logger.info(f"📦 {operation}: {summary['succeeded']}/{summary['total']} item(s) succeeded")
    return summary

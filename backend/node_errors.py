"""
Node Errors - Structured failures for node operations

Every failure raised by the node engine is a ToolExecutionError carrying a
structured payload { code, message, details } so that the bridge can forward
it to the agent unchanged.
"""

from typing import Any, Dict, Optional

# Request-level (validation) codes: the whole request fails before any mutation
MISSING_PARAMETER = "missing_parameter"
UNKNOWN_OPERATION = "unknown_operation"
INVALID_PARAMETER = "invalid_parameter"
INVALID_REGEX = "invalid_regex"

# Item-level codes: only the affected bulk item fails
NODE_NOT_FOUND = "node_not_found"
PAGE_NOT_FOUND = "page_not_found"
PARENT_NOT_FOUND = "parent_not_found"
NODE_TYPE_MISMATCH = "node_type_mismatch"
INVALID_PARENT_TYPE = "invalid_parent_type"
INVALID_DIMENSIONS = "invalid_dimensions"
UNSUPPORTED_OPERATION = "unsupported_operation"
PAGE_NOT_LOADED = "page_not_loaded"

UNKNOWN_ERROR = "unknown_plugin_error"


class ToolExecutionError(Exception):
    """
    Specialized exception for node operation failures.

    Carries a structured payload allowing the agent to self-correct.
    Payload shape: { code: str, message: str, details?: dict }
    """

    def __init__(self, payload: Any, operation: Optional[str] = None):
        self.operation = operation

        if isinstance(payload, dict):
            self.code: str = str(payload.get("code", UNKNOWN_ERROR))
            self.message: str = str(payload.get("message", ""))
            self.details: Dict[str, Any] = payload.get("details", {}) or {}
        else:
            self.code = UNKNOWN_ERROR
            self.message = str(payload)
            self.details = {}

        self.payload = {"code": self.code, "message": self.message, "details": self.details}

        # Exception text is simply the structured message (or the code when empty)
        super().__init__(self.message if self.message else self.code)


def node_error(code: str, message: str, **details: Any) -> ToolExecutionError:
    """Build a ToolExecutionError from a code, message and keyword details."""
    return ToolExecutionError({"code": code, "message": message, "details": details})

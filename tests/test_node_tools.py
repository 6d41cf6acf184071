import asyncio
import json

import pytest

import node_tools
from node_errors import ToolExecutionError
from node_tools import figma_nodes, figma_nodes_tool, set_document


@pytest.fixture
def tool_document(document):
    set_document(document)
    yield document
    set_document(None)


def test_tool_is_registered_under_function_name():
    assert figma_nodes_tool.name == "figma_nodes"


def test_returns_json_string(tool_document):
    output = asyncio.run(figma_nodes("get", {"nodeId": "10:1", "detail": "minimal"}))
    assert isinstance(output, str)
    payload = json.loads(output)
    assert payload["results"] == [{"id": "10:1", "name": "Header", "type": "FRAME"}]


def test_list_without_params(tool_document):
    payload = json.loads(asyncio.run(figma_nodes("list")))
    assert [record["name"] for record in payload["data"]][:2] == ["Header", "Logo"]


def test_operation_argument_wins_over_params(tool_document):
    payload = json.loads(asyncio.run(figma_nodes("get", {"operation": "delete", "nodeId": "10:5"})))
    assert payload["operation"] == "get"
    assert tool_document.find_by_id("10:5") is not None


def test_structured_errors_propagate(tool_document):
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(figma_nodes("explode"))
    assert excinfo.value.code == "unknown_operation"


def test_unexpected_errors_are_wrapped(tool_document, monkeypatch):
    async def broken(document, request):
        raise KeyError("boom")

    monkeypatch.setattr(node_tools, "manage_nodes", broken)
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(figma_nodes("get", {"nodeId": "10:1"}))
    assert excinfo.value.code == "unknown_plugin_error"
    assert excinfo.value.details == {"operation": "get"}


def test_document_must_be_set():
    set_document(None)
    with pytest.raises(RuntimeError):
        node_tools.get_document()

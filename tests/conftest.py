"""Pytest configuration file"""

import asyncio

import pytest

from document_model import Document
from manage_nodes import manage_nodes

SNAPSHOT = {
    "name": "Design System",
    "pages": [
        {
            "id": "0:1",
            "name": "Home",
            "children": [
                {
                    "id": "10:1", "type": "FRAME", "name": "Header",
                    "x": 0, "y": 0, "width": 200, "height": 100,
                    "children": [
                        {"id": "10:2", "type": "RECTANGLE", "name": "Logo", "x": 10, "y": 10, "width": 50, "height": 50},
                        {
                            "id": "10:3", "type": "GROUP", "name": "Nav",
                            "x": 80, "y": 10, "width": 100, "height": 40,
                            "children": [
                                {"id": "10:4", "type": "ELLIPSE", "name": "Dot", "x": 85, "y": 15, "width": 10, "height": 10},
                            ],
                        },
                    ],
                },
                {"id": "10:5", "type": "RECTANGLE", "name": "Card", "x": 300, "y": 0, "width": 100, "height": 100, "locked": True},
                {"id": "10:6", "type": "STAR", "name": "Hidden Star", "x": 0, "y": 300, "width": 40, "height": 40, "visible": False},
            ],
        },
        {
            "id": "0:2",
            "name": "Archive",
            "loaded": False,
            "children": [
                {
                    "id": "20:1", "type": "FRAME", "name": "Old Frame",
                    "x": 0, "y": 0, "width": 400, "height": 400,
                    "children": [
                        {"id": "20:2", "type": "POLYGON", "name": "Old Triangle", "x": 20, "y": 20, "width": 60, "height": 60},
                    ],
                },
            ],
        },
    ],
}


@pytest.fixture
def document():
    return Document.from_dict(SNAPSHOT)


@pytest.fixture
def empty_document():
    document = Document("Empty")
    document.create_page("Canvas")
    return document


@pytest.fixture
def run():
    """Run one request synchronously against a document."""
    def _run(document, **request):
        return asyncio.run(manage_nodes(document, request))
    return _run

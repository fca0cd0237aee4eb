import asyncio
import json

import pytest

from mindscape.core.config import Settings
from mindscape.schemas.mindmap import Link, MindMap, Subtopic


DATA_STRUCTURES = {
    "topic": "Data Structures",
    "subtopics": [
        {
            "id": "arrays",
            "parentId": None,
            "name": "Arrays",
            "details": "Arrays are a collection of elements identified by index or key.",
            "links": [
                {
                    "title": "GeeksforGeeks - Arrays",
                    "type": "website",
                    "url": "https://www.geeksforgeeks.org/array-data-structure/",
                }
            ],
        },
        {
            "id": "static-vs-dynamic-arrays",
            "parentId": "arrays",
            "name": "Static vs Dynamic Arrays",
            "details": "Static arrays have a fixed size; dynamic arrays resize.",
            "links": [],
        },
        {
            "id": "linked-lists",
            "parentId": None,
            "name": "Linked Lists",
            "details": "Nodes connected using pointers.",
            "links": [],
        },
    ],
}


class FakeLLM:
    """Stands in for LLMClient: replays canned replies and records prompts."""

    def __init__(self, replies=None, structured_output=False, error=None, delay=0):
        self.replies = list(replies or [])
        self.structured_output = structured_output
        self.error = error
        self.delay = delay
        self.calls = []

    async def _reply(self, kind, system_prompt, user_prompt):
        self.calls.append((kind, system_prompt, user_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.replies.pop(0)

    async def complete_json(self, system_prompt, user_prompt):
        return await self._reply("json", system_prompt, user_prompt)

    async def complete_text(self, system_prompt, user_prompt):
        return await self._reply("text", system_prompt, user_prompt)


@pytest.fixture
def settings():
    return Settings(USE_LOCAL_MODELS=True, VALIDATE_LINKS=False, AI_PROVIDER="hybrid")


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def data_structures_json():
    return json.dumps(DATA_STRUCTURES)


@pytest.fixture
def sample_map():
    """
    Data Structures
    ├── Arrays
    │   ├── Static vs Dynamic Arrays
    │   └── Multidimensional Arrays
    └── Linked Lists
        └── Doubly Linked Lists
    """
    link = Link(title="Docs", type="website", url="https://example.com/docs")
    return MindMap(
        topic="Data Structures",
        subtopics=[
            Subtopic(
                name="Arrays",
                details="Indexed collections.",
                links=[link],
                subtopics=[
                    Subtopic(name="Static vs Dynamic Arrays", details="Fixed or growable."),
                    Subtopic(name="Multidimensional Arrays", details="Arrays of arrays."),
                ],
            ),
            Subtopic(
                name="Linked Lists",
                details="Pointer-linked nodes.",
                subtopics=[Subtopic(name="Doubly Linked Lists", details="Two pointers per node.")],
            ),
        ],
    )

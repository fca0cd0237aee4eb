import json

import pytest

from mindscape.services.generator import EXPANSION_ERROR_NAME, GenerationError, MindMapGenerator
from mindscape.services.session import MindMapSession


def _children(*names):
    return json.dumps({
        "subtopics": [
            {"id": name.lower(), "parentId": None, "name": name, "details": name, "links": []}
            for name in names
        ]
    })


@pytest.mark.asyncio
async def test_load_then_expand(settings, fake_llm, data_structures_json):
    llm = fake_llm([data_structures_json, _children("Fixed Size", "Resizable")])
    session = MindMapSession(MindMapGenerator(settings, llm))

    await session.load("Data Structures")
    linked_lists = session.mind_map.subtopics[1]
    merged = await session.expand("Arrays-Static-vs-Dynamic-Arrays")

    static_vs_dynamic = merged.subtopics[0].subtopics[0]
    assert [c.name for c in static_vs_dynamic.subtopics] == ["Fixed Size", "Resizable"]
    assert merged.subtopics[1] is linked_lists
    assert session.mind_map is merged
    # the node id is resolved back to its display name for the prompt
    assert llm.calls[1][2] == (
        'Expand the subtopic "Static vs Dynamic Arrays" with node ID "Arrays-Static-vs-Dynamic-Arrays".'
    )


@pytest.mark.asyncio
async def test_failed_expansion_merges_error_node(settings, fake_llm, data_structures_json):
    llm = fake_llm([data_structures_json, "<html>502 Bad Gateway</html>"])
    session = MindMapSession(MindMapGenerator(settings, llm))

    await session.load("Data Structures")
    merged = await session.expand("Linked-Lists")

    assert [c.name for c in merged.subtopics[1].subtopics] == [EXPANSION_ERROR_NAME]
    assert merged.subtopics[1].subtopics[0].links == []
    assert [c.name for c in merged.subtopics[0].subtopics] == ["Static vs Dynamic Arrays"]


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_map(settings, fake_llm, data_structures_json):
    llm = fake_llm([data_structures_json, "not json at all"])
    session = MindMapSession(MindMapGenerator(settings, llm))

    first = await session.load("Data Structures")
    with pytest.raises(GenerationError):
        await session.load("Graphs")

    assert session.mind_map is first


@pytest.mark.asyncio
async def test_failed_first_load_leaves_nothing(settings, fake_llm):
    session = MindMapSession(MindMapGenerator(settings, fake_llm(error=RuntimeError("down"))))
    with pytest.raises(GenerationError):
        await session.load("Data Structures")
    assert session.mind_map is None


@pytest.mark.asyncio
async def test_stale_node_id_leaves_map_unchanged(settings, fake_llm, data_structures_json):
    llm = fake_llm([data_structures_json, _children("Whatever")])
    session = MindMapSession(MindMapGenerator(settings, llm))

    before = await session.load("Data Structures")
    after = await session.expand("Graphs-Directed-Graphs")

    assert after is before
    # unknown ids fall back to the map topic for the prompt
    assert '"Data Structures"' in llm.calls[1][2]


@pytest.mark.asyncio
async def test_expand_requires_loaded_map(settings, fake_llm):
    session = MindMapSession(MindMapGenerator(settings, fake_llm()))
    with pytest.raises(ValueError):
        await session.expand("Arrays")


@pytest.mark.asyncio
async def test_reset_discards_map(settings, fake_llm, data_structures_json):
    session = MindMapSession(MindMapGenerator(settings, fake_llm([data_structures_json])))
    await session.load("Data Structures")
    session.reset()
    assert session.mind_map is None

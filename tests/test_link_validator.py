import asyncio

import httpx
import pytest

from mindscape.schemas.mindmap import Link, MindMap, Subtopic
from mindscape.services.link_validator import LinkValidator, is_valid_url, settle_all


def _link(url):
    return Link(title=url, type="website", url=url)


def _tree(*root_urls, child_urls=()):
    return [
        Subtopic(
            name="Root",
            details="",
            links=[_link(u) for u in root_urls],
            subtopics=[
                Subtopic(name="Child", details="", links=[_link(u) for u in child_urls]),
                Subtopic(name="Empty", details=""),
            ],
        )
    ]


def _handler(request: httpx.Request) -> httpx.Response:
    assert request.method == "HEAD"
    host = request.url.host
    if host == "alive.example":
        return httpx.Response(200)
    if host == "moved.example":
        return httpx.Response(301, headers={"Location": "https://alive.example/new"})
    if host == "down.example":
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.Response(404)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://example.com/page", True),
        ("http://example.com", True),
        ("not a url", False),
        ("/relative/path", False),
        ("ftp://example.com/file", False),
        ("https://", False),
        ("", False),
    ],
)
def test_is_valid_url(url, expected):
    assert is_valid_url(url) is expected


@pytest.mark.asyncio
async def test_invalid_urls_are_dropped_without_probing():
    probed = []

    async def probe(url):
        probed.append(url)
        return True

    tree = _tree("not a url", "mailto:someone", child_urls=("::::",))
    validated = await LinkValidator(probe=probe).validate(tree)

    assert probed == []
    assert validated[0].links == []
    assert validated[0].subtopics[0].links == []
    assert [c.name for c in validated[0].subtopics] == ["Child", "Empty"]


@pytest.mark.asyncio
async def test_http_probe_keeps_only_live_links():
    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    tree = _tree(
        "https://alive.example/a",
        "https://missing.example/b",
        "https://down.example/c",
        child_urls=("https://moved.example/old", "https://missing.example/x"),
    )

    async with client:
        validated = await LinkValidator(client=client).validate(tree)

    assert [l.url for l in validated[0].links] == ["https://alive.example/a"]
    assert [l.url for l in validated[0].subtopics[0].links] == ["https://moved.example/old"]


@pytest.mark.asyncio
async def test_children_validated_independently_of_parent():
    async def probe(url):
        return "good" in url

    tree = _tree("https://bad.example/", child_urls=("https://good.example/",))
    validated = await LinkValidator(probe=probe).validate(tree)

    assert validated[0].links == []
    assert [l.url for l in validated[0].subtopics[0].links] == ["https://good.example/"]


@pytest.mark.asyncio
async def test_probe_exceptions_never_escape():
    async def probe(url):
        raise RuntimeError("boom")

    tree = _tree("https://a.example/", child_urls=("https://b.example/",))
    validated = await LinkValidator(probe=probe).validate(tree)

    assert validated[0].links == []
    assert validated[0].subtopics[0].links == []


@pytest.mark.asyncio
async def test_input_tree_is_not_mutated():
    async def probe(url):
        return False

    tree = _tree("https://a.example/")
    await LinkValidator(probe=probe).validate(tree)
    assert [l.url for l in tree[0].links] == ["https://a.example/"]


@pytest.mark.asyncio
async def test_all_probes_in_flight_together():
    in_flight = 0
    peak = 0

    async def probe(url):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return True

    tree = _tree(
        "https://a.example/1",
        "https://a.example/2",
        child_urls=("https://b.example/1", "https://b.example/2", "https://b.example/3"),
    )
    validated = await LinkValidator(probe=probe).validate(tree)

    assert peak == 5
    assert len(validated[0].links) == 2
    assert len(validated[0].subtopics[0].links) == 3


@pytest.mark.asyncio
async def test_validate_mind_map_keeps_topic():
    async def probe(url):
        return True

    mind_map = MindMap(topic="T", subtopics=_tree("https://a.example/"))
    validated = await LinkValidator(probe=probe).validate_mind_map(mind_map)
    assert validated.topic == "T"
    assert validated.subtopics[0].links[0].url == "https://a.example/"


@pytest.mark.asyncio
async def test_settle_all_returns_failures_in_place():
    async def ok():
        return 1

    async def bad():
        raise ValueError("nope")

    results = await settle_all([ok(), bad(), ok()])
    assert results[0] == 1 and results[2] == 1
    assert isinstance(results[1], ValueError)


@pytest.mark.asyncio
async def test_large_tree_keeps_links_beyond_pool_size():
    seen_timeouts = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_timeouts.append(request.extensions["timeout"])
        return httpx.Response(200)

    urls = [f"https://alive.example/{i}" for i in range(150)]
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    async with client:
        validated = await LinkValidator(timeout=2.0, client=client).validate(
            _tree(*urls[:120], child_urls=urls[120:])
        )

    assert len(validated[0].links) == 120
    assert len(validated[0].subtopics[0].links) == 30
    assert len(seen_timeouts) == 150
    assert all(t["pool"] is None and t["read"] == 2.0 for t in seen_timeouts)


@pytest.mark.asyncio
async def test_failed_subtree_keeps_nodes_but_no_links():
    class FailingChild(LinkValidator):
        async def _validate_node(self, probe, subtopic):
            if subtopic.name == "Child":
                raise RuntimeError("boom")
            return await super()._validate_node(probe, subtopic)

    async def probe(url):
        return True

    tree = _tree("https://a.example/", child_urls=("https://b.example/",))
    tree[0].subtopics[0].subtopics.append(
        Subtopic(name="Grandchild", details="", links=[_link("https://c.example/")])
    )
    validated = await FailingChild(probe=probe).validate(tree)

    child = validated[0].subtopics[0]
    assert [l.url for l in validated[0].links] == ["https://a.example/"]
    assert child.name == "Child" and child.links == []
    assert [g.name for g in child.subtopics] == ["Grandchild"]
    assert child.subtopics[0].links == []

"""
Mindscape — Link Validator
===========================
Best-effort cleanup pass over a generated tree: every link is probed with
a HEAD request (redirects followed) and kept only on a success status.

All links of a node and all sibling subtrees are probed concurrently; the
pass returns once every probe has settled. Failures never propagate, the
worst outcome is a tree with no links left.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

import httpx

from mindscape.core.tree import iter_nodes
from mindscape.schemas.mindmap import Link, MindMap, Subtopic

logger = logging.getLogger(__name__)

Probe = Callable[[str], Awaitable[bool]]


def is_valid_url(url: str) -> bool:
    """Syntactic check only: absolute http(s) URL with a host."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError, ValueError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


async def settle_all(awaitables: Sequence[Awaitable]) -> list:
    """Wait for every awaitable; failed ones come back as exceptions, not raised."""
    return await asyncio.gather(*awaitables, return_exceptions=True)


def _without_links(subtopic: Subtopic) -> Subtopic:
    """Copy of `subtopic` with every link in it removed, children included."""
    return subtopic.model_copy(update={
        "links": [],
        "subtopics": [_without_links(child) for child in subtopic.subtopics],
    })


class LinkValidator:
    """Prunes dead links from a tree. Pass `probe` to replace the HTTP check."""

    def __init__(
        self,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
        probe: Optional[Probe] = None,
    ):
        self.timeout = timeout
        self._client = client
        self._probe = probe

    @property
    def _probe_timeout(self) -> httpx.Timeout:
        # no limit on the wait for a pooled connection
        return httpx.Timeout(self.timeout, pool=None)

    async def _head(self, client: httpx.AsyncClient, url: str) -> bool:
        response = await client.head(url, follow_redirects=True, timeout=self._probe_timeout)
        return response.is_success

    async def _check(self, probe: Probe, link: Link) -> Optional[Link]:
        if not is_valid_url(link.url):
            logger.debug(f"[LINKS] Dropped malformed url: {link.url!r}")
            return None
        if await probe(link.url):
            return link
        logger.debug(f"[LINKS] Dropped dead url: {link.url}")
        return None

    async def _validate_node(self, probe: Probe, subtopic: Subtopic) -> Subtopic:
        link_results, child_results = await asyncio.gather(
            settle_all([self._check(probe, link) for link in subtopic.links]),
            settle_all([self._validate_node(probe, child) for child in subtopic.subtopics]),
        )

        links = [r for r in link_results if isinstance(r, Link)]
        children: List[Subtopic] = []
        for original, result in zip(subtopic.subtopics, child_results):
            if isinstance(result, Subtopic):
                children.append(result)
            else:
                logger.warning(f"[LINKS] Validation of '{original.name}' failed: {result}")
                children.append(_without_links(original))

        return subtopic.model_copy(update={"links": links, "subtopics": children})

    async def validate(self, subtopics: Sequence[Subtopic]) -> List[Subtopic]:
        """Return copies of `subtopics` with unreachable links removed."""
        if self._probe is not None:
            return await self._run(self._probe, subtopics)

        if self._client is not None:
            return await self._run(lambda url: self._head(self._client, url), subtopics)

        async with httpx.AsyncClient(timeout=self._probe_timeout) as client:
            return await self._run(lambda url: self._head(client, url), subtopics)

    async def _run(self, probe: Probe, subtopics: Sequence[Subtopic]) -> List[Subtopic]:
        results = await settle_all([self._validate_node(probe, s) for s in subtopics])
        validated = [
            result if isinstance(result, Subtopic) else _without_links(original)
            for original, result in zip(subtopics, results)
        ]
        kept = sum(len(s.links) for _, s in iter_nodes(validated))
        total = sum(len(s.links) for _, s in iter_nodes(subtopics))
        logger.info(f"[LINKS] ✓ Kept {kept}/{total} links")
        return validated

    async def validate_mind_map(self, mind_map: MindMap) -> MindMap:
        return mind_map.model_copy(
            update={"subtopics": await self.validate(mind_map.subtopics)}
        )

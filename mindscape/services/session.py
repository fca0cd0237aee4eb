"""
Mindscape — Mind Map Session
=============================
Owns the one MindMap a user is looking at and applies expansions to it.
Mirrors what the browser does: load once, then expand node by node.
"""

import logging
from typing import Optional

from mindscape.core.merge import merge_expanded, resolve_node_topic
from mindscape.schemas.mindmap import MindMap
from mindscape.services.generator import MindMapGenerator

logger = logging.getLogger(__name__)


class MindMapSession:

    def __init__(self, generator: MindMapGenerator):
        self.generator = generator
        self.mind_map: Optional[MindMap] = None

    async def load(self, topic: str) -> MindMap:
        """
        Generate a fresh map. On failure GenerationError propagates and
        the current map is kept as it was.
        """
        mind_map = await self.generator.generate_full(topic)
        self.mind_map = mind_map
        return mind_map

    async def expand(self, node_id: str) -> MindMap:
        """
        Generate children for `node_id` and graft them in. The merged map
        replaces the current one in a single assignment once generation
        is done, so a cancelled expansion leaves the map untouched.
        """
        if self.mind_map is None:
            raise ValueError("No mind map loaded; call load() first.")

        topic = resolve_node_topic(self.mind_map, node_id)
        expanded = await self.generator.expand(topic, node_id)

        # merge against the map as it is now, not as it was before the await
        if self.mind_map is None:
            logger.info(f"[SESSION] Session reset while expanding '{node_id}', result discarded")
            raise ValueError("Session was reset during expansion.")
        self.mind_map = merge_expanded(self.mind_map, expanded, node_id)
        return self.mind_map

    def reset(self) -> None:
        logger.info("[SESSION] Reset")
        self.mind_map = None

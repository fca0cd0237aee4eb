"""
Mindscape — Generation Orchestrator
====================================
topic (+ optional node id) → prompt → model → flat records
      → nested tree → link validation → MindMap

Two modes:
  • Full generation — a whole map for a topic. Any failure raises
    GenerationError so the caller can answer with an error status.
  • Expansion — only the children of one node. Failures are absorbed
    into a single "Error expanding topic" node so an already rendered
    tree is never broken by a bad expansion.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from mindscape.core.config import Settings
from mindscape.core.tree import reconstruct, slugify
from mindscape.schemas.mindmap import FlatMindMap, FlatSubtopic, Link, MindMap, Subtopic
from mindscape.services.link_validator import LinkValidator
from mindscape.services.llm_service import (
    LOCAL_SYSTEM_PROMPT,
    REMOTE_SYSTEM_PROMPT,
    build_user_prompt,
    clean_and_parse_json,
)

logger = logging.getLogger(__name__)

EXPANSION_ERROR_NAME = "Error expanding topic"
EXPANSION_ERROR_DETAILS = "Failed to expand this topic. Please try again."


class GenerationError(RuntimeError):
    """Full generation failed: model call or model output unusable."""


class ModelBackend(Protocol):
    structured_output: bool

    async def complete_json(self, system_prompt: str, user_prompt: str) -> str: ...

    async def complete_text(self, system_prompt: str, user_prompt: str) -> str: ...


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SCHEMA CHECKING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class ParseOutcome:
    """Tagged result of checking model output against the flat schema."""
    ok: bool
    value: Optional[FlatMindMap] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: FlatMindMap) -> "ParseOutcome":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "ParseOutcome":
        return cls(ok=False, error=error)


def _lenient_record(raw: Any) -> Optional[FlatSubtopic]:
    """Fill the gaps small local models leave; None if the record is unusable."""
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    links: List[Link] = []
    for link in raw.get("links") or []:
        if not isinstance(link, dict) or not isinstance(link.get("url"), str):
            continue
        try:
            links.append(Link(
                title=str(link.get("title") or link["url"]),
                type=str(link.get("type") or "website"),
                url=link["url"],
            ))
        except ValidationError:
            continue

    record_id = raw.get("id")
    parent_id = raw.get("parentId")
    try:
        return FlatSubtopic(
            id=str(record_id) if record_id else slugify(name),
            parent_id=str(parent_id) if parent_id else None,
            name=name,
            details=str(raw.get("details") or ""),
            links=links,
        )
    except ValidationError:
        return None


def parse_flat_mind_map(data: Any, topic: str, strict: bool) -> ParseOutcome:
    """
    Check decoded model output against the flat record schema.

    strict=True is used for JSON-mode backends: any schema violation is a
    failure. strict=False salvages every usable record from free-text
    backends and fails only when nothing usable is left.
    """
    if not isinstance(data, dict):
        return ParseOutcome.failure("Model output is not a JSON object")

    if strict:
        try:
            return ParseOutcome.success(FlatMindMap.model_validate(data))
        except ValidationError as e:
            return ParseOutcome.failure(f"Model output violates schema: {e.error_count()} error(s)")

    raw_subtopics = data.get("subtopics")
    if not isinstance(raw_subtopics, list):
        return ParseOutcome.failure("Model output has no 'subtopics' list")

    records = [r for r in (_lenient_record(raw) for raw in raw_subtopics) if r is not None]
    if not records:
        return ParseOutcome.failure("Model output has no usable subtopics")

    response_topic = data.get("topic")
    return ParseOutcome.success(FlatMindMap(
        topic=response_topic if isinstance(response_topic, str) and response_topic.strip() else topic,
        subtopics=records,
    ))


def scope_to_node(records: List[FlatSubtopic], node_id: str) -> List[FlatSubtopic]:
    """Re-parent every record under `node_id`, with ids namespaced by it."""
    return [
        record.model_copy(update={
            "id": f"{node_id}-{slugify(record.name)}",
            "parent_id": node_id,
        })
        for record in records
    ]


def expansion_error_map(topic: str) -> MindMap:
    return MindMap(
        topic=topic,
        subtopics=[Subtopic(name=EXPANSION_ERROR_NAME, details=EXPANSION_ERROR_DETAILS)],
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ORCHESTRATOR
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class MindMapGenerator:
    """Drives one generation or expansion request end to end."""

    def __init__(
        self,
        settings: Settings,
        llm: ModelBackend,
        link_validator: Optional[LinkValidator] = None,
    ):
        self.settings = settings
        self.llm = llm
        if link_validator is None and settings.VALIDATE_LINKS:
            link_validator = LinkValidator(timeout=settings.LINK_CHECK_TIMEOUT_SECONDS)
        self.link_validator = link_validator

    async def _request_flat_map(self, topic: str, node_id: Optional[str]) -> ParseOutcome:
        user_prompt = build_user_prompt(topic, node_id)

        if self.llm.structured_output:
            raw = await self.llm.complete_json(REMOTE_SYSTEM_PROMPT, user_prompt)
        else:
            raw = await self.llm.complete_text(LOCAL_SYSTEM_PROMPT, user_prompt)

        try:
            data: Dict[str, Any] = clean_and_parse_json(raw)
        except ValueError as e:
            return ParseOutcome.failure(str(e))

        return parse_flat_mind_map(data, topic, strict=self.llm.structured_output)

    async def _build(self, flat_map: FlatMindMap) -> MindMap:
        mind_map = MindMap(topic=flat_map.topic, subtopics=reconstruct(flat_map.subtopics))
        if self.link_validator is not None:
            mind_map = await self.link_validator.validate_mind_map(mind_map)
        return mind_map

    async def generate_full(self, topic: str) -> MindMap:
        """Whole map for `topic`. Raises GenerationError on any failure."""
        logger.info(f"[GENERATE] Starting: '{topic}'")
        try:
            outcome = await self._request_flat_map(topic, None)
        except (RuntimeError, ValueError) as e:
            logger.error(f"[GENERATE] Model call failed: {e}")
            raise GenerationError(f"Mind map generation failed: {e}") from e

        if not outcome.ok:
            logger.error(f"[GENERATE] Unusable model output: {outcome.error}")
            raise GenerationError(f"Mind map generation failed: {outcome.error}")

        mind_map = await self._build(outcome.value)
        logger.info(f"[GENERATE] ✓ '{mind_map.topic}' with {len(mind_map.subtopics)} top-level subtopics")
        return mind_map

    async def expand(self, topic: str, node_id: str) -> MindMap:
        """Children for the node `node_id`. Never raises for model failures."""
        logger.info(f"[EXPAND] Starting: '{topic}' at '{node_id}'")
        try:
            outcome = await asyncio.wait_for(
                self._request_flat_map(topic, node_id),
                timeout=self.settings.AI_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error(f"[EXPAND] Model call timed out after {self.settings.AI_TIMEOUT_SECONDS}s")
            return expansion_error_map(topic)
        except Exception as e:
            logger.error(f"[EXPAND] Model call failed: {e}")
            return expansion_error_map(topic)

        if not outcome.ok:
            logger.error(f"[EXPAND] Unusable model output: {outcome.error}")
            return expansion_error_map(topic)

        scoped = FlatMindMap(topic=topic, subtopics=scope_to_node(outcome.value.subtopics, node_id))
        mind_map = await self._build(scoped)
        logger.info(f"[EXPAND] ✓ {len(mind_map.subtopics)} subtopics for '{node_id}'")
        return mind_map

    async def generate(self, topic: str, node_id: Optional[str] = None) -> MindMap:
        """Single entry point: expansion when `node_id` is given."""
        if node_id:
            return await self.expand(topic, node_id)
        return await self.generate_full(topic)

"""Markdown / JSON renderings of a finished mind map."""

import json
import logging

from mindscape.schemas.mindmap import MindMap, Subtopic

logger = logging.getLogger(__name__)


def export_filename(mind_map: MindMap, extension: str) -> str:
    """e.g. "Data Structures" → "Data_Structures_mind_map.md"."""
    return f"{'_'.join(mind_map.topic.split())}_mind_map.{extension}"


def _render_subtopic(subtopic: Subtopic, depth: int, lines: list[str]) -> None:
    lines.append(f"{'#' * (depth + 1)} {subtopic.name}\n\n{subtopic.details}\n\n")

    if subtopic.links:
        lines.append("Learn More:\n")
        for link in subtopic.links:
            lines.append(f"- [{link.title}]({link.url}) ({link.type})\n")
        lines.append("\n")

    for child in subtopic.subtopics:
        _render_subtopic(child, depth + 1, lines)


def to_markdown(mind_map: MindMap) -> str:
    """
    Topic as `#`, top-level subtopics as `##`, each level one `#` deeper,
    followed by the details paragraph and a "Learn More:" link list.
    """
    lines = [f"# {mind_map.topic}\n\n"]
    for subtopic in mind_map.subtopics:
        _render_subtopic(subtopic, 1, lines)

    logger.info(f"[EXPORT] Markdown for '{mind_map.topic}'")
    return "".join(lines)


def to_json(mind_map: MindMap) -> str:
    """Pretty-printed JSON of the map as-is."""
    logger.info(f"[EXPORT] JSON for '{mind_map.topic}'")
    return json.dumps(mind_map.model_dump(mode="json"), indent=2, ensure_ascii=False)

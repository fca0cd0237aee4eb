"""
Mindscape — Incremental Merge
==============================
Grafts a freshly generated subtree onto one node of an existing mind map.

Nodes are addressed by derived identifier. The node whose full derived
identifier equals the target wins. Failing that (the node was addressed
under an older ancestry), the first node whose own slug is the last "-"
segment of the target is used. Its children are replaced wholesale;
everything else keeps its identity.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from mindscape.core.tree import child_node_id, iter_nodes, matches_node_id
from mindscape.schemas.mindmap import MindMap, Subtopic

logger = logging.getLogger(__name__)


def _replace_children(
    subtopics: List[Subtopic],
    node_id: str,
    new_children: List[Subtopic],
    exact: bool,
    parent_id: Optional[str] = None,
) -> Tuple[List[Subtopic], bool]:
    for index, subtopic in enumerate(subtopics):
        own_id = child_node_id(parent_id, subtopic.name)
        hit = own_id == node_id if exact else matches_node_id(subtopic.name, node_id)
        if hit:
            updated = subtopic.model_copy(update={"subtopics": list(new_children)})
            return [*subtopics[:index], updated, *subtopics[index + 1:]], True

        if subtopic.subtopics:
            children, found = _replace_children(
                subtopic.subtopics, node_id, new_children, exact, own_id
            )
            if found:
                updated = subtopic.model_copy(update={"subtopics": children})
                return [*subtopics[:index], updated, *subtopics[index + 1:]], True

    return subtopics, False


def merge_expanded(existing: MindMap, expanded: MindMap, node_id: str) -> MindMap:
    """
    Return `existing` with the children of the node addressed by `node_id`
    replaced by `expanded.subtopics`.

    A node whose full derived identifier equals `node_id` is preferred;
    otherwise the first node (depth-first) whose own slug ends `node_id`
    is used. Only the nodes on the path to the match are copied; every
    other node object is shared with `existing`, which is never mutated.
    An unknown `node_id` (stale expand request) returns `existing` unchanged.
    """
    subtopics, found = _replace_children(existing.subtopics, node_id, expanded.subtopics, exact=True)
    if not found:
        subtopics, found = _replace_children(existing.subtopics, node_id, expanded.subtopics, exact=False)
    if not found:
        logger.info(f"[MERGE] No node matches '{node_id}', tree left unchanged")
        return existing

    logger.info(
        f"[MERGE] ✓ Grafted {len(expanded.subtopics)} subtopic(s) under '{node_id}'"
    )
    return existing.model_copy(update={"subtopics": subtopics})


def _shared_suffix(a: Sequence[str], b: Sequence[str]) -> int:
    count = 0
    for left, right in zip(reversed(a), reversed(b)):
        if left != right:
            break
        count += 1
    return count


def resolve_node_topic(mind_map: MindMap, node_id: str) -> str:
    """
    Turn a derived identifier back into the human-readable name to prompt
    with. Among nodes whose own slug ends `node_id`, the one whose full
    derived identifier shares the longest suffix with it wins (DFS order
    breaks ties). Falls back to the map topic.
    """
    target = node_id.split("-")
    best: Optional[Subtopic] = None
    best_score = 0

    for candidate_id, subtopic in iter_nodes(mind_map.subtopics):
        if candidate_id == node_id:
            return subtopic.name
        if not matches_node_id(subtopic.name, node_id):
            continue
        score = _shared_suffix(candidate_id.split("-"), target)
        if score > best_score:
            best, best_score = subtopic, score

    if best is None:
        logger.info(f"[MERGE] '{node_id}' not found, using map topic '{mind_map.topic}'")
        return mind_map.topic
    return best.name



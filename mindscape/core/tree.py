"""
Mindscape — Tree Reconstruction
================================
The model emits a flat list of records linked by `parentId`; this module
turns that list back into nested `Subtopic` trees and computes the
name-derived identifiers used to address nodes.

Derived identifier of a node = slugs of every ancestor name and its own
name joined by "-", e.g. "Arrays" → "Arrays-Static-vs-Dynamic-Arrays".
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from mindscape.schemas.mindmap import FlatSubtopic, Link, Subtopic

_WHITESPACE = re.compile(r"\s+")


def slugify(name: str) -> str:
    """Replace every whitespace run with a single hyphen."""
    return _WHITESPACE.sub("-", name)


def child_node_id(parent_id: Optional[str], name: str) -> str:
    """Derived identifier of a node named `name` under `parent_id`."""
    slug = slugify(name)
    return f"{parent_id}-{slug}" if parent_id else slug


def matches_node_id(name: str, node_id: str) -> bool:
    """True if `node_id` addresses a node called `name` (own slug or last segment)."""
    slug = slugify(name)
    return node_id == slug or node_id.endswith(f"-{slug}")


def iter_nodes(
    subtopics: Sequence[Subtopic],
    parent_id: Optional[str] = None,
) -> Iterator[Tuple[str, Subtopic]]:
    """Depth-first walk yielding (derived identifier, node)."""
    for subtopic in subtopics:
        node_id = child_node_id(parent_id, subtopic.name)
        yield node_id, subtopic
        yield from iter_nodes(subtopic.subtopics, node_id)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FLAT → NESTED
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(eq=False)
class _NodeWithHierarchy:
    id: str
    parent_id: Optional[str]
    name: str
    details: str
    links: List[Link]
    subtopics: List["_NodeWithHierarchy"] = field(default_factory=list)

    def strip(self) -> Subtopic:
        return Subtopic(
            name=self.name,
            details=self.details,
            links=list(self.links),
            subtopics=[child.strip() for child in self.subtopics],
        )


def reconstruct(flat_subtopics: Iterable[FlatSubtopic]) -> List[Subtopic]:
    """
    Rebuild nested trees from flat records.

    Records may arrive in any order, so the id map is filled completely
    before any parent lookup. A record whose parentId is null or points at
    an id missing from the response becomes a root. Duplicate ids: the
    later record wins the map slot.
    """
    records = list(flat_subtopics)

    by_id: dict[str, _NodeWithHierarchy] = {}
    for record in records:
        by_id[record.id] = _NodeWithHierarchy(
            id=record.id,
            parent_id=record.parent_id,
            name=record.name,
            details=record.details,
            links=list(record.links),
        )

    roots: List[_NodeWithHierarchy] = []
    attached: set[int] = set()
    for record in records:
        node = by_id[record.id]
        # a duplicate id maps every occurrence to the same surviving node
        if id(node) in attached:
            continue
        attached.add(id(node))

        parent = by_id.get(node.parent_id) if node.parent_id else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.subtopics.append(node)

    return [root.strip() for root in _acyclic(roots, by_id)]


def _acyclic(
    roots: List[_NodeWithHierarchy],
    by_id: dict[str, _NodeWithHierarchy],
) -> List[_NodeWithHierarchy]:
    """
    Promote nodes caught in parentId cycles (a → b → a) to roots so that
    every record is reachable and `strip()` terminates.
    """
    seen: set[int] = set()
    stack = list(roots)
    while stack:
        node = stack.pop()
        seen.add(id(node))
        stack.extend(node.subtopics)

    for node in by_id.values():
        if id(node) in seen:
            continue
        # break the cycle at this node
        parent = by_id.get(node.parent_id) if node.parent_id else None
        if parent is not None and node in parent.subtopics:
            parent.subtopics.remove(node)
        roots.append(node)
        stack = [node]
        while stack:
            current = stack.pop()
            seen.add(id(current))
            stack.extend(current.subtopics)

    return roots


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# NESTED → FLAT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def flatten(
    subtopics: Sequence[Subtopic],
    parent_id: Optional[str] = None,
) -> List[FlatSubtopic]:
    """Inverse of `reconstruct`: ids are derived identifiers."""
    records: List[FlatSubtopic] = []
    for subtopic in subtopics:
        node_id = child_node_id(parent_id, subtopic.name)
        records.append(
            FlatSubtopic(
                id=node_id,
                parent_id=parent_id,
                name=subtopic.name,
                details=subtopic.details,
                links=list(subtopic.links),
            )
        )
        records.extend(flatten(subtopic.subtopics, node_id))
    return records

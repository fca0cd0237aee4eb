"""
Mindscape — Mind Map Schemas
=============================
Two shapes of the same data:
  • Flat records  — what the model is asked to emit (id + parentId per node)
  • Nested tree   — what callers and the browser consume (no synthetic ids)
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Shared ───────────────────────────────────────────────────────────────────

class Link(BaseModel):
    """A suggested learning resource attached to a node."""
    title: str
    type: str
    url: str


# ── Flat (wire) Models ───────────────────────────────────────────────────────

class FlatSubtopic(BaseModel):
    """One generated record, before the tree shape is rebuilt."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    name: str
    details: str
    links: List[Link]


class FlatMindMap(BaseModel):
    """Strict schema the remote backend must satisfy."""
    topic: str
    subtopics: List[FlatSubtopic]


# ── Nested Models ────────────────────────────────────────────────────────────

class Subtopic(BaseModel):
    """Recursive tree node shown to the user."""
    name: str
    details: str
    links: List[Link] = []
    subtopics: List[Subtopic] = []


class MindMap(BaseModel):
    """Root container. `subtopics` are the top-level nodes."""
    topic: str
    subtopics: List[Subtopic] = []


# ── Request / Response ───────────────────────────────────────────────────────

class GenerateRequest(BaseModel):
    """Body of a generation call. `nodeId` switches to expansion mode."""
    model_config = ConfigDict(populate_by_name=True)

    topic: str = Field(..., min_length=1, max_length=500)
    node_id: Optional[str] = Field(default=None, alias="nodeId")

    @field_validator("topic")
    @classmethod
    def topic_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Topic cannot be empty.")
        return v.strip()


class ErrorResponse(BaseModel):
    """Standard error envelope."""
    status: str = "error"
    message: str
    detail: Optional[str] = None

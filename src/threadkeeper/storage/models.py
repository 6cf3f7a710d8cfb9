"""Data models for conversations, branches, messages and summaries."""

from dataclasses import dataclass, field
from typing import Any

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class Conversation:
    """A conversation and its fact memory.

    Attributes:
        id: Hex identifier.
        created_at: ISO timestamp when created.
        title: Short human title.
        facts: Key/value fact memory, overwritten wholesale on update.
    """

    id: str
    created_at: str
    title: str = "New chat"
    facts: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Branch:
    """A fork of a conversation's root branch.

    The first ``base_count`` root messages are inherited as the branch's
    prefix; everything after that is tagged with the branch id.
    """

    id: str
    conversation_id: str
    name: str
    base_count: int
    created_at: str


@dataclass(frozen=True)
class Message:
    """A single stored message. Root-branch messages have no branch_id."""

    id: int
    conversation_id: str
    role: str
    content: str
    created_at: str
    branch_id: str | None = None

    def for_llm(self) -> dict[str, Any]:
        """Return only role and content (chat completion format)."""
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Summary:
    """Cached summary of one fixed-size chunk of history."""

    conversation_id: str
    chunk_index: int
    content: str
    created_at: str

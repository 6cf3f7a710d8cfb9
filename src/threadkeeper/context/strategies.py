"""Context strategies: turning effective history into a bounded prompt."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..memory import FactMemory

if TYPE_CHECKING:
    from .summarizer import Summarizer

DEFAULT_WINDOW_SIZE = 20


class Strategy(Enum):
    """Recognized context strategy tags."""

    SLIDING_WINDOW = "sliding_window"
    STICKY_FACTS = "sticky_facts"
    BRANCHING = "branching"
    SUMMARIZATION = "summarization"

    @classmethod
    def parse(cls, tag: str | Strategy | None) -> Strategy:
        """Map a tag to a strategy; unknown or missing tags mean SUMMARIZATION."""
        if isinstance(tag, Strategy):
            return tag
        if not isinstance(tag, str):
            return cls.SUMMARIZATION
        try:
            return cls(tag.strip().lower())
        except ValueError:
            return cls.SUMMARIZATION


@dataclass
class ContextOptions:
    """Per-request options for building a context.

    Attributes:
        window_size: How many recent messages the windowed strategies keep.
        facts: Fact memory for StickyFacts; loaded from storage when None.
    """

    window_size: int = DEFAULT_WINDOW_SIZE
    facts: dict[str, str] | None = None


def window(messages: list[dict[str, Any]], size: int) -> list[dict[str, Any]]:
    """Keep the last ``size`` non-system messages."""
    if size <= 0:
        return []
    non_system = [m for m in messages if m.get("role") != "system"]
    return non_system[-size:]


class ContextStrategy(ABC):
    """Turns (system prompt, history) into a finalized message list."""

    @abstractmethod
    async def build(
        self,
        conversation_id: str,
        history: list[dict[str, Any]],
        system_prompt: str,
        options: ContextOptions,
    ) -> list[dict[str, Any]]:
        """Return a message list starting with exactly one system message."""


class SlidingWindowStrategy(ContextStrategy):
    """Recent messages verbatim, older ones dropped."""

    async def build(
        self,
        conversation_id: str,
        history: list[dict[str, Any]],
        system_prompt: str,
        options: ContextOptions,
    ) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": system_prompt},
            *window(history, options.window_size),
        ]


class BranchingStrategy(SlidingWindowStrategy):
    """Sliding window over history already resolved for the branch."""


class StickyFactsStrategy(ContextStrategy):
    """Sliding window plus the conversation's fact memory in the system prompt."""

    def __init__(self, memory: FactMemory) -> None:
        self.memory = memory

    async def build(
        self,
        conversation_id: str,
        history: list[dict[str, Any]],
        system_prompt: str,
        options: ContextOptions,
    ) -> list[dict[str, Any]]:
        facts = options.facts
        if facts is None:
            facts = self.memory.load(conversation_id)

        content = system_prompt
        memory_block = self.memory.format_for_prompt(facts)
        if memory_block:
            content += "\n\n" + memory_block

        return [
            {"role": "system", "content": content},
            *window(history, options.window_size),
        ]


class SummarizationStrategy(ContextStrategy):
    """Cached chunk summaries in the system prompt, remainder verbatim."""

    def __init__(self, summarizer: Summarizer) -> None:
        self.summarizer = summarizer

    async def build(
        self,
        conversation_id: str,
        history: list[dict[str, Any]],
        system_prompt: str,
        options: ContextOptions,
    ) -> list[dict[str, Any]]:
        return await self.summarizer.build(conversation_id, history, system_prompt)


class ContextBuilder:
    """Dispatches a strategy tag to its strategy implementation."""

    def __init__(self, summarizer: Summarizer, memory: FactMemory) -> None:
        self._strategies: dict[Strategy, ContextStrategy] = {
            Strategy.SLIDING_WINDOW: SlidingWindowStrategy(),
            Strategy.STICKY_FACTS: StickyFactsStrategy(memory),
            Strategy.BRANCHING: BranchingStrategy(),
            Strategy.SUMMARIZATION: SummarizationStrategy(summarizer),
        }

    def get(self, strategy: Strategy | str | None) -> ContextStrategy:
        """Return the implementation for a strategy tag."""
        return self._strategies[Strategy.parse(strategy)]

    async def build_context(
        self,
        strategy: Strategy | str | None,
        conversation_id: str,
        history: list[dict[str, Any]],
        system_prompt: str,
        options: ContextOptions | None = None,
    ) -> list[dict[str, Any]]:
        """Build the finalized message list for a turn.

        Args:
            strategy: Strategy tag; unknown tags fall back to summarization.
            conversation_id: Conversation the history belongs to.
            history: Effective history from ``resolve_history``.
            system_prompt: Base system prompt.
            options: Window size and facts.

        Returns:
            Messages ready for the completion client.

        Raises:
            SummarizationError: If a summary is needed and cannot be produced.
        """
        return await self.get(strategy).build(
            conversation_id, history, system_prompt, options or ContextOptions()
        )

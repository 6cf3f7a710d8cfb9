"""Fact memory orchestration: loading, formatting and updating."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..logging import JSONLLogger, get_logger

if TYPE_CHECKING:
    from ..storage import ConversationStore
    from .extractor import FactExtractor


def render_facts(facts: dict[str, Any] | None) -> str:
    """Render non-empty facts as ``- key: value`` lines.

    Entries whose value is None, empty or only whitespace are left out.
    """
    if not facts:
        return ""
    return "\n".join(
        f"- {key}: {value}"
        for key, value in facts.items()
        if value is not None and str(value).strip()
    )


class FactMemory:
    """Coordinates a conversation's fact memory between store and extractor."""

    def __init__(
        self,
        store: ConversationStore,
        extractor: FactExtractor | None = None,
        logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize with a store and optional extractor.

        Args:
            store: Storage holding the conversation facts.
            extractor: FactExtractor for automatic updates.
            logger: Event logger, the global one when omitted.
        """
        self.store = store
        self.extractor = extractor
        self.logger = logger or get_logger()

    def load(self, conversation_id: str) -> dict[str, str]:
        """Load a conversation's facts, empty if it doesn't exist."""
        conversation = self.store.get_conversation(conversation_id)
        return dict(conversation.facts) if conversation else {}

    def format_for_prompt(self, facts: dict[str, Any] | None) -> str:
        """Format facts as a block for the system prompt.

        Returns:
            XML-style memory block, or empty string if no fact has a value.
        """
        content = render_facts(facts)
        if not content:
            return ""

        return f"""<memory>
Known facts about this conversation:
{content}
</memory>"""

    async def update_from_turn(
        self,
        conversation_id: str,
        recent_turn: list[dict[str, Any]],
    ) -> dict[str, str]:
        """Extract facts from the latest turn and overwrite the stored mapping.

        The facts are read before extraction and written back wholesale
        afterwards, so a concurrent turn's update can be overwritten.

        Returns:
            The facts after the update.
        """
        current = self.load(conversation_id)
        if not self.extractor:
            return current

        updated = await self.extractor.update_facts(conversation_id, recent_turn, current)

        if updated != current:
            self.store.update_facts(conversation_id, updated)
            changed = sorted(k for k, v in updated.items() if current.get(k) != v)
            self.logger.log_facts_updated(conversation_id, changed)

        return updated

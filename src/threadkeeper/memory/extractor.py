"""Fact extraction from conversations using LLM."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from ..llm import DEFAULT_MODEL, SamplingParams

if TYPE_CHECKING:
    from ..llm import CompletionClient

logger = logging.getLogger(__name__)

MAX_TAIL_CHARS = 3000
FACT_KEY_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

EXTRACTION_PROMPT = """You maintain a small memory of durable facts about a conversation: goals, decisions, constraints, preferences, names, deadlines.

Current facts (JSON):
{facts}

Recent conversation:
{conversation}

Return ONLY a JSON object with the facts to add or update, for example:
{{"goal": "ship v1", "tone": "formal"}}

Rules:
- Keys use only letters, digits and underscores, and don't start with a digit
- Values are short strings
- Only durable facts, not passing states
- Don't repeat facts that are unchanged
- If nothing changed, return {{}}
- No explanations, no markdown"""


class FactParseError(ValueError):
    """Raised when an extraction response is not a valid fact object."""


class FactExtractor:
    """Extracts fact updates from recent dialogue using LLM."""

    def __init__(
        self,
        llm: CompletionClient,
        model: str = DEFAULT_MODEL,
        max_tail_chars: int = MAX_TAIL_CHARS,
    ) -> None:
        """Initialize the extractor.

        Args:
            llm: The client for LLM calls.
            model: The model to use for extraction.
            max_tail_chars: How much of the rendered conversation to send.
        """
        self.llm = llm
        self.model = model
        self.max_tail_chars = max_tail_chars

    async def update_facts(
        self,
        conversation_id: str,
        recent_turn: list[dict[str, Any]],
        current_facts: dict[str, str],
    ) -> dict[str, str]:
        """Merge facts extracted from the latest turn over the current ones.

        Best effort: on any failure the current facts are returned as they
        were. Keys are only ever added or overwritten, never removed.

        Args:
            conversation_id: The conversation the turn belongs to.
            recent_turn: History including the latest user and assistant messages.
            current_facts: The fact memory before this turn.

        Returns:
            The merged fact mapping.
        """
        conversation_text = self._format_conversation(recent_turn)
        if not conversation_text:
            return dict(current_facts)

        prompt = EXTRACTION_PROMPT.format(
            facts=json.dumps(current_facts, ensure_ascii=False, separators=(",", ":")),
            conversation=conversation_text,
        )

        try:
            completion = await self.llm.complete(
                self.model,
                [{"role": "user", "content": prompt}],
                SamplingParams(temperature=0.1),  # Low temperature for consistent extraction
            )
            updates = self._parse_response(completion.content)
        except Exception as e:
            logger.warning(f"Fact extraction failed for {conversation_id}: {e}")
            return dict(current_facts)

        return {**current_facts, **updates}

    def _format_conversation(self, messages: list[dict[str, Any]]) -> str:
        """Format messages into a conversation string, keeping only the tail."""
        lines = []
        for msg in messages:
            role = msg.get("role")
            content = msg.get("content", "")
            if role == "user":
                lines.append(f"User: {content}")
            elif role == "assistant":
                lines.append(f"Assistant: {content}")
        text = "\n".join(lines)
        return text[-self.max_tail_chars:]

    def _parse_response(self, content: str) -> dict[str, str]:
        """Parse LLM response into fact updates.

        Raises:
            FactParseError: If the payload is not a flat object of valid keys.
        """
        json_str = _strip_code_fence(content)

        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise FactParseError(f"Response is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise FactParseError(f"Expected a JSON object, got {type(data).__name__}")

        facts: dict[str, str] = {}
        for key, value in data.items():
            if not FACT_KEY_PATTERN.fullmatch(key):
                raise FactParseError(f"Invalid fact key: {key!r}")
            if isinstance(value, (dict, list)):
                raise FactParseError(f"Fact {key!r} is not a scalar")
            if value is None:
                facts[key] = ""
            elif isinstance(value, bool):
                facts[key] = "true" if value else "false"
            else:
                facts[key] = str(value)
        return facts


def _strip_code_fence(content: str) -> str:
    """Remove surrounding markdown code fences, with or without a language tag."""
    text = content.strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()

"""Tests for FactExtractor."""

import json
from unittest.mock import AsyncMock

import pytest

from threadkeeper.llm import Completion
from threadkeeper.memory import FactExtractor, FactParseError

TURN = [
    {"role": "user", "content": "Let's keep the tone formal from now on."},
    {"role": "assistant", "content": "Understood, I will keep a formal tone."},
]


@pytest.fixture
def extractor(llm: AsyncMock) -> FactExtractor:
    """Create a FactExtractor with mock client."""
    return FactExtractor(llm, model="extract-model")


def reply(llm: AsyncMock, content: str) -> None:
    llm.complete = AsyncMock(return_value=Completion(content=content))


class TestFactExtractorInit:
    """Tests for FactExtractor initialization."""

    def test_default_model(self, llm: AsyncMock):
        """Default model is llama-3.1-70b-versatile."""
        assert FactExtractor(llm).model == "llama-3.1-70b-versatile"

    def test_custom_model(self, extractor: FactExtractor):
        assert extractor.model == "extract-model"


class TestUpdateFacts:
    """Tests for update_facts."""

    @pytest.mark.asyncio
    async def test_merge_adds_new_key(self, extractor: FactExtractor, llm: AsyncMock):
        """New keys are merged over existing facts."""
        reply(llm, '{"tone": "formal"}')
        facts = await extractor.update_facts("c1", TURN, {"goal": "ship v1"})
        assert facts == {"goal": "ship v1", "tone": "formal"}

    @pytest.mark.asyncio
    async def test_changed_key_wins(self, extractor: FactExtractor, llm: AsyncMock):
        reply(llm, '{"goal": "ship v2"}')
        facts = await extractor.update_facts("c1", TURN, {"goal": "ship v1", "tone": "formal"})
        assert facts == {"goal": "ship v2", "tone": "formal"}

    @pytest.mark.asyncio
    async def test_empty_object_keeps_facts(self, extractor: FactExtractor, llm: AsyncMock):
        reply(llm, "{}")
        assert await extractor.update_facts("c1", TURN, {"goal": "ship v1"}) == {"goal": "ship v1"}

    @pytest.mark.asyncio
    async def test_non_json_keeps_facts(self, extractor: FactExtractor, llm: AsyncMock):
        """A non-JSON reply leaves facts unchanged."""
        reply(llm, "The user wants a formal tone.")
        assert await extractor.update_facts("c1", TURN, {"goal": "ship v1"}) == {"goal": "ship v1"}

    @pytest.mark.asyncio
    async def test_client_error_keeps_facts(self, extractor: FactExtractor, llm: AsyncMock):
        """A failing client never raises."""
        llm.complete = AsyncMock(side_effect=ConnectionError("offline"))
        assert await extractor.update_facts("c1", TURN, {"goal": "ship v1"}) == {"goal": "ship v1"}

    @pytest.mark.asyncio
    async def test_code_fence_stripped(self, extractor: FactExtractor, llm: AsyncMock):
        """JSON wrapped in a markdown code block is accepted."""
        reply(llm, '```json\n{"tone": "formal"}\n```')
        facts = await extractor.update_facts("c1", TURN, {})
        assert facts == {"tone": "formal"}

    @pytest.mark.asyncio
    async def test_invalid_key_rejects_payload(self, extractor: FactExtractor, llm: AsyncMock):
        """One bad key discards the whole payload."""
        reply(llm, '{"tone": "formal", "due date": "friday"}')
        assert await extractor.update_facts("c1", TURN, {"goal": "g"}) == {"goal": "g"}

    @pytest.mark.asyncio
    async def test_nested_value_rejects_payload(self, extractor: FactExtractor, llm: AsyncMock):
        reply(llm, '{"tone": "formal", "team": ["a", "b"]}')
        assert await extractor.update_facts("c1", TURN, {}) == {}

    @pytest.mark.asyncio
    async def test_array_payload_rejected(self, extractor: FactExtractor, llm: AsyncMock):
        reply(llm, '["tone", "formal"]')
        assert await extractor.update_facts("c1", TURN, {"goal": "g"}) == {"goal": "g"}

    @pytest.mark.asyncio
    async def test_returns_copy(self, extractor: FactExtractor, llm: AsyncMock):
        """The caller's mapping is never mutated."""
        current = {"goal": "ship v1"}
        reply(llm, '{"tone": "formal"}')
        await extractor.update_facts("c1", TURN, current)
        assert current == {"goal": "ship v1"}

    @pytest.mark.asyncio
    async def test_empty_turn_skips_model(self, extractor: FactExtractor, llm: AsyncMock):
        """Nothing to analyze means no model call."""
        assert await extractor.update_facts("c1", [], {"goal": "g"}) == {"goal": "g"}
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_prompt_contents(self, extractor: FactExtractor, llm: AsyncMock):
        """The prompt carries compact current facts and the rendered turn."""
        reply(llm, "{}")
        await extractor.update_facts("c1", TURN, {"goal": "ship v1"})

        model, messages, params = llm.complete.call_args.args
        prompt = messages[0]["content"]
        assert model == "extract-model"
        assert '{"goal":"ship v1"}' in prompt
        assert "User: Let's keep the tone formal" in prompt
        assert "Assistant: Understood" in prompt
        assert params.temperature == 0.1

    @pytest.mark.asyncio
    async def test_conversation_tail_bounded(self, llm: AsyncMock):
        """Only the last max_tail_chars of the conversation are sent."""
        extractor = FactExtractor(llm, max_tail_chars=3000)
        reply(llm, "{}")
        long_turn = [{"role": "user", "content": "x" * 5000}, {"role": "assistant", "content": "END"}]

        await extractor.update_facts("c1", long_turn, {})

        prompt = llm.complete.call_args.args[1][0]["content"]
        assert "Assistant: END" in prompt
        assert "x" * 3001 not in prompt


class TestParseResponse:
    """Tests for the strict parse step."""

    def test_scalars_stringified(self, extractor: FactExtractor):
        facts = extractor._parse_response(json.dumps({"count": 3, "done": True, "owner": None}))
        assert facts == {"count": "3", "done": "true", "owner": ""}

    def test_bad_json_raises(self, extractor: FactExtractor):
        with pytest.raises(FactParseError):
            extractor._parse_response("{not json")

    def test_fence_without_language(self, extractor: FactExtractor):
        assert extractor._parse_response('```\n{"a": "b"}\n```') == {"a": "b"}

    def test_key_starting_with_digit_rejected(self, extractor: FactExtractor):
        with pytest.raises(FactParseError, match="Invalid fact key"):
            extractor._parse_response('{"1st": "x"}')

    def test_key_with_trailing_newline_rejected(self, extractor: FactExtractor):
        with pytest.raises(FactParseError, match="Invalid fact key"):
            extractor._parse_response('{"goal\\n": "x"}')

    @pytest.mark.asyncio
    async def test_key_with_trailing_newline_keeps_facts(self, extractor: FactExtractor, llm: AsyncMock):
        """A key that only looks valid up to a newline discards the payload."""
        reply(llm, '{"goal\\n": "x"}')
        assert await extractor.update_facts("c1", TURN, {}) == {}

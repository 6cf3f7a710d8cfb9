"""Tests for FactMemory."""

from unittest.mock import AsyncMock

import pytest

from threadkeeper.llm import Completion
from threadkeeper.memory import FactExtractor, FactMemory, render_facts
from threadkeeper.storage import ConversationStore

TURN = [
    {"role": "user", "content": "The goal is to ship v1."},
    {"role": "assistant", "content": "Noted."},
]


@pytest.fixture
def memory(store: ConversationStore, llm: AsyncMock) -> FactMemory:
    return FactMemory(store, extractor=FactExtractor(llm))


class TestRenderFacts:
    """Tests for fact rendering."""

    def test_skips_empty_values(self):
        assert render_facts({"goal": "ship v1", "deadline": ""}) == "- goal: ship v1"

    def test_skips_whitespace_and_none(self):
        assert render_facts({"a": " ", "b": None, "c": "x"}) == "- c: x"

    def test_empty(self):
        assert render_facts({}) == ""
        assert render_facts(None) == ""

    def test_keeps_insertion_order(self):
        assert render_facts({"b": "2", "a": "1"}) == "- b: 2\n- a: 1"


class TestFormatForPrompt:
    """Tests for the memory block."""

    def test_block(self, memory: FactMemory):
        block = memory.format_for_prompt({"goal": "ship v1"})
        assert block.startswith("<memory>")
        assert block.endswith("</memory>")
        assert "- goal: ship v1" in block

    def test_no_values_no_block(self, memory: FactMemory):
        assert memory.format_for_prompt({"goal": ""}) == ""


class TestUpdateFromTurn:
    """Tests for the read-extract-overwrite cycle."""

    def test_load_missing_conversation(self, memory: FactMemory):
        assert memory.load("missing") == {}

    @pytest.mark.asyncio
    async def test_persists_merged_facts(
        self, memory: FactMemory, llm: AsyncMock, store: ConversationStore, conversation_id: str
    ):
        store.update_facts(conversation_id, {"goal": "ship v1"})
        llm.complete = AsyncMock(return_value=Completion(content='{"tone": "formal"}'))

        facts = await memory.update_from_turn(conversation_id, TURN)

        assert facts == {"goal": "ship v1", "tone": "formal"}
        assert store.get_conversation(conversation_id).facts == facts

    @pytest.mark.asyncio
    async def test_failure_leaves_store_untouched(
        self, memory: FactMemory, llm: AsyncMock, store: ConversationStore, conversation_id: str
    ):
        store.update_facts(conversation_id, {"goal": "ship v1"})
        llm.complete = AsyncMock(return_value=Completion(content="not json"))

        facts = await memory.update_from_turn(conversation_id, TURN)

        assert facts == {"goal": "ship v1"}
        assert store.get_conversation(conversation_id).facts == {"goal": "ship v1"}

    @pytest.mark.asyncio
    async def test_without_extractor(self, store: ConversationStore, conversation_id: str):
        store.update_facts(conversation_id, {"goal": "g"})
        memory = FactMemory(store)
        assert await memory.update_from_turn(conversation_id, TURN) == {"goal": "g"}

    @pytest.mark.asyncio
    async def test_last_writer_wins(
        self, memory: FactMemory, llm: AsyncMock, store: ConversationStore, conversation_id: str
    ):
        """A write made during extraction is overwritten by the later write."""
        store.update_facts(conversation_id, {"goal": "ship v1"})

        async def concurrent_write(*args, **kwargs):
            store.update_facts(conversation_id, {"goal": "ship v1", "owner": "sam"})
            return Completion(content='{"tone": "formal"}')

        llm.complete = AsyncMock(side_effect=concurrent_write)

        await memory.update_from_turn(conversation_id, TURN)

        assert store.get_conversation(conversation_id).facts == {"goal": "ship v1", "tone": "formal"}

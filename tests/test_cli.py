"""Tests for the CLI."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from threadkeeper.cli import CLI
from threadkeeper.config import Settings
from threadkeeper.context import Strategy
from threadkeeper.llm import Completion
from threadkeeper.main import build_parser
from threadkeeper.storage import ConversationStore


@pytest.fixture
def cli(tmp_path: Path) -> CLI:
    settings = Settings(api_key="test-key", db_path=tmp_path / "cli.db")
    llm = AsyncMock()
    llm.complete = AsyncMock(return_value=Completion(content="Hello!"))
    cli = CLI(settings=settings, llm=llm, store=ConversationStore(settings.db_path))
    yield cli
    cli.store.close()


def test_starts_new_conversation(cli: CLI):
    assert cli.store.get_conversation(cli.conversation_id) is not None
    assert cli.branch_id is None


def test_resume_conversation(tmp_path: Path):
    settings = Settings(api_key="k", db_path=tmp_path / "resume.db")
    cli = CLI(settings=settings, llm=AsyncMock(), conversation_id="abc")
    assert cli.conversation_id == "abc"
    cli.store.close()


@pytest.mark.asyncio
async def test_handle_command_exit(cli: CLI):
    assert await cli._handle_command("/exit") is False


@pytest.mark.asyncio
async def test_handle_command_quit(cli: CLI):
    assert await cli._handle_command("/quit") is False


@pytest.mark.asyncio
async def test_handle_command_help(cli: CLI):
    assert await cli._handle_command("/help") is True


@pytest.mark.asyncio
async def test_new_conversation(cli: CLI):
    old_id = cli.conversation_id
    assert await cli._handle_command("/new") is True
    assert cli.conversation_id != old_id


@pytest.mark.asyncio
async def test_strategy_command(cli: CLI):
    await cli._handle_command("/strategy sticky_facts")
    assert cli.strategy is Strategy.STICKY_FACTS
    await cli._handle_command("/strategy bogus")
    assert cli.strategy is Strategy.SUMMARIZATION


@pytest.mark.asyncio
async def test_branch_and_switch(cli: CLI, capsys):
    await cli._process_message("first")
    await cli._handle_command("/branch experiment")

    branch_id = cli.branch_id
    assert branch_id is not None
    assert cli.store.get_branch(branch_id, cli.conversation_id).base_count == 2

    await cli._handle_command("/switch main")
    assert cli.branch_id is None

    await cli._handle_command("/switch missing")
    assert cli.branch_id is None
    assert "not found" in capsys.readouterr().out

    await cli._handle_command(f"/switch {branch_id}")
    assert cli.branch_id == branch_id


@pytest.mark.asyncio
async def test_process_message_prints_reply(cli: CLI, capsys):
    await cli._process_message("hi")
    out = capsys.readouterr().out
    assert "Hello!" in out
    assert "[summarization]" in out


@pytest.mark.asyncio
async def test_process_message_reports_errors(cli: CLI, capsys):
    cli.service.llm.complete = AsyncMock(side_effect=RuntimeError("down"))
    await cli._process_message("hi")
    assert "Error: down" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_show_facts(cli: CLI, capsys):
    cli.store.update_facts(cli.conversation_id, {"goal": "ship v1", "deadline": ""})
    await cli._handle_command("/facts")
    out = capsys.readouterr().out
    assert "- goal: ship v1" in out
    assert "deadline" not in out


def test_parser():
    args = build_parser().parse_args(["--strategy", "branching", "--window", "5"])
    assert args.strategy == "branching"
    assert args.window == 5
    assert args.conversation is None

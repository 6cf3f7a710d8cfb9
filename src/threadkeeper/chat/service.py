"""Per-turn orchestration: history, context, completion, fact memory."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..context import ContextBuilder, ContextOptions, Strategy, Summarizer, resolve_history
from ..llm import SamplingParams, TokenUsage
from ..logging import JSONLLogger, get_logger
from ..memory import FactExtractor, FactMemory

if TYPE_CHECKING:
    from ..config import Settings
    from ..llm import CompletionClient
    from ..storage import ConversationStore


class BranchNotFoundError(Exception):
    """Raised when a turn targets a branch that doesn't exist."""

    def __init__(self, conversation_id: str, branch_id: str) -> None:
        super().__init__(f"Branch {branch_id} not found in conversation {conversation_id}")
        self.conversation_id = conversation_id
        self.branch_id = branch_id


@dataclass
class TurnRequest:
    """One inbound user turn."""

    message: str
    conversation_id: str | None = None
    branch_id: str | None = None
    strategy: Strategy | str | None = None
    window_size: int | None = None
    params: SamplingParams | None = None


@dataclass
class TurnResult:
    """Result of a completed turn."""

    response: str
    conversation_id: str
    branch_id: str | None
    strategy: Strategy
    usage: TokenUsage = field(default_factory=TokenUsage)
    context: list[dict[str, Any]] = field(default_factory=list)
    facts: dict[str, str] | None = None


class ChatService:
    """Runs one conversational turn end to end.

    The store and completion client are constructed by the caller and
    shared across turns; the service keeps no per-turn state.
    """

    def __init__(
        self,
        store: ConversationStore,
        llm: CompletionClient,
        settings: Settings,
        logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.llm = llm
        self.settings = settings
        self.logger = logger or get_logger()
        self.summarizer = Summarizer(
            store, llm, settings.summary_model, logger=self.logger
        )
        self.memory = FactMemory(
            store,
            extractor=FactExtractor(llm, model=settings.model),
            logger=self.logger,
        )
        self.builder = ContextBuilder(self.summarizer, self.memory)

    async def run_turn(self, request: TurnRequest) -> TurnResult:
        """Run a user turn.

        Steps: store the user message, resolve the branch history, build
        the context, call the model, store the reply and, for the
        sticky_facts strategy, update the fact memory.

        Raises:
            BranchNotFoundError: If the requested branch doesn't exist.
            SummarizationError: If old history cannot be summarized.
        """
        strategy = Strategy.parse(request.strategy or self.settings.strategy)

        branch_id = request.branch_id or None

        # A branch can only exist in a conversation that already exists.
        if branch_id and (
            not request.conversation_id
            or self.store.get_branch(branch_id, request.conversation_id) is None
        ):
            raise BranchNotFoundError(request.conversation_id or "", branch_id)

        if request.conversation_id:
            conversation = self.store.get_or_create_conversation(request.conversation_id)
        else:
            conversation = self.store.create_conversation()
        conversation_id = conversation.id

        self.logger.log(
            "turn_start",
            conversation_id=conversation_id,
            branch_id=branch_id,
            strategy=strategy.value,
        )

        self.store.append_message(conversation_id, "user", request.message, branch_id)
        history = resolve_history(self.store, conversation_id, branch_id)

        window_size = request.window_size
        if window_size is None:
            window_size = self.settings.window_size

        messages = await self.builder.build_context(
            strategy,
            conversation_id,
            history,
            self.settings.system_prompt,
            ContextOptions(window_size=window_size, facts=conversation.facts),
        )
        self.logger.log_context_built(
            conversation_id,
            strategy.value,
            history_size=len(history),
            context_size=len(messages),
            branch_id=branch_id,
        )

        started = time.monotonic()
        completion = await self.llm.complete(self.settings.model, messages, request.params)
        self.logger.log_completion(
            conversation_id,
            self.settings.model,
            prompt_tokens=completion.usage.prompt_tokens,
            completion_tokens=completion.usage.completion_tokens,
            duration_ms=(time.monotonic() - started) * 1000,
            branch_id=branch_id,
        )

        self.store.append_message(
            conversation_id, "assistant", completion.content, branch_id
        )

        facts = None
        if strategy is Strategy.STICKY_FACTS:
            facts = await self.memory.update_from_turn(
                conversation_id, [*history, completion.message]
            )

        return TurnResult(
            response=completion.content,
            conversation_id=conversation_id,
            branch_id=branch_id,
            strategy=strategy,
            usage=completion.usage,
            context=messages,
            facts=facts,
        )

"""Interactive command-line interface for threadkeeper."""

from groq import AsyncGroq

from .chat import BranchNotFoundError, ChatService, TurnRequest, TurnResult
from .config import Settings
from .context import Strategy, resolve_history
from .llm import CompletionClient, GroqCompletionClient
from .logging import configure_logger, get_logger
from .memory import render_facts
from .storage import ConversationStore

BANNER = """
threadkeeper - bounded context for long conversations

Commands:
  /exit, /quit        - Exit the CLI
  /new                - Start a new conversation
  /strategy <tag>     - sliding_window, sticky_facts, branching, summarization
  /branch [name]      - Fork the main branch here and switch to the fork
  /switch <id|main>   - Switch to a branch, or back to the main branch
  /branches           - List branches
  /facts              - Show the fact memory
  /summaries          - Show cached chunk summaries
  /history            - Show the effective history
  /help               - Show this help

Type your message and press Enter.
"""


class CLI:
    """Interactive chat over a persistent conversation."""

    def __init__(
        self,
        settings: Settings | None = None,
        llm: CompletionClient | None = None,
        store: ConversationStore | None = None,
        conversation_id: str | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()

        if store is None:
            store = ConversationStore(self.settings.db_path)
        self.store = store
        self.store.init_db()

        if llm is None:
            llm = GroqCompletionClient(AsyncGroq(api_key=self.settings.api_key))

        self.logger = get_logger()
        self.service = ChatService(self.store, llm, self.settings, logger=self.logger)
        self.strategy = self.settings.strategy
        self.branch_id: str | None = None

        if conversation_id:
            self.conversation_id = self.store.get_or_create_conversation(conversation_id).id
        else:
            self.conversation_id = self.store.create_conversation().id

    def _new_conversation(self) -> None:
        """Start a fresh conversation on its main branch."""
        old_id = self.conversation_id
        self.conversation_id = self.store.create_conversation().id
        self.branch_id = None
        self.logger.log("session_start", conversation_id=self.conversation_id, previous=old_id)
        print(f"\n✓ New conversation: {self.conversation_id}")

    def _format_response(self, result: TurnResult) -> str:
        """Format a turn result for display."""
        output = ["\n" + "─" * 40]
        output.append(result.response)
        output.append("─" * 40)
        output.append(
            f"[{result.strategy.value}] context: {len(result.context)} messages, "
            f"tokens: {result.usage.prompt_tokens} in / {result.usage.completion_tokens} out"
        )
        return "\n".join(output)

    async def _process_message(self, message: str) -> None:
        """Run a user message through the chat service."""
        try:
            result = await self.service.run_turn(
                TurnRequest(
                    message=message,
                    conversation_id=self.conversation_id,
                    branch_id=self.branch_id,
                    strategy=self.strategy,
                )
            )
            print(self._format_response(result))

        except Exception as e:
            print(f"\n❌ Error: {e}")
            self.logger.log(
                "error",
                conversation_id=self.conversation_id,
                branch_id=self.branch_id,
                error=str(e),
            )

    def _set_strategy(self, tag: str) -> None:
        self.strategy = Strategy.parse(tag)
        print(f"Strategy: {self.strategy.value}")

    def _create_branch(self, name: str) -> None:
        branch = self.store.create_branch(self.conversation_id, name=name or "Branch")
        self.branch_id = branch.id
        print(f"✓ Branch '{branch.name}' ({branch.id}) from {branch.base_count} messages")

    def _switch_branch(self, target: str) -> None:
        if not target or target == "main":
            self.branch_id = None
            print("Switched to main branch")
            return
        if self.store.get_branch(target, self.conversation_id) is None:
            print(str(BranchNotFoundError(self.conversation_id, target)))
            return
        self.branch_id = target
        print(f"Switched to branch {target}")

    def _show_branches(self) -> None:
        branches = self.store.list_branches(self.conversation_id)
        if not branches:
            print("No branches")
            return
        for branch in branches:
            marker = "*" if branch.id == self.branch_id else " "
            print(f"{marker} {branch.id}  {branch.name}  (base: {branch.base_count})")

    def _show_facts(self) -> None:
        conversation = self.store.get_conversation(self.conversation_id)
        rendered = render_facts(conversation.facts if conversation else None)
        print(rendered or "No facts yet")

    def _show_summaries(self) -> None:
        summaries = self.store.list_summaries(self.conversation_id)
        if not summaries:
            print("No summaries yet")
            return
        for summary in summaries:
            print(f"[chunk {summary.chunk_index}] {summary.content}\n")

    def _show_history(self) -> None:
        for message in resolve_history(self.store, self.conversation_id, self.branch_id):
            print(f"{message['role']}: {message['content']}")

    async def _handle_command(self, command: str) -> bool:
        """Handle a special command. Returns True if should continue, False to exit."""
        cmd, _, arg = command.strip().partition(" ")
        cmd = cmd.lower()
        arg = arg.strip()

        if cmd in ("/exit", "/quit", "exit", "quit"):
            print("\n👋 Goodbye!")
            self.logger.log("session_end", conversation_id=self.conversation_id)
            return False

        if cmd == "/new":
            self._new_conversation()
        elif cmd == "/strategy":
            self._set_strategy(arg)
        elif cmd == "/branch":
            self._create_branch(arg)
        elif cmd == "/switch":
            self._switch_branch(arg)
        elif cmd == "/branches":
            self._show_branches()
        elif cmd == "/facts":
            self._show_facts()
        elif cmd == "/summaries":
            self._show_summaries()
        elif cmd == "/history":
            self._show_history()
        elif cmd == "/help":
            print(BANNER)

        return True  # Unknown command, continue

    async def run(self) -> None:
        """Run the interactive CLI."""
        print(BANNER)
        print(f"Conversation: {self.conversation_id}\n")
        self.logger.log("session_start", conversation_id=self.conversation_id)

        try:
            while True:
                try:
                    user_input = input("you> ").strip()

                    if not user_input:
                        continue

                    if user_input.startswith("/") or user_input.lower() in ("exit", "quit"):
                        if not await self._handle_command(user_input):
                            break
                        continue

                    await self._process_message(user_input)

                except KeyboardInterrupt:
                    print("\n\n⚡ Interrupted")
                    try:
                        confirm = input("Exit? (y/n): ").strip().lower()
                        if confirm in ("y", "yes"):
                            print("👋 Goodbye!")
                            self.logger.log("session_interrupt", conversation_id=self.conversation_id)
                            break
                    except (KeyboardInterrupt, EOFError):
                        print("\n👋 Goodbye!")
                        break

                except EOFError:
                    print("\n👋 Goodbye!")
                    break
        finally:
            self.store.close()


async def run_cli(settings: Settings, conversation_id: str | None = None) -> None:
    """Run the CLI with the given settings."""
    configure_logger(settings.log_dir)

    if not settings.api_key:
        print("❌ Error: GROQ_API_KEY environment variable not set")
        print("Please set it in your .env file or environment")
        return

    cli = CLI(settings=settings, conversation_id=conversation_id)
    await cli.run()

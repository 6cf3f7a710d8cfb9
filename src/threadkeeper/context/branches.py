"""Branch-aware history reconstruction."""

from typing import Any

from ..storage import ConversationStore


def resolve_history(
    store: ConversationStore,
    conversation_id: str,
    branch_id: str | None = None,
) -> list[dict[str, Any]]:
    """Return the effective message sequence for a conversation or branch.

    Without a branch id this is the whole root branch. With one, it is the
    branch's inherited prefix (the first ``base_count`` root messages)
    followed by the branch's own messages. A branch that doesn't exist in
    this conversation yields an empty history.

    Args:
        store: Conversation storage.
        conversation_id: The conversation to read.
        branch_id: Optional branch to resolve.

    Returns:
        Role/content dicts, oldest first.
    """
    if not branch_id:
        return [m.for_llm() for m in store.list_messages(conversation_id)]

    branch = store.get_branch(branch_id, conversation_id)
    if branch is None:
        return []

    base = store.list_messages(conversation_id, limit=branch.base_count)
    tail = store.list_messages(conversation_id, branch_id=branch.id)
    return [m.for_llm() for m in base + tail]

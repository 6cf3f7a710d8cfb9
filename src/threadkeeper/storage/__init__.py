"""Persistence for conversations, branches, messages and summaries."""

from .models import Branch, Conversation, Message, Summary
from .store import ConversationStore

__all__ = ["Branch", "Conversation", "ConversationStore", "Message", "Summary"]

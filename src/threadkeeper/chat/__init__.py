"""Turn orchestration."""

from .service import BranchNotFoundError, ChatService, TurnRequest, TurnResult

__all__ = ["BranchNotFoundError", "ChatService", "TurnRequest", "TurnResult"]

"""Completion client abstraction and the Groq implementation."""

from .client import (
    DEFAULT_MODEL,
    Completion,
    CompletionClient,
    GroqCompletionClient,
    SamplingParams,
    TokenUsage,
)

__all__ = [
    "DEFAULT_MODEL",
    "Completion",
    "CompletionClient",
    "GroqCompletionClient",
    "SamplingParams",
    "TokenUsage",
]

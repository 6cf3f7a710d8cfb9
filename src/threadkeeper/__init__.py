"""Bounded, branch-aware conversational context for chat completion models."""

__version__ = "0.1.0"

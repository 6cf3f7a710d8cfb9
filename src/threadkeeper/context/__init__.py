"""Context assembly: branch resolution, summarization and strategies."""

from .branches import resolve_history
from .strategies import (
    DEFAULT_WINDOW_SIZE,
    BranchingStrategy,
    ContextBuilder,
    ContextOptions,
    ContextStrategy,
    SlidingWindowStrategy,
    StickyFactsStrategy,
    Strategy,
    SummarizationStrategy,
    window,
)
from .summarizer import CHUNK_SIZE, SummarizationError, Summarizer, chunk_history

__all__ = [
    "CHUNK_SIZE",
    "DEFAULT_WINDOW_SIZE",
    "BranchingStrategy",
    "ContextBuilder",
    "ContextOptions",
    "ContextStrategy",
    "SlidingWindowStrategy",
    "StickyFactsStrategy",
    "Strategy",
    "SummarizationError",
    "SummarizationStrategy",
    "Summarizer",
    "chunk_history",
    "resolve_history",
    "window",
]

"""Per-conversation fact memory."""

from .extractor import FactExtractor, FactParseError
from .manager import FactMemory, render_facts

__all__ = [
    "FactExtractor",
    "FactMemory",
    "FactParseError",
    "render_facts",
]

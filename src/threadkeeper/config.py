"""Configuration loaded from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from .context import DEFAULT_WINDOW_SIZE, Strategy
from .llm import DEFAULT_MODEL

DATA_DIR = Path.home() / ".threadkeeper"

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Answer clearly and concisely."


@dataclass
class Settings:
    """Runtime settings for the chat service and CLI."""

    api_key: str | None = None
    model: str = DEFAULT_MODEL
    summary_model: str = ""
    db_path: Path = field(default_factory=lambda: DATA_DIR / "threadkeeper.db")
    log_dir: Path = field(default_factory=lambda: DATA_DIR / "logs")
    strategy: Strategy = Strategy.SUMMARIZATION
    window_size: int = DEFAULT_WINDOW_SIZE
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    def __post_init__(self) -> None:
        if not self.summary_model:
            self.summary_model = self.model

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        model = os.getenv("THREADKEEPER_MODEL", DEFAULT_MODEL)
        db_path = os.getenv("THREADKEEPER_DB")
        log_dir = os.getenv("THREADKEEPER_LOG_DIR")

        return cls(
            api_key=os.getenv("GROQ_API_KEY"),
            model=model,
            summary_model=os.getenv("THREADKEEPER_SUMMARY_MODEL", model),
            db_path=Path(db_path).expanduser() if db_path else DATA_DIR / "threadkeeper.db",
            log_dir=Path(log_dir).expanduser() if log_dir else DATA_DIR / "logs",
            strategy=Strategy.parse(os.getenv("THREADKEEPER_STRATEGY")),
            window_size=int(os.getenv("THREADKEEPER_WINDOW_SIZE", str(DEFAULT_WINDOW_SIZE))),
            system_prompt=os.getenv("THREADKEEPER_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
        )

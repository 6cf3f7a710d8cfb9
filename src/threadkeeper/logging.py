"""JSONL logging for observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DEFAULT_LOG_DIR = Path.home() / ".threadkeeper" / "logs"


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    conversation_id: str | None = None
    branch_id: str | None = None
    strategy: str | None = None
    model: str | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured logs in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "threadkeeper.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        self.log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        conversation_id: str | None = None,
        branch_id: str | None = None,
        strategy: str | None = None,
        model: str | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            conversation_id=conversation_id,
            branch_id=branch_id,
            strategy=strategy,
            model=model,
            duration_ms=duration_ms,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_context_built(
        self,
        conversation_id: str,
        strategy: str,
        *,
        history_size: int,
        context_size: int,
        branch_id: str | None = None,
    ) -> None:
        """Log the size of a finalized prompt."""
        self.log(
            "context_built",
            conversation_id=conversation_id,
            branch_id=branch_id,
            strategy=strategy,
            history_size=history_size,
            context_size=context_size,
        )

    def log_summary_created(
        self,
        conversation_id: str,
        chunk_index: int,
        *,
        model: str,
        duration_ms: float,
    ) -> None:
        """Log a freshly computed chunk summary (cache miss)."""
        self.log(
            "summary_created",
            conversation_id=conversation_id,
            model=model,
            duration_ms=duration_ms,
            chunk_index=chunk_index,
        )

    def log_completion(
        self,
        conversation_id: str,
        model: str,
        *,
        prompt_tokens: int,
        completion_tokens: int,
        duration_ms: float,
        branch_id: str | None = None,
    ) -> None:
        """Log a completion call and its token usage."""
        self.log(
            "completion",
            conversation_id=conversation_id,
            branch_id=branch_id,
            model=model,
            duration_ms=duration_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

    def log_facts_updated(self, conversation_id: str, keys: list[str]) -> None:
        """Log which fact keys changed after extraction."""
        self.log("facts_updated", conversation_id=conversation_id, keys=keys)


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger

"""JSONL event log for memory observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    chat_id: str | None = None
    message_id: str | None = None
    category: str | None = None
    duration_ms: float | None = None
    stopped_reason: str | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured memory events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".mnemo" / "logs"
        self.log_dir = Path(log_dir)
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
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), default=str) + "\n")

    def log(
        self,
        event: str,
        *,
        chat_id: str | None = None,
        message_id: str | None = None,
        category: str | None = None,
        duration_ms: float | None = None,
        stopped_reason: str | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            chat_id=chat_id,
            message_id=message_id,
            category=category,
            duration_ms=duration_ms,
            stopped_reason=stopped_reason,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_turn(self, message_id: str, author: str, length: int) -> None:
        """Log an inbound turn entering the cache."""
        self.log("turn_received", message_id=message_id, author=author, length=length)

    def log_immediate(
        self,
        message_id: str,
        important: bool,
        *,
        category: str | None = None,
        stored: int = 0,
        duration_ms: float | None = None,
    ) -> None:
        """Log the outcome of immediate storage for one turn."""
        self.log(
            "immediate_storage",
            message_id=message_id,
            category=category,
            duration_ms=duration_ms,
            important=important,
            stored=stored,
        )

    def log_ledger(self, message_id: str, processing_type: str, stored_in: str | None) -> None:
        """Log a ledger write."""
        self.log(
            "ledger_write",
            message_id=message_id,
            processing_type=processing_type,
            stored_in=stored_in,
        )

    def log_consolidation(
        self,
        status: str,
        *,
        gathered: int = 0,
        chunks_stored: int = 0,
        ledgered: int = 0,
        duration_ms: float | None = None,
        error: str | None = None,
    ) -> None:
        """Log the end of a consolidation run."""
        self.log(
            "consolidation",
            duration_ms=duration_ms,
            error=error,
            status=status,
            gathered=gathered,
            chunks_stored=chunks_stored,
            ledgered=ledgered,
        )

    def log_agent_stop(
        self,
        reason: str,
        *,
        chat_id: str | None = None,
        turns: int | None = None,
    ) -> None:
        """Log when the agent loop stops."""
        self.log(
            "agent_stop",
            chat_id=chat_id,
            stopped_reason=reason,
            turns=turns,
        )


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

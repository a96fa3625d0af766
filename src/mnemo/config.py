"""Configuration loaded from environment variables."""

import os
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path

from .conversation import CacheConfig
from .memory.config import MemoryConfig


@dataclass
class EmbeddingConfig:
    """Which embedding backend the semantic store uses."""

    provider: str = "openai"
    model: str = "text-embedding-3-small"
    dims: int = 1536


@dataclass
class Settings:
    """Everything the application needs to start."""

    model: str = "llama-3.1-70b-versatile"
    groq_api_key: str | None = None
    telegram_token: str | None = None
    data_dir: Path = field(default_factory=lambda: Path.home() / ".mnemo")
    cache: CacheConfig = field(default_factory=CacheConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)

    @property
    def relational_db_path(self) -> Path:
        return self.data_dir / "memory.db"

    @property
    def semantic_db_path(self) -> Path:
        return self.data_dir / "semantic.db"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"


def parse_clock(value: str) -> time:
    """Parse an 'HH:MM' wall clock time.

    Raises:
        ValueError: If the value is not a valid time of day.
    """
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)") from e


def config_from_env() -> Settings:
    """Load configuration from environment variables.

    Raises:
        ValueError: If a numeric or time setting can't be parsed.
    """
    data_dir = os.getenv("MNEMO_DATA_DIR")

    return Settings(
        model=os.getenv("GROQ_MODEL", "llama-3.1-70b-versatile"),
        groq_api_key=os.getenv("GROQ_API_KEY"),
        telegram_token=os.getenv("TELEGRAM_TOKEN"),
        data_dir=Path(data_dir).expanduser() if data_dir else Path.home() / ".mnemo",
        cache=CacheConfig(
            max_size=int(os.getenv("CACHE_MAX_SIZE", "50")),
            retain=int(os.getenv("CACHE_RETAIN", "40")),
        ),
        memory=MemoryConfig(
            context_window=int(os.getenv("CONTEXT_WINDOW_SIZE", "10")),
            dedup_threshold=float(os.getenv("DEDUP_SIMILARITY_THRESHOLD", "0.15")),
            search_limit=int(os.getenv("MEMORY_SEARCH_LIMIT", "3")),
            recent_event_days=int(os.getenv("RECENT_EVENT_DAYS", "7")),
            min_chunk_length=int(os.getenv("BATCH_MIN_CHUNK_LENGTH", "20")),
            consolidation_time=parse_clock(os.getenv("CONSOLIDATION_TIME", "23:00")),
        ),
        embedding=EmbeddingConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", "openai"),
            model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            dims=int(os.getenv("EMBEDDING_DIMS", "1536")),
        ),
    )

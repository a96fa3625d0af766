"""Data models for the memory system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | str) -> str:
    """Normalize a datetime (or ISO string) to a UTC ISO-8601 string."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Role(Enum):
    """Who produced a turn."""

    USER = "user"
    ASSISTANT = "assistant"


class Category(Enum):
    """Kinds of information the classifier can recognize."""

    FACT = "fact"
    EVENT = "event"
    TODO = "todo"
    REMINDER = "reminder"
    NONE = "none"

    @classmethod
    def parse(cls, value: Any) -> Category:
        """Map a free-form classifier value onto the enumeration.

        Anything unrecognized becomes NONE.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE


class ProcessingType(Enum):
    """Which path incorporated a message into memory."""

    IMMEDIATE = "immediate"
    BATCH = "batch"


CONSOLIDATED = "consolidated"


@dataclass(frozen=True)
class Turn:
    """One message exchanged in the conversation.

    Attributes:
        id: Transport-assigned message id, unique.
        author: Display name of the sender.
        content: Message text.
        role: USER or ASSISTANT.
        created_at: When the message was sent.
    """

    id: str
    author: str
    content: str
    role: Role = Role.USER
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CacheEntry:
    """A turn as held by the conversation cache."""

    turn: Turn
    message_id: str
    timestamp: datetime

    @property
    def content(self) -> str:
        return self.turn.content

    @property
    def role(self) -> Role:
        return self.turn.role


@dataclass(frozen=True)
class ImportanceJudgment:
    """Classifier verdict on whether a message is worth storing now."""

    important: bool
    category: Category = Category.NONE
    reason: str = ""


@dataclass(frozen=True)
class ExtractedFact:
    """A single statement pulled out of a message by the classifier."""

    text: str
    category: Category
    confidence: float = 0.0


@dataclass(frozen=True)
class MemoryChunk:
    """A narrative summary produced by the nightly consolidation."""

    narrative: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StoreResult:
    """Outcome of a semantic store write.

    Attributes:
        stored: 'new', 'enriched' or 'failed'.
        id: Fact id for successful writes.
        reason: Failure description.
    """

    stored: str
    id: str | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.stored != "failed"


@dataclass(frozen=True)
class Fact:
    """A time-irrelevant memory held by the semantic store."""

    id: str
    text: str
    category: str
    source_message_ids: list[str]
    created_at: str
    last_updated_at: str | None = None
    enriched: bool = False

    @classmethod
    def from_document(cls, doc_id: str, text: str, metadata: dict[str, Any]) -> Fact:
        sources = str(metadata.get("source_messages") or "")
        return cls(
            id=doc_id,
            text=text,
            category=str(metadata.get("category", "fact")),
            source_message_ids=[s for s in sources.split(",") if s],
            created_at=str(metadata.get("timestamp", "")),
            last_updated_at=metadata.get("last_updated"),
            enriched=bool(metadata.get("enriched", False)),
        )


@dataclass(frozen=True)
class SearchHit:
    """A semantic store match."""

    id: str
    text: str
    distance: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Event:
    """A dated occurrence held by the relational store."""

    id: int
    date: str
    description: str
    participants: str | None = None
    context: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Todo:
    """An actionable task."""

    id: int
    task: str
    due_date: str | None = None
    priority: str = "normal"
    completed: bool = False
    created_at: str | None = None


@dataclass(frozen=True)
class Reminder:
    """A scheduled notification."""

    id: int
    trigger_time: str
    message: str
    recurring: str | None = None
    completed: bool = False
    created_at: str | None = None


@dataclass(frozen=True)
class LedgerRecord:
    """Proof that a message has been incorporated into memory."""

    message_id: str
    processing_type: ProcessingType
    stored_in: str | None
    processed_at: str


@dataclass
class AssembledContext:
    """Memory context gathered for a single chat turn."""

    query: str
    search_query: str
    memories: list[SearchHit] = field(default_factory=list)
    recent_events: list[Event] = field(default_factory=list)
    recent_event_days: int = 7

    @property
    def is_empty(self) -> bool:
        return not self.memories and not self.recent_events

"""Per-turn memory handling: immediate storage and context assembly."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..logging import JSONLLogger, get_logger
from .classifier import MemoryClassifier
from .config import MemoryConfig
from .models import (
    AssembledContext,
    Category,
    Event,
    ProcessingType,
    Role,
    StoreResult,
    Turn,
)
from .relational import RelationalStore
from .semantic import SemanticStore

if TYPE_CHECKING:
    from ..conversation import ConversationCache

logger = logging.getLogger(__name__)

# Turns the query reformulation looks back on.
REFORMULATION_WINDOW = 3


@dataclass
class ImmediateOutcome:
    """What the immediate path did with one turn."""

    message_id: str
    important: bool = False
    category: Category = Category.NONE
    facts: list[StoreResult] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    ledgered: bool = False

    @property
    def stored(self) -> int:
        return sum(1 for r in self.facts if r.ok) + len(self.events)


class MemoryEngine:
    """Coordinates the cache, the classifier and both stores for each turn.

    A user turn is cached, judged for importance and, when important,
    its facts are written straight away and the turn is recorded in the
    processed-message ledger. Turns that aren't ledgered stay in the
    cache for the nightly consolidation. None of this can fail the chat
    response: every failure is logged and treated as "not important".
    """

    def __init__(
        self,
        cache: ConversationCache,
        classifier: MemoryClassifier,
        semantic: SemanticStore,
        relational: RelationalStore,
        config: MemoryConfig | None = None,
        event_log: JSONLLogger | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            cache: Conversation cache shared with the consolidator.
            classifier: LLM collaborator for importance and extraction.
            semantic: Store for time-irrelevant facts.
            relational: Store for events, todos and the ledger.
            config: Pipeline tuning.
            event_log: Structured event log.
        """
        self.cache = cache
        self.classifier = classifier
        self.semantic = semantic
        self.relational = relational
        self.config = config or MemoryConfig()
        self.event_log = event_log or get_logger()

    async def on_turn(self, turn: Turn) -> AssembledContext:
        """Handle an inbound user turn and gather memory context for the reply.

        Never raises.

        Args:
            turn: The inbound turn.

        Returns:
            Context to inject into the reply prompt.
        """
        self.cache.append(turn)

        try:
            self.event_log.log_turn(turn.id, turn.author, len(turn.content))
            await self.process_turn(turn)
        except Exception:
            logger.exception(f"Immediate storage failed for message {turn.id}")

        return await self.assemble_context(turn.content, before_id=turn.id)

    def record_reply(self, turn: Turn) -> None:
        """Add an assistant reply to the cache so later turns see it."""
        self.cache.append(turn)

    async def process_turn(self, turn: Turn) -> ImmediateOutcome:
        """Run the immediate storage path for one turn.

        The turn must already be in the cache. Todos are left to the todo
        tools. Only facts go through deduplication; events are appended
        as they are.

        Returns:
            What was judged, stored and ledgered.
        """
        outcome = ImmediateOutcome(message_id=turn.id)
        if turn.role != Role.USER:
            return outcome

        started = time.monotonic()
        window = self.cache.recent(self.config.context_window, before=turn.id)

        judgment = await self.classifier.detect_importance(turn.content, window)
        outcome.important = judgment.important
        outcome.category = judgment.category

        if not judgment.important:
            self._log_outcome(outcome, started)
            return outcome

        logger.info(f"[Important] {judgment.reason}")
        failed = False

        if judgment.category != Category.TODO:
            facts = await self.classifier.extract_facts(turn.content, window)
            for fact in facts:
                if fact.category == Category.FACT:
                    result = await self.semantic.store_fact(
                        fact.text, fact.category.value, turn.id, turn.created_at
                    )
                    outcome.facts.append(result)
                    failed = failed or not result.ok
                elif fact.category == Category.EVENT:
                    try:
                        event = self.relational.create_event(
                            turn.created_at,
                            fact.text,
                            participants=turn.author,
                            context=turn.content,
                        )
                    except Exception as e:
                        logger.warning(f"Storing event failed: {e}")
                        failed = True
                    else:
                        outcome.events.append(event)

        # A failed write leaves the turn to the batch pass.
        if not failed:
            stored_in = judgment.category if outcome.stored else Category.NONE
            outcome.ledgered = self._mark_processed(turn.id, stored_in.value)

        self._log_outcome(outcome, started)
        return outcome

    def _mark_processed(self, message_id: str, stored_in: str) -> bool:
        try:
            self.relational.ledger_upsert(message_id, ProcessingType.IMMEDIATE, stored_in)
        except Exception as e:
            logger.warning(f"Ledger write failed for message {message_id}: {e}")
            return False
        self.event_log.log_ledger(message_id, ProcessingType.IMMEDIATE.value, stored_in)
        return True

    def _log_outcome(self, outcome: ImmediateOutcome, started: float) -> None:
        self.event_log.log_immediate(
            outcome.message_id,
            outcome.important,
            category=outcome.category.value,
            stored=outcome.stored,
            duration_ms=(time.monotonic() - started) * 1000,
        )

    async def assemble_context(self, query: str, before_id: str | None = None) -> AssembledContext:
        """Gather relevant memories and recent events for a query.

        Read-only. Reformulation and search degrade to the raw query and
        no memories; an unavailable relational store yields no events.

        Args:
            query: The user's message.
            before_id: Id of the current turn, excluded from the context.

        Returns:
            The assembled context.
        """
        recent = self.cache.recent(REFORMULATION_WINDOW, before=before_id)
        search_query = await self.classifier.reformulate_query(query, recent)
        memories = await self.semantic.search(search_query, self.config.search_limit)

        try:
            events = self.relational.list_recent_events(self.config.recent_event_days)
        except Exception as e:
            logger.warning(f"Loading recent events failed: {e}")
            events = []

        return AssembledContext(
            query=query,
            search_query=search_query,
            memories=memories,
            recent_events=events,
            recent_event_days=self.config.recent_event_days,
        )

    def history(self, limit: int | None = None, before_id: str | None = None) -> list[dict[str, Any]]:
        """Recent cached turns as chat messages for the LLM."""
        entries = self.cache.recent(limit or self.config.context_window, before=before_id)
        messages = []
        for entry in entries:
            if entry.role == Role.USER:
                messages.append({"role": "user", "content": f"{entry.turn.author}: {entry.content}"})
            else:
                messages.append({"role": "assistant", "content": entry.content})
        return messages


def format_for_prompt(context: AssembledContext | None) -> str:
    """Format assembled context as a block for the system prompt.

    Returns:
        XML-formatted memory block, or empty string if there is nothing.
    """
    if context is None or context.is_empty:
        return ""

    sections = []
    if context.memories:
        lines = "\n".join(f"- {hit.text}" for hit in context.memories)
        sections.append(f"Relevant memories:\n{lines}")
    if context.recent_events:
        lines = "\n".join(
            f"- {event.date[:10]}: {event.description}" for event in context.recent_events
        )
        sections.append(f"Recent events (last {context.recent_event_days} days):\n{lines}")

    content = "\n\n".join(sections)
    return f"""<memory>
{content}
</memory>"""

"""Nightly consolidation of turns the immediate path didn't store."""

from __future__ import annotations

import asyncio
import logging
import time as _time
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from ..logging import JSONLLogger, get_logger
from .classifier import MemoryClassifier, parse_batch_chunks
from .models import CONSOLIDATED, CacheEntry, MemoryChunk, ProcessingType, Role, to_iso, utcnow
from .relational import RelationalStore
from .semantic import SemanticStore

if TYPE_CHECKING:
    from ..conversation import ConversationCache

logger = logging.getLogger(__name__)


class ConsolidationState(Enum):
    """Where a consolidation run currently is."""

    IDLE = "idle"
    TRIGGERED = "triggered"
    GATHERING = "gathering"
    EXTRACTING = "extracting"
    STORING = "storing"
    MARKING_LEDGER = "marking_ledger"
    CLEARING_CACHE = "clearing_cache"


@dataclass
class ConsolidationReport:
    """Result of one consolidation run.

    Attributes:
        status: 'completed', 'noop', 'skipped' (another run in flight)
            or 'failed'.
        gathered: Unprocessed turns found in the cache.
        chunks_stored: Memory chunks written to the semantic store.
        ledgered: Ledger records written.
        cleared: Cache entries dropped at the end.
        error: Failure description.
    """

    status: str
    gathered: int = 0
    chunks_stored: int = 0
    ledgered: int = 0
    cleared: int = 0
    error: str | None = None


class Consolidator:
    """Runs the batch pipeline over the conversation cache.

    Gathering -> Extracting -> Storing -> MarkingLedger -> ClearingCache.
    At most one run is in flight; a run started while another is going
    returns a 'skipped' report. Any failure aborts the run, leaving the
    cache untouched so the next trigger retries the same turns.
    """

    def __init__(
        self,
        cache: ConversationCache,
        classifier: MemoryClassifier,
        semantic: SemanticStore,
        relational: RelationalStore,
        min_chunk_length: int = 20,
        event_log: JSONLLogger | None = None,
    ) -> None:
        self.cache = cache
        self.classifier = classifier
        self.semantic = semantic
        self.relational = relational
        self.min_chunk_length = min_chunk_length
        self.event_log = event_log or get_logger()
        self._state = ConsolidationState.IDLE
        self._in_progress = False

    @property
    def state(self) -> ConsolidationState:
        return self._state

    @property
    def running(self) -> bool:
        return self._in_progress

    async def run_consolidation(self) -> ConsolidationReport:
        """Consolidate every cached user turn that has no ledger record.

        Returns:
            A report describing what the run did.
        """
        if self._in_progress:
            logger.info("Consolidation already in progress, skipping trigger")
            return ConsolidationReport(status="skipped")

        self._in_progress = True
        self._state = ConsolidationState.TRIGGERED
        report = ConsolidationReport(status="completed")
        started = _time.monotonic()
        logger.info("Starting memory consolidation")

        try:
            await self._run(report)
        except Exception as e:
            logger.exception(f"Consolidation aborted in state {self._state.value}")
            report.status = "failed"
            report.error = str(e)
        finally:
            self._state = ConsolidationState.IDLE
            self._in_progress = False

        try:
            self.event_log.log_consolidation(
                report.status,
                gathered=report.gathered,
                chunks_stored=report.chunks_stored,
                ledgered=report.ledgered,
                duration_ms=(_time.monotonic() - started) * 1000,
                error=report.error,
            )
        except Exception as e:
            logger.warning(f"Writing consolidation event failed: {e}")
        return report

    async def _run(self, report: ConsolidationReport) -> None:
        self._state = ConsolidationState.GATHERING
        pending = self.gather()
        report.gathered = len(pending)
        if not pending:
            logger.info("No unprocessed messages to consolidate")
            report.status = "noop"
            return

        logger.info(f"Processing {len(pending)} unprocessed messages")

        self._state = ConsolidationState.EXTRACTING
        chunks = await self.extract(pending)

        self._state = ConsolidationState.STORING
        for chunk in chunks:
            await self.semantic.add_chunk(chunk.narrative, chunk.metadata)
            report.chunks_stored += 1

        self._state = ConsolidationState.MARKING_LEDGER
        for entry in pending:
            # Records written meanwhile by the immediate path are kept.
            if self.relational.ledger_upsert(
                entry.message_id, ProcessingType.BATCH, CONSOLIDATED, replace=False
            ):
                report.ledgered += 1

        self._state = ConsolidationState.CLEARING_CACHE
        report.cleared = self.cache.clear()
        logger.info(
            f"Consolidation complete: {report.chunks_stored} chunks from "
            f"{report.gathered} messages"
        )

    def gather(self) -> list[CacheEntry]:
        """Cached user turns that haven't been incorporated into memory."""
        return [
            entry
            for entry in self.cache.snapshot()
            if entry.role == Role.USER and not self.relational.ledger_has_record(entry.message_id)
        ]

    async def extract(self, entries: list[CacheEntry]) -> list[MemoryChunk]:
        """Turn a batch of cached turns into memory chunks.

        Raises:
            ClassificationError: If the batch extraction fails.
        """
        text = "\n".join(f"{e.turn.author}: {e.content}" for e in entries)
        raw = await self.classifier.extract_batch(text)
        created_at = to_iso(utcnow())
        return [
            MemoryChunk(
                narrative=narrative,
                metadata={"message_count": len(entries), "created_at": created_at},
            )
            for narrative in parse_batch_chunks(raw, self.min_chunk_length)
        ]


class ConsolidationScheduler:
    """Fires the consolidator once a day at a local wall-clock time."""

    def __init__(self, consolidator: Consolidator, run_at: time = time(23, 0)) -> None:
        self.consolidator = consolidator
        self.run_at = run_at
        self._task: asyncio.Task | None = None
        self._runs: set[asyncio.Task] = set()

    def next_run_after(self, now: datetime) -> datetime:
        """First scheduled run strictly after ``now`` (local time)."""
        target = now.replace(
            hour=self.run_at.hour,
            minute=self.run_at.minute,
            second=0,
            microsecond=0,
        )
        if target <= now:
            target += timedelta(days=1)
        return target

    def seconds_until_next_run(self, now: datetime | None = None) -> float:
        """Seconds from ``now`` (local time) to the next scheduled run."""
        now = now or datetime.now()
        return (self.next_run_after(now) - now).total_seconds()

    def trigger(self) -> asyncio.Task | None:
        """Start a consolidation run unless one is already in flight.

        Returns:
            The task running it, or None if the trigger was dropped.
        """
        if self.consolidator.running:
            logger.info("Consolidation still running, dropping trigger")
            return None
        task = asyncio.create_task(self.consolidator.run_consolidation())
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def _schedule_loop(self) -> None:
        """Background task sleeping until each daily run."""
        target = self.next_run_after(datetime.now())
        while True:
            try:
                await asyncio.sleep(max(0.0, (target - datetime.now()).total_seconds()))
                # Advance from the target, not the clock; sleep may wake early
                target = self.next_run_after(max(target, datetime.now()))
                self.trigger()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Consolidation scheduler error")

    def start(self) -> None:
        """Start the background scheduling task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._schedule_loop())
            logger.info(f"Daily consolidation scheduled at {self.run_at.strftime('%H:%M')}")

    def stop(self) -> None:
        """Stop the background scheduling task."""
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

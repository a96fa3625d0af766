"""Wiring of stores, classifier, pipeline and scheduler from settings."""

from __future__ import annotations

from dataclasses import dataclass

from groq import AsyncGroq

from .agent import AgentConfig, AgentLoop
from .config import Settings
from .conversation import ConversationCache
from .logging import JSONLLogger, configure_logger
from .memory import (
    ConsolidationScheduler,
    Consolidator,
    MemoryClassifier,
    MemoryEngine,
    RelationalStore,
    SemanticStore,
    create_embedder,
    todo_tools,
)
from .tools import ToolRegistry


@dataclass
class Services:
    """Everything a host needs to serve chat turns."""

    settings: Settings
    cache: ConversationCache
    relational: RelationalStore
    semantic: SemanticStore
    classifier: MemoryClassifier
    engine: MemoryEngine
    consolidator: Consolidator
    scheduler: ConsolidationScheduler
    registry: ToolRegistry
    agent: AgentLoop
    event_log: JSONLLogger

    async def close(self) -> None:
        """Stop the scheduler and release store connections."""
        self.scheduler.stop()
        await self.semantic.embedder.close()
        self.semantic.close()
        self.relational.close()


def build_services(settings: Settings, groq_client: AsyncGroq | None = None) -> Services:
    """Create and initialize all components.

    Args:
        settings: Loaded configuration.
        groq_client: LLM client; created from ``settings`` if omitted.

    Returns:
        The wired services. Databases are initialized.
    """
    event_log = configure_logger(settings.log_dir)
    client = groq_client or AsyncGroq(api_key=settings.groq_api_key)

    relational = RelationalStore(settings.relational_db_path)
    relational.init_db()

    embedder = create_embedder(
        settings.embedding.provider,
        model=settings.embedding.model,
        dims=settings.embedding.dims,
    )
    semantic = SemanticStore(
        settings.semantic_db_path,
        embedder,
        dedup_threshold=settings.memory.dedup_threshold,
    )
    semantic.init_db()

    cache = ConversationCache(settings.cache)
    classifier = MemoryClassifier(client, model=settings.model)
    engine = MemoryEngine(
        cache,
        classifier,
        semantic,
        relational,
        config=settings.memory,
        event_log=event_log,
    )
    consolidator = Consolidator(
        cache,
        classifier,
        semantic,
        relational,
        min_chunk_length=settings.memory.min_chunk_length,
        event_log=event_log,
    )
    scheduler = ConsolidationScheduler(consolidator, run_at=settings.memory.consolidation_time)

    registry = ToolRegistry()
    for tool in todo_tools(relational):
        registry.register(tool)
    agent = AgentLoop(
        registry,
        AgentConfig(model=settings.model),
        groq_client=client,
        event_log=event_log,
    )

    return Services(
        settings=settings,
        cache=cache,
        relational=relational,
        semantic=semantic,
        classifier=classifier,
        engine=engine,
        consolidator=consolidator,
        scheduler=scheduler,
        registry=registry,
        agent=agent,
        event_log=event_log,
    )

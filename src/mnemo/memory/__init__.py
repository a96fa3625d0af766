"""Long-term memory: classification, storage and consolidation."""

from .classifier import CategorizedMemories, MemoryClassifier, parse_batch_chunks
from .config import MemoryConfig
from .consolidation import (
    ConsolidationReport,
    ConsolidationScheduler,
    ConsolidationState,
    Consolidator,
)
from .embeddings import Embedder, HashEmbedder, OpenAIEmbedder, create_embedder
from .errors import ClassificationError, MnemoError, StoreError
from .models import (
    AssembledContext,
    CacheEntry,
    Category,
    Event,
    Fact,
    LedgerRecord,
    ProcessingType,
    Reminder,
    Role,
    SearchHit,
    StoreResult,
    Todo,
    Turn,
)
from .pipeline import ImmediateOutcome, MemoryEngine, format_for_prompt
from .relational import RelationalStore
from .semantic import SemanticStore
from .tools import AddTodoTool, CompleteTodoTool, DeleteTodoTool, GetTodosTool, todo_tools

__all__ = [
    "AddTodoTool",
    "AssembledContext",
    "CacheEntry",
    "CategorizedMemories",
    "Category",
    "ClassificationError",
    "CompleteTodoTool",
    "ConsolidationReport",
    "ConsolidationScheduler",
    "ConsolidationState",
    "Consolidator",
    "DeleteTodoTool",
    "Embedder",
    "Event",
    "Fact",
    "GetTodosTool",
    "HashEmbedder",
    "ImmediateOutcome",
    "LedgerRecord",
    "MemoryClassifier",
    "MemoryConfig",
    "MemoryEngine",
    "MnemoError",
    "OpenAIEmbedder",
    "ProcessingType",
    "RelationalStore",
    "Reminder",
    "Role",
    "SearchHit",
    "SemanticStore",
    "StoreError",
    "StoreResult",
    "Todo",
    "Turn",
    "create_embedder",
    "format_for_prompt",
    "parse_batch_chunks",
    "todo_tools",
]

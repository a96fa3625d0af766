"""Meaning-indexed storage for time-irrelevant facts."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np

from .embeddings import Embedder
from .errors import StoreError
from .index import VectorIndex
from .models import CONSOLIDATED, Fact, ProcessingType, SearchHit, StoreResult, to_iso, utcnow

logger = logging.getLogger(__name__)


class SemanticStore:
    """Embedded documents with nearest-neighbor lookup and deduplication.

    Documents (text, embedding and a JSON metadata blob) live in SQLite;
    the vectors are mirrored into an in-memory FAISS index that is rebuilt
    from the table on ``init_db``.

    Two texts whose cosine distance is strictly below ``dedup_threshold``
    are treated as the same fact: the second observation is merged into
    the first one's metadata instead of creating a new document.
    """

    def __init__(
        self,
        db_path: Path,
        embedder: Embedder,
        dedup_threshold: float = 0.15,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
            embedder: Backend used to embed texts.
            dedup_threshold: Maximum cosine distance for two texts to be
                considered the same fact.
        """
        self.db_path = db_path
        self.embedder = embedder
        self.dedup_threshold = dedup_threshold
        self.index = VectorIndex(embedder.dims)
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the documents table and load existing vectors into the index."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id          TEXT PRIMARY KEY,
                text        TEXT NOT NULL,
                embedding   BLOB NOT NULL,
                metadata    TEXT NOT NULL DEFAULT '{}',
                created_at  TEXT NOT NULL
            )
        """)
        conn.commit()

        self.index = VectorIndex(self.embedder.dims)
        for row in conn.execute("SELECT id, embedding FROM documents ORDER BY created_at"):
            vector = np.frombuffer(row["embedding"], dtype=np.float32)
            if vector.shape[0] != self.index.dims:
                logger.warning(
                    f"Skipping document {row['id']}: embedding has "
                    f"{vector.shape[0]} dimensions, expected {self.index.dims}"
                )
                continue
            self.index.add(row["id"], vector)

    # --- low-level contract ---

    async def embed(self, text: str) -> np.ndarray:
        """Compute the embedding for a text."""
        return await self.embedder.embed(text)

    def nearest_neighbor(self, vector: np.ndarray, k: int = 1) -> list[SearchHit]:
        """Find the ``k`` documents closest to ``vector``.

        Args:
            vector: Query embedding.
            k: Number of neighbors.

        Returns:
            Hits ordered by ascending cosine distance.
        """
        hits = []
        for doc_id, distance in self.index.search(vector, k):
            row = self._get_row(doc_id)
            if row is None:
                continue
            hits.append(
                SearchHit(
                    id=doc_id,
                    text=row["text"],
                    distance=distance,
                    metadata=json.loads(row["metadata"] or "{}"),
                )
            )
        return hits

    def upsert(
        self,
        doc_id: str,
        vector: np.ndarray,
        text: str,
        metadata: dict[str, Any],
    ) -> None:
        """Insert or replace a document and its vector."""
        vector = np.asarray(vector, dtype=np.float32).reshape(-1)
        if vector.shape[0] != self.index.dims:
            raise StoreError(
                f"Vector has {vector.shape[0]} dimensions, store expects {self.index.dims}"
            )

        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO documents (id, text, embedding, metadata, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                text = excluded.text,
                embedding = excluded.embedding,
                metadata = excluded.metadata
            """,
            (doc_id, text, vector.tobytes(), json.dumps(metadata), to_iso(utcnow())),
        )
        conn.commit()
        self.index.add(doc_id, vector)

    def update_metadata(self, doc_id: str, metadata: dict[str, Any]) -> None:
        """Replace the metadata of an existing document.

        Raises:
            StoreError: If the document doesn't exist.
        """
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE documents SET metadata = ? WHERE id = ?",
            (json.dumps(metadata), doc_id),
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise StoreError(f"No document with id {doc_id}")

    def get(self, doc_id: str) -> Fact | None:
        """Get a stored document as a Fact."""
        row = self._get_row(doc_id)
        if row is None:
            return None
        return Fact.from_document(row["id"], row["text"], json.loads(row["metadata"] or "{}"))

    def count(self) -> int:
        """Number of stored documents."""
        conn = self._get_connection()
        return int(conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0])

    # --- memory operations ---

    async def store_fact(
        self,
        text: str,
        category: str,
        source_id: str,
        timestamp: datetime,
    ) -> StoreResult:
        """Store a fact unless an equivalent one already exists.

        A near-duplicate (distance below the threshold) is enriched
        instead: the new source message is appended to its
        ``source_messages``, ``last_updated`` is set and it is flagged
        ``enriched``. Its text is left as it was.

        Args:
            text: The fact.
            category: Category recorded in the metadata.
            source_id: Id of the message it came from.
            timestamp: When it was observed.

        Returns:
            StoreResult with 'new', 'enriched' or 'failed'.
        """
        try:
            vector = await self.embed(text)
            nearest = self.nearest_neighbor(vector, k=1)

            if nearest and nearest[0].distance < self.dedup_threshold:
                existing = nearest[0]
                self._enrich(existing, source_id, timestamp)
                logger.info(f"Enriched existing fact {existing.id} (distance {existing.distance:.3f})")
                return StoreResult(stored="enriched", id=existing.id)

            doc_id = uuid.uuid4().hex
            self.upsert(
                doc_id,
                vector,
                text,
                {
                    "source_message_id": source_id,
                    "timestamp": to_iso(timestamp),
                    "category": category,
                    "processed_type": ProcessingType.IMMEDIATE.value,
                    "source_messages": source_id,
                },
            )
            logger.info(f"Stored new fact: {text[:50]}")
            return StoreResult(stored="new", id=doc_id)

        except Exception as e:
            logger.warning(f"Storing fact failed: {e}")
            return StoreResult(stored="failed", reason=str(e))

    def _enrich(self, existing: SearchHit, source_id: str, timestamp: datetime) -> None:
        metadata = dict(existing.metadata)
        previous = metadata.get("source_messages")
        metadata["source_messages"] = f"{previous},{source_id}" if previous else source_id
        metadata["last_updated"] = to_iso(timestamp)
        metadata["enriched"] = True
        self.update_metadata(existing.id, metadata)

    async def add_chunk(self, narrative: str, metadata: dict[str, Any] | None = None) -> str:
        """Store a consolidation chunk without deduplication.

        Args:
            narrative: The memory chunk text.
            metadata: Extra metadata (e.g. message_count, created_at).

        Returns:
            The new document id.

        Raises:
            StoreError: If embedding or writing fails.
        """
        try:
            vector = await self.embed(narrative)
            doc_id = uuid.uuid4().hex
            self.upsert(
                doc_id,
                vector,
                narrative,
                {
                    "category": CONSOLIDATED,
                    **(metadata or {}),
                    "timestamp": to_iso(utcnow()),
                    "processed_type": ProcessingType.BATCH.value,
                },
            )
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Storing memory chunk failed: {e}") from e

        logger.debug(f"Stored memory chunk: {narrative[:50]}")
        return doc_id

    async def search(self, query: str, limit: int = 3) -> list[SearchHit]:
        """Find the documents most relevant to ``query``.

        Read-only. Returns an empty list if the store is unavailable.
        """
        try:
            vector = await self.embed(query)
            return self.nearest_neighbor(vector, k=limit)
        except Exception as e:
            logger.warning(f"Memory search failed: {e}")
            return []

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _get_row(self, doc_id: str) -> sqlite3.Row | None:
        conn = self._get_connection()
        return conn.execute(
            "SELECT id, text, metadata FROM documents WHERE id = ?", (doc_id,)
        ).fetchone()

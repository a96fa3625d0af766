"""FAISS nearest-neighbor index keyed by document id."""

from __future__ import annotations

import faiss
import numpy as np

from .errors import StoreError


class VectorIndex:
    """Exact inner-product index over L2-normalized vectors.

    Scores are cosine similarities; ``search`` reports them as cosine
    distances (``1 - similarity``), so smaller means more similar.
    """

    def __init__(self, dims: int) -> None:
        self.dims = dims
        self._index: faiss.Index = faiss.IndexFlatIP(dims)
        # position in the faiss index -> document id
        self._ids: list[str] = []

    @property
    def size(self) -> int:
        return self._index.ntotal

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self._ids

    def _prepare(self, vector: np.ndarray) -> np.ndarray:
        vec = np.ascontiguousarray(np.asarray(vector, dtype=np.float32).reshape(1, -1))
        if vec.shape[1] != self.dims:
            raise StoreError(
                f"Vector has {vec.shape[1]} dimensions, index expects {self.dims}"
            )
        faiss.normalize_L2(vec)
        return vec

    def add(self, doc_id: str, vector: np.ndarray) -> None:
        """Add a vector, replacing any previous vector for the same id."""
        if doc_id in self._ids:
            self.remove(doc_id)
        self._index.add(self._prepare(vector))
        self._ids.append(doc_id)

    def remove(self, doc_id: str) -> bool:
        """Remove a vector by id. Rebuilds the index."""
        if doc_id not in self._ids:
            return False
        pos = self._ids.index(doc_id)
        n = self._index.ntotal
        vectors = np.zeros((n, self.dims), dtype=np.float32)
        for i in range(n):
            vectors[i] = self._index.reconstruct(i)
        keep = [i for i in range(n) if i != pos]
        self._ids.pop(pos)
        self._index = faiss.IndexFlatIP(self.dims)
        if keep:
            self._index.add(np.ascontiguousarray(vectors[keep]))
        return True

    def search(self, vector: np.ndarray, k: int = 1) -> list[tuple[str, float]]:
        """Find the ``k`` nearest documents.

        Args:
            vector: Query vector.
            k: Number of neighbors.

        Returns:
            (doc_id, cosine distance) pairs, nearest first.
        """
        if self._index.ntotal == 0 or k <= 0:
            return []
        k = min(k, self._index.ntotal)
        scores, positions = self._index.search(self._prepare(vector), k)
        results = []
        for score, pos in zip(scores[0], positions[0]):
            if pos < 0 or pos >= len(self._ids):
                continue
            results.append((self._ids[pos], 1.0 - float(score)))
        return results

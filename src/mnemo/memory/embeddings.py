"""Text embedding backends for the semantic store."""

from __future__ import annotations

import hashlib
import os
import re
from typing import Protocol, runtime_checkable

import httpx
import numpy as np


@runtime_checkable
class Embedder(Protocol):
    """Anything that can turn text into a fixed-size vector."""

    dims: int

    async def embed(self, text: str) -> np.ndarray: ...

    async def close(self) -> None: ...


class OpenAIEmbedder:
    """Embeddings from the OpenAI embeddings endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        dims: int = 1536,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self.model = model
        self.dims = dims
        self.base_url = base_url
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is required")
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        return self._client

    async def embed(self, text: str) -> np.ndarray:
        """Embed a single text.

        Args:
            text: The text to embed.

        Returns:
            A float32 vector of length ``dims``.
        """
        client = await self._get_client()
        resp = await client.post(
            "/embeddings",
            json={"model": self.model, "input": text},
        )
        resp.raise_for_status()
        data = resp.json()
        return np.asarray(data["data"][0]["embedding"], dtype=np.float32)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class HashEmbedder:
    """Offline embedder counting words into hashed buckets.

    No network or API key. Texts sharing words end up close to each other,
    which is enough for development and tests.
    """

    def __init__(self, dims: int = 384) -> None:
        self.dims = max(32, int(dims))

    def _bucket(self, word: str) -> int:
        # Python's hash() is salted per process
        digest = hashlib.md5(word.encode("utf-8")).digest()
        return int.from_bytes(digest[:4], "big") % self.dims

    async def embed(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dims, dtype=np.float32)
        for word in re.findall(r"\w+", (text or "").lower()):
            vec[self._bucket(word)] += 1.0
        norm = np.linalg.norm(vec)
        return vec / norm if norm else vec

    async def close(self) -> None:
        return None


def create_embedder(
    provider: str = "openai",
    model: str = "text-embedding-3-small",
    dims: int = 1536,
) -> Embedder:
    """Build the embedder named by ``provider``.

    Args:
        provider: 'openai' or 'hash'.
        model: Embedding model for remote providers.
        dims: Vector size.

    Returns:
        An Embedder instance.

    Raises:
        ValueError: If the provider is unknown.
    """
    name = (provider or "openai").strip().lower()
    if name == "openai":
        return OpenAIEmbedder(model=model, dims=dims)
    if name in {"hash", "local"}:
        return HashEmbedder(dims=dims)
    raise ValueError(f"Unsupported embedding provider: {provider}")

"""Tests for embedding backends and the vector index."""

from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from mnemo.memory import Embedder, HashEmbedder, OpenAIEmbedder, StoreError, create_embedder
from mnemo.memory.index import VectorIndex


class TestHashEmbedder:
    @pytest.mark.asyncio
    async def test_deterministic_and_normalized(self):
        embedder = HashEmbedder(dims=64)

        first = await embedder.embed("Lucas likes strong coffee")
        second = await embedder.embed("Lucas likes strong coffee")

        assert first.shape == (64,)
        np.testing.assert_array_equal(first, second)
        assert np.linalg.norm(first) == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_empty_text_is_zero_vector(self):
        vec = await HashEmbedder(dims=64).embed("")
        assert not vec.any()

    @pytest.mark.asyncio
    async def test_shared_words_are_closer(self):
        embedder = HashEmbedder(dims=256)
        base = await embedder.embed("my sister lives in madrid")
        similar = await embedder.embed("my sister lives in madrid now")
        different = await embedder.embed("the build pipeline failed again")

        assert float(base @ similar) > float(base @ different)

    @pytest.mark.asyncio
    async def test_word_order_and_case_are_ignored(self):
        embedder = HashEmbedder(dims=128)

        first = await embedder.embed("Ana lives in Lisbon")
        second = await embedder.embed("in LISBON lives ana")

        np.testing.assert_allclose(first, second)

    def test_minimum_dims(self):
        assert HashEmbedder(dims=4).dims == 32

    def test_satisfies_protocol(self):
        assert isinstance(HashEmbedder(), Embedder)


class TestOpenAIEmbedder:
    @pytest.mark.asyncio
    async def test_posts_to_embeddings_endpoint(self):
        embedder = OpenAIEmbedder(api_key="sk-test", dims=3)
        response = MagicMock()
        response.json.return_value = {"data": [{"embedding": [0.1, 0.2, 0.3]}]}
        client = MagicMock()
        client.is_closed = False
        client.post = AsyncMock(return_value=response)
        embedder._client = client

        vec = await embedder.embed("hello")

        client.post.assert_awaited_once_with(
            "/embeddings", json={"model": "text-embedding-3-small", "input": "hello"}
        )
        assert vec.dtype == np.float32
        assert vec.tolist() == pytest.approx([0.1, 0.2, 0.3])

    @pytest.mark.asyncio
    async def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        embedder = OpenAIEmbedder(api_key="")

        with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
            await embedder.embed("hello")


class TestCreateEmbedder:
    def test_hash(self):
        embedder = create_embedder("hash", dims=128)
        assert isinstance(embedder, HashEmbedder)
        assert embedder.dims == 128

    def test_openai(self):
        embedder = create_embedder("OpenAI", model="text-embedding-3-large", dims=3072)
        assert isinstance(embedder, OpenAIEmbedder)
        assert embedder.model == "text-embedding-3-large"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_embedder("word2vec")


class TestVectorIndex:
    def test_search_empty(self):
        assert VectorIndex(2).search(np.array([1.0, 0.0])) == []

    def test_nearest_first_with_cosine_distance(self):
        index = VectorIndex(2)
        index.add("x", np.array([1.0, 0.0]))
        index.add("y", np.array([0.0, 1.0]))

        results = index.search(np.array([2.0, 0.1]), k=2)

        assert [doc_id for doc_id, _ in results] == ["x", "y"]
        assert results[0][1] < 0.01
        assert results[1][1] > 0.9

    def test_k_larger_than_size(self):
        index = VectorIndex(2)
        index.add("x", np.array([1.0, 0.0]))
        assert len(index.search(np.array([1.0, 0.0]), k=5)) == 1

    def test_add_same_id_replaces(self):
        index = VectorIndex(2)
        index.add("x", np.array([1.0, 0.0]))
        index.add("x", np.array([0.0, 1.0]))

        assert index.size == 1
        [(doc_id, distance)] = index.search(np.array([0.0, 1.0]))
        assert doc_id == "x"
        assert distance == pytest.approx(0.0, abs=1e-5)

    def test_remove(self):
        index = VectorIndex(2)
        index.add("x", np.array([1.0, 0.0]))
        index.add("y", np.array([0.0, 1.0]))

        assert index.remove("x")
        assert "x" not in index
        assert index.remove("x") is False
        assert [doc_id for doc_id, _ in index.search(np.array([1.0, 0.0]), k=2)] == ["y"]

    def test_wrong_dimensions(self):
        index = VectorIndex(2)
        with pytest.raises(StoreError, match="dimensions"):
            index.add("x", np.array([1.0, 0.0, 0.0]))

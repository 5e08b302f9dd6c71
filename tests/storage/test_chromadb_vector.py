# tests/storage/test_chromadb_vector.py
"""
Tests for the ChromaDB vector store.

Uses an in-process EphemeralClient ("memory" mode).  Ephemeral clients
share state inside one process, so every test uses its own collection.
"""

import uuid

import pytest
import pytest_asyncio

from govflow.config import VectorStoreConfig
from govflow.exceptions import VectorStorageError
from govflow.storage import ChromaVectorStore, collection_name_for


def _name() -> str:
    return f"test_{uuid.uuid4().hex[:12]}"


@pytest_asyncio.fixture
async def store():
    vector_store = ChromaVectorStore(VectorStoreConfig(mode="memory", upsert_batch_size=2))
    await vector_store.initialize()
    yield vector_store
    await vector_store.close()


class TestCollectionNames:
    """Chroma-compatible collection names."""

    def test_simple(self):
        assert collection_name_for("govflow", "acme") == "govflow_acme"

    def test_invalid_characters_replaced(self):
        assert collection_name_for("govflow", "acme corp/eu") == "govflow_acme-corp-eu"

    def test_length_capped(self):
        name = collection_name_for("govflow", "t" * 100)
        assert 3 <= len(name) <= 63

    def test_distinct_tenants_distinct_names(self):
        assert collection_name_for("g", "a") != collection_name_for("g", "b")


class TestChromaVectorStore:
    """Round trips through an ephemeral Chroma client."""

    @pytest.mark.asyncio
    async def test_uninitialized_store_raises(self):
        with pytest.raises(VectorStorageError):
            await ChromaVectorStore(VectorStoreConfig(mode="memory")).list_collections()

    @pytest.mark.asyncio
    async def test_upsert_and_query(self, store):
        name = _name()
        count = await store.upsert(
            name,
            ids=["a", "b", "c"],
            embeddings=[[1.0, 0.0], [0.0, 1.0], [0.7, 0.7]],
            documents=["alpha", "beta", "gamma"],
            metadatas=[{"file_path": "a.ts"}, {"file_path": "b.ts"}, {"file_path": "c.ts"}],
        )
        assert count == 3
        assert await store.count(name) == 3

        hits = await store.query(name, [1.0, 0.0], 2)
        assert [h["id"] for h in hits] == ["a", "c"]
        assert hits[0]["document"] == "alpha"
        assert hits[0]["metadata"] == {"file_path": "a.ts"}
        assert hits[0]["distance"] == pytest.approx(0.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_upsert_replaces_same_id(self, store):
        name = _name()
        await store.upsert(name, ["a"], [[1.0, 0.0]], ["old"], [{"file_path": "a.ts"}])
        await store.upsert(name, ["a"], [[1.0, 0.0]], ["new"], [{"file_path": "a.ts"}])
        assert await store.count(name) == 1
        hits = await store.query(name, [1.0, 0.0], 1)
        assert hits[0]["document"] == "new"

    @pytest.mark.asyncio
    async def test_empty_upsert(self, store):
        assert await store.upsert(_name(), [], [], [], []) == 0

    @pytest.mark.asyncio
    async def test_count_missing_collection(self, store):
        assert await store.count(_name()) == 0

    @pytest.mark.asyncio
    async def test_delete_twice(self, store):
        name = _name()
        await store.upsert(name, ["a"], [[1.0, 0.0]], ["doc"], [{"file_path": "a.ts"}])
        assert name in await store.list_collections()
        assert await store.delete_collection(name) is True
        assert await store.delete_collection(name) is False
        assert name not in await store.list_collections()

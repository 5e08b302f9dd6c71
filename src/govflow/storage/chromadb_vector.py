# src/govflow/storage/chromadb_vector.py
"""
ChromaDB vector storage for govflow.

Collections are addressed by name; the retriever derives one name per
tenant.  The chromadb client is synchronous, so every operation runs in a
worker thread via ``asyncio.to_thread`` and is bounded by the configured
timeout.
"""

import asyncio
import logging
import pathlib
import re
from typing import Any, Callable, Dict, List, Optional, TypeVar

import chromadb
from chromadb.config import Settings

from ..config import VectorStoreConfig
from ..exceptions import VectorStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")


def collection_name_for(prefix: str, tenant_id: str) -> str:
    """
    Build a valid Chroma collection name for a tenant.

    Chroma requires 3-63 characters from ``[a-zA-Z0-9._-]`` starting and
    ending with an alphanumeric character.
    """
    raw = _INVALID_NAME_CHARS.sub("-", f"{prefix}_{tenant_id}")
    raw = raw.strip("._-")[:63].strip("._-")
    if len(raw) < 3:
        raw = f"{raw}000"[:3] if raw else "t00"
    return raw


class ChromaVectorStore:
    """
    Thin async facade over a ChromaDB client.

    Query results are plain dicts with ``id``, ``document``, ``metadata``
    and ``distance`` (cosine distance, lower is closer).
    """

    def __init__(self, config: Optional[VectorStoreConfig] = None, client: Optional[Any] = None):
        self._config = config or VectorStoreConfig()
        self._client = client

    @property
    def batch_size(self) -> int:
        return self._config.upsert_batch_size

    def name_for(self, tenant_id: str) -> str:
        return collection_name_for(self._config.collection_prefix, tenant_id)

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self._config.timeout)
        except asyncio.TimeoutError:
            raise VectorStorageError(f"ChromaDB call '{func.__name__}' timed out after {self._config.timeout}s")

    # ------------------------------------------------------------------
    # Synchronous helpers (run in worker threads)
    # ------------------------------------------------------------------

    def _sync_initialize(self) -> None:
        if self._client is not None:
            return
        settings = Settings(anonymized_telemetry=False)
        mode = self._config.mode
        try:
            if mode == "memory":
                self._client = chromadb.EphemeralClient(settings=settings)
            elif mode == "http":
                self._client = chromadb.HttpClient(host=self._config.host, port=self._config.port, settings=settings)
            else:
                path = pathlib.Path(self._config.path).expanduser()
                path.mkdir(parents=True, exist_ok=True)
                self._client = chromadb.PersistentClient(path=str(path), settings=settings)
            self._client.list_collections()
        except Exception as e:
            logger.error(f"Failed to initialize ChromaDB client (mode: {mode}): {e}", exc_info=True)
            self._client = None
            raise VectorStorageError(f"Could not initialize ChromaDB client: {e}")
        logger.info(f"ChromaDB client initialized (mode: {mode}).")

    def _require_client(self) -> Any:
        if self._client is None:
            raise VectorStorageError("ChromaDB client is not initialized.")
        return self._client

    def _sync_collection(self, name: str):
        try:
            return self._require_client().get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )
        except VectorStorageError:
            raise
        except Exception as e:
            raise VectorStorageError(f"Could not access ChromaDB collection '{name}': {e}")

    def _sync_upsert(
        self,
        name: str,
        ids: List[str],
        embeddings: List[List[float]],
        documents: List[str],
        metadatas: List[Dict[str, Any]],
    ) -> int:
        collection = self._sync_collection(name)
        batch = self.batch_size
        try:
            for start in range(0, len(ids), batch):
                end = start + batch
                collection.upsert(
                    ids=ids[start:end],
                    embeddings=embeddings[start:end],
                    documents=documents[start:end],
                    metadatas=metadatas[start:end],
                )
        except Exception as e:
            logger.error(f"Failed upsert into ChromaDB collection '{name}': {e}", exc_info=True)
            raise VectorStorageError(f"ChromaDB upsert failed: {e}")
        return len(ids)

    def _sync_query(self, name: str, embedding: List[float], top_k: int) -> List[Dict[str, Any]]:
        collection = self._sync_collection(name)
        try:
            results = collection.query(
                query_embeddings=[embedding],
                n_results=top_k,
                include=["metadatas", "documents", "distances"],
            )
        except Exception as e:
            logger.error(f"Failed similarity search in ChromaDB collection '{name}': {e}", exc_info=True)
            raise VectorStorageError(f"ChromaDB query failed: {e}")

        ids_list = results.get("ids")
        if not ids_list or not ids_list[0]:
            return []
        ids = ids_list[0]
        documents = (results.get("documents") or [[]])[0] or [""] * len(ids)
        metadatas = (results.get("metadatas") or [[]])[0] or [{}] * len(ids)
        distances = (results.get("distances") or [[]])[0] or [None] * len(ids)

        return [
            {
                "id": str(doc_id),
                "document": documents[i] or "",
                "metadata": dict(metadatas[i] or {}),
                "distance": float(distances[i]) if distances[i] is not None else None,
            }
            for i, doc_id in enumerate(ids)
        ]

    def _sync_list_collections(self) -> List[str]:
        try:
            collections = self._require_client().list_collections()
        except VectorStorageError:
            raise
        except Exception as e:
            raise VectorStorageError(f"ChromaDB list_collections failed: {e}")
        return [c if isinstance(c, str) else c.name for c in collections]

    def _sync_delete_collection(self, name: str) -> bool:
        if name not in self._sync_list_collections():
            return False
        try:
            self._require_client().delete_collection(name=name)
        except Exception as e:
            raise VectorStorageError(f"ChromaDB delete_collection failed for '{name}': {e}")
        return True

    def _sync_count(self, name: str) -> int:
        if name not in self._sync_list_collections():
            return 0
        return self._sync_collection(name).count()

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        await self._run(self._sync_initialize)

    async def upsert(
        self,
        name: str,
        ids: List[str],
        embeddings: List[List[float]],
        documents: List[str],
        metadatas: List[Dict[str, Any]],
    ) -> int:
        """Upsert in batches of at most ``upsert_batch_size`` items per call."""
        if not ids:
            return 0
        return await self._run(self._sync_upsert, name, ids, embeddings, documents, metadatas)

    async def query(self, name: str, embedding: List[float], top_k: int) -> List[Dict[str, Any]]:
        return await self._run(self._sync_query, name, embedding, top_k)

    async def list_collections(self) -> List[str]:
        return await self._run(self._sync_list_collections)

    async def delete_collection(self, name: str) -> bool:
        """Delete a collection; returns False if it did not exist."""
        return await self._run(self._sync_delete_collection, name)

    async def count(self, name: str) -> int:
        return await self._run(self._sync_count, name)

    async def close(self) -> None:
        self._client = None
        logger.debug("ChromaDB client released.")

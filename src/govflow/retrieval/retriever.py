# src/govflow/retrieval/retriever.py
"""
Retrieval-augmented context for generation.

The retriever indexes a tenant's source tree into that tenant's own
vector collection and answers top-K similarity queries against it.
Chunks are embedded one at a time and upserted in batches bounded by the
vector store's batch size.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import RetrievalConfig
from ..embedding import OllamaEmbedding
from ..logging_config import log_display
from ..models import AssembledContext, ChunkMetadata, EmbeddingChunk, RetrievedChunk
from ..storage import ChromaVectorStore
from .chunking import LineWindowChunker, walk_source_tree

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "[context truncated]"


class ContextRetriever:
    """Index, query and drop per-tenant chunk collections."""

    def __init__(
        self,
        store: ChromaVectorStore,
        embedder: OllamaEmbedding,
        config: Optional[RetrievalConfig] = None,
    ):
        self._store = store
        self._embedder = embedder
        self._config = config or RetrievalConfig()
        self._chunker = LineWindowChunker(self._config.chunk_lines)

    async def index(self, tenant_id: str, root_path: str | Path) -> int:
        """
        Chunk, embed and upsert every indexable file under ``root_path``.

        Returns:
            Number of chunks stored.

        Raises:
            FileNotFoundError: If ``root_path`` is not a directory.
            EmbeddingError / VectorStorageError: On service failure.
        """
        root = Path(root_path).expanduser()
        if not root.is_dir():
            raise FileNotFoundError(f"Source tree not found: {root}")

        name = self._store.name_for(tenant_id)
        batch_size = self._store.batch_size
        pending: List[EmbeddingChunk] = []
        vectors: List[List[float]] = []
        total = 0
        files = 0

        for rel_path, text in walk_source_tree(
            root, self._config.include_extensions, self._config.excluded_dirs, self._config.max_file_bytes
        ):
            files += 1
            for chunk in self._chunker.chunk(rel_path, text):
                vectors.append(await self._embedder.generate_embedding(chunk.text))
                pending.append(chunk)
                if len(pending) >= batch_size:
                    total += await self._flush(name, pending, vectors)
                    pending, vectors = [], []

        if pending:
            total += await self._flush(name, pending, vectors)

        log_display(logger, logging.INFO, "Indexed %d chunks from %d files for tenant '%s'", total, files, tenant_id)
        return total

    async def _flush(self, name: str, chunks: List[EmbeddingChunk], vectors: List[List[float]]) -> int:
        return await self._store.upsert(
            name,
            ids=[c.id for c in chunks],
            embeddings=vectors,
            documents=[c.text for c in chunks],
            metadatas=[c.metadata.model_dump() for c in chunks],
        )

    async def query(self, tenant_id: str, text: str, top_k: Optional[int] = None) -> List[RetrievedChunk]:
        """Top-K chunks for ``text``, best first. ``score`` is cosine similarity."""
        k = top_k or self._config.default_top_k
        embedding = await self._embedder.generate_embedding(text)
        hits = await self._store.query(self._store.name_for(tenant_id), embedding, k)
        results = [self._to_retrieved(hit) for hit in hits]
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    @staticmethod
    def _to_retrieved(hit: Dict[str, Any]) -> RetrievedChunk:
        meta = hit.get("metadata") or {}
        distance = hit.get("distance")
        return RetrievedChunk(
            chunk=EmbeddingChunk(
                id=hit["id"],
                text=hit.get("document") or "",
                metadata=ChunkMetadata(
                    file_path=str(meta.get("file_path", "")),
                    start_line=int(meta.get("start_line", 0)),
                    end_line=int(meta.get("end_line", 0)),
                ),
            ),
            score=1.0 - distance if distance is not None else 0.0,
        )

    async def count(self, tenant_id: str) -> int:
        return await self._store.count(self._store.name_for(tenant_id))

    async def drop(self, tenant_id: str) -> bool:
        """Delete the tenant's collection. Safe to call repeatedly; returns whether anything was deleted."""
        deleted = await self._store.delete_collection(self._store.name_for(tenant_id))
        if deleted:
            logger.info(f"Dropped retrieval collection for tenant '{tenant_id}'")
        else:
            logger.debug(f"No retrieval collection to drop for tenant '{tenant_id}'")
        return deleted

    async def assemble_context(self, tenant_id: str, text: str, top_k: Optional[int] = None) -> AssembledContext:
        chunks = await self.query(tenant_id, text, top_k)
        sections = [
            f"// File: {r.chunk.metadata.file_path} (lines {r.chunk.metadata.start_line}-{r.chunk.metadata.end_line})\n"
            f"{r.chunk.text}"
            for r in chunks
        ]
        body, truncated = truncate_context("\n\n".join(sections), self._config.max_context_chars)
        return AssembledContext(text=body, truncated=truncated, chunks=chunks)


def truncate_context(text: str, max_chars: int) -> tuple[str, bool]:
    """Cut ``text`` to ``max_chars`` and append the truncation marker when anything was cut."""
    if len(text) <= max_chars:
        return text, False
    logger.warning(f"Context of {len(text)} chars truncated to {max_chars}")
    return f"{text[:max_chars]}\n{TRUNCATION_MARKER}", True

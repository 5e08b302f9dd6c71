# src/govflow/retrieval/chunking.py
"""
Source-tree walking and fixed-size line-window chunking.

Each file is split into non-overlapping windows of ``chunk_lines`` lines.
Chunk IDs are derived from the relative path and line range, so indexing
the same tree twice upserts the same IDs instead of duplicating chunks.

Usage:
    chunker = LineWindowChunker(chunk_lines=20)
    for rel_path, text in walk_source_tree(root, extensions, excluded_dirs):
        chunks.extend(chunker.chunk(rel_path, text))
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple

from ..models import ChunkMetadata, EmbeddingChunk

logger = logging.getLogger(__name__)


# =============================================================================
# TREE WALK
# =============================================================================


def walk_source_tree(
    root: str | Path,
    extensions: Iterable[str],
    excluded_dirs: Iterable[str],
    max_file_bytes: int = 1_000_000,
) -> Iterator[Tuple[str, str]]:
    """
    Yield ``(relative_posix_path, text)`` for indexable files under ``root``.

    Excluded directories are pruned during the walk; files that are too
    large or not valid UTF-8 are skipped with a debug log.  Paths come out
    sorted so chunk order is deterministic.
    """
    root_path = Path(root).expanduser().resolve()
    allowed = {e.lower() for e in extensions}
    excluded = set(excluded_dirs)

    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if path.suffix.lower() not in allowed:
                continue
            try:
                if path.stat().st_size > max_file_bytes:
                    logger.debug(f"Skipping large file {path}")
                    continue
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Skipping unreadable file {path}: {e}")
                continue
            yield path.relative_to(root_path).as_posix(), text


# =============================================================================
# CHUNKER
# =============================================================================


class LineWindowChunker:
    """Splits text into fixed-size, non-overlapping line windows."""

    def __init__(self, chunk_lines: int = 20):
        if chunk_lines < 1:
            raise ValueError("chunk_lines must be at least 1")
        self.chunk_lines = chunk_lines

    @staticmethod
    def chunk_id(file_path: str, start_line: int, end_line: int) -> str:
        digest = hashlib.md5(f"{file_path}:{start_line}-{end_line}".encode("utf-8")).hexdigest()[:16]
        return f"chunk_{digest}"

    def chunk(self, file_path: str, text: str) -> List[EmbeddingChunk]:
        """Windows of ``file_path``; whitespace-only windows are dropped. Line numbers are 1-based."""
        lines = text.splitlines()
        chunks: List[EmbeddingChunk] = []
        for start in range(0, len(lines), self.chunk_lines):
            window = lines[start:start + self.chunk_lines]
            body = "\n".join(window)
            if not body.strip():
                continue
            start_line, end_line = start + 1, start + len(window)
            chunks.append(
                EmbeddingChunk(
                    id=self.chunk_id(file_path, start_line, end_line),
                    text=body,
                    metadata=ChunkMetadata(file_path=file_path, start_line=start_line, end_line=end_line),
                )
            )
        return chunks

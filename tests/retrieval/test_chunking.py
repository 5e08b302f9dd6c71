# tests/retrieval/test_chunking.py
"""Tests for line-window chunking and the source-tree walk."""

import pytest

from govflow.retrieval import LineWindowChunker, walk_source_tree


class TestLineWindowChunker:
    """Fixed-size line windows."""

    def test_windows_and_line_numbers(self):
        text = "\n".join(f"line {i}" for i in range(1, 46))
        chunks = LineWindowChunker(20).chunk("src/a.ts", text)
        assert [(c.metadata.start_line, c.metadata.end_line) for c in chunks] == [(1, 20), (21, 40), (41, 45)]
        assert chunks[0].text.splitlines()[0] == "line 1"
        assert chunks[2].text.splitlines()[-1] == "line 45"

    def test_whitespace_only_windows_dropped(self):
        text = "a\n" + "\n" * 5 + "   \n\n" + "b"
        chunks = LineWindowChunker(2).chunk("f.ts", text)
        assert all(c.text.strip() for c in chunks)
        assert chunks[0].metadata.start_line == 1
        assert chunks[-1].text.strip() == "b"

    def test_empty_text(self):
        assert LineWindowChunker().chunk("f.ts", "") == []

    def test_ids_stable_and_distinct(self):
        chunker = LineWindowChunker(1)
        first = chunker.chunk("a.ts", "x\ny")
        second = chunker.chunk("a.ts", "x\ny")
        other = chunker.chunk("b.ts", "x\ny")
        assert [c.id for c in first] == [c.id for c in second]
        assert first[0].id != first[1].id
        assert first[0].id != other[0].id

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            LineWindowChunker(0)


class TestWalkSourceTree:
    """Filtering done by walk_source_tree."""

    def test_filters_and_sorts(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "b.ts").write_text("b", encoding="utf-8")
        (tmp_path / "src" / "a.ts").write_text("a", encoding="utf-8")
        (tmp_path / "image.png").write_bytes(b"\x89PNG")
        (tmp_path / "node_modules").mkdir()
        (tmp_path / "node_modules" / "dep.ts").write_text("dep", encoding="utf-8")
        (tmp_path / "login.FEATURE").write_text("Feature: x", encoding="utf-8")

        found = list(walk_source_tree(tmp_path, [".ts", ".feature"], ["node_modules"]))

        assert found == [("login.FEATURE", "Feature: x"), ("src/a.ts", "a"), ("src/b.ts", "b")]

    def test_skips_large_and_binary(self, tmp_path):
        (tmp_path / "big.ts").write_text("x" * 50, encoding="utf-8")
        (tmp_path / "bad.ts").write_bytes(b"\xff\xfe\x00")
        (tmp_path / "ok.ts").write_text("ok", encoding="utf-8")
        found = list(walk_source_tree(tmp_path, [".ts"], [], max_file_bytes=10))
        assert found == [("ok.ts", "ok")]

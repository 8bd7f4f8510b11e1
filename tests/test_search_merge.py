"""
Tests for utils/search_merge.py — exact/full-text result merging
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.search_merge import EXACT, FULLTEXT, merge_ranked


def _hits(*ids):
    return [{"id": i, "content": f"chunk {i}"} for i in ids]


class TestMergeRanked:
    def test_exact_first(self):
        merged = merge_ranked(_hits("e1", "e2"), _hits("f1"), limit=10)
        assert [h["id"] for h in merged] == ["e1", "e2", "f1"]
        assert [h["match_type"] for h in merged] == [EXACT, EXACT, FULLTEXT]

    def test_shared_id_appears_once_as_exact(self):
        merged = merge_ranked(_hits("a"), _hits("b", "a", "c"), limit=10)
        assert [h["id"] for h in merged] == ["a", "b", "c"]
        assert merged[0]["match_type"] == EXACT

    def test_duplicates_within_one_list(self):
        merged = merge_ranked(_hits("a", "a"), _hits("b", "b"), limit=10)
        assert [h["id"] for h in merged] == ["a", "b"]

    def test_limit_truncates(self):
        merged = merge_ranked(_hits("e1", "e2"), _hits("f1", "f2"), limit=3)
        assert [h["id"] for h in merged] == ["e1", "e2", "f1"]

    def test_limit_inside_exact(self):
        merged = merge_ranked(_hits("e1", "e2", "e3"), _hits("f1"), limit=2)
        assert [h["id"] for h in merged] == ["e1", "e2"]

    def test_zero_limit(self):
        assert merge_ranked(_hits("a"), _hits("b"), limit=0) == []

    def test_empty_inputs(self):
        assert merge_ranked([], [], limit=5) == []

    def test_inputs_not_modified(self):
        exact = _hits("a")
        merge_ranked(exact, [], limit=5)
        assert "match_type" not in exact[0]

    def test_custom_key(self):
        exact = [{"chunk": 1}]
        fuzzy = [{"chunk": 1}, {"chunk": 2}]
        merged = merge_ranked(exact, fuzzy, limit=5, key="chunk")
        assert [h["chunk"] for h in merged] == [1, 2]

    def test_accepts_generators(self):
        merged = merge_ranked((h for h in _hits("a")), iter(_hits("b")), limit=5)
        assert len(merged) == 2

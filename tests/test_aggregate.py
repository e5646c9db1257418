"""Tests for patent_ranker.aggregate - merging lexical and vector hits."""

from patent_ranker.aggregate import merge_hits
from patent_ranker.models import Candidate, RetrievalHit


def hit(cid, source, score, embedding=None):
    return RetrievalHit(candidate=Candidate(id=cid, title=f"Patent {cid}", embedding=embedding), source=source, score=score)


class TestMergeHits:
    def test_union_by_id(self):
        lexical = [hit("a", "lexical", 1.0), hit("b", "lexical", 1.0)]
        vector = [hit("b", "vector", 0.8), hit("c", "vector", 0.6)]

        merged = merge_hits(lexical, vector)

        assert [c.id for c in merged] == ["a", "b", "c"]
        by_id = {c.id: c for c in merged}
        assert by_id["a"].scores.lexical == 1.0 and by_id["a"].scores.semantic == 0.0
        assert by_id["b"].scores.lexical == 1.0 and by_id["b"].scores.semantic == 0.8
        assert by_id["c"].scores.lexical == 0.0 and by_id["c"].scores.semantic == 0.6
        assert by_id["b"].debug["sources"] == ["lexical", "vector"]

    def test_each_id_once_and_nothing_lost(self):
        lexical = [hit(str(i), "lexical", 1.0) for i in range(0, 6)]
        vector = [hit(str(i), "vector", 0.5) for i in range(3, 9)]
        merged = merge_hits(lexical, vector)
        ids = [c.id for c in merged]
        assert len(ids) == len(set(ids))
        assert set(ids) == {str(i) for i in range(9)}

    def test_duplicate_from_one_source_keeps_higher_score(self):
        merged = merge_hits([], [hit("a", "vector", 0.4), hit("a", "vector", 0.7)])
        assert len(merged) == 1
        assert merged[0].scores.semantic == 0.7

    def test_embedding_taken_from_vector_hit(self):
        merged = merge_hits([hit("a", "lexical", 1.0)], [hit("a", "vector", 0.9, embedding=[0.1, 0.2])])
        assert merged[0].candidate.embedding == [0.1, 0.2]

    def test_scores_are_clamped(self):
        merged = merge_hits([], [hit("a", "vector", 1.4)])
        assert merged[0].scores.semantic == 1.0

    def test_empty(self):
        assert merge_hits([], []) == []

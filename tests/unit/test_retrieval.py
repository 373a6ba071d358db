"""Test query-time semantic retrieval."""

import random

import numpy as np
import pytest
from conftest import NOW

from memory_curator.retrieval import Candidate, find_similar, is_old_enough

QUERY = np.array([1.0, 0.0])


def ranked_candidates() -> list[Candidate]:
    """Ten candidates; candidate i is created i days ago and is the (i+1)-th most similar."""
    return [
        Candidate(item=i, embedding=np.array([1.0, i * 0.5]), created_at=NOW.subtract(days=i))
        for i in range(10)
    ]


def test_top_k_follows_similarity_ranking():
    candidates = ranked_candidates()
    random.Random(3).shuffle(candidates)

    results = find_similar(QUERY, candidates, k=3, now=NOW)

    assert [r.item for r in results] == [0, 1, 2]
    assert results[0].score == pytest.approx(1.0)
    assert results[0].score > results[1].score > results[2].score


def test_k_larger_than_candidates_returns_all():
    results = find_similar(QUERY, ranked_candidates(), k=50, now=NOW)
    assert [r.item for r in results] == list(range(10))


@pytest.mark.parametrize("k", [0, -1])
def test_non_positive_k_returns_nothing(k):
    assert find_similar(QUERY, ranked_candidates(), k=k, now=NOW) == []


def test_min_age_excludes_younger_candidates():
    results = find_similar(QUERY, ranked_candidates(), k=10, min_age_days=5, now=NOW)
    assert [r.item for r in results] == [5, 6, 7, 8, 9]


def test_min_age_boundary_is_inclusive():
    assert is_old_enough(NOW.subtract(days=5), 5, NOW)
    assert not is_old_enough(NOW.subtract(days=5).add(seconds=1), 5, NOW)
    assert is_old_enough(NOW, 0, NOW)


def test_ties_keep_input_order():
    same = np.array([0.5, 0.5])
    candidates = [Candidate(item=name, embedding=same, created_at=NOW) for name in "dcab"]
    results = find_similar(QUERY, candidates, k=3, now=NOW)
    assert [r.item for r in results] == ["d", "c", "a"]


def test_unscorable_candidates_are_skipped():
    """Missing or differently sized embeddings never fail the query."""
    candidates = [
        Candidate(item="missing", embedding=None, created_at=NOW),
        Candidate(item="wrong-size", embedding=np.array([1.0, 0.0, 0.0]), created_at=NOW),
        Candidate(item="ok", embedding=np.array([0.0, 1.0]), created_at=NOW),
    ]
    results = find_similar(QUERY, candidates, k=5, now=NOW)
    assert [r.item for r in results] == ["ok"]
    assert results[0].score == pytest.approx(0.0)


def test_accepts_plain_lists_as_query():
    results = find_similar([1.0, 0.0], ranked_candidates(), k=1, now=NOW)
    assert results[0].item == 0

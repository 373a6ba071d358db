"""Test coarse clustering and size refinement."""

import random

import numpy as np
import pytest
from conftest import DIM, make_memory, unit

from memory_curator.clustering import (
    coarse_cluster,
    group_by_label,
    refine_clusters,
    split_round_robin,
    validate_target_size,
    validate_threshold,
)
from memory_curator.models import MemoryWithAge
from memory_curator.tokenizer import Tokenizer

COOKING = [
    "Bakes sourdough bread every Sunday",
    "Favourite dish is mushroom risotto",
    "Keeps a jar of homemade kimchi",
    "Roasts vegetables with rosemary",
    "Collects cast iron skillets",
]
RUNNING = [
    "Trains for the Berlin marathon",
    "Runs intervals on Tuesday evenings",
    "Replaced worn trail shoes recently",
    "Tracks heart rate zones while jogging",
    "Joined a local parkrun group",
]
ISOLATED = "Allergic to penicillin since childhood"


def with_age(fact: str, embedding: np.ndarray, age_days: int = 0) -> MemoryWithAge:
    return MemoryWithAge(memory=make_memory(fact, embedding), age_days=age_days, embedding=embedding)


def themed_corpus() -> list[MemoryWithAge]:
    """Two tight groups of five (intra cosine ~0.92, inter 0) and one isolated memory."""
    corpus = [with_age(text, unit(0) + 0.3 * unit(2 + i)) for i, text in enumerate(COOKING)]
    corpus += [with_age(text, unit(1) + 0.3 * unit(7 + i)) for i, text in enumerate(RUNNING)]
    corpus.append(with_age(ISOLATED, unit(12) + unit(13)))
    return corpus


def distinct_corpus(n: int) -> list[MemoryWithAge]:
    return [with_age(f"Unique fact number{i} about topic{i}", unit(i)) for i in range(n)]


@pytest.fixture
def tokenizer():
    return Tokenizer()


def test_two_themes_and_an_outlier(tokenizer):
    """Do two tight groups come out as clusters and the lone memory as an outlier?"""
    corpus = themed_corpus()

    labels = coarse_cluster(corpus, threshold=0.6, tokenizer=tokenizer)
    assert labels == [0] * 5 + [1] * 5 + [2]

    clusters, outliers = refine_clusters(corpus, labels, (5, 10))
    assert [len(c) for c in clusters] == [5, 5]
    assert [m.text for m in clusters[0]] == COOKING
    assert [m.text for m in clusters[1]] == RUNNING
    assert [m.text for m in outliers] == [ISOLATED]


def test_threshold_one_gives_all_singletons(tokenizer):
    corpus = distinct_corpus(DIM)
    assert coarse_cluster(corpus, threshold=1.0, tokenizer=tokenizer) == list(range(DIM))


def test_threshold_zero_gives_one_cluster(tokenizer):
    corpus = distinct_corpus(DIM)
    assert coarse_cluster(corpus, threshold=0.0, tokenizer=tokenizer) == [0] * DIM


def test_empty_corpus_gives_no_labels(tokenizer):
    assert coarse_cluster([], tokenizer=tokenizer) == []


def test_result_depends_on_input_order(tokenizer):
    """Candidates are compared with the cluster as grown so far, so order matters."""
    a = with_age("alpha", np.array([1.0, 0.0]))
    b = with_age("bravo", np.array([0.6, 0.8]))
    c = with_age("charlie", np.array([0.0, 1.0]))

    forward = coarse_cluster([a, b, c], threshold=0.55, tokenizer=tokenizer)
    backward = coarse_cluster([c, b, a], threshold=0.55, tokenizer=tokenizer)

    assert group_by_label(["alpha", "bravo", "charlie"], forward) == [["alpha", "bravo"], ["charlie"]]
    assert group_by_label(["charlie", "bravo", "alpha"], backward) == [["charlie", "bravo"], ["alpha"]]


def test_candidate_is_scored_against_the_whole_grown_cluster(tokenizer):
    """A memory close to the seed alone is rejected once the cluster has moved away."""
    seed = with_age("alpha", np.array([1.0, 0.0, 0.0]))
    joiner = with_age("bravo", np.array([0.7, 0.0, 0.71414284]))
    late = with_age("charlie", np.array([0.7, 0.71414284, 0.0]))

    labels = coarse_cluster([seed, joiner, late], threshold=0.6, tokenizer=tokenizer)
    # late vs seed is 0.7, but mean over (seed, joiner) is (0.7 + 0.49) / 2
    assert labels == [0, 0, 1]


def test_progress_reported_per_seed(tokenizer):
    calls = []
    coarse_cluster(themed_corpus(), tokenizer=tokenizer, on_progress=lambda i, n: calls.append((i, n)))
    assert calls == [(1, 11), (6, 11), (11, 11)]


def test_group_by_label_keeps_first_appearance_order():
    groups = group_by_label(["a", "b", "c", "d", "e"], [3, 1, 3, 0, 1])
    assert groups == [["a", "c"], ["b", "e"], ["d"]]


def test_group_by_label_requires_one_label_per_item():
    with pytest.raises(ValueError):
        group_by_label(["a", "b"], [0])


def test_round_robin_split():
    members = list(range(23))
    parts = split_round_robin(members, 10)
    assert parts == [members[0::3], members[1::3], members[2::3]]
    assert [len(p) for p in parts] == [8, 8, 7]


def test_oversized_group_splits_into_valid_clusters():
    items = list(range(23))
    clusters, outliers = refine_clusters(items, [0] * 23, (5, 10))
    assert [len(c) for c in clusters] == [8, 8, 7]
    assert outliers == []


def test_small_split_pieces_become_outliers():
    items = list(range(11))
    clusters, outliers = refine_clusters(items, [0] * 11, (6, 10))
    # ceil(11 / 10) = 2 pieces of 6 and 5; only the first reaches the minimum
    assert clusters == [[0, 2, 4, 6, 8, 10]]
    assert outliers == [1, 3, 5, 7, 9]


def test_undersized_groups_are_kept_but_singletons_are_not():
    items = ["a", "b", "c", "d"]
    clusters, outliers = refine_clusters(items, [0, 0, 0, 1], (5, 10))
    assert clusters == [["a", "b", "c"]]
    assert outliers == ["d"]


@pytest.mark.parametrize("target_size", [(0, 10), (6, 5)])
def test_invalid_target_size(target_size):
    with pytest.raises(ValueError):
        refine_clusters(["a"], [0], target_size)


@pytest.mark.parametrize("seed", range(5))
def test_refinement_partitions_the_input(seed):
    """Every item lands in exactly one cluster or the outliers, whatever the labels."""
    rng = random.Random(seed)
    items = list(range(rng.randint(1, 80)))
    labels = [rng.randint(0, 6) for _ in items]
    min_size, max_size = 3, 7

    clusters, outliers = refine_clusters(items, labels, (min_size, max_size))

    placed = [m for c in clusters for m in c] + outliers
    assert sorted(placed) == items
    for cluster in clusters:
        assert len(cluster) > 1
        assert len(cluster) <= max_size


def test_target_size_bounds():
    assert validate_target_size((1, 1)) == (1, 1)
    with pytest.raises(ValueError):
        validate_target_size((0, 3))
    with pytest.raises(ValueError):
        validate_target_size((4, 3))


@pytest.mark.parametrize("threshold", [-0.01, 1.01, float("nan"), float("inf")])
def test_threshold_outside_unit_range_is_rejected(threshold):
    with pytest.raises(ValueError):
        validate_threshold(threshold)


def test_threshold_bounds_are_inclusive():
    assert validate_threshold(0.0) == 0.0
    assert validate_threshold(1.0) == 1.0

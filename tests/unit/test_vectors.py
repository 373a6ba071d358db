"""Test vector math and embedding serialization."""

import numpy as np
import pytest

from memory_curator.errors import DimensionMismatchError, EmbeddingParseError
from memory_curator.vectors import (
    centroid,
    cosine_similarity,
    parse_embedding,
    serialize_embedding,
    unit_rows,
)


def test_cosine_of_vector_with_itself_is_one():
    """Is every nonzero vector perfectly similar to itself?"""
    for v in ([1.0, 2.0, 3.0], [-0.5, 0.25, 8.0], [1e-6, 0.0, 0.0]):
        assert cosine_similarity(v, v) == pytest.approx(1.0)


def test_cosine_is_symmetric():
    a = [0.3, -1.2, 4.0, 0.0]
    b = [2.0, 0.5, -0.1, 1.0]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_of_opposite_and_orthogonal_vectors():
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)


def test_zero_vector_is_similar_to_nothing():
    """A zero-norm embedding scores 0.0 instead of raising."""
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_cosine_rejects_mismatched_dimensions():
    with pytest.raises(DimensionMismatchError) as exc:
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])
    assert exc.value.left == 2
    assert exc.value.right == 3
    # Still a ValueError for callers that only care about bad input
    assert isinstance(exc.value, ValueError)


def test_centroid_is_elementwise_mean():
    c = centroid([[1.0, 2.0], [3.0, 4.0], [5.0, 0.0]])
    np.testing.assert_allclose(c, [3.0, 2.0])


def test_centroid_of_nothing_is_empty():
    assert centroid([]).shape == (0,)


def test_centroid_rejects_mismatched_dimensions():
    with pytest.raises(DimensionMismatchError):
        centroid([[1.0, 2.0], [1.0]])


def test_unit_rows_leaves_zero_rows_alone():
    rows = unit_rows(np.array([[3.0, 4.0], [0.0, 0.0]]))
    np.testing.assert_allclose(rows, [[0.6, 0.8], [0.0, 0.0]])


def test_serialized_embedding_parses_back():
    original = np.array([0.1, -2.5, 3.14159265358979, 1e-12, 0.0])
    text = serialize_embedding(original)
    assert text.count(",") == 4
    np.testing.assert_allclose(parse_embedding(text), original)


def test_parse_tolerates_whitespace():
    np.testing.assert_allclose(parse_embedding(" 1.0, 2 ,3.5 "), [1.0, 2.0, 3.5])


@pytest.mark.parametrize("text", [None, "", "   "])
def test_parse_rejects_blank(text):
    with pytest.raises(EmbeddingParseError):
        parse_embedding(text)


@pytest.mark.parametrize("text", ["1.0,abc,3.0", "1.0,,3.0", "1.0,2.0,", "nan,1.0", "1.0,inf"])
def test_parse_rejects_malformed_strings_entirely(text):
    """A single bad element rejects the whole string instead of shortening the vector."""
    with pytest.raises(EmbeddingParseError):
        parse_embedding(text)

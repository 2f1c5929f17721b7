import math

import pytest

from memory_rag.core.errors import DimensionMismatch, EmptyInput, InvalidVector
from memory_rag.core.models import CandidateRecord
from memory_rag.core.vectors import (
    batch_cosine_similarity,
    calculate_centroid,
    calculate_magnitude,
    chunk_list,
    cosine_similarity,
    cosine_similarity_with_magnitude,
    dot_product,
    ensure_valid_vector,
    euclidean_distance,
    normalize_vector,
    similarity_score,
    top_k_similar,
    validate_vector,
)


def _unit(sim: float, cid: str) -> CandidateRecord:
    # 2-d unit vector whose cosine with [1, 0] is exactly ``sim``
    return CandidateRecord(id=cid, embedding=[sim, math.sqrt(1 - sim * sim)], magnitude=1.0)


PAIRS = [
    ([1.0, 2.0, 3.0], [-2.0, 0.5, 4.0]),
    ([0.1, -0.3, 0.7, 2.5], [9.0, 0.0, -1.5, 0.25]),
    ([1e-3, 1e3], [5.0, -7.0]),
]


@pytest.mark.parametrize("a,b", PAIRS)
def test_cosine_similarity_is_symmetric(a, b):
    assert cosine_similarity(a, b) == cosine_similarity(b, a)


@pytest.mark.parametrize("v", [[1.0, 2.0, 3.0], [-0.5, 0.25], [1e-6, 3e4, -2.0]])
def test_self_similarity_is_one(v):
    assert cosine_similarity(v, v) == pytest.approx(1.0, abs=1e-9)


@pytest.mark.parametrize("a,b", PAIRS)
def test_magnitude_cache_matches_raw_cosine(a, b):
    cached = cosine_similarity_with_magnitude(a, b, calculate_magnitude(a), calculate_magnitude(b))
    assert cached == cosine_similarity(a, b)


def test_zero_vector_similarity_is_zero_not_nan():
    zero = [0.0, 0.0, 0.0]
    assert cosine_similarity(zero, [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([1.0, 2.0, 3.0], zero) == 0.0
    assert cosine_similarity(zero, zero) == 0.0
    assert cosine_similarity_with_magnitude(zero, [1.0, 0.0, 0.0], 0.0, 1.0) == 0.0


def test_dimension_mismatch_is_a_hard_failure():
    with pytest.raises(DimensionMismatch) as exc:
        cosine_similarity([1, 2], [1, 2, 3])
    assert exc.value.expected == 2
    assert exc.value.actual == 3
    assert isinstance(exc.value, ValueError)

    for fn in (dot_product, euclidean_distance):
        with pytest.raises(DimensionMismatch):
            fn([1.0], [1.0, 2.0])
    with pytest.raises(DimensionMismatch):
        cosine_similarity_with_magnitude([1.0], [1.0, 2.0], 1.0, 1.0)


def test_magnitude_dot_and_distance():
    assert calculate_magnitude([3.0, 4.0]) == 5.0
    assert calculate_magnitude([0.0, 0.0]) == 0.0
    assert calculate_magnitude([]) == 0.0
    assert dot_product([1.0, 2.0, 3.0], [4.0, 5.0, 6.0]) == 32.0
    assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == 5.0


def test_normalize_vector():
    assert normalize_vector([3.0, 4.0]) == pytest.approx([0.6, 0.8])
    zero = [0.0, 0.0]
    assert normalize_vector(zero) is zero


def test_similarity_score_maps_to_unit_interval():
    assert similarity_score(-1.0) == 0.0
    assert similarity_score(0.0) == 0.5
    assert similarity_score(1.0) == 1.0


def test_centroid():
    assert calculate_centroid([[1.0, 2.0], [3.0, 4.0]]) == [2.0, 3.0]
    with pytest.raises(EmptyInput):
        calculate_centroid([])
    with pytest.raises(DimensionMismatch):
        calculate_centroid([[1.0, 2.0], [1.0]])


def test_top_k_orders_and_truncates():
    candidates = [_unit(0.9, "a"), _unit(0.5, "b"), _unit(0.95, "c"), _unit(0.1, "d")]

    results = top_k_similar([1.0, 0.0], candidates, k=2, threshold=0.5)

    assert [r.similarity for r in results] == [0.95, 0.9]
    assert [r.candidate_id for r in results] == ["c", "a"]


def test_top_k_threshold_is_inclusive():
    candidates = [_unit(0.9, "a"), _unit(0.5, "b"), _unit(0.95, "c"), _unit(0.1, "d")]

    results = top_k_similar([1.0, 0.0], candidates, k=10, threshold=0.5)

    assert [r.candidate_id for r in results] == ["c", "a", "b"]


def test_top_k_ties_keep_input_order():
    candidates = [_unit(0.8, "first"), _unit(0.9, "top"), _unit(0.8, "second"), _unit(0.8, "third")]

    results = top_k_similar([1.0, 0.0], candidates, k=4)

    assert [r.candidate_id for r in results] == ["top", "first", "second", "third"]


def test_top_k_without_cached_magnitude_uses_raw_cosine():
    candidates = [CandidateRecord(id="x", embedding=[2.0, 0.0], magnitude=None)]

    results = top_k_similar([1.0, 0.0], candidates, k=1)

    assert results[0].similarity == 1.0


def test_top_k_empty_candidates():
    assert top_k_similar([1.0, 0.0], [], k=5) == []


@pytest.mark.parametrize("threshold", [math.nan, math.inf])
def test_top_k_rejects_non_finite_threshold(threshold):
    with pytest.raises(ValueError):
        top_k_similar([1.0, 0.0], [_unit(0.9, "a")], k=1, threshold=threshold)


def test_batch_cosine_similarity_falls_back_without_magnitudes():
    vectors = [[1.0, 0.0], [0.0, 2.0], [3.0, 0.0]]

    cached = batch_cosine_similarity([1.0, 0.0], vectors, magnitudes=[1.0, 2.0, 0.0])
    raw = batch_cosine_similarity([1.0, 0.0], vectors)

    assert cached == [1.0, 0.0, 1.0]
    assert raw == [1.0, 0.0, 1.0]


@pytest.mark.parametrize(
    "vector,dims,expected",
    [
        ([1.0, 2.0, 3.0], None, True),
        ([1.0, 2.0, 3.0], 3, True),
        ((1, 2), 2, True),
        ([1.0, 2.0], 3, False),
        ([1.0, float("nan")], None, False),
        ([1.0, float("inf")], None, False),
        ([1.0, "2"], None, False),
        ([True, 1.0], None, False),
        ("12", None, False),
        (None, None, False),
        ({"a": 1.0}, None, False),
    ],
)
def test_validate_vector(vector, dims, expected):
    assert validate_vector(vector, dims) is expected


def test_ensure_valid_vector_reports_what_to_fix():
    with pytest.raises(DimensionMismatch) as exc:
        ensure_valid_vector([1.0, 2.0], 1024)
    assert (exc.value.expected, exc.value.actual) == (1024, 2)

    with pytest.raises(InvalidVector, match="entry 1"):
        ensure_valid_vector([0.0, float("nan")])

    with pytest.raises(InvalidVector):
        ensure_valid_vector("not a vector")

    ensure_valid_vector([0.0, 1.0], 2)


def test_chunk_list():
    assert chunk_list([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunk_list([], 3) == []
    with pytest.raises(ValueError):
        chunk_list([1], 0)

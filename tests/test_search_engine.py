import pytest

from memory_rag.core.errors import DimensionMismatch, InvalidVector
from memory_rag.core.models import CandidateRecord
from memory_rag.core.vectors import calculate_magnitude
from memory_rag.search.engine import SimilaritySearchEngine, check_limit


def _record(cid, embedding, inserted_at=0):
    return CandidateRecord(
        id=cid,
        embedding=embedding,
        magnitude=calculate_magnitude(embedding),
        inserted_at=inserted_at,
        payload={"label": cid},
    )


def _candidates():
    return [
        _record("c1", [1.0, 0.0, 0.0], 3),
        _record("c2", [0.0, 1.0, 0.0], 2),
        _record("c3", [0.9, 0.1, 0.0], 1),
    ]


class FakeTimer:
    def __init__(self, *ticks):
        self._ticks = list(ticks)

    def __call__(self):
        return self._ticks.pop(0)


def test_search_end_to_end():
    engine = SimilaritySearchEngine()

    response = engine.search([1.0, 0.0, 0.0], _candidates(), limit=10, threshold=0.5)

    assert [r.candidate_id for r in response.results] == ["c1", "c3"]
    assert response.results[0].similarity == 1.0
    assert response.results[1].similarity == pytest.approx(0.9939, abs=1e-4)
    assert response.results[0].payload == {"label": "c1"}


def test_search_respects_limit_and_threshold():
    engine = SimilaritySearchEngine()

    limited = engine.search([1.0, 0.0, 0.0], _candidates(), limit=1, threshold=-1.0)
    everything = engine.search([1.0, 0.0, 0.0], _candidates(), limit=10, threshold=0.0)

    assert [r.candidate_id for r in limited.results] == ["c1"]
    # orthogonal vector sits exactly on the 0.0 threshold and is kept
    assert [r.candidate_id for r in everything.results] == ["c1", "c3", "c2"]
    assert everything.results[-1].similarity == 0.0


def test_search_results_are_sorted_descending():
    engine = SimilaritySearchEngine()
    candidates = [_record(f"r{i}", [1.0, float(i), 0.5]) for i in range(8)]

    response = engine.search([1.0, 2.0, 0.0], candidates, limit=8, threshold=-1.0)

    sims = [r.similarity for r in response.results]
    assert sims == sorted(sims, reverse=True)
    assert all(-1.0 <= s <= 1.0 for s in sims)


def test_equal_scores_keep_scan_order():
    engine = SimilaritySearchEngine()
    candidates = [_record("newest", [2.0, 0.0], 9), _record("older", [1.0, 0.0], 5)]

    response = engine.search([1.0, 0.0], candidates, limit=2, threshold=0.0)

    assert [r.candidate_id for r in response.results] == ["newest", "older"]


def test_empty_candidates_is_not_an_error():
    response = SimilaritySearchEngine().search([1.0, 0.0], [], limit=5, threshold=0.7)

    assert response.results == []
    assert response.timing_ms >= 0.0


def test_timing_uses_injected_timer():
    engine = SimilaritySearchEngine(timer=FakeTimer(1.0, 1.25))

    response = engine.search([1.0, 0.0, 0.0], _candidates(), limit=10, threshold=0.5)

    assert response.timing_ms == 250.0


@pytest.mark.parametrize("query", [[1.0, float("nan"), 0.0], [float("inf"), 0.0, 0.0], "abc", None])
def test_invalid_query_is_rejected(query):
    with pytest.raises(InvalidVector):
        SimilaritySearchEngine().search(query, _candidates())


def test_query_dimension_checked_against_expected_dims():
    engine = SimilaritySearchEngine(expected_dims=1024)

    with pytest.raises(DimensionMismatch) as exc:
        engine.search([1.0, 0.0, 0.0], _candidates())

    assert (exc.value.expected, exc.value.actual) == (1024, 3)


def test_candidate_dimension_mismatch_fails_the_search():
    candidates = _candidates() + [_record("bad", [1.0, 0.0])]

    with pytest.raises(DimensionMismatch):
        SimilaritySearchEngine().search([1.0, 0.0, 0.0], candidates, threshold=0.0)


def test_zero_magnitude_candidate_scores_zero():
    candidates = [_record("zero", [0.0, 0.0, 0.0]), _record("c1", [1.0, 0.0, 0.0])]

    response = SimilaritySearchEngine().search([1.0, 0.0, 0.0], candidates, limit=5, threshold=0.0)

    assert [(r.candidate_id, r.similarity) for r in response.results] == [("c1", 1.0), ("zero", 0.0)]


def test_stored_magnitude_is_trusted_as_is():
    # a wrong stored magnitude changes the score; ranking never recomputes it
    candidates = [CandidateRecord(id="x", embedding=[1.0, 0.0], magnitude=2.0)]

    response = SimilaritySearchEngine().search([1.0, 0.0], candidates, limit=1, threshold=0.0)

    assert response.results[0].similarity == 0.5


@pytest.mark.parametrize("limit", [0, -1, 2.5, True, "10"])
def test_limit_must_be_positive_integer(limit):
    with pytest.raises(ValueError):
        check_limit(limit)
    with pytest.raises(ValueError):
        SimilaritySearchEngine().search([1.0, 0.0, 0.0], _candidates(), limit=limit)


def test_top_k_offline_validates_query():
    engine = SimilaritySearchEngine()

    with pytest.raises(InvalidVector):
        engine.top_k_offline([float("nan")], [], 3)

    results = engine.top_k_offline([1.0, 0.0, 0.0], _candidates(), 2, 0.5)
    assert [r.candidate_id for r in results] == ["c1", "c3"]


@pytest.mark.parametrize("threshold", [float("nan"), float("inf"), float("-inf"), None, "0.5"])
def test_threshold_must_be_finite_number(threshold):
    engine = SimilaritySearchEngine()

    with pytest.raises(ValueError):
        engine.search([1.0, 0.0, 0.0], _candidates(), threshold=threshold)
    with pytest.raises(ValueError):
        engine.rank([1.0, 0.0, 0.0], _candidates(), limit=10, threshold=threshold)

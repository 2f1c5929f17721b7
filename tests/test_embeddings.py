import json

import httpx
import pytest

from memory_rag.adapters.embeddings.cache import EmbeddingCache
from memory_rag.adapters.embeddings.dummy_embedder import DummyHashEmbedder
from memory_rag.adapters.embeddings.retry import RetryPolicy, is_retryable
from memory_rag.adapters.embeddings.voyage import VoyageEmbedder
from memory_rag.core.errors import EmbeddingAPIError, EmbeddingConfigError, EmbeddingError
from memory_rag.core.models import EmbeddingResult
from memory_rag.core.vectors import calculate_magnitude, cosine_similarity


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def _result(tag):
    return EmbeddingResult(embedding=[float(tag)], magnitude=abs(float(tag)), model="m", dimensions=1)


def _fake_vector(text):
    return [float(len(text)), 1.0]


class FakeVoyage:
    """httpx handler that embeds each input as [len(text), 1.0] and returns items reversed."""

    def __init__(self, failures=None):
        self.requests = []
        self.failures = list(failures or [])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request, body))
        if self.failures:
            return httpx.Response(self.failures.pop(0), text="upstream says no")
        data = [{"index": i, "embedding": _fake_vector(t)} for i, t in enumerate(body["input"])]
        return httpx.Response(200, json={"data": list(reversed(data)), "model": body["model"]})


def _embedder(handler, **kwargs):
    kwargs.setdefault("retry", RetryPolicy(sleep=RecordingSleep()))
    return VoyageEmbedder(api_key="test-key", client=httpx.Client(transport=httpx.MockTransport(handler)), **kwargs)


# -------------------
# Cache
# -------------------
def test_cache_hit_and_expiry():
    clock = FakeClock()
    cache = EmbeddingCache(ttl_seconds=10, clock=clock)
    cache.set(("m", "hello"), _result(1))

    clock.now = 9.9
    assert cache.get(("m", "hello")) == _result(1)

    clock.now = 10.0
    assert cache.get(("m", "hello")) is None
    assert len(cache) == 0


def test_cache_is_keyed_by_model():
    cache = EmbeddingCache()
    cache.set(("voyage-3.5", "hello"), _result(1))

    assert cache.get(("voyage-2", "hello")) is None


def test_cache_evicts_least_recently_used():
    cache = EmbeddingCache(max_size=2, clock=FakeClock())
    cache.set(("m", "a"), _result(1))
    cache.set(("m", "b"), _result(2))
    cache.get(("m", "a"))

    cache.set(("m", "c"), _result(3))

    assert cache.get(("m", "b")) is None
    assert cache.get(("m", "a")) == _result(1)
    assert cache.get(("m", "c")) == _result(3)


def test_cache_sweep_and_clear():
    clock = FakeClock()
    cache = EmbeddingCache(ttl_seconds=5, clock=clock)
    cache.set(("m", "old"), _result(1))
    clock.now = 3
    cache.set(("m", "new"), _result(2))

    clock.now = 6
    assert cache.sweep() == 1
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_cache_rejects_bad_bounds():
    with pytest.raises(ValueError):
        EmbeddingCache(max_size=0)
    with pytest.raises(ValueError):
        EmbeddingCache(ttl_seconds=0)


# -------------------
# Retry
# -------------------
def test_retry_delays_are_capped():
    policy = RetryPolicy(max_attempts=6, initial_backoff=1.0, max_backoff=5.0)

    assert policy.delays() == [1.0, 2.0, 4.0, 5.0, 5.0]
    assert RetryPolicy(max_attempts=1).delays() == []


def test_retry_recovers_from_transient_errors():
    sleep = RecordingSleep()
    outcomes = [EmbeddingAPIError(429, "slow down"), httpx.ConnectError("reset"), "ok"]

    def flaky():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert RetryPolicy(sleep=sleep).call(flaky) == "ok"
    assert sleep.calls == [0.5, 1.0]


def test_retry_gives_up_after_max_attempts():
    sleep = RecordingSleep()
    calls = []

    def always_503():
        calls.append(1)
        raise EmbeddingAPIError(503, "unavailable")

    with pytest.raises(EmbeddingAPIError) as exc:
        RetryPolicy(max_attempts=3, sleep=sleep).call(always_503)

    assert exc.value.status_code == 503
    assert len(calls) == 3
    assert len(sleep.calls) == 2


def test_retry_does_not_retry_client_errors():
    sleep = RecordingSleep()
    calls = []

    def bad_request():
        calls.append(1)
        raise EmbeddingAPIError(400, "bad input")

    with pytest.raises(EmbeddingAPIError):
        RetryPolicy(sleep=sleep).call(bad_request)

    assert len(calls) == 1
    assert sleep.calls == []


def test_is_retryable():
    assert is_retryable(EmbeddingAPIError(429, ""))
    assert is_retryable(EmbeddingAPIError(502, ""))
    assert not is_retryable(EmbeddingAPIError(401, ""))
    assert is_retryable(httpx.ReadTimeout("slow"))
    assert not is_retryable(ValueError("nope"))


def test_retry_requires_an_attempt():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


# -------------------
# Voyage
# -------------------
def test_voyage_requires_api_key():
    with pytest.raises(EmbeddingConfigError, match="VOYAGE_AI_API_KEY is not set"):
        VoyageEmbedder(api_key=None)
    with pytest.raises(EmbeddingConfigError):
        VoyageEmbedder(api_key="")


def test_voyage_rejects_batch_size_over_limit():
    with pytest.raises(ValueError):
        VoyageEmbedder(api_key="k", batch_size=129)


def test_voyage_request_shape_and_ordering():
    handler = FakeVoyage()
    embedder = _embedder(handler)

    results = embedder.embed_batch(["a", "bbb", "cc"])

    assert [r.embedding for r in results] == [[1.0, 1.0], [3.0, 1.0], [2.0, 1.0]]
    assert results[1].magnitude == calculate_magnitude([3.0, 1.0])
    assert all(r.model == "voyage-3.5" and r.dimensions == 2 for r in results)

    request, body = handler.requests[0]
    assert request.headers["Authorization"] == "Bearer test-key"
    assert str(request.url) == "https://api.voyageai.com/v1/embeddings"
    assert body == {"input": ["a", "bbb", "cc"], "model": "voyage-3.5"}


def test_voyage_splits_into_batches():
    handler = FakeVoyage()
    embedder = _embedder(handler, batch_size=2)

    results = embedder.embed_batch(["a", "bb", "ccc", "dddd", "eeeee"])

    assert [len(body["input"]) for _, body in handler.requests] == [2, 2, 1]
    assert [r.embedding[0] for r in results] == [1.0, 2.0, 3.0, 4.0, 5.0]


def test_voyage_retries_rate_limits():
    sleep = RecordingSleep()
    handler = FakeVoyage(failures=[429, 500])
    embedder = _embedder(handler, retry=RetryPolicy(sleep=sleep))

    result = embedder.embed("hello")

    assert result.embedding == [5.0, 1.0]
    assert len(handler.requests) == 3
    assert sleep.calls == [0.5, 1.0]


def test_voyage_client_error_is_not_retried():
    handler = FakeVoyage(failures=[400])
    embedder = _embedder(handler)

    with pytest.raises(EmbeddingAPIError) as exc:
        embedder.embed("hello")

    assert exc.value.status_code == 400
    assert "Voyage AI API error: 400 - upstream says no" == str(exc.value)
    assert len(handler.requests) == 1


def test_voyage_count_mismatch_is_an_error():
    def short(request):
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})

    embedder = _embedder(short)

    with pytest.raises(EmbeddingError):
        embedder.embed_batch(["a", "b"])


def test_voyage_cache_avoids_repeat_requests():
    handler = FakeVoyage()
    embedder = _embedder(handler, cache=EmbeddingCache(clock=FakeClock()))

    first = embedder.embed_batch(["a", "bb"])
    second = embedder.embed_batch(["bb", "ccc", "a"])

    assert [body["input"] for _, body in handler.requests] == [["a", "bb"], ["ccc"]]
    assert second[0] == first[1]
    assert second[2] == first[0]
    assert embedder.embed_texts(["ccc"]) == [[3.0, 1.0]]
    assert len(handler.requests) == 2


# -------------------
# Dummy embedder
# -------------------
def test_dummy_embedder_is_deterministic_and_normalized():
    embedder = DummyHashEmbedder(dim=32)

    a = embedder.embed("the quick brown fox")
    b = embedder.embed("The quick brown fox")

    assert a.embedding == b.embedding
    assert a.dimensions == 32
    assert a.magnitude == pytest.approx(1.0)
    assert cosine_similarity(a.embedding, embedder.embed("quick fox").embedding) > 0.5


def test_dummy_embedder_empty_text_is_zero_vector():
    result = DummyHashEmbedder(dim=8).embed("")

    assert result.embedding == [0.0] * 8
    assert result.magnitude == 0.0

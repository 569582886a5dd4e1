import pytest

from knowledge_engine.embeddings import EmbeddingClient, EmbeddingMode, NoopRateLimiter, RateLimiter
from knowledge_engine.embeddings.retry import RetryConfig
from knowledge_engine.knowledge.exceptions import (
    InvalidInputError, PartialBatchFailureError, ProviderUnavailableError, RateLimitedError
)

from tests.fixtures.fake_provider import FakeEmbeddingProvider, hashed_embedding

NO_WAIT = RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter_factor=0.0)


def make_client(provider, batch_size=128, retry_config=NO_WAIT, **kwargs):
    return EmbeddingClient(provider, rate_limiter=kwargs.pop("rate_limiter", NoopRateLimiter()),
                           batch_size=batch_size, retry_config=retry_config, **kwargs)


class TestEmbedBatch:

    @pytest.mark.asyncio
    async def test_empty_input_returns_empty_without_calls(self):
        provider = FakeEmbeddingProvider()

        assert await make_client(provider).embed_batch([]) == []
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_splits_into_provider_sized_batches(self):
        provider = FakeEmbeddingProvider()
        texts = [f"text number {i}" for i in range(300)]

        embeddings = await make_client(provider, batch_size=128).embed_batch(texts)

        assert len(embeddings) == 300
        assert sorted(provider.batch_sizes) == [44, 128, 128]

    @pytest.mark.asyncio
    async def test_preserves_input_order(self):
        provider = FakeEmbeddingProvider()
        texts = [f"text number {i}" for i in range(10)]

        embeddings = await make_client(provider, batch_size=3).embed_batch(texts)

        assert embeddings == [hashed_embedding(t) for t in texts]

    @pytest.mark.asyncio
    async def test_mode_is_passed_as_input_type(self):
        provider = FakeEmbeddingProvider()
        client = make_client(provider)

        await client.embed_batch(["a document"], EmbeddingMode.DOCUMENT)
        await client.embed_batch(["a query"], "query")
        await client.embed_query("another query")

        assert [c["input_type"] for c in provider.calls] == ["document", "query", "query"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("texts", [[""], ["ok", "   "], ["ok", None]])
    async def test_empty_text_is_rejected_before_any_request(self, texts):
        provider = FakeEmbeddingProvider()

        with pytest.raises(InvalidInputError):
            await make_client(provider).embed_batch(texts)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self):
        provider = FakeEmbeddingProvider(failures=[RateLimitedError(), ProviderUnavailableError()])

        embeddings = await make_client(provider).embed_batch(["retry me"])

        assert embeddings == [hashed_embedding("retry me")]
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_exhausted_sub_batch_fails_whole_call(self):
        provider = FakeEmbeddingProvider(fail_when="poison")
        texts = [f"text {i}" for i in range(10)]
        texts[6] = "poison pill"

        with pytest.raises(PartialBatchFailureError) as exc_info:
            await make_client(provider, batch_size=4).embed_batch(texts)

        error = exc_info.value
        assert error.batch_index == 1
        assert error.batch_size == 4
        assert error.attempts == 3
        assert error.error_type == "network_error"
        assert isinstance(error.cause, ProviderUnavailableError)

    @pytest.mark.asyncio
    async def test_request_timeout_counts_as_unavailable(self):
        provider = FakeEmbeddingProvider(delay=0.5)
        client = make_client(provider, request_timeout=0.01,
                             retry_config=RetryConfig(max_attempts=1))

        with pytest.raises(PartialBatchFailureError) as exc_info:
            await client.embed_batch(["slow"])

        assert isinstance(exc_info.value.cause, ProviderUnavailableError)
        assert client.stats["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_invalid_input(self):
        provider = FakeEmbeddingProvider(dimension=8)

        with pytest.raises(InvalidInputError):
            await make_client(provider, expected_dimension=16).embed_batch(["text"])
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_shared_limiter(self):
        provider = FakeEmbeddingProvider(delay=0.02)
        limiter = RateLimiter(max_concurrent=2, max_requests=1000, period=60.0)
        client = make_client(provider, batch_size=1, rate_limiter=limiter)

        await client.embed_batch([f"text {i}" for i in range(8)])

        assert provider.max_in_flight == 2
        assert limiter.total_requests == 8

    def test_batch_size_must_be_positive(self):
        with pytest.raises(InvalidInputError):
            EmbeddingClient(FakeEmbeddingProvider(), batch_size=0)


class TestClientConfiguration:

    def test_from_config_takes_dimension_from_provider(self):
        provider = FakeEmbeddingProvider(dimension=32)
        client = EmbeddingClient.from_config(provider, {"batch_size": 16}, rate_limiter=NoopRateLimiter())

        assert client.batch_size == 16
        assert client.expected_dimension == 32

    def test_from_config_dimension_validation_can_be_disabled(self):
        client = EmbeddingClient.from_config(FakeEmbeddingProvider(), {"validate_dimension": False})

        assert client.expected_dimension is None
        assert isinstance(client.rate_limiter, RateLimiter)

    @pytest.mark.asyncio
    async def test_stats_and_close(self):
        provider = FakeEmbeddingProvider()
        client = make_client(provider, batch_size=2)

        await client.embed_batch(["a", "b", "c"])
        stats = client.get_stats()
        await client.aclose()

        assert stats["total_calls"] == 1
        assert stats["total_texts"] == 3
        assert stats["total_requests"] == 2
        assert stats["model"] == "fake-embedding-model"
        assert provider.closed

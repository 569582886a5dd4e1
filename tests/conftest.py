import pytest
from datetime import timedelta

from knowledge_engine.embeddings.client import EmbeddingClient
from knowledge_engine.embeddings.rate_limiter import NoopRateLimiter
from knowledge_engine.embeddings.retry import RetryConfig
from knowledge_engine.knowledge.engine import KnowledgeEngine
from knowledge_engine.knowledge.models import KnowledgeEntry, utc_now
from knowledge_engine.knowledge.stores import InMemoryKnowledgeStore

# Import fixtures from fixtures directory
from tests.fixtures.test_data_generator import data_generator  # noqa: F401
from tests.fixtures.fake_provider import FakeEmbeddingProvider

PROJECT_ID = "project-test"

# Retries without waiting
FAST_RETRY = {"max_attempts": 2, "base_delay": 0.0, "max_delay": 0.0, "jitter_factor": 0.0}


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def store():
    return InMemoryKnowledgeStore()


@pytest.fixture
def embedding_client(fake_provider):
    return EmbeddingClient(
        fake_provider,
        rate_limiter=NoopRateLimiter(),
        batch_size=4,
        retry_config=RetryConfig.from_config(FAST_RETRY),
        expected_dimension=fake_provider.dimension
    )


@pytest.fixture
def make_entry():
    """Factory for knowledge entries with controllable age and embedding."""
    base_time = utc_now() - timedelta(days=1)
    counter = {"n": 0}

    def _make(content, embedding=None, project_id=PROJECT_ID, age_seconds=None, **kwargs):
        counter["n"] += 1
        if age_seconds is None:
            age_seconds = 10000 - counter["n"]
        created = base_time - timedelta(seconds=age_seconds)
        kwargs.setdefault("created_at", created)
        kwargs.setdefault("updated_at", created)
        return KnowledgeEntry(project_id=project_id, content=content, embedding=embedding, **kwargs)

    return _make


def build_engine(provider=None, store=None, chunking=None, embeddings=None, deduplication=None,
                 ingestion=None, index=None):
    """Engine wired to a fake provider and an in-memory store."""
    embeddings_config = {"batch_size": 4, "request_timeout": 5.0, "retry": dict(FAST_RETRY)}
    embeddings_config.update(embeddings or {})
    return KnowledgeEngine(
        chunking_config=chunking or {"max_chunk_tokens": 40, "overlap_tokens": 10, "min_chunk_tokens": 5},
        embeddings_config=embeddings_config,
        deduplication_config=deduplication,
        index_config=index,
        ingestion_config=ingestion,
        provider=provider or FakeEmbeddingProvider(),
        store=store or InMemoryKnowledgeStore(),
        rate_limiter=NoopRateLimiter()
    )


@pytest.fixture
def engine(fake_provider, store):
    return build_engine(provider=fake_provider, store=store)

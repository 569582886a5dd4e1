"""
Embedding Client

Generates embeddings for batches of texts:
- Splits input into provider-sized sub-batches
- Bounds concurrency and request rate with a shared RateLimiter
- Retries each sub-batch with exponential backoff and jitter
- Applies a per-request timeout independent of the backoff schedule

A call either returns one vector per input, in input order, or raises; no
partial results are returned.
"""

import time
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from .provider import EmbeddingProvider
from .rate_limiter import RateLimiter, NoopRateLimiter
from .retry import RetryConfig, retry_with_backoff
from ..knowledge.exceptions import (
    InvalidInputError, PartialBatchFailureError, ProviderUnavailableError
)

DEFAULT_BATCH_SIZE = 128
DEFAULT_REQUEST_TIMEOUT = 30.0


class EmbeddingMode(str, Enum):
    """Provider input_type: documents being indexed or a search query."""
    DOCUMENT = 'document'
    QUERY = 'query'


class EmbeddingClient:
    """Rate-limited, retrying batch embedding client."""

    def __init__(self, provider: EmbeddingProvider, rate_limiter: Any = None,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 retry_config: Optional[RetryConfig] = None,
                 expected_dimension: Optional[int] = None):
        """Initialize embedding client.

        Args:
            provider: Backend performing single-batch requests
            rate_limiter: Shared RateLimiter (NoopRateLimiter when omitted)
            batch_size: Maximum texts per provider request
            request_timeout: Seconds before a single request is abandoned
            retry_config: Backoff schedule for failed sub-batches
            expected_dimension: Reject vectors of any other length when set
        """
        if batch_size < 1:
            raise InvalidInputError("batch_size must be >= 1", {'batch_size': batch_size})
        self.provider = provider
        self.rate_limiter = rate_limiter or NoopRateLimiter()
        self.batch_size = batch_size
        self.request_timeout = request_timeout
        self.retry_config = retry_config or RetryConfig()
        self.expected_dimension = expected_dimension

        # Statistics tracking
        self.stats = {
            'total_calls': 0,
            'total_texts': 0,
            'total_requests': 0,
            'failed_requests': 0,
            'total_time': 0.0
        }

    @classmethod
    def from_config(cls, provider: EmbeddingProvider, embeddings_config: Dict[str, Any],
                    rate_limiter: Any = None) -> 'EmbeddingClient':
        expected = embeddings_config.get('dimension')
        if expected is None and embeddings_config.get('validate_dimension', True):
            expected = getattr(provider, 'dimension', None)
        return cls(
            provider=provider,
            rate_limiter=rate_limiter or RateLimiter.from_config(embeddings_config),
            batch_size=embeddings_config.get('batch_size', DEFAULT_BATCH_SIZE),
            request_timeout=embeddings_config.get('request_timeout', DEFAULT_REQUEST_TIMEOUT),
            retry_config=RetryConfig.from_config(embeddings_config.get('retry')),
            expected_dimension=expected
        )

    async def embed_batch(self, texts: List[str],
                          mode: EmbeddingMode = EmbeddingMode.DOCUMENT) -> List[List[float]]:
        """Embed texts, one vector per input in the same order.

        Args:
            texts: Non-empty texts to embed
            mode: DOCUMENT for indexing, QUERY for search input

        Returns:
            List of embedding vectors

        Raises:
            InvalidInputError: A text is empty or the provider rejected the input
            PartialBatchFailureError: A sub-batch failed after exhausting retries
        """
        if not texts:
            return []

        for i, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise InvalidInputError(f"Text at position {i} is empty", {'position': i})

        mode = EmbeddingMode(mode)
        start_time = time.time()
        batches = [texts[i:i + self.batch_size] for i in range(0, len(texts), self.batch_size)]

        tasks = [
            asyncio.ensure_future(self._embed_sub_batch(index, batch, mode))
            for index, batch in enumerate(batches)
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        embeddings = [vector for batch_result in results for vector in batch_result]

        elapsed = time.time() - start_time
        self.stats['total_calls'] += 1
        self.stats['total_texts'] += len(texts)
        self.stats['total_time'] += elapsed
        logging.info(f"Embedded {len(texts)} texts in {len(batches)} requests "
                     f"({mode.value} mode) in {elapsed:.2f}s")
        return embeddings

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single search query."""
        return (await self.embed_batch([text], EmbeddingMode.QUERY))[0]

    async def _embed_sub_batch(self, index: int, batch: List[str],
                               mode: EmbeddingMode) -> List[List[float]]:
        async def attempt() -> List[List[float]]:
            async with self.rate_limiter:
                self.stats['total_requests'] += 1
                try:
                    vectors = await asyncio.wait_for(
                        self.provider.embed(batch, mode.value), timeout=self.request_timeout
                    )
                except asyncio.TimeoutError as e:
                    self.stats['failed_requests'] += 1
                    raise ProviderUnavailableError(
                        f"Embedding request timed out after {self.request_timeout}s"
                    ) from e
                except Exception:
                    self.stats['failed_requests'] += 1
                    raise
            self._validate(vectors, len(batch))
            return vectors

        try:
            return await retry_with_backoff(attempt, self.retry_config,
                                            description=f"embedding sub-batch {index}")
        except InvalidInputError:
            raise
        except Exception as e:
            raise PartialBatchFailureError(index, len(batch), getattr(e, 'attempts', 1), e) from e

    def _validate(self, vectors: List[List[float]], expected_count: int) -> None:
        if len(vectors) != expected_count:
            raise ProviderUnavailableError(
                f"Provider returned {len(vectors)} vectors for {expected_count} texts"
            )
        if self.expected_dimension is not None:
            for vector in vectors:
                if len(vector) != self.expected_dimension:
                    raise InvalidInputError(
                        f"Embedding dimension {len(vector)} != expected {self.expected_dimension}",
                        {'dimension': len(vector), 'expected': self.expected_dimension}
                    )

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self.stats)
        stats['rate_limiter'] = self.rate_limiter.get_stats()
        stats['model'] = getattr(self.provider, 'model', '')
        return stats

    async def aclose(self) -> None:
        await self.provider.aclose()

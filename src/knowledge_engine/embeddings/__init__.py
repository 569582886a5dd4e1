"""
Knowledge Engine - Embeddings Module

Components:
- client.py: Batching, rate-limited, retrying embedding client
- provider.py: Provider interface and the Voyage AI implementation
- rate_limiter.py: Shared concurrency and rolling-window limiter
- retry.py: Exponential backoff with jitter
"""

from .client import EmbeddingClient, EmbeddingMode
from .provider import EmbeddingProvider, VoyageEmbeddingProvider, MODEL_DIMENSIONS, create_provider
from .rate_limiter import RateLimiter, NoopRateLimiter
from .retry import RetryConfig, retry_with_backoff

__all__ = [
    'EmbeddingClient', 'EmbeddingMode', 'EmbeddingProvider', 'VoyageEmbeddingProvider',
    'MODEL_DIMENSIONS', 'create_provider', 'RateLimiter', 'NoopRateLimiter',
    'RetryConfig', 'retry_with_backoff'
]

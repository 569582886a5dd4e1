"""
Embedding providers.

The provider turns one batch of texts into vectors with a single request.
Batching, concurrency, rate limiting, retries and timeouts belong to the
EmbeddingClient, not to providers.
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..knowledge.exceptions import (
    ConfigurationError, InvalidInputError, ProviderUnavailableError, RateLimitedError
)

VOYAGE_API_URL = 'https://api.voyageai.com/v1'

# Output dimension per supported model
MODEL_DIMENSIONS = {
    'voyage-large-2': 1024,
    'voyage-code-2': 1536,
}


class EmbeddingProvider(ABC):
    """Single-request embedding backend."""

    model: str = ''
    dimension: Optional[int] = None

    @abstractmethod
    async def embed(self, texts: List[str], input_type: str) -> List[List[float]]:
        """Embed one batch of texts.

        Args:
            texts: Batch of non-empty texts
            input_type: "document" or "query"

        Returns:
            One vector per text, same order
        """

    async def aclose(self) -> None:
        """Release network resources."""


class VoyageEmbeddingProvider(EmbeddingProvider):
    """Voyage AI embeddings over HTTP."""

    def __init__(self, api_key: Optional[str] = None, model: str = 'voyage-large-2',
                 base_url: str = VOYAGE_API_URL, http_client: Optional[httpx.AsyncClient] = None):
        """Initialize the provider.

        Args:
            api_key: Voyage API key (defaults to the VOYAGE_API_KEY environment variable)
            model: Embedding model name
            base_url: API base URL
            http_client: Pre-built AsyncClient, e.g. with a mock transport in tests
        """
        api_key = api_key or os.getenv('VOYAGE_API_KEY')
        if not api_key and http_client is None:
            raise ConfigurationError("Voyage API key required. Set VOYAGE_API_KEY or embeddings.api_key.")

        self.model = model
        self.dimension = MODEL_DIMENSIONS.get(model)
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(base_url=base_url)
        self._headers = {'Content-Type': 'application/json'}
        if api_key:
            self._headers['Authorization'] = f'Bearer {api_key}'

        logging.info(f"VoyageEmbeddingProvider initialized with model {model} "
                     f"(dimension {self.dimension})")

    @classmethod
    def from_config(cls, embeddings_config: Dict[str, Any]) -> 'VoyageEmbeddingProvider':
        return cls(
            api_key=embeddings_config.get('api_key'),
            model=embeddings_config.get('model', 'voyage-large-2'),
            base_url=embeddings_config.get('base_url', VOYAGE_API_URL)
        )

    async def embed(self, texts: List[str], input_type: str) -> List[List[float]]:
        payload = {'input': texts, 'model': self.model, 'input_type': input_type}

        try:
            response = await self.client.post('/embeddings', json=payload, headers=self._headers)
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError("Embedding request timed out") from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(f"Embedding request failed: {type(e).__name__}") from e

        self._raise_for_status(response)

        try:
            data = response.json()['data']
            ordered = sorted(data, key=lambda item: item.get('index', 0))
            embeddings = [[float(x) for x in item['embedding']] for item in ordered]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderUnavailableError("Malformed embedding response",
                                           status_code=response.status_code) from e

        if len(embeddings) != len(texts):
            raise ProviderUnavailableError(
                f"Provider returned {len(embeddings)} embeddings for {len(texts)} texts",
                status_code=response.status_code
            )
        return embeddings

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 429:
            retry_after = response.headers.get('retry-after')
            try:
                retry_after = float(retry_after) if retry_after is not None else None
            except ValueError:
                retry_after = None
            raise RateLimitedError(retry_after=retry_after, details={'status_code': status})
        if status >= 500:
            raise ProviderUnavailableError(f"Embedding provider returned HTTP {status}", status_code=status)
        if status in (401, 403):
            raise ConfigurationError(f"Embedding provider rejected credentials (HTTP {status})",
                                     {'status_code': status})
        raise InvalidInputError(f"Embedding provider rejected the request (HTTP {status})",
                                {'status_code': status})

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def create_provider(embeddings_config: Dict[str, Any]) -> EmbeddingProvider:
    """Build the provider named by ``embeddings.provider``."""
    name = embeddings_config.get('provider', 'voyage')
    if name == 'voyage':
        return VoyageEmbeddingProvider.from_config(embeddings_config)
    raise ConfigurationError(f"Unknown embedding provider '{name}'", {'provider': name})

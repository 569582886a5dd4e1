"""
Knowledge Index

Handles retrieval operations including:
- Nearest-neighbour queries over a project's knowledge by cosine similarity
- Category filtering and similarity thresholds
- Text queries embedded in query mode
- Usage statistics updates for retrieved knowledge
"""

import time
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .exceptions import InvalidInputError
from .models import KnowledgeCategory, KnowledgeEntry, utc_now
from .stores.base import ranking_key
from ..deduplication.similarity import is_finite_vector

DEFAULT_LIMIT = 10
DEFAULT_THRESHOLD = 0.7
OVERFETCH = 10


class KnowledgeIndex:
    """Similarity search over stored knowledge entries."""

    def __init__(self, store: Any, embedding_client: Any = None,
                 index_config: Optional[Dict[str, Any]] = None):
        """Initialize knowledge index.

        Args:
            store: KnowledgeStore holding the entries
            embedding_client: EmbeddingClient used by search_text
            index_config: Configuration dict with default limit and threshold
        """
        config = index_config or {}
        self.store = store
        self.embedding_client = embedding_client
        self.default_limit = config.get('default_limit', DEFAULT_LIMIT)
        self.default_threshold = config.get('default_threshold', DEFAULT_THRESHOLD)

    def query(self, project_id: str, query_embedding: Sequence[float],
              limit: Optional[int] = None, threshold: Optional[float] = None,
              category: Optional[KnowledgeCategory] = None) -> List[Tuple[KnowledgeEntry, float]]:
        """Find the project's knowledge most similar to a query embedding.

        Args:
            project_id: Project to search (required)
            query_embedding: Vector of the project's embedding dimension
            limit: Maximum number of results
            threshold: Minimum cosine similarity
            category: Restrict results to one category

        Returns:
            (entry, similarity) pairs, best first; ties go to the most recently updated
        """
        limit = self.default_limit if limit is None else limit
        threshold = self.default_threshold if threshold is None else threshold

        if not project_id:
            raise InvalidInputError("project_id is required")
        if not isinstance(limit, int) or limit <= 0:
            raise InvalidInputError(f"limit must be a positive integer, got {limit}", {'limit': limit})
        if query_embedding is None or len(query_embedding) == 0:
            raise InvalidInputError("query embedding is empty")
        if not is_finite_vector(query_embedding):
            raise InvalidInputError("query embedding contains NaN or infinite values")
        if category is not None:
            try:
                category = KnowledgeCategory(category)
            except ValueError as e:
                raise InvalidInputError(f"Unknown category '{category}'", {'category': category}) from e

        start_time = time.time()
        # Over-fetch so ties at the cut are all seen before the recency tie-break
        k = max(limit * 2, limit + OVERFETCH)
        while True:
            candidates = self.store.nearest(project_id, query_embedding, k, category)
            if len(candidates) < k:
                break
            last_score = candidates[-1][1]
            if last_score < threshold or last_score < candidates[limit - 1][1]:
                break
            k *= 2

        results = [(entry, score) for entry, score in candidates if score >= threshold]
        results.sort(key=lambda pair: ranking_key(*pair))

        logging.info(f"Knowledge query in project {project_id}: {len(results)} of {len(candidates)} "
                     f"candidates above {threshold} in {time.time() - start_time:.3f}s")
        return results[:limit]

    async def search_text(self, project_id: str, query_text: str,
                          limit: Optional[int] = None, threshold: Optional[float] = None,
                          category: Optional[KnowledgeCategory] = None,
                          record_usage: bool = False) -> List[Tuple[KnowledgeEntry, float]]:
        """Embed a text query in query mode and search the project's knowledge."""
        if self.embedding_client is None:
            raise InvalidInputError("search_text requires an embedding client")
        if not query_text or not query_text.strip():
            raise InvalidInputError("query text is empty")

        query_embedding = await self.embedding_client.embed_query(query_text)
        results = self.query(project_id, query_embedding, limit, threshold, category)

        if record_usage and results:
            self.record_usage([entry.id for entry, _ in results])
        return results

    def record_usage(self, knowledge_ids: Sequence[str]) -> int:
        """Increment usage_count and set last_used for retrieved entries.

        Returns:
            Number of entries updated
        """
        now = utc_now()
        updated = 0
        for entry in self.store.get_entries(list(knowledge_ids)).values():
            self.store.update_entry(entry.copy(usage_count=entry.usage_count + 1, last_used=now))
            updated += 1
        return updated

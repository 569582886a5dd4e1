"""
Knowledge Engine Facade

Wires the chunker, embedding client, knowledge store, index, duplicate
detector and ingestion pipeline from configuration and exposes one API over
them for the tool layer.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .exceptions import StorageError
from .index import KnowledgeIndex
from .models import DuplicateGroup, KnowledgeCategory, KnowledgeEntry, SourceType
from .pipeline import IngestionPipeline, IngestionResult
from .stores import KnowledgeStore, create_store
from ..chunking.chunker import TextChunker
from ..deduplication.deduplicator import DuplicateDetector
from ..embeddings.client import EmbeddingClient, EmbeddingMode
from ..embeddings.provider import EmbeddingProvider, create_provider
from ..embeddings.rate_limiter import RateLimiter


class KnowledgeEngine:
    """Facade over the ingestion, retrieval and deduplication services."""

    def __init__(
        self,
        chunking_config: Optional[Dict[str, Any]] = None,
        embeddings_config: Optional[Dict[str, Any]] = None,
        deduplication_config: Optional[Dict[str, Any]] = None,
        index_config: Optional[Dict[str, Any]] = None,
        ingestion_config: Optional[Dict[str, Any]] = None,
        db_config: Optional[Dict[str, Any]] = None,
        provider: Optional[EmbeddingProvider] = None,
        store: Optional[KnowledgeStore] = None,
        rate_limiter: Any = None
    ):
        """Initialize the knowledge engine.

        Args:
            chunking_config: Chunker options
            embeddings_config: Provider, batching, rate limit and retry options
            deduplication_config: Detector thresholds and switches
            index_config: Default query limit and threshold
            ingestion_config: Window size and duplicate detection switch
            db_config: Store backend selection
            provider: Embedding provider overriding the configured one
            store: Knowledge store overriding the configured backend
            rate_limiter: Shared limiter overriding the one built from embeddings_config
        """
        embeddings_config = embeddings_config or {}
        ingestion_config = ingestion_config or {}

        try:
            self.store = store if store is not None else create_store(db_config or {})
        except (OSError, IOError) as init_error:
            logging.error(f"Filesystem error during store initialization: {init_error}")
            raise StorageError(f"Cannot access storage directory: {init_error}",
                               {'db_config': db_config}) from init_error

        self.chunker = TextChunker.from_config(chunking_config)
        self.provider = provider if provider is not None else create_provider(embeddings_config)
        self.embedding_client = EmbeddingClient.from_config(
            self.provider, embeddings_config,
            rate_limiter=rate_limiter or RateLimiter.from_config(embeddings_config)
        )
        self.index = KnowledgeIndex(self.store, self.embedding_client, index_config)
        self.detector = DuplicateDetector(self.store, deduplication_config)
        self.detect_on_ingest = ingestion_config.get('detect_duplicates', True)
        self.pipeline = IngestionPipeline(
            chunker=self.chunker,
            embedding_client=self.embedding_client,
            store=self.store,
            detector=self.detector,
            window_size=ingestion_config.get('window_size', 128)
        )

        logging.info(f"KnowledgeEngine initialized (store={type(self.store).__name__}, "
                     f"model={getattr(self.provider, 'model', '')})")

    @classmethod
    def from_config(cls, config: Any, **overrides) -> 'KnowledgeEngine':
        """Build the engine from a Config instance."""
        return cls(
            chunking_config=config.get_chunking_config(),
            embeddings_config=config.get_embeddings_config(),
            deduplication_config=config.get_deduplication_config(),
            index_config=config.get_index_config(),
            ingestion_config=config.get_ingestion_config(),
            db_config=config.get_database_config(),
            **overrides
        )

    # =========================================================================
    # Ingestion
    # =========================================================================

    def chunk(self, text: str):
        return self.chunker.chunk(text)

    async def embed_batch(self, texts: List[str],
                          mode: EmbeddingMode = EmbeddingMode.DOCUMENT) -> List[List[float]]:
        return await self.embedding_client.embed_batch(texts, mode)

    async def ingest_document(self, project_id: str, document_id: str, text: str,
                              category: KnowledgeCategory = KnowledgeCategory.COMPANY_INFO,
                              source_type: SourceType = SourceType.UPLOADED_DOCUMENT,
                              reliability: int = 50,
                              document_name: Optional[str] = None,
                              metadata: Optional[Dict[str, Any]] = None,
                              cancel_event: Optional[asyncio.Event] = None) -> IngestionResult:
        return await self.pipeline.ingest(
            project_id, document_id, text,
            category=category, source_type=source_type, reliability=reliability,
            document_name=document_name, metadata=metadata,
            detect_duplicates=self.detect_on_ingest, cancel_event=cancel_event
        )

    async def add_entries(self, entries: Sequence[KnowledgeEntry]) -> List[str]:
        """Store pre-built entries, embedding those without a vector first."""
        missing = [e for e in entries if not e.has_embedding]
        if missing:
            vectors = await self.embedding_client.embed_batch([e.content for e in missing])
            for entry, vector in zip(missing, vectors):
                entry.embedding = vector
        return await asyncio.to_thread(self.store.add_entries, list(entries))

    # =========================================================================
    # Retrieval
    # =========================================================================

    def query(self, project_id: str, query_embedding: Sequence[float], limit: Optional[int] = None,
              threshold: Optional[float] = None,
              category: Optional[KnowledgeCategory] = None) -> List[Tuple[KnowledgeEntry, float]]:
        return self.index.query(project_id, query_embedding, limit, threshold, category)

    async def search(self, project_id: str, query_text: str, limit: Optional[int] = None,
                     threshold: Optional[float] = None, category: Optional[KnowledgeCategory] = None,
                     record_usage: bool = True) -> List[Tuple[KnowledgeEntry, float]]:
        return await self.index.search_text(project_id, query_text, limit, threshold,
                                            category, record_usage)

    # =========================================================================
    # Deduplication
    # =========================================================================

    async def detect_duplicates(self, project_id: str,
                                candidate_knowledge_ids: Optional[Sequence[str]] = None) -> List[DuplicateGroup]:
        """Detect duplicates for the given ids, or for the whole project when omitted."""
        if candidate_knowledge_ids is None:
            entries = await asyncio.to_thread(self.store.list_entries, project_id)
            candidate_knowledge_ids = [e.id for e in entries]
        return await asyncio.to_thread(self.detector.detect_duplicates, project_id,
                                       list(candidate_knowledge_ids))

    def get_duplicate_stats(self, project_id: str) -> Dict[str, Any]:
        return self.detector.get_duplicate_stats(project_id)

    def remove_from_duplicate_group(self, knowledge_id: str) -> Optional[DuplicateGroup]:
        return self.detector.remove_from_group(knowledge_id)

    def merge_duplicate_group(self, group_id: str) -> KnowledgeEntry:
        return self.detector.merge_group(group_id)

    # =========================================================================
    # Statistics and lifecycle
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        return {
            'store': type(self.store).__name__,
            'embeddings': self.embedding_client.get_stats(),
            'deduplication': dict(self.detector.stats),
            'merges': self.detector.merger.get_merge_statistics()
        }

    async def aclose(self) -> None:
        await self.embedding_client.aclose()
        self.store.close()

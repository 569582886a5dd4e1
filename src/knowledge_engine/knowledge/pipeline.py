"""
Document Ingestion Pipeline

Turns extracted document text into stored, deduplicated knowledge:
chunk -> embed (in windows) -> store entries -> detect duplicates.

Ingestion can be cancelled between windows; entries already written stay
valid. Failures raise IngestionError with the document id, the first chunk
of the failing window and a classified error type.
"""

import time
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import (
    IngestionError, InvalidInputError, KnowledgeEngineError, PartialBatchFailureError,
    classify_error
)
from .models import DuplicateGroup, KnowledgeCategory, KnowledgeEntry, SourceType
from ..embeddings.client import EmbeddingMode

DEFAULT_WINDOW_SIZE = 128


@dataclass
class IngestionResult:
    """Outcome of ingesting one document."""
    project_id: str
    document_id: str
    chunks_total: int = 0
    entry_ids: List[str] = field(default_factory=list)
    duplicate_groups: List[DuplicateGroup] = field(default_factory=list)
    cancelled: bool = False
    processing_time: float = 0.0

    @property
    def chunks_stored(self) -> int:
        return len(self.entry_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'document_id': self.document_id,
            'chunks_total': self.chunks_total,
            'chunks_stored': self.chunks_stored,
            'entry_ids': list(self.entry_ids),
            'duplicate_groups': [g.to_dict() for g in self.duplicate_groups],
            'cancelled': self.cancelled,
            'processing_time': self.processing_time
        }


class IngestionPipeline:
    """Chunks, embeds, stores and deduplicates documents."""

    def __init__(self, chunker: Any, embedding_client: Any, store: Any,
                 detector: Any = None, window_size: int = DEFAULT_WINDOW_SIZE):
        """Initialize ingestion pipeline.

        Args:
            chunker: TextChunker instance
            embedding_client: EmbeddingClient instance
            store: KnowledgeStore receiving the entries
            detector: Optional DuplicateDetector run on the new entries
            window_size: Chunks embedded and stored per step (cancellation granularity)
        """
        self.chunker = chunker
        self.embedding_client = embedding_client
        self.store = store
        self.detector = detector
        self.window_size = max(1, window_size)

    async def ingest(self, project_id: str, document_id: str, text: str,
                     category: KnowledgeCategory = KnowledgeCategory.COMPANY_INFO,
                     source_type: SourceType = SourceType.UPLOADED_DOCUMENT,
                     reliability: int = 50,
                     document_name: Optional[str] = None,
                     metadata: Optional[Dict[str, Any]] = None,
                     detect_duplicates: bool = True,
                     cancel_event: Optional[asyncio.Event] = None) -> IngestionResult:
        """Ingest one document into a project's knowledge.

        Args:
            project_id: Owning project
            document_id: Source document identifier
            text: Extracted document text
            category: Category of the resulting knowledge entries
            source_type: Origin of the document
            reliability: Reliability score (0-100) of the entries
            document_name: Human-readable document name for metadata
            metadata: Extra metadata copied onto every entry
            detect_duplicates: Run duplicate detection on the new entries
            cancel_event: Set to stop between windows

        Returns:
            IngestionResult describing what was stored
        """
        if not project_id or not document_id:
            raise InvalidInputError("project_id and document_id are required")
        category = KnowledgeCategory(category)
        source_type = SourceType(source_type)

        start_time = time.time()
        result = IngestionResult(project_id=project_id, document_id=document_id)

        chunks = await asyncio.to_thread(self.chunker.chunk, text)
        result.chunks_total = len(chunks)
        if not chunks:
            logging.info(f"Document {document_id} produced no chunks")
            return result

        for window_start in range(0, len(chunks), self.window_size):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logging.info(f"Ingestion of {document_id} cancelled after "
                             f"{result.chunks_stored}/{len(chunks)} chunks")
                break

            window = chunks[window_start:window_start + self.window_size]
            try:
                embeddings = await self.embedding_client.embed_batch(
                    [chunk.content for chunk in window], EmbeddingMode.DOCUMENT
                )
            except PartialBatchFailureError as e:
                chunk_index = window_start + e.batch_index * self.embedding_client.batch_size
                raise self._failure(document_id, chunk_index, e) from e
            except KnowledgeEngineError as e:
                raise self._failure(document_id, window_start, e) from e

            entries = [
                KnowledgeEntry(
                    project_id=project_id,
                    content=chunk.content,
                    category=category,
                    embedding=embedding,
                    reliability=reliability,
                    source_type=source_type,
                    source_id=document_id,
                    metadata={
                        **(metadata or {}),
                        'document_id': document_id,
                        'document_name': document_name or document_id,
                        'chunk_id': chunk.chunk_id,
                        'chunk_index': chunk.index,
                        'start_index': chunk.start_index,
                        'end_index': chunk.end_index,
                        'token_count': chunk.token_count
                    }
                )
                for chunk, embedding in zip(window, embeddings)
            ]

            try:
                stored = await asyncio.to_thread(self.store.add_entries, entries)
            except KnowledgeEngineError as e:
                raise self._failure(document_id, window_start, e) from e
            result.entry_ids.extend(stored)

        if detect_duplicates and self.detector is not None and result.entry_ids and not result.cancelled:
            try:
                result.duplicate_groups = await asyncio.to_thread(
                    self.detector.detect_duplicates, project_id, list(result.entry_ids)
                )
            except KnowledgeEngineError as e:
                raise self._failure(document_id, None, e) from e

        result.processing_time = time.time() - start_time
        logging.info(f"Ingested document {document_id} into project {project_id}: "
                     f"{result.chunks_stored}/{result.chunks_total} chunks stored, "
                     f"{len(result.duplicate_groups)} duplicate groups in {result.processing_time:.2f}s")
        return result

    @staticmethod
    def _failure(document_id: str, chunk_index: Optional[int], error: BaseException) -> IngestionError:
        error_type = classify_error(error)
        logging.error(f"Ingestion of {document_id} failed at chunk {chunk_index}: "
                      f"{type(error).__name__} ({error_type})")
        return IngestionError(document_id, chunk_index, error_type, error)

"""
Knowledge Engine - Knowledge Module

Components:
- models.py: Chunk, KnowledgeEntry and DuplicateGroup records
- exceptions.py: Error taxonomy and error classification
- stores/: Persistence contract with in-memory and ChromaDB stores
- index.py: Nearest-neighbour knowledge queries
- pipeline.py: Chunk, embed, store and deduplicate a document
- engine.py: Facade wiring the components from configuration
"""

from .models import (
    Chunk, KnowledgeEntry, DuplicateGroup, KnowledgeCategory, SourceType, DetectionMethod
)
from .exceptions import (
    KnowledgeEngineError, EmbeddingError, RateLimitedError, ProviderUnavailableError,
    InvalidInputError, PartialBatchFailureError, IngestionError, StorageError,
    KnowledgeNotFoundError, DeduplicationError, ConfigurationError
)

__all__ = [
    'Chunk', 'KnowledgeEntry', 'DuplicateGroup', 'KnowledgeCategory', 'SourceType',
    'DetectionMethod', 'KnowledgeEngineError', 'EmbeddingError', 'RateLimitedError',
    'ProviderUnavailableError', 'InvalidInputError', 'PartialBatchFailureError',
    'IngestionError', 'StorageError', 'KnowledgeNotFoundError', 'DeduplicationError',
    'ConfigurationError'
]

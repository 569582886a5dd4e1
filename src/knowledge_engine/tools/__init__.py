# --- Ingestion Tools ---
from .ingest import chunk_text_tool, embed_texts_tool, ingest_document_tool

# --- Retrieval Tools ---
from .query import search_knowledge_tool

# --- Deduplication Tools ---
from .deduplication import (
    detect_duplicates_tool, get_duplicate_stats_tool,
    remove_from_duplicate_group_tool, merge_duplicate_group_tool
)

# --- System Monitoring Tools ---
from .stats import get_engine_stats_tool

from .errors import error_result

__all__ = [
    'chunk_text_tool', 'embed_texts_tool', 'ingest_document_tool',
    'search_knowledge_tool',
    'detect_duplicates_tool', 'get_duplicate_stats_tool',
    'remove_from_duplicate_group_tool', 'merge_duplicate_group_tool',
    'get_engine_stats_tool', 'error_result'
]

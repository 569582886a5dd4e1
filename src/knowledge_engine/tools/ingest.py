"""
Ingestion Tools

Tools for chunking text, generating embeddings and ingesting documents into
a project's knowledge.
"""

import logging
from typing import List

from .errors import error_result
from ..knowledge.exceptions import KnowledgeEngineError
from ..chunking.chunker import TextChunker
from ..embeddings.client import EmbeddingMode


def chunk_text_tool(engine, text: str, max_chunk_tokens: int = None, overlap_tokens: int = None,
                    min_chunk_tokens: int = None) -> dict:
    """Split text into sentence-respecting, overlapping chunks.

    Args:
        engine: KnowledgeEngine instance
        text: Text to chunk
        max_chunk_tokens: Override of the configured maximum tokens per chunk
        overlap_tokens: Override of the configured overlap budget
        min_chunk_tokens: Override of the configured minimum chunk size

    Returns:
        Dictionary with the chunks
    """
    chunker = engine.chunker
    if any(v is not None for v in (max_chunk_tokens, overlap_tokens, min_chunk_tokens)):
        chunker = TextChunker(
            max_chunk_tokens if max_chunk_tokens is not None else chunker.max_chunk_tokens,
            overlap_tokens if overlap_tokens is not None else chunker.overlap_tokens,
            min_chunk_tokens if min_chunk_tokens is not None else chunker.min_chunk_tokens
        )

    chunks = chunker.chunk(text or "")
    return {
        "success": True,
        "chunks": [c.to_dict() for c in chunks],
        "total_chunks": len(chunks),
        "total_tokens": sum(c.token_count for c in chunks)
    }


async def embed_texts_tool(engine, texts: List[str], mode: str = "document") -> dict:
    """Generate embeddings for a list of texts.

    Args:
        engine: KnowledgeEngine instance
        texts: Texts to embed
        mode: "document" or "query"

    Returns:
        Dictionary with one embedding per text
    """
    try:
        embeddings = await engine.embed_batch(list(texts or []), EmbeddingMode(mode))
        return {
            "success": True,
            "embeddings": embeddings,
            "count": len(embeddings),
            "dimension": len(embeddings[0]) if embeddings else 0,
            "model": getattr(engine.provider, 'model', '')
        }
    except (KnowledgeEngineError, ValueError) as e:
        return error_result(e, "embed_texts")


async def ingest_document_tool(engine, project_id: str, document_id: str, text: str,
                               category: str = "company-info", source_type: str = "uploaded-document",
                               reliability: int = 50, document_name: str = None,
                               metadata: dict = None) -> dict:
    """Chunk, embed, store and deduplicate a document.

    Args:
        engine: KnowledgeEngine instance
        project_id: Owning project
        document_id: Source document identifier
        text: Extracted document text
        category: Knowledge category of the resulting entries
        source_type: Origin of the document
        reliability: Reliability score (0-100)
        document_name: Human-readable document name
        metadata: Extra metadata copied onto every entry

    Returns:
        Dictionary with the ingestion result
    """
    try:
        result = await engine.ingest_document(
            project_id, document_id, text,
            category=category, source_type=source_type, reliability=reliability,
            document_name=document_name, metadata=metadata
        )
        response = result.to_dict()
        response["success"] = True
        response["message"] = (f"Stored {result.chunks_stored} chunks, "
                               f"found {len(result.duplicate_groups)} duplicate groups")
        return response
    except (KnowledgeEngineError, ValueError) as e:
        logging.warning(f"Document {document_id} ingestion failed")
        return error_result(e, "ingest_document")

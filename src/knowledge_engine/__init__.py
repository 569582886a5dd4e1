"""
Knowledge Ingestion & Deduplication Engine

Turns extracted document text into token-bounded chunks, embeds them in
rate-limited batches, indexes them for similarity search and groups
duplicate knowledge across exact, semantic and fuzzy layers.

Components:
- chunking/: Token estimation and sentence-respecting chunking
- embeddings/: Batching, rate-limited, retrying embedding client
- deduplication/: Similarity utilities and the three-layer duplicate detector
- knowledge/: Data model, stores, index, ingestion pipeline and engine facade
- tools/: Tool functions exposed by the server
- server/: FastAPI JSON-RPC server
- config/: JSON configuration management
"""

__version__ = "1.0.0"

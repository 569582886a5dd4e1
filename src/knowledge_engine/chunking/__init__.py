"""
Knowledge Engine - Chunking Module

Components:
- tokenizer.py: Token estimation for Japanese and Western text
- chunker.py: Sentence-respecting, overlapping, size-bounded chunker
"""

from .tokenizer import estimate_tokens
from .chunker import TextChunker, chunk_text, reconstruct_text, chunk_overlap, is_valid_chunk_size

__all__ = ['estimate_tokens', 'TextChunker', 'chunk_text', 'reconstruct_text',
           'chunk_overlap', 'is_valid_chunk_size']

"""
Text Chunking

Splits extracted document text into chunks for embedding generation:
- Respects token limits
- Preserves sentence boundaries (Japanese and Western punctuation)
- Seeds each chunk with trailing sentences of the previous one for context
- Merges undersized chunks into their neighbours

Every chunk's content is the exact slice text[start_index:end_index], so the
source document can be rebuilt from the chunks by removing overlap.
"""

import re
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from .tokenizer import estimate_tokens
from ..knowledge.models import Chunk

SENTENCE_ENDERS = re.compile(r'[。！？.!?]+')
WHITESPACE_RUN = re.compile(r'\s*')

DEFAULT_MAX_CHUNK_TOKENS = 500
DEFAULT_OVERLAP_TOKENS = 50
DEFAULT_MIN_CHUNK_TOKENS = 100


class Sentence(NamedTuple):
    """Sentence span. ``end`` closes the sentence text, ``stop`` also covers the separator after it."""
    start: int
    end: int
    stop: int


def split_sentences(text: str) -> List[Sentence]:
    """Split text into sentence spans that tile the whole string.

    Boundary punctuation stays attached to the preceding sentence; the
    whitespace run after it is a separator and only extends ``stop``.
    """
    if not text or not text.strip():
        return []

    sentences: List[Sentence] = []
    start = 0
    for match in SENTENCE_ENDERS.finditer(text):
        end = match.end()
        stop = WHITESPACE_RUN.match(text, end).end()
        sentences.append(Sentence(start, end, stop))
        start = stop

    if start < len(text):
        tail = text[start:]
        if tail.strip():
            sentences.append(Sentence(start, start + len(tail.rstrip()), len(text)))
        elif sentences:
            last = sentences[-1]
            sentences[-1] = Sentence(last.start, last.end, len(text))

    return sentences


class TextChunker:
    """Sentence-respecting, overlapping, size-bounded chunker."""

    def __init__(self, max_chunk_tokens: int = DEFAULT_MAX_CHUNK_TOKENS,
                 overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
                 min_chunk_tokens: int = DEFAULT_MIN_CHUNK_TOKENS):
        self.max_chunk_tokens = max(1, int(max_chunk_tokens))
        self.overlap_tokens = max(0, int(overlap_tokens))
        self.min_chunk_tokens = max(0, int(min_chunk_tokens))

    @classmethod
    def from_config(cls, chunking_config: Optional[Dict[str, Any]] = None) -> 'TextChunker':
        config = chunking_config or {}
        return cls(
            max_chunk_tokens=config.get('max_chunk_tokens', DEFAULT_MAX_CHUNK_TOKENS),
            overlap_tokens=config.get('overlap_tokens', DEFAULT_OVERLAP_TOKENS),
            min_chunk_tokens=config.get('min_chunk_tokens', DEFAULT_MIN_CHUNK_TOKENS)
        )

    def chunk(self, text: str) -> List[Chunk]:
        """Chunk text into manageable pieces for embedding.

        Args:
            text: Extracted document text

        Returns:
            Chunks in document order; empty for empty or whitespace-only text
        """
        sentences = split_sentences(text)
        if not sentences:
            return []

        groups = self._group_sentences(text, sentences)
        spans = [(sentences[first].start, sentences[last].stop) for first, last in groups]
        spans = self._merge_small_spans(text, spans)

        chunks = [
            Chunk(
                chunk_id=f"chunk-{i}",
                content=text[start:end],
                start_index=start,
                end_index=end,
                token_count=estimate_tokens(text[start:end])
            )
            for i, (start, end) in enumerate(spans)
        ]

        token_counts = [c.token_count for c in chunks]
        logging.info(f"Chunked {len(text)} characters into {len(chunks)} chunks from "
                     f"{len(sentences)} sentences (tokens min={min(token_counts)}, "
                     f"max={max(token_counts)}, avg={sum(token_counts) / len(chunks):.1f})")
        return chunks

    def _span_tokens(self, text: str, sentences: List[Sentence], first: int, last: int) -> int:
        return estimate_tokens(text[sentences[first].start:sentences[last].stop])

    def _group_sentences(self, text: str, sentences: List[Sentence]) -> List[Tuple[int, int]]:
        """Greedily group consecutive sentences into (first, last) index ranges."""
        groups: List[Tuple[int, int]] = []
        first: Optional[int] = None

        for i in range(len(sentences)):
            if first is not None and self._span_tokens(text, sentences, first, i) > self.max_chunk_tokens:
                groups.append((first, i - 1))

                first = self._overlap_start(text, sentences, first, i - 1)
                # Overlap must leave room for the incoming sentence
                while first is not None and self._span_tokens(text, sentences, first, i) > self.max_chunk_tokens:
                    first = first + 1 if first + 1 < i else None

            if first is None:
                first = i

        groups.append((first, len(sentences) - 1))
        return groups

    def _overlap_start(self, text: str, sentences: List[Sentence],
                       first: int, last: int) -> Optional[int]:
        """Index of the earliest trailing sentence that fits in the overlap budget.

        Never returns ``first`` itself, so chunk starts stay strictly ascending.
        """
        if self.overlap_tokens <= 0:
            return None

        start = None
        for j in range(last, first, -1):
            if self._span_tokens(text, sentences, j, last) > self.overlap_tokens:
                break
            start = j
        return start

    def _merge_small_spans(self, text: str, spans: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        """Merge spans under min_chunk_tokens into the next span, or the previous one when last."""
        merged = list(spans)
        i = 0
        while i < len(merged) and len(merged) > 1:
            start, end = merged[i]
            if estimate_tokens(text[start:end]) >= self.min_chunk_tokens:
                i += 1
                continue

            if i < len(merged) - 1:
                merged[i:i + 2] = [(start, merged[i + 1][1])]
            else:
                merged[i - 1:i + 1] = [(merged[i - 1][0], end)]
                i -= 1
        return merged


def chunk_text(text: str, max_chunk_tokens: int = DEFAULT_MAX_CHUNK_TOKENS,
               overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
               min_chunk_tokens: int = DEFAULT_MIN_CHUNK_TOKENS) -> List[Chunk]:
    """Chunk text with the given options. See TextChunker.chunk."""
    return TextChunker(max_chunk_tokens, overlap_tokens, min_chunk_tokens).chunk(text)


def reconstruct_text(chunks: List[Chunk]) -> str:
    """Rebuild the covered source text, dropping the overlap between adjacent chunks."""
    parts = []
    cursor = None
    for chunk in chunks:
        skip = 0 if cursor is None else max(0, cursor - chunk.start_index)
        parts.append(chunk.content[skip:])
        cursor = chunk.end_index
    return ''.join(parts)


def chunk_overlap(chunk1: Chunk, chunk2: Chunk) -> int:
    """Number of characters shared by two chunks of the same document."""
    return max(0, min(chunk1.end_index, chunk2.end_index) - max(chunk1.start_index, chunk2.start_index))


def is_valid_chunk_size(chunk: Chunk, max_tokens: int) -> bool:
    return chunk.token_count <= max_tokens and len(chunk.content) > 0

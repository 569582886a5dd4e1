"""
Similarity Utilities for Knowledge Deduplication

Pure similarity functions (cosine over embeddings, Levenshtein-based fuzzy
similarity over text) plus a batch calculator that uses scikit-learn for
similarity matrices and radius-neighbour candidate pre-selection.
"""

import re
import time
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as sk_cosine_similarity
from sklearn.neighbors import NearestNeighbors

_WHITESPACE = re.compile(r'\s+')


def normalize_whitespace(text: str) -> str:
    """Lowercase and collapse whitespace runs to a single space."""
    return _WHITESPACE.sub(' ', text or '').strip().lower()


def normalize_for_exact(text: str) -> str:
    """Trim, collapse whitespace and case-fold for exact-match comparison."""
    return _WHITESPACE.sub(' ', text or '').strip().casefold()


def cosine_similarity(embedding1: Sequence[float], embedding2: Sequence[float]) -> float:
    """Cosine similarity between two embeddings.

    Returns 0.0 when dimensions differ, when either vector is empty, or when
    either vector has zero magnitude.

    Returns:
        Cosine similarity score in [-1, 1]
    """
    if embedding1 is None or embedding2 is None:
        return 0.0

    vec1 = np.asarray(embedding1, dtype=float).ravel()
    vec2 = np.asarray(embedding2, dtype=float).ravel()

    if vec1.size == 0 or vec1.shape != vec2.shape:
        return 0.0

    magnitude = np.linalg.norm(vec1) * np.linalg.norm(vec2)
    if magnitude == 0:
        return 0.0

    similarity = float(np.dot(vec1, vec2) / magnitude)
    return max(-1.0, min(1.0, similarity))


def levenshtein_distance(str1: str, str2: str, max_distance: Optional[int] = None) -> int:
    """Minimum number of single-character edits turning str1 into str2.

    Args:
        str1: First string
        str2: Second string
        max_distance: Only compute the band of width ``max_distance`` around the
            diagonal and stop once the distance must exceed it; the returned value
            is then ``max_distance + 1``

    Returns:
        Edit distance
    """
    if str1 == str2:
        return 0
    if len(str1) < len(str2):
        str1, str2 = str2, str1

    if max_distance is None:
        if not str2:
            return len(str1)
        previous = list(range(len(str2) + 1))
        for i, char1 in enumerate(str1, 1):
            current = [i]
            for j, char2 in enumerate(str2, 1):
                current.append(min(
                    previous[j] + 1,                        # deletion
                    current[j - 1] + 1,                     # insertion
                    previous[j - 1] + (char1 != char2)      # substitution
                ))
            previous = current
        return previous[-1]

    over = max_distance + 1
    if len(str1) - len(str2) > max_distance:
        return over
    if not str2:
        return len(str1)

    width = len(str2)
    previous = [j if j <= max_distance else over for j in range(width + 1)]
    for i in range(1, len(str1) + 1):
        char1 = str1[i - 1]
        low = max(1, i - max_distance)
        high = min(width, i + max_distance)
        current = [over] * (width + 1)
        current[0] = i if i <= max_distance else over
        for j in range(low, high + 1):
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char1 != str2[j - 1]),
                over
            )
        if min(current[low - 1:high + 1]) > max_distance:
            return over
        previous = current

    return min(previous[width], over)


def bag_distance(counts1: Counter, counts2: Counter) -> int:
    """Lower bound of the Levenshtein distance from character multisets."""
    common = sum((counts1 & counts2).values())
    return max(sum(counts1.values()), sum(counts2.values())) - common


def fuzzy_similarity(text1: str, text2: str) -> float:
    """Levenshtein similarity of the normalised texts, in [0, 1]."""
    norm1 = normalize_whitespace(text1)
    norm2 = normalize_whitespace(text2)

    longest = max(len(norm1), len(norm2))
    if longest == 0:
        return 1.0

    return 1.0 - levenshtein_distance(norm1, norm2) / longest


def max_edit_distance(longest: int, threshold: float) -> int:
    """Largest edit distance that still keeps 1 - d / longest at or above threshold."""
    return int(np.floor((1.0 - threshold) * longest + 1e-9))


def is_finite_vector(embedding: Optional[Sequence[float]]) -> bool:
    """True for a non-empty embedding with no NaN or infinite components."""
    if embedding is None or len(embedding) == 0:
        return False
    return bool(np.all(np.isfinite(np.asarray(embedding, dtype=float))))


class SimilarityCalculator:
    """Batch cosine similarity for deduplication and index queries."""

    def __init__(self, similarity_threshold: float = 0.95):
        """Initialize similarity calculator.

        Args:
            similarity_threshold: Threshold at or above which embeddings are considered duplicates
        """
        self.similarity_threshold = similarity_threshold

    def similarity_to_many(self, target_embedding: Sequence[float],
                           candidate_embeddings: List[Sequence[float]]) -> np.ndarray:
        """Cosine similarity of one embedding against many.

        Candidates whose dimension differs from the target, or that hold
        NaN or infinite values, score 0.0. A non-finite target scores 0.0
        against everything.
        """
        if not candidate_embeddings:
            return np.zeros(0)

        target = np.asarray(target_embedding, dtype=float).reshape(1, -1)
        scores = np.zeros(len(candidate_embeddings))
        if not is_finite_vector(target_embedding) or np.linalg.norm(target) == 0:
            return scores

        valid = [i for i, emb in enumerate(candidate_embeddings)
                 if emb is not None and len(emb) == target.shape[1] and is_finite_vector(emb)]
        if valid:
            matrix = np.asarray([candidate_embeddings[i] for i in valid], dtype=float)
            scores[valid] = sk_cosine_similarity(target, matrix)[0]

        return np.clip(scores, -1.0, 1.0)

    def radius_neighbors(self, embeddings: List[Sequence[float]], query_indices: List[int],
                         threshold: Optional[float] = None) -> Dict[int, Dict[int, float]]:
        """Pre-select pairs whose cosine similarity reaches the threshold.

        Uses a brute-force cosine NearestNeighbors radius query, so only the
        pairs inside the radius are materialised.

        Args:
            embeddings: Embeddings of all entries (equal dimension)
            query_indices: Indices of the entries to query for
            threshold: Minimum cosine similarity (uses instance default if None)

        Returns:
            Mapping query index -> {neighbour index: cosine similarity}
        """
        if threshold is None:
            threshold = self.similarity_threshold

        if len(embeddings) < 2 or not query_indices:
            return {}

        start_time = time.time()
        matrix = np.asarray(embeddings, dtype=float)
        norms = np.linalg.norm(matrix, axis=1)

        index = NearestNeighbors(metric='cosine', algorithm='brute')
        index.fit(matrix)

        queries = [i for i in query_indices if norms[i] > 0]
        if not queries:
            return {}

        # Cosine distance = 1 - similarity; a tiny epsilon keeps boundary pairs
        radius = max(0.0, 1.0 - threshold) + 1e-9
        distances, neighbours = index.radius_neighbors(matrix[queries], radius=radius)

        results: Dict[int, Dict[int, float]] = {}
        for query_idx, dists, idxs in zip(queries, distances, neighbours):
            matches = {}
            for dist, idx in zip(dists, idxs):
                idx = int(idx)
                if idx == query_idx or norms[idx] == 0:
                    continue
                # Inside the radius; 1 - dist may round just below the threshold
                matches[idx] = min(1.0, max(-1.0, 1.0 - float(dist)))
            if matches:
                results[query_idx] = matches

        logging.info(f"Radius neighbour pre-selection: {sum(len(m) for m in results.values())} "
                     f"pairs from {len(queries)} queries over {len(embeddings)} embeddings "
                     f"in {time.time() - start_time:.2f}s")
        return results

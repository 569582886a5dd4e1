"""
Knowledge Engine - Deduplication Module

Detects duplicate and near-duplicate knowledge entries across three layers
(exact, semantic, fuzzy) and groups them transitively.

Components:
- deduplicator.py: Three-layer detector, group maintenance and statistics
- similarity.py: Cosine and Levenshtein similarity utilities
- union_find.py: Disjoint-set used to close matched pairs transitively
- merger.py: Representative selection and merge-into-representative
"""

from .deduplicator import DuplicateDetector
from .similarity import SimilarityCalculator, cosine_similarity, fuzzy_similarity, levenshtein_distance
from .union_find import DisjointSet
from .merger import KnowledgeMerger

__all__ = [
    'DuplicateDetector', 'SimilarityCalculator', 'DisjointSet', 'KnowledgeMerger',
    'cosine_similarity', 'fuzzy_similarity', 'levenshtein_distance'
]

"""
Duplicate Detection for Knowledge Entries

Implements the three-layer duplicate detector:
1. Exact: normalized contents are identical
2. Semantic: cosine similarity of embeddings at or above the semantic threshold
3. Fuzzy: Levenshtein similarity inside [fuzzy_threshold, fuzzy_upper_bound)

For each pair the first matching layer wins. Matched pairs are closed
transitively with a disjoint-set, each component becomes one DuplicateGroup
with a deterministic representative, and groups are persisted through the
knowledge store.
"""

import time
import bisect
import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .similarity import (
    SimilarityCalculator, bag_distance, is_finite_vector, levenshtein_distance,
    max_edit_distance, normalize_for_exact, normalize_whitespace
)
from .union_find import DisjointSet
from .merger import KnowledgeMerger
from ..knowledge.exceptions import DeduplicationError, InvalidInputError, KnowledgeNotFoundError
from ..knowledge.models import DetectionMethod, DuplicateGroup, KnowledgeEntry, utc_now

# (method, score) keyed by the sorted id pair
PairMatches = Dict[Tuple[str, str], Tuple[DetectionMethod, float]]


def _pair_key(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a < b else (b, a)


class DuplicateDetector:
    """Three-layer duplicate detection over the knowledge of a project."""

    def __init__(self, store: Any, deduplication_config: Optional[dict] = None):
        """Initialize duplicate detector.

        Args:
            store: KnowledgeStore holding entries and duplicate groups
            deduplication_config: Configuration dict for deduplication settings
        """
        config = deduplication_config or {}
        self.store = store
        self.config = config
        self.enabled = config.get('enabled', True)
        self.semantic_threshold = config.get('semantic_threshold', 0.95)
        self.fuzzy_threshold = config.get('fuzzy_threshold', 0.80)
        self.fuzzy_upper_bound = config.get('fuzzy_upper_bound', 0.95)
        self.fuzzy_same_category_only = config.get('fuzzy_same_category_only', True)

        if not 0.0 <= self.fuzzy_threshold <= 1.0 or not -1.0 <= self.semantic_threshold <= 1.0:
            raise InvalidInputError("deduplication thresholds out of range", {
                'semantic_threshold': self.semantic_threshold,
                'fuzzy_threshold': self.fuzzy_threshold
            })

        self.similarity_calculator = SimilarityCalculator(self.semantic_threshold)
        self.merger = KnowledgeMerger()

        # Statistics tracking
        self.stats = {
            'total_runs': 0,
            'total_groups_created': 0,
            'total_pairs_matched': 0,
            'pairs_by_method': {method.value: 0 for method in DetectionMethod},
            'last_detection': None,
            'processing_time_total': 0.0
        }

        logging.info(f"DuplicateDetector initialized (semantic>={self.semantic_threshold}, "
                     f"fuzzy in [{self.fuzzy_threshold}, {self.fuzzy_upper_bound}))")

    @classmethod
    def from_config(cls, store: Any, deduplication_config: Optional[dict] = None) -> 'DuplicateDetector':
        return cls(store, deduplication_config)

    def detect_duplicates(self, project_id: str, candidate_knowledge_ids: Iterable[str],
                          persist: bool = True) -> List[DuplicateGroup]:
        """Detect duplicate groups involving the candidate entries.

        Candidates are compared against every entry of the project.

        Args:
            project_id: Project whose knowledge is searched
            candidate_knowledge_ids: Newly added or changed entries to check
            persist: Save groups through the store (superseding stale ones)

        Returns:
            New duplicate groups, ordered by representative id
        """
        if not project_id:
            raise InvalidInputError("project_id is required")
        if not self.enabled:
            logging.info("Duplicate detection disabled, skipping")
            return []

        start_time = time.time()
        entries = self._load_entries(project_id)
        candidates = []
        for knowledge_id in dict.fromkeys(candidate_knowledge_ids):
            if knowledge_id in entries:
                candidates.append(knowledge_id)
            else:
                logging.warning(f"Candidate {knowledge_id} not found in project {project_id}, skipping")

        if not candidates or len(entries) < 2:
            return []

        pairs = self.find_pairs(entries, candidates)
        groups = self._build_groups(project_id, entries, pairs)

        if persist:
            try:
                for group in groups:
                    self.store.save_duplicate_group(group)
            except KnowledgeNotFoundError:
                raise
            except Exception as e:
                raise DeduplicationError(f"Failed to persist duplicate groups: {e}",
                                         {'project_id': project_id}) from e

        processing_time = time.time() - start_time
        self.stats['total_runs'] += 1
        self.stats['total_groups_created'] += len(groups)
        self.stats['total_pairs_matched'] += len(pairs)
        for method, _ in pairs.values():
            self.stats['pairs_by_method'][method.value] += 1
        self.stats['last_detection'] = utc_now().isoformat()
        self.stats['processing_time_total'] += processing_time

        logging.info(f"Detected {len(groups)} duplicate groups from {len(pairs)} pairs "
                     f"({len(candidates)} candidates, {len(entries)} entries) "
                     f"in {processing_time:.2f}s")
        return groups

    def _load_entries(self, project_id: str) -> Dict[str, KnowledgeEntry]:
        entries = {}
        for entry in self.store.list_entries(project_id):
            if not isinstance(entry.content, str) or not entry.content.strip():
                logging.warning(f"Skipping malformed knowledge entry {entry.id}: empty content")
                continue
            entries[entry.id] = entry
        return entries

    def find_pairs(self, entries: Dict[str, KnowledgeEntry], candidates: List[str]) -> PairMatches:
        """Match candidate entries against all entries, first matching layer wins.

        Args:
            entries: All valid entries of the project by id
            candidates: Ids of entries to check

        Returns:
            Mapping sorted id pair -> (detection method, score)
        """
        pairs: PairMatches = {}
        self._exact_pairs(entries, candidates, pairs)
        self._semantic_pairs(entries, candidates, pairs)
        self._fuzzy_pairs(entries, candidates, pairs)
        return pairs

    def _exact_pairs(self, entries: Dict[str, KnowledgeEntry], candidates: List[str],
                     pairs: PairMatches) -> None:
        buckets: Dict[str, List[str]] = {}
        for knowledge_id, entry in entries.items():
            buckets.setdefault(normalize_for_exact(entry.content), []).append(knowledge_id)

        for candidate in candidates:
            for other in buckets[normalize_for_exact(entries[candidate].content)]:
                if other != candidate:
                    pairs[_pair_key(candidate, other)] = (DetectionMethod.EXACT, 1.0)

    def _semantic_pairs(self, entries: Dict[str, KnowledgeEntry], candidates: List[str],
                        pairs: PairMatches) -> None:
        with_embeddings = [e for e in entries.values() if e.has_embedding]
        if len(with_embeddings) < 2:
            return

        # Entries with a foreign dimension or non-finite values are skipped
        dimension, _ = Counter(len(e.embedding) for e in with_embeddings).most_common(1)[0]
        usable = []
        for entry in with_embeddings:
            if len(entry.embedding) != dimension:
                logging.warning(f"Skipping semantic layer for {entry.id}: embedding dimension "
                                f"{len(entry.embedding)} != {dimension}")
            elif not is_finite_vector(entry.embedding):
                logging.warning(f"Skipping semantic layer for {entry.id}: non-finite embedding values")
            else:
                usable.append(entry)

        positions = {entry.id: i for i, entry in enumerate(usable)}
        query_indices = [positions[c] for c in candidates if c in positions]
        neighbours = self.similarity_calculator.radius_neighbors(
            [entry.embedding for entry in usable], query_indices, self.semantic_threshold
        )

        for query_index, matches in neighbours.items():
            candidate = usable[query_index].id
            for other_index, score in matches.items():
                key = _pair_key(candidate, usable[other_index].id)
                if key not in pairs:
                    pairs[key] = (DetectionMethod.SEMANTIC, score)

    def _fuzzy_pairs(self, entries: Dict[str, KnowledgeEntry], candidates: List[str],
                     pairs: PairMatches) -> None:
        threshold = self.fuzzy_threshold
        if threshold <= 0.0:
            threshold = 1e-9

        normalized = {i: normalize_whitespace(e.content) for i, e in entries.items()}
        char_counts: Dict[str, Counter] = {}

        # Entries sorted by normalized length for the length-ratio window
        by_length = sorted(entries, key=lambda i: (len(normalized[i]), i))
        lengths = [len(normalized[i]) for i in by_length]

        for candidate in candidates:
            text = normalized[candidate]
            length = len(text)
            # similarity <= shorter / longer, so other lengths outside this window cannot match
            low = bisect.bisect_left(lengths, length * threshold - 1e-9)
            high = bisect.bisect_right(lengths, length / threshold + 1e-9)

            for other in by_length[low:high]:
                if other == candidate:
                    continue
                key = _pair_key(candidate, other)
                if key in pairs:
                    continue
                if (self.fuzzy_same_category_only and
                        entries[other].category != entries[candidate].category):
                    continue

                score = self._bounded_fuzzy(text, normalized[other], char_counts, candidate, other)
                if score is None:
                    continue
                if self.fuzzy_upper_bound is not None and score >= self.fuzzy_upper_bound:
                    continue
                pairs[key] = (DetectionMethod.FUZZY, score)

    def _bounded_fuzzy(self, text1: str, text2: str, char_counts: Dict[str, Counter],
                       id1: str, id2: str) -> Optional[float]:
        longest = max(len(text1), len(text2))
        if longest == 0:
            return 1.0

        max_distance = max_edit_distance(longest, self.fuzzy_threshold)
        if id1 not in char_counts:
            char_counts[id1] = Counter(text1)
        if id2 not in char_counts:
            char_counts[id2] = Counter(text2)
        if bag_distance(char_counts[id1], char_counts[id2]) > max_distance:
            return None

        distance = levenshtein_distance(text1, text2, max_distance=max_distance)
        if distance > max_distance:
            return None
        return 1.0 - distance / longest

    def _build_groups(self, project_id: str, entries: Dict[str, KnowledgeEntry],
                      pairs: PairMatches) -> List[DuplicateGroup]:
        if not pairs:
            return []

        matched: Set[str] = {knowledge_id for key in pairs for knowledge_id in key}
        all_pairs: PairMatches = dict(pairs)

        disjoint = DisjointSet()
        for a, b in pairs:
            disjoint.union(a, b)

        # Fold in active groups touching the matched entries so the new group replaces them
        for group in self.store.active_groups(project_id):
            if not group.member_ids & matched:
                continue
            representative = group.representative_knowledge_id
            for member in group.duplicate_knowledge_ids:
                if member not in entries or representative not in entries:
                    continue
                disjoint.union(representative, member)
                key = _pair_key(representative, member)
                if key not in all_pairs:
                    all_pairs[key] = (group.detection_method, float(group.similarity_scores[member]))

        groups = []
        for component in disjoint.groups(min_size=2):
            members = [entries[i] for i in component]
            representative = self.merger.choose_representative(members)
            component_pairs = {key: value for key, value in all_pairs.items() if key[0] in component}

            scores = {}
            for member in component:
                if member == representative.id:
                    continue
                direct = component_pairs.get(_pair_key(member, representative.id))
                if direct is not None:
                    scores[member] = direct[1]
                else:
                    scores[member] = max(score for key, (_, score) in component_pairs.items()
                                         if member in key)

            groups.append(DuplicateGroup(
                project_id=project_id,
                representative_knowledge_id=representative.id,
                duplicate_knowledge_ids=frozenset(component - {representative.id}),
                similarity_scores=scores,
                detection_method=DetectionMethod.strongest(m for m, _ in component_pairs.values())
            ))

        return sorted(groups, key=lambda g: g.representative_knowledge_id)

    def remove_from_group(self, knowledge_id: str) -> Optional[DuplicateGroup]:
        """Take an entry out of its duplicate group.

        The old group is superseded. When two or more members remain, a new
        group with a re-chosen representative replaces it.

        Returns:
            The replacement group, or None when the group dissolved
        """
        entry = self.store.get_entry(knowledge_id)
        if entry is None:
            raise KnowledgeNotFoundError(knowledge_id)
        if entry.duplicate_group_id is None:
            raise InvalidInputError(f"Knowledge entry {knowledge_id} is not in a duplicate group",
                                    {'knowledge_id': knowledge_id})

        group = self.store.get_group(entry.duplicate_group_id)
        if group is None or not group.is_active:
            raise KnowledgeNotFoundError(entry.duplicate_group_id, 'Duplicate group')

        remaining = group.member_ids - {knowledge_id}
        remaining_entries = list(self.store.get_entries(sorted(remaining)).values())
        if len(remaining_entries) < 2:
            self.store.supersede_group(group.id)
            logging.info(f"Removed {knowledge_id} from group {group.id}; group dissolved")
            return None

        representative = self.merger.choose_representative(remaining_entries)
        duplicates = {e.id for e in remaining_entries} - {representative.id}
        scores = {
            member: group.similarity_scores.get(member, group.similarity_scores.get(representative.id, 0.0))
            for member in duplicates
        }
        replacement = DuplicateGroup(
            project_id=group.project_id,
            representative_knowledge_id=representative.id,
            duplicate_knowledge_ids=frozenset(duplicates),
            similarity_scores=scores,
            detection_method=group.detection_method
        )
        self.store.save_duplicate_group(replacement)
        logging.info(f"Removed {knowledge_id} from group {group.id}; replaced by {replacement.id}")
        return replacement

    def merge_group(self, group_id: str) -> KnowledgeEntry:
        """Fold every duplicate of a group into its representative and delete them.

        Returns:
            The updated representative entry
        """
        group = self.store.get_group(group_id)
        if group is None or not group.is_active:
            raise KnowledgeNotFoundError(group_id, 'Duplicate group')

        members = self.store.get_entries(sorted(group.member_ids))
        representative = members.get(group.representative_knowledge_id)
        if representative is None:
            raise KnowledgeNotFoundError(group.representative_knowledge_id)
        duplicates = [members[i] for i in sorted(group.duplicate_knowledge_ids) if i in members]

        merged = self.merger.merge_entries(representative, duplicates, group.similarity_scores)
        return self.store.apply_merge(group.id, merged, [d.id for d in duplicates])

    def get_duplicate_stats(self, project_id: str) -> Dict[str, Any]:
        """Duplicate statistics for a project."""
        entries = self.store.list_entries(project_id)
        active = self.store.list_groups(project_id)
        all_groups = self.store.list_groups(project_id, include_superseded=True)

        scores = [s for g in active for s in g.similarity_scores.values()]
        duplicate_count = sum(len(g.duplicate_knowledge_ids) for g in active)
        by_method = {method.value: 0 for method in DetectionMethod}
        for group in active:
            by_method[group.detection_method.value] += 1

        return {
            'project_id': project_id,
            'total_entries': len(entries),
            'active_groups': len(active),
            'superseded_groups': len(all_groups) - len(active),
            'duplicate_entries': duplicate_count,
            'duplication_ratio': duplicate_count / len(entries) if entries else 0.0,
            'groups_by_method': by_method,
            'average_similarity': sum(scores) / len(scores) if scores else 0.0,
            'enabled': self.enabled,
            'thresholds': {
                'semantic': self.semantic_threshold,
                'fuzzy': self.fuzzy_threshold,
                'fuzzy_upper_bound': self.fuzzy_upper_bound
            },
            'detector_stats': dict(self.stats)
        }

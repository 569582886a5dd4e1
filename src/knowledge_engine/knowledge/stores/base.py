"""
Knowledge store contract.

Stores persist knowledge entries and duplicate groups per project. Group
writes are atomic with marking the member entries and superseding any stale
active group that shares a member.
"""

from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from ...deduplication.similarity import SimilarityCalculator, is_finite_vector
from ..exceptions import InvalidInputError, KnowledgeNotFoundError
from ..models import DuplicateGroup, KnowledgeCategory, KnowledgeEntry


def dimension_mismatch(dimension: int, expected: int) -> InvalidInputError:
    return InvalidInputError(
        f"Query embedding dimension {dimension} != index dimension {expected}",
        {'dimension': dimension, 'expected': expected}
    )


def ranking_key(entry: KnowledgeEntry, score: float) -> Tuple[float, float, str]:
    """Best score first, then most recently updated, then id."""
    return (-score, -entry.updated_at.timestamp(), entry.id)


class KnowledgeStore(ABC):
    """Persistence layer for knowledge entries and duplicate groups."""

    @abstractmethod
    def add_entries(self, entries: Sequence[KnowledgeEntry]) -> List[str]:
        """Insert or replace entries, returning their ids in input order."""

    @abstractmethod
    def get_entries(self, ids: Sequence[str]) -> Dict[str, KnowledgeEntry]:
        """Entries by id; unknown ids are omitted."""

    def get_entry(self, knowledge_id: str) -> Optional[KnowledgeEntry]:
        return self.get_entries([knowledge_id]).get(knowledge_id)

    @abstractmethod
    def list_entries(self, project_id: str,
                     category: Optional[KnowledgeCategory] = None) -> List[KnowledgeEntry]:
        """All entries of a project, optionally restricted to one category."""

    def nearest(self, project_id: str, embedding: Sequence[float], k: int,
                category: Optional[KnowledgeCategory] = None) -> List[Tuple[KnowledgeEntry, float]]:
        """Up to ``k`` entries of the project ranked by cosine similarity.

        The default implementation scores every entry of the project; stores
        with a native vector index override it. Entries whose dimension differs
        from the project's dominant one, or that hold NaN or infinite values,
        are left out.

        Raises:
            InvalidInputError: If the query dimension differs from the project's
        """
        entries = [e for e in self.list_entries(project_id, category) if e.has_embedding]
        if not entries:
            return []

        dimension, _ = Counter(len(e.embedding) for e in entries).most_common(1)[0]
        if len(embedding) != dimension:
            raise dimension_mismatch(len(embedding), dimension)
        entries = [e for e in entries if len(e.embedding) == dimension and is_finite_vector(e.embedding)]
        if not entries:
            return []

        calculator = SimilarityCalculator()
        scores = calculator.similarity_to_many(embedding, [e.embedding for e in entries])
        ranked = sorted(((entry, float(score)) for entry, score in zip(entries, scores)),
                        key=lambda pair: ranking_key(*pair))
        return ranked[:k]

    @abstractmethod
    def update_entry(self, entry: KnowledgeEntry) -> None:
        """Replace an existing entry; raises KnowledgeNotFoundError if absent."""

    @abstractmethod
    def delete_entries(self, ids: Sequence[str]) -> int:
        """Delete entries, returning how many existed."""

    @abstractmethod
    def save_duplicate_group(self, group: DuplicateGroup) -> DuplicateGroup:
        """Persist a new group, mark its members and supersede stale groups sharing a member."""

    @abstractmethod
    def supersede_group(self, group_id: str, superseded_by: Optional[str] = None) -> DuplicateGroup:
        """Mark a group superseded and clear the group markers on its members."""

    @abstractmethod
    def apply_merge(self, group_id: str, merged: KnowledgeEntry,
                    duplicate_ids: Sequence[str]) -> KnowledgeEntry:
        """Store a merged representative, delete its duplicates and supersede the group.

        Everything is validated before the first write: the group must be
        active, ``merged`` must be its representative and every id in
        ``duplicate_ids`` must be one of its duplicates.

        Returns:
            The stored representative, no longer marked as a group member
        """

    @abstractmethod
    def get_group(self, group_id: str) -> Optional[DuplicateGroup]:
        """Group by id, active or superseded."""

    @abstractmethod
    def list_groups(self, project_id: str, include_superseded: bool = False) -> List[DuplicateGroup]:
        """Groups of a project, active only unless include_superseded."""

    def active_groups(self, project_id: str) -> List[DuplicateGroup]:
        return self.list_groups(project_id, include_superseded=False)

    def close(self) -> None:
        """Release resources held by the store."""

    @staticmethod
    def _check_merge(group: Optional[DuplicateGroup], group_id: str, merged: KnowledgeEntry,
                     duplicate_ids: Sequence[str]) -> DuplicateGroup:
        if group is None or not group.is_active:
            raise KnowledgeNotFoundError(group_id, 'Duplicate group')
        if merged.id != group.representative_knowledge_id:
            raise InvalidInputError(f"Entry {merged.id} is not the representative of group {group_id}",
                                    {'group_id': group_id, 'knowledge_id': merged.id})
        strangers = sorted(set(duplicate_ids) - group.duplicate_knowledge_ids)
        if strangers:
            raise InvalidInputError(f"Entry {strangers[0]} is not a duplicate in group {group_id}",
                                    {'group_id': group_id, 'knowledge_id': strangers[0]})
        return group

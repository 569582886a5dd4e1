"""
In-process knowledge store.

Keeps entries and groups in dictionaries guarded by a re-entrant lock, so a
group save, the member marking and the superseding of stale groups happen as
one step for concurrent readers.
"""

import logging
import threading
from typing import Dict, List, Optional, Sequence

from .base import KnowledgeStore
from ..exceptions import InvalidInputError, KnowledgeNotFoundError
from ..models import DuplicateGroup, KnowledgeCategory, KnowledgeEntry, utc_now


class InMemoryKnowledgeStore(KnowledgeStore):
    """Dictionary-backed store used by default and in tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self._entries: Dict[str, KnowledgeEntry] = {}
        self._groups: Dict[str, DuplicateGroup] = {}

    def add_entries(self, entries: Sequence[KnowledgeEntry]) -> List[str]:
        with self._lock:
            for entry in entries:
                self._entries[entry.id] = entry.copy()
            return [entry.id for entry in entries]

    def get_entries(self, ids: Sequence[str]) -> Dict[str, KnowledgeEntry]:
        with self._lock:
            return {i: self._entries[i].copy() for i in ids if i in self._entries}

    def list_entries(self, project_id: str,
                     category: Optional[KnowledgeCategory] = None) -> List[KnowledgeEntry]:
        with self._lock:
            return [
                entry.copy() for entry in self._entries.values()
                if entry.project_id == project_id and (category is None or entry.category == category)
            ]

    def update_entry(self, entry: KnowledgeEntry) -> None:
        with self._lock:
            if entry.id not in self._entries:
                raise KnowledgeNotFoundError(entry.id)
            self._entries[entry.id] = entry.copy()

    def delete_entries(self, ids: Sequence[str]) -> int:
        with self._lock:
            deleted = 0
            for knowledge_id in ids:
                if self._entries.pop(knowledge_id, None) is not None:
                    deleted += 1
            return deleted

    def save_duplicate_group(self, group: DuplicateGroup) -> DuplicateGroup:
        with self._lock:
            members = group.member_ids
            missing = [i for i in members if i not in self._entries]
            if missing:
                raise KnowledgeNotFoundError(missing[0])
            if any(self._entries[i].project_id != group.project_id for i in members):
                raise InvalidInputError("duplicate group members must belong to the group's project",
                                        {'group_id': group.id})

            stale = [
                g for g in self._groups.values()
                if g.is_active and g.project_id == group.project_id and g.member_ids & members
            ]
            for old in stale:
                self._supersede_locked(old, group.id)

            for knowledge_id in members:
                self._entries[knowledge_id] = self._entries[knowledge_id].copy(
                    duplicate_group_id=group.id,
                    is_representative=knowledge_id == group.representative_knowledge_id
                )
            self._groups[group.id] = group

            if stale:
                logging.info(f"Group {group.id} superseded {len(stale)} stale groups")
            return group

    def supersede_group(self, group_id: str, superseded_by: Optional[str] = None) -> DuplicateGroup:
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                raise KnowledgeNotFoundError(group_id, 'Duplicate group')
            if not group.is_active:
                return group
            return self._supersede_locked(group, superseded_by)

    def apply_merge(self, group_id: str, merged: KnowledgeEntry,
                    duplicate_ids: Sequence[str]) -> KnowledgeEntry:
        with self._lock:
            group = self._check_merge(self._groups.get(group_id), group_id, merged, duplicate_ids)
            if merged.id not in self._entries:
                raise KnowledgeNotFoundError(merged.id)

            self._entries[merged.id] = merged.copy()
            for knowledge_id in duplicate_ids:
                self._entries.pop(knowledge_id, None)
            self._supersede_locked(group, None)
            return self._entries[merged.id].copy()

    def _supersede_locked(self, group: DuplicateGroup, superseded_by: Optional[str]) -> DuplicateGroup:
        superseded = group.supersede(superseded_by)
        self._groups[group.id] = superseded
        for knowledge_id in group.member_ids:
            entry = self._entries.get(knowledge_id)
            if entry is not None and entry.duplicate_group_id == group.id:
                self._entries[knowledge_id] = entry.copy(duplicate_group_id=None,
                                                         is_representative=False,
                                                         updated_at=utc_now())
        return superseded

    def get_group(self, group_id: str) -> Optional[DuplicateGroup]:
        with self._lock:
            return self._groups.get(group_id)

    def list_groups(self, project_id: str, include_superseded: bool = False) -> List[DuplicateGroup]:
        with self._lock:
            return sorted(
                (g for g in self._groups.values()
                 if g.project_id == project_id and (include_superseded or g.is_active)),
                key=lambda g: g.created_at
            )

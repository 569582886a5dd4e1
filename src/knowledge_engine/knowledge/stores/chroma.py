"""
ChromaDB-backed knowledge store.

Handles persistence operations including:
- Knowledge entries in a cosine-space collection with project/category metadata
- Duplicate groups in a separate metadata-only collection
- Metadata flattening for ChromaDB compatibility
- Native nearest-neighbour queries filtered by project and category
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

import chromadb
from chromadb.errors import ChromaError

from .base import KnowledgeStore, dimension_mismatch
from ..exceptions import InvalidInputError, KnowledgeNotFoundError, StorageError
from ..models import (
    DuplicateGroup, KnowledgeCategory, KnowledgeEntry, _parse_datetime, utc_now
)

_ENTRY_INCLUDE = ["embeddings", "documents", "metadatas"]
_GROUP_PLACEHOLDER_EMBEDDING = [0.0]


class ChromaKnowledgeStore(KnowledgeStore):
    """Knowledge store on a ChromaDB client (persistent or ephemeral)."""

    def __init__(self, client: Any = None, persist_directory: Optional[str] = None,
                 knowledge_collection: str = 'knowledge_entries',
                 group_collection: str = 'duplicate_groups'):
        """Initialize the store.

        Args:
            client: Existing ChromaDB client; created from persist_directory when omitted
            persist_directory: Directory for a persistent client, None for an in-memory client
            knowledge_collection: Collection name for knowledge entries
            group_collection: Collection name for duplicate groups
        """
        if client is None:
            client = (chromadb.PersistentClient(path=persist_directory) if persist_directory
                      else chromadb.EphemeralClient())
        self.client = client
        self._lock = threading.RLock()

        try:
            self.entries = client.get_or_create_collection(
                name=knowledge_collection,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None
            )
            self.groups = client.get_or_create_collection(
                name=group_collection,
                embedding_function=None
            )
        except ChromaError as e:
            raise StorageError(f"Failed to open ChromaDB collections: {e}") from e

        logging.info(f"ChromaKnowledgeStore ready (collections '{knowledge_collection}', "
                     f"'{group_collection}', persist_directory={persist_directory})")

    @classmethod
    def from_config(cls, database_config: Dict[str, Any]) -> 'ChromaKnowledgeStore':
        return cls(
            persist_directory=database_config.get('persist_directory'),
            knowledge_collection=database_config.get('knowledge_collection', 'knowledge_entries'),
            group_collection=database_config.get('group_collection', 'duplicate_groups')
        )

    # Entries

    def add_entries(self, entries: Sequence[KnowledgeEntry]) -> List[str]:
        if not entries:
            return []
        for entry in entries:
            if not entry.has_embedding:
                raise InvalidInputError(f"Knowledge entry {entry.id} has no embedding",
                                        {'knowledge_id': entry.id})
        with self._lock:
            try:
                self.entries.upsert(
                    ids=[e.id for e in entries],
                    embeddings=[[float(x) for x in e.embedding] for e in entries],
                    documents=[e.content for e in entries],
                    metadatas=[self._entry_metadata(e) for e in entries]
                )
            except ChromaError as e:
                raise StorageError(f"Failed to store {len(entries)} knowledge entries: {e}") from e
        return [e.id for e in entries]

    def get_entries(self, ids: Sequence[str]) -> Dict[str, KnowledgeEntry]:
        if not ids:
            return {}
        with self._lock:
            result = self._get(self.entries, ids=list(ids), include=_ENTRY_INCLUDE)
        return {entry.id: entry for entry in self._entries_from_result(result)}

    def list_entries(self, project_id: str,
                     category: Optional[KnowledgeCategory] = None) -> List[KnowledgeEntry]:
        with self._lock:
            result = self._get(self.entries, where=self._where(project_id, category),
                               include=_ENTRY_INCLUDE)
        return self._entries_from_result(result)

    def nearest(self, project_id: str, embedding: Sequence[float], k: int,
                category: Optional[KnowledgeCategory] = None) -> List[Tuple[KnowledgeEntry, float]]:
        where = self._where(project_id, category)
        with self._lock:
            sample = self._get(self.entries, where=where, limit=1, include=["embeddings"])
            if not sample['ids']:
                return []
            dimension = len(sample['embeddings'][0])
            if len(embedding) != dimension:
                raise dimension_mismatch(len(embedding), dimension)
            try:
                result = self.entries.query(
                    query_embeddings=[[float(x) for x in embedding]],
                    n_results=k,
                    where=where,
                    include=_ENTRY_INCLUDE + ["distances"]
                )
            except ChromaError as e:
                raise StorageError(f"Nearest-neighbour query failed: {e}") from e

        ids = result['ids'][0] if result['ids'] else []
        if not ids:
            return []

        flat = {
            'ids': ids,
            'embeddings': result['embeddings'][0],
            'documents': result['documents'][0],
            'metadatas': result['metadatas'][0]
        }
        distances = result['distances'][0]
        return [
            (entry, max(-1.0, min(1.0, 1.0 - float(distance))))
            for entry, distance in zip(self._entries_from_result(flat), distances)
        ]

    def update_entry(self, entry: KnowledgeEntry) -> None:
        with self._lock:
            if not self.get_entries([entry.id]):
                raise KnowledgeNotFoundError(entry.id)
            self.add_entries([entry])

    def delete_entries(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        with self._lock:
            existing = self._get(self.entries, ids=list(ids), include=["metadatas"])["ids"]
            if existing:
                try:
                    self.entries.delete(ids=list(existing))
                except ChromaError as e:
                    raise StorageError(f"Failed to delete {len(existing)} knowledge entries: {e}") from e
            return len(existing)

    # Duplicate groups

    def save_duplicate_group(self, group: DuplicateGroup) -> DuplicateGroup:
        with self._lock:
            members = self.get_entries(sorted(group.member_ids))
            missing = group.member_ids - set(members)
            if missing:
                raise KnowledgeNotFoundError(sorted(missing)[0])
            if any(e.project_id != group.project_id for e in members.values()):
                raise InvalidInputError("duplicate group members must belong to the group's project",
                                        {'group_id': group.id})

            stale = [g for g in self.active_groups(group.project_id) if g.member_ids & group.member_ids]
            for old in stale:
                self._supersede_locked(old, group.id)

            # Re-read after superseding cleared markers on stale members
            members = self.get_entries(sorted(group.member_ids))
            marked = [
                entry.copy(duplicate_group_id=group.id,
                           is_representative=entry.id == group.representative_knowledge_id)
                for entry in members.values()
            ]
            self.add_entries(marked)
            self._put_group(group)

            if stale:
                logging.info(f"Group {group.id} superseded {len(stale)} stale groups")
            return group

    def supersede_group(self, group_id: str, superseded_by: Optional[str] = None) -> DuplicateGroup:
        with self._lock:
            group = self.get_group(group_id)
            if group is None:
                raise KnowledgeNotFoundError(group_id, 'Duplicate group')
            if not group.is_active:
                return group
            return self._supersede_locked(group, superseded_by)

    def apply_merge(self, group_id: str, merged: KnowledgeEntry,
                    duplicate_ids: Sequence[str]) -> KnowledgeEntry:
        with self._lock:
            group = self._check_merge(self.get_group(group_id), group_id, merged, duplicate_ids)
            if not self.get_entries([merged.id]):
                raise KnowledgeNotFoundError(merged.id)

            # Group stays active until the last write, so a failed step can be retried
            self.add_entries([merged])
            self.delete_entries(list(duplicate_ids))
            self._supersede_locked(group, None)
            return self.get_entries([merged.id])[merged.id]

    def _supersede_locked(self, group: DuplicateGroup, superseded_by: Optional[str]) -> DuplicateGroup:
        superseded = group.supersede(superseded_by)
        self._put_group(superseded)
        cleared = [
            entry.copy(duplicate_group_id=None, is_representative=False, updated_at=utc_now())
            for entry in self.get_entries(sorted(group.member_ids)).values()
            if entry.duplicate_group_id == group.id
        ]
        if cleared:
            self.add_entries(cleared)
        return superseded

    def get_group(self, group_id: str) -> Optional[DuplicateGroup]:
        with self._lock:
            result = self._get(self.groups, ids=[group_id], include=["metadatas"])
        groups = self._groups_from_result(result)
        return groups[0] if groups else None

    def list_groups(self, project_id: str, include_superseded: bool = False) -> List[DuplicateGroup]:
        where: Dict[str, Any] = {"project_id": project_id}
        if not include_superseded:
            where = {"$and": [{"project_id": project_id}, {"active": True}]}
        with self._lock:
            result = self._get(self.groups, where=where, include=["metadatas"])
        return sorted(self._groups_from_result(result), key=lambda g: g.created_at)

    def _put_group(self, group: DuplicateGroup) -> None:
        try:
            self.groups.upsert(
                ids=[group.id],
                embeddings=[_GROUP_PLACEHOLDER_EMBEDDING],
                metadatas=[self._group_metadata(group)]
            )
        except ChromaError as e:
            raise StorageError(f"Failed to store duplicate group {group.id}: {e}") from e

    # Helpers

    def _get(self, collection, **kwargs) -> Dict[str, Any]:
        try:
            return collection.get(**kwargs)
        except ChromaError as e:
            raise StorageError(f"ChromaDB read failed: {e}") from e

    @staticmethod
    def _where(project_id: str, category: Optional[KnowledgeCategory]) -> Dict[str, Any]:
        if category is None:
            return {"project_id": project_id}
        return {"$and": [{"project_id": project_id},
                         {"category": KnowledgeCategory(category).value}]}

    @staticmethod
    def _entry_metadata(entry: KnowledgeEntry) -> Dict[str, Any]:
        """Flatten an entry into ChromaDB-compatible scalar metadata."""
        data = entry.to_dict()
        data.pop('id')
        data.pop('content')
        data['metadata'] = json.dumps(data['metadata'])
        return {key: ('' if value is None else value) for key, value in data.items()}

    @staticmethod
    def _entries_from_result(result: Dict[str, Any]) -> List[KnowledgeEntry]:
        ids = result.get('ids') or []
        embeddings = result.get('embeddings')
        documents = result.get('documents')
        metadatas = result.get('metadatas')

        entries = []
        for i, knowledge_id in enumerate(ids):
            meta = dict(metadatas[i] or {})
            data = {key: (None if value == '' else value) for key, value in meta.items()}
            data['id'] = knowledge_id
            data['content'] = documents[i] if documents is not None else ''
            data['metadata'] = json.loads(meta.get('metadata') or '{}')
            data['source_id'] = meta.get('source_id', '')
            if embeddings is not None and embeddings[i] is not None:
                data['embedding'] = [float(x) for x in embeddings[i]]
            entries.append(KnowledgeEntry.from_dict(data))
        return entries

    @staticmethod
    def _group_metadata(group: DuplicateGroup) -> Dict[str, Any]:
        data = group.to_dict()
        data.pop('id')
        data['duplicate_knowledge_ids'] = json.dumps(data['duplicate_knowledge_ids'])
        data['similarity_scores'] = json.dumps(data['similarity_scores'])
        data['active'] = group.is_active
        return {key: ('' if value is None else value) for key, value in data.items()}

    @staticmethod
    def _groups_from_result(result: Dict[str, Any]) -> List[DuplicateGroup]:
        groups = []
        for group_id, meta in zip(result.get('ids') or [], result.get('metadatas') or []):
            groups.append(DuplicateGroup(
                id=group_id,
                project_id=meta['project_id'],
                representative_knowledge_id=meta['representative_knowledge_id'],
                duplicate_knowledge_ids=frozenset(json.loads(meta['duplicate_knowledge_ids'])),
                similarity_scores=json.loads(meta['similarity_scores']),
                detection_method=meta['detection_method'],
                created_at=_parse_datetime(meta.get('created_at')) or utc_now(),
                superseded_at=_parse_datetime(meta.get('superseded_at')),
                superseded_by=meta.get('superseded_by') or None
            ))
        return groups

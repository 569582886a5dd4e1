"""
Knowledge Merger for Deduplication

Selects the representative of a duplicate group and folds duplicate entries
into it while keeping an audit trail in the representative's metadata.
"""

import logging
from typing import Dict, Any, List, Tuple

from ..knowledge.models import KnowledgeEntry, utc_now


def representative_sort_key(entry: KnowledgeEntry) -> Tuple:
    """Ordering key where the smallest key is the best representative.

    Selection criteria:
    1. Higher reliability (primary factor)
    2. Higher usage count (secondary factor)
    3. Earlier creation time (tiebreaker)
    4. Lexicographically smaller id (total order)
    """
    return (-entry.reliability, -entry.usage_count, entry.created_at, entry.id)


class KnowledgeMerger:
    """Handles representative selection and merging of duplicate knowledge."""

    def __init__(self) -> None:
        self.merge_history: List[Dict[str, Any]] = []

    def choose_representative(self, entries: List[KnowledgeEntry]) -> KnowledgeEntry:
        """Choose the entry to keep as representative of a duplicate group.

        Args:
            entries: Group members (at least one)

        Returns:
            The representative entry; deterministic for any member order
        """
        if not entries:
            raise ValueError("cannot choose a representative from an empty group")
        return min(entries, key=representative_sort_key)

    def merge_entries(self, representative: KnowledgeEntry,
                      duplicates: List[KnowledgeEntry],
                      similarity_scores: Dict[str, float] = None) -> KnowledgeEntry:
        """Fold duplicates into the representative.

        Merging strategy:
        - Keep maximum reliability
        - Sum usage counts
        - Keep latest last_used timestamp
        - Bump version and remember the previous one
        - Record merged ids in metadata

        Args:
            representative: Entry that survives the merge
            duplicates: Entries folded into the representative
            similarity_scores: Optional per-duplicate scores for the audit trail

        Returns:
            Updated copy of the representative
        """
        similarity_scores = similarity_scores or {}
        members = [representative] + list(duplicates)
        now = utc_now()

        last_used_values = [e.last_used for e in members if e.last_used is not None]

        metadata = dict(representative.metadata)
        merged_from = list(metadata.get('merged_from', []))
        merged_from.extend(d.id for d in duplicates if d.id not in merged_from)
        metadata.update({
            'merged_from': merged_from,
            'merged_from_count': len(merged_from),
            'merge_timestamp': now.isoformat(),
            'merge_similarity_scores': {
                d.id: similarity_scores[d.id] for d in duplicates if d.id in similarity_scores
            }
        })

        merged = representative.copy(
            reliability=max(e.reliability for e in members),
            usage_count=sum(e.usage_count for e in members),
            last_used=max(last_used_values) if last_used_values else None,
            version=representative.version + 1,
            previous_version=f"{representative.id}@v{representative.version}",
            metadata=metadata,
            updated_at=now
        )

        self.merge_history.append({
            'representative_id': representative.id,
            'merged_ids': [d.id for d in duplicates],
            'timestamp': now.isoformat(),
            'resulting_version': merged.version
        })

        logging.info(f"Merged {len(duplicates)} duplicates into {representative.id} "
                     f"(version {representative.version} -> {merged.version})")
        return merged

    def get_merge_statistics(self) -> Dict[str, Any]:
        """Get statistics about merge operations performed."""
        return {
            'total_merges': len(self.merge_history),
            'total_entries_merged': sum(len(m['merged_ids']) for m in self.merge_history),
            'last_merge': self.merge_history[-1]['timestamp'] if self.merge_history else None
        }

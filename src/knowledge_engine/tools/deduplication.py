"""
Deduplication Tools

Tools for duplicate detection, statistics and duplicate group maintenance.
"""

import logging
from typing import List

from .errors import error_result
from ..knowledge.exceptions import KnowledgeEngineError


async def detect_duplicates_tool(engine, project_id: str, knowledge_ids: List[str] = None) -> dict:
    """Detect duplicate groups among a project's knowledge.

    Args:
        engine: KnowledgeEngine instance
        project_id: Project to check
        knowledge_ids: Candidate entries; the whole project when omitted

    Returns:
        Dictionary with the new duplicate groups
    """
    try:
        groups = await engine.detect_duplicates(project_id, knowledge_ids)
        return {
            "success": True,
            "groups": [g.to_dict() for g in groups],
            "total_groups": len(groups),
            "total_duplicates": sum(len(g.duplicate_knowledge_ids) for g in groups)
        }
    except KnowledgeEngineError as e:
        return error_result(e, "detect_duplicates")


def get_duplicate_stats_tool(engine, project_id: str) -> dict:
    """Get duplicate statistics for a project.

    Args:
        engine: KnowledgeEngine instance
        project_id: Project to report on

    Returns:
        Dictionary with deduplication statistics
    """
    try:
        stats = engine.get_duplicate_stats(project_id)
        stats["success"] = True
        return stats
    except KnowledgeEngineError as e:
        return error_result(e, "get_duplicate_stats")


def remove_from_duplicate_group_tool(engine, knowledge_id: str) -> dict:
    """Take a knowledge entry out of its duplicate group."""
    try:
        replacement = engine.remove_from_duplicate_group(knowledge_id)
        return {
            "success": True,
            "knowledge_id": knowledge_id,
            "group_dissolved": replacement is None,
            "replacement_group": replacement.to_dict() if replacement else None
        }
    except KnowledgeEngineError as e:
        return error_result(e, "remove_from_duplicate_group")


def merge_duplicate_group_tool(engine, group_id: str) -> dict:
    """Merge a duplicate group into its representative, deleting the duplicates."""
    try:
        merged = engine.merge_duplicate_group(group_id)
        logging.info(f"Merged duplicate group {group_id} into {merged.id}")
        return {
            "success": True,
            "group_id": group_id,
            "representative": merged.to_dict(),
            "merged_count": len(merged.metadata.get('merged_from', []))
        }
    except KnowledgeEngineError as e:
        return error_result(e, "merge_duplicate_group")

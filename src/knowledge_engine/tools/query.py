from .errors import error_result
from ..knowledge.exceptions import KnowledgeEngineError


async def search_knowledge_tool(engine, project_id: str, query: str, limit: int = None,
                                threshold: float = None, category: str = None,
                                record_usage: bool = True) -> dict:
    """Search a project's knowledge for entries similar to a text query.

    Args:
        engine: KnowledgeEngine instance
        project_id: Project to search
        query: Natural language query
        limit: Maximum number of results
        threshold: Minimum cosine similarity
        category: Restrict results to one knowledge category
        record_usage: Count the returned entries as used

    Returns:
        Dictionary containing the ranked results
    """
    try:
        results = await engine.search(project_id, query, limit, threshold, category, record_usage)
        return {
            "success": True,
            "results": [
                {
                    "id": entry.id,
                    "content": entry.content,
                    "category": entry.category.value,
                    "similarity": round(similarity, 6),
                    "reliability": entry.reliability,
                    "metadata": entry.metadata
                }
                for entry, similarity in results
            ],
            "total_results": len(results)
        }
    except (KnowledgeEngineError, ValueError) as e:
        return error_result(e, "search_knowledge")

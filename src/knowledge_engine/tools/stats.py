def get_engine_stats_tool(engine) -> dict:
    """Get embedding, deduplication and merge statistics of the running engine.

    Args:
        engine: KnowledgeEngine instance

    Returns:
        Dictionary with engine statistics
    """
    stats = engine.get_stats()
    stats["success"] = True
    return stats

import logging
from functools import partial

from fastapi import FastAPI

from knowledge_engine.config import Config
from knowledge_engine.knowledge.engine import KnowledgeEngine
from knowledge_engine.server import create_app, setup_json_rpc_handler, get_tool_definitions
from knowledge_engine.tools import (
    chunk_text_tool, embed_texts_tool, ingest_document_tool,
    search_knowledge_tool,
    detect_duplicates_tool, get_duplicate_stats_tool,
    remove_from_duplicate_group_tool, merge_duplicate_group_tool,
    get_engine_stats_tool
)


def build_tool_registry(engine: KnowledgeEngine) -> dict:
    """Bind every tool function to the engine."""
    return {
        "chunk_text": partial(chunk_text_tool, engine),
        "embed_texts": partial(embed_texts_tool, engine),
        "ingest_document": partial(ingest_document_tool, engine),
        "search_knowledge": partial(search_knowledge_tool, engine),
        "detect_duplicates": partial(detect_duplicates_tool, engine),
        "get_duplicate_stats": partial(get_duplicate_stats_tool, engine),
        "remove_from_duplicate_group": partial(remove_from_duplicate_group_tool, engine),
        "merge_duplicate_group": partial(merge_duplicate_group_tool, engine),
        "get_engine_stats": partial(get_engine_stats_tool, engine),
    }


def main(config: Config = None, engine: KnowledgeEngine = None) -> FastAPI:
    """Initialize the knowledge engine and build the server application."""
    config = config or Config()
    engine = engine or KnowledgeEngine.from_config(config)

    server_config = config.get_server_config()
    app = create_app(server_config, engine)
    setup_json_rpc_handler(app, build_tool_registry(engine), get_tool_definitions(), server_config)
    app.state.engine = engine

    logging.info("Knowledge engine server initialized successfully")
    return app


_global_app = None


def get_app() -> FastAPI:
    """Get or create the FastAPI app instance."""
    global _global_app
    if _global_app is None:
        _global_app = main()
    return _global_app


if __name__ == "__main__":
    import uvicorn

    config = Config()
    server_config = config.get_server_config()

    uvicorn.run(
        "knowledge_engine.main:get_app",
        factory=True,
        host=server_config.get('host', '127.0.0.1'),
        port=server_config.get('port', 8080)
    )

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from typing import Dict, List, Any
from contextlib import asynccontextmanager
import time
import logging

from .models import JsonRpcRequest
from .handlers import (
    error_response, handle_initialize, handle_tools_list, handle_tools_call,
    handle_unknown_method, handle_server_error
)
from .errors import ErrorCode, create_error_response


def create_app(server_config: dict, engine=None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        server_config: Server configuration dictionary
        engine: KnowledgeEngine closed on shutdown

    Returns:
        Configured FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.info("FastAPI application starting up")
        yield
        if engine is not None:
            logging.info("FastAPI shutdown: closing knowledge engine")
            await engine.aclose()

    app = FastAPI(
        title=server_config.get('title', 'Knowledge Ingestion & Deduplication Engine'),
        version=server_config.get('version', '1.0.0'),
        lifespan=lifespan
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring system status."""
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "service": "Knowledge Engine",
            "version": server_config.get('version', '1.0.0')
        }

    return app


def setup_json_rpc_handler(app: FastAPI, tool_registry: Dict[str, Any], tool_definitions: List[dict],
                           server_config: dict):
    """Setup the JSON-RPC endpoint handler.

    Args:
        app: FastAPI application instance
        tool_registry: Dictionary mapping tool names to functions
        tool_definitions: List of tool definition dictionaries
        server_config: Server configuration dictionary
    """

    @app.post("/", response_class=JSONResponse)
    async def json_rpc_handler(request: Request):
        rpc_id = None
        try:
            try:
                body = await request.json()
            except ValueError as e:
                return error_response(None, create_error_response(
                    ErrorCode.PARSE_ERROR, f"Invalid JSON: {e}"
                ), status_code=400)

            if not isinstance(body, dict):
                return error_response(None, create_error_response(
                    ErrorCode.INVALID_REQUEST, "Request must be a JSON object"
                ), status_code=400)

            # Validate JSON-RPC request structure
            try:
                rpc_request = JsonRpcRequest(**body)
            except ValueError as e:
                return error_response(body.get("id"), create_error_response(
                    ErrorCode.INVALID_REQUEST, f"Invalid request structure: {e}"
                ), status_code=400)

            method = rpc_request.method
            rpc_id = rpc_request.id

            if rpc_id is None:
                # Notifications get no response body
                if method == "notifications/initialized":
                    logging.info("Received 'notifications/initialized' from client")
                return Response(status_code=204)

            if method == "initialize":
                return await handle_initialize(rpc_id, server_config, tool_definitions)
            elif method == "tools/list":
                return await handle_tools_list(rpc_id, tool_definitions)
            elif method == "tools/call":
                return await handle_tools_call(rpc_id, rpc_request.params or {}, tool_registry)
            else:
                return handle_unknown_method(rpc_id, method)

        except Exception as e:
            logging.exception("Unhandled error in JSON-RPC handler")
            return handle_server_error(rpc_id, e)

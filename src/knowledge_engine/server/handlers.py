import asyncio
import logging
from typing import List, Dict, Any, Optional, Union

from fastapi.responses import JSONResponse

from .models import JsonRpcResponse, JsonRpcError
from .errors import ErrorCode, create_error_response, error_code_for

RpcId = Optional[Union[int, str]]
SUPPORTED_METHODS = ["initialize", "tools/list", "tools/call"]


def _result(rpc_id: RpcId, result: Any) -> JSONResponse:
    response = JsonRpcResponse(id=rpc_id, result=result)
    return JSONResponse(content=response.model_dump(), media_type="application/json")


def error_response(rpc_id: RpcId, error: Dict[str, Any], status_code: int = 200) -> JSONResponse:
    response = JsonRpcError(id=rpc_id, error=error)
    return JSONResponse(content=response.model_dump(), status_code=status_code)


async def handle_initialize(rpc_id: RpcId, server_config: dict, tool_definitions: List[dict]) -> JSONResponse:
    """Handle initialize request."""
    return _result(rpc_id, {
        "protocolVersion": server_config.get('protocol_version', '2024-11-05'),
        "capabilities": {
            "tools": {}
        },
        "serverInfo": {
            "name": server_config.get('title', 'Knowledge Ingestion & Deduplication Engine'),
            "version": server_config.get('version', '1.0.0'),
            "serverURL": f"http://{server_config.get('host', '127.0.0.1')}:{server_config.get('port', 8080)}/"
        },
        "tools": tool_definitions
    })


async def handle_tools_list(rpc_id: RpcId, tool_definitions: List[dict]) -> JSONResponse:
    """Handle tools/list request."""
    return _result(rpc_id, {"tools": tool_definitions})


async def handle_tools_call(rpc_id: RpcId, params: dict, tool_registry: Dict[str, Any]) -> JSONResponse:
    """Handle tools/call request with comprehensive error handling."""
    tool_name = params.get("name")
    if not tool_name:
        return error_response(rpc_id, create_error_response(
            ErrorCode.INVALID_PARAMS,
            "Missing required parameter 'name'",
            {"required_params": ["name"]}
        ), status_code=400)

    tool_args = params.get("arguments") or {}
    if not isinstance(tool_args, dict):
        return error_response(rpc_id, create_error_response(
            ErrorCode.INVALID_PARAMS,
            "Tool arguments must be an object",
            {"provided_type": type(tool_args).__name__}
        ), status_code=400)

    tool_func = tool_registry.get(tool_name)
    if not tool_func:
        return error_response(rpc_id, create_error_response(
            ErrorCode.METHOD_NOT_FOUND,
            f"Tool '{tool_name}' not found",
            {"available_tools": sorted(tool_registry.keys()), "requested_tool": tool_name}
        ), status_code=404)

    # Execute tool function with error handling
    try:
        result = tool_func(**tool_args)
        if asyncio.iscoroutine(result):
            result = await result
    except TypeError as e:
        # Parameter validation error
        return error_response(rpc_id, create_error_response(
            ErrorCode.INVALID_PARAMS,
            f"Invalid parameters for tool '{tool_name}': {e}",
            {"tool_name": tool_name, "provided_args": sorted(tool_args.keys())}
        ), status_code=400)
    except Exception as e:
        logging.exception(f"Tool '{tool_name}' raised {type(e).__name__}")
        return error_response(rpc_id, create_error_response(
            ErrorCode.TOOL_EXECUTION_ERROR,
            f"Tool '{tool_name}' execution failed",
            {"tool_name": tool_name, "error_type": type(e).__name__}
        ), status_code=500)

    if not result.get("success", True):
        return error_response(rpc_id, create_error_response(
            error_code_for(result),
            result.get("message", "Tool execution failed"),
            {k: v for k, v in result.items() if k not in ("success", "message")},
            log_error=False
        ))

    payload = dict(result)
    payload.pop("success", None)
    return _result(rpc_id, payload)


def handle_unknown_method(rpc_id: RpcId, method: str) -> JSONResponse:
    """Handle unknown method requests."""
    return error_response(rpc_id, create_error_response(
        ErrorCode.METHOD_NOT_FOUND,
        f"Method '{method}' not found",
        {"requested_method": method, "available_methods": SUPPORTED_METHODS}
    ), status_code=404)


def handle_server_error(rpc_id: RpcId, error: Exception) -> JSONResponse:
    """Handle server errors."""
    return error_response(rpc_id, create_error_response(
        ErrorCode.INTERNAL_ERROR,
        "Internal server error",
        {"error_type": type(error).__name__, "server_component": "json_rpc_handler"}
    ), status_code=500)

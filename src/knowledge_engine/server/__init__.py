from .app import create_app, setup_json_rpc_handler
from .models import JsonRpcRequest, JsonRpcResponse, JsonRpcError
from .tool_definitions import get_tool_definitions

__all__ = [
    'create_app', 'setup_json_rpc_handler',
    'JsonRpcRequest', 'JsonRpcResponse', 'JsonRpcError',
    'get_tool_definitions'
]

"""
Standard error handling for the knowledge engine server with JSON-RPC 2.0 compliance.

This module provides standardized error codes and formatting functions
to ensure all errors are consistently formatted according to the JSON-RPC 2.0 specification.
"""

from enum import IntEnum
from typing import Dict, Any, Optional
import logging


class ErrorCode(IntEnum):
    """Standard error codes for server operations.

    Based on JSON-RPC 2.0 specification with engine-specific extensions.
    """
    # JSON-RPC 2.0 standard errors
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Implementation-defined errors (-32000 to -32099)
    TOOL_EXECUTION_ERROR = -32000
    STORAGE_ERROR = -32002
    DEDUPLICATION_ERROR = -32003
    CONFIGURATION_ERROR = -32005
    VALIDATION_ERROR = -32006
    RESOURCE_NOT_FOUND = -32008
    RATE_LIMITED = -32010
    PROVIDER_UNAVAILABLE = -32011


_ERROR_TYPE_CODES = {
    'rate_limit': ErrorCode.RATE_LIMITED,
    'network_error': ErrorCode.PROVIDER_UNAVAILABLE,
    'validation_error': ErrorCode.VALIDATION_ERROR,
}

_EXCEPTION_CODES = {
    'KnowledgeNotFoundError': ErrorCode.RESOURCE_NOT_FOUND,
    'StorageError': ErrorCode.STORAGE_ERROR,
    'DeduplicationError': ErrorCode.DEDUPLICATION_ERROR,
    'ConfigurationError': ErrorCode.CONFIGURATION_ERROR,
}


def error_code_for(tool_result: Dict[str, Any]) -> ErrorCode:
    """Map a failed tool result onto a JSON-RPC error code."""
    exception = tool_result.get('exception')
    if exception in _EXCEPTION_CODES:
        return _EXCEPTION_CODES[exception]
    return _ERROR_TYPE_CODES.get(tool_result.get('error_type'), ErrorCode.TOOL_EXECUTION_ERROR)


def create_error_response(
    code: ErrorCode,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    log_error: bool = True
) -> Dict[str, Any]:
    """Create a JSON-RPC 2.0 error object.

    Args:
        code: Standard error code from ErrorCode
        message: Human-readable error message
        data: Optional additional error data
        log_error: Whether to log the error

    Returns:
        Error object with code, message and optional data
    """
    if log_error:
        logging.error(f"JSON-RPC error {int(code)}: {message}")

    error = {"code": int(code), "message": message}
    if data:
        error["data"] = data
    return error

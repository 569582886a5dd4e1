"""
Error results for tool functions.

Tools return ``{"success": False, ...}`` dictionaries instead of raising, so
provider failures reach clients only as a classified error type and a fixed
message.
"""

import logging
from typing import Any, Dict

from ..knowledge.exceptions import KnowledgeEngineError, classify_error, user_facing_message

# Error types whose raw messages may contain provider output
_OPAQUE_ERROR_TYPES = {'rate_limit', 'network_error'}


def error_result(error: Exception, operation: str) -> Dict[str, Any]:
    """Build the failure dictionary returned by a tool."""
    error_type = classify_error(error)
    if isinstance(error, KnowledgeEngineError) and error_type not in _OPAQUE_ERROR_TYPES:
        message = error.message
    else:
        message = user_facing_message(error_type)

    logging.error(f"{operation} failed: {type(error).__name__} ({error_type})")
    result = {
        "success": False,
        "error_type": error_type,
        "exception": type(error).__name__,
        "message": message
    }
    details = getattr(error, 'details', None)
    if isinstance(error, KnowledgeEngineError) and details:
        result["details"] = {k: v for k, v in details.items() if k != 'cause'}
    return result

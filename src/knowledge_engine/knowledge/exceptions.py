"""
Custom exceptions for the knowledge engine.

These exceptions provide more specific error handling than generic Exception
catches. Provider failures carry an ``error_type`` bucket (rate_limit,
network_error, validation_error) so callers can report ingestion problems
without exposing raw provider responses.
"""

from typing import Optional


class KnowledgeEngineError(Exception):
    """Base exception for all knowledge engine errors."""

    error_type = 'unknown_error'
    retryable = False

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EmbeddingError(KnowledgeEngineError):
    """Error raised by the embedding client or provider."""
    pass


class RateLimitedError(EmbeddingError):
    """Provider throttled the request (HTTP 429)."""

    error_type = 'rate_limit'
    retryable = True

    def __init__(self, message: str = "Embedding provider rate limit exceeded",
                 retry_after: Optional[float] = None, details: dict = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class ProviderUnavailableError(EmbeddingError):
    """Network failure, timeout or 5xx response from the provider."""

    error_type = 'network_error'
    retryable = True

    def __init__(self, message: str = "Embedding provider unavailable",
                 status_code: Optional[int] = None, details: dict = None):
        super().__init__(message, details)
        self.status_code = status_code


class InvalidInputError(KnowledgeEngineError):
    """Caller error: empty text, dimension mismatch, bad arguments."""

    error_type = 'validation_error'


class PartialBatchFailureError(EmbeddingError):
    """A sub-batch failed after exhausting retries, so the whole call failed."""

    def __init__(self, batch_index: int, batch_size: int, attempts: int,
                 cause: Optional[BaseException] = None):
        message = (f"Embedding sub-batch {batch_index} ({batch_size} texts) failed "
                   f"after {attempts} attempts")
        super().__init__(message, {
            'batch_index': batch_index,
            'batch_size': batch_size,
            'attempts': attempts,
            'cause_type': classify_error(cause) if cause is not None else None
        })
        self.batch_index = batch_index
        self.batch_size = batch_size
        self.attempts = attempts
        self.cause = cause

    @property
    def error_type(self) -> str:
        return classify_error(self.cause) if self.cause is not None else 'unknown_error'


class IngestionError(KnowledgeEngineError):
    """Ingestion of a document failed at a specific chunk."""

    def __init__(self, document_id: str, chunk_index: Optional[int], error_type: str,
                 cause: Optional[BaseException] = None):
        message = f"Ingestion of document '{document_id}' failed"
        if chunk_index is not None:
            message += f" at chunk {chunk_index}"
        message += f": {user_facing_message(error_type)}"
        super().__init__(message, {
            'document_id': document_id,
            'chunk_index': chunk_index,
            'error_type': error_type
        })
        self.document_id = document_id
        self.chunk_index = chunk_index
        self.error_type = error_type
        self.cause = cause


class StorageError(KnowledgeEngineError):
    """Error during storage operations."""
    pass


class KnowledgeNotFoundError(KnowledgeEngineError):
    """Requested knowledge entry or duplicate group was not found."""

    def __init__(self, resource_id: str, resource_type: str = 'Knowledge entry'):
        super().__init__(f"{resource_type} '{resource_id}' not found", {
            'resource_id': resource_id,
            'resource_type': resource_type
        })
        self.resource_id = resource_id


class DeduplicationError(KnowledgeEngineError):
    """Error during deduplication operations."""
    pass


class ConfigurationError(KnowledgeEngineError):
    """Error in system configuration."""
    pass


_USER_MESSAGES = {
    'rate_limit': "The embedding service is busy. Please retry in a moment.",
    'network_error': "The embedding service could not be reached.",
    'validation_error': "The submitted content could not be processed.",
    'unknown_error': "An unexpected error occurred while processing knowledge.",
}


def classify_error(error: Optional[BaseException]) -> str:
    """Map an exception onto the rate_limit / network_error / validation_error buckets."""
    if error is None:
        return 'unknown_error'
    if isinstance(error, PartialBatchFailureError):
        return error.error_type
    if isinstance(error, KnowledgeEngineError):
        return error.error_type
    if isinstance(error, (TimeoutError, ConnectionError)):
        return 'network_error'
    if isinstance(error, (ValueError, TypeError)):
        return 'validation_error'
    return 'unknown_error'


def user_facing_message(error) -> str:
    """Fixed user-facing message for an exception or an error_type string."""
    error_type = error if isinstance(error, str) else classify_error(error)
    return _USER_MESSAGES.get(error_type, _USER_MESSAGES['unknown_error'])

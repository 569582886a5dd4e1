"""Knowledge stores: the persistence contract and its implementations."""

from .base import KnowledgeStore
from .memory import InMemoryKnowledgeStore

__all__ = ['KnowledgeStore', 'InMemoryKnowledgeStore', 'create_store']


def create_store(database_config: dict = None) -> KnowledgeStore:
    """Build the store selected by the ``database.backend`` setting."""
    database_config = database_config or {}
    backend = database_config.get('backend', 'memory')
    if backend == 'memory':
        return InMemoryKnowledgeStore()
    if backend == 'chroma':
        from .chroma import ChromaKnowledgeStore
        return ChromaKnowledgeStore.from_config(database_config)

    from ..exceptions import ConfigurationError
    raise ConfigurationError(f"Unknown database backend '{backend}'", {'backend': backend})

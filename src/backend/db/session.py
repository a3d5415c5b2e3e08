"""
Document store lifecycle.

A single store instance is created at startup and shared across requests.
"""

import structlog

from core.config import settings
from db.store import DocumentStore

logger = structlog.get_logger(__name__)

# Global store instance (initialized at startup)
_store: DocumentStore | None = None


async def init_store() -> DocumentStore:
    """Create the configured document store backend."""
    global _store

    if _store is not None:
        return _store

    if settings.STORE_BACKEND == "cosmos":
        from db.cosmos_session import CosmosDocumentStore

        cosmos_store = CosmosDocumentStore()
        await cosmos_store.initialize()
        _store = cosmos_store
    else:
        from db.memory_store import InMemoryDocumentStore

        _store = InMemoryDocumentStore()
        logger.warning("memory_store_in_use", detail="data is lost on restart")

    logger.info("store_initialized", backend=settings.STORE_BACKEND)
    return _store


def get_store() -> DocumentStore:
    """
    FastAPI dependency returning the shared document store.

    Raises:
        RuntimeError: If called before init_store()
    """
    if _store is None:
        raise RuntimeError("Document store not initialized")
    return _store


def set_store(store: DocumentStore | None) -> None:
    """Replace the shared store (tests and embedding)."""
    global _store
    _store = store


async def close_store() -> None:
    """Close the document store. Should be called during application shutdown."""
    global _store

    if _store is not None:
        await _store.close()
        _store = None
        logger.info("store_closed")

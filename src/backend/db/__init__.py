"""Database module."""

from db.session import close_store, get_store, init_store, set_store
from db.store import DocumentStore, StoredDocument, Subscription

__all__ = [
    "DocumentStore",
    "StoredDocument",
    "Subscription",
    "get_store",
    "init_store",
    "close_store",
    "set_store",
]

"""Delivery domain service layer.

This package contains the adapters (object store, search index, transcoder)
and the orchestration that keeps them consistent. The orchestration modules
(``ingestion``, ``container``, ``use_cases``) dispatch Celery tasks and are
imported directly by callers, so that ``delivery.tasks`` can import the
adapters from here without a cycle.
"""

from .authorization import Action, AuthorizationGuard
from .search import SearchFilter, SearchResult, get_search_indexer
from .storage import StorageBackendNotConfigured, get_object_store
from .transcoder import MediaTranscoder

__all__ = [
    "Action",
    "AuthorizationGuard",
    "SearchFilter",
    "SearchResult",
    "get_search_indexer",
    "StorageBackendNotConfigured",
    "get_object_store",
    "MediaTranscoder",
]

"""Snapshot model and the SQLite store that persists the last reconciled snapshot."""
from cache.models import ItemRecord, ListRecord, Snapshot
from cache.sqlite import CacheStats, SqliteCacheStore

__all__ = [
    'ItemRecord',
    'ListRecord',
    'Snapshot',
    'CacheStats',
    'SqliteCacheStore',
]

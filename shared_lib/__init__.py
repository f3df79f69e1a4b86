"""
shared_lib: Clients for the services AnyList Notify talks to.

Public API:
    SnapshotClient                  -- fetches the current list snapshot
    RemotePayload, RemoteList,
    RemoteItem                      -- typed Pydantic payload models
    parse_snapshot                  -- payload dict -> Snapshot
"""

from shared_lib.snapshot_client import (
    SnapshotClient,
    RemotePayload,
    RemoteList,
    RemoteItem,
    parse_snapshot,
)

__all__ = [
    "SnapshotClient",
    "RemotePayload",
    "RemoteList",
    "RemoteItem",
    "parse_snapshot",
]

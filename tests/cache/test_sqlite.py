"""Tests for the SQLite cache store."""

import sqlite3
from unittest.mock import patch

import pytest

from cache.models import ListRecord, Snapshot
from cache.sqlite import CacheStats, SqliteCacheStore
from validation.errors import CacheIOError, MalformedSnapshotError


# =============================================================================
# Initialization
# =============================================================================

def test_creates_database_and_parent_dir(tmp_path):
    path = tmp_path / "nested" / "dir" / "anylist.db"
    SqliteCacheStore(str(path))
    assert path.exists()


def test_schema_matches_persisted_layout(cache_store):
    conn = sqlite3.connect(cache_store.database_path)
    try:
        list_cols = [row[1] for row in conn.execute("PRAGMA table_info(lists)")]
        item_cols = [row[1] for row in conn.execute("PRAGMA table_info(items)")]
        fks = conn.execute("PRAGMA foreign_key_list(items)").fetchall()
    finally:
        conn.close()

    assert list_cols == ["id", "name", "last_updated"]
    assert item_cols == [
        "id", "list_id", "name", "details", "quantity", "category", "is_checked", "last_seen",
    ]
    assert fks[0][2] == "lists"


def test_reopen_existing_database(tmp_path, groceries_snapshot):
    path = str(tmp_path / "anylist.db")
    SqliteCacheStore(path).commit(groceries_snapshot)

    reopened = SqliteCacheStore(path)
    assert reopened.load() == groceries_snapshot


# =============================================================================
# Load / commit
# =============================================================================

def test_load_empty_store(cache_store):
    snap = cache_store.load()
    assert snap.is_empty()


def test_commit_then_load_round_trip(cache_store, groceries_snapshot):
    stats = cache_store.commit(groceries_snapshot)

    assert stats == CacheStats(total_lists=2, total_items=3)
    loaded = cache_store.load()
    assert loaded == groceries_snapshot
    assert loaded.items["b"].is_checked is True
    assert loaded.items["c"].details == "2 inch"


def test_commit_preserves_none_and_empty_details(cache_store, snapshot_factory, item_factory):
    snap = snapshot_factory(item_factory("x", details=None), item_factory("y", details=""))
    cache_store.commit(snap)

    loaded = cache_store.load()
    assert loaded.items["x"].details is None
    assert loaded.items["y"].details == ""


def test_commit_replaces_previous_snapshot(cache_store, groceries_snapshot, snapshot_factory, item_factory):
    cache_store.commit(groceries_snapshot)
    replacement = snapshot_factory(item_factory("z", list_id="list-9", name="Eggs"))

    cache_store.commit(replacement)

    loaded = cache_store.load()
    assert set(loaded.items) == {"z"}
    assert set(loaded.lists) == {"list-9"}


def test_commit_is_idempotent(cache_store, groceries_snapshot):
    cache_store.commit(groceries_snapshot)
    cache_store.commit(groceries_snapshot)

    assert cache_store.load() == groceries_snapshot
    assert cache_store.get_stats() == CacheStats(total_lists=2, total_items=3)


def test_commit_empty_snapshot_clears_store(cache_store, groceries_snapshot):
    cache_store.commit(groceries_snapshot)
    cache_store.commit(Snapshot.empty())
    assert cache_store.load().is_empty()


def test_user_id_is_not_persisted(cache_store, snapshot_factory, item_factory):
    cache_store.commit(snapshot_factory(item_factory("x", user_id="alice")))
    assert cache_store.load().items["x"].user_id is None


# =============================================================================
# Atomicity
# =============================================================================

def test_failed_commit_keeps_previous_snapshot(cache_store, groceries_snapshot, snapshot_factory, item_factory):
    cache_store.commit(groceries_snapshot)
    replacement = snapshot_factory(item_factory("z", name="Eggs"))

    with patch.object(
        SqliteCacheStore, "_write_items", side_effect=sqlite3.OperationalError("disk I/O error")
    ):
        with pytest.raises(CacheIOError, match="Failed to commit snapshot"):
            cache_store.commit(replacement)

    assert cache_store.load() == groceries_snapshot


def test_malformed_snapshot_is_rejected_before_writing(cache_store, groceries_snapshot, item_factory):
    cache_store.commit(groceries_snapshot)
    bad = Snapshot.build([ListRecord("list-1", "Groceries")], [item_factory("x", list_id="ghost")])

    with pytest.raises(MalformedSnapshotError):
        cache_store.commit(bad)

    assert cache_store.load() == groceries_snapshot


def test_load_failure_raises_cache_io_error(cache_store):
    with patch.object(SqliteCacheStore, "_connect", side_effect=sqlite3.OperationalError("unable to open")):
        with pytest.raises(CacheIOError):
            cache_store.load()


def test_unwritable_location_raises_cache_io_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    with pytest.raises(CacheIOError):
        SqliteCacheStore(str(blocker / "sub" / "anylist.db"))


# =============================================================================
# Stats
# =============================================================================

def test_get_stats_empty(cache_store):
    assert cache_store.get_stats() == CacheStats(total_lists=0, total_items=0)


def test_load_orders_items_by_list_then_id(cache_store, item_factory):
    lists = [ListRecord("b-list", "B"), ListRecord("a-list", "A")]
    items = [item_factory("2", list_id="b-list"), item_factory("3", list_id="a-list"), item_factory("1", list_id="b-list")]
    cache_store.commit(Snapshot.build(lists, items))

    assert list(cache_store.load().items) == ["3", "1", "2"]

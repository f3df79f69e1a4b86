"""
Shared pytest fixtures for AnyList Notify tests.

Provides reusable fixtures for:
- Snapshot building (lists, items, whole snapshots)
- SQLite cache store on a temporary path
- Mock collaborators (snapshot source, notification sink)

Collaborators are unittest.mock objects so no bridge or ntfy server is
needed during test execution.
"""

import pytest
from unittest.mock import Mock

from cache.models import ItemRecord, ListRecord, Snapshot
from cache.sqlite import SqliteCacheStore


# =============================================================================
# Snapshot Builders
# =============================================================================

def make_list(list_id: str = "list-1", name: str = "Groceries", last_updated: int = 1700000000) -> ListRecord:
    return ListRecord(id=list_id, name=name, last_updated=last_updated)


def make_item(item_id: str = "item-1", list_id: str = "list-1", **overrides) -> ItemRecord:
    """ItemRecord with sensible defaults; any field can be overridden."""
    values = {
        "name": "Milk",
        "details": None,
        "quantity": None,
        "category": None,
        "is_checked": False,
        "last_seen": 1700000000,
    }
    values.update(overrides)
    return ItemRecord(id=item_id, list_id=list_id, **values)


def make_snapshot(*items: ItemRecord, lists=None) -> Snapshot:
    """Snapshot holding ``items``; lists default to one per distinct list_id."""
    if lists is None:
        seen = []
        for item in items:
            if item.list_id not in seen:
                seen.append(item.list_id)
        lists = [make_list(list_id, name=f"List {list_id}") for list_id in seen]
    return Snapshot.build(lists, items)


@pytest.fixture
def item_factory():
    """
    Factory for ItemRecord.

    Usage:
        def test_x(item_factory):
            milk = item_factory("x", quantity="1 gallon")
    """
    return make_item


@pytest.fixture
def snapshot_factory():
    """
    Factory for Snapshot.

    Usage:
        def test_x(snapshot_factory, item_factory):
            snap = snapshot_factory(item_factory("a"), item_factory("b"))
    """
    return make_snapshot


@pytest.fixture
def groceries_snapshot():
    """Two lists with three items, one of them checked."""
    lists = [make_list("list-1", "Groceries"), make_list("list-2", "Hardware")]
    items = [
        make_item("a", "list-1", name="Milk", quantity="1 gallon", category="Dairy"),
        make_item("b", "list-1", name="Bread", is_checked=True),
        make_item("c", "list-2", name="Nails", details="2 inch"),
    ]
    return Snapshot.build(lists, items)


# =============================================================================
# Cache Store
# =============================================================================

@pytest.fixture
def cache_store(tmp_path):
    """SqliteCacheStore backed by a file under tmp_path."""
    return SqliteCacheStore(str(tmp_path / "anylist.db"))


# =============================================================================
# Collaborator Mocks
# =============================================================================

@pytest.fixture
def mock_source():
    """
    Mock snapshot source.

    Set ``mock_source.fetch_snapshot.return_value`` (or side_effect) per test.
    Returns an empty Snapshot by default.
    """
    source = Mock()
    source.fetch_snapshot.return_value = Snapshot.empty()
    return source


@pytest.fixture
def mock_sink():
    """
    Mock notification sink recording every delivered event.

    Usage:
        events = [c.args[0] for c in mock_sink.deliver.call_args_list]
    """
    sink = Mock()
    sink.deliver.return_value = None
    return sink


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def valid_config_dict():
    """Minimal valid configuration values."""
    return {
        "snapshot_url": "http://bridge:8080/snapshot",
        "ntfy_topic": "family-groceries",
    }


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Isolate configuration loading from the host environment.

    Runs the test from an empty directory (no config.yml or .env) with every
    configuration environment variable removed.
    """
    for name in (
        "SNAPSHOT_URL", "SNAPSHOT_TOKEN", "SNAPSHOT_TIMEOUT", "NTFY_URL", "NTFY_TOPIC",
        "NTFY_TIMEOUT", "NTFY_TOKEN", "NTFY_PRIORITIES", "NTFY_TAGS", "DATABASE_PATH", "POLL_INTERVAL",
        "FILTER_OWN_CHANGES", "OWN_USER_ID", "LOG_LEVEL", "LOG_FORMAT", "ANYLIST_NOTIFY_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch

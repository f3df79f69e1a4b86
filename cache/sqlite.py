"""
SQLite-backed cache of the last reconciled snapshot.

The store holds exactly one snapshot: the most recently committed one. A
commit replaces every list and item row inside a single transaction, so a
crash or error mid-commit leaves the previous snapshot intact.

Table layout (relied on by backup/inspection tooling):
    lists(id, name, last_updated)
    items(id, list_id -> lists.id, name, details, quantity, category,
          is_checked, last_seen)

Example:
    >>> from cache.sqlite import SqliteCacheStore
    >>> store = SqliteCacheStore("/data/anylist.db")
    >>> previous = store.load()
    >>> store.commit(current)
"""

import os
import sqlite3
import threading
from dataclasses import dataclass

from cache.models import ItemRecord, ListRecord, Snapshot
from shared.log import create_logger
from validation.errors import CacheIOError

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Cache")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS lists (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        last_updated INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS items (
        id TEXT PRIMARY KEY,
        list_id TEXT NOT NULL,
        name TEXT NOT NULL,
        details TEXT,
        quantity TEXT,
        category TEXT,
        is_checked BOOLEAN NOT NULL,
        last_seen INTEGER NOT NULL,
        FOREIGN KEY (list_id) REFERENCES lists(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_items_list_id ON items(list_id)",
)


@dataclass
class CacheStats:
    """Row counts of the cached snapshot."""
    total_lists: int = 0
    total_items: int = 0


class SqliteCacheStore:
    """
    Cache Store backed by a SQLite file.

    Each operation opens its own short-lived connection. Commits are
    serialized by a process-local lock (single writer); loads take no lock
    and always see the last fully committed snapshot.

    Args:
        database_path: Path to the SQLite file (parent directory is created)
        timeout: Seconds sqlite waits on a locked database before failing
    """

    def __init__(self, database_path: str, timeout: float = 30.0):
        self.database_path = database_path
        self._timeout = timeout
        self._write_lock = threading.Lock()

        db_exists = os.path.exists(database_path)
        if db_exists:
            log_info(f"Using existing database at: {database_path}")
        else:
            log_info(f"Creating new database at: {database_path}")
            parent = os.path.dirname(os.path.abspath(database_path))
            try:
                os.makedirs(parent, exist_ok=True)
            except OSError as e:
                raise CacheIOError(f"Cannot create database directory {parent}: {e}") from e

        self._run_migrations()

        if db_exists:
            stats = self.get_stats()
            log_info(f"Cache loaded: {stats.total_lists} lists with {stats.total_items} total items")
        else:
            log_info("New database initialized successfully")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database_path, timeout=self._timeout)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _run_migrations(self) -> None:
        """Create tables and index if they do not exist."""
        log_debug("Running database migrations")
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to open cache database {self.database_path}: {e}") from e
        try:
            with conn:
                for statement in _SCHEMA:
                    conn.execute(statement)
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to create cache tables: {e}") from e
        finally:
            conn.close()

    def load(self) -> Snapshot:
        """
        Return the last committed snapshot.

        Returns:
            The committed Snapshot, or an empty Snapshot if nothing was ever committed

        Raises:
            CacheIOError: If the database cannot be read
        """
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to open cache database: {e}") from e
        try:
            list_rows = conn.execute(
                "SELECT id, name, last_updated FROM lists ORDER BY id"
            ).fetchall()
            item_rows = conn.execute(
                "SELECT id, list_id, name, details, quantity, category, is_checked, last_seen "
                "FROM items ORDER BY list_id, id"
            ).fetchall()
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to read cached snapshot: {e}") from e
        finally:
            conn.close()

        lists = [
            ListRecord(id=row[0], name=row[1], last_updated=row[2])
            for row in list_rows
        ]
        items = [
            ItemRecord(
                id=row[0],
                list_id=row[1],
                name=row[2],
                details=row[3],
                quantity=row[4],
                category=row[5],
                is_checked=bool(row[6]),
                last_seen=row[7],
            )
            for row in item_rows
        ]
        log_trace(f"Loaded cached snapshot: {len(lists)} lists, {len(items)} items")
        return Snapshot.build(lists, items)

    def commit(self, snapshot: Snapshot) -> CacheStats:
        """
        Atomically replace the stored snapshot.

        All rows are deleted and re-inserted inside one transaction; on any
        error the transaction rolls back and the previous snapshot stays.
        Committing the same snapshot twice leaves the same rows.

        Args:
            snapshot: Snapshot to persist

        Returns:
            CacheStats of the committed snapshot

        Raises:
            MalformedSnapshotError: If the snapshot fails validation (nothing written)
            CacheIOError: If the write fails (previous snapshot kept)
        """
        snapshot.validate()

        with self._write_lock:
            try:
                conn = self._connect()
            except sqlite3.Error as e:
                raise CacheIOError(f"Failed to open cache database: {e}") from e
            try:
                with conn:
                    conn.execute("DELETE FROM items")
                    conn.execute("DELETE FROM lists")
                    self._write_lists(conn, snapshot)
                    self._write_items(conn, snapshot)
            except sqlite3.Error as e:
                log_error(f"Cache commit rolled back: {e}")
                raise CacheIOError(f"Failed to commit snapshot: {e}") from e
            finally:
                conn.close()

        stats = CacheStats(total_lists=len(snapshot.lists), total_items=len(snapshot.items))
        log_debug(f"Committed snapshot: {stats.total_lists} lists, {stats.total_items} items")
        return stats

    def _write_lists(self, conn: sqlite3.Connection, snapshot: Snapshot) -> None:
        conn.executemany(
            "INSERT INTO lists (id, name, last_updated) VALUES (?, ?, ?)",
            [(r.id, r.name, r.last_updated) for r in snapshot.lists.values()],
        )

    def _write_items(self, conn: sqlite3.Connection, snapshot: Snapshot) -> None:
        conn.executemany(
            "INSERT INTO items (id, list_id, name, details, quantity, category, is_checked, last_seen) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (i.id, i.list_id, i.name, i.details, i.quantity, i.category, i.is_checked, i.last_seen)
                for i in snapshot.items.values()
            ],
        )

    def get_stats(self) -> CacheStats:
        """
        Count cached lists and items.

        Raises:
            CacheIOError: If the database cannot be read
        """
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to open cache database: {e}") from e
        try:
            total_lists = conn.execute("SELECT COUNT(*) FROM lists").fetchone()[0]
            total_items = conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to count cached rows: {e}") from e
        finally:
            conn.close()
        return CacheStats(total_lists=total_lists, total_items=total_items)

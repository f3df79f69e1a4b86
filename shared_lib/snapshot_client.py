"""
shared_lib.snapshot_client: HTTP client for the AnyList snapshot bridge.

The bridge serves the full current state of every list as one JSON document::

    {"lists": [{"id": "...", "name": "...", "last_updated": 1700000000,
                "items": [{"id": "...", "name": "...", "details": null,
                           "quantity": "2", "category": "Dairy",
                           "checked": false, "user_id": "..."}]}]}

Design notes:
- Sync client: the coordinator runs each cycle on its own worker thread.
- Uses httpx.Client. Caller must call close() when done.
- Payloads are validated through Pydantic models and returned as a
  Snapshot, so callers never see raw dict shapes.

Exports:
    SnapshotClient   -- fetches and parses the snapshot
    RemoteItem       -- Pydantic model for one item in the payload
    RemoteList       -- Pydantic model for one list in the payload
    RemotePayload    -- Pydantic model for the whole document
    parse_snapshot   -- payload dict -> Snapshot
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from cache.models import ItemRecord, ListRecord, Snapshot
from validation.errors import FetchError, MalformedSnapshotError

log = logging.getLogger("AnyListNotify.SnapshotClient")


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class RemoteItem(BaseModel):
    """A single item as served by the bridge."""

    id: str
    name: str
    details: Optional[str] = None
    quantity: Optional[str] = None
    category: Optional[str] = None
    checked: bool = False
    user_id: Optional[str] = None


class RemoteList(BaseModel):
    """A shopping list with its items nested inside."""

    id: str
    name: str
    last_updated: Optional[int] = None
    items: list[RemoteItem] = []


class RemotePayload(BaseModel):
    lists: list[RemoteList]


# ---------------------------------------------------------------------------
# Parse helper
# ---------------------------------------------------------------------------


def parse_snapshot(payload: Any, now: Optional[int] = None) -> Snapshot:
    """
    Flatten a bridge payload into a validated Snapshot.

    Items are un-nested and given the id of the list they appeared under.
    ``last_seen`` is the fetch time; lists without ``last_updated`` get it too.
    Missing or null ``details`` become an empty string.

    Args:
        payload: Decoded JSON document.
        now: Observation time in epoch seconds (default: time.time()).

    Returns:
        Snapshot that satisfies the list/item referential invariant.

    Raises:
        MalformedSnapshotError: Payload shape is wrong or ids are duplicated.
    """
    if now is None:
        now = int(time.time())

    try:
        parsed = RemotePayload.model_validate(payload)
    except ValidationError as exc:
        raise MalformedSnapshotError(f"Invalid snapshot payload: {exc}") from exc

    lists = []
    items = []
    for remote_list in parsed.lists:
        lists.append(ListRecord(
            id=remote_list.id,
            name=remote_list.name,
            last_updated=remote_list.last_updated if remote_list.last_updated is not None else now,
        ))
        for remote_item in remote_list.items:
            items.append(ItemRecord(
                id=remote_item.id,
                list_id=remote_list.id,
                name=remote_item.name,
                details=remote_item.details or "",
                quantity=remote_item.quantity,
                category=remote_item.category,
                is_checked=remote_item.checked,
                last_seen=now,
                user_id=remote_item.user_id,
            ))

    return Snapshot.build(lists, items).validate()


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class SnapshotClient:
    """
    HTTP client for the snapshot bridge.

    Usage::

        client = SnapshotClient("http://localhost:8080/snapshot", token="secret")
        try:
            snapshot = client.fetch_snapshot()
        finally:
            client.close()
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        """
        Create the snapshot client.

        Args:
            url:     Full URL of the snapshot document.
            token:   Optional bearer token sent as ``Authorization`` header.
            timeout: Total request timeout in seconds (default 10). Connect
                     timeout is capped at 5 seconds.
        """
        self._url = url

        headers: dict[str, str] = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.Client(
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
        )
        log.debug("SnapshotClient initialised: url=%s token=%s", self._url, bool(token))

    def close(self) -> None:
        """Close the underlying httpx client and release connections."""
        self._client.close()

    def fetch_snapshot(self) -> Snapshot:
        """
        Fetch the current remote state.

        Returns:
            Validated Snapshot stamped with the fetch time.

        Raises:
            FetchError:             Bridge unreachable, timed out, non-2xx or not JSON.
            MalformedSnapshotError: Response JSON does not describe a valid snapshot.
        """
        try:
            resp = self._client.get(self._url)
        except httpx.TimeoutException as exc:
            raise FetchError(f"Snapshot request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise FetchError(f"Cannot connect to snapshot source: {exc}") from exc

        if resp.is_error:
            raise FetchError(f"Snapshot source returned HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise FetchError(f"Snapshot source returned invalid JSON: {exc}") from exc

        snapshot = parse_snapshot(body)
        log.debug(
            "Fetched snapshot with %d lists, %d items",
            len(snapshot.lists), len(snapshot.items),
        )
        return snapshot

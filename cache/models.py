"""
Snapshot data model.

A Snapshot is the full observed state of every shopping list and item at one
instant. Records are frozen dataclasses; the snapshot wraps its mappings in
read-only proxies so nothing downstream can mutate a fetched or cached state.

Items point at their list through ``list_id`` only (a plain foreign key),
the same relation the cache tables use.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from validation.errors import MalformedSnapshotError


@dataclass(frozen=True)
class ListRecord:
    """One remote shopping list.

    Attributes:
        id: Remote list identifier
        name: Display name of the list
        last_updated: Unix timestamp (seconds) of the observation
    """
    id: str
    name: str
    last_updated: int = 0


@dataclass(frozen=True)
class ItemRecord:
    """One item on a remote shopping list.

    Attributes:
        id: Remote item identifier (globally unique across lists)
        list_id: Id of the owning ListRecord
        name: Item name
        details: Free-text note; None and "" are different values
        quantity: Quantity string as entered remotely ("2 gallons")
        category: Category/aisle name
        is_checked: True once the item is checked off
        last_seen: Unix timestamp (seconds) of the observation
        user_id: Who last touched the item, if the remote reports it.
                 Attribution only: not persisted and not compared.
    """
    id: str
    list_id: str
    name: str
    details: Optional[str] = None
    quantity: Optional[str] = None
    category: Optional[str] = None
    is_checked: bool = False
    last_seen: int = 0
    user_id: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class Snapshot:
    """Immutable remote state: lists and items keyed by id.

    Build instances with Snapshot.build() or Snapshot.empty(); both keep
    insertion order and hand out read-only mappings.
    """
    lists: Mapping[str, ListRecord] = field(default_factory=lambda: MappingProxyType({}))
    items: Mapping[str, ItemRecord] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def empty(cls) -> "Snapshot":
        """Snapshot with no lists and no items (the state before any commit)."""
        return cls()

    @classmethod
    def build(cls, lists: Iterable[ListRecord], items: Iterable[ItemRecord]) -> "Snapshot":
        """Index records by id.

        Args:
            lists: ListRecords in remote order
            items: ItemRecords in remote order

        Returns:
            New Snapshot

        Raises:
            MalformedSnapshotError: If a list id or an item id appears twice
        """
        list_map: dict[str, ListRecord] = {}
        for record in lists:
            if record.id in list_map:
                raise MalformedSnapshotError(f"Duplicate list id {record.id!r}")
            list_map[record.id] = record

        item_map: dict[str, ItemRecord] = {}
        for record in items:
            if record.id in item_map:
                raise MalformedSnapshotError(f"Duplicate item id {record.id!r}")
            item_map[record.id] = record

        return cls(lists=MappingProxyType(list_map), items=MappingProxyType(item_map))

    def validate(self) -> "Snapshot":
        """Check the referential invariants.

        Returns:
            self, so callers can chain

        Raises:
            MalformedSnapshotError: If an item references an absent list or a
                mapping key disagrees with its record's id
        """
        for key, record in self.lists.items():
            if key != record.id:
                raise MalformedSnapshotError(f"List keyed {key!r} has id {record.id!r}")
        for key, item in self.items.items():
            if key != item.id:
                raise MalformedSnapshotError(f"Item keyed {key!r} has id {item.id!r}")
            if item.list_id not in self.lists:
                raise MalformedSnapshotError(
                    f"Item {item.id!r} references unknown list {item.list_id!r}"
                )
        return self

    def items_in_list(self, list_id: str) -> list[ItemRecord]:
        """Items belonging to one list, in snapshot order."""
        return [item for item in self.items.values() if item.list_id == list_id]

    def list_name(self, list_id: str) -> str:
        """Name of a list, or "" if the list is not in this snapshot."""
        record = self.lists.get(list_id)
        return record.name if record is not None else ""

    def is_empty(self) -> bool:
        return not self.lists and not self.items

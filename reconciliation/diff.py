"""Diff engine: classify differences between two snapshots into change events."""
from dataclasses import dataclass
from typing import ClassVar, Iterable, Optional

from cache.models import ItemRecord, Snapshot

# Fields whose change produces an ItemModified event, in reporting order.
# is_checked is handled separately (ItemChecked / ItemUnchecked).
TRACKED_FIELDS = ('name', 'details', 'quantity', 'category')


@dataclass(frozen=True)
class FieldChange:
    """One changed item field.

    Attributes:
        field: One of TRACKED_FIELDS
        old: Value in the older snapshot
        new: Value in the newer snapshot
    """
    field: str
    old: Optional[str]
    new: Optional[str]


@dataclass(frozen=True)
class ChangeEvent:
    """Base class for item-level change events.

    Attributes:
        item: The item record (new state, or last known state for removals)
        list_name: Name of the owning list in the snapshot the item came from
    """
    item: ItemRecord
    list_name: str = ""

    kind: ClassVar[str] = "change"

    @property
    def item_id(self) -> str:
        return self.item.id

    @property
    def changed_by(self) -> Optional[str]:
        """User id the remote attributes the item to, if any."""
        return self.item.user_id


@dataclass(frozen=True)
class ItemAdded(ChangeEvent):
    kind: ClassVar[str] = "item_added"


@dataclass(frozen=True)
class ItemRemoved(ChangeEvent):
    kind: ClassVar[str] = "item_removed"


@dataclass(frozen=True)
class ItemChecked(ChangeEvent):
    kind: ClassVar[str] = "item_checked"


@dataclass(frozen=True)
class ItemUnchecked(ChangeEvent):
    kind: ClassVar[str] = "item_unchecked"


@dataclass(frozen=True)
class ItemModified(ChangeEvent):
    """Item fields changed.

    Attributes:
        changes: Every differing tracked field, in TRACKED_FIELDS order
    """
    changes: tuple[FieldChange, ...] = ()

    kind: ClassVar[str] = "item_modified"

    @property
    def changed_fields(self) -> dict[str, tuple[Optional[str], Optional[str]]]:
        """Mapping of field name -> (old, new)."""
        return {c.field: (c.old, c.new) for c in self.changes}


EVENT_KINDS = (
    ItemAdded.kind,
    ItemRemoved.kind,
    ItemChecked.kind,
    ItemUnchecked.kind,
    ItemModified.kind,
)


def _order_key(item: ItemRecord) -> tuple[str, str]:
    # Added/removed: grouped by list, ascending id within a list
    return (item.list_id, item.id)


def detect_field_changes(old: ItemRecord, new: ItemRecord) -> list[FieldChange]:
    """Compare the tracked fields of two versions of the same item.

    Args:
        old: Cached version
        new: Freshly fetched version

    Returns:
        FieldChange for every differing field in TRACKED_FIELDS order
    """
    changes = []
    for name in TRACKED_FIELDS:
        old_value = getattr(old, name)
        new_value = getattr(new, name)
        if old_value != new_value:
            changes.append(FieldChange(field=name, old=old_value, new=new_value))
    return changes


def diff(old: Snapshot, new: Snapshot) -> list[ChangeEvent]:
    """Compute the ordered change events that turn ``old`` into ``new``.

    Items are correlated purely by id. Emission order is fixed:
    1. ItemAdded for ids only in ``new``
    2. ItemRemoved for ids only in ``old``
    3. Check-state and modification events for ids in both

    Added and removed items are grouped by list_id and ordered by id within
    a list; surviving items are ordered by id alone. For a
    surviving item whose check state flipped AND whose fields changed, the
    ItemChecked/ItemUnchecked event comes first, immediately followed by the
    single ItemModified event. Timestamps and list membership are ignored.

    Neither snapshot is modified and nothing outside the arguments is read.

    Args:
        old: Previously committed snapshot
        new: Freshly fetched snapshot

    Returns:
        List of ChangeEvent (empty when nothing changed)
    """
    old_items = old.items
    new_items = new.items

    added = sorted(
        (item for item_id, item in new_items.items() if item_id not in old_items),
        key=_order_key,
    )
    removed = sorted(
        (item for item_id, item in old_items.items() if item_id not in new_items),
        key=_order_key,
    )
    surviving = sorted(
        (item for item_id, item in new_items.items() if item_id in old_items),
        key=lambda item: item.id,
    )

    events: list[ChangeEvent] = []

    for item in added:
        events.append(ItemAdded(item=item, list_name=new.list_name(item.list_id)))

    for item in removed:
        events.append(ItemRemoved(item=item, list_name=old.list_name(item.list_id)))

    for current in surviving:
        cached = old_items[current.id]
        list_name = new.list_name(current.list_id)

        if cached.is_checked != current.is_checked:
            if current.is_checked:
                events.append(ItemChecked(item=current, list_name=list_name))
            else:
                events.append(ItemUnchecked(item=current, list_name=list_name))

        field_changes = detect_field_changes(cached, current)
        if field_changes:
            events.append(ItemModified(
                item=current,
                list_name=list_name,
                changes=tuple(field_changes),
            ))

    return events


def list_changes(old: Snapshot, new: Snapshot) -> tuple[list[str], list[str]]:
    """Report lists that appeared or disappeared (for logging, never notified).

    Returns:
        Tuple of (added_list_ids, removed_list_ids), each sorted
    """
    added = sorted(list_id for list_id in new.lists if list_id not in old.lists)
    removed = sorted(list_id for list_id in old.lists if list_id not in new.lists)
    return added, removed


def filter_own_changes(
    events: Iterable[ChangeEvent],
    own_user_id: Optional[str],
) -> list[ChangeEvent]:
    """Drop events attributed to ``own_user_id``.

    Events with no attribution are kept. A falsy ``own_user_id`` keeps everything.
    """
    if not own_user_id:
        return list(events)
    return [event for event in events if event.changed_by != own_user_id]


def count_by_kind(events: Iterable[ChangeEvent]) -> dict[str, int]:
    """Count events per kind, with a zero entry for every kind."""
    counts = {kind: 0 for kind in EVENT_KINDS}
    for event in events:
        counts[event.kind] = counts.get(event.kind, 0) + 1
    return counts

"""
ntfy notification sink.

Each change event becomes one ntfy message. Messages are published with the
JSON API (POST to the server base URL with the topic in the body) so titles
can carry emoji and non-ASCII list names.
"""

from typing import Iterable, Optional

import httpx
from pydantic import BaseModel

from reconciliation.diff import (
    ChangeEvent,
    FieldChange,
    ItemAdded,
    ItemChecked,
    ItemModified,
    ItemRemoved,
    ItemUnchecked,
)
from shared.log import create_logger
from validation.config import NtfyPriorities, NtfyTags
from validation.errors import TransientDeliveryError, classify_http_error

_, log_debug, log_info, _, _ = create_logger("Ntfy")

# ntfy priority names -> numeric priority used by the JSON API
PRIORITY_LEVELS = {
    'min': 1,
    'low': 2,
    'default': 3,
    'high': 4,
    'max': 5,
    'urgent': 5,
}


class NtfyMessage(BaseModel):
    """One ntfy publish request body."""

    topic: str
    title: str
    message: str
    priority: int = 3
    tags: list[str] = []


def parse_tags(tags: str) -> list[str]:
    """Split comma-separated tags, dropping blanks."""
    return [tag.strip() for tag in tags.split(',') if tag.strip()]


def format_field_changes(changes: Iterable[FieldChange]) -> str:
    """Render field changes one per line, e.g. ``Quantity: none → 2``."""
    parts = []
    for change in changes:
        if change.field == 'name':
            parts.append(f"Name: {change.old} → {change.new}")
        elif change.field == 'details':
            if not change.old and not change.new:
                continue
            if not change.old:
                parts.append(f"Details added: {change.new}")
            elif not change.new:
                parts.append(f"Details removed: {change.old}")
            else:
                parts.append(f"Details: {change.old} → {change.new}")
        else:
            old = change.old if change.old is not None else 'none'
            new = change.new if change.new is not None else 'none'
            parts.append(f"{change.field.capitalize()}: {old} → {new}")
    return '\n'.join(parts)


def _with_changed_by(message: str, event: ChangeEvent) -> str:
    if event.changed_by:
        return f"{message}\nChanged by: {event.changed_by}"
    return message


class NtfyNotifier:
    """
    Publishes change events to an ntfy topic.

    Args:
        base_url: ntfy server URL, e.g. https://ntfy.sh
        topic: Topic to publish to
        priorities: Priority name per event kind
        tags: Comma-separated tags per event kind
        timeout: Request timeout in seconds
        token: Optional access token for protected topics
    """

    def __init__(
        self,
        base_url: str,
        topic: str,
        priorities: Optional[NtfyPriorities] = None,
        tags: Optional[NtfyTags] = None,
        timeout: float = 10.0,
        token: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.topic = topic
        self.priorities = priorities or NtfyPriorities()
        self.tags = tags or NtfyTags()

        headers = {}
        if token:
            headers['Authorization'] = f"Bearer {token}"
        self._client = httpx.Client(headers=headers, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def format_notification(self, event: ChangeEvent) -> NtfyMessage:
        """Build the ntfy message for one change event."""
        item = event.item
        list_name = event.list_name

        if isinstance(event, ItemAdded):
            title = f"➕ {item.name} added to {list_name}"
            parts = []
            if item.quantity:
                parts.append(f"Quantity: {item.quantity}")
            if item.details:
                parts.append(f"Details: {item.details}")
            if item.category:
                parts.append(f"Category: {item.category}")
            message = '\n'.join(parts) if parts else f"Added to {list_name}"
        elif isinstance(event, ItemRemoved):
            title = f"❌ {item.name} removed from {list_name}"
            message = f"Removed from {list_name}"
        elif isinstance(event, ItemChecked):
            title = f"✅ {item.name} checked off in {list_name}"
            message = f"Checked off in {list_name}"
        elif isinstance(event, ItemUnchecked):
            title = f"◀️ {item.name} unchecked in {list_name}"
            message = f"Unchecked in {list_name}"
        elif isinstance(event, ItemModified):
            title = f"✏️ {item.name} modified in {list_name}"
            message = format_field_changes(event.changes)
        else:
            raise ValueError(f"Unsupported event type: {type(event).__name__}")

        priority_name = getattr(self.priorities, event.kind)
        return NtfyMessage(
            topic=self.topic,
            title=title,
            message=_with_changed_by(message, event),
            priority=PRIORITY_LEVELS.get(priority_name, 3),
            tags=parse_tags(getattr(self.tags, event.kind)),
        )

    def deliver(self, event: ChangeEvent) -> None:
        """
        Publish one change event.

        Raises:
            TransientDeliveryError: Network failure, timeout, 429 or 5xx
            PermanentDeliveryError: Request rejected (4xx)
        """
        msg = self.format_notification(event)
        log_debug(f"Sending notification: {msg.title}")

        try:
            response = self._client.post(self.base_url, json=msg.model_dump())
        except httpx.HTTPError as exc:
            raise TransientDeliveryError(f"Failed to reach ntfy: {exc}") from exc

        if response.is_success:
            log_info(f"Notification sent: {msg.title}")
            return

        error_class = classify_http_error(response.status_code)
        body = response.text[:200]
        raise error_class(
            f"ntfy returned HTTP {response.status_code}: {body}",
            status_code=response.status_code,
        )

"""Notification sink: publishes change events to ntfy."""
from notify.ntfy import NtfyMessage, NtfyNotifier, format_field_changes, parse_tags

__all__ = [
    'NtfyMessage',
    'NtfyNotifier',
    'format_field_changes',
    'parse_tags',
]

"""
Validation module for AnyList Notify.

Provides configuration loading/validation and error classification.
"""

from validation.errors import (
    AnyListNotifyError,
    CacheIOError,
    CycleCancelled,
    DeliveryError,
    FetchError,
    MalformedSnapshotError,
    PermanentDeliveryError,
    TransientDeliveryError,
    classify_http_error,
)
from validation.config import AnyListNotifyConfig, get_config, load_config, validate_config

__all__ = [
    'AnyListNotifyError',
    'CacheIOError',
    'CycleCancelled',
    'DeliveryError',
    'FetchError',
    'MalformedSnapshotError',
    'PermanentDeliveryError',
    'TransientDeliveryError',
    'classify_http_error',
    'AnyListNotifyConfig',
    'get_config',
    'load_config',
    'validate_config',
]

"""
Error taxonomy for the reconciliation pipeline.

Only snapshot-source and cache-store failures end a reconciliation cycle.
Delivery failures are isolated to the event being delivered. HTTP status
classification decides which delivery error class a sink raises; the
coordinator itself never looks at the subtype.
"""

import logging
from typing import Type


# HTTP status codes that indicate transient errors
# 429: Rate limited
# 5xx: Server errors - usually temporary
TRANSIENT_CODES = frozenset({429, 500, 502, 503, 504})

# HTTP status codes that indicate permanent errors
# 400: Bad request - malformed message
# 401: Unauthorized - topic requires auth
# 403: Forbidden - topic reserved by someone else
# 404: Not found - wrong base URL
# 413: Payload too large
# 422: Unprocessable entity
PERMANENT_CODES = frozenset({400, 401, 403, 404, 413, 422})

logger = logging.getLogger('AnyListNotify.errors')


class AnyListNotifyError(Exception):
    """Base class for every error raised by this service."""


class FetchError(AnyListNotifyError):
    """The snapshot source could not produce a snapshot (network, auth, bad response)."""


class MalformedSnapshotError(AnyListNotifyError):
    """A snapshot violates the list/item referential invariant or has duplicate ids."""


class CacheIOError(AnyListNotifyError):
    """The cache store could not be read or written."""


class DeliveryError(AnyListNotifyError):
    """A single change event could not be delivered to the notification sink.

    Attributes:
        status_code: HTTP status returned by the sink, if any
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientDeliveryError(DeliveryError):
    """Delivery failed for a reason that may clear up on its own (network, 429, 5xx)."""


class PermanentDeliveryError(DeliveryError):
    """Delivery failed for a reason that will not fix itself (bad topic, auth)."""


class CycleCancelled(AnyListNotifyError):
    """Shutdown was requested while a reconciliation cycle was in flight."""


def classify_http_error(status_code: int) -> Type[DeliveryError]:
    """
    Classify an HTTP status code as a transient or permanent delivery error.

    Args:
        status_code: HTTP response status code

    Returns:
        TransientDeliveryError class for errors that may recover,
        PermanentDeliveryError class for errors that will not
    """
    if status_code in TRANSIENT_CODES:
        logger.debug(f"HTTP {status_code} classified as transient")
        return TransientDeliveryError

    if status_code in PERMANENT_CODES:
        logger.debug(f"HTTP {status_code} classified as permanent")
        return PermanentDeliveryError

    if 400 <= status_code < 500:
        # Unknown 4xx = permanent (client error, unlikely to change)
        logger.debug(f"HTTP {status_code} (unknown 4xx) classified as permanent")
        return PermanentDeliveryError

    if status_code >= 500:
        logger.debug(f"HTTP {status_code} (unknown 5xx) classified as transient")
        return TransientDeliveryError

    # 1xx/3xx should never reach here
    logger.debug(f"HTTP {status_code} (unexpected) classified as transient")
    return TransientDeliveryError

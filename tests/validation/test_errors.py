"""
Tests for the error taxonomy and HTTP error classification.

classify_http_error routes ntfy HTTP failures to TransientDeliveryError
or PermanentDeliveryError.
"""

import pytest

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


class TestClassifyHttpError:
    """Tests for classify_http_error function."""

    # =========================================================================
    # Transient codes
    # =========================================================================

    @pytest.mark.parametrize("status_code", [429, 500, 502, 503, 504])
    def test_transient_codes(self, status_code):
        assert classify_http_error(status_code) is TransientDeliveryError

    @pytest.mark.parametrize("status_code", [501, 507, 599])
    def test_unknown_5xx_is_transient(self, status_code):
        assert classify_http_error(status_code) is TransientDeliveryError

    # =========================================================================
    # Permanent codes
    # =========================================================================

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 413, 422])
    def test_permanent_codes(self, status_code):
        assert classify_http_error(status_code) is PermanentDeliveryError

    @pytest.mark.parametrize("status_code", [405, 409, 418, 451])
    def test_unknown_4xx_is_permanent(self, status_code):
        assert classify_http_error(status_code) is PermanentDeliveryError

    # =========================================================================
    # Unexpected codes
    # =========================================================================

    @pytest.mark.parametrize("status_code", [100, 302, 0])
    def test_unexpected_codes_default_to_transient(self, status_code):
        assert classify_http_error(status_code) is TransientDeliveryError


class TestErrorHierarchy:

    @pytest.mark.parametrize("error_class", [
        FetchError, MalformedSnapshotError, CacheIOError, DeliveryError, CycleCancelled,
    ])
    def test_all_derive_from_base(self, error_class):
        assert issubclass(error_class, AnyListNotifyError)

    def test_delivery_subclasses(self):
        assert issubclass(TransientDeliveryError, DeliveryError)
        assert issubclass(PermanentDeliveryError, DeliveryError)

    def test_delivery_error_carries_status_code(self):
        error = PermanentDeliveryError("forbidden", status_code=403)
        assert error.status_code == 403
        assert str(error) == "forbidden"

    def test_delivery_error_status_code_optional(self):
        assert TransientDeliveryError("timeout").status_code is None

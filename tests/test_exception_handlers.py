"""Tests for exception handler logging behavior."""

import sys
from unittest.mock import MagicMock, patch

import pytest

from csprender.config import LogfireConfig, Settings
from csprender.lib import observability
from csprender.lib.exceptions import internal_server_error_handler


@pytest.fixture
def fake_request():
    """Create a minimal mock request for the error handler."""
    request = MagicMock()
    request.method = "GET"
    request.url.path = "/test"
    request.headers.get.return_value = "application/json"
    return request


class TestObservabilityException:
    """Test the observability.exception() facade function."""

    def test_returns_true_when_available(self):
        with patch.object(observability, "_logfire", MagicMock()) as mock_lf:
            result = observability.exception("test error")
            assert result is True
            mock_lf.exception.assert_called_once_with("test error")

    def test_returns_false_when_unavailable(self):
        with patch.object(observability, "_logfire", None):
            result = observability.exception("test error")
            assert result is False


class TestObservabilitySpan:
    """Test the observability.span() facade."""

    def test_yields_none_when_unavailable(self):
        with patch.object(observability, "_logfire", None):
            with observability.span("csp.reconcile") as s:
                assert s is None

    def test_uses_logfire_span_when_available(self):
        mock_lf = MagicMock()
        with patch.object(observability, "_logfire", mock_lf):
            with observability.span("csp.reconcile", has_meta=True):
                pass
        mock_lf.span.assert_called_once_with("csp.reconcile", has_meta=True)


class TestObservabilityConfigure:
    """Test observability.configure() against the logfire settings."""

    def test_disabled_config_is_a_no_op(self):
        with patch.object(observability, "_logfire", None):
            assert observability.configure(Settings()) is False
            assert not observability.is_available()

    def test_missing_logfire_package_is_tolerated(self):
        settings = Settings(logfire=LogfireConfig(enabled=True))
        with patch.object(observability, "_logfire", None), \
             patch.dict(sys.modules, {"logfire": None}):
            assert observability.configure(settings) is False
            assert not observability.is_available()


class TestInternalServerErrorHandler:
    """Test that internal_server_error_handler logs exceptions."""

    def test_calls_observability_when_available(self, fake_request):
        exc = RuntimeError("boom")
        with patch.object(observability, "exception", return_value=True) as mock_exc:
            response = internal_server_error_handler(fake_request, exc)

        mock_exc.assert_called_once_with(
            "Unhandled exception on {method} {path}",
            method="GET",
            path="/test",
        )
        assert response.status_code == 500

    def test_falls_back_to_stdlib_when_unavailable(self, fake_request):
        exc = RuntimeError("boom")
        with patch.object(observability, "exception", return_value=False), \
             patch("csprender.lib.exceptions.logger") as mock_logger:
            response = internal_server_error_handler(fake_request, exc)

        mock_logger.exception.assert_called_once_with(
            "Unhandled exception on %s %s", "GET", "/test",
        )
        assert response.status_code == 500

    def test_returns_500_json_for_api_clients(self, fake_request):
        exc = RuntimeError("boom")
        with patch.object(observability, "exception", return_value=False), \
             patch("csprender.lib.exceptions.logger"):
            response = internal_server_error_handler(fake_request, exc)

        assert response.content == {"status_code": 500, "detail": "Internal Server Error"}

    def test_returns_html_for_browsers(self, fake_request):
        fake_request.headers.get.return_value = "text/html,application/xhtml+xml"
        with patch.object(observability, "exception", return_value=False), \
             patch("csprender.lib.exceptions.logger"):
            response = internal_server_error_handler(fake_request, RuntimeError("boom"))

        assert response.status_code == 500
        assert response.media_type == "text/html"
        assert "An unexpected error occurred." in response.content

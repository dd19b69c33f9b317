"""Unit tests for the provider exception hierarchy."""

import pytest

from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
    ProviderError,
    TransientProviderError,
    is_transient,
)


class TestExceptionHierarchy:
    """All provider exceptions are caught by except ProviderError."""

    def test_provider_auth_error_is_provider_error(self):
        exc = ProviderAuthError("bad creds", provider_name="simplefin")
        assert isinstance(exc, ProviderError)

    def test_provider_connection_error_is_transient(self):
        exc = ProviderConnectionError("timeout", provider_name="simplefin")
        assert isinstance(exc, TransientProviderError)
        assert isinstance(exc, ProviderError)

    def test_provider_api_error_is_provider_error(self):
        exc = ProviderAPIError("500 error", provider_name="snaptrade", status_code=500)
        assert isinstance(exc, ProviderError)

    def test_provider_data_error_is_provider_error(self):
        exc = ProviderDataError("bad json", provider_name="simplefin")
        assert isinstance(exc, ProviderError)

    def test_catch_all_provider_errors(self):
        """A single except ProviderError catches all subtypes."""
        exceptions = [
            ProviderAuthError("auth", provider_name="A"),
            ProviderConnectionError("conn", provider_name="B"),
            ProviderAPIError("api", provider_name="C", status_code=400),
            ProviderDataError("data", provider_name="D"),
        ]
        for exc in exceptions:
            with pytest.raises(ProviderError):
                raise exc

    def test_provider_name_carried(self):
        exc = ProviderAuthError("auth", provider_name="simplefin")
        assert exc.provider_name == "simplefin"
        assert str(exc) == "auth"


class TestProviderAPIErrorRetriable:
    """ProviderAPIError.retriable depends on status_code."""

    def test_429_is_retriable(self):
        assert ProviderAPIError("rate limit", status_code=429).retriable is True

    def test_500_is_retriable(self):
        assert ProviderAPIError("server error", status_code=500).retriable is True

    def test_400_not_retriable(self):
        assert ProviderAPIError("bad request", status_code=400).retriable is False

    def test_none_status_not_retriable(self):
        assert ProviderAPIError("unknown").retriable is False


class TestTransientErrors:
    def test_connection_error_retriable_by_default(self):
        assert ProviderConnectionError("timeout").retriable is True

    def test_partial_delivery_disables_retry(self):
        exc = ProviderConnectionError("reset mid-stream", partial_delivery=True)
        assert exc.partial_delivery is True
        assert exc.retriable is False

    def test_is_transient(self):
        assert is_transient(ProviderConnectionError("timeout"))
        assert is_transient(ProviderAPIError("rate limit", status_code=429))
        assert not is_transient(ProviderAPIError("not found", status_code=404))
        assert not is_transient(ProviderAuthError("auth"))
        assert not is_transient(ProviderDataError("data"))
        assert not is_transient(ValueError("boom"))

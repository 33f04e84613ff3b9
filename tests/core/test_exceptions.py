"""Tests for the confluence-connect error hierarchy."""

import pytest

from confluence_connect.core.exceptions import (
    AuthenticationError,
    ConnectorError,
    InvalidTokenError,
    NotFoundError,
    ProviderError,
    StoreConfigurationError,
    UnknownTenantError,
    ValidationError,
    WebhookNotRegisteredError,
)


class TestConnectorError:
    """Tests for the base error."""

    def test_str_with_provider(self) -> None:
        """Test that the provider prefixes the message."""
        assert str(ConnectorError("boom", provider="confluence")) == "[confluence] boom"

    def test_str_without_provider(self) -> None:
        """Test the bare message."""
        error = ConnectorError("boom")
        assert str(error) == "boom"
        assert error.details == {}


class TestHttpStatus:
    """Tests for the statuses the add-on endpoints answer with."""

    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (AuthenticationError("no"), 401),
            (InvalidTokenError("Missing JWT"), 401),
            (UnknownTenantError("c"), 401),
            (NotFoundError("gone"), 404),
            (WebhookNotRegisteredError("page_created"), 404),
            (ValidationError("bad"), 400),
            (StoreConfigurationError("nosuchdb://h/db", "unknown dialect"), 400),
            (ProviderError("upstream", status_code=502), 500),
            (ConnectorError("other"), 500),
        ],
    )
    def test_status(self, error: ConnectorError, status: int) -> None:
        """Test each error's HTTP status."""
        assert error.http_status == status


class TestAddonErrors:
    """Tests for add-on specific errors."""

    def test_unknown_tenant(self) -> None:
        """Test that the client key is kept and named in the message."""
        error = UnknownTenantError("tenant-9")
        assert error.client_key == "tenant-9"
        assert str(error) == "[jwt] Unknown JWT issuer: tenant-9"

    def test_store_configuration(self) -> None:
        """Test that the store error points at the connection string setting."""
        error = StoreConfigurationError("nosuchdb://host/db", "unknown dialect")
        assert error.field == "connection_string"
        assert error.details == {"scheme": "nosuchdb"}
        assert "unknown dialect" in error.message

    def test_webhook_not_registered(self) -> None:
        """Test the resource fields of an unregistered event."""
        error = WebhookNotRegisteredError("space_created", provider="confluence_addon")
        assert error.resource_type == "webhook"
        assert error.resource_id == "space_created"
        assert str(error) == "[confluence_addon] No webhook registered for event space_created"

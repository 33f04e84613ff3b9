"""Core interfaces, models and errors for confluence-connect."""

from confluence_connect.core.exceptions import (
    AuthenticationError,
    ConnectorConnectionError,
    ConnectorError,
    InvalidTokenError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    StoreConfigurationError,
    UnknownTenantError,
    ValidationError,
    WebhookNotRegisteredError,
)
from confluence_connect.core.interfaces import Connection, WikiProvider
from confluence_connect.core.models import (
    AddonInfo,
    ConfluenceConfig,
    ConnectionInfo,
    Page,
    Tenant,
    Vendor,
    WebhookEvent,
    WebhookSubscription,
)
from confluence_connect.core.registry import (
    create_connection,
    list_connections,
    register_connection,
)

__all__ = [
    "AddonInfo",
    "ConfluenceConfig",
    "ConnectionInfo",
    "Page",
    "Tenant",
    "Vendor",
    "WebhookEvent",
    "WebhookSubscription",
    "Connection",
    "WikiProvider",
    "create_connection",
    "list_connections",
    "register_connection",
    "ConnectorError",
    "AuthenticationError",
    "ConnectorConnectionError",
    "NotFoundError",
    "ProviderError",
    "RateLimitError",
    "ValidationError",
    "InvalidTokenError",
    "UnknownTenantError",
    "WebhookNotRegisteredError",
    "StoreConfigurationError",
]

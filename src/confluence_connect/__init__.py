"""
confluence-connect: Confluence REST connection with optional Atlassian Connect add-on.

Example Usage:
    from fastapi import FastAPI
    from confluence_connect import ConfluenceConnection

    app = FastAPI()
    conn = ConfluenceConnection({
        "connection": {"host": "https://x.atlassian.net", "username": "u", "apiToken": "t"},
        "subApp": app,
        "addon": {"key": "my-addon", "name": "My Add-on"},
        "baseUrl": "https://mydomain.com",
        "webhooks": [{"event": "page_created"}],
    }).connect()

    conn.api.search("deployment guide")
    conn.disconnect()
"""

from confluence_connect.addon import AddonDescriptor, AtlassianAddon
from confluence_connect.atlassian import ConfluenceClient, ConfluenceConnection
from confluence_connect.core.exceptions import (
    AuthenticationError,
    ConnectorError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from confluence_connect.core.models import (
    ConfluenceConfig,
    Page,
    WebhookEvent,
    WebhookSubscription,
)
from confluence_connect.core.registry import create_connection, register_connection

__version__ = "0.1.0"

__all__ = [
    # Connection
    "ConfluenceConnection",
    "ConfluenceClient",
    "AtlassianAddon",
    "AddonDescriptor",
    # Models
    "ConfluenceConfig",
    "Page",
    "WebhookEvent",
    "WebhookSubscription",
    # Registry
    "create_connection",
    "register_connection",
    # Exceptions
    "ConnectorError",
    "AuthenticationError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
]

"""Data models for Confluence connections and the add-on host."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ConnectionInfo(BaseModel):
    """Connection parameters for the Confluence REST API.

    Empty fields are resolved later from the environment, the keyring, or a
    .env file (see ``confluence_connect.atlassian.credentials``).
    """

    host: str | None = Field(default=None, description="Site URL (e.g., https://x.atlassian.net)")
    username: str | None = Field(default=None, description="Account email or username")
    api_token: str | None = Field(default=None, alias="apiToken", description="API token")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class Vendor(BaseModel):
    """Add-on vendor shown in the descriptor."""

    name: str = Field(description="Vendor name")
    url: str = Field(description="Vendor website")


class AddonInfo(BaseModel):
    """Optional add-on block. Add-on mode needs both key and name."""

    key: str | None = Field(default=None, description="Unique add-on key")
    name: str | None = Field(default=None, description="Human readable add-on name")
    description: str | None = Field(default=None, description="Add-on description")
    vendor: Vendor | None = Field(default=None, description="Vendor information")


class WebhookSubscription(BaseModel):
    """A webhook event the add-on subscribes to.

    ``path`` is the receiver URL advertised in the descriptor, relative to the
    add-on mount path. When omitted the generic ``/webhooks/{event}`` receiver
    is used.
    """

    event: str = Field(description="Webhook event name (e.g., 'page_created')")
    path: str | None = Field(default=None, description="Receiver path under the mount path")
    filter: str | None = Field(default=None, description="Optional event filter (e.g., CQL)")
    exclude_body: bool = Field(default=False, alias="excludeBody", description="Omit payload body")
    handler: Callable[..., Any] | None = Field(
        default=None, exclude=True, description="Callable invoked with the event payload"
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class ConfluenceConfig(BaseModel):
    """Configuration for a ConfluenceConnection.

    camelCase keys (``baseUrl``, ``subApp``, ``connectionString``,
    ``apiToken``) are accepted as aliases.
    """

    connection: ConnectionInfo = Field(default_factory=ConnectionInfo)
    sub_app: Any = Field(default=None, alias="subApp", description="Host FastAPI application")
    addon: AddonInfo | None = Field(default=None, description="Add-on descriptor fields")
    base_url: str | None = Field(
        default=None, alias="baseUrl", description="Public URL prefix for add-on endpoints"
    )
    webhooks: list[WebhookSubscription] = Field(default_factory=list)
    connection_string: str = Field(
        default="", alias="connectionString", description="Tenant store connection string"
    )

    @property
    def addon_enabled(self) -> bool:
        """Check if the configuration asks for an add-on."""
        return bool(self.addon and self.addon.key and self.addon.name)

    class Config:
        """Pydantic configuration."""

        populate_by_name = True
        arbitrary_types_allowed = True


class Page(BaseModel):
    """Confluence page representation."""

    id: str = Field(description="Unique page identifier")
    title: str = Field(description="Page title")
    content: str | None = Field(default=None, description="Page content (storage format)")
    space: str | None = Field(default=None, description="Space key or space ID")
    version: int = Field(default=1, description="Page version number")
    author: str | None = Field(default=None, description="Page author")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")
    url: str | None = Field(default=None, description="Web URL for the page")
    parent_id: str | None = Field(default=None, description="Parent page ID")
    raw: dict[str, Any] = Field(default_factory=dict, description="Raw API response")

    class Config:
        """Pydantic configuration."""

        extra = "allow"


class Tenant(BaseModel):
    """A host instance that installed the add-on."""

    client_key: str = Field(alias="clientKey", description="Tenant identifier (JWT issuer)")
    shared_secret: str = Field(alias="sharedSecret", description="HS256 signing secret")
    base_url: str = Field(alias="baseUrl", description="Host site URL")
    product_type: str | None = Field(default=None, alias="productType")
    description: str | None = Field(default=None)
    event_type: str | None = Field(default=None, alias="eventType")
    installed_at: datetime | None = Field(default=None, alias="installedAt")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True
        extra = "ignore"


class WebhookEvent(BaseModel):
    """A webhook delivery passed to registered handlers."""

    event: str = Field(description="Webhook event name")
    payload: dict[str, Any] = Field(default_factory=dict, description="Decoded request body")
    client_key: str | None = Field(default=None, description="Tenant that sent the event")

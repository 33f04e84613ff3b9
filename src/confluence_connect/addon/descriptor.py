"""Atlassian Connect add-on descriptor.

The descriptor is the JSON document a host fetches when the add-on is
installed. It names the add-on, says how requests are authenticated, and
lists the lifecycle callbacks and modules (here: webhooks) it provides.
See https://developer.atlassian.com/cloud/confluence/app-descriptor/
"""

from typing import Any

from pydantic import BaseModel, Field

from confluence_connect.core.models import Vendor, WebhookSubscription

DEFAULT_SCOPES = ["READ"]


def webhook_url(mount_path: str, subscription: WebhookSubscription) -> str:
    """Receiver URL of a subscription, relative to the add-on base URL."""
    if subscription.path:
        return f"{mount_path}/{subscription.path.lstrip('/')}"
    return f"{mount_path}/webhooks/{subscription.event}"


class AddonDescriptor(BaseModel):
    """Descriptor fields supplied by the connection configuration."""

    key: str = Field(description="Unique add-on key")
    name: str = Field(description="Add-on name")
    description: str | None = Field(default=None)
    vendor: Vendor | None = Field(default=None)
    base_url: str = Field(default="", alias="baseUrl", description="Public add-on URL")
    authentication: dict[str, str] = Field(default_factory=lambda: {"type": "jwt"})
    api_version: int = Field(default=1, alias="apiVersion")
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    def to_document(
        self,
        mount_path: str,
        webhooks: list[WebhookSubscription] | None = None,
    ) -> dict[str, Any]:
        """Render the descriptor JSON served at ``{mount_path}/addon``.

        Optional fields that are unset are left out of the document.

        Args:
            mount_path: Path the add-on endpoints are mounted under
            webhooks: Subscriptions to list as webhook modules, in order

        Returns:
            Descriptor document
        """
        document: dict[str, Any] = {
            "key": self.key,
            "name": self.name,
            "baseUrl": self.base_url,
            "authentication": dict(self.authentication),
            "apiVersion": self.api_version,
            "scopes": list(self.scopes),
            "lifecycle": {
                "installed": f"{mount_path}/installed",
                "uninstalled": f"{mount_path}/uninstalled",
            },
        }
        if self.description is not None:
            document["description"] = self.description
        if self.vendor is not None:
            document["vendor"] = self.vendor.model_dump()

        modules = []
        for subscription in webhooks or []:
            module: dict[str, Any] = {
                "event": subscription.event,
                "url": webhook_url(mount_path, subscription),
            }
            if subscription.filter:
                module["filter"] = subscription.filter
            if subscription.exclude_body:
                module["excludeBody"] = True
            modules.append(module)
        if modules:
            document["modules"] = {"webhooks": modules}

        return document

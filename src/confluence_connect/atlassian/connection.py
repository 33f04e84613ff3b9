"""Confluence connection with optional Atlassian Connect add-on.

A ``ConfluenceConnection`` exposes the Confluence REST API as ``api`` (a
ConfluenceClient). When the configuration carries an add-on block with both
``key`` and ``name``, ``connect()`` also builds an AtlassianAddon mounted on
the host application, so the connection can receive webhooks:

    POST {base_url}/jira/addon/webhooks/{event-name}
    GET  {base_url}/jira/addon/addon

Example:
    conn = ConfluenceConnection({
        "connection": {"host": "https://x.atlassian.net", "username": "u", "apiToken": "t"},
        "subApp": app,
        "addon": {"key": "my-addon", "name": "My Add-on"},
        "baseUrl": "https://mydomain.com/m/mymod",
        "webhooks": [{"event": "page_created"}],
    }).connect()

    page = conn.api.get_page("12345")
    conn.disconnect()
"""

import logging
from typing import Any

from confluence_connect.addon.addon import ADDON_MOUNT_PATH, AddonCredentials, AtlassianAddon
from confluence_connect.addon.descriptor import AddonDescriptor
from confluence_connect.atlassian.confluence import ConfluenceClient
from confluence_connect.core.interfaces import Connection
from confluence_connect.core.models import ConfluenceConfig
from confluence_connect.core.registry import register_connection

logger = logging.getLogger(__name__)


@register_connection("confluence")
class ConfluenceConnection(Connection):
    """Connection to a Confluence site.

    Attributes:
        api: REST client, None before connect() and after disconnect()
        addon: Add-on host, None unless add-on mode is configured
        config: Validated ConfluenceConfig
    """

    name = "Confluence"

    def __init__(
        self,
        config: ConfluenceConfig | dict[str, Any],
        global_config: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the connection without connecting.

        Args:
            config: ConfluenceConfig or a dict in the same shape
            global_config: Host-wide settings
        """
        if not isinstance(config, ConfluenceConfig):
            config = ConfluenceConfig.model_validate(config)
        super().__init__(config, global_config)
        self.config: ConfluenceConfig = config
        self.api: ConfluenceClient | None = None
        self.addon: AtlassianAddon | None = None

    def connect(self) -> "ConfluenceConnection":
        """Create the REST client and, if configured, the add-on.

        Calling this again replaces the client and the add-on. No request is
        sent to the site.

        Returns:
            self

        Raises:
            ValueError: If credentials cannot be resolved
            StoreConfigurationError: If the add-on tenant store is misconfigured
            ValidationError: If a webhook path collides with a built-in route
        """
        connection = self.config.connection
        previous = self.api
        self.api = ConfluenceClient(
            host=connection.host,
            username=connection.username,
            api_token=connection.api_token,
        )
        if previous is not None:
            previous.close()
        logger.info("Connected to Confluence at %s", self.api.base_url)

        self.setup_addon()

        return self

    def disconnect(self) -> bool:
        """Drop the REST client.

        Always returns True, including when connect() was never called.
        """
        if self.api is not None:
            self.api.close()
        else:
            logger.debug("disconnect() called without an open connection")
        self.api = None
        return True

    def setup_addon(self) -> None:
        """Build the add-on if the configuration asks for one.

        Uses the add-on key, name, description and vendor plus ``base_url``
        for the descriptor, fixes authentication to JWT, mounts the endpoints
        on ``sub_app`` under /jira/addon, stores tenants at
        ``connection_string`` and registers ``webhooks`` in order.
        """
        if not self.config.addon_enabled:
            return

        addon_info = self.config.addon
        assert addon_info is not None

        if not self.config.base_url:
            logger.warning(
                "Add-on %s has no base_url; descriptor baseUrl will be empty", addon_info.key
            )

        credentials = None
        if self.api is not None:
            credentials = AddonCredentials(
                api_token=self.api.credentials.api_token,
                username=self.api.credentials.username,
                host=self.api.credentials.host,
            )

        descriptor = AddonDescriptor(
            key=addon_info.key,
            name=addon_info.name,
            description=addon_info.description,
            vendor=addon_info.vendor,
            base_url=self.config.base_url or "",
            authentication={"type": "jwt"},
        )

        if self.addon is not None:
            self.addon.close()

        self.addon = AtlassianAddon(
            descriptor,
            app=self.config.sub_app,
            mount_path=ADDON_MOUNT_PATH,
            connection_string=self.config.connection_string,
            max_token_age=None,
            credentials=credentials,
        )

        if self.config.webhooks:
            self.addon.add_webhooks(self.config.webhooks)


def create_connection(
    config: ConfluenceConfig | dict[str, Any],
    global_config: dict[str, Any] | None = None,
) -> ConfluenceConnection:
    """Create an unconnected ConfluenceConnection."""
    return ConfluenceConnection(config, global_config)

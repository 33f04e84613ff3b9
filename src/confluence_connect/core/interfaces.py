"""Abstract interfaces for connections and wiki clients.

``Connection`` is the lifecycle contract every connection type implements.
``WikiProvider`` is the contract for the API client a connection exposes.
"""

from abc import ABC, abstractmethod
from typing import Any

from confluence_connect.core.models import Page


class Connection(ABC):
    """Abstract connection owned by a host application.

    Attributes:
        name: Display name of the connection type
        config: Connection-specific configuration
        global_config: Host-wide settings shared by all connections
    """

    name: str = "Connection"

    def __init__(self, config: Any, global_config: dict[str, Any] | None = None) -> None:
        """Initialize the connection.

        Args:
            config: Connection-specific configuration
            global_config: Host-wide settings
        """
        self.config = config
        self.global_config = global_config or {}

    @abstractmethod
    def connect(self) -> "Connection":
        """Open the connection and return self."""

    @abstractmethod
    def disconnect(self) -> bool:
        """Release the connection and report success."""

    def __enter__(self) -> "Connection":
        """Context manager entry."""
        return self.connect()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.disconnect()


class WikiProvider(ABC):
    """Abstract interface for wiki/documentation clients.

    Implementations: ConfluenceClient
    """

    @abstractmethod
    def get_page(self, page_id: str) -> Page | None:
        """Get a page by its ID.

        Args:
            page_id: Unique page identifier

        Returns:
            Page object or None if not found
        """

    @abstractmethod
    def get_page_by_title(self, space: str, title: str) -> Page | None:
        """Get a page by its title within a space.

        Args:
            space: Space key
            title: Exact page title

        Returns:
            Page object or None if not found
        """

    @abstractmethod
    def create_page(
        self,
        title: str,
        content: str,
        space: str | None = None,
        parent_id: str | None = None,
        **kwargs: Any,
    ) -> Page:
        """Create a new page.

        Args:
            title: Page title
            content: Page content
            space: Space key (uses default if not specified)
            parent_id: Parent page ID for hierarchy
            **kwargs: Provider-specific arguments

        Returns:
            Created Page object
        """

    @abstractmethod
    def update_page(
        self,
        page_id: str,
        content: str,
        title: str | None = None,
    ) -> Page:
        """Update an existing page.

        Args:
            page_id: Page ID
            content: New page content
            title: New title (optional)

        Returns:
            Updated Page object
        """

    @abstractmethod
    def append_to_page(self, page_id: str, content: str) -> Page:
        """Append content to an existing page."""

    @abstractmethod
    def search(
        self,
        query: str,
        space: str | None = None,
        limit: int = 25,
    ) -> list[Page]:
        """Search for pages.

        Args:
            query: Search query (text or CQL)
            space: Limit search to a space
            limit: Maximum number of results

        Returns:
            List of matching Page objects
        """

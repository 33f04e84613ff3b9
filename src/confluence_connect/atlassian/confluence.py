"""Confluence REST API client.

``ConfluenceClient`` is the object a ConfluenceConnection exposes as ``api``.

Example:
    from confluence_connect.atlassian.confluence import ConfluenceClient

    with ConfluenceClient(host="https://x.atlassian.net", username="u", api_token="t") as api:
        page = api.get_page_by_title("DEVOPS", "Deploy Guide")
        api.append_to_page(page.id, "<h2>New Section</h2><p>Content</p>")
"""

import logging
from datetime import datetime
from typing import Any

from confluence_connect.atlassian.base import AtlassianClient
from confluence_connect.core.exceptions import NotFoundError, ProviderError, ValidationError
from confluence_connect.core.interfaces import WikiProvider
from confluence_connect.core.models import Page

logger = logging.getLogger(__name__)

CONFLUENCE_API_V2 = "/wiki/api/v2"
CONFLUENCE_API_V1 = "/wiki/rest/api"

# Presence of any of these marks a search query as CQL rather than free text
CQL_OPERATORS = ("=", "~", " AND ", " OR ", " NOT ", "ORDER BY")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class ConfluenceClient(AtlassianClient, WikiProvider):
    """Confluence Cloud REST client.

    Attributes:
        space: Default space key for creating pages
    """

    provider_name = "confluence"

    def __init__(self, space: str | None = None, **kwargs: Any) -> None:
        """Initialize the client.

        Args:
            space: Default space key for creating pages
            **kwargs: Passed to AtlassianClient (host, username, api_token, ...)
        """
        super().__init__(**kwargs)
        self.space = space

    def test_connection(self) -> bool:
        """Check that the site is reachable and the credentials are accepted.

        Returns:
            True if the current user can be read

        Raises:
            AuthenticationError: If authentication fails
            ConnectorConnectionError: If the host cannot be reached
        """
        self.get_current_user()
        logger.info("Connection test successful for %s", self.base_url)
        return True

    def get_current_user(self) -> dict[str, Any]:
        """Get the account the client authenticates as."""
        return self._get(f"{CONFLUENCE_API_V1}/user/current")

    def get_page(self, page_id: str) -> Page | None:
        """Get a page by its ID, or None if it does not exist."""
        try:
            data = self._get(
                f"{CONFLUENCE_API_V2}/pages/{page_id}",
                params={"body-format": "storage"},
            )
        except NotFoundError:
            logger.debug("Page %s not found", page_id)
            return None
        return self._parse_page(data)

    def get_page_by_title(self, space: str, title: str) -> Page | None:
        """Get a page by exact title within a space, or None."""
        space_id = self._get_space_id(space)
        data = self._get(
            f"{CONFLUENCE_API_V2}/spaces/{space_id}/pages",
            params={"title": title, "body-format": "storage"},
        )
        results = data.get("results", [])
        if not results:
            logger.debug("Page '%s' not found in space %s", title, space)
            return None
        return self._parse_page(results[0])

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
            content: Page content in storage format
            space: Space key (uses default if not specified)
            parent_id: Parent page ID
            **kwargs: ``labels`` to attach after creation

        Returns:
            Created Page object

        Raises:
            ValidationError: If no space key is available
        """
        space = space or self.space
        if not space:
            raise ValidationError(
                "Space key is required. Set default space or provide explicitly.",
                field="space",
                provider=self.provider_name,
            )

        payload: dict[str, Any] = {
            "spaceId": self._get_space_id(space),
            "status": "current",
            "title": title,
            "body": {"representation": "storage", "value": content},
        }
        if parent_id:
            payload["parentId"] = parent_id

        logger.debug("Creating page in %s: %s", space, title)
        data = self._post(f"{CONFLUENCE_API_V2}/pages", json=payload)
        page_id = str(data.get("id", ""))
        logger.info("Created page %s: %s", page_id, title)

        if kwargs.get("labels"):
            self.add_labels(page_id, kwargs["labels"])

        return self.get_page(page_id) or Page(id=page_id, title=title, content=content, space=space)

    def update_page(self, page_id: str, content: str, title: str | None = None) -> Page:
        """Replace a page body, bumping its version.

        Raises:
            NotFoundError: If the page does not exist
        """
        current = self._require_page(page_id)
        next_version = current.version + 1

        payload: dict[str, Any] = {
            "id": page_id,
            "status": "current",
            "title": title or current.title,
            "body": {"representation": "storage", "value": content},
            "version": {"number": next_version},
        }

        logger.debug("Updating page %s (version %d -> %d)", page_id, current.version, next_version)
        self._put(f"{CONFLUENCE_API_V2}/pages/{page_id}", json=payload)
        logger.info("Updated page %s", page_id)

        updated = self.get_page(page_id)
        if not updated:
            raise ProviderError(
                f"Failed to retrieve updated page {page_id}",
                provider=self.provider_name,
            )
        return updated

    def append_to_page(self, page_id: str, content: str) -> Page:
        """Append storage-format content to the end of a page."""
        current = self._require_page(page_id)
        return self.update_page(page_id, (current.content or "") + content)

    def delete_page(self, page_id: str) -> None:
        """Delete a page."""
        self._delete(f"{CONFLUENCE_API_V2}/pages/{page_id}")
        logger.info("Deleted page %s", page_id)

    def search(self, query: str, space: str | None = None, limit: int = 25) -> list[Page]:
        """Search for pages with CQL.

        Free text is wrapped as ``text ~ "..."``; anything containing a CQL
        operator is passed through.

        Example:
            pages = api.search("deployment guide")
            pages = api.search("type=page AND label=runbook")
        """
        if any(op in query for op in CQL_OPERATORS):
            cql = query
        else:
            escaped = query.replace('"', '\\"')
            cql = f'text ~ "{escaped}"'
        if space:
            cql = f'{cql} AND space = "{space}"'

        logger.debug("Searching Confluence: %s", cql)
        data = self._get(
            f"{CONFLUENCE_API_V1}/content/search",
            params={
                "cql": cql,
                "limit": min(limit, 100),
                "expand": "space,version,body.storage,history",
            },
        )
        pages = [self._parse_page_v1(result) for result in data.get("results", [])]
        logger.debug("Found %d pages", len(pages))
        return pages

    def get_page_children(self, page_id: str) -> list[Page]:
        """Get the direct child pages of a page."""
        data = self._get(
            f"{CONFLUENCE_API_V2}/pages/{page_id}/children",
            params={"body-format": "storage"},
        )
        return [self._parse_page(result) for result in data.get("results", [])]

    def get_space(self, space_key: str) -> dict[str, Any]:
        """Get space details by key.

        Raises:
            NotFoundError: If no space has this key
        """
        data = self._get(f"{CONFLUENCE_API_V2}/spaces", params={"keys": space_key})
        results = data.get("results", [])
        if not results:
            raise NotFoundError(
                f"Space {space_key} not found",
                resource_type="space",
                resource_id=space_key,
                provider=self.provider_name,
            )
        return dict(results[0])

    def add_labels(self, page_id: str, labels: list[str]) -> None:
        """Attach labels to a page."""
        self._post(
            f"{CONFLUENCE_API_V1}/content/{page_id}/label",
            json=[{"prefix": "global", "name": label} for label in labels],
        )
        logger.debug("Added labels %s to page %s", labels, page_id)

    def _get_space_id(self, space_key: str) -> str:
        return str(self.get_space(space_key).get("id", ""))

    def _require_page(self, page_id: str) -> Page:
        page = self.get_page(page_id)
        if not page:
            raise NotFoundError(
                f"Page {page_id} not found",
                resource_type="page",
                resource_id=page_id,
                provider=self.provider_name,
            )
        return page

    def _parse_page(self, data: dict[str, Any]) -> Page:
        """Parse a v2 page response into a Page."""
        version = data.get("version", {})
        return Page(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            content=data.get("body", {}).get("storage", {}).get("value") or None,
            # v2 only returns the space ID
            space=str(data["spaceId"]) if data.get("spaceId") else None,
            version=version.get("number", 1),
            author=version.get("authorId"),
            created_at=_parse_timestamp(data.get("createdAt")),
            updated_at=_parse_timestamp(version.get("createdAt")),
            url=f"{self.base_url}/wiki{data.get('_links', {}).get('webui', '')}",
            parent_id=str(data["parentId"]) if data.get("parentId") else None,
            raw=data,
        )

    def _parse_page_v1(self, data: dict[str, Any]) -> Page:
        """Parse a v1 content response into a Page."""
        version = data.get("version", {})
        by = version.get("by", {})
        return Page(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            content=data.get("body", {}).get("storage", {}).get("value") or None,
            space=data.get("space", {}).get("key"),
            version=version.get("number", 1),
            author=by.get("email") or by.get("displayName"),
            created_at=_parse_timestamp(data.get("history", {}).get("createdDate")),
            updated_at=_parse_timestamp(version.get("when")),
            url=f"{self.base_url}/wiki{data.get('_links', {}).get('webui', '')}",
            raw=data,
        )

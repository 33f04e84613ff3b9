"""Shared pytest fixtures for confluence-connect tests."""

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest

from confluence_connect.core.models import ConfluenceConfig, Page

TEST_HOST = "https://test.atlassian.net"


@pytest.fixture
def mock_credentials() -> Iterator[MagicMock]:
    """Mock get_credentials to return test credentials."""
    with patch("confluence_connect.atlassian.base.get_credentials") as mock:
        mock.return_value = MagicMock(
            host=TEST_HOST,
            username="test@example.com",
            api_token="test-token",
        )
        yield mock


@pytest.fixture
def no_sleep() -> Iterator[MagicMock]:
    """Skip retry delays."""
    with patch("confluence_connect.atlassian.base.time.sleep") as mock:
        yield mock


@pytest.fixture
def connection_info() -> dict:
    """Explicit connection parameters using camelCase keys."""
    return {"host": TEST_HOST, "username": "u", "apiToken": "t"}


@pytest.fixture
def addon_config(connection_info: dict) -> ConfluenceConfig:
    """Configuration with add-on mode enabled and no host app."""
    return ConfluenceConfig.model_validate(
        {
            "connection": connection_info,
            "addon": {"key": "k", "name": "n"},
            "baseUrl": "https://addon.example.com",
        }
    )


@pytest.fixture
def sample_page() -> Page:
    """Create a sample Page for testing."""
    return Page(
        id="83820565",
        title="Test Page",
        content="<h1>Test</h1><p>Content</p>",
        space="DEVOPS",
        version=1,
    )

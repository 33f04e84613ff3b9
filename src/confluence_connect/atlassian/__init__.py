"""Atlassian clients and the Confluence connection.

- ConfluenceConnection: connect/disconnect lifecycle with optional add-on
- ConfluenceClient: Confluence REST API client exposed as ``connection.api``
- AtlassianClient: base HTTP client with auth and retry logic

Example:
    from confluence_connect.atlassian import ConfluenceConnection

    with ConfluenceConnection({"connection": {"host": "https://x.atlassian.net"}}) as conn:
        page = conn.api.get_page("12345")
"""

from confluence_connect.atlassian.base import AtlassianClient
from confluence_connect.atlassian.confluence import ConfluenceClient
from confluence_connect.atlassian.connection import ConfluenceConnection, create_connection
from confluence_connect.atlassian.credentials import (
    ConfluenceCredentials,
    delete_credentials,
    get_credentials,
    save_credentials,
)

__all__ = [
    "AtlassianClient",
    "ConfluenceClient",
    "ConfluenceConnection",
    "ConfluenceCredentials",
    "create_connection",
    "get_credentials",
    "save_credentials",
    "delete_credentials",
]

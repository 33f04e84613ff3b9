"""Credential resolution for the Confluence REST API.

Each of ``host``, ``username`` and ``api_token`` is resolved on its own, taking
the first non-empty value from:
1. The connection configuration (``ConnectionInfo``)
2. Environment variables (CONFLUENCE_HOST, CONFLUENCE_USERNAME, CONFLUENCE_API_TOKEN)
3. System keyring, service ``confluence-connect``
4. The nearest .env file (current directory or a parent)

Example:
    from confluence_connect.atlassian.credentials import get_credentials
    from confluence_connect.core.models import ConnectionInfo

    # Token from the keyring, site and user from the configuration
    creds = get_credentials(ConnectionInfo(host="https://x.atlassian.net", username="me"))
"""

import logging
import os
from collections.abc import Callable
from typing import NamedTuple

import keyring
from dotenv import dotenv_values, find_dotenv

from confluence_connect.core.models import ConnectionInfo

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "confluence-connect"

ENV_HOST = "CONFLUENCE_HOST"
ENV_USERNAME = "CONFLUENCE_USERNAME"
ENV_API_TOKEN = "CONFLUENCE_API_TOKEN"  # noqa: S105

# ConnectionInfo field -> (environment variable, keyring account)
SOURCES = {
    "host": (ENV_HOST, "host"),
    "username": (ENV_USERNAME, "username"),
    "api_token": (ENV_API_TOKEN, "api_token"),
}


class ConfluenceCredentials(NamedTuple):
    """Fully resolved Confluence API credentials."""

    host: str
    username: str
    api_token: str


def get_credentials(
    connection: ConnectionInfo | None = None,
    service: str = DEFAULT_SERVICE,
) -> ConfluenceCredentials:
    """Resolve credentials, filling gaps in ``connection`` from other sources.

    Args:
        connection: Configured connection values; empty fields are looked up
        service: Keyring service name

    Returns:
        ConfluenceCredentials with the host stripped of a trailing slash

    Raises:
        ValueError: If a field has no value in any source
    """
    # 1. Use values from the connection configuration
    resolved: dict[str, str | None] = (connection or ConnectionInfo()).model_dump(
        include=set(SOURCES)
    )

    # 2. Fall back to environment variables
    _fill(resolved, lambda field: os.environ.get(SOURCES[field][0]))

    # 3. Fall back to keyring
    _fill(resolved, lambda field: _get_from_keyring(service, SOURCES[field][1]))

    # 4. Fall back to .env file
    if not all(resolved.values()):
        dotenv = _load_dotenv()
        _fill(resolved, lambda field: dotenv.get(SOURCES[field][0]))

    missing = [field for field in SOURCES if not resolved[field]]
    if missing:
        raise ValueError(
            f"Missing Confluence credentials: {', '.join(missing)}. "
            f"Set environment variables ({ENV_HOST}, {ENV_USERNAME}, {ENV_API_TOKEN}), "
            f"use the keyring, or provide them in the connection configuration."
        )

    return ConfluenceCredentials(
        host=str(resolved["host"]).rstrip("/"),
        username=str(resolved["username"]),
        api_token=str(resolved["api_token"]),
    )


def save_credentials(connection: ConnectionInfo, service: str = DEFAULT_SERVICE) -> None:
    """Store the non-empty fields of ``connection`` in the system keyring."""
    for field, value in connection.model_dump(include=set(SOURCES)).items():
        if value:
            keyring.set_password(service, SOURCES[field][1], value)
    logger.info("Credentials saved to keyring (service: %s)", service)


def delete_credentials(service: str = DEFAULT_SERVICE) -> None:
    """Remove stored credentials; absent entries are skipped."""
    for _, account in SOURCES.values():
        try:
            keyring.delete_password(service, account)
        except keyring.errors.PasswordDeleteError:
            logger.debug("No keyring entry %s/%s to delete", service, account)
    logger.info("Credentials deleted from keyring (service: %s)", service)


def _fill(resolved: dict[str, str | None], lookup: Callable[[str], str | None]) -> None:
    for field, value in resolved.items():
        if not value:
            resolved[field] = lookup(field)


def _get_from_keyring(service: str, account: str) -> str | None:
    try:
        return keyring.get_password(service, account)
    except keyring.errors.KeyringError as e:
        logger.debug("Keyring error for %s/%s: %s", service, account, e)
        return None


def _load_dotenv() -> dict[str, str]:
    """Variables from the nearest .env file, without touching os.environ."""
    path = find_dotenv(usecwd=True)
    if not path:
        return {}
    logger.debug("Loading .env from %s", path)
    return {key: value for key, value in dotenv_values(path).items() if value is not None}

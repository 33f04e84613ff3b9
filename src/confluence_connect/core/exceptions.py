"""Errors raised by confluence-connect.

Two families share the ``ConnectorError`` base:

- REST client errors, one per outcome of a Confluence API call
  (``AuthenticationError``, ``NotFoundError``, ``RateLimitError``,
  ``ProviderError``, ``ConnectorConnectionError``).
- Add-on errors, raised while serving Atlassian Connect requests
  (``InvalidTokenError``, ``UnknownTenantError``, ``WebhookNotRegisteredError``)
  or while building the add-on (``StoreConfigurationError``).

``http_status`` is the status the add-on endpoints answer with when the
error escapes a request handler.
"""

from typing import Any


class ConnectorError(Exception):
    """Base error; ``provider`` names the component that raised it."""

    http_status = 500

    def __init__(
        self, message: str, provider: str | None = None, details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.provider}] {self.message}" if self.provider else self.message


class AuthenticationError(ConnectorError):
    """Credentials were rejected by the site, or a Connect request was not signed."""

    http_status = 401


class NotFoundError(ConnectorError):
    """A page, space, tenant or webhook does not exist."""

    http_status = 404

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_id: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, provider, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ValidationError(ConnectorError):
    """Rejected input; ``field`` names the offending setting or payload key."""

    http_status = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, provider, details)
        self.field = field


class RateLimitError(ConnectorError):
    """The site kept answering 429 after every retry."""

    def __init__(
        self,
        message: str,
        retry_after: int | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, provider, details)
        self.retry_after = retry_after


class ProviderError(ConnectorError):
    """The site answered with an unexpected HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, provider, details)
        self.status_code = status_code


class ConnectorConnectionError(ConnectorError):
    """The site could not be reached (timeouts, refused connections)."""


class InvalidTokenError(AuthenticationError):
    """A Connect JWT is missing, malformed, expired or bound to another request.

    ``client_key`` is the token issuer when it could be read.
    """

    def __init__(
        self,
        message: str,
        client_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, provider="jwt", details=details)
        self.client_key = client_key


class UnknownTenantError(InvalidTokenError):
    """A JWT was issued by a client key with no stored installation."""

    def __init__(self, client_key: str):
        super().__init__(f"Unknown JWT issuer: {client_key}", client_key=client_key)


class WebhookNotRegisteredError(NotFoundError):
    """A delivery arrived for an event nothing subscribed to."""

    def __init__(self, event: str, provider: str | None = None):
        super().__init__(
            f"No webhook registered for event {event}",
            resource_type="webhook",
            resource_id=event,
            provider=provider,
        )
        self.event = event


class StoreConfigurationError(ValidationError):
    """The tenant store connection string names no usable backend."""

    def __init__(self, connection_string: str, reason: str):
        super().__init__(
            f"Unsupported tenant store connection string: {reason}",
            field="connection_string",
            provider="tenant_store",
            details={"scheme": connection_string.partition("://")[0]},
        )

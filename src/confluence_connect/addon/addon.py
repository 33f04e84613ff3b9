"""Atlassian Connect add-on host.

``AtlassianAddon`` serves the descriptor, records installations, verifies
JWT-signed requests and dispatches webhook deliveries to handlers. Its
endpoints live on a FastAPI ``APIRouter`` mounted on the host application:

    GET  {mount_path}/addon               descriptor document
    POST {mount_path}/installed           lifecycle: tenant installed
    POST {mount_path}/uninstalled         lifecycle: tenant removed
    POST {mount_path}/webhooks/{event}    webhook receiver

Example:
    app = FastAPI()
    addon = AtlassianAddon(AddonDescriptor(key="k", name="n"), app)

    @addon.on_webhook("page_created")
    def page_created(event: WebhookEvent) -> None:
        ...
"""

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any, NamedTuple
from urllib.parse import urlparse

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from starlette.routing import BaseRoute
from pydantic import ValidationError as PydanticValidationError

from confluence_connect.addon.descriptor import AddonDescriptor, webhook_url
from confluence_connect.addon.jwt_auth import decode_token, extract_token
from confluence_connect.addon.store import TenantStore, create_store
from confluence_connect.core.exceptions import (
    ConnectorError,
    InvalidTokenError,
    ValidationError,
    WebhookNotRegisteredError,
)
from confluence_connect.core.models import Tenant, WebhookEvent, WebhookSubscription

logger = logging.getLogger(__name__)

ADDON_MOUNT_PATH = "/jira/addon"
LIFECYCLE_PATHS = ("/addon", "/installed", "/uninstalled")
WEBHOOKS_PREFIX = "/webhooks/"

WebhookHandler = Callable[[WebhookEvent], Any]


class AddonCredentials(NamedTuple):
    """API credentials the add-on uses to call back into the host site."""

    api_token: str
    username: str
    host: str


def _http_error(exc: ConnectorError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.message)


def _is_builtin_path(relative: str) -> bool:
    """Whether a path below the mount point is matched by a built-in route."""
    if relative in LIFECYCLE_PATHS:
        return True
    event = relative[len(WEBHOOKS_PREFIX) :] if relative.startswith(WEBHOOKS_PREFIX) else ""
    return bool(event) and "/" not in event


class AtlassianAddon:
    """An Atlassian Connect add-on mounted on a FastAPI application.

    Attributes:
        descriptor: Descriptor fields
        app: Host application the router is mounted on (may be None)
        mount_path: Path prefix of every add-on endpoint
        store: Installed tenants
        max_token_age: Maximum accepted JWT age in seconds (None: only exp)
        credentials: API credentials for calling back into the host site
        router: FastAPI router holding the add-on endpoints
    """

    provider_name = "confluence_addon"

    def __init__(
        self,
        descriptor: AddonDescriptor,
        app: FastAPI | None = None,
        mount_path: str = ADDON_MOUNT_PATH,
        connection_string: str | None = None,
        max_token_age: int | None = None,
        credentials: AddonCredentials | None = None,
    ) -> None:
        """Initialize the add-on and mount its endpoints.

        Args:
            descriptor: Descriptor fields
            app: Host application; when None the router is built but not mounted
            mount_path: Path prefix for the add-on endpoints
            connection_string: Tenant store location (see addon.store)
            max_token_age: Maximum accepted JWT age in seconds
            credentials: API credentials for the host site

        Raises:
            StoreConfigurationError: If the tenant store connection string is unusable
        """
        self.descriptor = descriptor
        self.app = app
        self.mount_path = "/" + mount_path.strip("/")
        self.max_token_age = max_token_age
        self.credentials = credentials
        self.store: TenantStore = create_store(connection_string, namespace=descriptor.key)

        self._webhooks: list[WebhookSubscription] = []
        self._events: set[str] = set()
        self._handlers: dict[str, list[WebhookHandler]] = {}
        self._app_routes: list[BaseRoute] = []

        self.router = APIRouter(prefix=self.mount_path, tags=["Atlassian Connect"])
        self._add_routes()

        if app is not None:
            self._track_app_routes(lambda: app.include_router(self.router))
            logger.info("Mounted add-on %s at %s", descriptor.key, self.mount_path)
        else:
            logger.debug("No host app given; add-on %s router is not mounted", descriptor.key)

    @property
    def webhooks(self) -> list[WebhookSubscription]:
        """Registered webhook subscriptions, in registration order."""
        return list(self._webhooks)

    def descriptor_document(self) -> dict[str, Any]:
        """Descriptor JSON served at ``{mount_path}/addon``."""
        return self.descriptor.to_document(self.mount_path, self._webhooks)

    def add_webhooks(self, subscriptions: Iterable[WebhookSubscription | dict[str, Any]]) -> None:
        """Register webhook subscriptions in the order given.

        Entries are neither deduplicated nor checked against known event names.
        """
        for subscription in subscriptions:
            self.add_webhook(subscription)

    def add_webhook(self, subscription: WebhookSubscription | dict[str, Any]) -> None:
        """Register one webhook subscription.

        Raises:
            ValidationError: If a custom path would be served by a built-in route
        """
        if not isinstance(subscription, WebhookSubscription):
            subscription = WebhookSubscription.model_validate(subscription)

        url = webhook_url(self.mount_path, subscription)
        custom = url != f"{self.mount_path}/webhooks/{subscription.event}"
        if custom and _is_builtin_path(url[len(self.mount_path) :]):
            raise ValidationError(
                f"Webhook path {subscription.path} for {subscription.event} is taken by a "
                "built-in add-on route",
                field="path",
                provider=self.provider_name,
            )

        self._webhooks.append(subscription)
        self._events.add(subscription.event)
        if subscription.handler is not None:
            self._handlers.setdefault(subscription.event, []).append(subscription.handler)

        if custom:
            self._add_event_route(url, subscription.event)

        logger.debug("Registered webhook %s -> %s", subscription.event, url)

    def on_webhook(self, event: str) -> Callable[[WebhookHandler], WebhookHandler]:
        """Decorator adding a handler for a webhook event."""

        def decorator(handler: WebhookHandler) -> WebhookHandler:
            self._events.add(event)
            self._handlers.setdefault(event, []).append(handler)
            return handler

        return decorator

    def handle_webhook(
        self,
        event: str,
        payload: dict[str, Any] | None = None,
        client_key: str | None = None,
    ) -> int:
        """Run every handler for an event, in registration order.

        Returns:
            Number of handlers invoked

        Raises:
            WebhookNotRegisteredError: If nothing is subscribed to the event
        """
        if event not in self._events:
            raise WebhookNotRegisteredError(event, provider=self.provider_name)

        handlers = self._handlers.get(event, [])
        delivery = WebhookEvent(event=event, payload=payload or {}, client_key=client_key)
        for handler in handlers:
            handler(delivery)

        logger.debug("Dispatched %s to %d handler(s)", event, len(handlers))
        return len(handlers)

    def authenticate(self, request: Request) -> dict[str, Any]:
        """Verify the JWT on an incoming request and return its claims.

        Raises:
            InvalidTokenError: If the token is missing or invalid
            UnknownTenantError: If the issuer is not installed
        """
        token = extract_token(request.headers.get("authorization"), request.query_params)
        if not token:
            raise InvalidTokenError("Missing JWT")

        return decode_token(
            token,
            self._shared_secret,
            request.method,
            self._relative_path(request.url.path),
            request.query_params.multi_items(),
            max_token_age=self.max_token_age,
        )

    def close(self) -> None:
        """Unmount the endpoints from the host app and release the tenant store."""
        if self.app is not None and self._app_routes:
            mounted = {id(route) for route in self._app_routes}
            self.app.router.routes[:] = [
                route for route in self.app.router.routes if id(route) not in mounted
            ]
            self._app_routes.clear()
            logger.debug("Unmounted add-on %s from %s", self.descriptor.key, self.mount_path)
        self.store.close()

    def _shared_secret(self, client_key: str) -> str | None:
        tenant = self.store.get(client_key)
        return tenant.shared_secret if tenant else None

    def _relative_path(self, path: str) -> str:
        """Strip the path part of the public base URL from a request path."""
        base_path = urlparse(self.descriptor.base_url).path.rstrip("/")
        if base_path and path.startswith(base_path + "/"):
            return path[len(base_path) :]
        return path

    async def _read_json(self, request: Request) -> dict[str, Any]:
        body = await request.body()
        if not body:
            return {}
        try:
            data = json.loads(body)
        except ValueError as e:
            raise ValidationError(
                "Request body is not valid JSON", provider=self.provider_name
            ) from e
        if not isinstance(data, dict):
            raise ValidationError(
                "Request body must be a JSON object", provider=self.provider_name
            )
        return data

    async def _installed(self, request: Request) -> None:
        payload = await self._read_json(request)
        try:
            tenant = Tenant.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid installation payload",
                provider=self.provider_name,
                details={"errors": e.errors()},
            ) from e

        # re-installs must be signed with the secret from the previous install
        if self.store.get(tenant.client_key) is not None:
            claims = self.authenticate(request)
            if claims["iss"] != tenant.client_key:
                raise InvalidTokenError(
                    "JWT issuer does not match clientKey", client_key=claims["iss"]
                )

        tenant.installed_at = datetime.now(timezone.utc)
        self.store.set(tenant)
        logger.info("Installed add-on %s for %s", self.descriptor.key, tenant.base_url)

    async def _uninstalled(self, request: Request) -> None:
        claims = self.authenticate(request)
        payload = await self._read_json(request)
        client_key = payload.get("clientKey", claims["iss"])
        if client_key != claims["iss"]:
            raise InvalidTokenError(
                "JWT issuer does not match clientKey", client_key=claims["iss"]
            )
        self.store.delete(client_key)
        logger.info("Uninstalled add-on %s for %s", self.descriptor.key, client_key)

    async def _webhook(self, event: str, request: Request) -> dict[str, Any]:
        claims = self.authenticate(request)
        payload = await self._read_json(request)
        handled = self.handle_webhook(event, payload, client_key=claims["iss"])
        return {"event": event, "handled": handled}

    def _add_routes(self) -> None:
        async def get_descriptor() -> dict[str, Any]:
            return self.descriptor_document()

        async def installed(request: Request) -> Response:
            try:
                await self._installed(request)
            except ConnectorError as e:
                raise _http_error(e) from e
            return Response(status_code=204)

        async def uninstalled(request: Request) -> Response:
            try:
                await self._uninstalled(request)
            except ConnectorError as e:
                raise _http_error(e) from e
            return Response(status_code=204)

        async def receive_webhook(event: str, request: Request) -> dict[str, Any]:
            try:
                return await self._webhook(event, request)
            except ConnectorError as e:
                raise _http_error(e) from e

        self.router.add_api_route("/addon", get_descriptor, methods=["GET"])
        self.router.add_api_route("/installed", installed, methods=["POST"])
        self.router.add_api_route("/uninstalled", uninstalled, methods=["POST"])
        self.router.add_api_route("/webhooks/{event}", receive_webhook, methods=["POST"])

    def _add_event_route(self, url: str, event: str) -> None:
        """Route a custom subscription path to the dispatcher for ``event``."""

        async def receive_event(request: Request) -> dict[str, Any]:
            try:
                return await self._webhook(event, request)
            except ConnectorError as e:
                raise _http_error(e) from e

        relative = url[len(self.mount_path) :]
        self.router.add_api_route(relative, receive_event, methods=["POST"])
        # routes added after include_router are not copied to the app
        if self.app is not None:
            app = self.app
            self._track_app_routes(
                lambda: app.add_api_route(url, receive_event, methods=["POST"])
            )

    def _track_app_routes(self, register: Callable[[], None]) -> None:
        """Remember the routes ``register`` adds to the host app, for close()."""
        assert self.app is not None
        known = len(self.app.router.routes)
        register()
        self._app_routes.extend(self.app.router.routes[known:])

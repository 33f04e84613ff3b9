"""Tests for the AtlassianAddon host and its HTTP endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from confluence_connect.addon.addon import AtlassianAddon
from confluence_connect.addon.descriptor import AddonDescriptor
from confluence_connect.addon.jwt_auth import encode_token
from confluence_connect.core.exceptions import (
    NotFoundError,
    ValidationError,
    WebhookNotRegisteredError,
)
from confluence_connect.core.models import Tenant, WebhookEvent, WebhookSubscription

INSTALL_PAYLOAD = {
    "key": "k",
    "clientKey": "tenant-1",
    "sharedSecret": "secret",
    "baseUrl": "https://x.atlassian.net/wiki",
    "productType": "confluence",
    "eventType": "installed",
}


@pytest.fixture
def app() -> FastAPI:
    """Host application."""
    return FastAPI()


@pytest.fixture
def addon(app: FastAPI) -> AtlassianAddon:
    """Add-on mounted on the host app with one subscription."""
    descriptor = AddonDescriptor(key="k", name="n", baseUrl="https://addon.example.com")
    addon = AtlassianAddon(descriptor, app)
    addon.add_webhooks([{"event": "page_created"}])
    return addon


@pytest.fixture
def client(app: FastAPI, addon: AtlassianAddon) -> TestClient:
    """HTTP client for the host app."""
    return TestClient(app)


@pytest.fixture
def installed(addon: AtlassianAddon) -> Tenant:
    """Store an installed tenant."""
    tenant = Tenant.model_validate(INSTALL_PAYLOAD)
    addon.store.set(tenant)
    return tenant


def auth(method: str, path: str, secret: str = "secret", issuer: str = "tenant-1") -> dict:
    """Authorization header for a signed request."""
    return {"Authorization": f"JWT {encode_token(issuer, secret, method, path)}"}


class TestDescriptorEndpoint:
    """Tests for GET /jira/addon/addon."""

    def test_descriptor(self, client: TestClient) -> None:
        """Test that the descriptor lists registered webhooks."""
        response = client.get("/jira/addon/addon")

        assert response.status_code == 200
        document = response.json()
        assert document["key"] == "k"
        assert document["modules"]["webhooks"] == [
            {"event": "page_created", "url": "/jira/addon/webhooks/page_created"}
        ]

    def test_unmounted_router(self) -> None:
        """Test that the router can be included later."""
        addon = AtlassianAddon(AddonDescriptor(key="k", name="n"))
        app = FastAPI()
        app.include_router(addon.router)

        assert TestClient(app).get("/jira/addon/addon").json()["name"] == "n"


class TestLifecycle:
    """Tests for the installed and uninstalled callbacks."""

    def test_first_install(self, client: TestClient, addon: AtlassianAddon) -> None:
        """Test that a new tenant is stored without a JWT."""
        response = client.post("/jira/addon/installed", json=INSTALL_PAYLOAD)

        assert response.status_code == 204
        tenant = addon.store.get("tenant-1")
        assert tenant is not None
        assert tenant.shared_secret == "secret"
        assert tenant.installed_at is not None

    def test_install_invalid_payload(self, client: TestClient) -> None:
        """Test that payloads without clientKey are rejected."""
        response = client.post("/jira/addon/installed", json={"baseUrl": "x"})
        assert response.status_code == 400

    def test_reinstall_requires_jwt(
        self, client: TestClient, addon: AtlassianAddon, installed: Tenant
    ) -> None:
        """Test that an existing tenant can only be replaced with a signed request."""
        payload = {**INSTALL_PAYLOAD, "sharedSecret": "new-secret"}

        unsigned = client.post("/jira/addon/installed", json=payload)
        assert unsigned.status_code == 401

        signed = client.post(
            "/jira/addon/installed", json=payload, headers=auth("POST", "/jira/addon/installed")
        )
        assert signed.status_code == 204
        stored = addon.store.get("tenant-1")
        assert stored is not None
        assert stored.shared_secret == "new-secret"

    def test_uninstall(self, client: TestClient, addon: AtlassianAddon, installed: Tenant) -> None:
        """Test that a signed uninstall removes the tenant."""
        response = client.post(
            "/jira/addon/uninstalled",
            json={"clientKey": "tenant-1"},
            headers=auth("POST", "/jira/addon/uninstalled"),
        )

        assert response.status_code == 204
        assert addon.store.get("tenant-1") is None

    def test_uninstall_other_tenant(
        self, client: TestClient, addon: AtlassianAddon, installed: Tenant
    ) -> None:
        """Test that a tenant cannot uninstall another one."""
        addon.store.set(Tenant(clientKey="tenant-2", sharedSecret="s2", baseUrl="https://y"))

        response = client.post(
            "/jira/addon/uninstalled",
            json={"clientKey": "tenant-2"},
            headers=auth("POST", "/jira/addon/uninstalled"),
        )

        assert response.status_code == 401
        assert addon.store.get("tenant-2") is not None


class TestWebhookEndpoint:
    """Tests for POST /jira/addon/webhooks/{event}."""

    def test_dispatch_in_order(
        self, client: TestClient, addon: AtlassianAddon, installed: Tenant
    ) -> None:
        """Test that handlers run in registration order with the payload."""
        calls: list[tuple[str, WebhookEvent]] = []
        addon.on_webhook("page_created")(lambda e: calls.append(("first", e)))
        addon.on_webhook("page_created")(lambda e: calls.append(("second", e)))

        path = "/jira/addon/webhooks/page_created"
        response = client.post(path, json={"page": {"id": "1"}}, headers=auth("POST", path))

        assert response.status_code == 200
        assert response.json() == {"event": "page_created", "handled": 2}
        assert [name for name, _ in calls] == ["first", "second"]
        assert calls[0][1].payload == {"page": {"id": "1"}}
        assert calls[0][1].client_key == "tenant-1"

    def test_missing_jwt(self, client: TestClient, installed: Tenant) -> None:
        """Test that unsigned deliveries are refused."""
        response = client.post("/jira/addon/webhooks/page_created", json={})
        assert response.status_code == 401

    def test_wrong_secret(self, client: TestClient, installed: Tenant) -> None:
        """Test that deliveries signed with another secret are refused."""
        path = "/jira/addon/webhooks/page_created"
        response = client.post(path, json={}, headers=auth("POST", path, secret="nope"))
        assert response.status_code == 401

    def test_token_for_other_path(self, client: TestClient, installed: Tenant) -> None:
        """Test that a token signed for another URL is refused."""
        response = client.post(
            "/jira/addon/webhooks/page_created",
            json={},
            headers=auth("POST", "/jira/addon/webhooks/page_removed"),
        )
        assert response.status_code == 401

    def test_unknown_event(self, client: TestClient, installed: Tenant) -> None:
        """Test that events nobody subscribed to answer 404."""
        path = "/jira/addon/webhooks/space_created"
        response = client.post(path, json={}, headers=auth("POST", path))
        assert response.status_code == 404

    def test_empty_body(self, client: TestClient, installed: Tenant) -> None:
        """Test deliveries with excludeBody (no payload)."""
        path = "/jira/addon/webhooks/page_created"
        response = client.post(path, headers=auth("POST", path))
        assert response.status_code == 200
        assert response.json()["handled"] == 0

    def test_jwt_in_query(self, client: TestClient, installed: Tenant) -> None:
        """Test a token passed as the jwt query parameter."""
        path = "/jira/addon/webhooks/page_created"
        token = encode_token("tenant-1", "secret", "POST", path)
        response = client.post(f"{path}?jwt={token}", json={})
        assert response.status_code == 200

    def test_custom_path(
        self, app: FastAPI, client: TestClient, addon: AtlassianAddon, installed: Tenant
    ) -> None:
        """Test that a subscription path gets its own receiver."""
        received: list[WebhookEvent] = []
        addon.add_webhook(
            WebhookSubscription(event="page_removed", path="/removed", handler=received.append)
        )

        path = "/jira/addon/removed"
        response = client.post(path, json={"id": 9}, headers=auth("POST", path))

        assert response.status_code == 200
        assert response.json() == {"event": "page_removed", "handled": 1}
        assert received[0].event == "page_removed"

    @pytest.mark.parametrize(
        "custom_path", ["/webhooks/created", "webhooks/page_updated", "/installed", "/addon"]
    )
    def test_custom_path_taken_by_builtin_route(
        self, addon: AtlassianAddon, custom_path: str
    ) -> None:
        """Test that paths the built-in routes would capture are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            addon.add_webhook({"event": "page_removed", "path": custom_path})

        assert exc_info.value.field == "path"
        assert [w.event for w in addon.webhooks] == ["page_created"]
        assert "page_removed" not in [
            w["event"] for w in addon.descriptor_document()["modules"]["webhooks"]
        ]

    def test_nested_path_below_webhooks(
        self, client: TestClient, addon: AtlassianAddon, installed: Tenant
    ) -> None:
        """Test that deeper paths under /webhooks reach their own event."""
        addon.add_webhook({"event": "page_removed", "path": "/webhooks/pages/removed"})

        path = "/jira/addon/webhooks/pages/removed"
        response = client.post(path, json={}, headers=auth("POST", path))

        assert response.status_code == 200
        assert response.json()["event"] == "page_removed"

    def test_unknown_tenant(self, client: TestClient) -> None:
        """Test that tokens from a client key that never installed are refused."""
        path = "/jira/addon/webhooks/page_created"
        response = client.post(path, json={}, headers=auth("POST", path, issuer="stranger"))

        assert response.status_code == 401
        assert response.json()["detail"] == "Unknown JWT issuer: stranger"


class TestClose:
    """Tests for unmounting the add-on."""

    def test_close_unmounts_routes(self, app: FastAPI, addon: AtlassianAddon) -> None:
        """Test that close() removes the add-on routes and keeps the host's own."""
        addon.add_webhook({"event": "page_removed", "path": "/removed"})

        @app.get("/health")
        def health() -> dict:
            return {"ok": True}

        addon.close()
        client = TestClient(app)

        assert client.get("/jira/addon/addon").status_code == 404
        assert client.post("/jira/addon/removed", json={}).status_code == 404
        assert client.get("/health").json() == {"ok": True}

    def test_close_without_app(self) -> None:
        """Test that an unmounted add-on closes its store only."""
        addon = AtlassianAddon(AddonDescriptor(key="k", name="n"))
        addon.close()
        assert addon.router.routes


class TestBasePathStripping:
    """Tests for add-ons served below a path prefix."""

    def test_qsh_relative_to_base_url(self) -> None:
        """Test that the base URL path is not part of the signed path."""
        host = FastAPI()
        addon = AtlassianAddon(
            AddonDescriptor(key="k", name="n", baseUrl="https://mydomain.com/m/mymod"), FastAPI()
        )
        addon.add_webhooks([WebhookSubscription(event="page_created")])
        addon.store.set(Tenant.model_validate(INSTALL_PAYLOAD))
        host.include_router(addon.router, prefix="/m/mymod")

        response = TestClient(host).post(
            "/m/mymod/jira/addon/webhooks/page_created",
            json={},
            headers=auth("POST", "/jira/addon/webhooks/page_created"),
        )

        assert response.status_code == 200


class TestHandleWebhook:
    """Tests for direct dispatch."""

    def test_unknown_event(self) -> None:
        """Test dispatch for an event without subscription."""
        addon = AtlassianAddon(AddonDescriptor(key="k", name="n"))
        with pytest.raises(WebhookNotRegisteredError) as exc_info:
            addon.handle_webhook("page_created", {})

        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.event == "page_created"
        assert exc_info.value.http_status == 404

    def test_handler_errors_propagate(self) -> None:
        """Test that handler exceptions are not swallowed."""
        addon = AtlassianAddon(AddonDescriptor(key="k", name="n"))

        @addon.on_webhook("page_created")
        def broken(event: WebhookEvent) -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            addon.handle_webhook("page_created", {"id": 1})

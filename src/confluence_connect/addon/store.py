"""Tenant persistence for the add-on host.

The backend is chosen from a connection string:

- ``""`` or ``memory://``: in-process dictionary
- ``redis://`` / ``rediss://`` / ``unix://``: Redis
- anything else: a SQLAlchemy database URL (e.g. ``sqlite:///tenants.db``)
"""

import logging
from abc import ABC, abstractmethod

import redis
from sqlalchemy import (
    Column,
    ColumnElement,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.pool import StaticPool

from confluence_connect.core.exceptions import StoreConfigurationError
from confluence_connect.core.models import Tenant

logger = logging.getLogger(__name__)

MEMORY_SCHEME = "memory://"
REDIS_SCHEMES = ("redis://", "rediss://", "unix://")
TENANT_TABLE = "addon_tenants"


class TenantStore(ABC):
    """Key/value store of installed tenants, keyed by client key."""

    @abstractmethod
    def get(self, client_key: str) -> Tenant | None:
        """Get a tenant, or None if it is not installed."""

    @abstractmethod
    def set(self, tenant: Tenant) -> None:
        """Insert or replace a tenant."""

    @abstractmethod
    def delete(self, client_key: str) -> bool:
        """Remove a tenant. Returns False if it was not stored."""

    @abstractmethod
    def all(self) -> list[Tenant]:
        """List every stored tenant."""

    def close(self) -> None:
        """Release backend resources."""


class MemoryTenantStore(TenantStore):
    """Tenants held in a dict for the lifetime of the process."""

    def __init__(self) -> None:
        self._tenants: dict[str, Tenant] = {}

    def get(self, client_key: str) -> Tenant | None:
        return self._tenants.get(client_key)

    def set(self, tenant: Tenant) -> None:
        self._tenants[tenant.client_key] = tenant

    def delete(self, client_key: str) -> bool:
        return self._tenants.pop(client_key, None) is not None

    def all(self) -> list[Tenant]:
        return list(self._tenants.values())


class RedisTenantStore(TenantStore):
    """Tenants stored as JSON strings under ``{namespace}:{client_key}``."""

    def __init__(self, url: str, namespace: str) -> None:
        self.namespace = namespace
        self._client = redis.from_url(url)

    def _key(self, client_key: str) -> str:
        return f"{self.namespace}:{client_key}"

    def get(self, client_key: str) -> Tenant | None:
        value = self._client.get(self._key(client_key))
        if value is None:
            return None
        return Tenant.model_validate_json(value)

    def set(self, tenant: Tenant) -> None:
        self._client.set(self._key(tenant.client_key), tenant.model_dump_json(by_alias=True))

    def delete(self, client_key: str) -> bool:
        return bool(self._client.delete(self._key(client_key)))

    def all(self) -> list[Tenant]:
        tenants = []
        for key in self._client.scan_iter(match=f"{self.namespace}:*"):
            value = self._client.get(key)
            if value is not None:
                tenants.append(Tenant.model_validate_json(value))
        return tenants

    def close(self) -> None:
        self._client.close()


class SqlTenantStore(TenantStore):
    """Tenants stored in a single SQL table, one JSON document per row."""

    def __init__(self, url: str, namespace: str) -> None:
        self.namespace = namespace
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
            # one shared connection, otherwise each thread sees its own empty database
            self._engine = create_engine(
                parsed,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            self._engine = create_engine(parsed)

        self._metadata = MetaData()
        self._table = Table(
            TENANT_TABLE,
            self._metadata,
            Column("namespace", String(255), primary_key=True),
            Column("client_key", String(255), primary_key=True),
            Column("data", Text, nullable=False),
        )
        self._metadata.create_all(self._engine)

    def _where(self, client_key: str) -> ColumnElement[bool]:
        return (self._table.c.namespace == self.namespace) & (
            self._table.c.client_key == client_key
        )

    def get(self, client_key: str) -> Tenant | None:
        with self._engine.connect() as conn:
            row = conn.execute(select(self._table.c.data).where(self._where(client_key))).first()
        if row is None:
            return None
        return Tenant.model_validate_json(row.data)

    def set(self, tenant: Tenant) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(self._table).where(self._where(tenant.client_key)))
            conn.execute(
                insert(self._table).values(
                    namespace=self.namespace,
                    client_key=tenant.client_key,
                    data=tenant.model_dump_json(by_alias=True),
                )
            )

    def delete(self, client_key: str) -> bool:
        with self._engine.begin() as conn:
            result = conn.execute(delete(self._table).where(self._where(client_key)))
        return bool(result.rowcount)

    def all(self) -> list[Tenant]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(self._table.c.data).where(self._table.c.namespace == self.namespace)
            ).all()
        return [Tenant.model_validate_json(row.data) for row in rows]

    def close(self) -> None:
        self._engine.dispose()


def create_store(connection_string: str | None, namespace: str = "addon") -> TenantStore:
    """Create the tenant store a connection string points at.

    Args:
        connection_string: Backend location (see module docstring)
        namespace: Key prefix separating add-ons sharing one backend

    Returns:
        TenantStore instance

    Raises:
        StoreConfigurationError: If the connection string cannot be used
    """
    if not connection_string or connection_string == MEMORY_SCHEME:
        logger.debug("Using in-memory tenant store")
        return MemoryTenantStore()

    try:
        if connection_string.startswith(REDIS_SCHEMES):
            store: TenantStore = RedisTenantStore(connection_string, namespace)
        else:
            store = SqlTenantStore(connection_string, namespace)
    except (ArgumentError, ValueError) as e:
        raise StoreConfigurationError(connection_string, str(e)) from e

    logger.debug("Using %s for namespace %s", type(store).__name__, namespace)
    return store

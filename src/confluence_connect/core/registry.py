"""Connection registry for looking up connection types by name."""

import logging
from typing import Any, Type, TypeVar

from confluence_connect.core.exceptions import ConnectorError
from confluence_connect.core.interfaces import Connection

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=Connection)

_connection_registry: dict[str, Type[Connection]] = {}


def register_connection(name: str) -> Any:
    """Decorator to register a connection implementation.

    Args:
        name: Connection type name (e.g., 'confluence')

    Returns:
        Decorator function

    Example:
        @register_connection("confluence")
        class ConfluenceConnection(Connection):
            ...
    """

    def decorator(cls: Type[C]) -> Type[C]:
        if not issubclass(cls, Connection):
            raise TypeError(f"{cls.__name__} is not a Connection")
        _connection_registry[name] = cls
        logger.debug("Registered connection type %s -> %s", name, cls.__name__)
        return cls

    return decorator


def create_connection(
    name: str,
    config: Any = None,
    global_config: dict[str, Any] | None = None,
) -> Connection:
    """Create a connection instance by type name.

    The connection is returned unconnected; call ``connect()`` on it.

    Args:
        name: Registered connection type name
        config: Connection configuration
        global_config: Host-wide settings

    Returns:
        Connection instance

    Raises:
        ConnectorError: If no connection type is registered under ``name``
    """
    _import_connections()

    if name not in _connection_registry:
        available = list(_connection_registry.keys())
        raise ConnectorError(
            f"Connection type '{name}' not found. Available: {available}",
            provider=name,
        )

    connection_class = _connection_registry[name]
    return connection_class(config or {}, global_config)


def list_connections() -> list[str]:
    """List all registered connection type names."""
    _import_connections()
    return list(_connection_registry.keys())


def _import_connections() -> None:
    """Import connection modules to trigger registration."""
    import confluence_connect.atlassian  # noqa: F401

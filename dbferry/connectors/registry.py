"""Alias-keyed registry of open database connections."""
import dataclasses
import threading
from typing import Any, Callable, Dict, Mapping

from ..errors import ConfigurationError, ConnectionCloseError, ConnectionOpenError
from ..logger import get_logger
from . import create_connector
from .base import ROLE_SOURCE, ROLE_TARGET, BaseConnector


class ConnectionRegistry:
    """Open each configured alias at most once and hand it out by role.

    Connections are opened lazily on first use and kept until
    :meth:`close_all`.
    """

    def __init__(self, databases: Mapping[str, Any],
                 connector_factory: Callable[[Dict[str, Any]], BaseConnector] = create_connector):
        """
        Initialize registry.

        Args:
            databases: Alias to DatabaseConfig (or plain dict) mapping
            connector_factory: Builds an unconnected connector from a definition
        """
        self.databases = dict(databases)
        self.connector_factory = connector_factory
        self.connections: Dict[str, BaseConnector] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("registry")

    def check_role(self, alias: str, role: str):
        """
        Verify an alias exists and may be used in a role, without connecting.

        Raises:
            ConfigurationError: If the alias is unknown or not usable in the role
        """
        definition = self._definition(alias)
        if role not in (ROLE_SOURCE, ROLE_TARGET):
            raise ConfigurationError(f"unknown role '{role}' for database alias '{alias}'")
        if role == ROLE_TARGET and definition.get("read_only"):
            raise ConfigurationError(f"database alias '{alias}' is not configured as a target")

    def get_source(self, alias: str) -> BaseConnector:
        """Open (once) and return the connector for a source alias."""
        self.check_role(alias, ROLE_SOURCE)
        return self._get_or_open(alias)

    def get_target(self, alias: str) -> BaseConnector:
        """Open (once) and return the connector for a target alias."""
        self.check_role(alias, ROLE_TARGET)
        return self._get_or_open(alias)

    def close_all(self):
        """
        Close every open connection, continuing past failures.

        Raises:
            ConnectionCloseError: If any connection failed to close
        """
        errors = []
        with self._lock:
            for alias, connector in self.connections.items():
                try:
                    connector.close()
                except Exception as e:
                    self.logger.error(f"Failed to close database '{alias}': {e}")
                    errors.append(f"{alias}: {e}")
            self.connections.clear()

        if errors:
            raise ConnectionCloseError(errors)

    def _definition(self, alias: str) -> Dict[str, Any]:
        definition = self.databases.get(alias)
        if definition is None:
            raise ConfigurationError(f"database alias '{alias}' is not defined")
        if dataclasses.is_dataclass(definition):
            return dataclasses.asdict(definition)
        return dict(definition, alias=alias) if "alias" not in definition else dict(definition)

    def _get_or_open(self, alias: str) -> BaseConnector:
        with self._lock:
            connector = self.connections.get(alias)
            if connector is not None:
                return connector

            connector = self.connector_factory(self._definition(alias))
            try:
                connector.connect()
            except Exception as e:
                raise ConnectionOpenError(f"failed to open database '{alias}': {e}") from e
            self.connections[alias] = connector
            return connector

"""Database connectors for the supported source and target engines."""
from typing import Any, Dict, Type

from ..converters.dialects import dialect_name
from ..errors import ConfigurationError
from .base import ROLE_SOURCE, ROLE_TARGET, BaseConnector, QueryResult
from .duckdb import DuckDBConnector
from .mysql import MySQLConnector
from .oracle import OracleConnector
from .postgres import PostgresConnector
from .sqlite import SQLiteConnector
from .sqlserver import SQLServerConnector

CONNECTORS: Dict[str, Type[BaseConnector]] = {
    "postgresql": PostgresConnector,
    "mysql": MySQLConnector,
    "sqlserver": SQLServerConnector,
    "oracle": OracleConnector,
    "sqlite": SQLiteConnector,
    "duckdb": DuckDBConnector,
}

__all__ = [
    "BaseConnector",
    "QueryResult",
    "ROLE_SOURCE",
    "ROLE_TARGET",
    "CONNECTORS",
    "create_connector",
    "DuckDBConnector",
    "MySQLConnector",
    "OracleConnector",
    "PostgresConnector",
    "SQLiteConnector",
    "SQLServerConnector",
]


def create_connector(db_config: Dict[str, Any], max_retries: int = 3, retry_delay: int = 5) -> BaseConnector:
    """
    Build the connector for a database definition.

    Args:
        db_config: Database definition (``type`` plus connection fields)
        max_retries: Maximum number of connection attempts
        retry_delay: Delay between connection attempts (seconds)

    Returns:
        Unconnected connector instance

    Raises:
        ConfigurationError: If the type is not supported
    """
    name = dialect_name(db_config.get("type", ""))
    connector_class = CONNECTORS.get(name)
    if connector_class is None:
        raise ConfigurationError(f"unsupported database type '{db_config.get('type')}'")
    return connector_class(db_config, max_retries=max_retries, retry_delay=retry_delay)

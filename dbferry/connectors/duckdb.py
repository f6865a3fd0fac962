"""DuckDB database connector."""
import os
import re
from typing import Any, Dict, Sequence

from ..converters.types import ColumnMetadata
from .base import BaseConnector

try:
    import duckdb
except ImportError:
    duckdb = None

_DECIMAL_PATTERN = re.compile(r"\(\s*(\d+)\s*,\s*(\d+)\s*\)")


class _ConnectionCursor:
    """Statements issued on the connection itself, so commits apply to them."""

    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        return None


class DuckDBConnector(BaseConnector):
    """DuckDB connector on a database file."""

    DIALECT = "duckdb"
    DISPLAY_NAME = "DuckDB"

    def __init__(self, config: Dict[str, Any], max_retries: int = 3, retry_delay: int = 5):
        if duckdb is None:
            raise ImportError(
                "duckdb package is not installed. "
                "Please install it with: pip install duckdb"
            )
        super().__init__(config, max_retries, retry_delay)

    def _get_connection_params(self) -> Dict[str, Any]:
        return {"database": self.config.get("path"), "config": dict(self.config.get("options") or {})}

    def _open(self, params: Dict[str, Any]):
        directory = os.path.dirname(params["database"] or "")
        if directory:
            os.makedirs(directory, exist_ok=True)
        return duckdb.connect(**params)

    def _cursor(self, conn):
        return _ConnectionCursor(conn)

    def _begin(self, cursor):
        # DuckDB runs in autocommit mode until a transaction is opened
        cursor.execute("BEGIN TRANSACTION")

    def _describe(self, entry: Sequence[Any], sample: Any) -> ColumnMetadata:
        column = super()._describe(entry, sample)
        type_name = column.source_type_name.upper()
        match = _DECIMAL_PATTERN.search(type_name)
        if type_name.startswith("DECIMAL") and match:
            return ColumnMetadata(
                name=column.name,
                source_type_name="DECIMAL",
                scan_type=column.scan_type,
                precision_scale=(int(match.group(1)), int(match.group(2))),
                nullable=column.nullable,
            )
        return column

"""SQLite database connector."""
import datetime
import decimal
import os
import sqlite3
from typing import Any, Dict

from .base import BaseConnector

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class SQLiteConnector(BaseConnector):
    """SQLite connector on the standard library driver.

    The cursor description carries no types, so each column is classified
    from the first non-null value fetched for it.
    """

    DIALECT = "sqlite"
    DISPLAY_NAME = "SQLite"

    def _get_connection_params(self) -> Dict[str, Any]:
        params = dict(self.config.get("options") or {})
        params["database"] = self.config.get("path")
        return params

    def _open(self, params: Dict[str, Any]):
        path = params["database"]
        directory = os.path.dirname(path)
        if directory and path != ":memory:":
            os.makedirs(directory, exist_ok=True)
        return sqlite3.connect(**params)

    def _type_name(self, type_code: Any) -> str:
        return ""

    def _adapt_value(self, value: Any) -> Any:
        if isinstance(value, decimal.Decimal):
            return str(value)
        if isinstance(value, datetime.datetime):
            return value.strftime(TIMESTAMP_FORMAT)
        if isinstance(value, datetime.date):
            return value.strftime(TIMESTAMP_FORMAT)
        if isinstance(value, datetime.time):
            return value.isoformat()
        return value

"""PostgreSQL database connector with retry logic."""
import uuid
from typing import Any, Dict

import psycopg2

from .base import BaseConnector

# Built-in type OIDs from pg_type; anything else falls back to the value type
PG_TYPE_NAMES = {
    16: "BOOL",
    17: "BYTEA",
    18: "CHAR",
    19: "NAME",
    20: "INT8",
    21: "INT2",
    23: "INT4",
    25: "TEXT",
    26: "OID",
    114: "JSON",
    700: "FLOAT4",
    701: "FLOAT8",
    790: "MONEY",
    1042: "BPCHAR",
    1043: "VARCHAR",
    1082: "DATE",
    1083: "TIME",
    1114: "TIMESTAMP",
    1184: "TIMESTAMPTZ",
    1266: "TIMETZ",
    1700: "NUMERIC",
    2950: "UUID",
    3802: "JSONB",
}


class PostgresConnector(BaseConnector):
    """PostgreSQL connector backed by psycopg2."""

    DIALECT = "postgresql"
    DISPLAY_NAME = "PostgreSQL"

    def _get_connection_params(self) -> Dict[str, Any]:
        """
        Build connection parameters from config.

        Returns:
            PostgreSQL connection parameters dictionary
        """
        params = dict(self.config.get("options") or {})
        if self.config.get("host"):
            params["host"] = self.config["host"]
        if self.config.get("port"):
            params["port"] = self.config["port"]
        if self.config.get("database"):
            params["dbname"] = self.config["database"]  # psycopg2 uses 'dbname' not 'database'
        if self.config.get("user"):
            params["user"] = self.config["user"]
        if self.config.get("password") is not None:
            params["password"] = self.config["password"]

        return params

    def _open(self, params: Dict[str, Any]):
        return psycopg2.connect(**params)

    def _type_name(self, type_code: Any) -> str:
        return PG_TYPE_NAMES.get(type_code, "")

    def _source_cursor(self, conn):
        # Named cursors stream from the server; WITH HOLD keeps them open across commits
        return conn.cursor(name=f"dbferry_{uuid.uuid4().hex}", withhold=True)

    def query(self, sql: str):
        result = super().query(sql)
        # A held cursor only survives a later rollback once its own transaction commits
        self.conn.commit()
        return result

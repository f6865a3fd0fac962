"""MySQL database connector."""
from typing import Any, Dict, List, Sequence

from ..converters.types import ColumnMetadata
from ..errors import SchemaError
from .base import BaseConnector

try:
    import pymysql
    import pymysql.cursors
    from pymysql.constants import FIELD_TYPE
except ImportError:
    pymysql = None
    FIELD_TYPE = None


def _field_type_names() -> Dict[int, str]:
    if FIELD_TYPE is None:
        return {}
    # Wire protocol names that do not carry the SQL keyword the type mapper expects
    renamed = {
        "TINY": "TINYINT",
        "SHORT": "SMALLINT",
        "LONG": "INT",
        "LONGLONG": "BIGINT",
        "INT24": "MEDIUMINT",
        "YEAR": "INT",
        "NEWDECIMAL": "DECIMAL",
        "NEWDATE": "DATE",
        "VAR_STRING": "VARCHAR",
        "STRING": "CHAR",
        "ENUM": "CHAR",
        "SET": "CHAR",
        "BIT": "BINARY",
        "JSON": "TEXT",
    }
    return {
        code: renamed.get(name, name)
        for name, code in vars(FIELD_TYPE).items()
        if name.isupper() and isinstance(code, int)
    }


BLOB_TYPE_NAMES = ("TINY_BLOB", "MEDIUM_BLOB", "LONG_BLOB", "BLOB")
ER_DUP_KEYNAME = 1061


def _error_code(error: Any) -> Any:
    args = getattr(error, "args", ())
    return args[0] if args else None


class _StreamCursor:
    """Unbuffered cursor that owns the connection it reads from."""

    def __init__(self, conn, cursor):
        self.conn = conn
        self.cursor = cursor

    @property
    def description(self):
        return self.cursor.description

    def execute(self, sql):
        return self.cursor.execute(sql)

    def fetchmany(self, size):
        return self.cursor.fetchmany(size)

    def close(self):
        # Closing the connection discards unread rows without draining them
        self.conn.close()


class MySQLConnector(BaseConnector):
    """MySQL connector backed by PyMySQL."""

    DIALECT = "mysql"
    DISPLAY_NAME = "MySQL"

    def __init__(self, config: Dict[str, Any], max_retries: int = 3, retry_delay: int = 5):
        if pymysql is None:
            raise ImportError(
                "PyMySQL package is not installed. "
                "Please install it with: pip install PyMySQL"
            )
        super().__init__(config, max_retries, retry_delay)
        self.type_names = _field_type_names()

    def _get_connection_params(self) -> Dict[str, Any]:
        params = {"charset": "utf8mb4", "autocommit": False}
        params.update(self.config.get("options") or {})
        params["host"] = self.config.get("host")
        params["port"] = int(self.config.get("port") or 3306)
        if self.config.get("database"):
            params["database"] = self.config["database"]
        if self.config.get("user"):
            params["user"] = self.config["user"]
        if self.config.get("password") is not None:
            params["password"] = self.config["password"]
        return params

    def _open(self, params: Dict[str, Any]):
        return pymysql.connect(**params)

    def _type_name(self, type_code: Any) -> str:
        return self.type_names.get(type_code, "")

    def _source_cursor(self, conn):
        # An unbuffered stream blocks its connection until drained, so it gets its own
        stream = self._open(self._get_connection_params())
        return _StreamCursor(stream, stream.cursor(pymysql.cursors.SSCursor))

    def _needs_sample(self, entry: Sequence[Any]) -> bool:
        # TEXT and BLOB columns share one wire type; the fetched value tells them apart
        return super()._needs_sample(entry) or self._type_name(entry[1]) in BLOB_TYPE_NAMES

    def _describe(self, entry: Sequence[Any], sample: Any) -> ColumnMetadata:
        column = super()._describe(entry, sample)
        if column.source_type_name in BLOB_TYPE_NAMES:
            type_name = "TEXT" if isinstance(sample, str) else "BLOB"
            return ColumnMetadata(
                name=column.name,
                source_type_name=type_name,
                scan_type=column.scan_type,
                declared_length=None,
                nullable=column.nullable,
            )
        if column.source_type_name == "DECIMAL" and column.precision_scale:
            # Reported length counts the sign and the decimal point
            length, scale = column.precision_scale
            digits = max(length - 1 - (1 if scale > 0 else 0), 1)
            return ColumnMetadata(
                name=column.name,
                source_type_name=column.source_type_name,
                scan_type=column.scan_type,
                precision_scale=(digits, scale),
                nullable=column.nullable,
            )
        return column

    def ensure_merge_index(self, table_name: str, merge_keys: List[str]):
        # MySQL has no CREATE INDEX IF NOT EXISTS; only an existing index name is tolerated
        try:
            super().ensure_merge_index(table_name, merge_keys)
        except SchemaError as e:
            if _error_code(e.__cause__) != ER_DUP_KEYNAME:
                raise
            self.logger.warning(f"Merge key index on {table_name} already exists: {e}")

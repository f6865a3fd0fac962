"""SQL Server database connector."""
import re
from typing import Any, Dict, List, Optional

from ..converters.types import ColumnMetadata
from .base import BaseConnector

try:
    import pymssql
except ImportError:
    pymssql = None

# pymssql only reports coarse DB-API type codes
MSSQL_TYPE_CODES = {
    1: "NVARCHAR",
    2: "VARBINARY",
    3: "",
    4: "DATETIME",
    5: "DECIMAL",
}

_LENGTH_PATTERN = re.compile(r"\((\d+)\)")


class SQLServerConnector(BaseConnector):
    """SQL Server connector backed by pymssql.

    Column metadata comes from ``sp_describe_first_result_set``, which reports
    declared lengths and decimal precision that the cursor description omits.
    """

    DIALECT = "sqlserver"
    DISPLAY_NAME = "SQL Server"

    def __init__(self, config: Dict[str, Any], max_retries: int = 3, retry_delay: int = 5):
        if pymssql is None:
            raise ImportError(
                "pymssql package is not installed. "
                "Please install it with: pip install pymssql"
            )
        super().__init__(config, max_retries, retry_delay)

    def _get_connection_params(self) -> Dict[str, Any]:
        params = dict(self.config.get("options") or {})
        params["server"] = self.config.get("host")
        params["port"] = str(self.config.get("port") or 1433)
        if self.config.get("database"):
            params["database"] = self.config["database"]
        if self.config.get("user"):
            params["user"] = self.config["user"]
        if self.config.get("password") is not None:
            params["password"] = self.config["password"]
        return params

    def _open(self, params: Dict[str, Any]):
        return pymssql.connect(**params)

    def _type_name(self, type_code: Any) -> str:
        return MSSQL_TYPE_CODES.get(type_code, "")

    def _describe_query(self, sql: str) -> Optional[List[ColumnMetadata]]:
        conn = self._require_connection()
        cursor = conn.cursor(as_dict=True)
        try:
            cursor.execute("EXEC sp_describe_first_result_set @tsql = %s", (sql,))
            rows = cursor.fetchall()
        except Exception as e:
            self.logger.debug(f"sp_describe_first_result_set unavailable, using cursor description: {e}")
            self._rollback_quietly()
            return None
        finally:
            cursor.close()

        columns = []
        for row in rows:
            if row.get("is_hidden"):
                continue
            type_name = (row.get("system_type_name") or "").upper()
            precision, scale = row.get("precision"), row.get("scale")
            precision_scale = None
            if type_name.startswith(("DECIMAL", "NUMERIC")) and precision:
                precision_scale = (precision, scale or 0)
            declared_length = None
            match = _LENGTH_PATTERN.search(type_name)
            if match and "CHAR" in type_name:
                declared_length = int(match.group(1))
            columns.append(ColumnMetadata(
                name=row.get("name") or "",
                source_type_name=type_name.split("(")[0],
                declared_length=declared_length,
                precision_scale=precision_scale,
                nullable=row.get("is_nullable"),
            ))
        return columns or None

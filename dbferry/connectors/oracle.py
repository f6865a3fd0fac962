"""Oracle database connector."""
from typing import Any, Dict

from .base import BaseConnector

try:
    import oracledb
except ImportError:
    oracledb = None


class OracleConnector(BaseConnector):
    """Oracle connector backed by python-oracledb (thin mode)."""

    DIALECT = "oracle"
    DISPLAY_NAME = "Oracle"

    def __init__(self, config: Dict[str, Any], max_retries: int = 3, retry_delay: int = 5):
        if oracledb is None:
            raise ImportError(
                "oracledb package is not installed. "
                "Please install it with: pip install oracledb"
            )
        super().__init__(config, max_retries, retry_delay)

    def _get_connection_params(self) -> Dict[str, Any]:
        """
        Build connection parameters from config.

        ``service`` names the service; ``database`` is accepted as a fallback.

        Returns:
            oracledb connection parameters dictionary
        """
        params = dict(self.config.get("options") or {})
        host = self.config.get("host")
        port = self.config.get("port") or 1521
        service = self.config.get("service") or self.config.get("database") or ""
        params["dsn"] = f"{host}:{port}/{service}"
        if self.config.get("user"):
            params["user"] = self.config["user"]
        if self.config.get("password") is not None:
            params["password"] = self.config["password"]
        return params

    def _open(self, params: Dict[str, Any]):
        return oracledb.connect(**params)

    def _type_name(self, type_code: Any) -> str:
        if type_code is None:
            return ""
        name = getattr(type_code, "name", str(type_code))
        if name.startswith("DB_TYPE_"):
            name = name[len("DB_TYPE_"):]
        return name

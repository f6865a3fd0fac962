"""Static dialect profiles for the supported target engines."""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from ..errors import ConfigurationError
from .types import TypeKind


class UpsertStrategy(Enum):
    """How a dialect expresses insert-or-update."""
    ON_CONFLICT = "on_conflict"
    ON_DUPLICATE_KEY = "on_duplicate_key"
    MERGE = "merge"


def quote_double(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_backtick(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def quote_bracket(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


def quote_oracle(name: str) -> str:
    # Quoted upper-case matches how Oracle stores unquoted identifiers
    return quote_double(name.upper())


@dataclass(frozen=True)
class DialectProfile:
    """Everything the SQL builder needs to know about one engine.

    Statement templates are ``str.format`` templates; the builder supplies
    ``table``, ``table_literal``, ``index``, ``index_literal``, ``columns``,
    ``create`` and ``create_literal`` (already quoted/escaped).
    """
    name: str
    quote: Callable[[str], str]
    paramstyle: str
    type_names: Dict[TypeKind, str]
    bounded_text: str
    max_inline_text: Optional[int]
    max_decimal_precision: int
    upsert: Optional[UpsertStrategy]
    partial_indexes: bool
    drop_table: str
    create_table: str
    create_table_if_absent: str
    drop_index: str
    merge_index: Optional[str] = None
    derived_alias: str = "AS {alias}"
    merge_keys_updatable: bool = True

    def placeholder(self, position: int) -> str:
        """Placeholder for the 1-based parameter position."""
        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle == "numeric":
            return f":{position}"
        return "%s"


def _ansi_drop_create(**overrides) -> Dict[str, str]:
    templates = {
        "drop_table": "DROP TABLE IF EXISTS {table}",
        "create_table": "CREATE TABLE {table} ({columns})",
        "create_table_if_absent": "CREATE TABLE IF NOT EXISTS {table} ({columns})",
        "drop_index": "DROP INDEX IF EXISTS {index}",
    }
    templates.update(overrides)
    return templates


POSTGRESQL = DialectProfile(
    name="postgresql",
    quote=quote_double,
    paramstyle="format",
    type_names={
        TypeKind.INTEGER: "BIGINT",
        TypeKind.DECIMAL: "NUMERIC({precision},{scale})",
        TypeKind.FLOATING_POINT: "DOUBLE PRECISION",
        TypeKind.TEXT: "TEXT",
        TypeKind.TEMPORAL: "TIMESTAMP",
        TypeKind.BINARY: "BYTEA",
        TypeKind.BOOLEAN: "BOOLEAN",
    },
    bounded_text="VARCHAR({length})",
    max_inline_text=10485760,
    max_decimal_precision=1000,
    upsert=UpsertStrategy.ON_CONFLICT,
    partial_indexes=True,
    merge_index="CREATE UNIQUE INDEX IF NOT EXISTS {index} ON {table} ({columns})",
    **_ansi_drop_create(),
)

MYSQL = DialectProfile(
    name="mysql",
    quote=quote_backtick,
    paramstyle="format",
    type_names={
        TypeKind.INTEGER: "BIGINT",
        TypeKind.DECIMAL: "DECIMAL({precision},{scale})",
        TypeKind.FLOATING_POINT: "DOUBLE",
        TypeKind.TEXT: "LONGTEXT",
        TypeKind.TEMPORAL: "DATETIME",
        TypeKind.BINARY: "LONGBLOB",
        TypeKind.BOOLEAN: "TINYINT(1)",
    },
    bounded_text="VARCHAR({length})",
    max_inline_text=65535,
    max_decimal_precision=65,
    upsert=UpsertStrategy.ON_DUPLICATE_KEY,
    partial_indexes=False,
    merge_index="CREATE UNIQUE INDEX {index} ON {table} ({columns})",
    **_ansi_drop_create(drop_index="DROP INDEX {index} ON {table}"),
)

SQLSERVER = DialectProfile(
    name="sqlserver",
    quote=quote_bracket,
    paramstyle="format",
    type_names={
        TypeKind.INTEGER: "BIGINT",
        TypeKind.DECIMAL: "DECIMAL({precision},{scale})",
        TypeKind.FLOATING_POINT: "FLOAT",
        TypeKind.TEXT: "NVARCHAR(MAX)",
        TypeKind.TEMPORAL: "DATETIME2",
        TypeKind.BINARY: "VARBINARY(MAX)",
        TypeKind.BOOLEAN: "BIT",
    },
    bounded_text="NVARCHAR({length})",
    max_inline_text=4000,
    max_decimal_precision=38,
    upsert=UpsertStrategy.MERGE,
    partial_indexes=True,
    drop_table="IF OBJECT_ID(N'{table_literal}', 'U') IS NOT NULL DROP TABLE {table}",
    create_table="CREATE TABLE {table} ({columns})",
    create_table_if_absent="IF OBJECT_ID(N'{table_literal}', 'U') IS NULL CREATE TABLE {table} ({columns})",
    drop_index="DROP INDEX IF EXISTS {index} ON {table}",
)

ORACLE = DialectProfile(
    name="oracle",
    quote=quote_oracle,
    paramstyle="numeric",
    type_names={
        TypeKind.INTEGER: "NUMBER(19,0)",
        TypeKind.DECIMAL: "NUMBER({precision},{scale})",
        TypeKind.FLOATING_POINT: "BINARY_DOUBLE",
        TypeKind.TEXT: "CLOB",
        TypeKind.TEMPORAL: "TIMESTAMP",
        TypeKind.BINARY: "BLOB",
        TypeKind.BOOLEAN: "NUMBER(1,0)",
    },
    bounded_text="VARCHAR2({length})",
    max_inline_text=4000,
    max_decimal_precision=38,
    upsert=UpsertStrategy.MERGE,
    partial_indexes=False,
    # ORA-00942 table missing, ORA-00955 name in use, ORA-01418 index missing
    drop_table=("BEGIN EXECUTE IMMEDIATE 'DROP TABLE {table_literal}'; "
                "EXCEPTION WHEN OTHERS THEN IF SQLCODE != -942 THEN RAISE; END IF; END;"),
    create_table="CREATE TABLE {table} ({columns})",
    create_table_if_absent=("BEGIN EXECUTE IMMEDIATE '{create_literal}'; "
                            "EXCEPTION WHEN OTHERS THEN IF SQLCODE != -955 THEN RAISE; END IF; END;"),
    drop_index=("BEGIN EXECUTE IMMEDIATE 'DROP INDEX {index_literal}'; "
                "EXCEPTION WHEN OTHERS THEN IF SQLCODE != -1418 AND SQLCODE != -942 THEN RAISE; END IF; END;"),
    derived_alias="{alias}",
    merge_keys_updatable=False,
)

SQLITE = DialectProfile(
    name="sqlite",
    quote=quote_double,
    paramstyle="qmark",
    type_names={
        TypeKind.INTEGER: "INTEGER",
        TypeKind.DECIMAL: "NUMERIC({precision},{scale})",
        TypeKind.FLOATING_POINT: "REAL",
        TypeKind.TEXT: "TEXT",
        TypeKind.TEMPORAL: "TIMESTAMP",
        TypeKind.BINARY: "BLOB",
        TypeKind.BOOLEAN: "INTEGER",
    },
    bounded_text="TEXT",
    max_inline_text=None,
    max_decimal_precision=38,
    upsert=UpsertStrategy.ON_CONFLICT,
    partial_indexes=True,
    merge_index="CREATE UNIQUE INDEX IF NOT EXISTS {index} ON {table} ({columns})",
    **_ansi_drop_create(),
)

DUCKDB = DialectProfile(
    name="duckdb",
    quote=quote_double,
    paramstyle="qmark",
    type_names={
        TypeKind.INTEGER: "BIGINT",
        TypeKind.DECIMAL: "DECIMAL({precision},{scale})",
        TypeKind.FLOATING_POINT: "DOUBLE",
        TypeKind.TEXT: "VARCHAR",
        TypeKind.TEMPORAL: "TIMESTAMP",
        TypeKind.BINARY: "BLOB",
        TypeKind.BOOLEAN: "BOOLEAN",
    },
    bounded_text="VARCHAR({length})",
    max_inline_text=1048576,
    max_decimal_precision=38,
    upsert=UpsertStrategy.ON_CONFLICT,
    partial_indexes=False,
    merge_index="CREATE UNIQUE INDEX IF NOT EXISTS {index} ON {table} ({columns})",
    **_ansi_drop_create(),
)

DIALECTS: Dict[str, DialectProfile] = {
    profile.name: profile
    for profile in (POSTGRESQL, MYSQL, SQLSERVER, ORACLE, SQLITE, DUCKDB)
}

DIALECT_ALIASES = {
    "postgres": "postgresql",
    "mssql": "sqlserver",
}


def dialect_name(engine_type: str) -> str:
    """Canonical dialect name for a configured database type."""
    name = (engine_type or "").strip().lower()
    return DIALECT_ALIASES.get(name, name)


def get_dialect(engine_type: str) -> DialectProfile:
    """
    Look up the profile for a database type.

    Args:
        engine_type: Configured type, e.g. "postgres" or "duckdb"

    Returns:
        DialectProfile for the engine

    Raises:
        ConfigurationError: If the type is not supported
    """
    name = dialect_name(engine_type)
    if name not in DIALECTS:
        supported = ", ".join(sorted(list(DIALECTS) + list(DIALECT_ALIASES)))
        raise ConfigurationError(f"unsupported database type '{engine_type}' (supported: {supported})")
    return DIALECTS[name]

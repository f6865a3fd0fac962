"""Dialect-parameterized SQL generation for target tables."""
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from ..errors import SchemaError
from .dialects import DialectProfile, UpsertStrategy
from .types import CanonicalType, ColumnMetadata, TypeKind, TypeMapper


@dataclass(frozen=True)
class Statement:
    """A DML statement and the column order its placeholders bind."""
    sql: str
    param_columns: Tuple[int, ...]

    def bind(self, row: Sequence[Any]) -> Tuple[Any, ...]:
        """Arrange a row's values in placeholder order."""
        return tuple(row[index] for index in self.param_columns)


def trim_sql(sql_text: str) -> str:
    """Strip whitespace and trailing semicolons from a query."""
    trimmed = sql_text.strip()
    while trimmed.endswith(";"):
        trimmed = trimmed[:-1].strip()
    return trimmed


def quote_literal(value: str) -> str:
    """Render a string as a single-quoted SQL literal."""
    return "'" + value.replace("'", "''") + "'"


class SQLBuilder:
    """Generate DDL and DML for one dialect profile."""

    def __init__(self, profile: DialectProfile, type_mapper: Optional[TypeMapper] = None):
        """Initialize SQLBuilder.

        Args:
            profile: Dialect profile of the engine the statements run on
            type_mapper: Type mapper used to classify column metadata
        """
        self.profile = profile
        self.type_mapper = type_mapper or TypeMapper()

    def quote_identifier(self, name: str) -> str:
        return self.profile.quote(name)

    def render_type(self, canonical: CanonicalType) -> str:
        """
        Render a canonical type as a column type fragment.

        Args:
            canonical: Canonical column type

        Returns:
            Type string for a column definition, e.g. "NUMERIC(10,2)"
        """
        profile = self.profile
        if canonical.kind is TypeKind.TEXT:
            length = canonical.max_length
            if length and profile.max_inline_text and length <= profile.max_inline_text:
                return profile.bounded_text.format(length=length)
            return profile.type_names[TypeKind.TEXT]
        if canonical.kind is TypeKind.DECIMAL:
            precision = min(canonical.precision, profile.max_decimal_precision)
            scale = min(canonical.scale, precision)
            return profile.type_names[TypeKind.DECIMAL].format(precision=precision, scale=scale)
        return profile.type_names[canonical.kind]

    def column_type(self, column: ColumnMetadata) -> str:
        return self.render_type(self.type_mapper.classify(column))

    def build_create_table(self, table_name: str, columns: List[ColumnMetadata],
                           drop_existing: bool = True) -> List[str]:
        """Generate the statements that prepare a target table.

        With ``drop_existing`` the table is dropped and re-created; without it
        the table is only created when absent.

        Args:
            table_name: Name of the target table
            columns: Column metadata of the query result
            drop_existing: Drop any existing table first

        Returns:
            Statements to execute in order
        """
        if not columns:
            raise SchemaError("no columns provided for table creation")

        column_defs = ", ".join(
            f"{self.quote_identifier(col.name)} {self.column_type(col)}" for col in columns
        )
        names = self._names(table_name)
        create_sql = self.profile.create_table.format(columns=column_defs, **names)

        if drop_existing:
            return [self.profile.drop_table.format(**names), create_sql]

        ensure_sql = self.profile.create_table_if_absent.format(
            columns=column_defs,
            create=create_sql,
            create_literal=create_sql.replace("'", "''"),
            **names,
        )
        return [ensure_sql]

    def build_insert(self, table_name: str, columns: List[ColumnMetadata]) -> Statement:
        """Generate a parameterized INSERT for all columns."""
        column_list = ", ".join(self._dml_identifier(col.name) for col in columns)
        sql = (f"INSERT INTO {self._dml_identifier(table_name)} ({column_list}) "
               f"VALUES ({self._placeholders(len(columns))})")
        return Statement(sql, tuple(range(len(columns))))

    def build_upsert(self, table_name: str, columns: List[ColumnMetadata],
                     merge_keys: List[str]) -> Statement:
        """
        Generate a parameterized insert-or-update keyed by ``merge_keys``.

        When every column is a merge key the update clause assigns the first
        key to itself so the statement keeps the same shape.

        Args:
            table_name: Name of the target table
            columns: Column metadata of the query result
            merge_keys: Key column names (matched case-insensitively)

        Returns:
            Statement binding the row values in column order

        Raises:
            SchemaError: If the dialect has no upsert or a key is not a column
        """
        strategy = self.profile.upsert
        if strategy is None:
            raise SchemaError(f"{self.profile.name} does not support merge mode")
        if not merge_keys:
            raise SchemaError("merge_keys is required for upsert")

        keys = self._resolve_keys(columns, merge_keys)
        key_set = {key.lower() for key in keys}
        quoted = [self._dml_identifier(col.name) for col in columns]
        non_keys = [q for col, q in zip(columns, quoted) if col.name.lower() not in key_set]
        quoted_keys = [self._dml_identifier(key) for key in keys]
        table = self._dml_identifier(table_name)
        column_list = ", ".join(quoted)
        placeholders = self._placeholders(len(columns))

        if strategy is UpsertStrategy.ON_CONFLICT:
            assignments = [f"{q} = EXCLUDED.{q}" for q in (non_keys or quoted_keys[:1])]
            sql = (f"INSERT INTO {table} ({column_list}) VALUES ({placeholders}) "
                   f"ON CONFLICT ({', '.join(quoted_keys)}) DO UPDATE SET {', '.join(assignments)}")
        elif strategy is UpsertStrategy.ON_DUPLICATE_KEY:
            if non_keys:
                assignments = [f"{q} = VALUES({q})" for q in non_keys]
            else:
                assignments = [f"{quoted_keys[0]} = {quoted_keys[0]}"]
            sql = (f"INSERT INTO {table} ({column_list}) VALUES ({placeholders}) "
                   f"ON DUPLICATE KEY UPDATE {', '.join(assignments)}")
        else:
            sql = self._build_merge(table, quoted, quoted_keys, non_keys)

        return Statement(sql, tuple(range(len(columns))))

    def _build_merge(self, table: str, quoted: List[str], quoted_keys: List[str],
                     non_keys: List[str]) -> str:
        profile = self.profile
        on_clause = " AND ".join(f"target.{k} = source.{k}" for k in quoted_keys)
        if profile.merge_keys_updatable:
            updates = non_keys or quoted_keys[:1]
        else:
            updates = non_keys
        column_list = ", ".join(quoted)
        source_refs = ", ".join(f"source.{q}" for q in quoted)

        if profile.paramstyle == "numeric":
            selected = ", ".join(
                f"{profile.placeholder(i)} AS {q}" for i, q in enumerate(quoted, start=1)
            )
            sql = (f"MERGE INTO {table} target USING (SELECT {selected} FROM dual) source "
                   f"ON ({on_clause})")
            terminator = ""
        else:
            sql = (f"MERGE INTO {table} AS target USING (VALUES ({self._placeholders(len(quoted))})) "
                   f"AS source ({column_list}) ON {on_clause}")
            terminator = ";"

        if updates:
            sql += " WHEN MATCHED THEN UPDATE SET " + ", ".join(
                f"target.{q} = source.{q}" for q in updates
            )
        sql += f" WHEN NOT MATCHED THEN INSERT ({column_list}) VALUES ({source_refs}){terminator}"
        return sql

    def build_index(self, table_name: str, index) -> str:
        """
        Generate CREATE INDEX for an index spec.

        Args:
            table_name: Name of the indexed table
            index: IndexConfig with name, parsed columns, unique flag and where

        Returns:
            CREATE INDEX statement
        """
        if index.where and not self.profile.partial_indexes:
            raise SchemaError(
                f"{self.profile.name} does not support partial indexes (index '{index.name}')"
            )
        columns = ", ".join(
            f"{self.quote_identifier(col.name)} {col.order}" for col in index.parsed_columns
        )
        unique = "UNIQUE " if index.unique else ""
        sql = (f"CREATE {unique}INDEX {self.quote_identifier(index.name)} "
               f"ON {self.quote_identifier(table_name)} ({columns})")
        if index.where:
            sql += f" WHERE {index.where}"
        return sql

    def build_drop_index(self, table_name: str, index_name: str) -> str:
        return self.profile.drop_index.format(**self._names(table_name, index_name))

    def merge_index_name(self, table_name: str) -> str:
        return f"ux_{table_name}_merge_keys"

    def build_merge_key_index(self, table_name: str, merge_keys: List[str]) -> Optional[str]:
        """Unique index over the merge keys, for dialects whose upsert needs one."""
        if not self.profile.merge_index:
            return None
        columns = ", ".join(self.quote_identifier(key) for key in merge_keys)
        return self.profile.merge_index.format(
            columns=columns, **self._names(table_name, self.merge_index_name(table_name))
        )

    def build_table_row_count(self, table_name: str) -> str:
        return f"SELECT COUNT(*) FROM {self.quote_identifier(table_name)}"

    def build_source_row_count(self, sql: str) -> str:
        alias = self.profile.derived_alias.format(alias="count_query")
        return f"SELECT COUNT(*) FROM ({trim_sql(sql)}) {alias}"

    def wrap_resume_query(self, base_sql: str, resume_key: Optional[str],
                          resume_literal: Optional[str]) -> Tuple[str, str]:
        """
        Build the data query and the row-count query for a task.

        With a resume key the base query becomes a derived table filtered by
        ``key > literal`` (when a literal is known) and ordered by the key.

        Args:
            base_sql: Task query text
            resume_key: Ordering key column, or None
            resume_literal: SQL literal of the last migrated key value

        Returns:
            Tuple of (data_sql, count_base_sql)
        """
        normalized = trim_sql(base_sql)
        if not resume_key:
            return normalized, normalized

        alias = self.profile.derived_alias.format(alias="src")
        wrapped = f"SELECT * FROM ({normalized}) {alias}"
        if resume_literal:
            wrapped = f"{wrapped} WHERE {resume_key} > {resume_literal}"
        return f"{wrapped} ORDER BY {resume_key}", wrapped

    def _resolve_keys(self, columns: List[ColumnMetadata], merge_keys: List[str]) -> List[str]:
        by_lower = {col.name.lower(): col.name for col in columns}
        keys = []
        for key in merge_keys:
            if key.lower() not in by_lower:
                raise SchemaError(f"merge key '{key}' not found in query columns")
            keys.append(by_lower[key.lower()])
        return keys

    def _names(self, table_name: str, index_name: Optional[str] = None) -> dict:
        table = self.quote_identifier(table_name)
        names = {"table": table, "table_literal": table.replace("'", "''")}
        if index_name is not None:
            index = self.quote_identifier(index_name)
            names.update(index=index, index_literal=index.replace("'", "''"))
        return names

    def _placeholders(self, count: int) -> str:
        return ", ".join(self.profile.placeholder(i) for i in range(1, count + 1))

    def _dml_identifier(self, name: str) -> str:
        quoted = self.quote_identifier(name)
        # format-style drivers read every bare % as a placeholder marker
        if self.profile.paramstyle == "format":
            return quoted.replace("%", "%%")
        return quoted

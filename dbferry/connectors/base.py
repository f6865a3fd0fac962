"""DB-API connector shared by every supported engine."""
import time
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..converters.dialects import get_dialect
from ..converters.schema import SQLBuilder, Statement
from ..converters.types import ColumnMetadata, scan_type_name
from ..errors import QueryError, SchemaError
from ..logger import get_logger

ROLE_SOURCE = "source"
ROLE_TARGET = "target"


class QueryResult:
    """Open cursor over a source query with its column metadata.

    Rows are fetched lazily in chunks of ``fetch_size``. Rows already read
    to infer column types are yielded first.
    """

    def __init__(self, cursor, columns: List[ColumnMetadata], fetch_size: int,
                 buffered: Optional[List[Sequence[Any]]] = None):
        self.cursor = cursor
        self.columns = columns
        self.fetch_size = fetch_size
        self._buffered = list(buffered or [])

    def __iter__(self) -> Iterator[Sequence[Any]]:
        while self._buffered:
            yield self._buffered.pop(0)
        while True:
            rows = self.cursor.fetchmany(self.fetch_size)
            if not rows:
                return
            for row in rows:
                yield row

    def close(self):
        self.cursor.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class BaseConnector:
    """Connector implementing the source and target operations over DB-API 2.0.

    Subclasses set ``DIALECT`` and ``DISPLAY_NAME`` and implement
    :meth:`_get_connection_params` and :meth:`_open`. Engines whose cursor
    description lacks type names override :meth:`_describe`.
    """

    DIALECT = ""
    DISPLAY_NAME = ""
    FETCH_SIZE = 1000
    SAMPLE_ROWS = 1000

    def __init__(self, config: Dict[str, Any], max_retries: int = 3, retry_delay: int = 5):
        """
        Initialize connector.

        Args:
            config: Database connection configuration
            max_retries: Maximum number of connection retry attempts
            retry_delay: Delay between retry attempts (seconds)
        """
        self.config = config
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.conn = None
        self.builder = SQLBuilder(get_dialect(self.DIALECT))
        self.logger = get_logger(f"connectors.{self.DIALECT}")

    @property
    def alias(self) -> str:
        return self.config.get("alias") or self.DIALECT

    def _get_connection_params(self) -> Dict[str, Any]:
        """
        Build driver connection parameters from config.

        Returns:
            Keyword arguments for the driver's ``connect``
        """
        raise NotImplementedError

    def _open(self, params: Dict[str, Any]):
        """Open and return a DB-API connection."""
        raise NotImplementedError

    def connect(self):
        """Establish connection with retry logic."""
        conn_params = self._get_connection_params()

        for attempt in range(1, self.max_retries + 1):
            try:
                self.logger.info(
                    f"Connecting to {self.DISPLAY_NAME} '{self.alias}' (attempt {attempt}/{self.max_retries})..."
                )
                self.conn = self._open(conn_params)
                self.logger.info(f"Successfully connected to {self.DISPLAY_NAME} '{self.alias}'")
                return
            except Exception as e:
                self.logger.error(f"Connection attempt {attempt} failed: {e}")
                if attempt < self.max_retries:
                    self.logger.info(f"Retrying in {self.retry_delay} seconds...")
                    time.sleep(self.retry_delay)
                else:
                    self.logger.error("Max retries reached. Connection failed.")
                    raise

    def disconnect(self):
        """Close the database connection."""
        if self.conn:
            try:
                self.conn.close()
            finally:
                self.conn = None
            self.logger.info(f"Disconnected from {self.DISPLAY_NAME} '{self.alias}'")

    close = disconnect

    def _require_connection(self):
        if not self.conn:
            raise RuntimeError("Not connected to database")
        return self.conn

    # -- source operations -------------------------------------------------

    def query(self, sql: str) -> QueryResult:
        """
        Execute a source query and extract its column metadata.

        Args:
            sql: Query text

        Returns:
            QueryResult streaming the rows

        Raises:
            QueryError: If the query fails
        """
        conn = self._require_connection()
        try:
            described = self._describe_query(sql)
        except Exception as e:
            self._rollback_quietly()
            raise QueryError(f"failed to describe query on '{self.alias}': {e}") from e

        try:
            cursor = self._source_cursor(conn)
        except Exception as e:
            raise QueryError(f"failed to open a cursor on '{self.alias}': {e}") from e
        try:
            cursor.execute(sql)
            buffered: List[Sequence[Any]] = []
            if cursor.description is None:
                # Server-side cursors describe their result after the first fetch
                buffered.extend(cursor.fetchmany(1))
            description = cursor.description or []
            if described is None:
                samples = self._sample_values(cursor, description, buffered)
                columns = [
                    self._describe(entry, samples[index]) for index, entry in enumerate(description)
                ]
            else:
                columns = described
        except Exception as e:
            self._close_quietly(cursor)
            self._rollback_quietly()
            raise QueryError(f"failed to execute query on '{self.alias}': {e}") from e
        return QueryResult(cursor, columns, self.FETCH_SIZE, buffered)

    def get_row_count(self, sql: str) -> int:
        """
        Count the rows a query returns.

        Args:
            sql: Query text (wrapped in a COUNT subquery)

        Returns:
            Number of rows

        Raises:
            QueryError: If the count query fails
        """
        count_sql = self.builder.build_source_row_count(sql)
        try:
            return self._fetch_scalar(count_sql)
        except Exception as e:
            raise QueryError(f"failed to count rows on '{self.alias}': {e}") from e

    def _describe_query(self, sql: str) -> Optional[List[ColumnMetadata]]:
        """Column metadata obtained before running the query, if the engine offers it."""
        return None

    def _source_cursor(self, conn):
        """Cursor the source query streams from."""
        return conn.cursor()

    def _needs_sample(self, entry: Sequence[Any]) -> bool:
        """Whether a column's type has to be inferred from fetched values."""
        return not self._type_name(entry[1])

    def _sample_values(self, cursor, description, buffered: List[Sequence[Any]]) -> List[Any]:
        """
        First non-null value of every column among the buffered rows.

        While a column that needs a sample has only NULLs, more rows are read
        into ``buffered``, up to ``SAMPLE_ROWS`` rows in total.

        Args:
            cursor: Executed source cursor
            description: Cursor description
            buffered: Rows already fetched; extended in place

        Returns:
            One sample value (possibly None) per column
        """
        samples: List[Any] = [None] * len(description)
        pending = {index for index, entry in enumerate(description) if self._needs_sample(entry)}
        seen = 0
        while True:
            for row in buffered[seen:]:
                for index, value in enumerate(row):
                    if samples[index] is None and value is not None:
                        samples[index] = value
            seen = len(buffered)
            pending = {index for index in pending if samples[index] is None}
            if not pending or seen >= self.SAMPLE_ROWS:
                return samples
            rows = cursor.fetchmany(1)
            if not rows:
                return samples
            buffered.extend(rows)

    def _describe(self, entry: Sequence[Any], sample: Any) -> ColumnMetadata:
        """
        Translate one cursor description entry.

        Args:
            entry: DB-API 7-item description sequence
            sample: Value of this column in the first row, if sampled

        Returns:
            ColumnMetadata for the column
        """
        name, type_code, _display_size, internal_size, precision, scale, null_ok = entry[:7]
        precision_scale = None
        if precision is not None and scale is not None:
            precision_scale = (precision, scale)
        return ColumnMetadata(
            name=name,
            source_type_name=self._type_name(type_code),
            scan_type=scan_type_name(sample),
            declared_length=internal_size if internal_size and internal_size > 0 else None,
            precision_scale=precision_scale,
            nullable=null_ok,
        )

    def _type_name(self, type_code: Any) -> str:
        return str(type_code) if type_code is not None else ""

    # -- target operations -------------------------------------------------

    def create_table(self, table_name: str, columns: List[ColumnMetadata]):
        """Drop and re-create the target table."""
        self._prepare_table(table_name, columns, drop_existing=True)

    def ensure_table(self, table_name: str, columns: List[ColumnMetadata]):
        """Create the target table only when it does not exist."""
        self._prepare_table(table_name, columns, drop_existing=False)

    def _prepare_table(self, table_name: str, columns: List[ColumnMetadata], drop_existing: bool):
        statements = self.builder.build_create_table(table_name, columns, drop_existing)
        try:
            self._execute_ddl(statements)
        except Exception as e:
            action = "create" if drop_existing else "ensure"
            raise SchemaError(f"failed to {action} table {table_name}: {e}") from e
        self.logger.debug(f"Prepared table {table_name}: {'; '.join(statements)}")

    def insert_rows(self, table_name: str, columns: List[ColumnMetadata],
                    rows: List[Sequence[Any]]) -> int:
        """
        Insert a batch of rows in one transaction.

        Args:
            table_name: Target table
            columns: Column metadata aligned with the rows
            rows: Batch of row tuples

        Returns:
            Number of rows written
        """
        statement = self.builder.build_insert(table_name, columns)
        return self._write_batch(statement, rows)

    def upsert_rows(self, table_name: str, columns: List[ColumnMetadata],
                    rows: List[Sequence[Any]], merge_keys: List[str]) -> int:
        """
        Insert or update a batch of rows keyed by ``merge_keys`` in one transaction.

        Args:
            table_name: Target table
            columns: Column metadata aligned with the rows
            rows: Batch of row tuples
            merge_keys: Key columns identifying existing rows

        Returns:
            Number of rows written
        """
        statement = self.builder.build_upsert(table_name, columns, merge_keys)
        return self._write_batch(statement, rows)

    def _write_batch(self, statement: Statement, rows: List[Sequence[Any]]) -> int:
        if not rows:
            return 0
        conn = self._require_connection()
        params = [self._adapt_row(statement.bind(row)) for row in rows]
        try:
            with self._cursor(conn) as cursor:
                self._begin(cursor)
                cursor.executemany(statement.sql, params)
            conn.commit()
        except Exception:
            self._rollback_quietly()
            raise
        return len(params)

    def _adapt_row(self, row: Tuple[Any, ...]) -> Tuple[Any, ...]:
        return tuple(self._adapt_value(value) for value in row)

    def _adapt_value(self, value: Any) -> Any:
        return value

    def _begin(self, cursor):
        """Hook for drivers that do not open transactions implicitly."""

    def get_table_row_count(self, table_name: str) -> int:
        """
        Get row count for a target table.

        Raises:
            QueryError: If the count fails
        """
        try:
            return self._fetch_scalar(self.builder.build_table_row_count(table_name))
        except Exception as e:
            raise QueryError(f"failed to count rows of table {table_name}: {e}") from e

    def create_indexes(self, table_name: str, indexes: List[Any]):
        """
        Create the configured indexes, replacing same-named ones.

        Args:
            table_name: Indexed table
            indexes: IndexConfig objects with parsed columns

        Raises:
            SchemaError: If an index cannot be created
        """
        for index in indexes:
            drop_sql = self.builder.build_drop_index(table_name, index.name)
            try:
                self._execute_ddl([drop_sql])
            except Exception as e:
                self.logger.warning(f"Could not drop index {index.name} before re-creating it: {e}")

            create_sql = self.builder.build_index(table_name, index)
            self.logger.info(f"Creating index: {create_sql}")
            try:
                self._execute_ddl([create_sql])
            except Exception as e:
                raise SchemaError(
                    f"failed to create index '{index.name}' on table '{table_name}': {e}"
                ) from e
            self.logger.info(f"Successfully created index '{index.name}' on table '{table_name}'")

    def ensure_merge_index(self, table_name: str, merge_keys: List[str]):
        """
        Ensure a unique index over the merge keys where the upsert needs one.

        Raises:
            SchemaError: If the index cannot be created
        """
        index_sql = self.builder.build_merge_key_index(table_name, merge_keys)
        if not index_sql:
            return
        try:
            self._execute_ddl([index_sql])
        except Exception as e:
            raise SchemaError(f"failed to ensure merge key index on table {table_name}: {e}") from e

    # -- helpers -----------------------------------------------------------

    def _cursor(self, conn):
        """Cursor usable as a context manager."""
        return _ClosingCursor(conn.cursor())

    def _execute_ddl(self, statements: List[str]):
        conn = self._require_connection()
        try:
            with self._cursor(conn) as cursor:
                self._begin(cursor)
                for ddl in statements:
                    cursor.execute(ddl)
            conn.commit()
        except Exception:
            self._rollback_quietly()
            raise

    def _fetch_scalar(self, sql: str) -> int:
        conn = self._require_connection()
        try:
            with self._cursor(conn) as cursor:
                cursor.execute(sql)
                row = cursor.fetchone()
        except Exception:
            self._rollback_quietly()
            raise
        return int(row[0]) if row else 0

    def _close_quietly(self, cursor):
        try:
            cursor.close()
        except Exception as e:
            self.logger.debug(f"Closing cursor failed: {e}")

    def _rollback_quietly(self):
        if not self.conn:
            return
        try:
            self.conn.rollback()
        except Exception as e:
            self.logger.debug(f"Rollback failed: {e}")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()


class _ClosingCursor:
    def __init__(self, cursor):
        self.cursor = cursor

    def __enter__(self):
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cursor.close()

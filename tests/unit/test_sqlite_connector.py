import datetime
import decimal
import sqlite3

import pytest
from dbferry.config import IndexConfig
from dbferry.connectors.sqlite import SQLiteConnector
from dbferry.converters.types import ColumnMetadata
from dbferry.errors import QueryError, SchemaError

COLUMNS = [
    ColumnMetadata(name="id", scan_type="INTEGER"),
    ColumnMetadata(name="name", scan_type="STRING"),
]


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "nested" / "test.db")


@pytest.fixture
def connector(db_path):
    """Connected SQLite connector on a temporary file."""
    conn = SQLiteConnector({"alias": "local", "type": "sqlite", "path": db_path}, retry_delay=0)
    conn.connect()
    yield conn
    conn.disconnect()


def fetch(db_path, sql):
    with sqlite3.connect(db_path) as conn:
        return conn.execute(sql).fetchall()


def test_connect_creates_directory(connector, db_path):
    """Test the parent directory of the database file is created."""
    assert connector.conn is not None
    assert fetch(db_path, "SELECT 1") == [(1,)]


def test_query_types_from_first_row(connector):
    """Test column types are inferred from the sampled row."""
    result = connector.query("SELECT 1 AS id, 'x' AS name, 1.5 AS ratio, NULL AS missing_value")

    assert [c.name for c in result.columns] == ["id", "name", "ratio", "missing_value"]
    assert [c.scan_type for c in result.columns] == ["INTEGER", "STRING", "DOUBLE", ""]
    assert all(c.source_type_name == "" for c in result.columns)
    assert list(result) == [(1, "x", 1.5, None)]
    result.close()


def test_query_types_skip_leading_nulls(connector):
    """Test a column that starts with NULL is typed from a later row."""
    connector._execute_ddl([
        'CREATE TABLE "payments" ("id" INTEGER, "code" TEXT, "amount" REAL)',
        "INSERT INTO \"payments\" VALUES (1, 'a', NULL), (2, 'b', 2.5), (3, 'c', 4.0)",
    ])

    result = connector.query('SELECT id, code, amount FROM "payments" ORDER BY id')

    assert [c.scan_type for c in result.columns] == ["INTEGER", "STRING", "DOUBLE"]
    assert list(result) == [(1, "a", None), (2, "b", 2.5), (3, "c", 4.0)]


def test_query_type_sampling_is_bounded(connector):
    """Test an all-NULL column stops reading ahead after the sample limit."""
    connector.SAMPLE_ROWS = 2
    connector._execute_ddl([
        'CREATE TABLE "sparse" ("id" INTEGER, "note" TEXT)',
        "INSERT INTO \"sparse\" VALUES (1, NULL), (2, NULL), (3, 'late'), (4, NULL)",
    ])

    result = connector.query('SELECT id, note FROM "sparse" ORDER BY id')

    assert [c.scan_type for c in result.columns] == ["INTEGER", ""]
    assert [row[0] for row in result] == [1, 2, 3, 4]


def test_query_empty_result(connector):
    """Test an empty result still reports its columns."""
    connector._execute_ddl(['CREATE TABLE "empty" ("a" INTEGER)'])
    result = connector.query('SELECT a FROM "empty"')
    assert [c.name for c in result.columns] == ["a"]
    assert list(result) == []


def test_query_streams_in_chunks(connector):
    """Test every row is yielded across fetch chunks."""
    connector.FETCH_SIZE = 3
    sql = ("WITH RECURSIVE n(i) AS (SELECT 1 UNION ALL SELECT i + 1 FROM n WHERE i < 10) "
           "SELECT i FROM n")
    assert [row[0] for row in connector.query(sql)] == list(range(1, 11))


def test_query_error(connector):
    """Test invalid SQL raises QueryError."""
    with pytest.raises(QueryError, match="failed to execute query on 'local'"):
        connector.query("SELECT * FROM missing_table")


def test_source_row_count(connector):
    """Test counting the rows of a query."""
    assert connector.get_row_count("SELECT 1 UNION ALL SELECT 2;") == 2


def test_create_and_insert(connector, db_path):
    """Test table creation and batch inserts."""
    connector.create_table("events", COLUMNS)
    assert connector.insert_rows("events", COLUMNS, [(1, "a"), (2, "b")]) == 2

    assert fetch(db_path, 'SELECT id, name FROM "events" ORDER BY id') == [(1, "a"), (2, "b")]
    assert connector.get_table_row_count("events") == 2


def test_create_table_replaces(connector):
    """Test replace drops the existing rows."""
    connector.create_table("events", COLUMNS)
    connector.insert_rows("events", COLUMNS, [(1, "a")])
    connector.create_table("events", COLUMNS)
    assert connector.get_table_row_count("events") == 0


def test_ensure_table_keeps_rows(connector):
    """Test append keeps an existing table."""
    connector.ensure_table("events", COLUMNS)
    connector.insert_rows("events", COLUMNS, [(1, "a")])
    connector.ensure_table("events", COLUMNS)
    assert connector.get_table_row_count("events") == 1


def test_upsert_rows(connector, db_path):
    """Test merge updates existing keys and inserts new ones."""
    connector.ensure_table("events", COLUMNS)
    connector.ensure_merge_index("events", ["id"])
    connector.upsert_rows("events", COLUMNS, [(1, "a"), (2, "b")], ["id"])
    connector.upsert_rows("events", COLUMNS, [(2, "B"), (3, "c")], ["id"])

    assert fetch(db_path, 'SELECT id, name FROM "events" ORDER BY id') == [(1, "a"), (2, "B"), (3, "c")]


def test_failed_batch_rolls_back(connector):
    """Test a batch is all or nothing."""
    connector.ensure_table("events", COLUMNS)
    connector.ensure_merge_index("events", ["id"])
    with pytest.raises(sqlite3.IntegrityError):
        connector.insert_rows("events", COLUMNS, [(1, "a"), (1, "duplicate")])
    assert connector.get_table_row_count("events") == 0


def test_adapted_values(connector, db_path):
    """Test values SQLite cannot bind natively are converted."""
    columns = [ColumnMetadata(name="amount", scan_type="DECIMAL"),
               ColumnMetadata(name="created", scan_type="DATETIME"),
               ColumnMetadata(name="day", scan_type="DATE"),
               ColumnMetadata(name="at", scan_type="TIME")]
    connector.create_table("typed", columns)
    connector.insert_rows("typed", columns, [(
        decimal.Decimal("12.50"),
        datetime.datetime(2024, 1, 2, 3, 4, 5),
        datetime.date(2024, 1, 2),
        datetime.time(6, 7, 8),
    )])

    assert fetch(db_path, 'SELECT CAST(amount AS TEXT), created, day, at FROM "typed"') == [
        ("12.5", "2024-01-02 03:04:05", "2024-01-02 00:00:00", "06:07:08")
    ]


def test_create_indexes(connector, db_path):
    """Test configured indexes are created and re-created."""
    connector.create_table("events", COLUMNS)
    index = IndexConfig(name="idx_events_name", columns=["name:-1"], where="id > 0")
    index.parse_columns()

    connector.create_indexes("events", [index])
    connector.create_indexes("events", [index])

    rows = fetch(db_path, "SELECT sql FROM sqlite_master WHERE type = 'index' AND name = 'idx_events_name'")
    assert rows == [('CREATE INDEX "idx_events_name" ON "events" ("name" DESC) WHERE id > 0',)]


def test_create_index_failure(connector):
    """Test index errors name the index and table."""
    index = IndexConfig(name="idx_missing", columns=["id"])
    index.parse_columns()
    with pytest.raises(SchemaError, match="failed to create index 'idx_missing' on table 'nowhere'"):
        connector.create_indexes("nowhere", [index])


def test_table_row_count_error(connector):
    """Test counting a missing table raises QueryError."""
    with pytest.raises(QueryError, match="failed to count rows of table nowhere"):
        connector.get_table_row_count("nowhere")

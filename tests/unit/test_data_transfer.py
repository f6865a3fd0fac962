from unittest.mock import Mock, call

import pytest
from dbferry.config import IndexConfig, TaskConfig
from dbferry.converters.dialects import get_dialect
from dbferry.converters.schema import SQLBuilder
from dbferry.converters.types import ColumnMetadata
from dbferry.data_transfer import DataTransfer, TaskState
from dbferry.errors import LoadError, QueryError, ResumeStateError, ValidationError
from dbferry.state import ResumeStateStore

COLUMNS = [
    ColumnMetadata(name="id", source_type_name="INTEGER"),
    ColumnMetadata(name="payload", source_type_name="TEXT"),
]


class FakeResult:
    def __init__(self, rows, columns=COLUMNS):
        self.rows = rows
        self.columns = columns
        self.closed = False

    def __iter__(self):
        return iter(self.rows)

    def close(self):
        self.closed = True


@pytest.fixture
def source():
    """Mock source connector."""
    mock = Mock()
    mock.builder = SQLBuilder(get_dialect("sqlite"))
    mock.get_row_count.return_value = 5
    mock.query.return_value = FakeResult([(i, f"row {i}") for i in range(1, 6)])
    return mock


@pytest.fixture
def target():
    """Mock target connector."""
    mock = Mock()
    mock.builder = SQLBuilder(get_dialect("postgresql"))
    return mock


@pytest.fixture
def sleep():
    return Mock()


def make_task(**overrides):
    values = dict(table_name="events", sql="SELECT * FROM events", source_db="src", target_db="dst",
                  batch_size=2)
    values.update(overrides)
    return TaskConfig(**values)


def test_transfer_in_batches(source, target, sleep):
    """Test rows are flushed in batch_size chunks."""
    transfer = DataTransfer(source, target, sleep=sleep)

    stats = transfer.transfer_task(make_task())

    assert stats['rows_transferred'] == 5
    assert stats['batches'] == 3
    assert stats['total_rows'] == 5
    assert [len(c.args[2]) for c in target.insert_rows.call_args_list] == [2, 2, 1]
    assert transfer.state is TaskState.DONE
    target.create_table.assert_called_once_with("events", COLUMNS)
    source.query.assert_called_once_with("SELECT * FROM events")
    assert source.query.return_value.closed
    sleep.assert_not_called()


def test_append_mode_ensures_table(source, target):
    """Test append uses create-if-absent."""
    DataTransfer(source, target).transfer_task(make_task(mode="append"))
    target.ensure_table.assert_called_once_with("events", COLUMNS)
    target.create_table.assert_not_called()


def test_merge_mode_upserts(source, target):
    """Test merge ensures the table and key index, then upserts."""
    DataTransfer(source, target).transfer_task(make_task(mode="merge", merge_keys=["id"]))
    target.ensure_table.assert_called_once_with("events", COLUMNS)
    target.ensure_merge_index.assert_called_once_with("events", ["id"])
    assert target.upsert_rows.call_count == 3
    assert target.upsert_rows.call_args_list[0].args[3] == ["id"]
    target.insert_rows.assert_not_called()


def test_skip_create_table(source, target):
    """Test the target table is left untouched."""
    DataTransfer(source, target).transfer_task(make_task(skip_create_table=True))
    target.create_table.assert_not_called()
    target.ensure_table.assert_not_called()


def test_retry_then_success(source, target, sleep):
    """Test failed batches are retried with linear backoff."""
    target.insert_rows.side_effect = [RuntimeError("deadlock"), RuntimeError("deadlock"), 2, 2, 1]
    transfer = DataTransfer(source, target, retry_delay=1.5, sleep=sleep)

    stats = transfer.transfer_task(make_task(max_retries=2))

    assert stats['rows_transferred'] == 5
    assert target.insert_rows.call_count == 5
    assert sleep.call_args_list == [call(1.5), call(3.0)]


def test_retry_exhausted(source, target, sleep):
    """Test exhausting retries aborts with a LoadError."""
    target.insert_rows.side_effect = RuntimeError("disk full")
    transfer = DataTransfer(source, target, sleep=sleep)

    with pytest.raises(LoadError, match="after 2 attempt") as excinfo:
        transfer.transfer_task(make_task(max_retries=1))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert target.insert_rows.call_count == 2
    assert sleep.call_args_list == [call(1.0)]
    assert transfer.state is TaskState.ABORTED
    assert source.query.return_value.closed


def test_no_retries_by_default(source, target, sleep):
    """Test max_retries=0 means a single attempt."""
    target.insert_rows.side_effect = RuntimeError("nope")
    with pytest.raises(LoadError):
        DataTransfer(source, target, sleep=sleep).transfer_task(make_task())
    assert target.insert_rows.call_count == 1
    sleep.assert_not_called()


def test_watermark_saved_after_each_batch(source, target, tmp_path):
    """Test the resume literal is persisted after every commit."""
    store = Mock(wraps=ResumeStateStore())
    state_file = str(tmp_path / "state.json")
    task = make_task(resume_key="id", state_file=state_file)

    stats = DataTransfer(source, target, state_store=store).transfer_task(task)

    assert [c.args[2] for c in store.record.call_args_list] == [2, 4, 5]
    assert stats['resume_literal'] == "5"
    assert ResumeStateStore().get_literal(state_file, "src:dst:events") == "5"
    source.query.assert_called_once_with("SELECT * FROM (SELECT * FROM events) AS src ORDER BY id")
    source.get_row_count.assert_called_once_with("SELECT * FROM (SELECT * FROM events) AS src")


def test_resume_literal_from_state_file(source, target, tmp_path):
    """Test a stored literal wins over resume_from."""
    state_file = str(tmp_path / "state.json")
    store = ResumeStateStore()
    store.record(state_file, "src:dst:events", 30)
    task = make_task(resume_key="id", resume_from="10", state_file=state_file)

    DataTransfer(source, target, state_store=store).transfer_task(task)

    source.query.assert_called_once_with(
        "SELECT * FROM (SELECT * FROM events) AS src WHERE id > 30 ORDER BY id"
    )


def test_resume_from_without_state_file(source, target):
    """Test resume_from seeds the filter."""
    DataTransfer(source, target).transfer_task(make_task(resume_key="ID", resume_from="'2024-01-01'"))
    source.query.assert_called_once_with(
        "SELECT * FROM (SELECT * FROM events) AS src WHERE ID > '2024-01-01' ORDER BY ID"
    )


def test_null_watermark_aborts(source, target, tmp_path):
    """Test a NULL resume key value aborts the task."""
    source.query.return_value = FakeResult([(1, "a"), (None, "b")])
    task = make_task(resume_key="id", state_file=str(tmp_path / "s.json"))

    with pytest.raises(ResumeStateError, match="value is NULL"):
        DataTransfer(source, target).transfer_task(task)


def test_resume_key_missing_from_columns(source, target):
    """Test the resume key must be a query column."""
    with pytest.raises(ResumeStateError, match="resume_key 'created' not found"):
        DataTransfer(source, target).transfer_task(make_task(resume_key="created", resume_from="1"))


def test_source_count_failure_is_a_warning(source, target):
    """Test an unknown total does not stop the task."""
    source.get_row_count.side_effect = QueryError("count not supported")
    progress = Mock()
    factory = Mock(return_value=progress)

    stats = DataTransfer(source, target, progress_factory=factory).transfer_task(make_task())

    assert stats['total_rows'] is None
    assert stats['rows_transferred'] == 5
    factory.assert_called_once_with(total=None, desc="events", unit="rows")
    assert progress.increment.call_count == 5
    progress.finish.assert_called_once()


def test_source_query_failure(source, target):
    """Test query errors abort the task."""
    source.query.side_effect = QueryError("syntax error")
    transfer = DataTransfer(source, target)
    with pytest.raises(QueryError, match="syntax error"):
        transfer.transfer_task(make_task())
    assert transfer.state is TaskState.ABORTED


def test_row_iteration_failure_is_wrapped(source, target):
    """Test driver errors during fetch become QueryErrors."""
    def rows():
        yield (1, "a")
        raise RuntimeError("connection reset")

    source.query.return_value = FakeResult(rows())
    with pytest.raises(QueryError, match="error during row iteration"):
        DataTransfer(source, target).transfer_task(make_task())


def test_text_bytes_are_decoded(source, target):
    """Test byte payloads in text columns reach the target as str."""
    source.query.return_value = FakeResult([(1, b"caf\xc3\xa9")])
    DataTransfer(source, target).transfer_task(make_task())
    assert target.insert_rows.call_args.args[2] == [(1, "café")]


def test_row_count_validation(source, target):
    """Test target growth is compared with processed rows."""
    target.get_table_row_count.side_effect = [10, 15]
    stats = DataTransfer(source, target).transfer_task(make_task(mode="append", validate="row_count"))
    assert stats['rows_transferred'] == 5


def test_row_count_validation_failure(source, target):
    """Test a short count aborts the task."""
    target.get_table_row_count.side_effect = [0, 4]
    with pytest.raises(ValidationError, match="expected 5 inserted rows but got 4"):
        DataTransfer(source, target).transfer_task(make_task(validate="row_count"))
    target.create_indexes.assert_not_called()


def test_indexes_created_after_load(source, target):
    """Test indexes are built once the data is loaded."""
    index = IndexConfig(name="idx_events_id", columns=["id"])
    index.parse_columns()
    DataTransfer(source, target).transfer_task(make_task(indexes=[index]))
    target.create_indexes.assert_called_once_with("events", [index])


def test_unexpected_error_is_wrapped(source, target):
    """Test non-dbferry errors keep their cause."""
    target.create_table.side_effect = KeyError("boom")
    with pytest.raises(QueryError) as excinfo:
        DataTransfer(source, target).transfer_task(make_task())
    assert isinstance(excinfo.value.__cause__, KeyError)

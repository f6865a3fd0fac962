"""Batch pipeline streaming one task's query result into its target table."""

import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .config import MODE_MERGE, MODE_REPLACE, VALIDATE_ROW_COUNT, TaskConfig
from .connectors.base import BaseConnector
from .converters.types import ColumnMetadata
from .errors import DbFerryError, LoadError, QueryError, ResumeStateError
from .logger import get_logger
from .progress import NullProgress, ProgressReporter
from .state import ResumeStateStore
from .validator import Validator
from .values import scan_row


class TaskState(Enum):
    """Lifecycle of a task inside the pipeline."""
    PREPARING = "preparing"
    STREAMING = "streaming"
    DRAINING = "draining"
    VALIDATING = "validating"
    INDEXING = "indexing"
    DONE = "done"
    ABORTED = "aborted"


class DataTransfer:
    """Transfer a task's rows from a source to a target in batches."""

    def __init__(self, source: BaseConnector, target: BaseConnector,
                 state_store: Optional[ResumeStateStore] = None,
                 progress_factory: Callable[..., ProgressReporter] = NullProgress,
                 retry_delay: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize DataTransfer.

        Args:
            source: Source database connector
            target: Target database connector
            state_store: Resume state store shared by the run
            progress_factory: Builds a reporter from ``total``, ``desc`` and ``unit``
            retry_delay: Base delay between batch attempts (seconds)
            sleep: Sleep function used between attempts
        """
        self.source = source
        self.target = target
        self.state_store = state_store or ResumeStateStore()
        self.progress_factory = progress_factory
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.state = TaskState.PREPARING
        self.logger = get_logger("data_transfer")

    def transfer_task(self, task: TaskConfig) -> Dict[str, Any]:
        """Run one task to completion.

        Args:
            task: Task to execute

        Returns:
            Dictionary with transfer statistics (rows_transferred, batches,
            total_rows, resume_literal, time_taken)

        Raises:
            DbFerryError: Any failure; the task is left ABORTED
        """
        start_time = time.time()
        self.state = TaskState.PREPARING
        try:
            stats = self._run(task)
        except Exception as e:
            self.state = TaskState.ABORTED
            self.logger.error(f"Task {task.table_name} aborted: {e}")
            if isinstance(e, DbFerryError):
                raise
            raise QueryError(f"error while processing table {task.table_name}: {e}") from e
        stats['time_taken'] = time.time() - start_time
        return stats

    def _run(self, task: TaskConfig) -> Dict[str, Any]:
        resume_literal = self.resolve_resume_literal(task)
        query_sql, count_sql = self.source.builder.wrap_resume_query(
            task.sql, task.resume_key, resume_literal
        )
        if task.resume_key:
            if resume_literal:
                self.logger.info(f"Resume enabled for {task.table_name}: {task.resume_key} > {resume_literal}")
            else:
                self.logger.info(f"Resume enabled for {task.table_name} with key {task.resume_key}")

        total_rows = self._count_source_rows(task, count_sql)

        self.logger.info(f"Executing query for table {task.table_name}")
        result = self.source.query(query_sql)
        progress = None
        try:
            columns = result.columns
            resume_index = self._resume_index(task, columns)
            self._prepare_table(task, columns)

            validator = None
            if task.validate == VALIDATE_ROW_COUNT:
                validator = Validator(self.target, task.table_name)
                validator.capture_baseline()

            progress = self.progress_factory(
                total=total_rows if total_rows else None,
                desc=task.table_name,
                unit="rows",
            )
            column_types = [self.target.builder.type_mapper.classify(col) for col in columns]

            self.state = TaskState.STREAMING
            batch: List[tuple] = []
            processed_rows = 0
            batches = 0
            last_resume_value = None
            try:
                for raw_row in result:
                    row = scan_row(raw_row, column_types)
                    if resume_index is not None:
                        last_resume_value = row[resume_index]
                    batch.append(row)
                    processed_rows += 1
                    progress.increment()

                    if len(batch) >= task.batch_size:
                        resume_literal = self._flush(task, columns, batch, last_resume_value) or resume_literal
                        batches += 1
                        batch = []
            except DbFerryError:
                raise
            except Exception as e:
                raise QueryError(f"error during row iteration for table {task.table_name}: {e}") from e

            self.state = TaskState.DRAINING
            if batch:
                resume_literal = self._flush(task, columns, batch, last_resume_value) or resume_literal
                batches += 1

            if total_rows is not None:
                progress.set_current(processed_rows)
                if processed_rows < total_rows:
                    self.logger.warning(
                        f"Processed {processed_rows} rows but expected {total_rows} for table {task.table_name}"
                    )
        finally:
            result.close()
            if progress is not None:
                progress.finish()

        self.state = TaskState.VALIDATING
        if validator is not None:
            validator.validate_row_count(processed_rows)

        self.state = TaskState.INDEXING
        if task.indexes:
            self.logger.info(f"Creating {len(task.indexes)} indexes for table {task.table_name}")
            self.target.create_indexes(task.table_name, task.indexes)

        self.state = TaskState.DONE
        self.logger.info(f"Successfully processed {processed_rows} rows for table {task.table_name}")
        return {
            'rows_transferred': processed_rows,
            'batches': batches,
            'total_rows': total_rows,
            'resume_literal': resume_literal,
        }

    def resolve_resume_literal(self, task: TaskConfig) -> Optional[str]:
        """Resume literal from the state file, else ``resume_from``, else None."""
        if not task.resume_key:
            return None
        if task.state_file:
            literal = self.state_store.get_literal(task.state_file, task.task_key)
            if literal:
                return literal
        return task.resume_from or None

    def _count_source_rows(self, task: TaskConfig, count_sql: str) -> Optional[int]:
        try:
            total_rows = self.source.get_row_count(count_sql)
        except QueryError as e:
            self.logger.warning(f"Could not get row count for progress tracking: {e}")
            return None
        self.logger.info(f"Found {total_rows} rows to process for table {task.table_name}")
        return total_rows

    def _resume_index(self, task: TaskConfig, columns: List[ColumnMetadata]) -> Optional[int]:
        if not task.resume_key:
            return None
        wanted = task.resume_key.lower()
        for index, column in enumerate(columns):
            if column.name.lower() == wanted:
                return index
        raise ResumeStateError(
            f"resume_key '{task.resume_key}' not found in query columns for table {task.table_name}"
        )

    def _prepare_table(self, task: TaskConfig, columns: List[ColumnMetadata]):
        if task.skip_create_table:
            self.logger.info(f"Skipping table creation for {task.table_name}")
            return
        if task.mode == MODE_REPLACE:
            self.target.create_table(task.table_name, columns)
        else:
            self.target.ensure_table(task.table_name, columns)
            if task.mode == MODE_MERGE:
                self.target.ensure_merge_index(task.table_name, task.merge_keys)

    def _flush(self, task: TaskConfig, columns: List[ColumnMetadata], batch: List[tuple],
               last_resume_value: Any) -> Optional[str]:
        self._write_with_retry(task, columns, batch)
        if not task.resume_key:
            return None
        if last_resume_value is None:
            raise ResumeStateError(
                f"resume_key '{task.resume_key}' value is NULL for table {task.table_name}"
            )
        if task.state_file:
            return self.state_store.record(task.state_file, task.task_key, last_resume_value)
        return None

    def _write_with_retry(self, task: TaskConfig, columns: List[ColumnMetadata], batch: List[tuple]):
        attempts = task.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                if task.mode == MODE_MERGE:
                    self.target.upsert_rows(task.table_name, columns, batch, task.merge_keys)
                else:
                    self.target.insert_rows(task.table_name, columns, batch)
                return
            except Exception as e:
                if attempt == attempts:
                    self.logger.error(f"Write batch failed (attempt {attempt}/{attempts}): {e}")
                    raise LoadError(
                        f"failed to write batch to {task.table_name} after {attempts} attempt(s): {e}"
                    ) from e
                wait = attempt * self.retry_delay
                self.logger.warning(
                    f"Write batch failed (attempt {attempt}/{attempts}): {e}; retrying in {wait}s"
                )
                self.sleep(wait)

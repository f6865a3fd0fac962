"""Task orchestration module."""

import time
from typing import Any, Callable, Dict, Optional

from .config import Config
from .connectors.base import ROLE_SOURCE, ROLE_TARGET
from .connectors.registry import ConnectionRegistry
from .data_transfer import DataTransfer
from .errors import TaskFailedError
from .logger import get_logger
from .progress import NullProgress, ProgressReporter
from .state import ResumeStateStore


class Processor:
    """Run every enabled task of a configuration, one after another."""

    def __init__(self, config: Config,
                 registry: Optional[ConnectionRegistry] = None,
                 state_store: Optional[ResumeStateStore] = None,
                 progress_factory: Callable[..., ProgressReporter] = NullProgress,
                 retry_delay: Optional[float] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize Processor.

        Args:
            config: Validated configuration
            registry: Connection registry (built from the config when omitted)
            state_store: Resume state store shared by all tasks
            progress_factory: Builds progress reporters for tasks and the run
            retry_delay: Base delay between batch attempts; defaults to the config value
            sleep: Sleep function used between batch attempts
        """
        self.config = config
        self.registry = registry or ConnectionRegistry(config.databases)
        self.state_store = state_store or ResumeStateStore()
        self.progress_factory = progress_factory
        self.retry_delay = config.retry_delay if retry_delay is None else retry_delay
        self.sleep = sleep
        self.logger = get_logger("processor")

    def process_all_tasks(self) -> Dict[str, Any]:
        """Run all enabled tasks.

        Every alias is role-checked before the first task starts. A failed
        task is logged and the remaining tasks still run.

        Returns:
            Run summary with status and statistics

        Raises:
            ConfigurationError: If an alias is unknown or used in a wrong role
            TaskFailedError: The first task failure, after all tasks were attempted
        """
        start_time = time.time()
        tasks = self.config.enabled_tasks

        for task in tasks:
            self.registry.check_role(task.source_db, ROLE_SOURCE)
            self.registry.check_role(task.target_db, ROLE_TARGET)

        self.logger.info(f"Starting {len(tasks)} task(s)")

        tasks_completed = 0
        tasks_failed = 0
        rows_transferred = 0
        first_error = None
        task_progress = self.progress_factory(total=len(tasks), desc="Processing tasks", unit="tasks")

        try:
            for number, task in enumerate(self.config.tasks, start=1):
                if task.ignore:
                    self.logger.info(f"Skipping ignored task: {task.table_name}")
                    continue

                self.logger.info(f"Processing task {number}/{len(self.config.tasks)}: {task.table_name}")
                try:
                    source = self.registry.get_source(task.source_db)
                    target = self.registry.get_target(task.target_db)
                    transfer = DataTransfer(
                        source,
                        target,
                        state_store=self.state_store,
                        progress_factory=self.progress_factory,
                        retry_delay=self.retry_delay,
                        sleep=self.sleep,
                    )
                    stats = transfer.transfer_task(task)
                except Exception as err:
                    tasks_failed += 1
                    failure = TaskFailedError(task.table_name, err)
                    failure.__cause__ = err
                    self.logger.error(f"✗ {failure}", exc_info=err)
                    if first_error is None:
                        first_error = failure
                    continue

                tasks_completed += 1
                rows_transferred += stats['rows_transferred']
                task_progress.increment()
                self.logger.info(f"✓ Successfully completed task: {task.table_name}")
        finally:
            task_progress.finish()

        total_time = time.time() - start_time
        status = 'completed' if tasks_failed == 0 else 'failed'
        self.logger.info(
            f"Run {status}: {tasks_completed} task(s) succeeded, {tasks_failed} failed in {total_time:.2f}s"
        )

        if first_error is not None:
            raise first_error

        return {
            'status': status,
            'tasks_completed': tasks_completed,
            'tasks_failed': tasks_failed,
            'rows_transferred': rows_transferred,
            'total_time': total_time,
        }

    def close(self):
        """Close every connection opened by the run.

        Raises:
            ConnectionCloseError: If any connection failed to close
        """
        self.registry.close_all()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

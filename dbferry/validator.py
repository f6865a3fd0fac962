"""Validator module for post-load row count validation."""

from typing import Any, Dict

from .connectors.base import BaseConnector
from .errors import ValidationError
from .logger import get_logger


class Validator:
    """Check that a target table grew by exactly the rows a task streamed."""

    def __init__(self, target: BaseConnector, table_name: str):
        """Initialize Validator.

        Args:
            target: Target database connector
            table_name: Table being loaded
        """
        self.target = target
        self.table_name = table_name
        self.baseline = None
        self.logger = get_logger("validator")

    def capture_baseline(self) -> int:
        """Record the target row count before any batch is written.

        Returns:
            Row count of the target table
        """
        self.baseline = self.target.get_table_row_count(self.table_name)
        self.logger.debug(f"Row count of {self.table_name} before load: {self.baseline}")
        return self.baseline

    def validate_row_count(self, processed_rows: int) -> Dict[str, Any]:
        """Compare target growth with the number of rows processed.

        Args:
            processed_rows: Rows streamed and committed by the task

        Returns:
            Dictionary with before/after counts and the inserted row delta

        Raises:
            ValidationError: If the table grew by a different number of rows
        """
        if self.baseline is None:
            raise ValidationError(f"no baseline row count captured for table {self.table_name}")

        after = self.target.get_table_row_count(self.table_name)
        inserted = after - self.baseline
        result = {
            'is_valid': inserted == processed_rows,
            'before': self.baseline,
            'after': after,
            'inserted': inserted,
            'expected': processed_rows,
        }
        if not result['is_valid']:
            raise ValidationError(
                f"row count validation failed for table {self.table_name}: "
                f"expected {processed_rows} inserted rows but got {inserted}"
            )
        self.logger.info(f"Row count validated for {self.table_name}: {inserted} rows inserted")
        return result

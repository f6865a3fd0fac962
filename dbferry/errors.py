"""Exception hierarchy for dbferry."""
from typing import List


class DbFerryError(Exception):
    """Base class for all dbferry errors."""


class ConfigurationError(DbFerryError):
    """Bad database alias, role or task definition. Never retried."""


class QueryError(DbFerryError):
    """Source query or row count query failed."""


class SchemaError(DbFerryError):
    """Target table or index preparation failed."""


class LoadError(DbFerryError):
    """Batch insert/upsert failed after exhausting retries."""


class ResumeStateError(DbFerryError):
    """State file unreadable/unwritable or resume value unusable."""


class ValidationError(DbFerryError):
    """Post-load row count does not match rows processed."""


class TaskFailedError(DbFerryError):
    """A task aborted; the underlying error is chained as ``__cause__``."""

    def __init__(self, table_name: str, cause: Exception):
        super().__init__(f"failed to process task {table_name}: {cause}")
        self.table_name = table_name
        self.cause = cause


class ConnectionCloseError(DbFerryError):
    """One or more connections failed to close."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class ConnectionOpenError(DbFerryError):
    """A database alias could not be opened."""

"""Resume watermark persistence for incremental tasks."""
import datetime
import decimal
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from .converters.schema import quote_literal
from .errors import ResumeStateError
from .values import ValueKind, value_kind

TEMPORAL_FORMAT = "%Y-%m-%d %H:%M:%S"
# Date that time-of-day watermarks are rendered on
TIME_EPOCH = datetime.date(1970, 1, 1)


def format_resume_literal(value: Any) -> str:
    """
    Render a resume key value as a SQL literal for a ``key > literal`` filter.

    Args:
        value: Last resume key value of a committed batch

    Returns:
        SQL literal text

    Raises:
        ResumeStateError: If the value is NULL or a non-finite number
    """
    kind = value_kind(value)
    if kind is ValueKind.NULL:
        raise ResumeStateError("resume key value is NULL")
    if kind is ValueKind.BOOLEAN:
        return "1" if value else "0"
    if kind is ValueKind.INTEGER:
        return str(value)
    if kind is ValueKind.FLOAT:
        if isinstance(value, float):
            value = decimal.Decimal(repr(value))
        if not value.is_finite():
            raise ResumeStateError(f"resume key value {value} is not a finite number")
        return format(value, "f")
    if kind is ValueKind.TEMPORAL:
        if isinstance(value, datetime.time):
            value = datetime.datetime.combine(TIME_EPOCH, value)
        return quote_literal(value.strftime(TEMPORAL_FORMAT))
    if kind is ValueKind.BINARY:
        return quote_literal(bytes(value).decode("utf-8", errors="replace"))
    return quote_literal(str(value))


class ResumeStateStore:
    """Cache of resume state files, keyed by path.

    Each file is read once per run; every :meth:`record` writes the whole
    file back before returning.
    """

    def __init__(self):
        self._states: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, path: str) -> Dict[str, Any]:
        """
        Load (once) the state stored at ``path``.

        A missing or blank file yields an empty state.

        Args:
            path: State file path

        Returns:
            State dictionary with a ``tasks`` mapping

        Raises:
            ResumeStateError: If the file cannot be read or parsed
        """
        with self._lock:
            return self._load(path)

    def _load(self, path: str) -> Dict[str, Any]:
        if path in self._states:
            return self._states[path]

        state: Dict[str, Any] = {"tasks": {}}
        state_file = Path(path)
        if state_file.exists():
            try:
                content = state_file.read_text(encoding="utf-8")
            except OSError as e:
                raise ResumeStateError(f"failed to read state file {path}: {e}") from e
            if content.strip():
                try:
                    loaded = json.loads(content)
                except json.JSONDecodeError as e:
                    raise ResumeStateError(f"failed to parse state file {path}: {e}") from e
                if not isinstance(loaded, dict):
                    raise ResumeStateError(f"failed to parse state file {path}: expected an object")
                state.update(loaded)
                if not isinstance(state.get("tasks"), dict):
                    state["tasks"] = {}

        self._states[path] = state
        return state

    def save(self, path: str, state: Dict[str, Any]):
        """
        Write a state to disk, replacing the previous file atomically.

        Raises:
            ResumeStateError: If the file cannot be written
        """
        with self._lock:
            self._save(path, state)

    def _save(self, path: str, state: Dict[str, Any]):
        state["last_updated"] = datetime.datetime.now().isoformat()
        state_file = Path(path)
        try:
            # Ensure parent directory exists
            state_file.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=str(state_file.parent), prefix=f".{state_file.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(state, f, indent=2)
                os.replace(temp_path, state_file)
            except BaseException:
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise
        except OSError as e:
            raise ResumeStateError(f"failed to write state file {path}: {e}") from e
        self._states[path] = state

    def get_literal(self, path: str, task_key: str) -> Optional[str]:
        """Stored resume literal for a task, or None."""
        with self._lock:
            literal = self._load(path)["tasks"].get(task_key)
        return literal or None

    def record(self, path: str, task_key: str, value: Any) -> str:
        """
        Persist the last committed resume key value of a task.

        Args:
            path: State file path
            task_key: Task identity inside the file
            value: Resume key value of the last committed row

        Returns:
            The stored SQL literal

        Raises:
            ResumeStateError: If the value is NULL or the file cannot be written
        """
        literal = format_resume_literal(value)
        with self._lock:
            state = self._load(path)
            state["tasks"][task_key] = literal
            self._save(path, state)
        return literal

"""Progress reporting for task execution."""
from typing import Optional

from tqdm import tqdm


class ProgressReporter:
    """Receives row counts as a task streams; ``total`` may be unknown."""

    def set_current(self, current: int):
        raise NotImplementedError

    def increment(self, count: int = 1):
        raise NotImplementedError

    def finish(self):
        raise NotImplementedError


class NullProgress(ProgressReporter):
    """Reporter that discards updates."""

    def __init__(self, total: Optional[int] = None, desc: str = "", unit: str = "rows"):
        self.total = total
        self.current = 0

    def set_current(self, current: int):
        self.current = current

    def increment(self, count: int = 1):
        self.current += count

    def finish(self):
        pass


class TqdmProgress(ProgressReporter):
    """Terminal progress bar backed by tqdm."""

    def __init__(self, total: Optional[int] = None, desc: str = "", unit: str = "rows",
                 disable: Optional[bool] = None, file=None):
        """
        Initialize progress bar.

        Args:
            total: Expected count, or None when unknown
            desc: Bar label, e.g. the table name
            unit: Unit label
            disable: Hide the bar; None hides it when output is not a terminal
            file: Output stream, stderr by default
        """
        self.bar = tqdm(total=total, desc=desc, unit=unit, disable=disable, leave=True, file=file)

    def set_current(self, current: int):
        delta = current - self.bar.n
        if delta:
            self.bar.update(delta)

    def increment(self, count: int = 1):
        self.bar.update(count)

    def finish(self):
        self.bar.close()

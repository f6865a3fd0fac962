"""dbferry: move query results between heterogeneous databases."""

__version__ = "1.0.0"

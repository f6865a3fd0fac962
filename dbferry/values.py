"""Row value kinds and the row scanning step."""
import datetime
import decimal
from enum import Enum
from typing import Any, List, Sequence, Tuple

from .converters.types import CanonicalType, TypeKind


class ValueKind(Enum):
    """Closed set of scalar kinds a scanned row value can take."""
    NULL = "null"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BINARY = "binary"
    BOOLEAN = "boolean"
    TEMPORAL = "temporal"


BYTE_TYPES = (bytes, bytearray, memoryview)


def value_kind(value: Any) -> ValueKind:
    """
    Classify a driver value.

    Decimals count as FLOAT (plain numerals); dates, datetimes and times as
    TEMPORAL. Anything unrecognised is TEXT.

    Args:
        value: Scalar value from a fetched row

    Returns:
        ValueKind of the value
    """
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, (float, decimal.Decimal)):
        return ValueKind.FLOAT
    if isinstance(value, BYTE_TYPES):
        return ValueKind.BINARY
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return ValueKind.TEMPORAL
    return ValueKind.TEXT


def scan_row(row: Sequence[Any], column_types: List[CanonicalType]) -> Tuple[Any, ...]:
    """
    Normalize one fetched row.

    Byte payloads in text columns are decoded to ``str``; byte payloads in
    any other column are copied so the batch never aliases a driver buffer.

    Args:
        row: Row as returned by the driver
        column_types: Canonical types aligned to the row's columns

    Returns:
        Row tuple safe to hold across fetches
    """
    values = []
    for value, column_type in zip(row, column_types):
        if value is not None and isinstance(value, BYTE_TYPES):
            if column_type.kind is TypeKind.TEXT:
                value = bytes(value).decode("utf-8", errors="replace")
            else:
                value = bytes(value)
        values.append(value)
    return tuple(values)

"""Canonical type model and classification of driver column metadata."""
import datetime
import decimal
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple


class TypeKind(Enum):
    """Dialect-independent column type classes."""
    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOATING_POINT = "floating_point"
    TEXT = "text"
    TEMPORAL = "temporal"
    BINARY = "binary"
    BOOLEAN = "boolean"


DEFAULT_DECIMAL_PRECISION = 38
DEFAULT_DECIMAL_SCALE = 0


@dataclass(frozen=True)
class CanonicalType:
    """A classified column type.

    ``precision``/``scale`` are only set for DECIMAL; ``max_length`` only for
    TEXT, where ``None`` means unbounded.
    """
    kind: TypeKind
    precision: Optional[int] = None
    scale: Optional[int] = None
    max_length: Optional[int] = None

    @classmethod
    def integer(cls) -> "CanonicalType":
        return cls(TypeKind.INTEGER)

    @classmethod
    def decimal(cls, precision: int = DEFAULT_DECIMAL_PRECISION,
                scale: int = DEFAULT_DECIMAL_SCALE) -> "CanonicalType":
        return cls(TypeKind.DECIMAL, precision=precision, scale=scale)

    @classmethod
    def floating_point(cls) -> "CanonicalType":
        return cls(TypeKind.FLOATING_POINT)

    @classmethod
    def text(cls, max_length: Optional[int] = None) -> "CanonicalType":
        return cls(TypeKind.TEXT, max_length=max_length)

    @classmethod
    def temporal(cls) -> "CanonicalType":
        return cls(TypeKind.TEMPORAL)

    @classmethod
    def binary(cls) -> "CanonicalType":
        return cls(TypeKind.BINARY)

    @classmethod
    def boolean(cls) -> "CanonicalType":
        return cls(TypeKind.BOOLEAN)


@dataclass(frozen=True)
class ColumnMetadata:
    """Metadata for one projected column of a query result."""
    name: str
    source_type_name: str = ""
    scan_type: str = ""
    declared_length: Optional[int] = None
    precision_scale: Optional[Tuple[int, int]] = None
    nullable: Optional[bool] = None

    @property
    def precision(self) -> Optional[int]:
        return self.precision_scale[0] if self.precision_scale else None

    @property
    def scale(self) -> Optional[int]:
        return self.precision_scale[1] if self.precision_scale else None


# Python value types reported by drivers, checked in order (bool before int,
# datetime before date).
SCAN_TYPE_NAMES = (
    (bool, "BOOLEAN"),
    (int, "INTEGER"),
    (float, "DOUBLE"),
    (decimal.Decimal, "DECIMAL"),
    (str, "STRING"),
    ((bytes, bytearray, memoryview), "BINARY"),
    (datetime.datetime, "DATETIME"),
    (datetime.date, "DATE"),
    (datetime.time, "TIME"),
)


def scan_type_name(value: Any) -> str:
    """
    Name the driver value type of a sample value.

    Args:
        value: A value fetched from the driver, possibly None

    Returns:
        Uppercase type name understood by :class:`TypeMapper`, or "" when
        the value gives no hint
    """
    if value is None:
        return ""
    for python_type, name in SCAN_TYPE_NAMES:
        if isinstance(value, python_type):
            return name
    return type(value).__name__.upper()


class TypeMapper:
    """Classify source column metadata into canonical types."""

    BOOLEAN_KEYWORDS = ("BOOL",)
    INTEGER_KEYWORDS = ("INT",)
    DECIMAL_KEYWORDS = ("DEC", "NUMERIC", "NUMBER")
    FLOAT_KEYWORDS = ("DOUBLE", "FLOAT", "REAL")
    TEXT_KEYWORDS = ("CHAR", "TEXT", "CLOB", "STRING")
    TEMPORAL_KEYWORDS = ("DATE", "TIME")
    BINARY_KEYWORDS = ("BLOB", "BINARY", "RAW")

    def type_name(self, column: ColumnMetadata) -> str:
        """Uppercased driver type name, falling back to the scan type."""
        name = (column.source_type_name or "").strip().upper()
        if not name:
            name = (column.scan_type or "").strip().upper()
        return name

    def classify(self, column: ColumnMetadata) -> CanonicalType:
        """
        Map column metadata to exactly one canonical type.

        Rules are tested in order against the type name; the column name is
        never consulted, so ``IS_ACTIVE NUMBER(1)`` is a decimal.

        Args:
            column: Column metadata extracted from a query result

        Returns:
            CanonicalType for the column
        """
        name = self.type_name(column)

        if _contains_any(name, self.BOOLEAN_KEYWORDS):
            return CanonicalType.boolean()
        if _contains_any(name, self.INTEGER_KEYWORDS):
            return CanonicalType.integer()
        if _contains_any(name, self.DECIMAL_KEYWORDS):
            precision, scale = column.precision or 0, column.scale or 0
            if precision > 0:
                return CanonicalType.decimal(precision, max(scale, 0))
            return CanonicalType.decimal()
        if _contains_any(name, self.FLOAT_KEYWORDS):
            return CanonicalType.floating_point()
        if _contains_any(name, self.TEXT_KEYWORDS):
            length = column.declared_length
            return CanonicalType.text(length if length and length > 0 else None)
        if _contains_any(name, self.TEMPORAL_KEYWORDS):
            return CanonicalType.temporal()
        if _contains_any(name, self.BINARY_KEYWORDS):
            return CanonicalType.binary()

        # Fractional magnitude without a recognised type name
        if column.precision_scale is not None and (column.scale or 0) > 0:
            return CanonicalType.floating_point()
        return CanonicalType.text()


def _contains_any(name: str, keywords) -> bool:
    return any(keyword in name for keyword in keywords)

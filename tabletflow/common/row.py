"""
Generic fixed-arity row container shared by the read and write paths.
"""
from datetime import datetime
from typing import Any, Iterable, List, Optional
from tabletflow.common.models import ColumnType


def infer_column_type(value: Any) -> Optional[ColumnType]:
    """
    Map a Python value to the column type a new table should use for it.

    Returns None for values that carry no type (None).
    """
    # bool is a subclass of int, so it has to be checked first
    if isinstance(value, bool):
        return ColumnType.BOOL
    if isinstance(value, int):
        return ColumnType.INT64
    if isinstance(value, float):
        return ColumnType.DOUBLE
    if isinstance(value, str):
        return ColumnType.STRING
    if isinstance(value, (bytes, bytearray)):
        return ColumnType.BINARY
    if isinstance(value, datetime):
        return ColumnType.TIMESTAMP
    if value is None:
        return None
    raise TypeError(f"No column type for value of type {type(value).__name__}")


class Row:
    """
    Ordered tuple of column values with positional get/set.

    Each position may be tagged with a ColumnType. Rows decoded from the
    store are always tagged; rows built by callers fall back to inferring
    the type from the Python value.
    """

    __slots__ = ('_values', '_types')

    def __init__(self, arity: int):
        if arity < 0:
            raise ValueError(f"Row arity must be non-negative, got {arity}")
        self._values: List[Any] = [None] * arity
        self._types: List[Optional[ColumnType]] = [None] * arity

    @classmethod
    def of(cls, values: Iterable[Any], types: Optional[Iterable[ColumnType]] = None) -> "Row":
        """Build a row from values and, optionally, one type per value."""
        values = list(values)
        row = cls(len(values))
        type_list = list(types) if types is not None else [None] * len(values)
        if len(type_list) != len(values):
            raise ValueError(f"Got {len(type_list)} types for {len(values)} values")
        for i, (value, column_type) in enumerate(zip(values, type_list)):
            row.set_field(i, value, column_type)
        return row

    @property
    def arity(self) -> int:
        return len(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._values):
            raise IndexError(f"Field index {index} out of range for row of arity {len(self._values)}")

    def get_field(self, index: int) -> Any:
        self._check_index(index)
        return self._values[index]

    def set_field(self, index: int, value: Any, column_type: Optional[ColumnType] = None) -> None:
        self._check_index(index)
        self._values[index] = value
        self._types[index] = column_type

    def field_type(self, index: int) -> Optional[ColumnType]:
        """The tagged type of a field, or the type inferred from its value."""
        self._check_index(index)
        if self._types[index] is not None:
            return self._types[index]
        return infer_column_type(self._values[index])

    def values(self) -> List[Any]:
        return list(self._values)

    def __iter__(self):
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._values == other._values
        if isinstance(other, (tuple, list)):
            return self._values == list(other)
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        return f"Row({', '.join(repr(value) for value in self._values)})"

"""
Conversion between the store's typed cells and Row fields.

Decoding reads a native row result through its typed getters; encoding
writes a Row field through the typed setters of an insert. Both dispatch
tables cover every ColumnType; this is checked when the module is imported.
"""
from typing import Any, Callable, Dict
from tabletflow.common.errors import UnsupportedTypeError
from tabletflow.common.models import ColumnType, TableSchema
from tabletflow.common.row import Row

# ColumnType -> name of the RowResult getter
DECODERS: Dict[ColumnType, str] = {
    ColumnType.INT8: 'get_int8',
    ColumnType.INT16: 'get_int16',
    ColumnType.INT32: 'get_int32',
    ColumnType.INT64: 'get_int64',
    ColumnType.FLOAT: 'get_float',
    ColumnType.DOUBLE: 'get_double',
    ColumnType.STRING: 'get_string',
    ColumnType.BOOL: 'get_bool',
    ColumnType.BINARY: 'get_binary',
    ColumnType.TIMESTAMP: 'get_unixtime_micros',
}

# ColumnType -> name of the PartialRow setter
ENCODERS: Dict[ColumnType, str] = {
    ColumnType.INT8: 'add_int8',
    ColumnType.INT16: 'add_int16',
    ColumnType.INT32: 'add_int32',
    ColumnType.INT64: 'add_int64',
    ColumnType.FLOAT: 'add_float',
    ColumnType.DOUBLE: 'add_double',
    ColumnType.STRING: 'add_string',
    ColumnType.BOOL: 'add_bool',
    ColumnType.BINARY: 'add_binary',
    ColumnType.TIMESTAMP: 'add_unixtime_micros',
}


def _check_exhaustive(table: Dict[ColumnType, str], what: str) -> None:
    missing = [column_type.name for column_type in ColumnType if column_type not in table]
    if missing:
        raise UnsupportedTypeError(f"No {what} for column type(s) {missing}")


_check_exhaustive(DECODERS, "decoder")
_check_exhaustive(ENCODERS, "encoder")


def check_decodable(schema: TableSchema) -> None:
    """
    Fail before any row is fetched if a projected column cannot be decoded.

    Raises:
        UnsupportedTypeError: for a column whose type has no decoder
    """
    for column in schema.columns:
        if not isinstance(column.column_type, ColumnType) or column.column_type not in DECODERS:
            raise UnsupportedTypeError(
                f"Column '{column.name}' has unsupported type {column.column_type!r}"
            )


def decode_field(native_row, index: int, row: Row) -> None:
    """Write the native cell at index into the same position of row."""
    column_type = native_row.column_type(index)
    getter = DECODERS.get(column_type)
    if getter is None:
        raise UnsupportedTypeError(f"Unsupported column type {column_type!r} at index {index}")

    if native_row.is_null(index):
        row.set_field(index, None, column_type)
    else:
        row.set_field(index, getattr(native_row, getter)(index), column_type)


def decode_row(native_row) -> Row:
    """Decode one native row result into a new Row."""
    row = Row(native_row.column_count)
    for i in range(native_row.column_count):
        decode_field(native_row, i, row)
    return row


def encode_field(partial_row, name: str, column_type: ColumnType, value: Any) -> None:
    """Set one column of an insert through the setter for its type."""
    if value is None:
        partial_row.set_null(name)
        return

    setter = ENCODERS.get(column_type)
    if setter is None:
        raise UnsupportedTypeError(f"Unsupported column type {column_type!r} for column '{name}'")
    setter_fn: Callable[[str, Any], None] = getattr(partial_row, setter)
    setter_fn(name, value)

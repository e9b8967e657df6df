"""
Exception types for the tabletflow connector.

Configuration problems are raised at construction time, before any store
I/O. Store round-trip failures surface as StoreError and are wrapped by the
read/write components into the error that names the failed operation.
"""
from typing import List, Optional


class TabletFlowError(Exception):
    """Base class for all connector errors."""


class ConfigurationError(TabletFlowError):
    """Invalid write mode, missing column names or other bad settings."""


class TableNotFoundError(TabletFlowError):
    """The target table does not exist in the store."""

    def __init__(self, table_name: str):
        super().__init__(f"Table '{table_name}' does not exist")
        self.table_name = table_name


class TableExistsError(TabletFlowError):
    """A create request named a table that already exists."""

    def __init__(self, table_name: str):
        super().__init__(f"Table '{table_name}' already exists")
        self.table_name = table_name


class SchemaMismatchError(TabletFlowError):
    """
    Supplied column names do not match the table's columns.

    Only raised when strict schema checking is enabled; otherwise the
    mismatch is reported through a SchemaValidation result.
    """

    def __init__(self, table_name: str, expected: List[str], actual: List[str]):
        super().__init__(
            f"Column names {actual} do not match the columns of table "
            f"'{table_name}' {expected}"
        )
        self.table_name = table_name
        self.expected = expected
        self.actual = actual


class UnsupportedTypeError(TabletFlowError):
    """A column type the decoder has no branch for."""


class SplitPlanningError(TabletFlowError):
    """The store could not enumerate scan tokens for a table."""


class ScanError(TabletFlowError):
    """A scan was misused, or a row fetch failed mid-scan under strict scanning."""

    def __init__(self, message: str, rows_scanned: int = 0):
        super().__init__(message)
        self.rows_scanned = rows_scanned


class InsertError(TabletFlowError):
    """The store rejected an insert."""


class ArityMismatchError(InsertError):
    """A row's arity differs from the number of target column names."""


class StoreError(TabletFlowError):
    """A request to the store failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

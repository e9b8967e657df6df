"""
One store-level insert per row.
"""
from typing import List
from tabletflow.common.utils import get_logger
from tabletflow.common.errors import ArityMismatchError, InsertError
from tabletflow.common.models import Table
from tabletflow.common.row import Row
from tabletflow.connector.decoder import encode_field

logger = get_logger(__name__)


class InsertExecutor:
    """Writes rows into a resolved table, field i going to column_names[i]."""

    def __init__(self, client, table: Table, column_names: List[str]):
        self.client = client
        self.table = table
        self.column_names = list(column_names)
        self.rows_written = 0

    def insert(self, row: Row) -> None:
        """
        Insert one row.

        Raises:
            ArityMismatchError: if the row's arity differs from the column names
            InsertError: if the store rejects the row
        """
        if row.arity != len(self.column_names):
            raise ArityMismatchError(
                f"Row has {row.arity} fields but table '{self.table.name}' is written "
                f"with {len(self.column_names)} columns {self.column_names}"
            )

        operation = self.client.new_insert(self.table)
        for i, name in enumerate(self.column_names):
            column = self.table.schema.column(name)
            # Columns the table lacks fall back to the row's own field type
            column_type = column.column_type if column is not None else row.field_type(i)
            encode_field(operation.row, name, column_type, row.get_field(i))

        response = self.client.apply(operation)
        if response.has_row_error:
            raise InsertError(f"Failed to insert {row} into table '{self.table.name}': {response.row_error}")

        self.rows_written += 1
        logger.debug(f"Inserted the row: {row}")

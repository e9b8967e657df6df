"""
Resolution of the write target: create, open or truncate the table a write
stream inserts into, and check supplied column names against it.
"""
from typing import List, Optional
from tabletflow.common.utils import get_logger
from tabletflow.common.errors import (
    ConfigurationError, SchemaMismatchError, TableExistsError
)
from tabletflow.common.models import (
    ColumnSchema, PartitionPolicy, ResolvedTable, SchemaValidation, Table,
    TableSchema, WriteMode
)
from tabletflow.common.row import Row

logger = get_logger(__name__)


def validate_column_names(expected: List[str], actual: List[str]) -> SchemaValidation:
    """Compare column names position by position."""
    mismatches = []
    for i in range(max(len(expected), len(actual))):
        exp = expected[i] if i < len(expected) else None
        act = actual[i] if i < len(actual) else None
        if exp != act:
            mismatches.append((i, exp, act))
    return SchemaValidation(expected=list(expected), actual=list(actual), mismatches=mismatches)


def schema_from_row(
    column_names: List[str],
    sample_row: Row,
    key_columns: Optional[List[str]] = None
) -> TableSchema:
    """
    Build a table schema from column names and the field types of a sample row.

    Key columns (the first column by default) are non-nullable and must be
    the leading columns, so the table keeps the row's field order.

    Raises:
        ConfigurationError: if the row's arity differs from the number of names,
            the key columns are not a prefix of the names, or a field is null
            so its type cannot be inferred
    """
    if sample_row.arity != len(column_names):
        raise ConfigurationError(
            f"Row has {sample_row.arity} fields but {len(column_names)} column names were given"
        )
    key_columns = key_columns or column_names[:1]
    if list(key_columns) != list(column_names[:len(key_columns)]):
        raise ConfigurationError(
            f"Key columns {list(key_columns)} must be the leading columns of {list(column_names)}"
        )

    columns = []
    for i, name in enumerate(column_names):
        column_type = sample_row.field_type(i)
        if column_type is None:
            raise ConfigurationError(
                f"Cannot infer the type of column '{name}' from a null value"
            )
        is_key = name in key_columns
        columns.append(ColumnSchema(name=name, column_type=column_type, key=is_key, nullable=not is_key))
    return TableSchema(columns)


class TableResolver:
    """
    Decides how a write stream treats its target table.

    CREATE makes the table from the first row (or opens it if it already
    exists), APPEND opens it, OVERWRITE opens and truncates it. This is the
    only component that creates or truncates tables.
    """

    def __init__(
        self,
        client,
        table_name: str,
        mode: WriteMode,
        column_names: Optional[List[str]] = None,
        partition_policy: Optional[PartitionPolicy] = None,
        strict_schema: bool = False
    ):
        """
        Initialize the resolver. No store I/O happens here.

        Args:
            client: Tablet store client
            table_name: Name of the target table
            mode: Write mode (or its name)
            column_names: Column names rows are written to, in field order
            partition_policy: Partitioning for a table created in CREATE mode
            strict_schema: Raise on a column name mismatch instead of warning

        Raises:
            ConfigurationError: for an empty table name, an invalid mode, or
                CREATE without column names
        """
        if not table_name:
            raise ConfigurationError("A table name is required")
        mode = WriteMode.parse(mode)
        if mode == WriteMode.CREATE and not column_names:
            raise ConfigurationError("CREATE mode requires the column names of the new table")

        self.client = client
        self.table_name = table_name
        self.mode = mode
        self.column_names = list(column_names) if column_names else None
        self.partition_policy = partition_policy or PartitionPolicy()
        self.strict_schema = strict_schema

    def resolve(self, sample_row: Row) -> ResolvedTable:
        """
        Resolve the target table for a write whose first row is sample_row.

        Raises:
            TableNotFoundError: APPEND/OVERWRITE against a missing table
            SchemaMismatchError: supplied names differ and strict_schema is set
            ConfigurationError: the sample row does not fit the column names
        """
        created = False
        if self.mode == WriteMode.CREATE:
            table, created = self._create_or_open(sample_row)
        else:
            table = self.client.open_table(self.table_name)
            logger.info(f"Opened table '{self.table_name}' for {self.mode.value}")

        validation = None
        if self.column_names is None:
            column_names = table.schema.column_names
            logger.info(f"Discovered columns {column_names} of table '{self.table_name}'")
        else:
            column_names = self.column_names
            if not created:
                validation = self._validate(table, column_names)

        # Only truncate once the target is fully resolved
        truncated = False
        if self.mode == WriteMode.OVERWRITE:
            removed = self.client.truncate_table(self.table_name)
            truncated = True
            logger.info(f"Truncated table '{self.table_name}' before overwrite ({removed} rows removed)")

        return ResolvedTable(
            table=table,
            column_names=list(column_names),
            validation=validation,
            created=created,
            truncated=truncated
        )

    def _create_or_open(self, sample_row: Row):
        key_columns = self.partition_policy.key_columns or self.column_names[:1]
        schema = schema_from_row(self.column_names, sample_row, key_columns)

        if self.client.table_exists(self.table_name):
            logger.info(f"Table '{self.table_name}' already exists, appending to it")
            return self.client.open_table(self.table_name), False

        policy = PartitionPolicy(
            key_columns=list(key_columns),
            num_buckets=self.partition_policy.num_buckets,
            replication_factor=self.partition_policy.replication_factor
        )
        try:
            table = self.client.create_table(self.table_name, schema, policy)
        except TableExistsError:
            # Another writer created it first
            logger.warning(f"Table '{self.table_name}' was created concurrently, appending to it")
            return self.client.open_table(self.table_name), False

        logger.info(f"Created table '{self.table_name}' with columns "
                    f"{[(c.name, c.column_type.value) for c in schema.columns]}")
        return table, True

    def _validate(self, table: Table, column_names: List[str]) -> SchemaValidation:
        validation = validate_column_names(table.schema.column_names, column_names)
        if not validation.ok:
            if self.strict_schema:
                raise SchemaMismatchError(self.table_name, validation.expected, validation.actual)
            logger.warning(f"{validation.describe()} (table '{self.table_name}'); "
                           f"writing with the supplied names")
        return validation

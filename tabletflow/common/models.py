"""
Data models for the tabletflow connector.
"""
from enum import Enum
from typing import Dict, List, Optional, Any, Tuple
from dataclasses import dataclass, field
from tabletflow.common.config import DEFAULT_NUM_BUCKETS, DEFAULT_REPLICATION_FACTOR
from tabletflow.common.errors import ConfigurationError, UnsupportedTypeError


class ColumnType(Enum):
    """Logical column types of the tablet store."""
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    BOOL = "bool"
    BINARY = "binary"
    TIMESTAMP = "unixtime_micros"  # int64 microseconds since the epoch

    @classmethod
    def parse(cls, name: str) -> "ColumnType":
        """Parse a wire type name, rejecting types the connector cannot decode."""
        try:
            return cls(name.lower())
        except (ValueError, AttributeError):
            raise UnsupportedTypeError(f"Unsupported column type: {name!r}") from None


class WriteMode(Enum):
    """How a write treats the target table."""
    CREATE = "CREATE"        # Create the table from the first row, then append
    APPEND = "APPEND"        # Append to an existing table
    OVERWRITE = "OVERWRITE"  # Truncate an existing table, then append

    @classmethod
    def parse(cls, value: Any) -> "WriteMode":
        """
        Parse a write mode from a string or WriteMode.

        Names are case-insensitive; OVERRIDE is accepted as an alias for OVERWRITE.

        Raises:
            ConfigurationError: if the value names no write mode
        """
        if isinstance(value, WriteMode):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name == "OVERRIDE":
                return cls.OVERWRITE
            if name in cls.__members__:
                return cls[name]
        raise ConfigurationError(
            f"Table mode parameter not valid: {value!r} (must be CREATE, APPEND or OVERWRITE)"
        )


@dataclass
class ColumnSchema:
    """Definition of a column in a tablet store table."""
    name: str
    column_type: ColumnType
    key: bool = False
    nullable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.column_type.value,
            'key': self.key,
            'nullable': self.nullable
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnSchema":
        return cls(
            name=data['name'],
            column_type=ColumnType.parse(data['type']),
            key=data.get('key', False),
            nullable=data.get('nullable', True)
        )


@dataclass
class TableSchema:
    """Ordered column schema of a table. Key columns come first."""
    columns: List[ColumnSchema]

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @property
    def key_columns(self) -> List[str]:
        return [column.name for column in self.columns if column.key]

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def index_of(self, name: str) -> int:
        """Return the position of a column, or -1 if the table has no such column."""
        for i, column in enumerate(self.columns):
            if column.name == name:
                return i
        return -1

    def column(self, name: str) -> Optional[ColumnSchema]:
        index = self.index_of(name)
        return self.columns[index] if index >= 0 else None

    def project(self, names: List[str]) -> "TableSchema":
        """
        Return the schema restricted to the given columns, in the given order.

        Raises:
            KeyError: if a name is not a column of this schema
        """
        missing = [name for name in names if self.index_of(name) < 0]
        if missing:
            raise KeyError(f"Unknown column(s) {missing}")
        return TableSchema([self.columns[self.index_of(name)] for name in names])

    def to_dict(self) -> Dict[str, Any]:
        return {'columns': [column.to_dict() for column in self.columns]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableSchema":
        return cls([ColumnSchema.from_dict(column) for column in data.get('columns', [])])


@dataclass
class PartitionPolicy:
    """Hash partitioning of a table's key columns into tablets."""
    key_columns: List[str] = field(default_factory=list)  # Empty: first column
    num_buckets: int = DEFAULT_NUM_BUCKETS
    replication_factor: int = DEFAULT_REPLICATION_FACTOR

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key_columns': list(self.key_columns),
            'num_buckets': self.num_buckets,
            'replication_factor': self.replication_factor
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PartitionPolicy":
        return cls(
            key_columns=list(data.get('key_columns', [])),
            num_buckets=data.get('num_buckets', DEFAULT_NUM_BUCKETS),
            replication_factor=data.get('replication_factor', DEFAULT_REPLICATION_FACTOR)
        )


@dataclass
class Table:
    """Handle on an opened or created table."""
    name: str
    table_id: str
    schema: TableSchema
    partition_policy: PartitionPolicy

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Table":
        return cls(
            name=data['name'],
            table_id=data['id'],
            schema=TableSchema.from_dict(data['schema']),
            partition_policy=PartitionPolicy.from_dict(data.get('partition', {}))
        )


@dataclass(frozen=True)
class ScanUnit:
    """One independently schedulable split: a serialized scan token plus locality hints."""
    split_number: int
    token: bytes
    locations: Tuple[str, ...] = ()

    def get_hostnames(self) -> List[str]:
        return list(self.locations)


@dataclass
class SchemaValidation:
    """Outcome of comparing supplied column names with a table's columns."""
    expected: List[str]
    actual: List[str]
    mismatches: List[Tuple[int, Optional[str], Optional[str]]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.mismatches

    def describe(self) -> str:
        if self.ok:
            return "Column names match"
        parts = [f"#{i}: table has {exp!r}, got {act!r}" for i, exp, act in self.mismatches]
        return "Column names do not match: " + "; ".join(parts)


@dataclass
class ResolvedTable:
    """A write target after resolution: the table and the column names inserts use."""
    table: Table
    column_names: List[str]
    validation: Optional[SchemaValidation] = None
    created: bool = False
    truncated: bool = False


@dataclass
class ScanReport:
    """Diagnostics of one split's scan."""
    split_number: int
    rows_scanned: int = 0
    exhausted: bool = False
    error: Optional[str] = None

    @property
    def truncated(self) -> bool:
        """True when the split ended because of a fetch error."""
        return self.error is not None

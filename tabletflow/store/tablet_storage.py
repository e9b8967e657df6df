"""
TinyDB-backed table and tablet storage for the development tablet store.
"""
import base64
import binascii
import hashlib
import json
import os
import threading
from typing import Dict, List, Any, Optional, Tuple
from tinydb import TinyDB, where
from tinydb.storages import MemoryStorage
from tabletflow.common.utils import get_logger, generate_id, ensure_directory_exists, split_host_port
from tabletflow.common.config import (
    DEFAULT_NUM_BUCKETS, DEFAULT_REPLICATION_FACTOR, MASTER_HOST,
    STORE_DB_EXTENSION, TABLET_SERVER_PORT_START
)
from tabletflow.common.errors import (
    InsertError, TableExistsError, TableNotFoundError, UnsupportedTypeError
)
from tabletflow.common.models import ColumnType, TableSchema

logger = get_logger(__name__)

CATALOG_TABLE = "_catalog"


class DuplicateKeyError(InsertError):
    """A row with the same primary key is already stored."""


INTEGER_RANGES = {
    ColumnType.INT8: (-2 ** 7, 2 ** 7 - 1),
    ColumnType.INT16: (-2 ** 15, 2 ** 15 - 1),
    ColumnType.INT32: (-2 ** 31, 2 ** 31 - 1),
    ColumnType.INT64: (-2 ** 63, 2 ** 63 - 1),
    ColumnType.TIMESTAMP: (-2 ** 63, 2 ** 63 - 1),
}


def _check_value(column_name: str, column_type: ColumnType, value: Any) -> Any:
    """Validate a wire value against its column type and return the stored form."""
    if column_type in INTEGER_RANGES:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InsertError(f"Column '{column_name}' expects an integer, got {value!r}")
        low, high = INTEGER_RANGES[column_type]
        if not low <= value <= high:
            raise InsertError(f"Value {value} out of range for {column_type.value} column '{column_name}'")
        return value
    if column_type in (ColumnType.FLOAT, ColumnType.DOUBLE):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InsertError(f"Column '{column_name}' expects a number, got {value!r}")
        return float(value)
    if column_type == ColumnType.STRING:
        if not isinstance(value, str):
            raise InsertError(f"Column '{column_name}' expects a string, got {value!r}")
        return value
    if column_type == ColumnType.BOOL:
        if not isinstance(value, bool):
            raise InsertError(f"Column '{column_name}' expects a boolean, got {value!r}")
        return value
    if column_type == ColumnType.BINARY:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, TypeError, ValueError):
            raise InsertError(f"Column '{column_name}' expects base64 encoded binary") from None
        return value
    raise UnsupportedTypeError(f"Unsupported column type: {column_type}")


def bucket_for_key(key: List[Any], num_buckets: int) -> int:
    """Hash a primary key into a bucket. Stable across processes."""
    digest = hashlib.md5(json.dumps(key, sort_keys=True).encode('utf-8')).hexdigest()
    return int(digest, 16) % num_buckets


def default_tablet_servers(count: int = DEFAULT_REPLICATION_FACTOR) -> List[str]:
    return [f"{MASTER_HOST}:{TABLET_SERVER_PORT_START + 2 * i}" for i in range(count)]


class TabletStorage:
    """
    Stores tables as hash-partitioned tablets in TinyDB.

    The catalog holds one document per table (schema, partitioning, tablets
    and their replica placement); each tablet's rows live in their own TinyDB
    table. All access is serialized by a reentrant lock.
    """

    def __init__(self, data_dir: Optional[str] = None, tablet_servers: Optional[List[str]] = None):
        """
        Initialize the tablet storage.

        Args:
            data_dir: Directory for the database file (in-memory if None)
            tablet_servers: "host:port" of the tablet servers replicas are placed on
        """
        self.data_dir = data_dir
        if data_dir:
            ensure_directory_exists(data_dir)
            self.db = TinyDB(os.path.join(data_dir, f"tablets{STORE_DB_EXTENSION}"))
        else:
            self.db = TinyDB(storage=MemoryStorage)
        self.catalog = self.db.table(CATALOG_TABLE)
        self.tablet_servers = tablet_servers or default_tablet_servers()
        self._lock = threading.RLock()
        logger.info(f"Tablet storage initialized ({data_dir or 'in-memory'}) "
                    f"with tablet servers {self.tablet_servers}")

    def close(self) -> None:
        self.db.close()

    # Catalog

    def _placement(self, bucket: int, replication_factor: int) -> List[Dict[str, Any]]:
        replicas = []
        count = min(max(1, replication_factor), len(self.tablet_servers))
        for r in range(count):
            address = self.tablet_servers[(bucket + r) % len(self.tablet_servers)]
            host, port = split_host_port(address, TABLET_SERVER_PORT_START)
            replicas.append({
                'host': host,
                'port': port,
                'role': 'LEADER' if r == 0 else 'FOLLOWER'
            })
        return replicas

    def create_table(self, name: str, schema: Dict[str, Any], partition: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a table.

        Raises:
            TableExistsError: if the table already exists
            ValueError: if the schema or partitioning is invalid
        """
        table_schema = TableSchema.from_dict(schema)
        if not table_schema.columns:
            raise ValueError("A table needs at least one column")
        if len(set(table_schema.column_names)) != table_schema.column_count:
            raise ValueError(f"Duplicate column names in {table_schema.column_names}")

        key_columns = partition.get('key_columns') or table_schema.key_columns or table_schema.column_names[:1]
        for key in key_columns:
            if table_schema.index_of(key) < 0:
                raise ValueError(f"Key column '{key}' is not in the schema")

        num_buckets = int(partition.get('num_buckets', DEFAULT_NUM_BUCKETS))
        if num_buckets < 1:
            raise ValueError(f"num_buckets must be at least 1, got {num_buckets}")
        replication_factor = int(partition.get('replication_factor', DEFAULT_REPLICATION_FACTOR))

        # Key columns are non-nullable and come first
        columns = []
        for key in key_columns:
            column = table_schema.column(key)
            column.key = True
            column.nullable = False
            columns.append(column)
        columns.extend(c for c in table_schema.columns if c.name not in key_columns)
        for column in columns:
            if column.name not in key_columns:
                column.key = False

        with self._lock:
            if self.catalog.contains(where('name') == name):
                raise TableExistsError(name)

            table_id = generate_id()
            tablets = [
                {
                    'tablet_id': f"{table_id}-{bucket}",
                    'bucket': bucket,
                    'replicas': self._placement(bucket, replication_factor)
                }
                for bucket in range(num_buckets)
            ]
            info = {
                'name': name,
                'id': table_id,
                'schema': TableSchema(columns).to_dict(),
                'partition': {
                    'key_columns': list(key_columns),
                    'num_buckets': num_buckets,
                    'replication_factor': replication_factor
                },
                'tablets': tablets
            }
            self.catalog.insert(info)

        logger.info(f"Created table '{name}' with {num_buckets} tablets")
        return info

    def get_table(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self.catalog.get(where('name') == name)

    def _require_table(self, name: str) -> Dict[str, Any]:
        info = self.get_table(name)
        if info is None:
            raise TableNotFoundError(name)
        return info

    def list_tables(self) -> List[str]:
        with self._lock:
            return sorted(doc['name'] for doc in self.catalog.all())

    def delete_table(self, name: str) -> None:
        with self._lock:
            info = self._require_table(name)
            for tablet in info['tablets']:
                self.db.drop_table(tablet['tablet_id'])
            self.catalog.remove(where('name') == name)
        logger.info(f"Deleted table '{name}'")

    def truncate_table(self, name: str) -> int:
        """Delete every row of every tablet of a table under one lock."""
        with self._lock:
            info = self._require_table(name)
            removed = 0
            for tablet in info['tablets']:
                rows = self.db.table(tablet['tablet_id'])
                removed += len(rows)
                rows.truncate()
        logger.info(f"Truncated table '{name}' ({removed} rows removed)")
        return removed

    # Rows

    def insert_row(self, name: str, values: Dict[str, Any]) -> str:
        """
        Insert one row and return the id of the tablet it landed in.

        Raises:
            TableNotFoundError: if the table does not exist
            InsertError: if the row is rejected
        """
        with self._lock:
            info = self._require_table(name)
            schema = TableSchema.from_dict(info['schema'])

            unknown = [column for column in values if schema.index_of(column) < 0]
            if unknown:
                raise InsertError(f"Unknown column(s) {unknown} for table '{name}'")

            stored = []
            for column in schema.columns:
                value = values.get(column.name)
                if value is None:
                    if not column.nullable:
                        raise InsertError(f"Column '{column.name}' of table '{name}' is not nullable")
                    stored.append(None)
                else:
                    stored.append(_check_value(column.name, column.column_type, value))

            key = [stored[schema.index_of(k)] for k in info['partition']['key_columns']]
            bucket = bucket_for_key(key, info['partition']['num_buckets'])
            tablet_id = info['tablets'][bucket]['tablet_id']
            rows = self.db.table(tablet_id)
            if rows.contains(where('key') == key):
                raise DuplicateKeyError(f"Key already present in table '{name}': {key}")
            rows.insert({'key': key, 'values': stored})
            return tablet_id

    def tablet_rows(self, name: str, tablet_id: str, projection: List[str]) -> Tuple[TableSchema, List[List[Any]]]:
        """
        Snapshot a tablet's rows, projected and ordered by primary key.

        Raises:
            TableNotFoundError: if the table does not exist
            KeyError: if the tablet or a projected column does not exist
        """
        with self._lock:
            info = self._require_table(name)
            if not any(t['tablet_id'] == tablet_id for t in info['tablets']):
                raise KeyError(f"Tablet {tablet_id} is not part of table '{name}'")
            schema = TableSchema.from_dict(info['schema'])
            indexes = [schema.index_of(column) for column in projection]
            if any(i < 0 for i in indexes):
                missing = [c for c, i in zip(projection, indexes) if i < 0]
                raise KeyError(f"Unknown projected column(s) {missing}")
            docs = self.db.table(tablet_id).all()

        docs = sorted(docs, key=lambda doc: doc['key'])
        rows = [[doc['values'][i] for i in indexes] for doc in docs]
        return schema.project(projection), rows

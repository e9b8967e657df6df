"""
Scan tokens, scanners and native row results of the tablet store client.
"""
import base64
import json
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional
from tabletflow.common.errors import StoreError
from tabletflow.common.models import ColumnType, Table, TableSchema
from tabletflow.common.utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Replica:
    """One replica of a tablet, hosted by a tablet server."""
    host: str
    port: int
    role: str = "FOLLOWER"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class LocatedTablet:
    """A tablet together with the tablet servers hosting its replicas."""
    tablet_id: str
    bucket: int
    replicas: List[Replica] = field(default_factory=list)

    def get_leader_replica(self) -> Optional[Replica]:
        for replica in self.replicas:
            if replica.role == "LEADER":
                return replica
        return None


@dataclass
class ScanToken:
    """
    Serializable description of a scan over one tablet.

    Tokens are issued by the store; the connector treats the serialized form
    as opaque bytes.
    """
    table_id: str
    table_name: str
    tablet: LocatedTablet
    projected_columns: List[str]

    def serialize(self) -> bytes:
        data = {
            'table_id': self.table_id,
            'table_name': self.table_name,
            'tablet_id': self.tablet.tablet_id,
            'bucket': self.tablet.bucket,
            'replicas': [
                {'host': r.host, 'port': r.port, 'role': r.role} for r in self.tablet.replicas
            ],
            'projected_columns': self.projected_columns
        }
        return json.dumps(data, sort_keys=True).encode('utf-8')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanToken":
        replicas = [
            Replica(host=r['host'], port=int(r['port']), role=r.get('role', 'FOLLOWER'))
            for r in data.get('replicas', [])
        ]
        return cls(
            table_id=data['table_id'],
            table_name=data['table_name'],
            tablet=LocatedTablet(data['tablet_id'], int(data.get('bucket', 0)), replicas),
            projected_columns=list(data['projected_columns'])
        )

    @classmethod
    def deserialize(cls, token: bytes) -> "ScanToken":
        try:
            return cls.from_dict(json.loads(token.decode('utf-8')))
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Malformed scan token: {e}") from e

    def get_tablet(self) -> LocatedTablet:
        return self.tablet


class ScanTokenBuilder:
    """Builds one scan token per tablet of a table."""

    def __init__(self, client, table: Table):
        self._client = client
        self._table = table
        self._projected_columns: Optional[List[str]] = None

    def set_projected_column_names(self, names: Optional[List[str]]) -> "ScanTokenBuilder":
        self._projected_columns = list(names) if names is not None else None
        return self

    def build(self) -> List[ScanToken]:
        projection = self._projected_columns
        if projection is None:
            projection = self._table.schema.column_names

        result = self._client._request(
            'POST',
            f"/tables/{self._table.name}/tokens",
            {'projected_columns': projection}
        )
        return [ScanToken.from_dict(token) for token in result.get('tokens', [])]


class RowResult:
    """One native row returned by a scanner, with typed per-column getters."""

    def __init__(self, schema: TableSchema, values: List[Any]):
        self._schema = schema
        self._values = values

    @property
    def column_count(self) -> int:
        return self._schema.column_count

    def get_column_projection(self) -> TableSchema:
        return self._schema

    def column_type(self, index: int) -> ColumnType:
        return self._schema.columns[index].column_type

    def is_null(self, index: int) -> bool:
        return self._values[index] is None

    def get_int8(self, index: int) -> int:
        return int(self._values[index])

    def get_int16(self, index: int) -> int:
        return int(self._values[index])

    def get_int32(self, index: int) -> int:
        return int(self._values[index])

    def get_int64(self, index: int) -> int:
        return int(self._values[index])

    def get_float(self, index: int) -> float:
        # Round to single precision
        return struct.unpack('<f', struct.pack('<f', float(self._values[index])))[0]

    def get_double(self, index: int) -> float:
        return float(self._values[index])

    def get_string(self, index: int) -> str:
        return str(self._values[index])

    def get_bool(self, index: int) -> bool:
        return bool(self._values[index])

    def get_binary(self, index: int) -> bytes:
        return base64.b64decode(self._values[index])

    def get_unixtime_micros(self, index: int) -> int:
        return int(self._values[index])


class RowResultIterator:
    """Iterator over one batch of row results."""

    def __init__(self, schema: TableSchema, rows: List[List[Any]]):
        self._schema = schema
        self._rows = rows
        self._position = 0

    def get_num_rows(self) -> int:
        return len(self._rows)

    def has_next(self) -> bool:
        return self._position < len(self._rows)

    def __iter__(self) -> Iterator[RowResult]:
        return self

    def __next__(self) -> RowResult:
        if not self.has_next():
            raise StopIteration
        row = RowResult(self._schema, self._rows[self._position])
        self._position += 1
        return row


class Scanner:
    """
    Store-side scanner over one tablet.

    The server-side scanner is opened by the first next_rows() call. Batches
    are sized by the store.
    """

    def __init__(self, client, table: Table, token: ScanToken):
        self._client = client
        self.table = table
        self.token = token
        try:
            self.projection_schema = table.schema.project(token.projected_columns)
        except KeyError as e:
            raise StoreError(f"Scan token does not match table '{table.name}': {e.args[0]}") from e
        self._scanner_id: Optional[str] = None
        self._has_more = True
        self._closed = False

    def has_more_rows(self) -> bool:
        return not self._closed and self._has_more

    def next_rows(self) -> RowResultIterator:
        if self._closed:
            raise StoreError("Scanner is closed")

        if self._scanner_id is None:
            result = self._client._request('POST', '/scanners', {
                'token': json.loads(self.token.serialize().decode('utf-8'))
            })
            self._scanner_id = result['scanner_id']
            self.projection_schema = TableSchema.from_dict(result['schema'])
            logger.debug(f"Opened scanner {self._scanner_id} on tablet {self.token.tablet.tablet_id}")

        result = self._client._request('POST', f"/scanners/{self._scanner_id}/next")
        self._has_more = bool(result.get('has_more', False))
        return RowResultIterator(self.projection_schema, result.get('rows', []))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._scanner_id is not None:
            scanner_id, self._scanner_id = self._scanner_id, None
            self._client._request('DELETE', f"/scanners/{scanner_id}")
            logger.debug(f"Closed scanner {scanner_id}")

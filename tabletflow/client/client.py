"""
Client of the tablet store cluster.
"""
import base64
import time
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional, Union
import requests
from tabletflow.common.utils import get_logger, parse_master_addresses
from tabletflow.common.config import CLIENT_TIMEOUT, CLIENT_RETRY_COUNT
from tabletflow.common.errors import (
    StoreError, TableNotFoundError, TableExistsError
)
from tabletflow.common.models import (
    PartitionPolicy, Table, TableSchema
)
from tabletflow.client.scanner import Scanner, ScanToken, ScanTokenBuilder

logger = get_logger(__name__)


class PartialRow:
    """Column values of a write operation, set through typed setters."""

    def __init__(self, schema: TableSchema):
        self._schema = schema
        self._values: Dict[str, Any] = {}

    def _set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def add_int8(self, name: str, value: int) -> None:
        self._set(name, int(value))

    def add_int16(self, name: str, value: int) -> None:
        self._set(name, int(value))

    def add_int32(self, name: str, value: int) -> None:
        self._set(name, int(value))

    def add_int64(self, name: str, value: int) -> None:
        self._set(name, int(value))

    def add_float(self, name: str, value: float) -> None:
        self._set(name, float(value))

    def add_double(self, name: str, value: float) -> None:
        self._set(name, float(value))

    def add_string(self, name: str, value: str) -> None:
        self._set(name, str(value))

    def add_bool(self, name: str, value: bool) -> None:
        self._set(name, bool(value))

    def add_binary(self, name: str, value: bytes) -> None:
        self._set(name, base64.b64encode(bytes(value)).decode('ascii'))

    def add_unixtime_micros(self, name: str, value: Union[int, datetime]) -> None:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = int(value.timestamp() * 1_000_000)
        self._set(name, int(value))

    def set_null(self, name: str) -> None:
        self._set(name, None)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)


class Insert:
    """An insert of one row into a table."""

    def __init__(self, table: Table):
        self.table = table
        self.row = PartialRow(table.schema)


class OperationResponse:
    """Result of applying a write operation."""

    def __init__(self, row_error: Optional[str] = None, affected_rows: int = 0):
        self.row_error = row_error
        self.affected_rows = affected_rows

    @property
    def has_row_error(self) -> bool:
        return self.row_error is not None


class TabletClient:
    """
    Client of the tablet store.

    Requests go to the first reachable master; connection failures rotate
    through the configured masters with exponential backoff.
    """

    def __init__(
        self,
        master_addresses: Union[str, List[str]],
        timeout: float = CLIENT_TIMEOUT,
        retry_count: int = CLIENT_RETRY_COUNT
    ):
        """
        Initialize the client.

        Args:
            master_addresses: "host:port" of each master, as a list or comma separated string
            timeout: Per-request timeout in seconds
            retry_count: Attempts per request before giving up
        """
        self.master_addresses = parse_master_addresses(master_addresses)
        if not self.master_addresses:
            raise ValueError("At least one master address is required")
        self.timeout = timeout
        self.retry_count = max(1, retry_count)
        self.session = requests.Session()
        logger.info(f"Tablet client initialized with masters {self.master_addresses}")

    def _master_url(self, attempt: int) -> str:
        address = self.master_addresses[attempt % len(self.master_addresses)]
        if address.startswith('http://') or address.startswith('https://'):
            return address
        return f"http://{address}"

    def _request(self, method: str, path: str, data: Optional[Dict] = None) -> Dict[str, Any]:
        """
        Send a request to a master and return the decoded JSON body.

        Raises:
            StoreError: if the store answered with an error or no master was reachable
        """
        last_error = None
        for attempt in range(self.retry_count):
            url = f"{self._master_url(attempt)}{path}"
            try:
                response = self.session.request(method, url, json=data, timeout=self.timeout)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = e
                logger.error(f"Error contacting master (attempt {attempt + 1}/{self.retry_count}): {e}")
                if attempt < self.retry_count - 1:
                    # Exponential backoff
                    time.sleep(0.1 * (2 ** attempt))
                continue
            except requests.exceptions.RequestException as e:
                raise StoreError(f"Request to {url} failed: {e}") from e

            try:
                result = response.json()
            except ValueError:
                raise StoreError(
                    f"Invalid response from {url}: {response.text[:200]}", response.status_code
                ) from None

            if response.status_code >= 400 or not result.get('success', False):
                raise StoreError(result.get('error', 'Unknown error'), response.status_code)
            return result

        raise StoreError(
            f"Failed to reach a master after {self.retry_count} attempts: {last_error}"
        )

    # Table management

    def table_exists(self, name: str) -> bool:
        try:
            self._request('GET', f"/tables/{name}")
            return True
        except StoreError as e:
            if e.status_code == 404:
                return False
            raise

    def list_tables(self) -> List[str]:
        return self._request('GET', '/tables').get('tables', [])

    def create_table(
        self,
        name: str,
        schema: TableSchema,
        partition_policy: Optional[PartitionPolicy] = None
    ) -> Table:
        """
        Create a table.

        Raises:
            TableExistsError: if a table with this name already exists
        """
        partition_policy = partition_policy or PartitionPolicy()
        data = {
            'name': name,
            'schema': schema.to_dict(),
            'partition': partition_policy.to_dict()
        }
        try:
            result = self._request('POST', '/tables', data)
        except StoreError as e:
            if e.status_code == 409:
                raise TableExistsError(name) from e
            raise
        logger.info(f"Created table '{name}'")
        return Table.from_dict(result['table'])

    def open_table(self, name: str) -> Table:
        """
        Open an existing table.

        Raises:
            TableNotFoundError: if the table does not exist
        """
        try:
            result = self._request('GET', f"/tables/{name}")
        except StoreError as e:
            if e.status_code == 404:
                raise TableNotFoundError(name) from e
            raise
        return Table.from_dict(result['table'])

    def truncate_table(self, name: str) -> int:
        """Atomically delete every row of a table. Returns the number of rows removed."""
        try:
            result = self._request('POST', f"/tables/{name}/truncate")
        except StoreError as e:
            if e.status_code == 404:
                raise TableNotFoundError(name) from e
            raise
        return result.get('affected_rows', 0)

    def delete_table(self, name: str) -> None:
        try:
            self._request('DELETE', f"/tables/{name}")
        except StoreError as e:
            if e.status_code == 404:
                raise TableNotFoundError(name) from e
            raise
        logger.info(f"Deleted table '{name}'")

    # Scans

    def new_scan_token_builder(self, table: Table) -> ScanTokenBuilder:
        return ScanTokenBuilder(self, table)

    def new_scanner(self, table: Table, token: Union[ScanToken, bytes]) -> Scanner:
        if isinstance(token, (bytes, bytearray)):
            token = ScanToken.deserialize(bytes(token))
        if token.table_id != table.table_id:
            raise StoreError(
                f"Scan token for table id {token.table_id} does not match table "
                f"'{table.name}' ({table.table_id})"
            )
        return Scanner(self, table, token)

    def new_scanner_from_token(self, token: bytes) -> Scanner:
        """Open the token's table and build a scanner for it."""
        scan_token = ScanToken.deserialize(token)
        table = self.open_table(scan_token.table_name)
        return self.new_scanner(table, scan_token)

    # Writes

    def new_insert(self, table: Table) -> Insert:
        return Insert(table)

    def apply(self, operation: Insert) -> OperationResponse:
        """
        Apply a write operation.

        A rejected row (duplicate key, unknown column, bad value) is returned
        as a row error; transport failures raise StoreError.
        """
        try:
            result = self._request(
                'POST',
                f"/tables/{operation.table.name}/rows",
                {'row': operation.row.to_dict()}
            )
        except StoreError as e:
            if e.status_code in (400, 409):
                return OperationResponse(row_error=str(e))
            if e.status_code == 404:
                raise TableNotFoundError(operation.table.name) from e
            raise
        return OperationResponse(affected_rows=result.get('affected_rows', 0))

    def close(self) -> None:
        self.session.close()


def connect(master_addresses: Union[str, List[str]], **kwargs) -> TabletClient:
    """Connect to the tablet store with the given master addresses."""
    return TabletClient(master_addresses, **kwargs)

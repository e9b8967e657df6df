"""
Bounded sink into a tablet store table.
"""
from typing import Any, List, Mapping, Optional
from tabletflow.client.client import TabletClient, connect
from tabletflow.common.utils import get_logger
from tabletflow.common.models import ResolvedTable
from tabletflow.common.row import Row
from tabletflow.connector.insert_executor import InsertExecutor
from tabletflow.connector.settings import ConnectorConfig
from tabletflow.connector.table_resolver import TableResolver

logger = get_logger(__name__)


class TabletOutputFormat:
    """
    Output format writing rows one insert at a time.

    The target table is resolved once, on the first row written; every
    following row goes through the same table and column names.
    """

    def __init__(self, config: ConnectorConfig, client: Optional[TabletClient] = None):
        """
        Initialize the output format. No store I/O happens here.

        Args:
            config: Connector configuration
            client: Store client to use (connected lazily from the config if None)

        Raises:
            ConfigurationError: CREATE mode without column names
        """
        config.validate_for_write()
        self.config = config
        self._client = client
        self._executor: Optional[InsertExecutor] = None
        self.resolved: Optional[ResolvedTable] = None
        self.task_number = 0
        self.num_tasks = 1

    def _make_resolver(self) -> TableResolver:
        return TableResolver(
            client=self.client,
            table_name=self.config.table_name,
            mode=self.config.write_mode,
            column_names=self.config.column_names,
            partition_policy=self.config.partition_policy,
            strict_schema=self.config.strict_schema
        )

    @property
    def client(self) -> TabletClient:
        if self._client is None:
            self._client = connect(
                self.config.master_addresses,
                timeout=self.config.client_timeout,
                retry_count=self.config.client_retry_count
            )
        return self._client

    @property
    def column_names(self) -> Optional[List[str]]:
        return self.resolved.column_names if self.resolved else self.config.column_names

    @property
    def rows_written(self) -> int:
        return self._executor.rows_written if self._executor else 0

    def configure(self, settings: Optional[Mapping[str, Any]] = None) -> None:
        """Apply host-engine settings on top of the constructor configuration."""
        if settings:
            config = self.config.merged(settings)
            config.validate_for_write()
            self.config = config
            self._executor = None
            self.resolved = None

    def open(self, task_number: int = 0, num_tasks: int = 1) -> None:
        self.task_number = task_number
        self.num_tasks = num_tasks
        logger.info(f"Opened writer {task_number + 1}/{num_tasks} for table '{self.config.table_name}' "
                    f"({self.config.write_mode.value})")

    def write_record(self, row: Row) -> None:
        """
        Write one row, resolving the target table on the first call.

        Raises:
            TableNotFoundError: APPEND/OVERWRITE against a missing table
            SchemaMismatchError: column names differ and strict_schema is set
            InsertError: the store rejected the row
        """
        if self._executor is None:
            self.resolved = self._make_resolver().resolve(row)
            self._executor = InsertExecutor(self.client, self.resolved.table, self.resolved.column_names)

        self._executor.insert(row)

    def close(self) -> None:
        logger.info(f"Closing writer {self.task_number + 1}/{self.num_tasks} for table "
                    f"'{self.config.table_name}' ({self.rows_written} rows written)")

"""
Bounded source over a tablet store table.
"""
from typing import Any, List, Mapping, Optional
from tabletflow.client.client import TabletClient, connect
from tabletflow.common.utils import get_logger
from tabletflow.common.errors import ScanError
from tabletflow.common.models import ScanReport, ScanUnit, Table
from tabletflow.common.row import Row
from tabletflow.connector.scan_iterator import ScanIterator
from tabletflow.connector.settings import ConnectorConfig
from tabletflow.connector.split_planner import SplitPlanner

logger = get_logger(__name__)


class TabletInputFormat:
    """
    Input format reading a table split by split.

    The host engine calls create_splits() once, then for each split it
    runs open(split), alternates reached_end() / next_record() and
    finally close(). One instance reads one split at a time.
    """

    def __init__(self, config: ConnectorConfig, client: Optional[TabletClient] = None):
        """
        Initialize the input format.

        Args:
            config: Connector configuration
            client: Store client to use (connected lazily from the config if None)
        """
        self.config = config
        self._client = client
        self._table: Optional[Table] = None
        self._iterator: Optional[ScanIterator] = None
        self.last_report: Optional[ScanReport] = None

    @property
    def table_name(self) -> str:
        return self.config.table_name

    @property
    def client(self) -> TabletClient:
        if self._client is None:
            self._client = connect(
                self.config.master_addresses,
                timeout=self.config.client_timeout,
                retry_count=self.config.client_retry_count
            )
        return self._client

    def configure(self, settings: Optional[Mapping[str, Any]] = None) -> None:
        """Apply host-engine settings on top of the constructor configuration."""
        if settings:
            self.config = self.config.merged(settings)
            self._table = None

    def open_table(self) -> Table:
        """Open the configured table (cached for the lifetime of this format)."""
        if self._table is None:
            logger.info(f"Opening table '{self.table_name}'")
            self._table = self.client.open_table(self.table_name)
        return self._table

    def create_splits(self, min_splits_hint: int = 1) -> List[ScanUnit]:
        """
        Create one split per tablet.

        Raises:
            TableNotFoundError: if the table does not exist
            SplitPlanningError: if the store cannot enumerate the tablets
        """
        planner = SplitPlanner(
            self.client,
            self.config.master_addresses,
            use_replica_locations=self.config.use_replica_locations
        )
        return planner.plan(self.open_table(), self.config.projected_columns, min_splits_hint)

    def open(self, split: ScanUnit) -> None:
        """Start reading a split."""
        if self._iterator is not None:
            self.close()
        logger.info(f"Opening split {split.split_number}")
        self.last_report = None
        self._iterator = ScanIterator(self.client, split, strict=self.config.strict_scan)
        self._iterator.open()

    def reached_end(self) -> bool:
        if self._iterator is None:
            return True
        return not self._iterator.has_next()

    def next_record(self, reuse: Optional[Row] = None) -> Optional[Row]:
        """
        Return the next row of the open split, or None at its end.

        The reuse argument is accepted for the host protocol; a fresh row is
        always returned.
        """
        if self._iterator is None:
            raise ScanError("No split is open")
        return self._iterator.next_row()

    def close(self) -> None:
        """Close the current split. Safe to call when no split is open."""
        if self._iterator is None:
            return
        try:
            self._iterator.close()
        finally:
            self.last_report = self._iterator.report()
            self._iterator = None
        if self.last_report.truncated:
            logger.warning(f"Split {self.last_report.split_number} of table '{self.table_name}' "
                           f"ended early after {self.last_report.rows_scanned} rows: "
                           f"{self.last_report.error}")

    def get_statistics(self) -> Optional[Any]:
        """The store exposes no statistics."""
        return None

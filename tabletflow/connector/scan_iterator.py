"""
Lazy, pull-based iteration over the rows of one scan unit.
"""
from enum import Enum
from typing import Iterator, Optional
from tabletflow.common.utils import get_logger
from tabletflow.common.errors import ScanError, StoreError, TabletFlowError
from tabletflow.common.models import ScanReport, ScanUnit
from tabletflow.common.row import Row
from tabletflow.connector.decoder import check_decodable, decode_row

logger = get_logger(__name__)


class ScanState(Enum):
    """Lifecycle of a scan iterator."""
    IDLE = "IDLE"
    OPENED = "OPENED"
    FETCHING = "FETCHING"
    EXHAUSTED = "EXHAUSTED"
    CLOSED = "CLOSED"


class ScanIterator:
    """
    Iterates the rows of one scan unit.

    has_next() buffers at most one decoded row; next_row() hands it out.
    A failed fetch closes the scanner and ends the split; the failure is
    kept in the scan report, or raised as ScanError when strict.
    """

    def __init__(self, client, unit: ScanUnit, strict: bool = False):
        """
        Initialize the iterator.

        Args:
            client: Tablet store client
            unit: The scan unit to read
            strict: Raise ScanError on a fetch failure instead of ending the split
        """
        self.client = client
        self.unit = unit
        self.strict = strict
        self.state = ScanState.IDLE
        self.table_name: Optional[str] = None
        self.rows_scanned = 0
        self.error: Optional[str] = None
        self._scanner = None
        self._batch = None
        self._pending: Optional[Row] = None

    def open(self) -> None:
        """Obtain a scanner for the unit's token."""
        if self.state != ScanState.IDLE:
            raise ScanError(f"Split {self.unit.split_number} was already opened")

        self._scanner = self.client.new_scanner_from_token(self.unit.token)
        self.table_name = self._scanner.table.name
        try:
            check_decodable(self._scanner.projection_schema)
        except TabletFlowError:
            self._release_scanner()
            raise
        self.state = ScanState.OPENED
        logger.info(f"Opened split {self.unit.split_number} of table '{self.table_name}'")

    def has_next(self) -> bool:
        """Whether another row is available. Idempotent."""
        if self._pending is not None:
            return True
        if self.state in (ScanState.IDLE, ScanState.EXHAUSTED, ScanState.CLOSED):
            return False

        self.state = ScanState.FETCHING
        while True:
            if self._batch is not None and self._batch.has_next():
                self._pending = decode_row(next(self._batch))
                return True

            if not self._scanner.has_more_rows():
                self._mark_exhausted()
                return False

            try:
                self._batch = self._scanner.next_rows()
            except StoreError as e:
                self._recover(e)
                return False

    def next_row(self) -> Optional[Row]:
        """Return the next row, or None at end of data."""
        if not self.has_next():
            return None
        row, self._pending = self._pending, None
        self.rows_scanned += 1
        return row

    def report(self) -> ScanReport:
        return ScanReport(
            split_number=self.unit.split_number,
            rows_scanned=self.rows_scanned,
            exhausted=self.state in (ScanState.EXHAUSTED, ScanState.CLOSED) and self._pending is None,
            error=self.error
        )

    def close(self) -> None:
        """Release the scanner. Safe to call in any state, any number of times."""
        if self.state == ScanState.CLOSED:
            return
        self._release_scanner()
        self._batch = None
        self._pending = None
        if self.state != ScanState.IDLE:
            logger.info(f"Closing split {self.unit.split_number} of table '{self.table_name}' "
                        f"(scanned {self.rows_scanned} rows)")
        self.state = ScanState.CLOSED

    def _mark_exhausted(self) -> None:
        self.state = ScanState.EXHAUSTED
        self._batch = None
        self._release_scanner()

    def _recover(self, error: StoreError) -> None:
        self.error = str(error)
        self._mark_exhausted()
        logger.warning(f"Error after scan of {self.rows_scanned} rows of split "
                       f"{self.unit.split_number} of table '{self.table_name}': {error}; "
                       f"ending the split")
        if self.strict:
            raise ScanError(
                f"Scan of split {self.unit.split_number} of table '{self.table_name}' failed "
                f"after {self.rows_scanned} rows: {error}",
                rows_scanned=self.rows_scanned
            ) from error

    def _release_scanner(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            scanner.close()
        except StoreError as e:
            logger.warning(f"Failed to close scanner of split {self.unit.split_number}: {e}")

    def __iter__(self) -> Iterator[Row]:
        if self.state == ScanState.IDLE:
            self.open()
        while True:
            row = self.next_row()
            if row is None:
                return
            yield row

    def __enter__(self) -> "ScanIterator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

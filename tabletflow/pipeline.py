"""
Local runner driving the input and output formats the way a dataflow engine does.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from tabletflow.client.client import TabletClient
from tabletflow.common.utils import get_logger
from tabletflow.common.models import ResolvedTable, ScanReport, ScanUnit
from tabletflow.common.row import Row
from tabletflow.connector.input_format import TabletInputFormat
from tabletflow.connector.output_format import TabletOutputFormat
from tabletflow.connector.settings import ConnectorConfig

logger = get_logger(__name__)


@dataclass
class ReadResult:
    """Rows read from a table, in split order, plus each split's report."""
    rows: List[Row] = field(default_factory=list)
    reports: List[ScanReport] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """False if any split ended early because of a fetch error."""
        return not any(report.truncated for report in self.reports)


def _read_split(config: ConnectorConfig, client: Optional[TabletClient], split: ScanUnit):
    source = TabletInputFormat(config, client)
    rows = []
    source.open(split)
    try:
        while not source.reached_end():
            row = source.next_record()
            if row is not None:
                rows.append(row)
    finally:
        source.close()
    return rows, source.last_report


def read_table(
    config: ConnectorConfig,
    parallelism: int = 4,
    client: Optional[TabletClient] = None
) -> ReadResult:
    """
    Read every split of a table, one input format per split, on a thread pool.

    Each parallel slot gets its own input format and scanner; only the client
    is shared.
    """
    planner_source = TabletInputFormat(config, client)
    splits = planner_source.create_splits(parallelism)
    client = planner_source.client

    result = ReadResult()
    with ThreadPoolExecutor(max_workers=max(1, parallelism)) as executor:
        futures = [executor.submit(_read_split, config, client, split) for split in splits]
        for future in futures:
            rows, report = future.result()
            result.rows.extend(rows)
            result.reports.append(report)

    logger.info(f"Read {len(result.rows)} rows from {len(splits)} splits of table '{config.table_name}'")
    return result


def write_table(
    config: ConnectorConfig,
    rows: Iterable[Row],
    client: Optional[TabletClient] = None
) -> Optional[ResolvedTable]:
    """
    Write rows through one output format, in order.

    Returns the resolved target table, or None if there were no rows.
    """
    sink = TabletOutputFormat(config, client)
    sink.open(0, 1)
    try:
        for row in rows:
            sink.write_record(row)
    finally:
        sink.close()
    return sink.resolved

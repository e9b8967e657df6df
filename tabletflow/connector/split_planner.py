"""
Split planning: one scan unit per tablet of a table.
"""
from typing import List, Optional, Union
from tabletflow.common.utils import get_logger, parse_master_addresses
from tabletflow.common.errors import SplitPlanningError, TabletFlowError
from tabletflow.common.models import ScanUnit, Table

logger = get_logger(__name__)


class SplitPlanner:
    """
    Turns a table into independently schedulable scan units.

    The number of units is decided by the store's tablets; the minimum split
    hint is advisory and never causes units to be split or merged.
    """

    def __init__(
        self,
        client,
        master_addresses: Union[str, List[str]],
        use_replica_locations: bool = True
    ):
        """
        Initialize the planner.

        Args:
            client: Tablet store client
            master_addresses: Configured master addresses, the fallback locality hint
            use_replica_locations: Report each tablet's replica addresses as locations
        """
        self.client = client
        self.master_addresses = parse_master_addresses(master_addresses)
        self.use_replica_locations = use_replica_locations

    def plan(
        self,
        table: Table,
        projected_columns: Optional[List[str]] = None,
        min_splits_hint: int = 1
    ) -> List[ScanUnit]:
        """
        Build the scan units of a table.

        Args:
            table: Opened table
            projected_columns: Columns to read (all columns if None)
            min_splits_hint: Requested minimum number of splits (advisory)

        Returns:
            One ScanUnit per tablet

        Raises:
            SplitPlanningError: if the columns are unknown or the store cannot
                enumerate the table's tablets
        """
        projection = list(projected_columns) if projected_columns else table.schema.column_names
        missing = [name for name in projection if table.schema.index_of(name) < 0]
        if missing:
            raise SplitPlanningError(
                f"Unknown projected column(s) {missing} for table '{table.name}'"
            )

        try:
            tokens = (self.client.new_scan_token_builder(table)
                      .set_projected_column_names(projection)
                      .build())
        except TabletFlowError as e:
            raise SplitPlanningError(
                f"Could not build scan tokens for table '{table.name}': {e}"
            ) from e

        splits = []
        for split_number, token in enumerate(tokens):
            splits.append(ScanUnit(
                split_number=split_number,
                token=token.serialize(),
                locations=tuple(self._locations(token))
            ))
            logger.debug(f"Planned split {split_number} for tablet {token.tablet.tablet_id}")

        if len(splits) < min_splits_hint:
            logger.info(f"Table '{table.name}' has {len(splits)} tablets, fewer than the "
                        f"{min_splits_hint} splits requested; some slots will stay idle")
        logger.info(f"{len(splits)} splits generated for table '{table.name}'")
        return splits

    def _locations(self, token) -> List[str]:
        replicas = token.tablet.replicas
        if self.use_replica_locations and replicas:
            return [replica.address for replica in replicas]
        return list(self.master_addresses)

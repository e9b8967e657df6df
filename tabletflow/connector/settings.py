"""
Instance-scoped connector configuration.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional
from tabletflow.common.config import (
    CLIENT_RETRY_COUNT, CLIENT_TIMEOUT, DEFAULT_MASTER_ADDRESS,
    DEFAULT_NUM_BUCKETS, DEFAULT_REPLICATION_FACTOR
)
from tabletflow.common.errors import ConfigurationError
from tabletflow.common.models import PartitionPolicy, WriteMode
from tabletflow.common.utils import parse_master_addresses

RECOGNIZED_SETTINGS = (
    'master_addresses', 'table_name', 'write_mode', 'column_names',
    'projected_columns', 'key_columns', 'num_buckets', 'replication_factor',
    'strict_schema', 'strict_scan', 'use_replica_locations',
    'client_timeout', 'client_retry_count'
)


def _as_list(value: Any, setting: str) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = [part.strip() for part in value.split(',') if part.strip()]
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"Setting '{setting}' must be a list of strings")
    return list(value)


def _as_bool(value: Any, setting: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'false', '1', '0', 'yes', 'no'):
        return value.lower() in ('true', '1', 'yes')
    raise ConfigurationError(f"Setting '{setting}' must be a boolean, got {value!r}")


def _as_int(value: Any, setting: str, minimum: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Setting '{setting}' must be an integer, got {value!r}") from None
    if number < minimum:
        raise ConfigurationError(f"Setting '{setting}' must be at least {minimum}, got {number}")
    return number


@dataclass
class ConnectorConfig:
    """Settings of one connector instance. One instance per table."""
    table_name: str
    master_addresses: List[str] = field(default_factory=lambda: [DEFAULT_MASTER_ADDRESS])
    write_mode: WriteMode = WriteMode.APPEND
    column_names: Optional[List[str]] = None
    projected_columns: Optional[List[str]] = None
    partition_policy: PartitionPolicy = field(default_factory=PartitionPolicy)
    strict_schema: bool = False
    strict_scan: bool = False
    use_replica_locations: bool = True
    client_timeout: float = CLIENT_TIMEOUT
    client_retry_count: int = CLIENT_RETRY_COUNT

    def __post_init__(self):
        if not self.table_name:
            raise ConfigurationError("A table name is required")
        self.master_addresses = parse_master_addresses(self.master_addresses)
        if not self.master_addresses:
            raise ConfigurationError("At least one master address is required")
        self.write_mode = WriteMode.parse(self.write_mode)
        if self.column_names is not None and len(set(self.column_names)) != len(self.column_names):
            raise ConfigurationError(f"Duplicate column names in {self.column_names}")

    def validate_for_write(self) -> None:
        """
        Check the settings a write needs.

        Raises:
            ConfigurationError: CREATE mode without column names
        """
        if self.write_mode == WriteMode.CREATE and not self.column_names:
            raise ConfigurationError("CREATE mode requires the column names of the new table")

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "ConnectorConfig":
        """
        Build a configuration from a settings mapping.

        Raises:
            ConfigurationError: for unknown keys or invalid values
        """
        unknown = sorted(set(settings) - set(RECOGNIZED_SETTINGS))
        if unknown:
            raise ConfigurationError(f"Unrecognized setting(s): {unknown}")

        kwargs: Dict[str, Any] = {'table_name': settings.get('table_name', '')}
        if 'master_addresses' in settings:
            kwargs['master_addresses'] = settings['master_addresses']
        if 'write_mode' in settings:
            kwargs['write_mode'] = settings['write_mode']
        kwargs['column_names'] = _as_list(settings.get('column_names'), 'column_names')
        kwargs['projected_columns'] = _as_list(settings.get('projected_columns'), 'projected_columns')
        kwargs['partition_policy'] = PartitionPolicy(
            key_columns=_as_list(settings.get('key_columns'), 'key_columns') or [],
            num_buckets=_as_int(settings.get('num_buckets', DEFAULT_NUM_BUCKETS), 'num_buckets', 1),
            replication_factor=_as_int(
                settings.get('replication_factor', DEFAULT_REPLICATION_FACTOR), 'replication_factor', 1
            )
        )
        for flag in ('strict_schema', 'strict_scan', 'use_replica_locations'):
            if flag in settings:
                kwargs[flag] = _as_bool(settings[flag], flag)
        if 'client_timeout' in settings:
            try:
                kwargs['client_timeout'] = float(settings['client_timeout'])
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"Setting 'client_timeout' must be a number, got {settings['client_timeout']!r}"
                ) from None
        if 'client_retry_count' in settings:
            kwargs['client_retry_count'] = _as_int(settings['client_retry_count'], 'client_retry_count', 1)
        return cls(**kwargs)

    def merged(self, settings: Mapping[str, Any]) -> "ConnectorConfig":
        """Return a copy with the given settings applied on top of this configuration."""
        if not settings:
            return replace(self)
        current = {
            'table_name': self.table_name,
            'master_addresses': list(self.master_addresses),
            'write_mode': self.write_mode,
            'column_names': self.column_names,
            'projected_columns': self.projected_columns,
            'key_columns': list(self.partition_policy.key_columns),
            'num_buckets': self.partition_policy.num_buckets,
            'replication_factor': self.partition_policy.replication_factor,
            'strict_schema': self.strict_schema,
            'strict_scan': self.strict_scan,
            'use_replica_locations': self.use_replica_locations,
            'client_timeout': self.client_timeout,
            'client_retry_count': self.client_retry_count
        }
        current.update(settings)
        return ConnectorConfig.from_settings(current)

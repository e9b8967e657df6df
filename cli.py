#!/usr/bin/env python3
"""
Command-line interface for the tabletflow connector.
Provides commands for starting the development tablet store and for reading,
loading and copying tables through the connector.
"""
import sys
import argparse
import json

from tabletflow.client.client import connect
from tabletflow.common.config import DEFAULT_MASTER_ADDRESS, MASTER_HOST, MASTER_PORT, SCAN_BATCH_SIZE
from tabletflow.common.errors import TabletFlowError
from tabletflow.common.row import Row
from tabletflow.common.utils import get_logger, ensure_directory_exists
from tabletflow.connector.settings import ConnectorConfig
from tabletflow.pipeline import read_table, write_table
from tabletflow.store.master import TabletMaster

logger = get_logger(__name__)


def _json_value(value):
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    return value


def start_master(args):
    """Start the development tablet store."""
    print(f"Starting tablet master at {args.host}:{args.port}...")

    if args.data_dir:
        ensure_directory_exists(args.data_dir)

    master = TabletMaster(
        host=args.host,
        port=args.port,
        data_dir=args.data_dir,
        tablet_servers=args.tablet_servers.split(',') if args.tablet_servers else None,
        batch_size=args.batch_size
    )
    master.start()


def list_tables(args):
    """List all tables in the store."""
    client = connect(args.master)
    tables = client.list_tables()

    if not tables:
        print("No tables found.")
    else:
        print("Available tables:")
        for name in tables:
            table = client.open_table(name)
            print(f"  - {name} ({table.partition_policy.num_buckets} tablets)")


def describe_table(args):
    """Print a table's schema."""
    client = connect(args.master)
    table = client.open_table(args.table)

    print(f"Table '{table.name}' ({table.table_id})")
    for column in table.schema.columns:
        flags = []
        if column.key:
            flags.append("KEY")
        if not column.nullable:
            flags.append("NOT NULL")
        print(f"  {column.name:<24} {column.column_type.value:<16} {' '.join(flags)}")
    policy = table.partition_policy
    print(f"Hash partitioned on {policy.key_columns} into {policy.num_buckets} tablets, "
          f"replication factor {policy.replication_factor}")


def scan_table(args):
    """Read a table through the input format and print its rows as JSON lines."""
    config = ConnectorConfig(
        table_name=args.table,
        master_addresses=args.master,
        projected_columns=args.columns.split(',') if args.columns else None,
        strict_scan=args.strict
    )
    result = read_table(config, parallelism=args.parallelism)

    for row in result.rows:
        print(json.dumps([_json_value(value) for value in row]))

    for report in result.reports:
        if report.truncated:
            print(f"Split {report.split_number} ended early after {report.rows_scanned} rows: "
                  f"{report.error}", file=sys.stderr)
    print(f"{len(result.rows)} rows from {len(result.reports)} splits", file=sys.stderr)


def load_table(args):
    """Write rows from a JSON file (a list of lists) through the output format."""
    with open(args.file, 'r') as f:
        data = json.load(f)

    config = ConnectorConfig(
        table_name=args.table,
        master_addresses=args.master,
        write_mode=args.mode,
        column_names=args.columns.split(',') if args.columns else None,
        strict_schema=args.strict
    )
    config.partition_policy.num_buckets = args.buckets

    resolved = write_table(config, (Row.of(values) for values in data))
    if resolved is None:
        print("No rows to write.")
        return
    if resolved.validation is not None and not resolved.validation.ok:
        print(f"Warning: {resolved.validation.describe()}", file=sys.stderr)
    print(f"Wrote {len(data)} rows to table '{args.table}'"
          f"{' (created)' if resolved.created else ''}{' (truncated first)' if resolved.truncated else ''}")


def copy_table(args):
    """Copy a table into another one, read and written through the connector."""
    source = ConnectorConfig(table_name=args.source, master_addresses=args.master)
    source_table = connect(args.master).open_table(args.source)
    result = read_table(source, parallelism=args.parallelism)

    if not result.complete:
        print("Warning: some splits ended early; the copy is incomplete", file=sys.stderr)

    target = ConnectorConfig(
        table_name=args.target,
        master_addresses=args.master,
        write_mode=args.mode,
        column_names=source_table.schema.column_names
    )
    write_table(target, result.rows)
    print(f"Copied {len(result.rows)} rows from '{args.source}' to '{args.target}'")


def truncate_table(args):
    """Delete all rows of a table."""
    removed = connect(args.master).truncate_table(args.table)
    print(f"Removed {removed} rows from table '{args.table}'")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='tabletflow command-line interface',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the development tablet store
  python cli.py master --port 7051 --data-dir data

  # Load rows into a new table
  python cli.py load --table events --mode create --columns id,name --file rows.json

  # Scan a table
  python cli.py scan --table events
"""
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Master command
    master_parser = subparsers.add_parser('master', help='Start the development tablet store')
    master_parser.add_argument('--host', default=MASTER_HOST, help='Host to bind to')
    master_parser.add_argument('--port', type=int, default=MASTER_PORT, help='Port to bind to')
    master_parser.add_argument('--data-dir', help='Directory to store tablets (in-memory if omitted)')
    master_parser.add_argument('--tablet-servers', help='Comma separated host:port of tablet servers')
    master_parser.add_argument('--batch-size', type=int, default=SCAN_BATCH_SIZE, help='Rows per scan batch')

    # List tables command
    list_parser = subparsers.add_parser('list-tables', help='List all tables')
    list_parser.add_argument('--master', default=DEFAULT_MASTER_ADDRESS, help='Master address(es)')

    # Describe command
    describe_parser = subparsers.add_parser('describe', help='Show a table schema')
    describe_parser.add_argument('--master', default=DEFAULT_MASTER_ADDRESS, help='Master address(es)')
    describe_parser.add_argument('--table', required=True, help='Table name')

    # Scan command
    scan_parser = subparsers.add_parser('scan', help='Read a table')
    scan_parser.add_argument('--master', default=DEFAULT_MASTER_ADDRESS, help='Master address(es)')
    scan_parser.add_argument('--table', required=True, help='Table name')
    scan_parser.add_argument('--columns', help='Comma separated columns to project')
    scan_parser.add_argument('--parallelism', type=int, default=4, help='Splits read in parallel')
    scan_parser.add_argument('--strict', action='store_true', help='Fail on a mid-scan fetch error')

    # Load command
    load_parser = subparsers.add_parser('load', help='Write rows from a JSON file')
    load_parser.add_argument('--master', default=DEFAULT_MASTER_ADDRESS, help='Master address(es)')
    load_parser.add_argument('--table', required=True, help='Table name')
    load_parser.add_argument('--mode', default='APPEND', help='CREATE, APPEND or OVERWRITE')
    load_parser.add_argument('--columns', help='Comma separated column names')
    load_parser.add_argument('--file', required=True, help='JSON file holding a list of rows')
    load_parser.add_argument('--buckets', type=int, default=3, help='Tablets of a created table')
    load_parser.add_argument('--strict', action='store_true', help='Fail on a column name mismatch')

    # Copy command
    copy_parser = subparsers.add_parser('copy', help='Copy a table')
    copy_parser.add_argument('--master', default=DEFAULT_MASTER_ADDRESS, help='Master address(es)')
    copy_parser.add_argument('--source', required=True, help='Source table')
    copy_parser.add_argument('--target', required=True, help='Target table')
    copy_parser.add_argument('--mode', default='CREATE', help='CREATE, APPEND or OVERWRITE')
    copy_parser.add_argument('--parallelism', type=int, default=4, help='Splits read in parallel')

    # Truncate command
    truncate_parser = subparsers.add_parser('truncate', help='Delete all rows of a table')
    truncate_parser.add_argument('--master', default=DEFAULT_MASTER_ADDRESS, help='Master address(es)')
    truncate_parser.add_argument('--table', required=True, help='Table name')

    # Parse arguments
    args = parser.parse_args()

    commands = {
        'master': start_master,
        'list-tables': list_tables,
        'describe': describe_table,
        'scan': scan_table,
        'load': load_table,
        'copy': copy_table,
        'truncate': truncate_table
    }

    if args.command not in commands:
        parser.print_help()
        return

    try:
        commands[args.command](args)
    except TabletFlowError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

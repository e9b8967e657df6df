#!/usr/bin/env python3
"""
Script to start the development tablet store master.
"""
import argparse
from tabletflow.store.master import TabletMaster
from tabletflow.common.config import MASTER_HOST, MASTER_PORT, SCAN_BATCH_SIZE
from tabletflow.common.utils import ensure_directory_exists


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Start the tablet master')
    parser.add_argument('--host', default=MASTER_HOST, help='Host to bind to')
    parser.add_argument('--port', type=int, default=MASTER_PORT, help='Port to bind to (0 for auto)')
    parser.add_argument('--data-dir', help='Directory to store tablets (in-memory if omitted)')
    parser.add_argument('--tablet-servers', help='Comma separated host:port of tablet servers')
    parser.add_argument('--batch-size', type=int, default=SCAN_BATCH_SIZE, help='Rows per scan batch')

    args = parser.parse_args()

    # Auto-assign port if not specified
    if args.port == 0:
        import socket

        # Find an available port
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(('', 0))
            args.port = s.getsockname()[1]

    if args.data_dir:
        ensure_directory_exists(args.data_dir)

    print(f"Starting tablet master at {args.host}:{args.port}...")
    master = TabletMaster(
        host=args.host,
        port=args.port,
        data_dir=args.data_dir,
        tablet_servers=args.tablet_servers.split(',') if args.tablet_servers else None,
        batch_size=args.batch_size
    )

    master.start()


if __name__ == "__main__":
    main()

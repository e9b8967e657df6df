"""
Master service of the development tablet store.
"""
import argparse
import threading
from typing import Dict, Any, Optional, List
from flask import Flask, request, jsonify
from werkzeug.serving import make_server
from tabletflow.common.utils import get_logger, generate_id
from tabletflow.common.config import MASTER_HOST, MASTER_PORT, SCAN_BATCH_SIZE
from tabletflow.common.errors import (
    InsertError, TableExistsError, TableNotFoundError, UnsupportedTypeError
)
from tabletflow.store.tablet_storage import DuplicateKeyError, TabletStorage

logger = get_logger(__name__)


class TabletMaster:
    """
    Master service of the development tablet store.
    Responsible for:
    - The table catalog (create, open, truncate, delete)
    - Issuing one scan token per tablet
    - Serving server-side scanners in store-sized batches
    - Applying inserts
    """

    def __init__(
        self,
        host: str = MASTER_HOST,
        port: int = MASTER_PORT,
        data_dir: Optional[str] = None,
        tablet_servers: Optional[List[str]] = None,
        batch_size: int = SCAN_BATCH_SIZE
    ):
        """
        Initialize the master.

        Args:
            host: Host to bind to
            port: Port to bind to (0 picks a free port when started in the background)
            data_dir: Directory to store tablets (in-memory if None)
            tablet_servers: "host:port" of the tablet servers replicas are placed on
            batch_size: Rows returned per scanner round-trip
        """
        self.host = host
        self.port = port
        self.batch_size = batch_size
        self.storage = TabletStorage(data_dir, tablet_servers)

        # Open scanners: {scanner_id: {'rows': [...], 'position': int}}
        self.scanners: Dict[str, Dict[str, Any]] = {}
        self._scanner_lock = threading.RLock()
        self._server = None
        self._server_thread = None

        # Initialize Flask app
        self.app = Flask(__name__)
        self._setup_routes()

        logger.info(f"Tablet master initialized at {host}:{port}")

    def _setup_routes(self):
        """Set up Flask routes."""
        # Table management
        self.app.route('/tables', methods=['GET'])(self.list_tables)
        self.app.route('/tables', methods=['POST'])(self.create_table)
        self.app.route('/tables/<table_name>', methods=['GET'])(self.get_table)
        self.app.route('/tables/<table_name>', methods=['DELETE'])(self.delete_table)
        self.app.route('/tables/<table_name>/truncate', methods=['POST'])(self.truncate_table)

        # Scans
        self.app.route('/tables/<table_name>/tokens', methods=['POST'])(self.build_scan_tokens)
        self.app.route('/scanners', methods=['POST'])(self.open_scanner)
        self.app.route('/scanners/<scanner_id>/next', methods=['POST'])(self.next_batch)
        self.app.route('/scanners/<scanner_id>', methods=['DELETE'])(self.close_scanner)

        # Writes
        self.app.route('/tables/<table_name>/rows', methods=['POST'])(self.insert_row)

        # Master status
        self.app.route('/status', methods=['GET'])(self.get_status)

    def start(self):
        """Start the master service in the foreground."""
        logger.info(f"Starting tablet master at {self.host}:{self.port}")
        self.app.run(host=self.host, port=self.port, threaded=True)

    def start_background(self) -> int:
        """Serve on a background thread and return the bound port."""
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self.port = self._server.server_port
        self._server_thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._server_thread.start()
        logger.info(f"Tablet master serving in the background at {self.host}:{self.port}")
        return self.port

    def shutdown(self):
        """Stop a background server and close the storage."""
        if self._server is not None:
            self._server.shutdown()
            self._server_thread.join()
            self._server = None
        self.storage.close()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    # Route handlers

    def list_tables(self):
        """List all tables."""
        return jsonify({"success": True, "tables": self.storage.list_tables()})

    def create_table(self):
        """Create a new table."""
        data = request.json

        if not data or 'name' not in data or 'schema' not in data:
            return jsonify({"success": False, "error": "Missing required fields"}), 400

        try:
            info = self.storage.create_table(data['name'], data['schema'], data.get('partition', {}))
        except TableExistsError as e:
            return jsonify({"success": False, "error": str(e)}), 409
        except (ValueError, KeyError, UnsupportedTypeError) as e:
            return jsonify({"success": False, "error": str(e)}), 400

        return jsonify({"success": True, "table": self._public_info(info)})

    def get_table(self, table_name):
        """Get table information."""
        info = self.storage.get_table(table_name)
        if info is None:
            return jsonify({"success": False, "error": f"Table '{table_name}' not found"}), 404
        return jsonify({"success": True, "table": self._public_info(info)})

    def delete_table(self, table_name):
        """Delete a table."""
        try:
            self.storage.delete_table(table_name)
        except TableNotFoundError as e:
            return jsonify({"success": False, "error": str(e)}), 404
        return jsonify({"success": True, "message": f"Table '{table_name}' deleted successfully"})

    def truncate_table(self, table_name):
        """Delete all rows of a table."""
        try:
            removed = self.storage.truncate_table(table_name)
        except TableNotFoundError as e:
            return jsonify({"success": False, "error": str(e)}), 404
        return jsonify({"success": True, "affected_rows": removed})

    def build_scan_tokens(self, table_name):
        """Issue one scan token per tablet of a table."""
        info = self.storage.get_table(table_name)
        if info is None:
            return jsonify({"success": False, "error": f"Table '{table_name}' not found"}), 404

        data = request.get_json(silent=True) or {}
        column_names = [column['name'] for column in info['schema']['columns']]
        projection = data.get('projected_columns') or column_names

        missing = [column for column in projection if column not in column_names]
        if missing:
            return jsonify({
                "success": False,
                "error": f"Unknown projected column(s) {missing} for table '{table_name}'"
            }), 400

        tokens = [
            {
                'table_id': info['id'],
                'table_name': table_name,
                'tablet_id': tablet['tablet_id'],
                'bucket': tablet['bucket'],
                'replicas': tablet['replicas'],
                'projected_columns': projection
            }
            for tablet in info['tablets']
        ]
        logger.info(f"Built {len(tokens)} scan tokens for table '{table_name}'")
        return jsonify({"success": True, "tokens": tokens})

    def open_scanner(self):
        """Open a scanner over the tablet named by a scan token."""
        data = request.json
        token = (data or {}).get('token')
        if not token:
            return jsonify({"success": False, "error": "Missing scan token"}), 400

        info = self.storage.get_table(token.get('table_name', ''))
        if info is None or info['id'] != token.get('table_id'):
            return jsonify({"success": False, "error": "Scan token refers to an unknown table"}), 404

        try:
            schema, rows = self.storage.tablet_rows(
                info['name'], token['tablet_id'], token['projected_columns']
            )
        except KeyError as e:
            return jsonify({"success": False, "error": str(e)}), 400

        scanner_id = generate_id()
        with self._scanner_lock:
            self.scanners[scanner_id] = {'rows': rows, 'position': 0}

        logger.debug(f"Opened scanner {scanner_id} on tablet {token['tablet_id']} ({len(rows)} rows)")
        return jsonify({
            "success": True,
            "scanner_id": scanner_id,
            "schema": schema.to_dict(),
            "has_more": bool(rows)
        })

    def next_batch(self, scanner_id):
        """Return the next batch of rows of an open scanner."""
        with self._scanner_lock:
            state = self.scanners.get(scanner_id)
            if state is None:
                return jsonify({"success": False, "error": f"Scanner {scanner_id} not found"}), 404

            start = state['position']
            batch = state['rows'][start:start + self.batch_size]
            state['position'] = start + len(batch)
            has_more = state['position'] < len(state['rows'])

        return jsonify({"success": True, "rows": batch, "has_more": has_more})

    def close_scanner(self, scanner_id):
        """Release a scanner."""
        with self._scanner_lock:
            state = self.scanners.pop(scanner_id, None)
        if state is None:
            return jsonify({"success": False, "error": f"Scanner {scanner_id} not found"}), 404
        return jsonify({"success": True})

    def insert_row(self, table_name):
        """Insert one row."""
        data = request.json
        if not data or 'row' not in data:
            return jsonify({"success": False, "error": "Missing row"}), 400

        try:
            tablet_id = self.storage.insert_row(table_name, data['row'])
        except TableNotFoundError as e:
            return jsonify({"success": False, "error": str(e)}), 404
        except InsertError as e:
            status = 409 if isinstance(e, DuplicateKeyError) else 400
            return jsonify({"success": False, "error": str(e)}), status

        return jsonify({"success": True, "affected_rows": 1, "tablet_id": tablet_id})

    def get_status(self):
        """Get master status."""
        with self._scanner_lock:
            open_scanners = len(self.scanners)
        return jsonify({
            "success": True,
            "status": "active",
            "tables": len(self.storage.list_tables()),
            "open_scanners": open_scanners,
            "tablet_servers": self.storage.tablet_servers
        })

    @staticmethod
    def _public_info(info: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'name': info['name'],
            'id': info['id'],
            'schema': info['schema'],
            'partition': info['partition'],
            'num_tablets': len(info['tablets'])
        }


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Start the tablet master service')
    parser.add_argument('--host', default=MASTER_HOST, help='Host to bind to')
    parser.add_argument('--port', type=int, default=MASTER_PORT, help='Port to bind to')
    parser.add_argument('--data-dir', help='Directory to store tablets (in-memory if omitted)')
    parser.add_argument('--tablet-servers', help='Comma separated host:port of tablet servers')
    parser.add_argument('--batch-size', type=int, default=SCAN_BATCH_SIZE, help='Rows per scan batch')
    args = parser.parse_args()

    tablet_servers = args.tablet_servers.split(',') if args.tablet_servers else None
    master = TabletMaster(
        host=args.host,
        port=args.port,
        data_dir=args.data_dir,
        tablet_servers=tablet_servers,
        batch_size=args.batch_size
    )
    master.start()


if __name__ == "__main__":
    main()

"""
End-to-end tests of the input and output formats against a development
tablet store running in the background.
"""
import os
import sys
import threading
import unittest
from datetime import datetime, timezone

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tabletflow.client.client import connect
from tabletflow.common.errors import (
    ConfigurationError, InsertError, ScanError, SchemaMismatchError, TableNotFoundError
)
from tabletflow.common.models import ColumnType, PartitionPolicy
from tabletflow.common.row import Row
from tabletflow.connector.input_format import TabletInputFormat
from tabletflow.connector.settings import ConnectorConfig
from tabletflow.pipeline import read_table, write_table
from tabletflow.store.master import TabletMaster


class TestEndToEnd(unittest.TestCase):
    """Round trips through a live development store."""

    @classmethod
    def setUpClass(cls):
        """Start a master on a free port with small scan batches."""
        cls.master = TabletMaster(host='127.0.0.1', port=0, batch_size=2)
        cls.master.start_background()
        cls.address = cls.master.address
        cls.client = connect(cls.address)

    @classmethod
    def tearDownClass(cls):
        cls.client.close()
        cls.master.shutdown()

    def write(self, table, rows, mode='CREATE', column_names=None, **kwargs):
        config = ConnectorConfig(
            table_name=table,
            master_addresses=self.address,
            write_mode=mode,
            column_names=column_names,
            **kwargs
        )
        return write_table(config, rows, client=self.client)

    def read(self, table, parallelism=2, **kwargs):
        config = ConnectorConfig(table_name=table, master_addresses=self.address, **kwargs)
        return read_table(config, parallelism=parallelism, client=self.client)

    def test_01_create_then_read(self):
        """Test writing one row into a new table and reading it back."""
        resolved = self.write('events', [Row.of([1, "x"])], column_names=['id', 'name'])

        self.assertTrue(resolved.created)
        table = self.client.open_table('events')
        self.assertEqual(table.schema.column_names, ['id', 'name'])
        self.assertEqual(
            [c.column_type for c in table.schema.columns],
            [ColumnType.INT64, ColumnType.STRING]
        )

        result = self.read('events')
        self.assertEqual([tuple(row) for row in result.rows], [(1, "x")])
        self.assertTrue(result.complete)

    def test_02_every_type_round_trip(self):
        """Test that every supported column type survives a write and a read."""
        names = ['id', 'i8', 'i16', 'i32', 'f', 'd', 's', 'b', 'bin', 'ts']
        types = [ColumnType.INT64, ColumnType.INT8, ColumnType.INT16, ColumnType.INT32,
                 ColumnType.FLOAT, ColumnType.DOUBLE, ColumnType.STRING, ColumnType.BOOL,
                 ColumnType.BINARY, ColumnType.TIMESTAMP]
        full = [1, -5, 300, 70000, 1.5, 2.25, "hello", True, b"\x00\x01\xff", 1600000000000000]
        nulls = [2] + [None] * 9
        moment = datetime(2021, 6, 1, tzinfo=timezone.utc)
        with_datetime = [3, 1, 1, 1, 0.5, 0.5, "", False, b"", moment]

        self.write('all_types', [Row.of(full, types), Row.of(nulls, types), Row.of(with_datetime, types)],
                   column_names=names)

        rows = sorted(self.read('all_types').rows, key=lambda row: row.get_field(0))
        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[0], full)
        self.assertEqual(rows[1], nulls)
        self.assertEqual(rows[2].get_field(9), int(moment.timestamp()) * 1000000)
        self.assertEqual(rows[2].get_field(8), b"")
        for i, column_type in enumerate(types):
            self.assertEqual(rows[0].field_type(i), column_type)
            self.assertEqual(rows[1].field_type(i), column_type)

    def test_03_one_split_per_tablet(self):
        """Test that a table of T tablets yields exactly T splits whatever the hint."""
        policy = PartitionPolicy(num_buckets=4, replication_factor=2)
        self.write('bucketed', [Row.of([i, f"v{i}"]) for i in range(10)],
                   column_names=['id', 'v'], partition_policy=policy)

        source = TabletInputFormat(ConnectorConfig(table_name='bucketed', master_addresses=self.address),
                                   self.client)
        for hint in (1, 4, 16):
            splits = source.create_splits(hint)
            self.assertEqual(len(splits), 4)
        self.assertEqual(splits[0].get_hostnames(), ['localhost:7050', 'localhost:7052'])
        self.assertEqual(splits[1].get_hostnames(), ['localhost:7052', 'localhost:7054'])

        source = TabletInputFormat(
            ConnectorConfig(table_name='bucketed', master_addresses=self.address,
                            use_replica_locations=False),
            self.client
        )
        self.assertEqual(source.create_splits()[0].get_hostnames(), [self.address])

    def test_04_parallel_read(self):
        """Test that reading splits in parallel returns every row once."""
        policy = PartitionPolicy(num_buckets=5)
        self.write('wide', [Row.of([i, i * i]) for i in range(25)],
                   column_names=['id', 'square'], partition_policy=policy)

        result = self.read('wide', parallelism=3)

        self.assertEqual(sorted(row.get_field(0) for row in result.rows), list(range(25)))
        self.assertTrue(all(row.get_field(1) == row.get_field(0) ** 2 for row in result.rows))
        self.assertEqual(len(result.reports), 5)
        self.assertEqual(sum(report.rows_scanned for report in result.reports), 25)
        self.assertTrue(result.complete)

    def test_05_projection(self):
        """Test reading a subset of columns."""
        self.write('projected', [Row.of([1, "a", True]), Row.of([2, "b", False])],
                   column_names=['id', 'name', 'flag'])

        result = self.read('projected', projected_columns=['flag', 'id'])

        self.assertEqual(sorted(tuple(row) for row in result.rows), [(False, 2), (True, 1)])

    def test_06_overwrite(self):
        """Test that OVERWRITE replaces the previous contents."""
        self.write('snapshot', [Row.of([i, "old"]) for i in range(3)], column_names=['id', 'state'])

        resolved = self.write('snapshot', [Row.of([7, "new"]), Row.of([8, "new"])], mode='OVERWRITE')

        self.assertTrue(resolved.truncated)
        rows = sorted(tuple(row) for row in self.read('snapshot').rows)
        self.assertEqual(rows, [(7, "new"), (8, "new")])

    def test_06b_strict_overwrite_mismatch_keeps_rows(self):
        """Test that a rejected strict OVERWRITE leaves the existing rows in place."""
        self.write('keep', [Row.of([1, "a"]), Row.of([2, "b"])], column_names=['id', 'name'])

        with self.assertRaises(SchemaMismatchError):
            self.write('keep', [Row.of([3, "c"])], mode='OVERWRITE',
                       column_names=['id', 'wrong'], strict_schema=True)

        rows = sorted(tuple(row) for row in self.read('keep').rows)
        self.assertEqual(rows, [(1, "a"), (2, "b")])

    def test_06c_create_with_key_policy_keeps_order(self):
        """Test that CREATE with a key policy keeps the written field order."""
        self.write('ordered', [Row.of([1, "k", 0.5])], column_names=['a', 'b', 'c'],
                   partition_policy=PartitionPolicy(key_columns=['a', 'b']))

        table = self.client.open_table('ordered')
        self.assertEqual(table.schema.column_names, ['a', 'b', 'c'])
        self.assertEqual(table.schema.key_columns, ['a', 'b'])
        self.assertEqual([tuple(row) for row in self.read('ordered').rows], [(1, "k", 0.5)])

        with self.assertRaises(ConfigurationError):
            self.write('reordered', [Row.of([1, "k"])], column_names=['a', 'b'],
                       partition_policy=PartitionPolicy(key_columns=['b']))
        self.assertFalse(self.client.table_exists('reordered'))

    def test_07_append_and_create_existing(self):
        """Test that APPEND and CREATE on an existing table both add rows."""
        self.write('log', [Row.of([1, "a"])], column_names=['id', 'msg'])
        self.write('log', [Row.of([2, "b"])], mode='APPEND')
        resolved = self.write('log', [Row.of([3, "c"])], column_names=['id', 'msg'])

        self.assertFalse(resolved.created)
        self.assertTrue(resolved.validation.ok)
        self.assertEqual(sorted(row.get_field(0) for row in self.read('log').rows), [1, 2, 3])

    def test_08_missing_table(self):
        """Test that APPEND and OVERWRITE never create a missing table."""
        for mode in ('APPEND', 'OVERWRITE'):
            with self.assertRaises(TableNotFoundError):
                self.write('ghost', [Row.of([1, "x"])], mode=mode)
        self.assertFalse(self.client.table_exists('ghost'))

        with self.assertRaises(TableNotFoundError):
            self.read('ghost')

    def test_09_column_name_mismatch(self):
        """Test that a name mismatch is reported and the store decides the insert."""
        self.write('people', [Row.of([1, "ann"])], column_names=['id', 'name'])

        with self.assertLogs('tabletflow.connector.table_resolver', level='WARNING') as logs:
            with self.assertRaises(InsertError):
                self.write('people', [Row.of([2, "bob"])], mode='APPEND', column_names=['id', 'label'])
        self.assertIn("'name'", logs.output[0])
        self.assertIn("'label'", logs.output[0])

        with self.assertRaises(SchemaMismatchError):
            self.write('people', [Row.of([3, "cy"])], mode='APPEND',
                       column_names=['id', 'label'], strict_schema=True)

        self.assertEqual([tuple(row) for row in self.read('people').rows], [(1, "ann")])

    def test_10_duplicate_key(self):
        """Test that the store's duplicate-key rejection surfaces as InsertError."""
        self.write('keys', [Row.of([1, "a"])], column_names=['id', 'v'])
        with self.assertRaises(InsertError):
            self.write('keys', [Row.of([1, "again"])], mode='APPEND')

    def test_11_concurrent_create(self):
        """Test that concurrent writers creating the same table all succeed."""
        errors = []

        def writer(offset):
            try:
                self.write('shared', [Row.of([offset * 10 + i, offset]) for i in range(5)],
                           column_names=['id', 'writer'])
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(self.read('shared').rows), 15)

    def test_12_fetch_error_ends_split(self):
        """Test that losing the server-side scanner mid-scan ends the split early."""
        self.write('fragile', [Row.of([i, "r"]) for i in range(6)], column_names=['id', 'v'],
                   partition_policy=PartitionPolicy(num_buckets=1))
        config = ConnectorConfig(table_name='fragile', master_addresses=self.address)
        source = TabletInputFormat(config, self.client)
        split = source.create_splits()[0]

        source.open(split)
        self.assertEqual(source.next_record().get_field(0), 0)
        self.assertEqual(source.next_record().get_field(0), 1)
        with self.master._scanner_lock:
            self.master.scanners.clear()

        self.assertTrue(source.reached_end())
        self.assertIsNone(source.next_record())
        source.close()
        self.assertTrue(source.last_report.truncated)
        self.assertEqual(source.last_report.rows_scanned, 2)

        strict = TabletInputFormat(config.merged({'strict_scan': True}), self.client)
        strict.open(split)
        strict.next_record()
        strict.next_record()
        with self.master._scanner_lock:
            self.master.scanners.clear()
        with self.assertRaises(ScanError):
            strict.next_record()
        strict.close()

    def test_13_scanners_released(self):
        """Test that finished and abandoned scans leave no open scanners behind."""
        self.write('tidy', [Row.of([i, "r"]) for i in range(5)], column_names=['id', 'v'],
                   partition_policy=PartitionPolicy(num_buckets=1))
        self.read('tidy')
        self.assertEqual(self.master.scanners, {})

        config = ConnectorConfig(table_name='tidy', master_addresses=self.address)
        source = TabletInputFormat(config, self.client)
        source.open(source.create_splits()[0])
        source.next_record()
        self.assertEqual(len(self.master.scanners), 1)
        source.close()
        self.assertEqual(self.master.scanners, {})


if __name__ == '__main__':
    unittest.main()

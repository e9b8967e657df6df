"""
Tests for the row container, type decoding/encoding and configuration parsing.
"""
import os
import sys
import unittest
from datetime import datetime, timezone

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tabletflow.client.client import PartialRow
from tabletflow.client.scanner import RowResult, RowResultIterator
from tabletflow.common.errors import ConfigurationError, UnsupportedTypeError
from tabletflow.common.models import ColumnSchema, ColumnType, TableSchema, WriteMode
from tabletflow.common.row import Row, infer_column_type
from tabletflow.connector.decoder import (
    DECODERS, ENCODERS, check_decodable, decode_row, encode_field
)
from tabletflow.connector.settings import ConnectorConfig


ALL_TYPES_SCHEMA = TableSchema([
    ColumnSchema('id', ColumnType.INT64, key=True, nullable=False),
    ColumnSchema('i8', ColumnType.INT8),
    ColumnSchema('i16', ColumnType.INT16),
    ColumnSchema('i32', ColumnType.INT32),
    ColumnSchema('f', ColumnType.FLOAT),
    ColumnSchema('d', ColumnType.DOUBLE),
    ColumnSchema('s', ColumnType.STRING),
    ColumnSchema('b', ColumnType.BOOL),
    ColumnSchema('bin', ColumnType.BINARY),
    ColumnSchema('ts', ColumnType.TIMESTAMP),
])


class TestRow(unittest.TestCase):
    """Test cases for the Row container."""

    def test_01_fixed_arity(self):
        """Test that a row has the arity it was built with and rejects other indexes."""
        row = Row(3)
        self.assertEqual(row.arity, 3)
        self.assertEqual(row.values(), [None, None, None])

        row.set_field(2, "x")
        self.assertEqual(row.get_field(2), "x")

        with self.assertRaises(IndexError):
            row.set_field(3, 1)
        with self.assertRaises(IndexError):
            row.get_field(-1)

    def test_02_field_type_inference(self):
        """Test that untagged fields infer their type from the value."""
        row = Row.of([True, 7, 1.5, "s", b"\x01", datetime(2020, 1, 1), None])
        self.assertEqual(row.field_type(0), ColumnType.BOOL)
        self.assertEqual(row.field_type(1), ColumnType.INT64)
        self.assertEqual(row.field_type(2), ColumnType.DOUBLE)
        self.assertEqual(row.field_type(3), ColumnType.STRING)
        self.assertEqual(row.field_type(4), ColumnType.BINARY)
        self.assertEqual(row.field_type(5), ColumnType.TIMESTAMP)
        self.assertIsNone(row.field_type(6))

    def test_03_tagged_types_win(self):
        """Test that an explicit type tag overrides inference."""
        row = Row.of([1, 2.0], types=[ColumnType.INT8, ColumnType.FLOAT])
        self.assertEqual(row.field_type(0), ColumnType.INT8)
        self.assertEqual(row.field_type(1), ColumnType.FLOAT)

        with self.assertRaises(ValueError):
            Row.of([1, 2], types=[ColumnType.INT8])

    def test_04_equality(self):
        """Test that rows compare by values, including against tuples."""
        self.assertEqual(Row.of([1, "x"]), Row.of([1, "x"]))
        self.assertEqual(Row.of([1, "x"]), (1, "x"))
        self.assertNotEqual(Row.of([1, "x"]), Row.of([1, "y"]))

    def test_05_uninferable_value(self):
        """Test that values with no column type are rejected."""
        with self.assertRaises(TypeError):
            infer_column_type(object())


class TestDecoder(unittest.TestCase):
    """Test cases for decoding native rows and encoding inserts."""

    def test_01_exhaustive_tables(self):
        """Test that every column type has a decoder and an encoder."""
        for column_type in ColumnType:
            self.assertIn(column_type, DECODERS)
            self.assertIn(column_type, ENCODERS)

    def test_02_decode_every_type(self):
        """Test decoding one native row holding every supported type."""
        wire = [1, -5, 300, 70000, 1.5, 2.25, "hello", True, "AAH/", 1600000000000000]
        native = RowResult(ALL_TYPES_SCHEMA, wire)

        row = decode_row(native)

        self.assertEqual(row.arity, 10)
        self.assertEqual(row.values(), [1, -5, 300, 70000, 1.5, 2.25, "hello", True,
                                        b"\x00\x01\xff", 1600000000000000])
        for i, column in enumerate(ALL_TYPES_SCHEMA.columns):
            self.assertEqual(row.field_type(i), column.column_type)

    def test_03_decode_float_rounds_to_single_precision(self):
        """Test that FLOAT cells are narrowed to 32 bits."""
        schema = TableSchema([ColumnSchema('f', ColumnType.FLOAT)])
        row = decode_row(RowResult(schema, [0.1]))
        self.assertNotEqual(row.get_field(0), 0.1)
        self.assertAlmostEqual(row.get_field(0), 0.1, places=6)

    def test_04_decode_nulls(self):
        """Test that null cells decode to None and keep their type."""
        schema = TableSchema([
            ColumnSchema('id', ColumnType.INT64, key=True, nullable=False),
            ColumnSchema('name', ColumnType.STRING),
        ])
        row = decode_row(RowResult(schema, [4, None]))
        self.assertEqual(row, (4, None))
        self.assertEqual(row.field_type(1), ColumnType.STRING)

    def test_05_decode_batch(self):
        """Test iterating a batch of native rows."""
        schema = TableSchema([ColumnSchema('id', ColumnType.INT32)])
        batch = RowResultIterator(schema, [[1], [2], [3]])
        self.assertEqual(batch.get_num_rows(), 3)
        self.assertEqual([decode_row(native).get_field(0) for native in batch], [1, 2, 3])
        self.assertFalse(batch.has_next())

    def test_06_check_decodable(self):
        """Test that a projection with an unknown type is rejected up front."""
        check_decodable(ALL_TYPES_SCHEMA)

        bad = TableSchema([ColumnSchema('x', "decimal128")])
        with self.assertRaises(UnsupportedTypeError):
            check_decodable(bad)

    def test_07_unknown_wire_type(self):
        """Test that parsing an unknown type name fails instead of dropping the column."""
        with self.assertRaises(UnsupportedTypeError):
            ColumnType.parse("decimal")
        self.assertEqual(ColumnType.parse("INT32"), ColumnType.INT32)

    def test_07b_project_unknown_column(self):
        """Test that projecting a column the schema lacks fails instead of picking another."""
        projected = ALL_TYPES_SCHEMA.project(['s', 'id'])
        self.assertEqual(projected.column_names, ['s', 'id'])

        with self.assertRaises(KeyError):
            ALL_TYPES_SCHEMA.project(['id', 'nope'])

    def test_08_encode_every_type(self):
        """Test encoding an insert through the typed setters."""
        partial = PartialRow(ALL_TYPES_SCHEMA)
        values = [1, -5, 300, 70000, 1.5, 2.25, "hello", True, b"\x00\x01\xff", 1600000000000000]
        for column, value in zip(ALL_TYPES_SCHEMA.columns, values):
            encode_field(partial, column.name, column.column_type, value)
        encode_field(partial, 'missing', ColumnType.STRING, None)

        encoded = partial.to_dict()
        self.assertEqual(encoded['bin'], "AAH/")
        self.assertEqual(encoded['ts'], 1600000000000000)
        self.assertIs(encoded['b'], True)
        self.assertIsNone(encoded['missing'])

    def test_09_encode_datetime_timestamp(self):
        """Test that datetimes are written as epoch microseconds."""
        partial = PartialRow(ALL_TYPES_SCHEMA)
        encode_field(partial, 'ts', ColumnType.TIMESTAMP, datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc))
        self.assertEqual(partial.to_dict()['ts'], 1000000)


class TestConfiguration(unittest.TestCase):
    """Test cases for write modes and connector settings."""

    def test_01_write_mode_parse(self):
        """Test parsing write modes, including the OVERRIDE alias."""
        self.assertEqual(WriteMode.parse("create"), WriteMode.CREATE)
        self.assertEqual(WriteMode.parse("APPEND"), WriteMode.APPEND)
        self.assertEqual(WriteMode.parse("OVERRIDE"), WriteMode.OVERWRITE)
        self.assertEqual(WriteMode.parse(WriteMode.OVERWRITE), WriteMode.OVERWRITE)

        for bad in ("UPSERT", "", None, 3):
            with self.assertRaises(ConfigurationError):
                WriteMode.parse(bad)

    def test_02_from_settings(self):
        """Test building a configuration from a settings mapping."""
        config = ConnectorConfig.from_settings({
            'master_addresses': 'm1:7051, m2:7051',
            'table_name': 'events',
            'write_mode': 'create',
            'column_names': 'id,name',
            'num_buckets': '5',
            'strict_scan': 'true'
        })
        self.assertEqual(config.master_addresses, ['m1:7051', 'm2:7051'])
        self.assertEqual(config.write_mode, WriteMode.CREATE)
        self.assertEqual(config.column_names, ['id', 'name'])
        self.assertEqual(config.partition_policy.num_buckets, 5)
        self.assertTrue(config.strict_scan)
        self.assertFalse(config.strict_schema)

    def test_03_invalid_settings(self):
        """Test that bad settings are rejected."""
        with self.assertRaises(ConfigurationError):
            ConnectorConfig.from_settings({'table_name': 'events', 'write_mode': 'BOGUS'})
        with self.assertRaises(ConfigurationError):
            ConnectorConfig.from_settings({'table_name': ''})
        with self.assertRaises(ConfigurationError):
            ConnectorConfig.from_settings({'table_name': 'events', 'colour': 'blue'})
        with self.assertRaises(ConfigurationError):
            ConnectorConfig.from_settings({'table_name': 'events', 'num_buckets': 0})
        with self.assertRaises(ConfigurationError):
            ConnectorConfig(table_name='events', column_names=['a', 'a'])

    def test_04_create_requires_column_names(self):
        """Test that CREATE without column names fails write validation."""
        config = ConnectorConfig(table_name='events', write_mode='CREATE')
        with self.assertRaises(ConfigurationError):
            config.validate_for_write()

    def test_05_merged(self):
        """Test overlaying settings on an existing configuration."""
        config = ConnectorConfig(table_name='events', master_addresses='m1:7051')
        merged = config.merged({'projected_columns': ['name'], 'use_replica_locations': False})
        self.assertEqual(merged.table_name, 'events')
        self.assertEqual(merged.projected_columns, ['name'])
        self.assertFalse(merged.use_replica_locations)
        self.assertIsNone(config.projected_columns)


if __name__ == '__main__':
    unittest.main()

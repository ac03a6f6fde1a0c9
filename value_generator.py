#!/usr/bin/env python3
"""Value generation module for creating random column values"""
from collections import OrderedDict
from datetime import datetime, timezone
from generate_random_rows_utils import (
    debug_print, quote_ident, escape_percent, rand_string, rand_unicode_string,
    EmptyReferenceError, UnsupportedFeatureError, GeneratedValue, INTEGER64, TEXT
)

NULL_PROBABILITY = 1.0 / 3
DEFAULT_PROBABILITY = 2.0 / 3
NEGATIVE_PROBABILITY = 0.1
UNICODE_TEXT_PROBABILITY = 0.1
MAX_TEXT_LENGTH = 50

# Bucket edges of the integer magnitude ladder: bucket 0 is [0, 1), the other
# nine grow geometrically up to 10**6
INTEGER_LADDER = [0] + [int(round(10 ** (k * 6.0 / 9))) for k in range(10)]

# Kinds a foreign key may reference or an insert may return
KEY_KINDS = (INTEGER64.kind, TEXT.kind)

JSON_CAST = "jsonb"


def random_integer(rng):
    """Pick an integer from the log-scale ladder; every bucket is equally likely"""
    bucket = rng.randrange(len(INTEGER_LADDER) - 1)
    value = rng.randrange(INTEGER_LADDER[bucket], INTEGER_LADDER[bucket + 1])
    if rng.random() < NEGATIVE_PROBABILITY:
        value = -value
    return value


def random_text(rng):
    length = rng.randrange(MAX_TEXT_LENGTH)
    if rng.random() < UNICODE_TEXT_PROBABILITY:
        return rand_unicode_string(rng, length)
    return rand_string(rng, length)


def cast_for(column):
    return JSON_CAST if column.value_type.kind == "json" else None


class ValueGenerator(object):
    """
    Responsible for generating column values respecting constraints.

    Handles:
    - Explicit overrides fed from a related insert
    - Leaving nullable and defaulted columns to the database
    - Sampling foreign key values from the referenced table
    - Random values per semantic type
    """

    def __init__(self, database, rng):
        """
        Initialize value generator.

        Args:
            database: Database model
            rng: Random number generator (random.Random)
        """
        self.database = database
        self.rng = rng

    def generate_value(self, cur, column, overrides=None, required=()):
        """
        Generate a value for one column.

        Args:
            cur: Cursor of the running transaction (used for FK sampling)
            column: Column
            overrides: Optional dict of column name -> explicit value
            required: Column names that must not be left NULL

        Returns:
            GeneratedValue, or None to leave the column to DEFAULT
        """
        if overrides and column.name in overrides:
            return GeneratedValue(overrides[column.name], cast_for(column))
        if column.nullable and column.name not in required and self.rng.random() < NULL_PROBABILITY:
            return None
        if column.has_default and self.rng.random() < DEFAULT_PROBABILITY:
            return None
        if column.foreign_key is not None:
            return GeneratedValue(self.sample_foreign_key(cur, column), None)
        return GeneratedValue(self.random_value(column.value_type), cast_for(column))

    def generate_row(self, cur, table, overrides=None, required=()):
        """
        Generate values for every column of a table.

        Returns:
            OrderedDict of column name -> GeneratedValue or None, in column order
        """
        row = OrderedDict()
        for name in table.column_names:
            row[name] = self.generate_value(cur, table.columns[name], overrides, required)
        return row

    def random_value(self, value_type):
        kind = value_type.kind
        if kind == "boolean":
            return self.rng.random() < 0.5
        if kind in ("int4", "int8"):
            return random_integer(self.rng)
        if kind == "text":
            return random_text(self.rng)
        if kind == "bytea":
            return b""
        if kind == "json":
            return "{}"
        if kind == "timestamp":
            return datetime.now(timezone.utc)
        if kind == "enum":
            return self.rng.choice(value_type.labels)
        if kind == "array":
            return []
        raise UnsupportedFeatureError("No generator for type {0}".format(kind))

    def sample_foreign_key(self, cur, column):
        """
        Pick an existing value of the column referenced by a foreign key.

        Args:
            cur: Cursor of the running transaction
            column: Column with a foreign_key

        Returns:
            A value currently present in the referenced column

        Raises:
            UnsupportedFeatureError: if the referenced column is not int8 or text
            EmptyReferenceError: if the referenced column holds no values
        """
        ref = column.foreign_key
        ref_table = self.database.tables[ref.table]
        ref_column = ref_table.columns.get(ref.column)
        if ref_column is None or ref_column.value_type.kind not in KEY_KINDS:
            raise UnsupportedFeatureError(
                "Foreign key {0} -> {1}.{2} references an unsupported type {3}".format(
                    column.name, ref.table, ref.column,
                    ref_column.value_type.kind if ref_column else "(unknown column)"))

        source = "FROM {0} WHERE {1} IS NOT NULL".format(quote_ident(ref.table), quote_ident(ref.column))
        cur.execute("SELECT count(*) {0}".format(source))
        count = cur.fetchone()[0]
        if not count:
            raise EmptyReferenceError("No rows in {0}.{1} to reference from {2}".format(
                ref.table, ref.column, column.name))

        offset = self.rng.randrange(count)
        cur.execute("SELECT {0} {1} OFFSET %s LIMIT 1".format(
            escape_percent(quote_ident(ref.column)), escape_percent(source)), (offset,))
        row = cur.fetchone()
        if row is None:
            raise EmptyReferenceError("Row {0} of {1}.{2} vanished while sampling".format(
                offset, ref.table, ref.column))
        debug_print("{0}: sampled {1} from {2}.{3} at offset {4}".format(
            column.name, row[0], ref.table, ref.column, offset))
        return row[0]

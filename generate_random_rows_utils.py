#!/usr/bin/env python3
"""Utility functions and data structures for random row generation"""
import sys
from collections import namedtuple

GLOBALS = {"debug": False}

ALPHANUMERIC = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

# Unicode scalar values minus NUL and the surrogate block (PostgreSQL text rejects both)
SURROGATE_START = 0xD800
SURROGATE_COUNT = 0x800
UNICODE_SCALAR_COUNT = 0x10FFFF - SURROGATE_COUNT


class SchemaError(Exception):
    """Catalog contents that cannot be turned into a model"""


class UnsupportedTypeError(SchemaError):
    def __init__(self, table, column, type_name):
        self.table = table
        self.column = column
        self.type_name = type_name
        super(UnsupportedTypeError, self).__init__(
            "Unexpected type {0} for column {1}.{2}".format(type_name, table, column))


class AmbiguousForeignKeyError(SchemaError):
    def __init__(self, table, column, matches):
        self.table = table
        self.column = column
        self.matches = list(matches)
        super(AmbiguousForeignKeyError, self).__init__(
            "More than one foreign key found for column {0}.{1}: {2}".format(
                table, column, self.matches))


class UnsupportedFeatureError(Exception):
    """A foreign key or returned column of a kind the generator cannot handle"""


class EmptyReferenceError(Exception):
    """A foreign key points at a table holding no usable rows"""


class ConfigError(Exception):
    pass


SemanticType = namedtuple("SemanticType", ["kind", "labels", "element"])

BOOLEAN = SemanticType("boolean", (), None)
INTEGER32 = SemanticType("int4", (), None)
INTEGER64 = SemanticType("int8", (), None)
TEXT = SemanticType("text", (), None)
BYTEA = SemanticType("bytea", (), None)
JSON = SemanticType("json", (), None)
TIMESTAMP = SemanticType("timestamp", (), None)


def enumeration(labels):
    return SemanticType("enum", tuple(labels), None)


def array_of(element):
    return SemanticType("array", (), element)


ForeignKeyRef = namedtuple("ForeignKeyRef", ["table", "column"])
Column = namedtuple("Column", ["name", "value_type", "nullable", "has_default", "primary_key", "foreign_key"])
Table = namedtuple("Table", ["name", "column_names", "columns"])
Database = namedtuple("Database", ["table_names", "tables"])
OrderingRule = namedtuple("OrderingRule", ["local_column", "related_table", "related_column"])
GeneratedValue = namedtuple("GeneratedValue", ["value", "cast"])


def debug_print(*args, **kwargs):
    if GLOBALS["debug"]:
        print("[DEBUG]", *args, **kwargs)


def print_error(message):
    print("Error: {0}".format(message), file=sys.stderr)


def print_warning(message):
    print("WARNING: {0}".format(message), file=sys.stderr)


def quote_ident(name):
    """Quote an identifier for PostgreSQL, keeping its exact casing"""
    return '"{0}"'.format(name.replace('"', '""'))


def escape_percent(sql):
    """
    Double percent signs in SQL text that is executed with parameters.

    The driver only interpolates (and so only un-doubles %%) when
    parameters are passed.
    """
    return sql.replace("%", "%%")


def rand_string(rng, length=12):
    return "".join(rng.choice(ALPHANUMERIC) for _ in range(length))


def rand_unicode_char(rng):
    code = rng.randrange(1, UNICODE_SCALAR_COUNT + 1)
    if code >= SURROGATE_START:
        code += SURROGATE_COUNT
    return chr(code)


def rand_unicode_string(rng, length=12):
    return "".join(rand_unicode_char(rng) for _ in range(length))

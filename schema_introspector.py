#!/usr/bin/env python3
"""Schema introspection module for loading PostgreSQL catalog metadata"""
from types import MappingProxyType
from generate_random_rows_utils import (
    debug_print, print_warning, AmbiguousForeignKeyError, UnsupportedTypeError,
    BOOLEAN, INTEGER32, INTEGER64, TEXT, BYTEA, JSON, TIMESTAMP,
    enumeration, array_of, Column, Table, Database, ForeignKeyRef
)

# udt_name -> semantic type for plain (non-enum, non-array) columns
SCALAR_TYPES = {
    "bool": BOOLEAN,
    "int4": INTEGER32,
    "int8": INTEGER64,
    "text": TEXT,
    "varchar": TEXT,
    "bytea": BYTEA,
    "json": JSON,
    "jsonb": JSON,
    "timestamp": TIMESTAMP,
    "timestamptz": TIMESTAMP,
}

# Array udt_name -> element type
ARRAY_TYPES = {
    "_text": TEXT,
}


def load_tables(conn, schema):
    """Load base, insertable, untyped table names"""
    cur = conn.cursor()
    cur.execute(
        "SELECT table_name FROM information_schema.tables "
        "WHERE table_schema = %s AND table_type = 'BASE TABLE' "
        "AND is_insertable_into = 'YES' AND is_typed = 'NO' "
        "ORDER BY table_name",
        (schema,)
    )
    return [r[0] for r in cur.fetchall()]


def load_columns(conn, schema):
    """Load (table, column, nullable, has_default, data_type, udt_name) in creation order"""
    cur = conn.cursor()
    cur.execute(
        "SELECT table_name, column_name, is_nullable = 'YES', "
        "column_default IS NOT NULL OR is_identity = 'YES', data_type, udt_name "
        "FROM information_schema.columns WHERE table_schema = %s "
        "ORDER BY table_name, ordinal_position",
        (schema,)
    )
    return [tuple(r) for r in cur.fetchall()]


def load_constraints(conn, schema):
    """Load primary and foreign key constraint rows"""
    cur = conn.cursor()
    cur.execute(
        "SELECT tc.constraint_name, tc.constraint_type, kcu.table_name, kcu.column_name, "
        "ccu.table_name, ccu.column_name "
        "FROM information_schema.table_constraints tc "
        "JOIN information_schema.key_column_usage kcu "
        "ON kcu.constraint_name = tc.constraint_name AND kcu.constraint_schema = tc.constraint_schema "
        "JOIN information_schema.constraint_column_usage ccu "
        "ON ccu.constraint_name = tc.constraint_name AND ccu.constraint_schema = tc.constraint_schema "
        "WHERE tc.constraint_schema = %s AND tc.table_schema = %s "
        "AND tc.constraint_type IN ('PRIMARY KEY', 'FOREIGN KEY') "
        "ORDER BY tc.constraint_name",
        (schema, schema)
    )
    return [tuple(r) for r in cur.fetchall()]


def load_enum_labels(conn):
    """Load (type_name, label) pairs in declaration order"""
    cur = conn.cursor()
    cur.execute(
        "SELECT pg_type.typname, pg_enum.enumlabel FROM pg_type "
        "JOIN pg_enum ON pg_enum.enumtypid = pg_type.oid "
        "WHERE pg_type.typtype = 'e' AND pg_type.typcategory = 'E' "
        "ORDER BY pg_type.typname, pg_enum.enumsortorder"
    )
    return [tuple(r) for r in cur.fetchall()]


def map_semantic_type(table, column, data_type, udt_name, enum_labels):
    """
    Map a catalog type description to a SemanticType.

    Args:
        table: Owning table name (for error context)
        column: Column name (for error context)
        data_type: information_schema data_type ("USER-DEFINED", "ARRAY", ...)
        udt_name: Underlying type name ("int4", "_text", enum type name, ...)
        enum_labels: List of (type_name, label) tuples

    Returns:
        SemanticType

    Raises:
        UnsupportedTypeError: if the type has no mapping
    """
    if data_type == "USER-DEFINED":
        labels = [label for type_name, label in enum_labels if type_name == udt_name]
        if not labels:
            # citext, hstore, geometry and other non-enum extension types
            raise UnsupportedTypeError(table, column, udt_name)
        return enumeration(labels)
    if data_type == "ARRAY":
        if udt_name not in ARRAY_TYPES:
            raise UnsupportedTypeError(table, column, udt_name)
        return array_of(ARRAY_TYPES[udt_name])
    if udt_name not in SCALAR_TYPES:
        raise UnsupportedTypeError(table, column, udt_name)
    return SCALAR_TYPES[udt_name]


def fold_constraints(table, column, constraints):
    """
    Work out the key flags of one column from the constraint rows.

    Returns:
        Tuple of (primary_key, foreign_key) where foreign_key is a
        ForeignKeyRef or None

    Raises:
        AmbiguousForeignKeyError: if more than one foreign key matches
    """
    matching = [c for c in constraints if c[2] == table and c[3] == column]
    primary_key = any(c[1] == "PRIMARY KEY" for c in matching)
    foreign_keys = [c for c in matching if c[1] == "FOREIGN KEY"]
    if len(foreign_keys) > 1:
        raise AmbiguousForeignKeyError(table, column, foreign_keys)
    if foreign_keys:
        return primary_key, ForeignKeyRef(foreign_keys[0][4], foreign_keys[0][5])
    return primary_key, None


def build_database(tables, columns, constraints, enum_labels):
    """
    Build the Database model from raw catalog tuples.

    Args:
        tables: List of table names
        columns: List of (table, column, nullable, has_default, data_type, udt_name)
        constraints: List of (name, type, table, column, ref_table, ref_column)
        enum_labels: List of (type_name, label)

    Returns:
        Database

    Raises:
        SchemaError: on unsupported types or ambiguous foreign keys
    """
    known_tables = set(tables)
    column_names = dict((t, []) for t in tables)
    column_maps = dict((t, {}) for t in tables)

    for table_name, column_name, nullable, has_default, data_type, udt_name in columns:
        if table_name not in known_tables:
            print_warning("Table {0} not found for column {1}".format(table_name, column_name))
            continue

        value_type = map_semantic_type(table_name, column_name, data_type, udt_name, enum_labels)
        primary_key, foreign_key = fold_constraints(table_name, column_name, constraints)
        if foreign_key is not None and foreign_key.table not in known_tables:
            print_warning("Column {0}.{1} references unknown table {2}, dropping column".format(
                table_name, column_name, foreign_key.table))
            continue

        column_maps[table_name][column_name] = Column(
            column_name, value_type, bool(nullable), bool(has_default), primary_key, foreign_key)
        column_names[table_name].append(column_name)

    return Database(
        tuple(tables),
        MappingProxyType(dict(
            (t, Table(t, tuple(column_names[t]), MappingProxyType(column_maps[t]))) for t in tables))
    )


class SchemaIntrospector(object):
    """
    Responsible for reading the catalog and building the Database model.

    The model is built once per run; its mappings are read-only views.
    """

    def __init__(self, conn, schema="public"):
        """
        Initialize schema introspector.

        Args:
            conn: PostgreSQL database connection
            schema: Schema whose tables are populated
        """
        self.conn = conn
        self.schema = schema

    def introspect(self):
        """
        Load catalog metadata and build the model.

        Returns:
            Database
        """
        tables = load_tables(self.conn, self.schema)
        columns = load_columns(self.conn, self.schema)
        constraints = load_constraints(self.conn, self.schema)
        enum_labels = load_enum_labels(self.conn)
        debug_print("Catalog: {0} tables, {1} columns, {2} constraint rows, {3} enum labels".format(
            len(tables), len(columns), len(constraints), len(enum_labels)))

        database = build_database(tables, columns, constraints, enum_labels)
        for name in database.table_names:
            table = database.tables[name]
            debug_print("{0}: {1}".format(name, ", ".join(
                "{0}:{1}".format(c, table.columns[c].value_type.kind) for c in table.column_names)))
        return database

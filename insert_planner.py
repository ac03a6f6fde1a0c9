#!/usr/bin/env python3
"""Insert statement planning: column list, placeholders and bound parameters"""
from collections import namedtuple
from generate_random_rows_utils import quote_ident, escape_percent, UnsupportedFeatureError
from value_generator import KEY_KINDS

PLACEHOLDER = "%s"

InsertPlan = namedtuple("InsertPlan", ["table", "columns", "placeholders", "params", "returning"])


def plan_insert(table, values, returning=None):
    """
    Lay out one row for an INSERT.

    Omitted columns (value None) use DEFAULT and bind nothing. Every other
    column gets the next positional placeholder and its value is appended to
    params in the same order.

    Args:
        table: Table
        values: Mapping of column name -> GeneratedValue or None
        returning: Optional column name to read back after the insert

    Returns:
        InsertPlan

    Raises:
        UnsupportedFeatureError: if the returned column is not int8 or text
    """
    if returning is not None:
        column = table.columns.get(returning)
        if column is None or column.value_type.kind not in KEY_KINDS:
            raise UnsupportedFeatureError("Cannot return column {0}.{1} of type {2}".format(
                table.name, returning, column.value_type.kind if column else "(unknown column)"))

    columns, placeholders, params = [], [], []
    for name in table.column_names:
        if name not in values:
            continue
        columns.append(quote_ident(name))
        generated = values[name]
        if generated is None:
            placeholders.append("DEFAULT")
            continue
        if generated.cast:
            placeholders.append("{0}::{1}".format(PLACEHOLDER, generated.cast))
        else:
            placeholders.append(PLACEHOLDER)
        params.append(generated.value)

    return InsertPlan(
        quote_ident(table.name), columns, placeholders, params,
        quote_ident(returning) if returning is not None else None)


def render_insert_statement(plan):
    """
    Render an InsertPlan as a single INSERT.

    Identifiers are percent-escaped only when the statement binds
    parameters; execute it with plan.params, or with no arguments when
    params is empty.
    """
    ident = escape_percent if plan.params else (lambda s: s)
    if plan.columns:
        sql = "INSERT INTO {0} ({1}) VALUES ({2})".format(
            ident(plan.table), ", ".join(ident(c) for c in plan.columns), ", ".join(plan.placeholders))
    else:
        sql = "INSERT INTO {0} DEFAULT VALUES".format(ident(plan.table))
    if plan.returning:
        sql += " RETURNING {0}".format(ident(plan.returning))
    return sql

#!/usr/bin/env python3
"""Unit tests for DependencyOrchestrator class"""
import unittest
import random

from generate_random_rows_utils import (
    Column, Table, Database, ForeignKeyRef, OrderingRule, ConfigError, EmptyReferenceError,
    INTEGER64, TEXT
)
from value_generator import ValueGenerator
from dependency_orchestrator import DependencyOrchestrator


def make_table(name, *columns):
    return Table(name, tuple(c.name for c in columns), dict((c.name, c) for c in columns))


def make_database():
    customers = make_table(
        "customers",
        Column("id", INTEGER64, False, True, True, None),
        Column("name", TEXT, False, False, False, None),
    )
    orders = make_table(
        "orders",
        Column("customer_id", INTEGER64, False, False, False, ForeignKeyRef("customers", "id")),
    )
    notes = make_table(
        "notes",
        Column("body", TEXT, True, False, False, None),
    )
    tables = {"customers": customers, "orders": orders, "notes": notes}
    return Database(("customers", "notes", "orders"), tables)


class MockCursor:
    """Mock cursor recording statements and handing out increasing ids"""

    def __init__(self):
        self.statements = []
        self.next_id = 1000
        self.result = None

    def execute(self, query, params=None):
        self.statements.append((query, list(params or [])))
        self.result = None
        if "RETURNING" in query:
            self.next_id += 1
            self.result = (self.next_id,)
        elif "count(*)" in query:
            self.result = (0,)

    def fetchone(self):
        return self.result


class TestDependencyOrchestrator(unittest.TestCase):
    """Test cases for table selection and ordering rules"""

    def setUp(self):
        """Set up test fixtures"""
        self.database = make_database()
        self.rng = random.Random(42)
        self.generator = ValueGenerator(self.database, self.rng)

    def orchestrator(self, **kwargs):
        return DependencyOrchestrator(self.database, self.generator, self.rng, **kwargs)

    def test_only_filter_restricts_selection(self):
        """Test only={'orders'} selects nothing but orders"""
        orchestrator = self.orchestrator(only=["orders"])
        orchestrator.validate()
        for n in (1, 10, 1000):
            self.assertEqual({orchestrator.select_table() for _ in range(n)}, {"orders"})

    def test_skip_filter_is_redrawn(self):
        """Test skipped tables never come out of selection"""
        orchestrator = self.orchestrator(skip={"orders", "customers"})
        self.assertEqual({orchestrator.select_table() for _ in range(200)}, {"notes"})

    def test_unfiltered_selection_covers_all_tables(self):
        """Test every table is eligible without filters"""
        orchestrator = self.orchestrator()
        self.assertEqual({orchestrator.select_table() for _ in range(500)},
                         {"customers", "orders", "notes"})

    def test_validate_rejects_bad_configuration(self):
        """Test invalid filters and rules are fatal configuration errors"""
        rule = OrderingRule("customer_id", "customers", "id")
        bad = [
            dict(only=["orders"], skip={"notes"}),
            dict(only=["missing"]),
            dict(skip={"customers", "orders", "notes"}),
            dict(require_after={"missing": rule}),
            dict(require_after={"orders": OrderingRule("nope", "customers", "id")}),
            dict(require_before={"orders": OrderingRule("customer_id", "customers", "nope")}),
            dict(require_after={"orders": rule}, require_before={"orders": rule}),
        ]
        for kwargs in bad:
            with self.assertRaises(ConfigError):
                self.orchestrator(**kwargs).validate()

    def test_plain_iteration(self):
        """Test a table without rules gets a single insert"""
        cur = MockCursor()
        written = self.orchestrator().run_iteration(cur, "notes")
        self.assertEqual(written, ["notes"])
        self.assertEqual(len(cur.statements), 1)
        self.assertTrue(cur.statements[0][0].startswith('INSERT INTO "notes"'))

    def test_require_after_feeds_related_key(self):
        """Test orders.customer_id is the id returned by the customers insert of the same iteration"""
        rule = OrderingRule("customer_id", "customers", "id")
        orchestrator = self.orchestrator(require_after={"orders": rule})
        orchestrator.validate()
        for _ in range(50):
            cur = MockCursor()
            written = orchestrator.run_iteration(cur, "orders")
            self.assertEqual(written, ["customers", "orders"])

            related_sql, _ = cur.statements[0]
            self.assertTrue(related_sql.startswith('INSERT INTO "customers"'))
            self.assertTrue(related_sql.endswith('RETURNING "id"'))

            local_sql, local_params = cur.statements[1]
            self.assertEqual(local_sql, 'INSERT INTO "orders" ("customer_id") VALUES (%s)')
            self.assertEqual(local_params, [cur.next_id])
            self.assertEqual(len(cur.statements), 2)

    def test_require_before_uses_same_mechanism(self):
        """Test require-before also creates the related row first"""
        rule = OrderingRule("customer_id", "customers", "id")
        orchestrator = self.orchestrator(require_before={"orders": rule})
        cur = MockCursor()
        self.assertEqual(orchestrator.run_iteration(cur, "orders"), ["customers", "orders"])
        self.assertEqual(cur.statements[1][1], [cur.next_id])

    def test_rule_for_prefers_require_after(self):
        """Test require-after is looked up before require-before"""
        after = OrderingRule("customer_id", "customers", "id")
        before = OrderingRule("customer_id", "customers", "name")
        orchestrator = self.orchestrator(require_after={"orders": after}, require_before={"orders": before})
        self.assertEqual(orchestrator.rule_for("orders"), after)
        self.assertIsNone(orchestrator.rule_for("notes"))

    def test_only_filter_drops_duplicates(self):
        """Test repeated --only names keep their first position and are listed once"""
        orchestrator = self.orchestrator(only=["orders", "notes", "orders", "notes"])
        self.assertEqual(orchestrator.only, ["orders", "notes"])
        orchestrator.validate()

    def test_nullable_related_column_is_always_written(self):
        """Test a nullable returned column is never left NULL in the related insert"""
        self.database.tables["tags"] = make_table(
            "tags",
            Column("label", TEXT, True, False, False, None),
        )
        self.database = self.database._replace(table_names=("customers", "notes", "orders", "tags"))
        self.generator = ValueGenerator(self.database, self.rng)
        orchestrator = self.orchestrator(require_after={"notes": OrderingRule("body", "tags", "label")})
        orchestrator.validate()
        for _ in range(100):
            cur = MockCursor()
            orchestrator.run_iteration(cur, "notes")
            related_sql, related_params = cur.statements[0]
            self.assertEqual(related_sql, 'INSERT INTO "tags" ("label") VALUES (%s) RETURNING "label"')
            self.assertEqual(len(related_params), 1)
            self.assertEqual(cur.statements[1][1], [cur.next_id])

    def test_null_related_key_fails_iteration(self):
        """Test a NULL key coming back from the related insert is not written into the local column"""
        cur = MockCursor()
        cur.fetchone = lambda: (None,)
        orchestrator = self.orchestrator(require_after={"orders": OrderingRule("customer_id", "customers", "id")})
        with self.assertRaises(EmptyReferenceError):
            orchestrator.run_iteration(cur, "orders")
        self.assertEqual(len(cur.statements), 1)


if __name__ == '__main__':
    unittest.main()

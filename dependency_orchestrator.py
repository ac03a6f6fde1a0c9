#!/usr/bin/env python3
"""Table selection and before/after ordering between related inserts"""
from collections import OrderedDict
from generate_random_rows_utils import debug_print, ConfigError, EmptyReferenceError
from insert_planner import plan_insert, render_insert_statement


class DependencyOrchestrator(object):
    """
    Responsible for deciding what one iteration inserts, and in which order.

    Handles:
    - Picking a table honoring the only/skip filters
    - Resolving require-after / require-before rules into two inserts,
      feeding the related row's key into the local column
    """

    def __init__(self, database, generator, rng, only=(), skip=(),
                 require_after=None, require_before=None):
        """
        Initialize orchestrator.

        Args:
            database: Database model
            generator: ValueGenerator
            rng: Random number generator
            only: Allow-list of table names
            skip: Deny-set of table names
            require_after: Dict of table name -> OrderingRule
            require_before: Dict of table name -> OrderingRule
        """
        self.database = database
        self.generator = generator
        self.rng = rng
        self.only = list(OrderedDict.fromkeys(only))
        self.skip = set(skip)
        self.require_after = dict(require_after or {})
        self.require_before = dict(require_before or {})

    def validate(self):
        """
        Check filters and rules against the model.

        Raises:
            ConfigError: on an unusable combination
        """
        if self.only and self.skip:
            raise ConfigError("--only and --skip cannot be combined")
        for name in list(self.only) + sorted(self.skip):
            if name not in self.database.tables:
                raise ConfigError("Unknown table {0} in table filter".format(name))
        if not any(t not in self.skip for t in self.database.table_names):
            raise ConfigError("No table left to insert into")

        for kind, rules in (("require-after", self.require_after), ("require-before", self.require_before)):
            for table_name, rule in sorted(rules.items()):
                self._check_column(kind, table_name, rule.local_column)
                self._check_column(kind, rule.related_table, rule.related_column)

        both = sorted(set(self.require_after) & set(self.require_before))
        if both:
            raise ConfigError("Tables with both a require-after and a require-before rule: {0}".format(
                ", ".join(both)))

    def _check_column(self, kind, table_name, column_name):
        table = self.database.tables.get(table_name)
        if table is None:
            raise ConfigError("Unknown table {0} in {1} rule".format(table_name, kind))
        if column_name not in table.columns:
            raise ConfigError("Unknown column {0}.{1} in {2} rule".format(table_name, column_name, kind))

    def select_table(self):
        """Draw a table; tables in the skip set are redrawn"""
        candidates = self.only or self.database.table_names
        while True:
            table_name = self.rng.choice(candidates)
            if table_name not in self.skip:
                return table_name

    def rule_for(self, table_name):
        """Return the ordering rule for a table, require-after first"""
        if table_name in self.require_after:
            return self.require_after[table_name]
        return self.require_before.get(table_name)

    def insert_row(self, cur, table_name, overrides=None, returning=None):
        """
        Generate and insert one row.

        Args:
            cur: Cursor of the running transaction
            table_name: Target table
            overrides: Optional dict of column name -> explicit value
            returning: Optional column to read back

        Returns:
            The returned column's value when returning is set, else None
        """
        table = self.database.tables[table_name]
        values = self.generator.generate_row(
            cur, table, overrides, required=(returning,) if returning else ())
        plan = plan_insert(table, values, returning)
        sql = render_insert_statement(plan)
        debug_print("{0} {1}".format(sql, plan.params))
        if plan.params:
            cur.execute(sql, plan.params)
        else:
            cur.execute(sql)
        if returning is None:
            return None
        return cur.fetchone()[0]

    def run_iteration(self, cur, table_name):
        """
        Perform the inserts of one iteration inside the caller's transaction.

        Returns:
            List of table names written, in insertion order
        """
        rule = self.rule_for(table_name)
        if rule is None:
            self.insert_row(cur, table_name)
            return [table_name]

        key = self.insert_row(cur, rule.related_table, returning=rule.related_column)
        if key is None:
            raise EmptyReferenceError("{0}.{1} came back NULL, cannot fill {2}.{3}".format(
                rule.related_table, rule.related_column, table_name, rule.local_column))
        self.insert_row(cur, table_name, overrides={rule.local_column: key})
        return [rule.related_table, table_name]

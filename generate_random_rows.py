#!/usr/bin/env python3
"""Continuously insert random, schema-valid rows into a PostgreSQL database"""
import argparse, json, sys, random

try:
    import psycopg2
except ImportError:
    print("Error: psycopg2 required.  Install: pip install psycopg2-binary", file=sys.stderr)
    sys.exit(1)

from generate_random_rows_utils import (
    GLOBALS, debug_print, print_error, OrderingRule,
    ConfigError, EmptyReferenceError, SchemaError, UnsupportedFeatureError
)
from schema_introspector import SchemaIntrospector
from value_generator import ValueGenerator
from dependency_orchestrator import DependencyOrchestrator

RULE_FIELDS = ("table", "column", "relatedTable", "relatedColumn")


def parse_ordering_rule(value):
    """
    Parse "table,column,relatedTable,relatedColumn" (or a 4-item list).

    Returns:
        Tuple of (table, OrderingRule)
    """
    parts = value.split(",") if isinstance(value, str) else list(value)
    parts = [str(p).strip() for p in parts]
    if len(parts) != len(RULE_FIELDS) or not all(parts):
        raise argparse.ArgumentTypeError(
            "expected {0}, got {1!r}".format(",".join(RULE_FIELDS), value))
    return parts[0], OrderingRule(parts[1], parts[2], parts[3])


def register_rules(entries):
    """Collect rules per table; a later entry for the same table replaces the earlier one"""
    rules = {}
    for table, rule in entries:
        if table in rules:
            debug_print("Rule for {0} replaced: {1} -> {2}".format(table, rules[table], rule))
        rules[table] = rule
    return rules


def build_parser():
    p = argparse.ArgumentParser(description="Insert random rows into a PostgreSQL database until stopped")
    p.add_argument("dsn", help="libpq connection string, e.g. 'host=localhost dbname=test user=postgres'")
    p.add_argument("--schema", default="public", help="Schema to populate (default: public)")
    p.add_argument("--config", default=None, help="JSON config file with only/skip/require_after/require_before")
    p.add_argument("--only", action="append", default=[], metavar="TABLE",
                   help="Only insert into this table (repeatable)")
    p.add_argument("--skip", action="append", default=[], metavar="TABLE",
                   help="Never pick this table (repeatable)")
    p.add_argument("--require-after", action="append", default=[], type=parse_ordering_rule,
                   metavar=",".join(RULE_FIELDS),
                   help="Insert into relatedTable first and write its relatedColumn into table.column")
    p.add_argument("--require-before", action="append", default=[], type=parse_ordering_rule,
                   metavar=",".join(RULE_FIELDS),
                   help="Same mechanism as --require-after, for rows logically created before")
    p.add_argument("--seed", type=int, default=None, help="Random seed (default: unseeded)")
    p.add_argument("--report-every", type=int, default=1000,
                   help="Print progress every N committed iterations, 0 to disable (default: 1000)")
    p.add_argument("--debug", action="store_true", help="Enable debug output")
    return p


def parse_args(argv=None):
    p = build_parser()
    args = p.parse_args(argv)
    if args.only and args.skip:
        p.error("--only and --skip are mutually exclusive")
    if args.report_every < 0:
        p.error("--report-every must not be negative")
    return args


def load_config(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
        if not isinstance(cfg, dict):
            raise ValueError("Config must be an object")
        unknown = set(cfg) - {"only", "skip", "require_after", "require_before"}
        if unknown:
            raise ValueError("Unknown keys: {0}".format(", ".join(sorted(unknown))))
        for key in cfg:
            if not isinstance(cfg[key], list):
                raise ValueError("'{0}' must be a list".format(key))
        return cfg
    except IOError:
        print("Error: Config file not found: {0}".format(path), file=sys.stderr)
        sys.exit(1)
    except (json.JSONDecodeError, ValueError) as e:
        print("Error: Invalid config: {0}".format(e), file=sys.stderr)
        sys.exit(1)


def merge_settings(args, cfg):
    """
    Combine config file entries with command line options.

    Config file entries are registered first, so command line rules win.

    Returns:
        Dict with only, skip, require_after and require_before
    """
    try:
        after = [parse_ordering_rule(r) for r in cfg.get("require_after", [])]
        before = [parse_ordering_rule(r) for r in cfg.get("require_before", [])]
    except argparse.ArgumentTypeError as e:
        raise ConfigError("Invalid rule in config: {0}".format(e))
    return {
        "only": list(cfg.get("only", [])) + args.only,
        "skip": set(cfg.get("skip", [])) | set(args.skip),
        "require_after": register_rules(after + args.require_after),
        "require_before": register_rules(before + args.require_before),
    }


def connect_postgres(dsn):
    try:
        return psycopg2.connect(dsn)
    except psycopg2.Error as e:
        print("Error: Failed to connect to PostgreSQL: {0}".format(e), file=sys.stderr)
        sys.exit(1)


class RandomRowDriver(object):
    """Runs one transaction per iteration and keeps success/failure counts"""

    def __init__(self, conn, orchestrator, report_every=1000):
        self.conn = conn
        self.orchestrator = orchestrator
        self.report_every = report_every
        self.successes = 0
        self.failures = 0

    def run_once(self):
        """
        Run one iteration in its own transaction.

        Returns:
            True if the transaction committed
        """
        table_name = self.orchestrator.select_table()
        try:
            with self.conn:
                with self.conn.cursor() as cur:
                    written = self.orchestrator.run_iteration(cur, table_name)
        except UnsupportedFeatureError:
            raise
        except Exception as e:
            self.failures += 1
            if isinstance(e, (psycopg2.Error, EmptyReferenceError)):
                message = str(e).strip()
            else:
                message = "{0}: {1}".format(type(e).__name__, e)
            print_error("{0}: {1}".format(table_name, message))
            return False

        self.successes += 1
        debug_print("Committed {0}".format(" -> ".join(written)))
        if self.report_every and self.successes % self.report_every == 0:
            print(" Committed {0} iterations ({1} failed)".format(self.successes, self.failures))
        return True

    def run(self):
        while True:
            self.run_once()


def main():
    args = parse_args()
    GLOBALS["debug"] = args.debug
    cfg = load_config(args.config) if args.config else {}
    rng = random.Random(args.seed)
    conn = connect_postgres(args.dsn)
    driver = None
    try:
        settings = merge_settings(args, cfg)
        database = SchemaIntrospector(conn, args.schema).introspect()
        conn.rollback()
        generator = ValueGenerator(database, rng)
        orchestrator = DependencyOrchestrator(database, generator, rng, **settings)
        orchestrator.validate()
        print(" Loaded {0} table(s) from schema {1}".format(len(database.table_names), args.schema))

        driver = RandomRowDriver(conn, orchestrator, args.report_every)
        driver.run()
    except KeyboardInterrupt:
        if driver is not None:
            print(" Stopped after {0} committed iterations ({1} failed)".format(
                driver.successes, driver.failures))
    except (SchemaError, ConfigError, UnsupportedFeatureError) as e:
        print_error(e)
        sys.exit(1)
    except Exception as e:
        print("Error: {0}".format(e), file=sys.stderr)
        if GLOBALS["debug"]:
            import traceback
            traceback.print_exc()
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()

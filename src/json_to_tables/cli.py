"""CLI entrypoint for json-to-tables."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from json_to_tables.cache import parse_memory_limit
from json_to_tables.config import Config, parse_primary_keys
from json_to_tables.loader import iter_batches, load_documents
from json_to_tables.parser import Parser
from json_to_tables.writer import write_csv, write_to_iceberg


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="json-to-tables",
        description="Convert nested JSON into linked flat tables.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    convert = sub.add_parser("convert", help="Flatten JSON into CSV or Iceberg tables")
    convert.add_argument(
        "-i",
        "--input",
        required=True,
        type=Path,
        help="Path to a JSON or JSON Lines file",
    )
    convert.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("out"),
        help="Output directory for CSV files (default: out)",
    )
    convert.add_argument(
        "-f",
        "--format",
        choices=["csv", "iceberg"],
        default="csv",
        help="Output format (default: csv)",
    )
    convert.add_argument(
        "-t",
        "--table",
        default="root",
        help="Name of the root table (default: root)",
    )
    convert.add_argument(
        "--records-key",
        default=None,
        help="Top-level key holding the records array",
    )
    convert.add_argument(
        "--batch-size",
        type=int,
        default=1000,
        help="Documents submitted per batch (default: 1000)",
    )
    convert.add_argument(
        "--analyze-rows",
        type=int,
        default=None,
        help="Rows to sample per table before the schema is fixed (-1: all)",
    )
    convert.add_argument(
        "--nested-arrays-as-json",
        action="store_true",
        default=None,
        help="Store arrays nested in arrays as JSON strings",
    )
    convert.add_argument(
        "--allow-scalar-array-mix",
        action="store_true",
        default=None,
        help="Allow a field to hold both scalars and arrays",
    )
    convert.add_argument(
        "--auto-upgrade-to-array",
        action="store_true",
        default=None,
        help="Treat scalars in array fields as one-element arrays",
    )
    convert.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Do not widen differing scalar types",
    )
    convert.add_argument(
        "--primary-key",
        action="append",
        default=[],
        metavar="TABLE=COLS",
        help="Link child rows by these columns of TABLE (repeatable)",
    )
    convert.add_argument(
        "--cache-memory-limit",
        default=None,
        help="Buffer size before spilling to disk, e.g. 2M",
    )
    convert.add_argument(
        "--schema-in",
        type=Path,
        default=None,
        help="JSON file with a previously inferred schema",
    )
    convert.add_argument(
        "--schema-out",
        type=Path,
        default=None,
        help="Write the inferred schema to this JSON file",
    )
    convert.add_argument(
        "-n",
        "--namespace",
        default=None,
        help="Iceberg namespace (overrides ICEBERG_NAMESPACE env var)",
    )
    convert.add_argument(
        "-m",
        "--mode",
        choices=["append", "overwrite"],
        default="overwrite",
        help="Iceberg write mode (default: overwrite)",
    )
    convert.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "convert":
        _convert(args)


def _config_from_args(args: argparse.Namespace) -> Config:
    """Build config, overriding with CLI flags where provided."""
    cfg = Config()
    overrides: dict[str, object] = {}
    if args.analyze_rows is not None:
        overrides["analyze_row_limit"] = args.analyze_rows
    if args.nested_arrays_as_json:
        overrides["nested_array_as_json"] = True
    if args.allow_scalar_array_mix:
        overrides["allow_scalar_array_mix"] = True
    if args.auto_upgrade_to_array:
        overrides["auto_upgrade_to_array"] = True
    if args.strict:
        overrides["strict_type_match"] = True
    if args.primary_key:
        keys = dict(cfg.primary_keys)
        keys.update(parse_primary_keys(";".join(args.primary_key)))
        overrides["primary_keys"] = keys
    if args.cache_memory_limit:
        overrides["cache_memory_limit"] = parse_memory_limit(args.cache_memory_limit)
    if args.namespace:
        overrides["namespace"] = args.namespace
    return dataclasses.replace(cfg, **overrides)


def _convert(args: argparse.Namespace) -> None:
    """Run the conversion pipeline."""
    log = logging.getLogger("json_to_tables")
    cfg = _config_from_args(args)

    struct = None
    if args.schema_in:
        struct = json.loads(args.schema_in.read_text(encoding="utf-8"))

    # 1. Load
    log.info("Loading JSON from %s", args.input)
    documents = load_documents(args.input, records_key=args.records_key)
    log.info("Loaded %d documents", len(documents))

    # 2. Analyze & flatten
    with Parser(cfg, struct=struct) as parser:
        for batch in iter_batches(documents, args.batch_size):
            parser.process(batch, args.table)
        tables = parser.get_tables()

        log.info("Flattened into %d tables", len(tables))
        for name, table in tables.items():
            log.debug("Table %s: %d rows, columns %s", name, len(table.rows), table.header)

        if args.schema_out:
            args.schema_out.write_text(
                json.dumps(parser.get_struct(), indent=2), encoding="utf-8"
            )
            log.info("Wrote schema to %s", args.schema_out)

    # 3. Write
    if args.format == "iceberg":
        write_to_iceberg(cfg, tables, mode=args.mode)
    else:
        write_csv(tables, args.output)
    log.info("Done ✓")


if __name__ == "__main__":
    main()

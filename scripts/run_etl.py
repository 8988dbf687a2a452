"""
Run transform, load or query from the CLI against local files.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from sales_etl.errors import SalesETLError
from sales_etl.services.etl_service import ETLService, get_etl_service
from sales_etl.validators.query_validator import build_query_spec


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8-sig")


def _run_transform(service: ETLService, args: argparse.Namespace) -> dict[str, object]:
    outcome = service.transform(raw_data=_read_text(args.input), has_header=not args.no_header)
    if args.output:
        Path(args.output).write_text(outcome.csv_text, encoding="utf-8")
    return {
        "records": len(outcome.result.records),
        "output": args.output,
        "error_summary": service.summarize(outcome.result),
    }


def _run_load(service: ETLService, args: argparse.Namespace) -> dict[str, object]:
    outcome = service.load(
        raw_data=_read_text(args.input),
        db_type=args.db_type,
        has_header=not args.no_header,
    )
    return {
        "value": outcome.message,
        "backend": outcome.backend,
        "inserted": outcome.batch.inserted,
        "skipped_duplicates": outcome.batch.skipped_duplicates,
        "error_summary": service.summarize(outcome.result),
    }


def _run_query(service: ETLService, args: argparse.Namespace) -> dict[str, object]:
    spec = build_query_spec(
        filters=args.filter,
        aggregations=args.aggregation,
        group_by=args.group_by,
        order_by=args.order_by,
    )
    rows = service.query(spec, db_type=args.db_type)
    return {"value": rows, "rows": len(rows)}


def main() -> int:
    parser = argparse.ArgumentParser(description="Order-sales batch ETL.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    transform_parser = subparsers.add_parser("transform", help="Transform a raw CSV file.")
    transform_parser.add_argument("input", help="Raw CSV file.")
    transform_parser.add_argument("--output", default=None, help="Where to write the processed CSV.")
    transform_parser.add_argument("--no-header", action="store_true", help="Input has no header line.")
    transform_parser.set_defaults(handler=_run_transform)

    load_parser = subparsers.add_parser("load", help="Load a raw or processed CSV file.")
    load_parser.add_argument("input", help="Raw or processed CSV file.")
    load_parser.add_argument("--db-type", default=None, help="embedded (sqlite) or networked (postgres).")
    load_parser.add_argument("--no-header", action="store_true", help="Input has no header line.")
    load_parser.set_defaults(handler=_run_load)

    query_parser = subparsers.add_parser("query", help="Run a grouped aggregate query.")
    query_parser.add_argument("--group-by", required=True, help="Grouping column.")
    query_parser.add_argument(
        "--aggregation",
        action="append",
        default=[],
        help="FUNC(column) [AS label]; repeatable.",
    )
    query_parser.add_argument(
        "--filter",
        action="append",
        default=[],
        help="column <op> 'text' | number; repeatable, ANDed.",
    )
    query_parser.add_argument("--order-by", action="append", default=[], help="Label or -label; repeatable.")
    query_parser.add_argument("--db-type", default=None, help="embedded (sqlite) or networked (postgres).")
    query_parser.set_defaults(handler=_run_query)

    args = parser.parse_args()
    _configure_logging()

    try:
        payload = args.handler(get_etl_service(), args)
    except (SalesETLError, OSError) as exc:
        to_dict = getattr(exc, "to_dict", None)
        error = to_dict() if callable(to_dict) else {"code": "error", "message": str(exc)}
        print(json.dumps({"error": error}, indent=2, default=str))
        return 1

    print(json.dumps(payload, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

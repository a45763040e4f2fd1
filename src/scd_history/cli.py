"""
Command line entry point for reconciling a history table on Spark.
"""

import argparse
import json
import logging
import sys

from pyspark.sql import SparkSession

from .common.config import RunContext, load_config
from .common.exceptions import HistoryProcessingError
from .scd_type2.processor import HistoryProcessor
from .storage.delta import DeltaHistorySink, SparkTableSource

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scd-history",
        description="Maintain SCD Type 2 history tables from source snapshots"
    )
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Reconcile the history table with its source")
    run_parser.add_argument("--config", required=True, help="JSON entity configuration")
    run_parser.add_argument("--source-table",
                            help="Spark table holding the source snapshot (defaults to source_alias)")
    run_parser.add_argument("--batch-id", help="Identifier stamped on new versions")
    run_parser.add_argument("--dry-run", action="store_true",
                            help="Classify and report without writing")
    run_parser.add_argument("--create-table", action="store_true",
                            help="Create the history table from the source schema if it does not exist")

    info_parser = subparsers.add_parser("info", help="Print history table statistics")
    info_parser.add_argument("--config", required=True, help="JSON entity configuration")

    return parser


def run_command(args, spark: SparkSession) -> dict:
    config = load_config(args.config)
    source = SparkTableSource(spark, table_name=args.source_table or config.source_alias)
    sink = DeltaHistorySink(config, spark)
    processor = HistoryProcessor(config, source, sink)

    if args.create_table and not args.dry_run:
        sink.create_table_if_not_exists(source.column_types())

    if args.dry_run:
        context = RunContext.create(batch_id=args.batch_id)
        change_set, plan = processor.plan(context)
        return {
            "batch_id": context.batch_id,
            "dry_run": True,
            **change_set.counts(),
            "rows_to_close": len(plan.closures),
            "rows_to_append": len(plan.versions)
        }
    return processor.run(batch_id=args.batch_id).to_dict()


def info_command(args, spark: SparkSession) -> dict:
    config = load_config(args.config)
    return DeltaHistorySink(config, spark).table_info()


def main(argv=None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(levelname)s:%(name)s:%(message)s")

    spark = SparkSession.builder.appName("scd-history").getOrCreate()
    commands = {"run": run_command, "info": info_command}

    try:
        result = commands[args.command](args, spark)
    except HistoryProcessingError as e:
        logger.error(f"❌ {e.error_code}: {e.message}")
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())

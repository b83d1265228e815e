"""
Command Line Entry Point

Loads the input streams, computes a metrics snapshot and publishes it to the
curated zone.

Usage:
    gym-metrics --source data/raw --output data/curated
    gym-metrics --format parquet --horizon 2025-02-28
"""

import argparse
import sys
from datetime import date
from typing import List, Optional

import structlog

from src.config import get_settings
from src.config.logging import configure_logging
from src.ingestion.loader import FileFormat, InputLoader
from src.metrics.exceptions import MetricsError
from src.metrics.export import SnapshotExporter
from src.metrics.pipeline import MetricsPipeline

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Gym retention, churn and LTV metrics")
    parser.add_argument(
        "--source",
        default=settings.data_lake.raw_path,
        help="Directory holding users, subscriptions and workouts files",
    )
    parser.add_argument(
        "--format",
        choices=[f.value for f in FileFormat],
        default=settings.data_lake.input_format,
        help="Input file format",
    )
    parser.add_argument(
        "--output",
        default=settings.data_lake.curated_path,
        help="Directory receiving published snapshots",
    )
    parser.add_argument(
        "--horizon",
        type=date.fromisoformat,
        default=settings.metrics.snapshot_horizon,
        help="Snapshot horizon (YYYY-MM-DD) for open memberships",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override log level",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        inputs = InputLoader(args.source, FileFormat(args.format)).load_all()
        result = MetricsPipeline(snapshot_horizon=args.horizon).run(inputs)
        run_dir = SnapshotExporter(args.output).write(result.snapshot)
    except (MetricsError, FileNotFoundError) as e:
        logger.error("Metrics run failed", error=str(e))
        return 1

    logger.info(
        "Metrics published",
        run_id=result.run_id,
        path=str(run_dir),
        tables=result.snapshot.summary(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

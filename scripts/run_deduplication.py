#!/usr/bin/env python
"""
Supplier Deduplication Script
=============================
CLI script to find and merge duplicate supplier records.

This script:
1. Reads database configuration
2. Runs the deduplication engine (or a dry run)
3. Records the run in pipeline_runs
4. Optionally writes the duplicate groups to a CSV report
5. Outputs a summary of results

Usage:
    python scripts/run_deduplication.py --dry-run
    python scripts/run_deduplication.py --threshold 85
    python scripts/run_deduplication.py --dry-run --report-csv reports/duplicates.csv
    python scripts/run_deduplication.py --strategy connected-components --max-workers 4
"""

import sys
import argparse
from pathlib import Path
from datetime import datetime

import pandas as pd
from dotenv import load_dotenv

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sourcing.db_utils import DatabaseManager, resolve_config_path
from sourcing.dedup import ClusteringStrategy, run_deduplication
from sourcing.errors import DeduplicationInProgress
from sourcing.identity.matching import DEDUP_THRESHOLD
from sourcing.logging_config import setup_logging, get_logger
from sourcing.models import DeduplicationSummary
from sourcing.pipeline_tracking import track_pipeline_run, update_run_metrics, mark_run_partial
from sourcing.storage import PostgresSupplierStore

REPORT_COLUMNS = [
    'primary_id', 'primary_name', 'duplicate_id', 'duplicate_name', 'match_score'
]


def print_banner(dry_run: bool):
    """Print the application banner."""
    print()
    print("=" * 70)
    print("  Supplier Sourcing - Deduplication")
    print(f"  Mode: {'DRY RUN (no writes)' if dry_run else 'MERGE'}")
    print("=" * 70)
    print()


def print_summary(summary: DeduplicationSummary, elapsed_seconds: float):
    """Print a formatted summary of the deduplication results."""
    duplicates = sum(len(g.duplicates) for g in summary.duplicate_groups)

    print()
    print("=" * 70)
    print("  DEDUPLICATION SUMMARY")
    print("=" * 70)
    print()

    print("  SUPPLIERS:")
    print(f"    Total Records:       {summary.total_records:,}")
    print(f"    Skipped Records:     {summary.skipped_records:,}")
    print()

    print("  DUPLICATES:")
    print(f"    Groups Found:        {len(summary.duplicate_groups):,}")
    print(f"    Duplicate Records:   {duplicates:,}")
    if summary.dry_run:
        print("    Merged:              (dry run)")
    else:
        print(f"    Merged:              {summary.merged_count:,}")
        print(f"    Merge Failures:      {summary.merge_failures:,}")
    print()

    if summary.errors:
        print("  ERRORS:")
        for error in summary.errors[:20]:
            print(f"    - {error}")
        if len(summary.errors) > 20:
            print(f"    ... and {len(summary.errors) - 20} more")
        print()

    print(f"  ELAPSED TIME: {elapsed_seconds:.2f} seconds")
    print()
    print("=" * 70)

    if summary.cancelled:
        print("  STATUS: CANCELLED")
    elif summary.errors:
        print("  STATUS: COMPLETED WITH ERRORS")
    elif not summary.duplicate_groups:
        print("  STATUS: NO DUPLICATES FOUND")
    else:
        print("  STATUS: SUCCESS")

    print("=" * 70)
    print()


def write_report(summary: DeduplicationSummary, report_path: str) -> int:
    """Write one CSV row per (primary, duplicate) pair. Returns the row count."""
    rows = [
        {
            'primary_id': group.primary_id,
            'primary_name': group.primary_name,
            'duplicate_id': member.id,
            'duplicate_name': member.name,
            'match_score': member.match_score,
        }
        for group in summary.duplicate_groups
        for member in group.duplicates
    ]
    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)

    path = Path(report_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    return len(df)


def main():
    """Main entry point for supplier deduplication."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description='Supplier Deduplication',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --dry-run                          # Report groups, write nothing
  %(prog)s --threshold 85                     # Stricter matching
  %(prog)s --dry-run --report-csv dupes.csv   # Export groups for review
  %(prog)s --log-level DEBUG                  # Verbose logging

The deduplication engine will:
  1. Load all suppliers in creation order
  2. Compare each supplier against others in the same country
  3. Group matches under the earliest-created supplier
  4. Merge each duplicate into its primary (unless --dry-run)
        """
    )

    parser.add_argument(
        '--config',
        default=None,
        help='Path to database configuration file (default: $DB_CONFIG_PATH or config/db_config.yml)'
    )

    parser.add_argument(
        '--threshold',
        type=float,
        default=DEDUP_THRESHOLD,
        help=f'Overall match score for duplicates, 0-100 (default: {DEDUP_THRESHOLD})'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Find duplicate groups without merging'
    )

    parser.add_argument(
        '--strategy',
        default=ClusteringStrategy.GREEDY.value,
        choices=[s.value for s in ClusteringStrategy],
        help='Grouping strategy (default: greedy)'
    )

    parser.add_argument(
        '--max-workers',
        type=int,
        default=1,
        help='Threads used to prefetch country blocks (default: 1)'
    )

    parser.add_argument(
        '--report-csv',
        default=None,
        help='Write duplicate groups to this CSV file'
    )

    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity level (default: INFO)'
    )

    args = parser.parse_args()

    # Validate arguments
    if args.threshold < 0 or args.threshold > 100:
        print("Error: --threshold must be between 0 and 100")
        sys.exit(1)

    if args.max_workers < 1:
        print("Error: --max-workers must be positive")
        sys.exit(1)

    setup_logging(log_level=args.log_level)
    logger = get_logger(__name__)
    print_banner(args.dry_run)

    config_path = resolve_config_path(args.config)
    if not Path(config_path).exists():
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    logger.info("Configuration:")
    logger.info(f"  Database config: {config_path}")
    logger.info(f"  Threshold: {args.threshold}")
    logger.info(f"  Strategy: {args.strategy}")
    logger.info(f"  Max workers: {args.max_workers}")

    start_time = datetime.now()
    metadata = {
        'threshold': args.threshold,
        'dry_run': args.dry_run,
        'strategy': args.strategy,
    }

    try:
        db = DatabaseManager(config_path)
        store = PostgresSupplierStore(db)

        with track_pipeline_run(db, 'deduplication', metadata=metadata) as run_id:
            summary = run_deduplication(
                store,
                threshold=args.threshold,
                dry_run=args.dry_run,
                strategy=ClusteringStrategy(args.strategy),
                max_workers=args.max_workers,
            )

            update_run_metrics(
                db, run_id,
                rows_processed=summary.total_records,
                rows_updated=summary.merged_count,
                rows_skipped=summary.skipped_records,
                metadata={
                    'duplicate_groups': len(summary.duplicate_groups),
                    'merge_failures': summary.merge_failures,
                    'cancelled': summary.cancelled,
                }
            )

            if summary.errors:
                mark_run_partial(db, run_id, "; ".join(summary.errors[:10]))

        db.close()

        if args.report_csv:
            rows = write_report(summary, args.report_csv)
            logger.info(f"Wrote {rows} duplicate pairs to {args.report_csv}")

        elapsed = (datetime.now() - start_time).total_seconds()
        print_summary(summary, elapsed)

        sys.exit(1 if summary.errors else 0)

    except DeduplicationInProgress as e:
        logger.error(str(e))
        sys.exit(2)

    except Exception as e:
        logger.error(f"Deduplication failed: {e}", exc_info=True)
        elapsed = (datetime.now() - start_time).total_seconds()
        print()
        print("=" * 70)
        print("  DEDUPLICATION FAILED")
        print(f"  Error: {e}")
        print(f"  Elapsed: {elapsed:.2f} seconds")
        print("=" * 70)
        sys.exit(1)


if __name__ == '__main__':
    main()

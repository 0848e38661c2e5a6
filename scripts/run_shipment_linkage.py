#!/usr/bin/env python
"""
Shipment Linkage Script
=======================
CLI script to link unlinked shipment-manifest shippers to suppliers and
refresh per-product-code specialization rollups.

Usage:
    python scripts/run_shipment_linkage.py
    python scripts/run_shipment_linkage.py --min-score 85
    python scripts/run_shipment_linkage.py --log-level DEBUG
"""

import sys
import argparse
from pathlib import Path
from datetime import datetime

from dotenv import load_dotenv

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sourcing.db_utils import DatabaseManager, resolve_config_path
from sourcing.identity.matching import LINKAGE_MIN_SCORE
from sourcing.linkage import run_shipment_linkage
from sourcing.logging_config import setup_logging, get_logger
from sourcing.models import LinkageSummary
from sourcing.pipeline_tracking import track_pipeline_run, update_run_metrics, mark_run_partial
from sourcing.storage import PostgresSupplierStore


def print_banner():
    """Print the application banner."""
    print()
    print("=" * 70)
    print("  Supplier Sourcing - Shipment Linkage")
    print("  Shipper -> Supplier Resolution")
    print("=" * 70)
    print()


def print_summary(summary: LinkageSummary, elapsed_seconds: float):
    """Print a formatted summary of the linkage results."""
    print()
    print("=" * 70)
    print("  SHIPMENT LINKAGE SUMMARY")
    print("=" * 70)
    print()

    print("  SHIPPERS:")
    print(f"    Linked:              {summary.linked:,}")
    print(f"    Unlinked:            {summary.unlinked:,}")
    print(f"    Skipped:             {summary.skipped:,}")
    print()

    print("  WRITES:")
    print(f"    Rollups Upserted:    {summary.rollups_upserted:,}")
    print(f"    Shipments Linked:    {summary.transactions_linked:,}")
    print(f"    Write Failures:      {summary.write_failures:,}")
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
    elif summary.linked + summary.unlinked == 0:
        print("  STATUS: NO UNLINKED SHIPMENTS TO PROCESS")
    else:
        print("  STATUS: SUCCESS")

    print("=" * 70)
    print()


def main():
    """Main entry point for shipment linkage."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description='Shipment Linkage',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                    # Run with defaults
  %(prog)s --min-score 85     # Stricter shipper matching
  %(prog)s --log-level DEBUG  # Verbose logging
        """
    )

    parser.add_argument(
        '--config',
        default=None,
        help='Path to database configuration file (default: $DB_CONFIG_PATH or config/db_config.yml)'
    )

    parser.add_argument(
        '--min-score',
        type=float,
        default=LINKAGE_MIN_SCORE,
        help=f'Minimum name score for a link, 0-100 (default: {LINKAGE_MIN_SCORE})'
    )

    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity level (default: INFO)'
    )

    args = parser.parse_args()

    if args.min_score < 0 or args.min_score > 100:
        print("Error: --min-score must be between 0 and 100")
        sys.exit(1)

    setup_logging(log_level=args.log_level)
    logger = get_logger(__name__)
    print_banner()

    config_path = resolve_config_path(args.config)
    if not Path(config_path).exists():
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    logger.info("Configuration:")
    logger.info(f"  Database config: {config_path}")
    logger.info(f"  Min score: {args.min_score}")

    start_time = datetime.now()

    try:
        db = DatabaseManager(config_path)
        store = PostgresSupplierStore(db)

        with track_pipeline_run(db, 'shipment_linkage', metadata={'min_score': args.min_score}) as run_id:
            summary = run_shipment_linkage(store, min_score=args.min_score)

            update_run_metrics(
                db, run_id,
                rows_processed=summary.linked + summary.unlinked + summary.skipped + summary.write_failures,
                rows_created=summary.rollups_upserted,
                rows_updated=summary.transactions_linked,
                rows_skipped=summary.skipped,
                metadata={'write_failures': summary.write_failures},
            )

            if summary.errors:
                mark_run_partial(db, run_id, "; ".join(summary.errors[:10]))

        db.close()

        elapsed = (datetime.now() - start_time).total_seconds()
        print_summary(summary, elapsed)

        sys.exit(1 if summary.errors else 0)

    except Exception as e:
        logger.error(f"Shipment linkage failed: {e}", exc_info=True)
        elapsed = (datetime.now() - start_time).total_seconds()
        print()
        print("=" * 70)
        print("  SHIPMENT LINKAGE FAILED")
        print(f"  Error: {e}")
        print(f"  Elapsed: {elapsed:.2f} seconds")
        print("=" * 70)
        sys.exit(1)


if __name__ == '__main__':
    main()

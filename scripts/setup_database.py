"""
Supplier Sourcing - Database Setup Script
Applies the supplier / specialization / shipment / pipeline_runs schema

Usage:
    python scripts/setup_database.py

    Or with custom config:
    python scripts/setup_database.py --config config/db_config.yml
"""

import sys
import argparse
from pathlib import Path

from dotenv import load_dotenv

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sourcing.db_utils import apply_schema
from sourcing.logging_config import setup_logging, get_logger


def main():
    """Apply schema"""
    load_dotenv()

    parser = argparse.ArgumentParser(description='Supplier Sourcing Database Setup')
    parser.add_argument(
        '--config',
        default=None,
        help='Path to database config YAML (default: $DB_CONFIG_PATH or config/db_config.yml)'
    )
    parser.add_argument(
        '--schema',
        default='db/schema_sourcing.sql',
        help='Path to schema SQL file'
    )

    args = parser.parse_args()

    setup_logging(log_level='INFO')
    logger = get_logger(__name__)

    logger.info("=" * 80)
    logger.info("Supplier Sourcing - Database Setup")
    logger.info("=" * 80)

    try:
        logger.info(f"Applying schema from {args.schema}...")
        apply_schema(args.config, args.schema)

        logger.info("=" * 80)
        logger.info("Database setup completed successfully!")
        logger.info("=" * 80)

        return 0

    except Exception as e:
        logger.error(f"Database setup failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

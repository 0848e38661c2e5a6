"""
Supplier Deduplication Engine
=============================
Finds duplicate supplier records created by independent data sources and
merges each group into its earliest-created record.

Process:
1. Count suppliers and load the population in creation order
2. Build duplicate groups (blocking by country)
3. Unless dry-run, merge every group (one transaction per duplicate)

Only one deduplication pass may run at a time (store run lock).
"""

import logging
import threading
from typing import Dict, Optional

from sourcing.dedup.fusion import MergeExecutor
from sourcing.dedup.grouping import ClusteringStrategy, DuplicateGroupBuilder
from sourcing.errors import FusionConflict, RetrievalError
from sourcing.identity.matching import DEDUP_THRESHOLD
from sourcing.models import DeduplicationSummary
from sourcing.storage.base import SupplierStore

logger = logging.getLogger(__name__)

RUN_LOCK_NAME = 'supplier_deduplication'


class DeduplicationEngine:

    def __init__(
        self,
        store: SupplierStore,
        threshold: float = DEDUP_THRESHOLD,
        dry_run: bool = False,
        strategy: ClusteringStrategy = ClusteringStrategy.GREEDY,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None
    ):
        self.store = store
        self.threshold = threshold
        self.dry_run = dry_run
        self.cancel_event = cancel_event
        self.builder = DuplicateGroupBuilder(
            store, threshold=threshold, strategy=strategy, max_workers=max_workers
        )
        self.executor = MergeExecutor(store)

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def run(self) -> DeduplicationSummary:
        """
        Execute one deduplication pass.

        Returns a best-effort summary; only StoreUnavailableError and
        DeduplicationInProgress propagate.
        """
        summary = DeduplicationSummary(dry_run=self.dry_run)

        with self.store.run_lock(RUN_LOCK_NAME):
            logger.info("=" * 60)
            logger.info(f"Supplier Deduplication - Starting{' (DRY RUN)' if self.dry_run else ''}")
            logger.info("=" * 60)

            logger.info("Step 1: Loading supplier population...")
            try:
                summary.total_records = self.store.count_suppliers()
                population = self.store.list_candidates()
            except RetrievalError as e:
                logger.error(f"Could not load suppliers: {e}")
                summary.errors.append(str(e))
                return summary
            logger.info(f"  {summary.total_records} suppliers")

            logger.info("Step 2: Finding duplicate groups...")
            grouping = self.builder.build_groups(population, cancel_event=self.cancel_event)
            summary.duplicate_groups = grouping.groups
            summary.skipped_records = grouping.skipped_records
            summary.cancelled = grouping.cancelled
            summary.errors.extend(grouping.errors)

            if self.dry_run:
                logger.info("Step 3: Dry run - no merges performed")
            elif summary.cancelled:
                logger.info("Step 3: Skipped - run was cancelled")
            else:
                logger.info(f"Step 3: Merging {len(grouping.groups)} groups...")
                self._merge_all(summary)

            logger.info("=" * 60)
            logger.info("Deduplication Complete!")
            logger.info(f"  Duplicate groups: {len(summary.duplicate_groups)}")
            logger.info(f"  Merged duplicates: {summary.merged_count}")
            logger.info(f"  Skipped records: {summary.skipped_records}")
            logger.info(f"  Merge failures: {summary.merge_failures}")
            logger.info("=" * 60)

        return summary

    def _merge_all(self, summary: DeduplicationSummary) -> None:
        absorbed: Dict[str, str] = {}

        for group in summary.duplicate_groups:
            if self._cancelled():
                logger.warning("Cancellation requested - stopping merges")
                summary.cancelled = True
                return

            try:
                outcome = self.executor.merge_group(group, absorbed)
            except FusionConflict as e:
                logger.error(f"  Group {group.primary_id} aborted: {e}")
                summary.merge_failures += 1
                summary.errors.append(str(e))
                continue

            summary.merged_count += outcome.merged
            summary.merge_failures += outcome.failures
            summary.errors.extend(outcome.errors)


def run_deduplication(
    store: SupplierStore,
    threshold: float = DEDUP_THRESHOLD,
    dry_run: bool = False,
    strategy: ClusteringStrategy = ClusteringStrategy.GREEDY,
    max_workers: int = 1,
    cancel_event: Optional[threading.Event] = None
) -> DeduplicationSummary:
    """
    Main entry point for supplier deduplication.

    Args:
        store: Record store adapter
        threshold: Overall match score (0-100) at which records are duplicates
        dry_run: Report groups without writing anything
        strategy: Grouping strategy; GREEDY unless explicitly overridden
        max_workers: Threads used to prefetch country blocks
        cancel_event: Set to stop the run between records

    Returns:
        DeduplicationSummary
    """
    logger.info(f"Initializing Deduplication Engine")
    logger.info(f"  Threshold: {threshold}")
    logger.info(f"  Strategy: {ClusteringStrategy(strategy).value}")
    logger.info(f"  Dry run: {dry_run}")

    engine = DeduplicationEngine(
        store,
        threshold=threshold,
        dry_run=dry_run,
        strategy=strategy,
        max_workers=max_workers,
        cancel_event=cancel_event,
    )
    return engine.run()

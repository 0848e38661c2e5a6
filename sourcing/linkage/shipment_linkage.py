"""
Shipment Linkage: Shipper -> Supplier Resolution
================================================
Links free-text shipper names on shipment manifests to canonical supplier
records and rolls up trade volume per (supplier, 6-digit product code).

Key Features:
- Blocking by shipper country (normalized to ISO alpha-2)
- Best single name match at or above min_score; ties keep the first seen
- Incremental: only shipments without a supplier_id are considered. Shipments
  are stamped by id in the same transaction as their rollups, and only the
  rows actually stamped are rolled up
- A failed write rolls back that shipper only; the run continues
- Unmatched shippers are counted, never turned into placeholder suppliers
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from sourcing.errors import (
    LinkageWriteError,
    RetrievalError,
    StoreUnavailableError,
    ValidationError,
)
from sourcing.identity.matching import LINKAGE_MIN_SCORE
from sourcing.identity.name_normalization import normalize_country_code, product_code_prefix
from sourcing.identity.similarity import calculate_name_score
from sourcing.models import CandidateRecord, LinkageRollup, LinkageSummary, TransactionRecord
from sourcing.storage.base import SupplierStore

logger = logging.getLogger(__name__)


def find_best_supplier(
    shipper_name: str,
    candidates: Iterable[CandidateRecord],
    min_score: float = LINKAGE_MIN_SCORE
) -> Optional[Tuple[CandidateRecord, int]]:
    """
    Highest-scoring candidate at or above min_score.

    Exact ties keep the first candidate seen. Scores are continuous enough
    that ties are rare, so this is left order-dependent.
    """
    best: Optional[Tuple[CandidateRecord, int]] = None
    for candidate in candidates:
        score = calculate_name_score(shipper_name, candidate.name)
        if score >= min_score and (best is None or score > best[1]):
            best = (candidate, score)
    return best


def aggregate_shipments(
    supplier_id: str,
    transactions: Iterable[TransactionRecord]
) -> Dict[str, LinkageRollup]:
    """
    Roll shipments up by 6-digit product code prefix.

    Missing quantities and values count as 0; shipments without a usable
    product code are skipped.
    """
    rollups: Dict[str, LinkageRollup] = {}

    for record in transactions:
        prefix = product_code_prefix(record.product_code)
        if prefix is None:
            logger.debug(f"    Shipment {record.id} has no usable product code")
            continue

        rollup = rollups.setdefault(prefix, LinkageRollup(supplier_id=supplier_id, product_code_prefix=prefix))
        rollup.absorb(LinkageRollup(
            supplier_id=supplier_id,
            product_code_prefix=prefix,
            shipment_count=1,
            total_quantity=float(record.quantity or 0),
            total_value=float(record.declared_value or 0),
            last_transaction_date=record.transaction_date,
        ))

    return rollups


class ShipmentLinkageEngine:
    """
    Process:
    1. Enumerate distinct (shipper_name, shipper_country) among unlinked shipments
    2. Score the shipper name against suppliers in the same country
    3. For a confirmed link, stamp the shipments and upsert their rollups
    """

    def __init__(
        self,
        store: SupplierStore,
        min_score: float = LINKAGE_MIN_SCORE,
        cancel_event: Optional[threading.Event] = None
    ):
        self.store = store
        self.min_score = min_score
        self.cancel_event = cancel_event
        self.summary = LinkageSummary()
        self._blocks: Dict[str, List[CandidateRecord]] = {}

    def run(self) -> LinkageSummary:
        logger.info("=" * 60)
        logger.info("Shipment Linkage - Starting")
        logger.info("=" * 60)

        logger.info("Step 1: Enumerating unlinked shippers...")
        try:
            shippers = self.store.distinct_shippers()
        except RetrievalError as e:
            logger.error(f"Could not enumerate shippers: {e}")
            self.summary.errors.append(str(e))
            return self.summary
        logger.info(f"  Found {len(shippers)} distinct shippers")

        logger.info("Step 2: Linking shippers to suppliers...")
        for shipper_name, shipper_country in shippers:
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.warning("Cancellation requested - stopping linkage")
                self.summary.cancelled = True
                break

            try:
                self._link_shipper(shipper_name, shipper_country)
            except (ValidationError, RetrievalError) as e:
                logger.warning(f"  Skipping shipper {shipper_name!r} ({shipper_country}): {e}")
                self.summary.skipped += 1
                self.summary.errors.append(str(e))

        logger.info("=" * 60)
        logger.info("Shipment Linkage Complete!")
        logger.info(f"  Linked shippers: {self.summary.linked}")
        logger.info(f"  Unlinked shippers: {self.summary.unlinked}")
        logger.info(f"  Skipped shippers: {self.summary.skipped}")
        logger.info(f"  Rollups upserted: {self.summary.rollups_upserted}")
        logger.info(f"  Shipments linked: {self.summary.transactions_linked}")
        logger.info(f"  Write failures: {self.summary.write_failures}")
        logger.info("=" * 60)

        return self.summary

    def _block(self, country_code: str) -> List[CandidateRecord]:
        if country_code not in self._blocks:
            self._blocks[country_code] = self.store.find_candidates_by_country(country_code)
        return self._blocks[country_code]

    def _link_shipper(self, shipper_name: str, shipper_country: str) -> None:
        shipper_key = f"{shipper_name}|{shipper_country}"
        if not shipper_name or not shipper_name.strip():
            raise ValidationError(shipper_key, 'shipper_name')
        country_code = normalize_country_code(shipper_country)
        if country_code is None:
            raise ValidationError(shipper_key, 'shipper_country')

        best = find_best_supplier(shipper_name, self._block(country_code), self.min_score)
        if best is None:
            logger.debug(f"  No supplier for {shipper_name!r} ({country_code})")
            self.summary.unlinked += 1
            return

        supplier, score = best
        transactions = self.store.transactions_for_shipper(shipper_name, shipper_country)

        try:
            with self.store.transaction() as uow:
                # Only rows stamped here are rolled up; rows added after the
                # read wait for a later run
                stamped = set(uow.link_transactions([t.id for t in transactions], supplier.id))
                rollups = aggregate_shipments(
                    supplier.id, [t for t in transactions if t.id in stamped]
                )
                for rollup in rollups.values():
                    uow.upsert_rollup(rollup)
        except StoreUnavailableError:
            raise
        except Exception as e:
            error = LinkageWriteError(shipper_key, supplier.id, e)
            logger.error(f"  {error} - rolled back")
            self.summary.write_failures += 1
            self.summary.errors.append(str(error))
            return

        if not stamped:
            logger.debug(f"  {shipper_name!r} was already linked by another run")
            return

        logger.debug(
            f"  {shipper_name!r} -> {supplier.name!r} (score {score}, "
            f"{len(stamped)} shipments, {len(rollups)} product codes)"
        )
        self.summary.linked += 1
        self.summary.rollups_upserted += len(rollups)
        self.summary.transactions_linked += len(stamped)


def run_shipment_linkage(
    store: SupplierStore,
    min_score: float = LINKAGE_MIN_SCORE,
    cancel_event: Optional[threading.Event] = None
) -> LinkageSummary:
    """
    Main entry point for shipment linkage.

    Args:
        store: Record store adapter
        min_score: Minimum name score (0-100) for a shipper -> supplier link
        cancel_event: Set to stop the run between shippers

    Returns:
        LinkageSummary with linked/unlinked counts
    """
    logger.info(f"Initializing Shipment Linkage Engine (min score {min_score})")
    engine = ShipmentLinkageEngine(store, min_score=min_score, cancel_event=cancel_event)
    return engine.run()

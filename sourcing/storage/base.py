"""
Record store interface used by deduplication and shipment linkage.

Reads happen directly on the store. Writes only happen through a unit of
work obtained from `transaction()`, which commits when the block exits
cleanly and rolls back every write in the block when it raises.
"""

from typing import ContextManager, Dict, Any, List, Optional, Protocol, Tuple

from sourcing.models import (
    CandidateRecord,
    LinkageRollup,
    SupplierRecord,
    TransactionRecord,
)

# Columns a merge may write on the surviving supplier
FUSABLE_FIELDS = (
    'website',
    'email',
    'phone',
    'description',
    'certifications',
    'materials',
    'hts_chapters',
    'product_categories',
    'reliability_score',
    'quality_score',
    'overall_score',
)


class StoreTransaction(Protocol):
    """Writes that must succeed or fail together"""

    def update_supplier(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        ...

    def reparent_children(self, from_supplier_id: str, to_supplier_id: str) -> int:
        """Move specializations and linked shipments; returns rows moved."""
        ...

    def delete_supplier(self, supplier_id: str) -> None:
        ...

    def upsert_rollup(self, rollup: LinkageRollup) -> None:
        """Insert, or add counters to the existing (supplier, prefix) row."""
        ...

    def link_transactions(self, transaction_ids: List[str], supplier_id: str) -> List[str]:
        """Stamp the still-unlinked rows among transaction_ids; returns their ids."""
        ...


class SupplierStore(Protocol):

    def count_suppliers(self) -> int:
        ...

    def list_candidates(self) -> List[CandidateRecord]:
        """All suppliers, earliest created first."""
        ...

    def find_candidates_by_country(self, country_code: str) -> List[CandidateRecord]:
        """Blocking query: suppliers in one country, earliest created first."""
        ...

    def get_supplier(self, supplier_id: str) -> Optional[SupplierRecord]:
        ...

    def distinct_shippers(self) -> List[Tuple[str, str]]:
        """Distinct (shipper_name, shipper_country) over unlinked transactions."""
        ...

    def transactions_for_shipper(self, shipper_name: str, shipper_country: str) -> List[TransactionRecord]:
        ...

    def transaction(self) -> ContextManager[StoreTransaction]:
        ...

    def run_lock(self, lock_name: str) -> ContextManager[None]:
        """Hold an exclusive lock for one batch run; raises DeduplicationInProgress."""
        ...

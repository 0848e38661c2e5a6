"""
Dict-backed SupplierStore for tests and local dry runs.

Transactions snapshot the whole state on entry and restore it if the block
raises, which gives the same all-or-nothing behavior as a database
transaction.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sourcing.errors import DeduplicationInProgress
from sourcing.models import (
    CandidateRecord,
    LinkageRollup,
    SupplierRecord,
    TransactionRecord,
)
from sourcing.storage.base import FUSABLE_FIELDS


class InMemorySupplierStore:

    def __init__(
        self,
        suppliers: Optional[List[SupplierRecord]] = None,
        transactions: Optional[List[TransactionRecord]] = None
    ):
        self._lock = threading.RLock()
        self._run_locks: Dict[str, threading.Lock] = {}
        self._suppliers: Dict[str, SupplierRecord] = {}
        self._sequence: Dict[str, int] = {}
        self._rollups: Dict[Tuple[str, str], LinkageRollup] = {}
        self._transactions: List[TransactionRecord] = []

        for supplier in suppliers or []:
            self.add_supplier(supplier)
        for record in transactions or []:
            self.add_transaction(record)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def add_supplier(self, supplier: SupplierRecord) -> None:
        with self._lock:
            stored = copy.deepcopy(supplier)
            for rollup in stored.specializations:
                self._rollups[(stored.id, rollup.product_code_prefix)] = replace(
                    rollup, supplier_id=stored.id
                )
            stored.specializations = []
            self._sequence.setdefault(stored.id, len(self._sequence))
            self._suppliers[stored.id] = stored

    def add_transaction(self, record: TransactionRecord) -> None:
        with self._lock:
            self._transactions.append(copy.deepcopy(record))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count_suppliers(self) -> int:
        with self._lock:
            return len(self._suppliers)

    def _ordered(self) -> List[SupplierRecord]:
        return sorted(
            self._suppliers.values(),
            key=lambda s: (s.created_at is None, s.created_at or 0, self._sequence[s.id])
        )

    def list_candidates(self) -> List[CandidateRecord]:
        with self._lock:
            return [s.to_candidate() for s in self._ordered()]

    def find_candidates_by_country(self, country_code: str) -> List[CandidateRecord]:
        with self._lock:
            return [
                s.to_candidate() for s in self._ordered()
                if s.country_code == country_code
            ]

    def get_supplier(self, supplier_id: str) -> Optional[SupplierRecord]:
        with self._lock:
            supplier = self._suppliers.get(supplier_id)
            if supplier is None:
                return None
            result = copy.deepcopy(supplier)
            result.specializations = [
                replace(r) for (owner, _), r in sorted(self._rollups.items())
                if owner == supplier_id
            ]
            return result

    def get_rollup(self, supplier_id: str, prefix: str) -> Optional[LinkageRollup]:
        with self._lock:
            rollup = self._rollups.get((supplier_id, prefix))
            return replace(rollup) if rollup else None

    def list_transactions(self) -> List[TransactionRecord]:
        with self._lock:
            return copy.deepcopy(self._transactions)

    def distinct_shippers(self) -> List[Tuple[str, str]]:
        with self._lock:
            seen: Dict[Tuple[str, str], None] = {}
            for record in self._transactions:
                if record.supplier_id is None:
                    seen.setdefault((record.shipper_name, record.shipper_country), None)
            return list(seen)

    def transactions_for_shipper(self, shipper_name: str, shipper_country: str) -> List[TransactionRecord]:
        with self._lock:
            return [
                copy.deepcopy(r) for r in self._transactions
                if r.supplier_id is None
                and r.shipper_name == shipper_name
                and r.shipper_country == shipper_country
            ]

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the full state, for rollback and comparisons."""
        with self._lock:
            return {
                'suppliers': copy.deepcopy(self._suppliers),
                'rollups': copy.deepcopy(self._rollups),
                'transactions': copy.deepcopy(self._transactions),
            }

    def _restore(self, state: Dict[str, Any]) -> None:
        self._suppliers = state['suppliers']
        self._rollups = state['rollups']
        self._transactions = state['transactions']

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator['InMemoryTransaction']:
        with self._lock:
            state = self.snapshot()
            try:
                yield InMemoryTransaction(self)
            except BaseException:
                self._restore(state)
                raise

    @contextmanager
    def run_lock(self, lock_name: str) -> Iterator[None]:
        with self._lock:
            run_lock = self._run_locks.setdefault(lock_name, threading.Lock())
        if not run_lock.acquire(blocking=False):
            raise DeduplicationInProgress(f"A '{lock_name}' run is already in progress")
        try:
            yield
        finally:
            run_lock.release()


class InMemoryTransaction:
    """Unit of work over an InMemorySupplierStore (caller holds the store lock)"""

    def __init__(self, store: InMemorySupplierStore):
        self._store = store

    def update_supplier(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        supplier = self._store._suppliers.get(supplier_id)
        if supplier is None:
            raise KeyError(f"Supplier not found: {supplier_id}")
        for name, value in fields.items():
            if name not in FUSABLE_FIELDS:
                raise ValueError(f"Field is not writable by a merge: {name}")
            setattr(supplier, name, copy.deepcopy(value))

    def reparent_children(self, from_supplier_id: str, to_supplier_id: str) -> int:
        rollups = self._store._rollups
        moved = 0
        for key in [k for k in rollups if k[0] == from_supplier_id]:
            rollup = rollups.pop(key)
            target_key = (to_supplier_id, key[1])
            if target_key in rollups:
                rollups[target_key].absorb(rollup)
            else:
                rollups[target_key] = replace(rollup, supplier_id=to_supplier_id)
            moved += 1

        for record in self._store._transactions:
            if record.supplier_id == from_supplier_id:
                record.supplier_id = to_supplier_id
                moved += 1
        return moved

    def delete_supplier(self, supplier_id: str) -> None:
        if self._store._suppliers.pop(supplier_id, None) is None:
            raise KeyError(f"Supplier not found: {supplier_id}")
        for key in [k for k in self._store._rollups if k[0] == supplier_id]:
            del self._store._rollups[key]

    def upsert_rollup(self, rollup: LinkageRollup) -> None:
        key = (rollup.supplier_id, rollup.product_code_prefix)
        existing = self._store._rollups.get(key)
        if existing is None:
            self._store._rollups[key] = replace(rollup)
        else:
            existing.absorb(rollup)

    def link_transactions(self, transaction_ids: List[str], supplier_id: str) -> List[str]:
        wanted = set(transaction_ids)
        linked = []
        for record in self._store._transactions:
            if record.id in wanted and record.supplier_id is None:
                record.supplier_id = supplier_id
                linked.append(record.id)
        return linked

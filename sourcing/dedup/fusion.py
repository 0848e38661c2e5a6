"""
Supplier fusion and merge execution.

Fusion rules:
- set-valued fields (certifications, materials, hts_chapters,
  product_categories): union, first-seen order kept
- scalar contact fields (website, email, phone, description): primary's
  value unless it is empty
- quality scores (reliability, quality, overall): max of the present values

A merge absorbs each duplicate into the primary inside one store
transaction: update primary, re-parent children, delete duplicate.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional

from sourcing.errors import FusionConflict, MergeWriteError, RetrievalError, StoreUnavailableError
from sourcing.models import DuplicateGroup, SupplierRecord
from sourcing.storage.base import FUSABLE_FIELDS, SupplierStore

logger = logging.getLogger(__name__)

SET_FIELDS = ('certifications', 'materials', 'hts_chapters', 'product_categories')
SCALAR_FIELDS = ('website', 'email', 'phone', 'description')
SCORE_FIELDS = ('reliability_score', 'quality_score', 'overall_score')


def _union(primary: Iterable[str], duplicate: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(list(primary or []) + list(duplicate or [])))


def _prefer_primary(primary: Optional[str], duplicate: Optional[str]) -> Optional[str]:
    if primary is not None and str(primary).strip():
        return primary
    return duplicate


def _max_present(primary: Optional[float], duplicate: Optional[float]) -> Optional[float]:
    present = [v for v in (primary, duplicate) if v is not None]
    return max(present) if present else None


def fuse_supplier_records(primary: SupplierRecord, duplicate: SupplierRecord) -> SupplierRecord:
    """Return a copy of primary with duplicate's data folded in."""
    updates: Dict[str, Any] = {}
    for name in SET_FIELDS:
        updates[name] = _union(getattr(primary, name), getattr(duplicate, name))
    for name in SCALAR_FIELDS:
        updates[name] = _prefer_primary(getattr(primary, name), getattr(duplicate, name))
    for name in SCORE_FIELDS:
        updates[name] = _max_present(getattr(primary, name), getattr(duplicate, name))
    return replace(primary, **updates)


def changed_fields(before: SupplierRecord, after: SupplierRecord) -> Dict[str, Any]:
    """Fusable fields whose value differs, i.e. the partial update to write."""
    return {
        name: getattr(after, name)
        for name in FUSABLE_FIELDS
        if getattr(after, name) != getattr(before, name)
    }


@dataclass
class MergeOutcome:
    merged: int = 0
    failures: int = 0
    errors: List[str] = field(default_factory=list)


class MergeExecutor:
    """Absorbs each group's duplicates into its primary, one transaction per duplicate."""

    def __init__(self, store: SupplierStore):
        self.store = store

    def check_group(self, group: DuplicateGroup, absorbed: Dict[str, str]) -> None:
        """Raise FusionConflict if the group cannot be merged as a whole."""
        if group.primary_id in absorbed:
            raise FusionConflict(
                f"Primary {group.primary_id} was already absorbed into {absorbed[group.primary_id]}"
            )
        for member in group.duplicates:
            if member.id == group.primary_id:
                raise FusionConflict(f"Cannot merge supplier {member.id} into itself")
            owner = absorbed.get(member.id)
            if owner is not None and owner != group.primary_id:
                raise FusionConflict(
                    f"Supplier {member.id} was already absorbed into {owner} in this run"
                )

    def merge_group(self, group: DuplicateGroup, absorbed: Dict[str, str]) -> MergeOutcome:
        """
        Merge one group.

        `absorbed` maps duplicate id -> primary id for this run and is
        updated in place. FusionConflict aborts the group before any write.
        A write failure rolls back that duplicate and stops the group; the
        failure is reported in the outcome.
        """
        self.check_group(group, absorbed)
        outcome = MergeOutcome()

        try:
            primary = self.store.get_supplier(group.primary_id)
        except RetrievalError as e:
            logger.error(f"Could not load primary {group.primary_id}: {e}")
            outcome.failures += 1
            outcome.errors.append(str(e))
            return outcome

        if primary is None:
            raise FusionConflict(f"Primary supplier {group.primary_id} no longer exists")

        for member in group.duplicates:
            if absorbed.get(member.id) == primary.id:
                continue

            try:
                duplicate = self.store.get_supplier(member.id)
            except RetrievalError as e:
                logger.error(f"Could not load duplicate {member.id}: {e}")
                outcome.failures += 1
                outcome.errors.append(str(e))
                continue

            if duplicate is None:
                logger.warning(f"Duplicate {member.id} no longer exists - skipping")
                continue
            if duplicate.country_code != primary.country_code:
                raise FusionConflict(
                    f"Supplier {duplicate.id} ({duplicate.country_code}) and primary "
                    f"{primary.id} ({primary.country_code}) are in different countries"
                )

            fused = fuse_supplier_records(primary, duplicate)
            updates = changed_fields(primary, fused)

            try:
                with self.store.transaction() as uow:
                    if updates:
                        uow.update_supplier(primary.id, updates)
                    moved = uow.reparent_children(duplicate.id, primary.id)
                    uow.delete_supplier(duplicate.id)
            except StoreUnavailableError:
                raise
            except Exception as e:
                error = MergeWriteError(primary.id, duplicate.id, e)
                logger.error(f"{error} - rolled back")
                outcome.failures += 1
                outcome.errors.append(str(error))
                break

            logger.debug(
                f"    Merged {duplicate.id} -> {primary.id} "
                f"({len(updates)} fields, {moved} child rows)"
            )
            primary = fused
            absorbed[duplicate.id] = primary.id
            outcome.merged += 1

        return outcome

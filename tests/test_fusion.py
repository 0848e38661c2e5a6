"""
Supplier Fusion Tests
=====================
Field fusion rules, merge conservation, specialization folding and
write-failure rollback.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date
from unittest.mock import patch

import pytest

from conftest import make_supplier
from sourcing.dedup import MergeExecutor, fuse_supplier_records, run_deduplication
from sourcing.dedup.fusion import changed_fields
from sourcing.errors import FusionConflict
from sourcing.models import DuplicateGroup, DuplicateMember, LinkageRollup
from sourcing.storage import InMemorySupplierStore
from sourcing.storage.memory import InMemoryTransaction


def group_of(primary, *duplicates):
    return DuplicateGroup(
        primary_id=primary.id,
        primary_name=primary.name,
        duplicates=[DuplicateMember(id=d.id, name=d.name, match_score=90) for d in duplicates],
    )


# ============================================================================
# FUSION RULES
# ============================================================================

def test_fuse_unions_sets_in_first_seen_order():
    primary = make_supplier('p', 'Acme', 'US', certifications=['ISO9001', 'BSCI'], materials=['steel'])
    duplicate = make_supplier('d', 'Acme', 'US', certifications=['BSCI', 'SEDEX'], materials=['aluminium'])

    fused = fuse_supplier_records(primary, duplicate)

    assert fused.certifications == ['ISO9001', 'BSCI', 'SEDEX']
    assert fused.materials == ['steel', 'aluminium']


def test_fuse_prefers_primary_scalars_unless_empty():
    primary = make_supplier('p', 'Acme', 'US', website='acme.com', email=None, phone='  ')
    duplicate = make_supplier('d', 'Acme', 'US', website='acme.net', email='sales@acme.com', phone='+1 555 0100')

    fused = fuse_supplier_records(primary, duplicate)

    assert fused.website == 'acme.com'
    assert fused.email == 'sales@acme.com'
    assert fused.phone == '+1 555 0100'


def test_fuse_takes_max_of_present_scores():
    primary = make_supplier('p', 'Acme', 'US', quality_score=4.0, reliability_score=None, overall_score=None)
    duplicate = make_supplier('d', 'Acme', 'US', quality_score=3.5, reliability_score=4.2, overall_score=None)

    fused = fuse_supplier_records(primary, duplicate)

    assert fused.quality_score == 4.0
    assert fused.reliability_score == 4.2
    assert fused.overall_score is None


def test_fuse_keeps_primary_identity():
    primary = make_supplier('p', 'Acme Corp', 'US', minutes=0, city='Austin')
    duplicate = make_supplier('d', 'Acme Corporation', 'US', minutes=9, city='Dallas')

    fused = fuse_supplier_records(primary, duplicate)

    assert (fused.id, fused.name, fused.city, fused.created_at) == (
        primary.id, primary.name, primary.city, primary.created_at
    )
    assert primary.certifications == []


def test_changed_fields_only_reports_differences():
    primary = make_supplier('p', 'Acme', 'US', website='acme.com', quality_score=4.0)
    duplicate = make_supplier('d', 'Acme', 'US', email='a@acme.com', quality_score=3.0)

    updates = changed_fields(primary, fuse_supplier_records(primary, duplicate))

    assert updates == {'email': 'a@acme.com'}


# ============================================================================
# MERGE EXECUTION
# ============================================================================

def test_merge_conserves_information(duplicate_store):
    primary_before = duplicate_store.get_supplier('sup-acme-1')
    duplicate_before = duplicate_store.get_supplier('sup-acme-2')

    run_deduplication(duplicate_store, threshold=80)
    merged = duplicate_store.get_supplier('sup-acme-1')

    for name in ('certifications', 'materials', 'hts_chapters', 'product_categories'):
        assert set(getattr(primary_before, name)) | set(getattr(duplicate_before, name)) == set(getattr(merged, name))
    assert merged.email == 'sales@acme.com'
    assert merged.website == 'https://www.acme.com'
    assert merged.quality_score == 4.5
    assert merged.reliability_score == 3.9


def test_merge_folds_colliding_specializations():
    primary = make_supplier('p', 'Acme Corp', 'US', minutes=0, specializations=[
        LinkageRollup('p', '851762', shipment_count=2, total_quantity=10.0, total_value=100.0,
                      last_transaction_date=date(2024, 1, 1)),
    ])
    duplicate = make_supplier('d', 'Acme Corporation', 'US', minutes=1, specializations=[
        LinkageRollup('d', '851762', shipment_count=1, total_quantity=5.0, total_value=60.0,
                      last_transaction_date=date(2024, 3, 1)),
        LinkageRollup('d', '940510', shipment_count=4, total_quantity=8.0, total_value=40.0,
                      last_transaction_date=date(2023, 6, 1)),
    ])
    store = InMemorySupplierStore(suppliers=[primary, duplicate])

    outcome = MergeExecutor(store).merge_group(group_of(primary, duplicate), {})

    assert outcome.merged == 1
    folded = store.get_rollup('p', '851762')
    assert folded.shipment_count == 3
    assert folded.total_quantity == 15.0
    assert folded.total_value == 160.0
    assert folded.last_transaction_date == date(2024, 3, 1)
    assert folded.avg_unit_value == pytest.approx(160.0 / 15.0)

    moved = store.get_rollup('p', '940510')
    assert moved.shipment_count == 4
    assert store.get_rollup('d', '851762') is None
    assert [r.product_code_prefix for r in store.get_supplier('p').specializations] == ['851762', '940510']


def test_self_merge_is_a_fusion_conflict(duplicate_store):
    record = duplicate_store.get_supplier('sup-acme-1')
    executor = MergeExecutor(duplicate_store)

    with pytest.raises(FusionConflict):
        executor.merge_group(group_of(record, record), {})

    assert duplicate_store.get_supplier('sup-acme-1') is not None


def test_reabsorbing_a_record_is_a_fusion_conflict(duplicate_store):
    first = duplicate_store.get_supplier('sup-acme-1')
    second = duplicate_store.get_supplier('sup-acme-2')
    executor = MergeExecutor(duplicate_store)

    with pytest.raises(FusionConflict):
        executor.merge_group(group_of(second, first), {'sup-acme-1': 'sup-other'})


def test_cross_country_merge_is_a_fusion_conflict(duplicate_store):
    us = duplicate_store.get_supplier('sup-acme-1')
    cn = duplicate_store.get_supplier('sup-acme-cn')

    with pytest.raises(FusionConflict):
        MergeExecutor(duplicate_store).merge_group(group_of(us, cn), {})

    assert duplicate_store.get_supplier('sup-acme-cn') is not None


def test_missing_duplicate_is_skipped(duplicate_store):
    primary = duplicate_store.get_supplier('sup-acme-1')
    ghost = make_supplier('sup-ghost', 'Acme Corp', 'US')

    outcome = MergeExecutor(duplicate_store).merge_group(group_of(primary, ghost), {})

    assert outcome.merged == 0
    assert outcome.failures == 0


def test_write_failure_rolls_back_the_duplicate(duplicate_store):
    primary_before = duplicate_store.get_supplier('sup-acme-1')

    with patch.object(InMemoryTransaction, 'delete_supplier', side_effect=RuntimeError("disk full")):
        summary = run_deduplication(duplicate_store, threshold=80)

    assert summary.merged_count == 0
    assert summary.merge_failures == 1
    assert 'disk full' in summary.errors[0]
    assert duplicate_store.get_supplier('sup-acme-1') == primary_before
    assert duplicate_store.get_supplier('sup-acme-2') is not None


def test_write_failure_does_not_stop_other_groups():
    store = InMemorySupplierStore(suppliers=[
        make_supplier('us-1', 'Acme Corp', 'US', minutes=0),
        make_supplier('us-2', 'Acme Corporation', 'US', minutes=1),
        make_supplier('cn-1', 'Orient Star', 'CN', minutes=2),
        make_supplier('cn-2', 'Orient Star Co Ltd', 'CN', minutes=3),
    ])
    original = InMemoryTransaction.delete_supplier

    def flaky_delete(self, supplier_id):
        if supplier_id == 'us-2':
            raise RuntimeError("lock timeout")
        return original(self, supplier_id)

    with patch.object(InMemoryTransaction, 'delete_supplier', flaky_delete):
        summary = run_deduplication(store, threshold=80)

    assert len(summary.duplicate_groups) == 2
    assert summary.merge_failures == 1
    assert summary.merged_count == 1
    assert store.get_supplier('us-2') is not None
    assert store.get_supplier('cn-2') is None

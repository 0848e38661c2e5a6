"""
Supplier Deduplication Tests
============================
Group discovery, blocking, strategies, dry runs, cancellation and the
run lock, against the in-memory store.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from conftest import make_supplier
from sourcing.dedup import ClusteringStrategy, DuplicateGroupBuilder, run_deduplication
from sourcing.dedup.engine import RUN_LOCK_NAME
from sourcing.errors import DeduplicationInProgress, RetrievalError
from sourcing.models import SupplierRecord
from sourcing.storage import InMemorySupplierStore


# ============================================================================
# GROUP DISCOVERY
# ============================================================================

def test_dry_run_finds_acme_group(duplicate_store):
    summary = run_deduplication(duplicate_store, threshold=80, dry_run=True)

    assert summary.dry_run is True
    assert summary.total_records == 4
    assert len(summary.duplicate_groups) == 1

    group = summary.duplicate_groups[0]
    assert group.primary_id == 'sup-acme-1'
    assert group.primary_name == 'Acme Corp'
    assert [d.id for d in group.duplicates] == ['sup-acme-2']
    assert group.duplicates[0].match_score == 90
    assert summary.merged_count == 0
    assert summary.errors == []


def test_dry_run_leaves_store_untouched(duplicate_store):
    before = duplicate_store.snapshot()

    run_deduplication(duplicate_store, threshold=80, dry_run=True)

    assert duplicate_store.snapshot() == before


def test_blocking_never_groups_across_countries(duplicate_store):
    """'Acme Corp' in CN has a perfect name match in the US but is never grouped."""
    summary = run_deduplication(duplicate_store, threshold=60, dry_run=True)

    countries = {
        s.id: s.country_code
        for s in (duplicate_store.get_supplier(i) for i in ('sup-acme-1', 'sup-acme-2', 'sup-acme-cn', 'sup-bolt'))
    }
    for group in summary.duplicate_groups:
        assert len({countries[i] for i in group.record_ids}) == 1
        assert 'sup-acme-cn' not in group.record_ids


def test_groups_are_disjoint_and_primary_is_earliest(chain_store):
    chain_store.add_supplier(make_supplier('chain-d', 'Acme Corp', 'CN', minutes=3, city='Shenzhen', website='http://xxxx'))

    summary = run_deduplication(chain_store, threshold=80, dry_run=True)

    seen = set()
    for group in summary.duplicate_groups:
        ids = group.record_ids
        assert not seen.intersection(ids)
        seen.update(ids)
    assert summary.duplicate_groups[0].primary_id == 'chain-a'


def test_greedy_leaves_end_of_chain_ungrouped(chain_store):
    """A~B and B~C but A!~C: B joins A, C stays alone."""
    summary = run_deduplication(chain_store, threshold=80, dry_run=True)

    assert len(summary.duplicate_groups) == 1
    group = summary.duplicate_groups[0]
    assert group.primary_id == 'chain-a'
    assert [d.id for d in group.duplicates] == ['chain-b']


def test_connected_components_groups_the_whole_chain(chain_store):
    summary = run_deduplication(
        chain_store, threshold=80, dry_run=True,
        strategy=ClusteringStrategy.CONNECTED_COMPONENTS,
    )

    assert len(summary.duplicate_groups) == 1
    group = summary.duplicate_groups[0]
    assert group.primary_id == 'chain-a'
    assert [d.id for d in group.duplicates] == ['chain-b', 'chain-c']
    assert group.duplicates[0].match_score >= group.duplicates[1].match_score


def test_prefetching_blocks_gives_same_groups(duplicate_store):
    serial = run_deduplication(duplicate_store, threshold=80, dry_run=True, max_workers=1)
    parallel = run_deduplication(duplicate_store, threshold=80, dry_run=True, max_workers=4)

    assert [g.to_dict() for g in parallel.duplicate_groups] == [g.to_dict() for g in serial.duplicate_groups]


def test_records_missing_name_are_skipped(duplicate_store):
    duplicate_store.add_supplier(make_supplier('sup-blank', '', 'US', minutes=20))

    summary = run_deduplication(duplicate_store, threshold=80, dry_run=True)

    assert summary.skipped_records == 1
    assert len(summary.duplicate_groups) == 1
    assert any('sup-blank' in e for e in summary.errors)


def test_block_retrieval_failure_skips_records(duplicate_store):
    with patch.object(duplicate_store, 'find_candidates_by_country', side_effect=RetrievalError("block timeout")):
        summary = run_deduplication(duplicate_store, threshold=80, dry_run=True)

    assert summary.duplicate_groups == []
    assert summary.skipped_records == 4
    assert 'block timeout' in summary.errors[0]


def test_suppliers_without_creation_time_sort_last():
    """Aware timestamps and missing timestamps can share a country block."""
    aware = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    store = InMemorySupplierStore(suppliers=[
        SupplierRecord(id='undated', name='Acme Corp', country_code='US', created_at=None),
        SupplierRecord(id='later', name='Acme Corp', country_code='US', created_at=aware + timedelta(hours=1)),
        SupplierRecord(id='earlier', name='Acme Corp', country_code='US', created_at=aware),
    ])

    block = store.find_candidates_by_country('US')

    assert [c.id for c in block] == ['earlier', 'later', 'undated']


def test_block_fetched_once_per_country(duplicate_store):
    builder = DuplicateGroupBuilder(duplicate_store, threshold=80)
    calls = []
    original = duplicate_store.find_candidates_by_country

    def counting(country_code):
        calls.append(country_code)
        return original(country_code)

    with patch.object(duplicate_store, 'find_candidates_by_country', side_effect=counting):
        builder.build_groups(duplicate_store.list_candidates())

    assert sorted(calls) == ['CN', 'US']


def test_empty_store():
    summary = run_deduplication(InMemorySupplierStore(), dry_run=True)

    assert summary.total_records == 0
    assert summary.duplicate_groups == []


# ============================================================================
# MERGE RUN
# ============================================================================

def test_merge_run_removes_duplicates(duplicate_store):
    summary = run_deduplication(duplicate_store, threshold=80)

    assert summary.merged_count == 1
    assert summary.merge_failures == 0
    assert duplicate_store.count_suppliers() == 3
    assert duplicate_store.get_supplier('sup-acme-2') is None
    assert duplicate_store.get_supplier('sup-acme-1') is not None


def test_second_pass_finds_nothing(duplicate_store):
    run_deduplication(duplicate_store, threshold=80)
    summary = run_deduplication(duplicate_store, threshold=80)

    assert summary.duplicate_groups == []
    assert summary.merged_count == 0


# ============================================================================
# CANCELLATION AND RUN LOCK
# ============================================================================

def test_cancelled_run_makes_no_changes(duplicate_store):
    before = duplicate_store.snapshot()
    cancel = threading.Event()
    cancel.set()

    summary = run_deduplication(duplicate_store, threshold=80, cancel_event=cancel)

    assert summary.cancelled is True
    assert summary.merged_count == 0
    assert duplicate_store.snapshot() == before


def test_concurrent_run_is_rejected(duplicate_store):
    with duplicate_store.run_lock(RUN_LOCK_NAME):
        with pytest.raises(DeduplicationInProgress):
            run_deduplication(duplicate_store, dry_run=True)

    # Lock released: a new pass runs
    summary = run_deduplication(duplicate_store, dry_run=True)
    assert len(summary.duplicate_groups) == 1


def test_summary_to_dict(duplicate_store):
    summary = run_deduplication(duplicate_store, threshold=80, dry_run=True)
    data = summary.to_dict()

    assert data['total_records'] == 4
    assert data['dry_run'] is True
    assert data['duplicate_groups'][0]['duplicates'][0]['id'] == 'sup-acme-2'

"""
Supplier Deduplication
======================
Duplicate group discovery and merge/fusion of supplier records.
"""

from sourcing.dedup.grouping import (
    ClusteringStrategy,
    DuplicateGroupBuilder,
    GroupingResult,
)

from sourcing.dedup.fusion import (
    MergeExecutor,
    MergeOutcome,
    fuse_supplier_records,
)

from sourcing.dedup.engine import (
    DeduplicationEngine,
    run_deduplication,
)

__all__ = [
    'ClusteringStrategy',
    'DuplicateGroupBuilder',
    'GroupingResult',
    'MergeExecutor',
    'MergeOutcome',
    'fuse_supplier_records',
    'DeduplicationEngine',
    'run_deduplication',
]

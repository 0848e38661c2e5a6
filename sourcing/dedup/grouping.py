"""
Duplicate group discovery.

The default strategy is a greedy single pass in creation order: the
earliest unprocessed record anchors a group and absorbs every unprocessed
record it matches directly. This is order-dependent and not a transitive
closure; with A~B, B~C and A!~C, C is left for a later anchor.

CONNECTED_COMPONENTS is the opt-in alternative: union-find over every
pairwise match edge in a block, with the earliest-created member of each
component as its primary. It changes which record survives in ambiguous
chains, so it is never selected implicitly.
"""

import logging
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from sourcing.errors import RetrievalError, ValidationError
from sourcing.identity.matching import DEDUP_THRESHOLD, rank_candidates, validate_candidate
from sourcing.models import CandidateRecord, DuplicateGroup, DuplicateMember
from sourcing.storage.base import SupplierStore

logger = logging.getLogger(__name__)


class ClusteringStrategy(str, Enum):
    GREEDY = 'greedy'
    CONNECTED_COMPONENTS = 'connected-components'


@dataclass
class GroupingResult:
    groups: List[DuplicateGroup] = field(default_factory=list)
    skipped_records: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)


class DuplicateGroupBuilder:
    """
    Finds duplicate groups over a creation-ordered population.

    Country blocks are fetched once per build and cached for its duration;
    nothing is written while groups are built, so the cached block is what
    a per-record query would have returned.
    """

    def __init__(
        self,
        store: SupplierStore,
        threshold: float = DEDUP_THRESHOLD,
        strategy: ClusteringStrategy = ClusteringStrategy.GREEDY,
        max_workers: int = 1
    ):
        self.store = store
        self.threshold = threshold
        self.strategy = ClusteringStrategy(strategy)
        self.max_workers = max(1, max_workers)

    def build_groups(
        self,
        population: List[CandidateRecord],
        cancel_event: Optional[threading.Event] = None
    ) -> GroupingResult:
        result = GroupingResult()
        blocks = _BlockCache(self.store)

        if self.max_workers > 1:
            countries = [r.country_code for r in population if r.country_code]
            blocks.prefetch(countries, self.max_workers)

        if self.strategy is ClusteringStrategy.CONNECTED_COMPONENTS:
            self._connected_components(population, blocks, result, cancel_event)
        else:
            self._greedy(population, blocks, result, cancel_event)

        logger.info(
            f"  {len(result.groups)} duplicate groups "
            f"({self.strategy.value}, threshold {self.threshold})"
        )
        return result

    def _matches_for(self, record, blocks, result):
        """Ranked is_match results for one record, or None if it must be skipped."""
        try:
            validate_candidate(record)
            block = blocks.get(record.country_code)
        except (ValidationError, RetrievalError) as e:
            logger.warning(f"Skipping record {record.id}: {e}")
            result.skipped_records += 1
            result.errors.append(str(e))
            return None

        ranked = rank_candidates(record, block, self.threshold)
        return [m for m in ranked if m.is_match]

    def _greedy(self, population, blocks, result, cancel_event):
        processed: Set[str] = set()

        for record in population:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Cancellation requested - stopping group discovery")
                result.cancelled = True
                return
            if record.id in processed:
                continue

            matches = self._matches_for(record, blocks, result)
            processed.add(record.id)
            if not matches:
                continue

            duplicates = []
            for match in matches:
                if match.candidate.id in processed:
                    continue
                processed.add(match.candidate.id)
                duplicates.append(DuplicateMember(
                    id=match.candidate.id,
                    name=match.candidate.name,
                    match_score=match.scores.overall_score,
                ))

            if duplicates:
                logger.debug(f"  {record.id} anchors {len(duplicates)} duplicates")
                result.groups.append(DuplicateGroup(
                    primary_id=record.id,
                    primary_name=record.name,
                    duplicates=duplicates,
                ))

    def _connected_components(self, population, blocks, result, cancel_event):
        uf = _UnionFind()
        best_score: Dict[str, int] = defaultdict(int)
        order = {record.id: index for index, record in enumerate(population)}
        by_id = {record.id: record for record in population}

        for record in population:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Cancellation requested - stopping group discovery")
                result.cancelled = True
                return

            matches = self._matches_for(record, blocks, result)
            for match in matches or []:
                other = match.candidate
                if other.id not in order:
                    continue
                uf.union(record.id, other.id)
                score = match.scores.overall_score
                best_score[record.id] = max(best_score[record.id], score)
                best_score[other.id] = max(best_score[other.id], score)

        components = sorted(
            (sorted(members, key=order.__getitem__) for members in uf.groups().values()),
            key=lambda members: order[members[0]]
        )
        for members in components:
            if len(members) < 2:
                continue
            primary = by_id[members[0]]
            rest = sorted(members[1:], key=lambda m: best_score[m], reverse=True)
            result.groups.append(DuplicateGroup(
                primary_id=primary.id,
                primary_name=primary.name,
                duplicates=[
                    DuplicateMember(id=m, name=by_id[m].name, match_score=best_score[m])
                    for m in rest
                ],
            ))


class _BlockCache:
    """Country blocks for one build; failed fetches are remembered, not retried."""

    def __init__(self, store: SupplierStore):
        self._store = store
        self._blocks: Dict[str, List[CandidateRecord]] = {}
        self._failures: Dict[str, RetrievalError] = {}

    def prefetch(self, countries: List[str], max_workers: int) -> None:
        pending = list(dict.fromkeys(c for c in countries if c not in self._blocks))
        if not pending:
            return
        logger.info(f"  Prefetching {len(pending)} country blocks ({max_workers} workers)")
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {c: executor.submit(self._store.find_candidates_by_country, c) for c in pending}
            for country, future in futures.items():
                try:
                    self._blocks[country] = future.result()
                except RetrievalError as e:
                    self._failures[country] = e

    def get(self, country_code: str) -> List[CandidateRecord]:
        if country_code in self._failures:
            raise self._failures[country_code]
        if country_code not in self._blocks:
            try:
                self._blocks[country_code] = self._store.find_candidates_by_country(country_code)
            except RetrievalError as e:
                self._failures[country_code] = e
                raise
        return self._blocks[country_code]


class _UnionFind:
    def __init__(self) -> None:
        self._parent: Dict[str, str] = {}

    def find(self, item: str) -> str:
        self._parent.setdefault(item, item)
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, left: str, right: str) -> None:
        root_left = self.find(left)
        root_right = self.find(right)
        if root_left != root_right:
            self._parent[root_right] = root_left

    def groups(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = defaultdict(list)
        for item in list(self._parent):
            grouped[self.find(item)].append(item)
        return grouped

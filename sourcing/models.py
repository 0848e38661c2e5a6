"""
Typed records for supplier entity resolution.

CandidateRecord is the minimal shape used while scoring. SupplierRecord is
the full row fetched for fusion. TransactionRecord is one shipment manifest
line and LinkageRollup is the (supplier, product-code prefix) aggregate
maintained by shipment linkage.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


@dataclass
class CandidateRecord:
    """Minimal supplier shape used during matching"""
    id: str
    name: str
    country_code: str
    city: Optional[str] = None
    website: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class MatchScore:
    """Component scores for one (target, candidate) pair, each in [0, 100]"""
    name_score: int
    location_score: int
    website_score: int
    overall_score: int


@dataclass
class MatchResult:
    candidate: CandidateRecord
    scores: MatchScore
    is_match: bool


@dataclass
class DuplicateMember:
    id: str
    name: str
    match_score: int


@dataclass
class DuplicateGroup:
    """A primary record plus the duplicates it absorbs, in ranked order"""
    primary_id: str
    primary_name: str
    duplicates: List[DuplicateMember] = field(default_factory=list)

    @property
    def record_ids(self) -> List[str]:
        return [self.primary_id] + [d.id for d in self.duplicates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'primary_id': self.primary_id,
            'primary_name': self.primary_name,
            'duplicates': [
                {'id': d.id, 'name': d.name, 'match_score': d.match_score}
                for d in self.duplicates
            ],
        }


@dataclass
class LinkageRollup:
    """Shipment volume for one supplier at one 6-digit product code prefix"""
    supplier_id: str
    product_code_prefix: str
    shipment_count: int = 0
    total_quantity: float = 0.0
    total_value: float = 0.0
    last_transaction_date: Optional[date] = None

    @property
    def avg_unit_value(self) -> Optional[float]:
        if not self.total_quantity:
            return None
        return self.total_value / self.total_quantity

    def absorb(self, other: 'LinkageRollup') -> None:
        """Fold another rollup's counters into this one (increment semantics)."""
        self.shipment_count += other.shipment_count
        self.total_quantity += other.total_quantity
        self.total_value += other.total_value
        self.last_transaction_date = _latest(
            self.last_transaction_date, other.last_transaction_date
        )


@dataclass
class SupplierRecord:
    """Full supplier row, including its HTS specialization rollups"""
    id: str
    name: str
    country_code: str
    city: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    certifications: List[str] = field(default_factory=list)
    materials: List[str] = field(default_factory=list)
    hts_chapters: List[str] = field(default_factory=list)
    product_categories: List[str] = field(default_factory=list)
    reliability_score: Optional[float] = None
    quality_score: Optional[float] = None
    overall_score: Optional[float] = None
    created_at: Optional[datetime] = None
    specializations: List[LinkageRollup] = field(default_factory=list)

    def to_candidate(self) -> CandidateRecord:
        return CandidateRecord(
            id=self.id,
            name=self.name,
            country_code=self.country_code,
            city=self.city,
            website=self.website,
            created_at=self.created_at,
        )


@dataclass
class TransactionRecord:
    """One shipment manifest line"""
    id: str
    shipper_name: str
    shipper_country: str
    product_code: str
    quantity: Optional[float] = None
    declared_value: Optional[float] = None
    transaction_date: Optional[date] = None
    supplier_id: Optional[str] = None


@dataclass
class DeduplicationSummary:
    """Summary statistics from a deduplication run"""
    total_records: int = 0
    duplicate_groups: List[DuplicateGroup] = field(default_factory=list)
    merged_count: int = 0
    dry_run: bool = False
    skipped_records: int = 0
    merge_failures: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_records': self.total_records,
            'duplicate_groups': [g.to_dict() for g in self.duplicate_groups],
            'merged_count': self.merged_count,
            'dry_run': self.dry_run,
            'skipped_records': self.skipped_records,
            'merge_failures': self.merge_failures,
            'cancelled': self.cancelled,
            'errors': self.errors,
        }


@dataclass
class LinkageSummary:
    """Summary statistics from a shipment linkage run"""
    linked: int = 0
    unlinked: int = 0
    skipped: int = 0
    rollups_upserted: int = 0
    transactions_linked: int = 0
    write_failures: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'linked': self.linked,
            'unlinked': self.unlinked,
            'skipped': self.skipped,
            'rollups_upserted': self.rollups_upserted,
            'transactions_linked': self.transactions_linked,
            'write_failures': self.write_failures,
            'cancelled': self.cancelled,
            'errors': self.errors,
        }


def _latest(left: Optional[date], right: Optional[date]) -> Optional[date]:
    if left is None:
        return right
    if right is None:
        return left
    return max(left, right)

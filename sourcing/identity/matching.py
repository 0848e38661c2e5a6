"""
Pairwise supplier match classifier.

Combines name, location and website scores into one weighted overall
score. The website only counts when both records carry one; otherwise the
weight shifts to the name.
"""

import logging
from typing import Iterable, List

from sourcing.errors import ValidationError
from sourcing.identity.similarity import (
    calculate_location_score,
    calculate_name_score,
    calculate_website_score,
)
from sourcing.models import CandidateRecord, MatchResult, MatchScore
from sourcing.storage.base import SupplierStore

logger = logging.getLogger(__name__)

# Default thresholds (0-100)
DEDUP_THRESHOLD = 80      # automatic deduplication
REVIEW_THRESHOLD = 70     # exploratory / manual review
LINKAGE_MIN_SCORE = 75    # shipper name -> supplier linkage

# Candidates down to threshold * REVIEW_BAND stay visible to reviewers
REVIEW_BAND = 0.7

WEIGHTS_WITH_WEBSITE = {'name': 0.5, 'website': 0.3, 'location': 0.2}
WEIGHTS_WITHOUT_WEBSITE = {'name': 0.7, 'location': 0.3}


def validate_candidate(record: CandidateRecord) -> None:
    """Raise ValidationError if the record lacks a name or country."""
    if not record.name or not str(record.name).strip():
        raise ValidationError(record.id, 'name')
    if not record.country_code or not str(record.country_code).strip():
        raise ValidationError(record.id, 'country_code')


def _has_website(record: CandidateRecord) -> bool:
    return bool(record.website and record.website.strip())


def score_pair(target: CandidateRecord, candidate: CandidateRecord) -> MatchScore:
    """Score one (target, candidate) pair."""
    name_score = calculate_name_score(target.name, candidate.name)
    location_score = calculate_location_score(
        target.country_code, target.city,
        candidate.country_code, candidate.city
    )
    website_score = calculate_website_score(target.website, candidate.website)

    if _has_website(target) and _has_website(candidate):
        w = WEIGHTS_WITH_WEBSITE
        overall = (
            name_score * w['name']
            + website_score * w['website']
            + location_score * w['location']
        )
    else:
        w = WEIGHTS_WITHOUT_WEBSITE
        overall = name_score * w['name'] + location_score * w['location']

    return MatchScore(
        name_score=name_score,
        location_score=location_score,
        website_score=website_score,
        overall_score=max(0, min(100, round(overall))),
    )


def classify_pair(
    target: CandidateRecord,
    candidate: CandidateRecord,
    threshold: float = DEDUP_THRESHOLD
) -> MatchResult:
    scores = score_pair(target, candidate)
    return MatchResult(
        candidate=candidate,
        scores=scores,
        is_match=scores.overall_score >= threshold,
    )


def rank_candidates(
    target: CandidateRecord,
    candidates: Iterable[CandidateRecord],
    threshold: float = REVIEW_THRESHOLD
) -> List[MatchResult]:
    """
    Score candidates against a target and keep those inside the review band.

    Returns every candidate scoring at least threshold * REVIEW_BAND, sorted
    by overall score descending. Only those at or above `threshold` have
    is_match set. The sort is stable, so equal scores keep input order.
    A candidate that cannot be scored is logged and skipped.
    """
    review_floor = threshold * REVIEW_BAND
    results: List[MatchResult] = []

    for candidate in candidates:
        if candidate.id == target.id:
            continue
        try:
            validate_candidate(candidate)
            result = classify_pair(target, candidate, threshold)
        except (ValidationError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping candidate {candidate.id} for {target.id}: {e}")
            continue

        if result.scores.overall_score >= review_floor:
            results.append(result)

    results.sort(key=lambda r: r.scores.overall_score, reverse=True)
    return results


def find_potential_matches(
    store: SupplierStore,
    target: CandidateRecord,
    threshold: float = REVIEW_THRESHOLD
) -> List[MatchResult]:
    """
    Review-band candidates for one supplier, drawn from its country block.

    Raises ValidationError if the target has no name or country, and
    RetrievalError if the block cannot be loaded.
    """
    validate_candidate(target)
    block = store.find_candidates_by_country(target.country_code)
    return rank_candidates(target, block, threshold)

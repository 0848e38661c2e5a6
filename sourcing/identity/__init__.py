"""
Supplier Identity Engine
========================
Name normalization, string similarity and pairwise match scoring shared by
deduplication and shipment linkage.

Provides:
- Name, domain, country and product-code normalization
- Levenshtein and Jaro-Winkler similarity
- Weighted pairwise match classification
"""

from sourcing.identity.name_normalization import (
    normalize_company_name,
    extract_domain,
    normalize_country_code,
    product_code_prefix,
)

from sourcing.identity.similarity import (
    levenshtein_distance,
    normalized_levenshtein,
    jaro_winkler_similarity,
    calculate_name_score,
    calculate_location_score,
    calculate_website_score,
)

from sourcing.identity.matching import (
    DEDUP_THRESHOLD,
    REVIEW_THRESHOLD,
    LINKAGE_MIN_SCORE,
    score_pair,
    classify_pair,
    rank_candidates,
    find_potential_matches,
)

__all__ = [
    'normalize_company_name',
    'extract_domain',
    'normalize_country_code',
    'product_code_prefix',
    'levenshtein_distance',
    'normalized_levenshtein',
    'jaro_winkler_similarity',
    'calculate_name_score',
    'calculate_location_score',
    'calculate_website_score',
    'DEDUP_THRESHOLD',
    'REVIEW_THRESHOLD',
    'LINKAGE_MIN_SCORE',
    'score_pair',
    'classify_pair',
    'rank_candidates',
    'find_potential_matches',
]

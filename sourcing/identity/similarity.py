"""
String similarity primitives and per-field supplier scores.

Every score function returns an integer in [0, 100]; the raw metrics
(normalized Levenshtein, Jaro-Winkler) return floats in [0, 1].
"""

from typing import Optional

from sourcing.identity.name_normalization import (
    extract_domain,
    normalize_company_name,
    normalize_loose,
)

# Jaro-Winkler prefix scaling factor and maximum rewarded prefix length
PREFIX_SCALE = 0.1
MAX_PREFIX = 4

CONTAINMENT_BONUS = 10


def levenshtein_distance(left: str, right: str) -> int:
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)

    prev = list(range(len(right) + 1))
    for i, c1 in enumerate(left, start=1):
        curr = [i]
        for j, c2 in enumerate(right, start=1):
            cost = 0 if c1 == c2 else 1
            curr.append(min(curr[j - 1] + 1, prev[j] + 1, prev[j - 1] + cost))
        prev = curr
    return prev[-1]


def normalized_levenshtein(left: str, right: str) -> float:
    """1 - distance / max length; two empty strings are fully similar."""
    max_len = max(len(left), len(right))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(left, right) / max_len


def jaro_winkler_similarity(s1: str, s2: str) -> float:
    """
    Jaro-Winkler similarity in [0, 1].

    Each character of s1, scanned left to right, is matched to the first
    unmatched equal character of s2 inside the window
    floor(max(len) / 2) - 1.
    """
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    window = max(0, max(len(s1), len(s2)) // 2 - 1)
    s1_matched = [False] * len(s1)
    s2_matched = [False] * len(s2)

    matches = 0
    for i, char in enumerate(s1):
        start = max(0, i - window)
        end = min(i + window + 1, len(s2))
        for j in range(start, end):
            if s2_matched[j] or s2[j] != char:
                continue
            s1_matched[i] = True
            s2_matched[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, char in enumerate(s1):
        if not s1_matched[i]:
            continue
        while not s2_matched[k]:
            k += 1
        if char != s2[k]:
            transpositions += 1
        k += 1

    jaro = (
        matches / len(s1)
        + matches / len(s2)
        + (matches - transpositions / 2) / matches
    ) / 3

    prefix = 0
    for a, b in zip(s1[:MAX_PREFIX], s2[:MAX_PREFIX]):
        if a != b:
            break
        prefix += 1

    return jaro + prefix * PREFIX_SCALE * (1 - jaro)


def calculate_name_score(name1: Optional[str], name2: Optional[str]) -> int:
    """
    Name similarity (0-100) after suffix-stripping normalization.

    Containment of one normalized name in the other earns a bonus, which
    catches parent/subsidiary naming ("Acme" vs "Acme Components").
    """
    norm1 = normalize_company_name(name1)
    norm2 = normalize_company_name(name2)

    # Suffix-only names ("Trading Co Ltd") carry no signal once stripped
    if not norm1 or not norm2:
        norm1 = normalize_loose(name1)
        norm2 = normalize_loose(name2)
        if not norm1 or not norm2:
            return 0

    if norm1 == norm2:
        return 100

    score = round(jaro_winkler_similarity(norm1, norm2) * 100)
    if norm1 in norm2 or norm2 in norm1:
        score += CONTAINMENT_BONUS

    return min(100, score)


def calculate_location_score(
    country1: Optional[str],
    city1: Optional[str],
    country2: Optional[str],
    city2: Optional[str]
) -> int:
    if country1 != country2:
        return 0

    city_norm1 = (city1 or '').strip().lower()
    city_norm2 = (city2 or '').strip().lower()
    if not city_norm1 or not city_norm2:
        return 50

    if city_norm1 == city_norm2:
        return 100

    return round(50 + jaro_winkler_similarity(city_norm1, city_norm2) * 50)


def calculate_website_score(website1: Optional[str], website2: Optional[str]) -> int:
    domain1 = extract_domain(website1)
    domain2 = extract_domain(website2)

    if not domain1 or not domain2:
        return 0

    if domain1 == domain2:
        return 100

    return round(jaro_winkler_similarity(domain1, domain2) * 100)

"""
Identity Engine - Similarity Tests
==================================
String metrics and per-field supplier scores.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from sourcing.identity.similarity import (
    calculate_location_score,
    calculate_name_score,
    calculate_website_score,
    jaro_winkler_similarity,
    levenshtein_distance,
    normalized_levenshtein,
)

NAME_PAIRS = [
    ("Shenzhen Elite Electronics Ltd", "Shenzhen Elite Electronics"),
    ("Acme Corp", "Acme Corporation"),
    ("Acme", "Acme Components"),
    ("Bolt Fasteners Inc", "Acme Corp"),
    ("Orient Star Trading", "Orient Star"),
]


# ============================================================================
# RAW METRICS
# ============================================================================

@pytest.mark.parametrize('left, right, expected', [
    ('kitten', 'sitting', 3),
    ('flaw', 'lawn', 2),
    ('', 'abc', 3),
    ('abc', '', 3),
    ('same', 'same', 0),
])
def test_levenshtein_distance(left, right, expected):
    assert levenshtein_distance(left, right) == expected
    assert levenshtein_distance(right, left) == expected


def test_normalized_levenshtein_bounds():
    assert normalized_levenshtein('', '') == 1.0
    assert normalized_levenshtein('abc', 'xyz') == 0.0
    assert normalized_levenshtein('kitten', 'sitting') == pytest.approx(1 - 3 / 7)


@pytest.mark.parametrize('left, right, expected', [
    ('MARTHA', 'MARHTA', 0.961),
    ('DWAYNE', 'DUANE', 0.840),
    ('DIXON', 'DICKSONX', 0.813),
])
def test_jaro_winkler_reference_values(left, right, expected):
    assert jaro_winkler_similarity(left, right) == pytest.approx(expected, abs=1e-3)
    assert jaro_winkler_similarity(right, left) == pytest.approx(expected, abs=1e-3)


def test_jaro_winkler_edges():
    assert jaro_winkler_similarity('abc', 'abc') == 1.0
    assert jaro_winkler_similarity('', 'abc') == 0.0
    assert jaro_winkler_similarity('abc', '') == 0.0
    assert jaro_winkler_similarity('abcd', 'wxyz') == 0.0


# ============================================================================
# FIELD SCORES
# ============================================================================

def test_name_score_identical_after_normalization():
    assert calculate_name_score("Shenzhen Elite Electronics Ltd", "Shenzhen Elite Electronics") == 100
    assert calculate_name_score("Acme Corp", "ACME CORPORATION") == 100


def test_name_score_containment_bonus():
    """'acme' vs 'acme components': JW 0.88 plus the containment bonus."""
    score = calculate_name_score("Acme", "Acme Components")
    assert score == min(100, round(jaro_winkler_similarity('acme', 'acme components') * 100) + 10)
    assert score > round(jaro_winkler_similarity('acme', 'acme components') * 100)


def test_name_score_falls_back_to_loose_for_suffix_only_names():
    assert calculate_name_score("Trading Co Ltd", "Trading Co Ltd") == 100
    assert calculate_name_score("Trading Co Ltd", "Acme Corp") < 100


def test_name_score_missing_names():
    assert calculate_name_score(None, "Acme") == 0
    assert calculate_name_score("", "") == 0


@pytest.mark.parametrize('left, right', NAME_PAIRS)
def test_name_score_symmetric_and_bounded(left, right):
    forward = calculate_name_score(left, right)
    assert forward == calculate_name_score(right, left)
    assert 0 <= forward <= 100
    assert calculate_name_score(left, left) == 100


def test_location_score():
    assert calculate_location_score('US', None, 'CN', None) == 0
    assert calculate_location_score('US', 'Austin', 'CN', 'Austin') == 0
    assert calculate_location_score('CN', None, 'CN', 'Shenzhen') == 50
    assert calculate_location_score('CN', 'Shenzhen', 'CN', ' shenzhen ') == 100

    partial = calculate_location_score('CN', 'Guangzhou', 'CN', 'Guangdong')
    assert 50 < partial < 100


def test_website_score():
    assert calculate_website_score('https://www.acme.com', 'acme.com/about') == 100
    assert calculate_website_score(None, 'acme.com') == 0
    assert calculate_website_score('', '') == 0
    assert 0 < calculate_website_score('acme.com', 'acme.net') < 100

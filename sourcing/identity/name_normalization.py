"""
Identity Engine: Name Normalization Utility
===========================================
Canonicalizes supplier names, website domains, country codes and product
codes so records from independent sources can be compared.

All functions here are total: they never raise on bad input.
"""

import re
import unicodedata
from typing import Optional

# Legal/business suffix tokens, removed wherever they appear as whole words
COMPANY_SUFFIXES = frozenset([
    'co',
    'company',
    'corp',
    'corporation',
    'inc',
    'incorporated',
    'llc',
    'ltd',
    'limited',
    'gmbh',
    'ag',
    'sa',
    'srl',
    'bv',
    'nv',
    'plc',
    'pty',
    'pvt',
    'private',
    'group',
    'holdings',
    'international',
    'intl',
    'trading',
    'manufacturing',
    'mfg',
    'industries',
    'industrial',
    'enterprise',
    'enterprises',
    'import',
    'export',
    'factory',
    'works',
])

# Punctuated suffixes ("l.l.c.", "im/ex") that split into several tokens
MULTI_TOKEN_SUFFIXES = (
    ('l', 'l', 'c'),
    ('im', 'ex'),
)

NON_ALPHANUMERIC = re.compile(r'[^a-z0-9]+')
URL_SCHEME = re.compile(r'^https?://')

# Country names seen on shipment manifests, mapped to ISO alpha-2
COUNTRY_CODES = {
    'china': 'CN',
    'vietnam': 'VN',
    'india': 'IN',
    'mexico': 'MX',
    'taiwan': 'TW',
    'thailand': 'TH',
    'indonesia': 'ID',
    'malaysia': 'MY',
    'bangladesh': 'BD',
    'philippines': 'PH',
    'south korea': 'KR',
    'japan': 'JP',
    'germany': 'DE',
    'italy': 'IT',
    'turkey': 'TR',
    'brazil': 'BR',
    'canada': 'CA',
    'united kingdom': 'GB',
    'france': 'FR',
    'spain': 'ES',
    'poland': 'PL',
    'pakistan': 'PK',
    'cambodia': 'KH',
    'sri lanka': 'LK',
    'egypt': 'EG',
    'morocco': 'MA',
    'south africa': 'ZA',
    'colombia': 'CO',
    'peru': 'PE',
    'chile': 'CL',
    'united states': 'US',
    'usa': 'US',
}

PRODUCT_CODE_PREFIX_DIGITS = 6


def _fold(raw_name: Optional[str]) -> str:
    """Lowercase, strip accents, and turn every non-alphanumeric run into a space."""
    if raw_name is None:
        return ''
    name = str(raw_name).lower()
    name = unicodedata.normalize('NFKD', name)
    name = ''.join(char for char in name if not unicodedata.combining(char))
    return NON_ALPHANUMERIC.sub(' ', name)


def normalize_company_name(raw_name: Optional[str]) -> str:
    """
    Normalize a supplier name for comparison.

    Transformations applied:
    1. Lowercase
    2. NFKD decomposition, diacritics dropped
    3. Non-alphanumeric characters replaced with spaces
    4. Legal/business suffix tokens removed (whole words only)
    5. Whitespace collapsed and trimmed

    The output contains only [a-z0-9] and single spaces and no suffix
    tokens, so normalizing it again returns it unchanged.

    Examples:
        >>> normalize_company_name("Shenzhen Elite Electronics Co., Ltd.")
        'shenzhen elite electronics'

        >>> normalize_company_name("Müller GmbH")
        'muller'

        >>> normalize_company_name(None)
        ''
    """
    tokens = [t for t in _fold(raw_name).split() if t not in COMPANY_SUFFIXES]

    # Dropping one sequence can join its neighbours into another, so repeat
    while True:
        stripped = _strip_multi_token_suffixes(tokens)
        if stripped == tokens:
            break
        tokens = stripped

    return ' '.join(tokens)


def _strip_multi_token_suffixes(tokens):
    kept = []
    i = 0
    while i < len(tokens):
        for sequence in MULTI_TOKEN_SUFFIXES:
            if tuple(tokens[i:i + len(sequence)]) == sequence:
                i += len(sequence)
                break
        else:
            kept.append(tokens[i])
            i += 1
    return kept


def normalize_loose(raw_name: Optional[str]) -> str:
    """Like normalize_company_name but keeps suffix tokens."""
    return ' '.join(_fold(raw_name).split())


def extract_domain(url: Optional[str]) -> Optional[str]:
    """
    Extract the bare domain from a website URL.

    Examples:
        >>> extract_domain("https://www.Acme.com/about?x=1")
        'acme.com'

        >>> extract_domain("")

    """
    if not url or not isinstance(url, str):
        return None

    domain = url.strip().lower()
    domain = URL_SCHEME.sub('', domain)
    if domain.startswith('www.'):
        domain = domain[4:]
    domain = domain.split('/')[0]
    domain = domain.split('?')[0]
    domain = domain.strip()

    return domain or None


def normalize_country_code(country: Optional[str]) -> Optional[str]:
    """
    Normalize a country name or code to ISO alpha-2.

    Examples:
        >>> normalize_country_code("China")
        'CN'

        >>> normalize_country_code(" cn ")
        'CN'

        >>> normalize_country_code("Atlantis")

    """
    if country is None:
        return None

    value = str(country).strip()
    if not value:
        return None

    if len(value) == 2 and value.isalpha():
        return value.upper()

    return COUNTRY_CODES.get(' '.join(value.lower().split()))


def product_code_prefix(
    product_code: Optional[str],
    digits: int = PRODUCT_CODE_PREFIX_DIGITS
) -> Optional[str]:
    """
    Truncate an HTS/HS product code to its first `digits` significant digits.

    Dots and other separators are dropped; short codes are right-padded
    with zeros to the subheading level.

    Examples:
        >>> product_code_prefix("8517.62.0090")
        '851762'

        >>> product_code_prefix("8517")
        '851700'

        >>> product_code_prefix("N/A")

    """
    if product_code is None:
        return None

    cleaned = re.sub(r'[^0-9]', '', str(product_code))
    if not cleaned:
        return None

    return cleaned[:digits].ljust(digits, '0')

"""
Candidate query generation for malformed street addresses.

Addresses are pasted by dispatchers from spreadsheets, texts and CRM notes,
so they arrive with gate codes, notes in brackets, missing commas and
abbreviations the geocoder does not always understand. These helpers turn
one raw address into an ordered list of progressively looser queries.
"""

import re
from typing import List, Optional

from .geocoding_models import Coordinate


# City names that mark the end of the street part when a comma is missing
REGIONAL_CITY_NAMES = (
    "Mesa", "Phoenix", "Scottsdale", "Tempe", "Chandler", "Gilbert", "Glendale",
    "Peoria", "Buckeye", "Surprise", "Queen Creek", "San Tan Valley",
    "Apache Junction", "Goodyear", "Avondale", "Tolleson", "Litchfield Park",
    "Paradise Valley", "Fountain Hills", "Cave Creek", "Carefree", "Anthem",
    "New River", "Sun City", "Sun City West", "El Mirage", "Youngtown", "Laveen",
    "Maricopa", "Casa Grande", "Florence", "Coolidge", "Eloy", "Arizona City",
    "Tucson", "Oro Valley", "Marana", "Vail", "Sahuarita", "Green Valley",
    "Nogales", "Rio Rico", "Sierra Vista", "Flagstaff", "Prescott", "Sedona",
    "Payson", "Cottonwood", "Camp Verde", "Kingman", "Bullhead City",
    "Lake Havasu City", "Show Low", "Page", "Winslow", "Holbrook", "Williams",
    "Globe", "Miami", "Safford", "Thatcher", "Douglas", "Bisbee", "Benson",
    "Willcox", "Yuma", "Somerton", "San Luis", "Fortuna Foothills", "Gila Bend",
    "Wickenburg", "Quartzsite", "Parker", "AZ",
)

STREET_SUFFIXES = (
    "St", "Street", "Rd", "Road", "Dr", "Drive", "Ave", "Avenue", "Blvd",
    "Boulevard", "Ln", "Lane", "Ct", "Court", "Pl", "Place", "Trl", "Trail",
    "Cir", "Circle", "Wy", "Way",
)

COORDINATE_PATTERN = re.compile(r'^(-?\d+\.?\d*)\s*,\s*(-?\d+\.?\d*)$')

_COUNTRY_PATTERN = re.compile(r',?\s*\b(united states|usa)\b', re.IGNORECASE)
_STORY_PATTERN = re.compile(r'\b(\d+)\s*story\b', re.IGNORECASE)
_MULTI_SPACE_PATTERN = re.compile(r'\s{2,}')
_JUNK_DELIMITER_PATTERN = re.compile(r'[#(\[]|\s-\s')
_ZIP_PATTERN = re.compile(r'\b\d{5}(?:-\d{4})?\b')
_DIGIT_PATTERN = re.compile(r'\d')

# Directions are case-sensitive so "n" inside lowercase text is left alone
_DIRECTION_EXPANSIONS = (
    (re.compile(r'\bN\.?\b'), 'North'),
    (re.compile(r'\bS\.?\b'), 'South'),
    (re.compile(r'\bE\.?\b'), 'East'),
    (re.compile(r'\bW\.?\b'), 'West'),
)

_SUFFIX_EXPANSIONS = tuple(
    (re.compile(rf'\b{short}\.?\b', re.IGNORECASE), long)
    for short, long in (
        ("St", "Street"),
        ("Rd", "Road"),
        ("Dr", "Drive"),
        ("Ave", "Avenue"),
        ("Blvd", "Boulevard"),
        ("Ln", "Lane"),
        ("Ct", "Court"),
        ("Pl", "Place"),
        ("Trl", "Trail"),
        ("Cir", "Circle"),
        ("Wy", "Way"),
    )
)


def _build_street_pattern(city_names=REGIONAL_CITY_NAMES) -> "re.Pattern":
    """
    Number + optional direction + name + optional suffix, ending at a comma
    or at a known city name.
    """
    suffixes = "|".join(STREET_SUFFIXES)
    cities = "|".join(re.escape(city) for city in city_names)
    return re.compile(
        rf'^(\d+\s+(?:[NESWnesw]\.?\s+)?[a-zA-Z0-9\s]+?(?:\b(?:{suffixes})\b)?)'
        rf'(?:,|\s+(?:{cities})\b)',
        re.IGNORECASE,
    )


STREET_PATTERN = _build_street_pattern()


def parse_coordinate_text(address: str) -> Optional[Coordinate]:
    """
    Interpret "lat,lon" text as an exact coordinate.

    Returns:
        The coordinate, or None if the text is not a valid lat/lon pair
    """
    match = COORDINATE_PATTERN.match(address.strip())
    if not match:
        return None

    try:
        return Coordinate(lat=float(match.group(1)), lon=float(match.group(2)))
    except ValueError:
        return None


def expand_abbreviations(text: str) -> str:
    """Expand directional and street-suffix abbreviations (N -> North, St -> Street)."""
    for pattern, replacement in _DIRECTION_EXPANSIONS + _SUFFIX_EXPANSIONS:
        text = pattern.sub(replacement, text)
    return text


def clean_address(address: str) -> str:
    """Remove country tokens and "N story" qualifiers, and collapse whitespace."""
    clean = _COUNTRY_PATTERN.sub('', address)
    clean = _STORY_PATTERN.sub('', clean)
    clean = _MULTI_SPACE_PATTERN.sub(' ', clean)
    return clean.strip()


def strip_annotations(address: str) -> str:
    """Drop trailing notes introduced by '#', '(', '[' or ' - '."""
    return _JUNK_DELIMITER_PATTERN.split(address)[0].strip()


def extract_street(address: str) -> Optional[str]:
    """Return the street part of an address, or None if it cannot be found."""
    match = STREET_PATTERN.match(address)
    if match:
        return match.group(1).strip()
    return None


def strip_zip_code(address: str) -> str:
    no_zip = _ZIP_PATTERN.sub('', address).strip()
    return re.sub(r',$', '', no_zip).strip()


def get_address_variations(address: str, region_abbreviation: str = "AZ") -> List[str]:
    """
    Build the ordered, de-duplicated list of queries to try for an address.

    Priority: cleaned text, annotation-stripped text, street only, expanded
    street only (plus region), expansions of everything so far, and finally
    the cleaned text without its ZIP code.

    Example:
        "425 N Vineyard, Mesa, AZ 85201 #gate1234" yields
        "425 N Vineyard, Mesa, AZ 85201 #gate1234",
        "425 N Vineyard, Mesa, AZ 85201",
        "425 N Vineyard",
        "425 North Vineyard",
        "425 North Vineyard, AZ", ...
    """
    variations: List[str] = []

    def add(candidate: str) -> None:
        if candidate and candidate not in variations:
            variations.append(candidate)

    clean = clean_address(address)
    add(clean)

    no_junk = strip_annotations(clean)
    if no_junk != clean and _DIGIT_PATTERN.search(no_junk):
        add(no_junk)

    street_only = extract_street(no_junk)
    if street_only:
        expanded_street = expand_abbreviations(street_only)
        add(street_only)
        add(expanded_street)
        add(f"{expanded_street}, {region_abbreviation}")
    else:
        split_street = no_junk.split(',')[0].strip()
        if split_street != no_junk and _DIGIT_PATTERN.search(split_street):
            add(split_street)
            add(expand_abbreviations(split_street))

    for candidate in list(variations):
        expanded = expand_abbreviations(candidate)
        if expanded != candidate:
            add(expanded)

    no_zip = strip_zip_code(clean)
    if no_zip != clean:
        add(no_zip)

    return variations

"""
Region and facility-type classification.

Both classifiers are pure functions of a location's own fields: each walks a
fixed fallback ladder and stops at the first confident answer, ending in
Unknown / Other. Nothing here draws random numbers.
"""

import re
from typing import Optional

from bidetmap.models import FACILITY_TYPES, REGIONS, Location

UNKNOWN = "Unknown"
OTHER = "Other"

REGION_ALIASES = {
    # North
    "north": "North",
    "north region": "North",
    "n": "North",
    "northern": "North",
    "north singapore": "North",
    "woodlands": "North",
    "sembawang": "North",
    "yishun": "North",
    "mandai": "North",
    "admiralty": "North",
    "marsiling": "North",
    # South
    "south": "South",
    "south region": "South",
    "s": "South",
    "southern": "South",
    "sentosa": "South",
    "harbourfront": "South",
    "bukit merah": "South",
    "telok blangah": "South",
    "marina": "South",
    # East
    "east": "East",
    "east region": "East",
    "e": "East",
    "eastern": "East",
    "changi": "East",
    "tampines": "East",
    "bedok": "East",
    "pasir ris": "East",
    "east coast": "East",
    "paya lebar": "East",
    # West
    "west": "West",
    "west region": "West",
    "w": "West",
    "western": "West",
    "jurong": "West",
    "boon lay": "West",
    "clementi": "West",
    "bukit batok": "West",
    "tuas": "West",
    "choa chu kang": "West",
    # Central
    "central": "Central",
    "central region": "Central",
    "c": "Central",
    "central singapore": "Central",
    "orchard": "Central",
    "downtown": "Central",
    "cbd": "Central",
    "novena": "Central",
    "toa payoh": "Central",
    "bishan": "Central",
    # North-East
    "north-east": "North-East",
    "northeast": "North-East",
    "north east": "North-East",
    "ne": "North-East",
    "serangoon": "North-East",
    "hougang": "North-East",
    "sengkang": "North-East",
    "punggol": "North-East",
    "ang mo kio": "North-East",
    # Schools and campuses
    "institutions": "Institutions",
    "institution": "Institutions",
    "inst": "Institutions",
    "campus": "Institutions",
    "university": "Institutions",
    "polytechnic": "Institutions",
    "school": "Institutions",
}

# Compass words are left out: "North Bridge Road" is in the city centre
NEIGHBOURHOODS = {
    key: value for key, value in REGION_ALIASES.items()
    if len(key) >= 4 and value != "Institutions" and key not in {
        "north", "south", "east", "west", "central", "northern", "southern",
        "eastern", "western", "northeast", "north east", "north-east",
        "north region", "south region", "east region", "west region",
        "central region", "north singapore", "central singapore", "downtown",
    }
}

# Substring search over free text only uses aliases long enough to be unambiguous
_SEARCHABLE_ALIASES = sorted((k for k in REGION_ALIASES if len(k) >= 4), key=len, reverse=True)

# Coordinate validity box for the bounding-box heuristic
_BOX_MIN_LAT, _BOX_MAX_LAT = 1.15, 1.47
_BOX_MIN_LNG, _BOX_MAX_LNG = 103.6, 104.1


def _word_pattern(keyword: str) -> str:
    return r"\b" + re.escape(keyword) + r"\b"


def normalize_region(value: Optional[str]) -> str:
    """
    Map a free-form region string onto a canonical Region.

    Exact canonical names and aliases ("n", "northern", "yishun") are looked up
    first, then the longest alias appearing as a whole word.
    """
    if not value:
        return UNKNOWN
    text = str(value).strip()
    if text in REGIONS:
        return text
    lowered = re.sub(r"\s+", " ", text.lower())
    if lowered in REGION_ALIASES:
        return REGION_ALIASES[lowered]
    for alias in _SEARCHABLE_ALIASES:
        if re.search(_word_pattern(alias), lowered):
            return REGION_ALIASES[alias]
    return UNKNOWN


def region_from_address(address: Optional[str]) -> str:
    """Region from a neighbourhood name mentioned in the address."""
    if not address:
        return UNKNOWN
    lowered = address.lower()
    for name in sorted(NEIGHBOURHOODS, key=len, reverse=True):
        if re.search(_word_pattern(name), lowered):
            return NEIGHBOURHOODS[name]
    return UNKNOWN


def region_from_coordinates(lat: float, lng: float) -> str:
    """
    Rough planning region from a point.

    North-East is tested before the broader East and North boxes.
    """
    if lat is None or lng is None:
        return UNKNOWN
    if not (_BOX_MIN_LAT <= lat <= _BOX_MAX_LAT and _BOX_MIN_LNG <= lng <= _BOX_MAX_LNG):
        return UNKNOWN
    if lat > 1.38 and lng > 103.85:
        return "North-East"
    if lng > 103.94:
        return "East"
    if lat > 1.35:
        return "North"
    if lat < 1.28:
        return "South"
    return "Central"


def classify_region(location: Location) -> str:
    """
    Region ladder: explicit value, then address neighbourhoods, then the
    coordinate boxes (skipped for placeholder coordinates), then Unknown.
    """
    region = normalize_region(location.region)
    if region != UNKNOWN:
        return region

    region = region_from_address(location.address)
    if region != UNKNOWN:
        return region

    if not location.approximate_coordinates:
        return region_from_coordinates(location.lat, location.lng)
    return UNKNOWN


TYPE_ALIASES = {
    "mall": "Mall",
    "shopping": "Mall",
    "shopping center": "Mall",
    "shopping centre": "Mall",
    "hotel": "Hotel",
    "resort": "Hotel",
    "restaurant": "Restaurant",
    "cafe": "Restaurant",
    "public": "Public",
    "office": "Office",
}

# Scanned in this order; the first dictionary with a hit wins. Keywords of three
# characters or fewer match whole words only ("bar" must not hit "barrage").
TYPE_KEYWORDS = [
    ("Mall", [
        "mall", "shopping", "plaza", "jewel", "vivo", "ion orchard", "paragon",
        "bugis junction", "bugis+", "junction 8", "raffles city", "galleria",
        "megamall", "emporium", "shoppes", "outlet", "ngee ann city", "takashimaya",
        "suntec", "marina square", "funan", "wisma", "citylink", "westgate", "jcube",
        "jem", "imm", "northpoint", "waterway point", "causeway point", "eastpoint",
        "compass one", "nex", "i12", "plq", "tampines 1", "century square",
        "great world", "mustafa", "anchorpoint", "square", "centre", "center",
    ]),
    ("Hotel", [
        "hotel", "resort", "inn", "suites", "lodge", "hostel", "serviced apartment",
        "ritz", "carlton", "hyatt", "hilton", "marriott", "shangri-la", "mandarin oriental",
        "sheraton", "westin", "four seasons", "intercontinental", "swissotel", "fairmont",
        "fullerton", "conrad", "novotel", "mercure", "sofitel", "parkroyal", "pan pacific",
        "holiday inn", "crowne", "ascott", "oasia", "andaz", "capri", "fraser",
    ]),
    ("Public", [
        "mrt", "lrt", "station", "terminal", "interchange", "airport", "library",
        "museum", "community", "park", "garden", "stadium", "hub", "club",
        "town hall", "civic", "hospital", "polyclinic", "clinic", "school",
        "university", "college", "institute", "campus", "polytechnic", "hdb",
        "void deck", "public", "toilet", "restroom", "beach", "reservoir", "mosque",
        "church", "temple", "jetty", "checkpoint", "sports",
    ]),
    ("Restaurant", [
        "restaurant", "café", "cafe", "bistro", "eatery", "dining", "food court",
        "coffee", "bakery", "pizzeria", "grill", "bar", "pub", "kitchen",
        "hawker", "kopitiam", "canteen", "fast food", "diner", "food",
    ]),
    ("Office", [
        "office", "tower", "building", "business", "corporate", "financial",
        "headquarters", "hq", "enterprise", "commercial", "technopark", "biopolis",
        "fusionopolis", "one-north", "science park", "business park",
    ]),
]


def _compile(keywords) -> re.Pattern:
    parts = [_word_pattern(k) if len(k) <= 3 else re.escape(k) for k in keywords]
    return re.compile("|".join(parts), re.IGNORECASE)


_TYPE_PATTERNS = [(facility_type, _compile(words)) for facility_type, words in TYPE_KEYWORDS]

# (low, high, type), inclusive; checked in order
POSTAL_RANGES = [
    (238800, 238899, "Mall"),    # Orchard
    (178900, 179100, "Mall"),    # Bugis / Marina
    (18900, 19000, "Mall"),      # Marina Bay
    (637700, 638200, "Mall"),    # Jurong
    (529500, 529999, "Mall"),    # Tampines / Changi
    (247900, 248100, "Hotel"),   # Orchard hotel belt
    (179800, 179900, "Hotel"),   # Beach Road
    (99000, 99999, "Hotel"),     # Sentosa
    (48600, 49200, "Office"),    # Raffles Place / Shenton Way
    (19001, 19200, "Office"),    # Marina Bay financial centre, above the mall block
]

_POSTAL_CODE = re.compile(r"(?<!\d)(\d{6})(?!\d)")

PATTERN_FALLBACKS = [
    ("Mall", re.compile(r"\b(shopping|mall|megamall|outlet|plaza|square|mart|market|shop|store)\b", re.I)),
    ("Hotel", re.compile(r"\b(hotel|resort|inn|hostel|stay|suite|lodge|accommodation|motel)\b", re.I)),
    ("Restaurant", re.compile(r"\b(restaurant|caf[eé]|bistro|eatery|dining|diner|food|court|kitchen)\b", re.I)),
    ("Public", re.compile(r"\b(mrt|station|terminal|library|community|cc|center|public|park|garden|"
                          r"toilets?|restrooms?|bathrooms?|lavatory)\b", re.I)),
    ("Office", re.compile(r"\b(office|tower|building|corporate|business|enterprise|headquarters|hq)\b", re.I)),
]


def postal_code(address: Optional[str]) -> Optional[int]:
    """Six-digit Singapore postal code in an address, as an int."""
    if not address:
        return None
    match = _POSTAL_CODE.search(address)
    return int(match.group(1)) if match else None


def type_from_postal_code(code: Optional[int]) -> str:
    if code is None:
        return OTHER
    for low, high, facility_type in POSTAL_RANGES:
        if low <= code <= high:
            return facility_type
    return OTHER


def classify_type(location: Location) -> str:
    """
    Facility type ladder: canonical value, keyword dictionaries
    (Mall, Hotel, Public, Restaurant, Office), postal-code districts,
    broad word patterns, then Other.
    """
    explicit = (location.facility_type or "").strip()
    if explicit in FACILITY_TYPES and explicit != OTHER:
        return explicit
    alias = TYPE_ALIASES.get(explicit.lower())
    if alias:
        return alias

    text = f"{location.name or ''} {location.address or ''}"
    for facility_type, pattern in _TYPE_PATTERNS:
        if pattern.search(text):
            return facility_type

    facility_type = type_from_postal_code(postal_code(location.address))
    if facility_type != OTHER:
        return facility_type

    for facility_type, pattern in PATTERN_FALLBACKS:
        if pattern.search(text):
            return facility_type
    return OTHER


def classify_location(location: Location) -> Location:
    """Copy of `location` with region and facility type assigned."""
    return location.copy(
        region=classify_region(location),
        facility_type=classify_type(location),
    )

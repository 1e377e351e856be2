import html
import math
import re
from typing import List, Optional, Tuple

from loguru import logger

from bidetmap.config import in_singapore
from bidetmap.models import MapRecord, ParseStats

# Exports disagree on how the placemark name tag is spelled
NAME_TAGS = ("name", "n")

_PLACEMARK = re.compile(r"<Placemark\b[^>]*>(.*?)</Placemark>", re.IGNORECASE | re.DOTALL)
_FOLDER = re.compile(r"<Folder\b[^>]*>(.*?)</Folder>", re.IGNORECASE | re.DOTALL)
_DESCRIPTION = re.compile(r"<description>(.*?)</description>", re.IGNORECASE | re.DOTALL)
_COORDINATES = re.compile(r"<coordinates>(.*?)</coordinates>", re.IGNORECASE | re.DOTALL)
_CDATA = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_BREAK = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")

_ADDRESS_LABEL = re.compile(r"(?:Address|Location):\s*([^\n<]+)", re.IGNORECASE)
_STREET_ADDRESS = re.compile(
    r"\d+[\w\s]+?\b(?:road|rd|street|st|avenue|ave|boulevard|blvd|lane|ln|drive|dr|"
    r"terrace|ter|place|pl|court|ct|walk|way|crescent|cres|link)\b[,\s]+\w+",
    re.IGNORECASE,
)

NEGATIVE_VALUES = {"no", "n", "false", "0", "nil", "none", "-", "na", "n/a"}
FEMALE_WORDS = re.compile(r"\b(?:female|women|woman|ladies|lady)\b", re.IGNORECASE)
MALE_WORDS = re.compile(r"\b(?:male|men|man|gents?|gentlemen)\b", re.IGNORECASE)
WHEELCHAIR_WORDS = re.compile(r"\b(?:handicap(?:ped)?|disabled|wheelchair|accessible)\b", re.IGNORECASE)


def _tag_pattern(tag: str) -> re.Pattern:
    return re.compile(rf"<{tag}>(.*?)</{tag}>", re.IGNORECASE | re.DOTALL)


_NAME_PATTERNS = [_tag_pattern(tag) for tag in NAME_TAGS]


def unwrap_cdata(text: str) -> str:
    """Return CDATA content if present, else the text unchanged."""
    match = _CDATA.search(text or "")
    return match.group(1) if match else (text or "")


def clean_description(raw: str) -> str:
    """Unwrap CDATA, decode entities, turn <br> into newlines and drop other tags."""
    text = html.unescape(unwrap_cdata(raw))
    text = _BREAK.sub("\n", text)
    text = _TAG.sub(" ", text)
    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def extract_name(block: str) -> str:
    """Placemark/folder name, trying each known tag spelling in turn."""
    for pattern in _NAME_PATTERNS:
        match = pattern.search(block)
        if match:
            return html.unescape(unwrap_cdata(match.group(1))).strip()
    return ""


def extract_address(description: str) -> Optional[str]:
    """
    Pull a street address out of a placemark description.

    Tries an explicit `Address:` / `Location:` label first, then a street-suffix
    pattern ("12 Bain St, Singapore").

    Returns:
        Optional[str]: The address, or None if nothing address-like was found.
    """
    if not description:
        return None
    text = clean_description(description) if "<" in description else description

    label = _ADDRESS_LABEL.search(text)
    if label and label.group(1).strip():
        return label.group(1).strip().rstrip(",")

    street = _STREET_ADDRESS.search(text)
    if street:
        return street.group(0).strip()
    return None


def _flag(description: str, label: str, words: re.Pattern) -> bool:
    """A `Label: value` pair wins over bare keyword mentions."""
    labelled = re.search(rf"\b{label}:\s*([^,\n]*)", description, re.IGNORECASE)
    if labelled:
        return labelled.group(1).strip().lower() not in NEGATIVE_VALUES
    return bool(words.search(description))


def parse_coordinates(text: str) -> Optional[Tuple[float, float]]:
    """
    Parse the first `lng,lat[,alt]` tuple of a <coordinates> element.

    Returns:
        Optional[Tuple[float, float]]: (lng, lat) or None when unparsable.
    """
    if not text:
        return None
    first = text.strip().split()
    if not first:
        return None
    parts = [p.strip() for p in first[0].split(",")]
    if len(parts) < 2:
        return None
    try:
        lng, lat = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (math.isfinite(lng) and math.isfinite(lat)):
        return None
    return (lng, lat)


def _folder_spans(kml_text: str) -> List[Tuple[int, int, str]]:
    spans = []
    for folder in _FOLDER.finditer(kml_text):
        body = folder.group(1)
        # The folder's own name precedes its first placemark
        head = _PLACEMARK.split(body, maxsplit=1)[0]
        name = extract_name(head)
        if name:
            spans.append((folder.start(), folder.end(), name))
    return spans


def parse_kml(kml_text: str) -> Tuple[List[MapRecord], ParseStats]:
    """
    Extract every placemark from a KML export.

    Placemarks whose coordinates do not parse, or fall outside Singapore, are
    dropped and counted rather than raised.

    Args:
        kml_text (str): Raw KML document text.

    Returns:
        Tuple[List[MapRecord], ParseStats]: Kept records and parse counters.
    """
    stats = ParseStats()
    if not kml_text:
        return [], stats

    folders = _folder_spans(kml_text)
    records = []
    for match in _PLACEMARK.finditer(kml_text):
        block = match.group(1)
        name = extract_name(block)

        coords_match = _COORDINATES.search(block)
        coordinates = parse_coordinates(coords_match.group(1)) if coords_match else None
        if coordinates is None:
            stats.dropped += 1
            logger.debug(f"❓ Dropping placemark '{name}': no usable coordinates")
            continue

        lng, lat = coordinates
        if not in_singapore(lat, lng):
            stats.dropped += 1
            stats.out_of_bounds += 1
            logger.warning(f"⚠️ Placemark '{name}' at ({lat}, {lng}) is outside Singapore; dropped")
            continue

        desc_match = _DESCRIPTION.search(block)
        description = clean_description(desc_match.group(1)) if desc_match else ""

        folder_region = None
        for start, end, folder_name in folders:
            if start <= match.start() < end:
                folder_region = folder_name

        records.append(MapRecord(
            raw_name=name,
            coordinates=coordinates,
            description=description,
            folder_region=folder_region,
            address=extract_address(description),
            female=_flag(description, "Female", FEMALE_WORDS),
            male=_flag(description, "Male", MALE_WORDS),
            wheelchair=_flag(description, "Handicap", WHEELCHAIR_WORDS),
        ))
        stats.parsed += 1

    logger.info(f"📊 Extracted {stats.parsed} placemarks from KML ({stats.dropped} dropped)")
    return records, stats

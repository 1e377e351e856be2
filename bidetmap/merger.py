"""
Merge linked sheet/map records into canonical Locations.

Curated sheet fields (name, address, region) win over map fields; map
coordinates win over anything the sheet has. Booleans are OR-ed across
sources and comment trails are appended per source.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from bidetmap.classifier import UNKNOWN, normalize_region
from bidetmap.config import DEDUP_PRECISION, FAKE_ADDRESS_MAX_LENGTH, FUZZY_THRESHOLD
from bidetmap.geo import placeholder_coordinates, round_coordinates
from bidetmap.matchers import LinkResult, MapIndex, locate_sheet_record
from bidetmap.models import (
    MATCH_NONE,
    SOURCE_MAPS,
    SOURCE_MERGED,
    SOURCE_SHEETS,
    Amenities,
    Coordinates,
    Location,
    MapRecord,
    MatchResult,
    Provenance,
    SheetRecord,
)
from bidetmap.normalizer import alpha_numeric_only, compact_key
from bidetmap.utils import run_date, short_digest

_LONG_DIGIT_RUN = re.compile(r"\d{5,}")


def is_fake_address(address: Optional[str], name: Optional[str]) -> bool:
    """
    True when `address` is just the venue name repeated back.

    A real Singapore address is long, mentions "singapore", or carries a
    postal code, so a short name echo with none of those is rejected.
    """
    if not address:
        return False
    addr = address.strip().lower()
    return (
        addr == (name or "").strip().lower()
        and len(addr) < FAKE_ADDRESS_MAX_LENGTH
        and "singapore" not in addr
        and not _LONG_DIGIT_RUN.search(addr)
    )


def clean_address(address: Optional[str], name: str) -> str:
    address = (address or "").strip()
    if is_fake_address(address, name):
        logger.debug(f"⚠️ Removing name-as-address for '{name}'")
        return ""
    return address


def make_location_id(name: str, address: str, coordinates: Coordinates) -> str:
    """Stable id from name+address, or name+coordinates when the address is unknown."""
    if address:
        base = f"{alpha_numeric_only(name)}|{alpha_numeric_only(address)}"
    else:
        lng, lat = round_coordinates(coordinates, DEDUP_PRECISION)
        base = f"{alpha_numeric_only(name)}|{lat:.5f},{lng:.5f}"
    return f"loc-{short_digest(base)}"


def _map_gender(map_record: MapRecord) -> Optional[str]:
    if map_record.male and map_record.female:
        return "any"
    if map_record.male:
        return "male"
    if map_record.female:
        return "female"
    return None


def combine_gender(*genders: Optional[str]) -> str:
    """
    OR gender availability: male + female is "any"; no assertion at all is "any".
    """
    seen = set()
    for gender in genders:
        if gender == "any":
            seen.update({"male", "female"})
        elif gender in ("male", "female"):
            seen.add(gender)
    if seen == {"male"}:
        return "male"
    if seen == {"female"}:
        return "female"
    return "any"


def _sheet_amenities(record: SheetRecord) -> Amenities:
    return Amenities(
        wheelchair_access=record.wheelchair_access,
        baby_changing=record.baby_changing,
        free_entry=record.free_entry,
    )


def _map_amenities(record: MapRecord) -> Amenities:
    return Amenities(wheelchair_access=record.wheelchair)


def _pick_region(sheet_region: Optional[str], map_region: Optional[str]) -> str:
    sheet_value = normalize_region(sheet_region)
    if sheet_value != UNKNOWN:
        return sheet_value
    return normalize_region(map_region)


def _unnamed(coordinates: Coordinates) -> str:
    lng, lat = coordinates
    return f"Unnamed Location ({lat:.4f}, {lng:.4f})"


def merge(
    sheet_record: Optional[SheetRecord] = None,
    map_record: Optional[MapRecord] = None,
    match: Optional[MatchResult] = None,
    coordinates: Optional[Coordinates] = None,
    today: Optional[str] = None,
) -> Location:
    """
    Combine a linked pair, or a single unmatched record, into one Location.

    Args:
        sheet_record (Optional[SheetRecord]): Curated row, if any.
        map_record (Optional[MapRecord]): Placemark, if any.
        match (Optional[MatchResult]): How the pair was linked.
        coordinates (Optional[Coordinates]): Point borrowed for a sheet-only record.
        today (Optional[str]): Run date stamp.

    Returns:
        Location: The merged location.
    """
    if sheet_record is None and map_record is None:
        raise ValueError("merge() needs at least one of sheet_record or map_record")

    approximate = False
    if map_record is not None:
        point = map_record.coordinates
    elif sheet_record.coordinates is not None:
        point = sheet_record.coordinates
    elif coordinates is not None:
        point = coordinates
    else:
        point = placeholder_coordinates(f"{sheet_record.raw_name}|{sheet_record.raw_address}")
        approximate = True

    name = ""
    if sheet_record is not None:
        name = sheet_record.raw_name.strip()
    if not name and map_record is not None:
        name = map_record.raw_name.strip()
    if not name:
        name = _unnamed(point)

    address = ""
    if sheet_record is not None:
        address = clean_address(sheet_record.raw_address, name)
    if not address and map_record is not None:
        address = clean_address(map_record.address, name)

    provenance = Provenance()
    amenities = Amenities()
    genders = []
    has_bidet = False
    if sheet_record is not None:
        provenance.add_sheet(sheet_record.remarks)
        amenities = amenities.merged_with(_sheet_amenities(sheet_record))
        genders.append(sheet_record.gender_tag)
        has_bidet = has_bidet or sheet_record.has_bidet
    if map_record is not None:
        provenance.add_map(map_record.description)
        amenities = amenities.merged_with(_map_amenities(map_record))
        genders.append(_map_gender(map_record))
        # Every placemark on the map marks a bidet
        has_bidet = True

    if sheet_record is not None and map_record is not None:
        source = SOURCE_MERGED
    elif sheet_record is not None:
        source = SOURCE_SHEETS
    else:
        source = SOURCE_MAPS

    region = _pick_region(
        sheet_record.region if sheet_record else None,
        map_record.folder_region if map_record else None,
    )

    return Location(
        id=make_location_id(name, address, point),
        name=name,
        coordinates=point,
        address=address,
        region=region,
        facility_type=(sheet_record.type_hint if sheet_record and sheet_record.type_hint else "Other"),
        has_bidet=has_bidet,
        gender=combine_gender(*genders),
        amenities=amenities,
        provenance=provenance,
        match_type=match.match_type if match else MATCH_NONE,
        match_confidence=match.confidence if match else 0.0,
        source=source,
        source_tab=sheet_record.source_tab if sheet_record else None,
        last_updated=today or run_date(),
        approximate_coordinates=approximate,
    )


def dedup_key(location: Location) -> Tuple[str, float, float]:
    name_key = compact_key(location.name) or alpha_numeric_only(location.name)
    lng, lat = round_coordinates(location.coordinates, DEDUP_PRECISION)
    return (name_key, lng, lat)


def fold_duplicate(kept: Location, duplicate: Location) -> None:
    """Fold a duplicate's evidence into the location already kept."""
    kept.provenance.extend(duplicate.provenance)
    kept.amenities = kept.amenities.merged_with(duplicate.amenities)
    kept.has_bidet = kept.has_bidet or duplicate.has_bidet
    kept.gender = combine_gender(kept.gender, duplicate.gender)
    if not kept.address and duplicate.address:
        # Re-check against the kept name; the duplicate's was only checked against its own
        kept.address = clean_address(duplicate.address, kept.name)
    if normalize_region(kept.region) == UNKNOWN and normalize_region(duplicate.region) != UNKNOWN:
        kept.region = duplicate.region
    if duplicate.match_confidence > kept.match_confidence:
        kept.match_type = duplicate.match_type
        kept.match_confidence = duplicate.match_confidence


def dedupe_locations(locations: Sequence[Location]) -> Tuple[List[Location], int]:
    """
    Collapse locations sharing a name key and 5-decimal coordinates, or an id.

    Returns:
        Tuple[List[Location], int]: Unique locations in first-seen order and
        how many duplicates were folded away.
    """
    kept: List[Location] = []
    by_key: Dict[Tuple[str, float, float], Location] = {}
    by_id: Dict[str, Location] = {}
    removed = 0
    for location in locations:
        key = dedup_key(location)
        existing = by_key.get(key) or by_id.get(location.id)
        if existing is not None:
            fold_duplicate(existing, location)
            removed += 1
            continue
        by_key[key] = location
        by_id[location.id] = location
        kept.append(location)
    return kept, removed


def collapse_duplicate_placemarks(map_records: Sequence[MapRecord]) -> List[MapRecord]:
    """
    Fold placemarks that are the same point under differently-cased names.

    The first placemark of each (name key, 5-decimal coordinates) group is kept
    and absorbs the others' flags, address and description.
    """
    kept: List[MapRecord] = []
    by_key: Dict[Tuple[str, float, float], MapRecord] = {}
    for record in map_records:
        name_key = compact_key(record.raw_name) or alpha_numeric_only(record.raw_name)
        lng, lat = round_coordinates(record.coordinates, DEDUP_PRECISION)
        key = (name_key, lng, lat)
        first = by_key.get(key)
        if first is None:
            by_key[key] = record
            kept.append(record)
            continue
        first.male = first.male or record.male
        first.female = first.female or record.female
        first.wheelchair = first.wheelchair or record.wheelchair
        first.address = first.address or record.address
        first.folder_region = first.folder_region or record.folder_region
        if record.description and record.description not in first.description:
            first.description = "\n".join(d for d in (first.description, record.description) if d)
    if len(kept) < len(map_records):
        logger.info(f"🧹 Collapsed {len(map_records) - len(kept)} duplicate placemarks")
    return kept


def merge_all(
    link_result: LinkResult,
    map_records: Sequence[MapRecord] = (),
    threshold: float = FUZZY_THRESHOLD,
    today: Optional[str] = None,
) -> Tuple[List[Location], int]:
    """
    Merge every linked pair and unmatched record, then deduplicate.

    Unmatched sheet records borrow coordinates from any name-matching
    placemark in `map_records`; failing that they get a placeholder point.

    Returns:
        Tuple[List[Location], int]: Locations and the number of duplicates removed.
    """
    today = today or run_date()
    locations: List[Location] = []

    for map_record, match in link_result.pairs:
        locations.append(merge(match.sheet_record, map_record, match, today=today))

    map_index = MapIndex(map_records)
    placeholders = 0
    for sheet_record in link_result.unmatched_sheets:
        point = locate_sheet_record(sheet_record, map_index, threshold)
        location = merge(sheet_record, None, coordinates=point, today=today)
        placeholders += location.approximate_coordinates
        locations.append(location)

    for map_record in link_result.unmatched_maps:
        locations.append(merge(None, map_record, today=today))

    unique, removed = dedupe_locations(locations)
    logger.info(
        f"📊 Merged {len(unique)} locations ({removed} duplicates removed, "
        f"{placeholders} with placeholder coordinates)"
    )
    return unique, removed

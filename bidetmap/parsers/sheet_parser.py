import csv
import io
import math
from typing import List, Optional, Tuple

import pandas as pd
from loguru import logger

from bidetmap.config import SheetTab, in_singapore
from bidetmap.models import ParseStats, SheetRecord

TRUE_VALUES = {"true", "yes", "1", "y"}

# Optional columns some tabs carry; first matching header wins
WHEELCHAIR_HEADERS = ("Wheelchair", "Wheelchair Access", "Handicap")
BABY_CHANGING_HEADERS = ("Baby Changing", "Baby Change", "Nursing Room")
FREE_ENTRY_HEADERS = ("Free Entry", "Free")
BIDET_HEADERS = ("Bidet", "Has Bidet")
LAT_HEADERS = ("Latitude", "Lat")
LNG_HEADERS = ("Longitude", "Lng", "Long", "Lon")


def parse_bool(value) -> bool:
    """Spreadsheet boolean: true/yes/1/y (any case) is True, anything else False."""
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return str(value).strip().lower() in TRUE_VALUES


def find_header_row(text: str, tab: SheetTab) -> Optional[int]:
    """
    Locate the true header line of a tab export, skipping title/preamble rows.

    The header line is the first one whose cells include both the tab's name
    header and address header (case-insensitive).

    Returns:
        Optional[int]: Zero-based line index, or None when no line qualifies.
    """
    wanted = {tab.name_header.strip().lower(), tab.address_header.strip().lower()}
    for idx, line in enumerate(text.splitlines()):
        if not line.strip():
            continue
        try:
            cells = next(csv.reader([line]))
        except (csv.Error, StopIteration):
            continue
        tokens = {c.strip().lower() for c in cells}
        if wanted <= tokens:
            return idx
    return None


def _cell(row: pd.Series, header: Optional[str]) -> str:
    if not header or header not in row.index:
        return ""
    value = row[header]
    if value is None:
        return ""
    return str(value).strip()


def _resolve(lookup: dict, headers) -> Optional[str]:
    """First of `headers` present in the frame (case-insensitive), as spelled there."""
    for header in headers:
        if header.lower() in lookup:
            return lookup[header.lower()]
    return None


def _optional_cell(row: pd.Series, column: Optional[str]) -> Optional[str]:
    return _cell(row, column) if column else None


def _coordinates(row: pd.Series, lat_col: Optional[str], lng_col: Optional[str]) -> Optional[Tuple[float, float]]:
    lat_text = _optional_cell(row, lat_col)
    lng_text = _optional_cell(row, lng_col)
    if not lat_text or not lng_text:
        return None
    try:
        lat, lng = float(lat_text), float(lng_text)
    except ValueError:
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)) or not in_singapore(lat, lng):
        return None
    return (lng, lat)


def parse_sheet_csv(text: str, tab: SheetTab) -> Tuple[List[SheetRecord], ParseStats]:
    """
    Parse one spreadsheet tab export into SheetRecords.

    Args:
        text (str): Raw CSV text for the tab.
        tab (SheetTab): Header descriptor for this tab.

    Returns:
        Tuple[List[SheetRecord], ParseStats]: Kept records and parse counters.
    """
    stats = ParseStats()
    if not text or not text.strip():
        return [], stats

    header_idx = find_header_row(text, tab)
    if header_idx is None:
        logger.warning(
            f"No header row with '{tab.name_header}' and '{tab.address_header}' in tab '{tab.name}'"
        )
        return [], stats

    try:
        df = pd.read_csv(
            io.StringIO("\n".join(text.splitlines()[header_idx:])),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines="skip",
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
        logger.warning(f"Could not parse CSV for tab '{tab.name}': {e}")
        return [], stats

    df.columns = [str(c).strip() for c in df.columns]
    # Header matching is case-insensitive, so map the tab's headers onto the real ones
    lookup = {c.lower(): c for c in df.columns}
    name_col = lookup.get(tab.name_header.lower())
    address_col = lookup.get(tab.address_header.lower())
    remarks_col = lookup.get(tab.remarks_header.lower()) if tab.remarks_header else None
    region_col = lookup.get(tab.region_header.lower()) if tab.region_header else None
    lat_col, lng_col = _resolve(lookup, LAT_HEADERS), _resolve(lookup, LNG_HEADERS)
    wheelchair_col = _resolve(lookup, WHEELCHAIR_HEADERS)
    baby_col = _resolve(lookup, BABY_CHANGING_HEADERS)
    free_col = _resolve(lookup, FREE_ENTRY_HEADERS)
    bidet_col = _resolve(lookup, BIDET_HEADERS)

    records = []
    for _, row in df.iterrows():
        name = _cell(row, name_col)
        address = _cell(row, address_col)
        coordinates = _coordinates(row, lat_col, lng_col)

        if not name or not (address or coordinates):
            stats.dropped += 1
            logger.debug(f"Dropping row in '{tab.name}': name={name!r} address={address!r}")
            continue

        bidet = _optional_cell(row, bidet_col)
        records.append(SheetRecord(
            raw_name=name,
            raw_address=address,
            remarks=_cell(row, remarks_col),
            gender_tag=tab.gender,
            source_tab=tab.name,
            region=_cell(row, region_col),
            type_hint=tab.type_hint,
            has_bidet=parse_bool(bidet) if bidet else True,
            wheelchair_access=parse_bool(_optional_cell(row, wheelchair_col)),
            baby_changing=parse_bool(_optional_cell(row, baby_col)),
            free_entry=parse_bool(_optional_cell(row, free_col)),
            coordinates=coordinates,
        ))
        stats.parsed += 1

    logger.info(f"📊 Parsed {stats.parsed} records from sheet '{tab.name}' ({stats.dropped} dropped)")
    return records, stats

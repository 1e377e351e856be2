"""
Typed data models for the toilet location pipeline.
All data structures used throughout the codebase should be defined here.
"""
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

REGIONS = ("North", "South", "East", "West", "Central", "North-East", "Institutions", "Unknown")
FACILITY_TYPES = ("Mall", "Hotel", "Public", "Restaurant", "Office", "Other")

MATCH_COORDINATES = "coordinates"
MATCH_EXACT_NAME = "exact-name"
MATCH_NORMALIZED_NAME = "normalized-name"
MATCH_FUZZY = "fuzzy-match"
MATCH_NONE = "none"

SOURCE_MERGED = "merged"
SOURCE_SHEETS = "google-sheets"
SOURCE_MAPS = "google-maps"

Coordinates = Tuple[float, float]  # (lng, lat), GeoJSON order


@dataclass
class SheetRecord:
    """One row from one tab of the spreadsheet export."""
    raw_name: str
    raw_address: str = ""
    remarks: str = ""
    gender_tag: str = "any"
    source_tab: str = ""
    region: str = ""
    type_hint: Optional[str] = None
    has_bidet: bool = True
    wheelchair_access: bool = False
    baby_changing: bool = False
    free_entry: bool = False
    coordinates: Optional[Coordinates] = None  # Rarely present in the sheet itself


@dataclass
class MapRecord:
    """One placemark from the KML export."""
    raw_name: str
    coordinates: Coordinates
    description: str = ""
    folder_region: Optional[str] = None
    address: Optional[str] = None  # Extracted from the description, if any
    male: bool = False
    female: bool = False
    wheelchair: bool = False


@dataclass
class Amenities:
    wheelchair_access: bool = False
    baby_changing: bool = False
    free_entry: bool = False
    hand_dryer: Optional[bool] = None
    soap_dispenser: Optional[bool] = None
    paper_towels: Optional[bool] = None
    toilet_paper: Optional[bool] = None

    def merged_with(self, other: "Amenities") -> "Amenities":
        """Boolean-OR every flag; unknown (None) only if both sides are unknown."""
        def _or(a: Optional[bool], b: Optional[bool]) -> Optional[bool]:
            if a is None and b is None:
                return None
            return bool(a) or bool(b)

        return Amenities(
            wheelchair_access=self.wheelchair_access or other.wheelchair_access,
            baby_changing=self.baby_changing or other.baby_changing,
            free_entry=self.free_entry or other.free_entry,
            hand_dryer=_or(self.hand_dryer, other.hand_dryer),
            soap_dispenser=_or(self.soap_dispenser, other.soap_dispenser),
            paper_towels=_or(self.paper_towels, other.paper_towels),
            toilet_paper=_or(self.toilet_paper, other.toilet_paper),
        )


@dataclass
class Provenance:
    """Free-text comment trails kept per source."""
    sheets: List[str] = field(default_factory=list)
    maps: List[str] = field(default_factory=list)

    def add_sheet(self, text: Optional[str]) -> None:
        _append_unique(self.sheets, text)

    def add_map(self, text: Optional[str]) -> None:
        _append_unique(self.maps, text)

    def extend(self, other: "Provenance") -> None:
        for text in other.sheets:
            self.add_sheet(text)
        for text in other.maps:
            self.add_map(text)


def _append_unique(trail: List[str], text: Optional[str]) -> None:
    if text is None:
        return
    text = text.strip()
    if text and text not in trail:
        trail.append(text)


@dataclass
class Location:
    """Canonical merged location, one per real-world place."""
    id: str
    name: str
    coordinates: Coordinates
    address: str = ""
    region: str = "Unknown"
    facility_type: str = "Other"
    has_bidet: bool = True
    gender: str = "any"
    amenities: Amenities = field(default_factory=Amenities)
    provenance: Provenance = field(default_factory=Provenance)
    match_type: str = MATCH_NONE
    match_confidence: float = 0.0
    source: str = SOURCE_MERGED
    source_tab: Optional[str] = None
    last_updated: str = ""
    approximate_coordinates: bool = False  # Placeholder point, not a surveyed location
    # Presentation-only fields filled by the enrichment pass
    floor: Optional[str] = None
    visit_count: Optional[int] = None
    cleanliness: Optional[float] = None
    water_temperature: Optional[str] = None

    @property
    def lng(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]

    def copy(self, **changes) -> "Location":
        return replace(self, **changes)


@dataclass
class MatchResult:
    """Outcome of linking one map record to a sheet record."""
    sheet_record: SheetRecord
    match_type: str
    confidence: float
    sheet_position: int = -1


@dataclass
class ParseStats:
    parsed: int = 0
    dropped: int = 0
    out_of_bounds: int = 0


@dataclass
class GeocodeResult:
    """Reverse-geocoding response reduced to what the pipeline uses."""
    display_address: str
    components: Dict[str, str] = field(default_factory=dict)


@dataclass
class PipelineStats:
    """Process-level statistics for one pipeline run."""
    checkpoints: List[str] = field(default_factory=list)
    sheet_records: int = 0
    map_records: int = 0
    sheet_rows_dropped: int = 0
    placemarks_dropped: int = 0
    placemarks_out_of_bounds: int = 0
    match_counts: Dict[str, int] = field(default_factory=dict)
    duplicates_removed: int = 0
    locations: int = 0
    geocoded: int = 0
    geocode_failures: int = 0
    regions: Dict[str, int] = field(default_factory=dict)
    facility_types: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)
    output_paths: List[str] = field(default_factory=list)

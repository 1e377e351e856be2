# bidetmap/config.py
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

# Source identifiers
SHEETS_ID = os.getenv("SHEETS_ID", "1jAMaD3afMfA19U2u1aRLkL0M-ufFvz1fKDpT_BraOfY")
MAPS_ID = os.getenv("MAPS_ID", "1QEJocnDLq-vO8XRTOfRa50sFfJ3tLns0")

# URLs
SHEETS_CSV_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv&gid={gid}"
MAPS_KML_URL = "https://www.google.com/maps/d/kml?forcekml=1&mid={maps_id}"
GEOCODER_URL = os.getenv("GEOCODER_URL", "https://nominatim.openstreetmap.org/reverse")
GEOCODER_CONTACT = os.getenv("GEOCODER_CONTACT", "maintainers@bidetmap.sg")
USER_AGENT = "Mozilla/5.0 (compatible; BidetMap-DataFetcher/1.0)"

# Runtime parameters
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CONCURRENCY = 10
GEOCODER_RATE_PER_SECOND = 1
FUZZY_THRESHOLD = 0.65
FETCH_CACHE_TTL_HOURS = float(os.getenv("FETCH_CACHE_TTL_HOURS", "1"))
GEOCODE_CACHE_TTL_DAYS = float(os.getenv("GEOCODE_CACHE_TTL_DAYS", "7"))

# File names
DATA_DIR = os.getenv("DATA_DIR", "data")
COMBINED_OUTPUT = "combined.geojson"
ENRICHED_OUTPUT = "enriched.geojson"

# Singapore bounding box
SG_MIN_LAT, SG_MAX_LAT = 1.2, 1.5
SG_MIN_LNG, SG_MAX_LNG = 103.5, 104.1

# Inner box used for placeholder coordinates
PLACEHOLDER_MIN_LAT, PLACEHOLDER_MAX_LAT = 1.25, 1.45
PLACEHOLDER_MIN_LNG, PLACEHOLDER_MAX_LNG = 103.65, 103.95

COORD_MATCH_PRECISION = 4  # ~11m
DEDUP_PRECISION = 5
FAKE_ADDRESS_MAX_LENGTH = 25


def in_singapore(lat: float, lng: float) -> bool:
    """True if (lat, lng) falls inside the Singapore bounding box."""
    return SG_MIN_LAT <= lat <= SG_MAX_LAT and SG_MIN_LNG <= lng <= SG_MAX_LNG


@dataclass(frozen=True)
class SheetTab:
    """One tab of the spreadsheet export and the headers it uses."""
    name: str
    gid: str
    name_header: str
    address_header: str
    gender: str = "any"
    remarks_header: Optional[str] = None
    region_header: Optional[str] = None
    type_hint: Optional[str] = None

    def csv_url(self, sheet_id: str) -> str:
        return SHEETS_CSV_URL.format(sheet_id=sheet_id, gid=self.gid)


DEFAULT_SHEET_TABS = [
    SheetTab(
        name="MALE TOILETS",
        gid="0",
        name_header="Location",
        address_header="Address",
        gender="male",
        remarks_header="Remarks",
        region_header="Region",
    ),
    SheetTab(
        name="FEMALE TOILETS",
        gid="1908890944",
        name_header="Location",
        address_header="Address",
        gender="female",
        remarks_header="Remarks",
        region_header="Region",
    ),
    SheetTab(
        name="HOTEL ROOMS W BIDET",
        gid="1650628758",
        name_header="Hotel",
        address_header="Location",
        gender="any",
        remarks_header="Room Name w bidet (if applicable)",
        type_hint="hotel",
    ),
]


@dataclass
class PipelineConfig:
    """Everything the pipeline needs to know about its sources and outputs."""
    sheet_id: str = SHEETS_ID
    sheet_tabs: List[SheetTab] = field(default_factory=lambda: list(DEFAULT_SHEET_TABS))
    kml_url: str = MAPS_KML_URL.format(maps_id=MAPS_ID)
    data_dir: Path = Path(DATA_DIR)
    cache_dir: Optional[Path] = None
    combined_output: str = COMBINED_OUTPUT
    enriched_output: str = ENRICHED_OUTPUT
    fetch_cache_ttl: timedelta = timedelta(hours=FETCH_CACHE_TTL_HOURS)
    geocode_cache_ttl: timedelta = timedelta(days=GEOCODE_CACHE_TTL_DAYS)
    geocoder_rate_per_second: float = GEOCODER_RATE_PER_SECOND
    fuzzy_threshold: float = FUZZY_THRESHOLD
    enrich: bool = True
    force_refresh: bool = False

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.cache_dir is None:
            self.cache_dir = self.data_dir / "cache"
        else:
            self.cache_dir = Path(self.cache_dir)

    @property
    def combined_path(self) -> Path:
        return self.data_dir / self.combined_output

    @property
    def enriched_path(self) -> Path:
        return self.data_dir / self.enriched_output

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        """Build a config from the module defaults (which read the environment)."""
        return cls(**overrides)

"""
GeoJSON serialization of merged locations.

Property names are camelCase to match what the map UI reads. Geometry is
always [lng, lat].
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Sequence

from loguru import logger

from bidetmap.models import MATCH_NONE, SOURCE_MERGED, Amenities, Location, Provenance

_AMENITY_KEYS = {
    "wheelchair_access": "wheelchairAccess",
    "baby_changing": "babyChanging",
    "free_entry": "freeEntry",
    "hand_dryer": "handDryer",
    "soap_dispenser": "soapDispenser",
    "paper_towels": "paperTowels",
    "toilet_paper": "toiletPaper",
}

_ENRICHED_KEYS = {
    "floor": "floor",
    "visit_count": "visitCount",
    "cleanliness": "cleanliness",
    "water_temperature": "waterTemperature",
}


def empty_collection() -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": []}


def _amenities_to_dict(amenities: Amenities) -> Dict[str, bool]:
    out = {}
    for attr, key in _AMENITY_KEYS.items():
        value = getattr(amenities, attr)
        if value is not None:
            out[key] = value
    return out


def to_feature(location: Location) -> Dict[str, Any]:
    properties = {
        "id": location.id,
        "name": location.name,
        "address": location.address,
        "region": location.region,
        "type": location.facility_type,
        "hasBidet": location.has_bidet,
        "gender": location.gender,
        "amenities": _amenities_to_dict(location.amenities),
        "sourceComments": {
            "sheets": list(location.provenance.sheets),
            "maps": list(location.provenance.maps),
        },
        "matchType": location.match_type,
        "matchConfidence": round(location.match_confidence, 4),
        "source": location.source,
        "sourceTab": location.source_tab,
        "lastUpdated": location.last_updated,
    }
    if location.approximate_coordinates:
        properties["approximateCoordinates"] = True
    for attr, key in _ENRICHED_KEYS.items():
        value = getattr(location, attr)
        if value is not None:
            properties[key] = value

    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [location.lng, location.lat]},
        "properties": properties,
    }


def from_feature(feature: Dict[str, Any]) -> Location:
    """Rebuild a Location from a feature written by to_feature."""
    props = feature.get("properties") or {}
    lng, lat = feature["geometry"]["coordinates"][:2]
    amenity_props = props.get("amenities") or {}
    comments = props.get("sourceComments") or {}
    return Location(
        id=props.get("id", ""),
        name=props.get("name", ""),
        coordinates=(float(lng), float(lat)),
        address=props.get("address") or "",
        region=props.get("region") or "Unknown",
        facility_type=props.get("type") or "Other",
        has_bidet=bool(props.get("hasBidet", True)),
        gender=props.get("gender") or "any",
        amenities=Amenities(**{
            attr: amenity_props[key] for attr, key in _AMENITY_KEYS.items() if key in amenity_props
        }),
        provenance=Provenance(
            sheets=list(comments.get("sheets") or []),
            maps=list(comments.get("maps") or []),
        ),
        match_type=props.get("matchType") or MATCH_NONE,
        match_confidence=float(props.get("matchConfidence") or 0.0),
        source=props.get("source") or SOURCE_MERGED,
        source_tab=props.get("sourceTab"),
        last_updated=props.get("lastUpdated") or "",
        approximate_coordinates=bool(props.get("approximateCoordinates", False)),
        floor=props.get("floor"),
        visit_count=props.get("visitCount"),
        cleanliness=props.get("cleanliness"),
        water_temperature=props.get("waterTemperature"),
    )


def to_feature_collection(locations: Sequence[Location]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": [to_feature(loc) for loc in locations]}


def write_collection(path, collection: Dict[str, Any]) -> Path:
    """Write the collection as UTF-8 JSON, replacing `path` atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(collection, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except OSError:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    logger.info(f"💾 Wrote {len(collection.get('features', []))} features to {path}")
    return path


def read_collection(path) -> Dict[str, Any]:
    """The collection at `path`, or an empty FeatureCollection if it is missing or unreadable."""
    path = Path(path)
    if not path.exists():
        return empty_collection()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"⚠️ Could not read {path}: {e}")
        return empty_collection()
    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        return empty_collection()
    data.setdefault("features", [])
    return data

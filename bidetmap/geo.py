"""Geographic utilities for coordinate keys and placeholder points."""

from typing import Tuple

from bidetmap.config import (
    PLACEHOLDER_MAX_LAT,
    PLACEHOLDER_MAX_LNG,
    PLACEHOLDER_MIN_LAT,
    PLACEHOLDER_MIN_LNG,
)
from bidetmap.utils import hash_fraction


def round_coordinates(coordinates: Tuple[float, float], precision: int) -> Tuple[float, float]:
    """
    Round a (lng, lat) pair for use as a lookup key.

    Args:
        coordinates: (lng, lat) in degrees
        precision: decimal places (4 is ~11m, 5 is ~1m)

    Returns:
        Rounded (lng, lat)
    """
    lng, lat = coordinates
    # + 0.0 folds -0.0 into 0.0 so equal points share a key
    return (round(lng, precision) + 0.0, round(lat, precision) + 0.0)


def placeholder_coordinates(seed: str) -> Tuple[float, float]:
    """
    Deterministic stand-in point inside Singapore for a record with no location.

    The same seed always lands on the same point, so re-runs are stable.

    Returns:
        (lng, lat) within the inner Singapore box
    """
    lng = PLACEHOLDER_MIN_LNG + hash_fraction(seed, "lng") * (PLACEHOLDER_MAX_LNG - PLACEHOLDER_MIN_LNG)
    lat = PLACEHOLDER_MIN_LAT + hash_fraction(seed, "lat") * (PLACEHOLDER_MAX_LAT - PLACEHOLDER_MIN_LAT)
    return (round(lng, 6), round(lat, 6))

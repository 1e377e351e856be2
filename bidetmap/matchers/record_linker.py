# bidetmap/matchers/record_linker.py

from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, List, Optional, Sequence, Set, Tuple, TypeVar

from loguru import logger

from bidetmap.config import COORD_MATCH_PRECISION, FUZZY_THRESHOLD
from bidetmap.geo import round_coordinates
from bidetmap.matchers.name_matcher import best_fuzzy_candidate, fuzzy_key
from bidetmap.models import (
    MATCH_COORDINATES,
    MATCH_EXACT_NAME,
    MATCH_FUZZY,
    MATCH_NORMALIZED_NAME,
    Coordinates,
    MapRecord,
    MatchResult,
    SheetRecord,
)
from bidetmap.normalizer import compact_key

T = TypeVar("T")

EXACT_CONFIDENCE = 1.0
NORMALIZED_CONFIDENCE = 0.9


class NameIndex(Generic[T]):
    """
    Ordered records plus the lookup tables each matching strategy needs.

    Positions are the records' order in the index; every lookup prefers the
    earliest position so results never depend on dict or set ordering.
    """

    def __init__(
        self,
        records: Sequence[T],
        name_of: Callable[[T], str],
        coordinates_of: Callable[[T], Optional[Coordinates]],
    ):
        self.records: List[T] = list(records)
        self._used: Set[int] = set()
        self._by_coords: Dict[Tuple[float, float], List[int]] = {}
        self._by_exact: Dict[str, List[int]] = {}
        self._by_compact: Dict[str, List[int]] = {}
        self._fuzzy_keys: List[Tuple[int, str]] = []

        for position, record in enumerate(self.records):
            name = (name_of(record) or "").strip()
            coordinates = coordinates_of(record)
            if coordinates is not None:
                key = round_coordinates(coordinates, COORD_MATCH_PRECISION)
                self._by_coords.setdefault(key, []).append(position)
            if name:
                self._by_exact.setdefault(name.lower(), []).append(position)
                compact = compact_key(name)
                if compact:
                    self._by_compact.setdefault(compact, []).append(position)
                self._fuzzy_keys.append((position, fuzzy_key(name)))

    def __len__(self) -> int:
        return len(self.records)

    def mark_used(self, position: int) -> None:
        self._used.add(position)

    def is_used(self, position: int) -> bool:
        return position in self._used

    def unused(self) -> List[T]:
        return [r for i, r in enumerate(self.records) if i not in self._used]

    def _first(self, positions: Optional[List[int]], include_used: bool) -> Optional[int]:
        for position in positions or ():
            if include_used or position not in self._used:
                return position
        return None

    def find(
        self,
        name: str,
        coordinates: Optional[Coordinates] = None,
        threshold: float = FUZZY_THRESHOLD,
        include_used: bool = False,
    ) -> Optional[Tuple[int, str, float]]:
        """
        Run the matching cascade; the first strategy that matches wins.

        1. Coordinates rounded to 4 decimals (confidence 1.0)
        2. Case-insensitive exact name (confidence 1.0)
        3. Normalized name (confidence 0.9)
        4. Best fuzzy score above `threshold` (confidence = score)

        Returns:
            Optional[Tuple[int, str, float]]: (position, match type, confidence).
        """
        if coordinates is not None:
            key = round_coordinates(coordinates, COORD_MATCH_PRECISION)
            position = self._first(self._by_coords.get(key), include_used)
            if position is not None:
                return position, MATCH_COORDINATES, EXACT_CONFIDENCE

        name = (name or "").strip()
        if not name:
            return None

        position = self._first(self._by_exact.get(name.lower()), include_used)
        if position is not None:
            return position, MATCH_EXACT_NAME, EXACT_CONFIDENCE

        compact = compact_key(name)
        if compact:
            position = self._first(self._by_compact.get(compact), include_used)
            if position is not None:
                return position, MATCH_NORMALIZED_NAME, NORMALIZED_CONFIDENCE

        candidates = [
            (position, key) for position, key in self._fuzzy_keys
            if include_used or position not in self._used
        ]
        best = best_fuzzy_candidate(fuzzy_key(name), candidates, threshold)
        if best is not None:
            position, score = best
            return position, MATCH_FUZZY, score
        return None


class SheetIndex(NameIndex[SheetRecord]):
    def __init__(self, records: Sequence[SheetRecord]):
        super().__init__(records, lambda r: r.raw_name, lambda r: r.coordinates)


class MapIndex(NameIndex[MapRecord]):
    def __init__(self, records: Sequence[MapRecord]):
        super().__init__(records, lambda r: r.raw_name, lambda r: r.coordinates)


def match(
    map_record: MapRecord,
    sheet_index: SheetIndex,
    threshold: float = FUZZY_THRESHOLD,
) -> Optional[MatchResult]:
    """
    Find the sheet record that describes the same place as `map_record`.

    Pure with respect to the index's current contents: records already marked
    used are never returned, and nothing is marked here.

    Args:
        map_record (MapRecord): Placemark to link.
        sheet_index (SheetIndex): Sheet records and their used-state.
        threshold (float): Fuzzy acceptance threshold.

    Returns:
        Optional[MatchResult]: The match, or None if every strategy failed.
    """
    found = sheet_index.find(map_record.raw_name, map_record.coordinates, threshold)
    if found is None:
        return None
    position, match_type, confidence = found
    return MatchResult(
        sheet_record=sheet_index.records[position],
        match_type=match_type,
        confidence=confidence,
        sheet_position=position,
    )


@dataclass
class LinkResult:
    pairs: List[Tuple[MapRecord, MatchResult]] = field(default_factory=list)
    unmatched_maps: List[MapRecord] = field(default_factory=list)
    unmatched_sheets: List[SheetRecord] = field(default_factory=list)
    match_counts: Dict[str, int] = field(default_factory=dict)


def link_records(
    map_records: Sequence[MapRecord],
    sheet_records: Sequence[SheetRecord],
    threshold: float = FUZZY_THRESHOLD,
) -> LinkResult:
    """
    Link placemarks to sheet rows one-to-one, in placemark order.

    Each sheet record is consumed by at most one placemark.
    """
    index = SheetIndex(sheet_records)
    result = LinkResult()
    counts: Counter = Counter()

    for map_record in map_records:
        found = match(map_record, index, threshold)
        if found is None:
            result.unmatched_maps.append(map_record)
            continue
        index.mark_used(found.sheet_position)
        result.pairs.append((map_record, found))
        counts[found.match_type] += 1
        logger.debug(
            f"🔄 Linked '{map_record.raw_name}' -> '{found.sheet_record.raw_name}' "
            f"({found.match_type}, confidence: {found.confidence:.2f})"
        )

    result.unmatched_sheets = index.unused()
    result.match_counts = dict(counts)
    logger.info(
        f"🔗 Linked {len(result.pairs)} placemarks; "
        f"{len(result.unmatched_maps)} placemarks and {len(result.unmatched_sheets)} sheet rows unmatched"
    )
    return result


def locate_sheet_record(
    sheet_record: SheetRecord,
    map_index: MapIndex,
    threshold: float = FUZZY_THRESHOLD,
) -> Optional[Coordinates]:
    """
    Borrow coordinates for an unmatched sheet record from any placemark whose
    name matches, whether or not that placemark was already linked.
    """
    if sheet_record.coordinates is not None:
        return sheet_record.coordinates
    found = map_index.find(sheet_record.raw_name, None, threshold, include_used=True)
    if found is None:
        return None
    return map_index.records[found[0]].coordinates

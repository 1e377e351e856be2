import pytest

from bidetmap.config import in_singapore
from bidetmap.matchers import link_records
from bidetmap.merger import (
    collapse_duplicate_placemarks,
    combine_gender,
    dedupe_locations,
    is_fake_address,
    make_location_id,
    merge,
    merge_all,
)
from bidetmap.models import (
    MATCH_NONE,
    MATCH_NORMALIZED_NAME,
    SOURCE_MAPS,
    SOURCE_MERGED,
    SOURCE_SHEETS,
    MapRecord,
    SheetRecord,
)
from bidetmap.normalizer import compact_key

TODAY = "2024-01-15"


def test_vivocity_scenario_merges_into_one_location():
    sheet = SheetRecord(
        raw_name="VivoCity",
        raw_address="1 HarbourFront Walk, Singapore 098585",
        remarks="Level 1",
        gender_tag="male",
        source_tab="MALE TOILETS",
    )
    placemark = MapRecord(raw_name="Vivo City", coordinates=(103.8219, 1.2640), description="Near food court")

    locations, removed = merge_all(link_records([placemark], [sheet]), [placemark], today=TODAY)

    assert removed == 0
    assert len(locations) == 1
    location = locations[0]
    assert location.match_type == MATCH_NORMALIZED_NAME
    assert location.match_confidence == 0.9
    assert location.address == "1 HarbourFront Walk, Singapore 098585"
    assert location.coordinates == (103.8219, 1.2640)
    assert location.name == "VivoCity"
    assert location.source == SOURCE_MERGED
    assert location.source_tab == "MALE TOILETS"
    assert location.provenance.sheets == ["Level 1"]
    assert location.provenance.maps == ["Near food court"]
    assert location.last_updated == TODAY


@pytest.mark.parametrize("address, name, expected", [
    ("Funan Mall", "Funan Mall", True),
    ("funan mall", "Funan Mall", True),
    ("Funan Mall Singapore", "Funan Mall Singapore", False),
    ("107 North Bridge Rd 179105", "107 North Bridge Rd 179105", False),
    ("A Very Long Venue Name Indeed", "A Very Long Venue Name Indeed", False),
    ("107 North Bridge Road", "Funan Mall", False),
    ("", "Funan Mall", False),
])
def test_is_fake_address(address, name, expected):
    assert is_fake_address(address, name) is expected


def test_fake_address_is_cleared_on_merge():
    sheet = SheetRecord(raw_name="Funan Mall", raw_address="Funan Mall")
    location = merge(sheet, None, today=TODAY)
    assert len("Funan Mall") == 10
    assert location.address == ""


def test_fake_sheet_address_falls_back_to_map_address():
    sheet = SheetRecord(raw_name="Funan Mall", raw_address="Funan Mall")
    placemark = MapRecord(
        raw_name="Funan", coordinates=(103.8500, 1.2913), address="107 North Bridge Rd, Singapore 179105"
    )
    location = merge(sheet, placemark, today=TODAY)
    assert location.address == "107 North Bridge Rd, Singapore 179105"


def test_duplicate_placemarks_collapse_to_one_location():
    placemarks = [
        MapRecord(raw_name="Raffles City", coordinates=(103.8531, 1.2937), description="B1", female=True),
        MapRecord(raw_name="RAFFLES CITY", coordinates=(103.8531, 1.2937), description="Level 3", male=True),
    ]
    collapsed = collapse_duplicate_placemarks(placemarks)
    assert len(collapsed) == 1
    assert collapsed[0].male and collapsed[0].female

    locations, _ = merge_all(link_records(collapsed, []), collapsed, today=TODAY)
    assert len(locations) == 1
    assert locations[0].gender == "any"
    assert locations[0].provenance.maps == ["B1\nLevel 3"]


def test_dedupe_folds_evidence_into_first_occurrence():
    first = merge(None, MapRecord(raw_name="Bugis Junction", coordinates=(103.8556, 1.2993)), today=TODAY)
    second = merge(
        SheetRecord(raw_name="Bugis Junction", raw_address="", remarks="Level 2", wheelchair_access=True,
                    coordinates=(103.855601, 1.299301)),
        None,
        today=TODAY,
    )
    second.address = "200 Victoria St, Singapore 188021"

    unique, removed = dedupe_locations([first, second])

    assert removed == 1
    assert unique == [first]
    assert first.address == "200 Victoria St, Singapore 188021"
    assert first.amenities.wheelchair_access is True
    assert first.provenance.sheets == ["Level 2"]


def test_unmatched_records_are_kept():
    sheet = SheetRecord(raw_name="Toa Payoh Library", raw_address="6 Toa Payoh Central, Singapore 319191")
    placemark = MapRecord(raw_name="Changi Airport T3", coordinates=(103.9865, 1.3555))
    locations, _ = merge_all(link_records([placemark], [sheet]), [placemark], today=TODAY)

    by_source = {loc.source: loc for loc in locations}
    assert set(by_source) == {SOURCE_SHEETS, SOURCE_MAPS}
    assert by_source[SOURCE_SHEETS].approximate_coordinates is True
    assert by_source[SOURCE_MAPS].match_type == MATCH_NONE
    assert by_source[SOURCE_MAPS].match_confidence == 0.0


def test_unmatched_sheet_record_borrows_coordinates_from_linked_placemark():
    male = SheetRecord(raw_name="Ion Orchard", raw_address="2 Orchard Turn, Singapore 238801", gender_tag="male")
    female = SheetRecord(raw_name="ION Orchard", raw_address="2 Orchard Turn #B4, Singapore 238801",
                         gender_tag="female")
    placemark = MapRecord(raw_name="Ion Orchard", coordinates=(103.8320, 1.3040))

    locations, _ = merge_all(link_records([placemark], [male, female]), [placemark], today=TODAY)

    assert all(loc.coordinates == (103.8320, 1.3040) for loc in locations)
    assert not any(loc.approximate_coordinates for loc in locations)


def test_merged_locations_are_in_singapore_and_unique():
    sheets = [
        SheetRecord(raw_name="Nowhere Known", raw_address="1 Unknown Lane"),
        SheetRecord(raw_name="Bedok Mall", raw_address="311 New Upper Changi Rd, Singapore 467360"),
    ]
    maps = [
        MapRecord(raw_name="Bedok Mall", coordinates=(103.9298, 1.3249)),
        MapRecord(raw_name="Bedok Mall", coordinates=(103.9298, 1.3249)),
        MapRecord(raw_name="Tampines Hub", coordinates=(103.9402, 1.3532)),
    ]
    locations, _ = merge_all(link_records(maps, sheets), maps, today=TODAY)

    keys = set()
    for location in locations:
        assert in_singapore(location.lat, location.lng)
        key = (compact_key(location.name), round(location.lng, 5), round(location.lat, 5))
        assert key not in keys
        keys.add(key)


def test_location_id_is_stable():
    a = make_location_id("VivoCity", "1 HarbourFront Walk", (103.8219, 1.2640))
    b = make_location_id("VivoCity", "1 HarbourFront Walk", (103.0, 1.0))
    assert a == b
    assert a.startswith("loc-") and len(a) == 16
    assert make_location_id("VivoCity", "", (103.8219, 1.2640)) != make_location_id("VivoCity", "", (103.8, 1.26))


@pytest.mark.parametrize("genders, expected", [
    (("male",), "male"),
    (("female", None), "female"),
    (("male", "female"), "any"),
    ((None,), "any"),
    (("any", "male"), "any"),
])
def test_combine_gender(genders, expected):
    assert combine_gender(*genders) == expected


def test_merge_requires_a_record():
    with pytest.raises(ValueError):
        merge(None, None)


def test_folded_duplicate_cannot_bring_back_a_fake_address():
    # "Funan" and "Funan Mall" share a dedup key; the second row's address echoes the kept name
    placemark = MapRecord(raw_name="Funan Mall", coordinates=(103.8500, 1.2913))
    sheets = [
        SheetRecord(raw_name="Funan Mall", raw_address="Funan Mall", gender_tag="male"),
        SheetRecord(raw_name="Funan", raw_address="Funan Mall", gender_tag="female"),
    ]

    locations, removed = merge_all(link_records([placemark], sheets), [placemark], today=TODAY)

    assert removed == 1
    assert [loc.name for loc in locations] == ["Funan Mall"]
    assert locations[0].gender == "any"
    for location in locations:
        assert not is_fake_address(location.address, location.name)

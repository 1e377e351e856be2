from datetime import datetime, timedelta

from bidetmap.cache import FileCache, coordinate_key


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_set_then_get(tmp_path):
    cache = FileCache(tmp_path / "cache")
    cache.set("sheet:abc:0", "Location,Address\n")
    assert cache.get("sheet:abc:0", timedelta(hours=1)) == "Location,Address\n"
    assert list((tmp_path / "cache").glob("*.tmp")) == []


def test_missing_key(tmp_path):
    assert FileCache(tmp_path).get("nope", timedelta(hours=1)) is None
    assert FileCache(tmp_path).get_stale("nope") is None


def test_expired_entry_is_rejected_but_stale_read_still_works(tmp_path):
    clock = FakeClock(datetime(2024, 1, 1, 12, 0))
    cache = FileCache(tmp_path, clock=clock)
    cache.set("kml:url", "<kml/>")

    clock.now = datetime(2024, 1, 1, 13, 30)
    assert cache.get("kml:url", timedelta(hours=1)) is None
    assert cache.get_stale("kml:url") == "<kml/>"
    assert cache.get("kml:url", timedelta(days=7)) == "<kml/>"


def test_corrupt_entry_is_ignored(tmp_path):
    cache = FileCache(tmp_path)
    cache.set("geocode:1.3000,103.8500", {"display_address": "x"})
    for path in tmp_path.glob("*.json"):
        path.write_text("{not json", encoding="utf-8")
    assert cache.get("geocode:1.3000,103.8500", timedelta(days=7)) is None
    assert cache.get_stale("geocode:1.3000,103.8500") is None


def test_keys_do_not_collide(tmp_path):
    cache = FileCache(tmp_path)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a", timedelta(hours=1)) == 1
    assert cache.get("b", timedelta(hours=1)) == 2


def test_coordinate_key_rounds_to_four_decimals():
    assert coordinate_key("geocode", 1.264049, 103.821912) == "geocode:1.2640,103.8219"
    assert coordinate_key("geocode", 1.26404, 103.82191) == coordinate_key("geocode", 1.26396, 103.82189)


def test_entry_without_data_is_a_miss(tmp_path):
    cache = FileCache(tmp_path)
    cache.set("kml:url", "<kml/>")
    for path in tmp_path.glob("*.json"):
        path.write_text('{"key": "kml:url", "timestamp": "2024-01-01T12:00:00"}', encoding="utf-8")
    assert cache.get("kml:url", timedelta(days=36500)) is None
    assert cache.get_stale("kml:url") is None

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from bidetmap.config import PipelineConfig, SheetTab
from bidetmap.errors import EmptyCollectionError, FetchError
from bidetmap.merger import is_fake_address
from bidetmap.models import GeocodeResult
from bidetmap.pipeline import Pipeline

MALE_TAB = SheetTab(
    name="MALE TOILETS", gid="0", name_header="Location", address_header="Address",
    gender="male", remarks_header="Remarks", region_header="Region",
)
HOTEL_TAB = SheetTab(
    name="HOTEL ROOMS W BIDET", gid="2", name_header="Hotel", address_header="Location",
    remarks_header="Room Name w bidet (if applicable)", type_hint="hotel",
)
KML_URL = "https://maps.example/kml"

MALE_CSV = """Location,Address,Region,Remarks
VivoCity,"1 HarbourFront Walk, Singapore 098585",South,Level 1
Funan Mall,Funan Mall,,
"""

HOTEL_CSV = """Hotel,Location,Room Name w bidet (if applicable)
Raffles Hotel,"1 Beach Rd, Singapore 189673",Grand Hotel Suite
"""

KML = """<kml><Document>
<Folder><name>South</name>
<Placemark><name>Vivo City</name><description>Male: Yes</description>
<Point><coordinates>103.8219,1.2640,0</coordinates></Point></Placemark>
</Folder>
<Folder><name>East</name>
<Placemark><name>Jewel Changi Airport</name><description>Female: Yes</description>
<Point><coordinates>103.9890,1.3601,0</coordinates></Point></Placemark>
<Placemark><name>JEWEL CHANGI AIRPORT</name><description>Male: Yes</description>
<Point><coordinates>103.9890,1.3601,0</coordinates></Point></Placemark>
</Folder>
</Document></kml>
"""


def _config(tmp_path, **overrides):
    values = dict(
        sheet_id="sheet123",
        sheet_tabs=[MALE_TAB, HOTEL_TAB],
        kml_url=KML_URL,
        data_dir=tmp_path,
        enrich=False,
    )
    values.update(overrides)
    return PipelineConfig(**values)


def _source_client(responses):
    """Mock SourceClient whose get_text serves canned text per URL, or raises FetchError."""
    async def get_text(url, headers=None):
        for fragment, body in responses.items():
            if fragment in url:
                if isinstance(body, Exception):
                    raise body
                return body
        raise FetchError(url, "HTTP 404")

    client = MagicMock()
    client.get_text = AsyncMock(side_effect=get_text)
    client.close = AsyncMock()
    return client


def _features(path):
    return json.loads(path.read_text(encoding="utf-8"))["features"]


@pytest.mark.asyncio
async def test_pipeline_end_to_end(tmp_path):
    client = _source_client({"gid=0": MALE_CSV, "gid=2": HOTEL_CSV, KML_URL: KML})
    pipeline = Pipeline(_config(tmp_path), source_client=client)

    stats = await pipeline.run()

    assert stats.checkpoints == ["Init", "FetchSheets", "FetchMaps", "Merge", "Classify", "Persist", "Done"]
    assert stats.sheet_records == 3
    assert stats.map_records == 3
    assert stats.failed_sources == []
    client.close.assert_not_awaited()

    features = {f["properties"]["name"]: f for f in _features(tmp_path / "combined.geojson")}
    assert set(features) == {"VivoCity", "Funan Mall", "Raffles Hotel", "Jewel Changi Airport"}

    vivo = features["VivoCity"]
    assert vivo["geometry"]["coordinates"] == [103.8219, 1.2640]
    assert vivo["properties"]["address"] == "1 HarbourFront Walk, Singapore 098585"
    assert vivo["properties"]["matchType"] == "normalized-name"
    assert vivo["properties"]["matchConfidence"] == 0.9

    jewel = features["Jewel Changi Airport"]["properties"]
    assert jewel["type"] == "Mall"
    assert jewel["region"] == "East"
    assert jewel["gender"] == "any"

    assert features["Funan Mall"]["properties"]["address"] == ""
    assert not any(is_fake_address(f["properties"]["address"], name) for name, f in features.items())
    assert features["Raffles Hotel"]["properties"]["type"] == "Hotel"
    assert not (tmp_path / "enriched.geojson").exists()


@pytest.mark.asyncio
async def test_pipeline_writes_enriched_output(tmp_path):
    client = _source_client({"gid=0": MALE_CSV, "gid=2": HOTEL_CSV, KML_URL: KML})
    geocoder = MagicMock()
    geocoder.reverse_geocode = AsyncMock(return_value=GeocodeResult(
        display_address="78 Airport Boulevard, Singapore 819666",
        components={"house_number": "78", "road": "Airport Boulevard", "postcode": "819666"},
    ))
    geocoder.close = AsyncMock()

    stats = await Pipeline(_config(tmp_path, enrich=True), source_client=client, geocoder=geocoder).run()

    assert "Enrich" in stats.checkpoints
    assert len(stats.output_paths) == 2
    enriched = {f["properties"]["name"]: f["properties"] for f in _features(tmp_path / "enriched.geojson")}
    assert enriched["Jewel Changi Airport"]["address"] == "78 Airport Boulevard, Singapore 819666"
    assert all("cleanliness" in props for props in enriched.values())
    # The combined file is left without synthetic fields
    combined = _features(tmp_path / "combined.geojson")
    assert all("cleanliness" not in f["properties"] for f in combined)


@pytest.mark.asyncio
async def test_pipeline_survives_a_failed_source(tmp_path):
    client = _source_client({"gid=0": MALE_CSV, KML_URL: FetchError(KML_URL, "HTTP 500")})

    stats = await Pipeline(_config(tmp_path), source_client=client).run()

    assert set(stats.failed_sources) == {"HOTEL ROOMS W BIDET", "map KML"}
    assert stats.locations == 2
    assert stats.warnings
    assert stats.checkpoints[-1] == "Done"


@pytest.mark.asyncio
async def test_pipeline_uses_stale_cache_after_fetch_failure(tmp_path):
    good = _source_client({"gid=0": MALE_CSV, "gid=2": HOTEL_CSV, KML_URL: KML})
    await Pipeline(_config(tmp_path), source_client=good).run()

    down = _source_client({})
    stats = await Pipeline(_config(tmp_path, force_refresh=True), source_client=down).run()

    assert len(stats.failed_sources) == 3
    assert stats.locations == 4


@pytest.mark.asyncio
async def test_pipeline_serves_fresh_cache_without_network(tmp_path):
    good = _source_client({"gid=0": MALE_CSV, "gid=2": HOTEL_CSV, KML_URL: KML})
    await Pipeline(_config(tmp_path), source_client=good).run()

    down = _source_client({})
    stats = await Pipeline(_config(tmp_path), source_client=down).run()

    down.get_text.assert_not_awaited()
    assert stats.failed_sources == []
    assert stats.locations == 4


@pytest.mark.asyncio
async def test_pipeline_fails_when_nothing_could_be_fetched(tmp_path):
    client = _source_client({})

    with pytest.raises(EmptyCollectionError) as excinfo:
        await Pipeline(_config(tmp_path), source_client=client).run()

    assert excinfo.value.recoverable is False
    assert "map KML" in excinfo.value.failed_sources
    assert not (tmp_path / "combined.geojson").exists()


@pytest.mark.asyncio
async def test_pipeline_closes_clients_it_creates(tmp_path, monkeypatch):
    from bidetmap import pipeline as pipeline_module

    client = _source_client({"gid=0": MALE_CSV, "gid=2": HOTEL_CSV, KML_URL: KML})
    monkeypatch.setattr(pipeline_module, "SourceClient", lambda: client)

    await Pipeline(_config(tmp_path)).run()

    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_pipeline_keeps_fetched_text_when_cache_write_fails(tmp_path):
    client = _source_client({"gid=0": MALE_CSV, "gid=2": HOTEL_CSV, KML_URL: KML})
    pipeline = Pipeline(_config(tmp_path), source_client=client)
    pipeline.cache.set = MagicMock(side_effect=OSError("No space left on device"))

    stats = await pipeline.run()

    assert stats.failed_sources == []
    assert stats.locations == 4
    assert pipeline.cache.set.call_count == 3


@pytest.mark.asyncio
async def test_enrich_existing_regenerates_enriched_from_combined(tmp_path):
    client = _source_client({"gid=0": MALE_CSV, "gid=2": HOTEL_CSV, KML_URL: KML})
    await Pipeline(_config(tmp_path), source_client=client).run()
    combined = {f["properties"]["id"]: f for f in _features(tmp_path / "combined.geojson")}

    geocoder = MagicMock()
    geocoder.reverse_geocode = AsyncMock(return_value=GeocodeResult(
        display_address="78 Airport Boulevard, Singapore 819666",
        components={"house_number": "78", "road": "Airport Boulevard", "postcode": "819666"},
    ))
    offline = _source_client({})
    stats = await Pipeline(_config(tmp_path), source_client=offline, geocoder=geocoder).enrich_existing()

    offline.get_text.assert_not_awaited()
    assert stats.checkpoints == ["Init", "Enrich", "Persist", "Done"]
    assert stats.locations == 4
    assert stats.output_paths == [str(tmp_path / "enriched.geojson")]

    enriched = {f["properties"]["id"]: f for f in _features(tmp_path / "enriched.geojson")}
    assert set(enriched) == set(combined)
    for location_id, feature in enriched.items():
        assert feature["geometry"] == combined[location_id]["geometry"]
        assert feature["properties"]["name"] == combined[location_id]["properties"]["name"]
        assert "cleanliness" in feature["properties"]


@pytest.mark.asyncio
async def test_enrich_existing_without_combined_file(tmp_path):
    geocoder = MagicMock()
    geocoder.reverse_geocode = AsyncMock()

    stats = await Pipeline(_config(tmp_path), geocoder=geocoder).enrich_existing()

    geocoder.reverse_geocode.assert_not_awaited()
    assert stats.locations == 0
    assert stats.warnings
    assert not (tmp_path / "enriched.geojson").exists()

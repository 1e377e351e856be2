"""
Pipeline orchestrator.

Stages run in a fixed order and each records a checkpoint:
Init -> FetchSheets -> FetchMaps -> Merge -> Classify -> Enrich -> Persist -> Done.
A failing stage logs, substitutes an empty or partial result, and lets the
run continue. The run only fails outright when nothing could be merged and a
source fetch failed.
`enrich_existing()` re-runs only the enrichment over the combined file on disk.
"""
import asyncio
from collections import Counter
from typing import Dict, List, Optional, Tuple

from loguru import logger

from bidetmap.cache import FileCache
from bidetmap.classifier import classify_location
from bidetmap.clients import GeocoderClient, SourceClient
from bidetmap.config import PipelineConfig
from bidetmap.enrichment import Enricher
from bidetmap.errors import EmptyCollectionError
from bidetmap.geojson_io import from_feature, read_collection, to_feature_collection, write_collection
from bidetmap.matchers import link_records
from bidetmap.merger import collapse_duplicate_placemarks, merge_all
from bidetmap.models import Location, MapRecord, PipelineStats, SheetRecord
from bidetmap.parsers import parse_kml, parse_sheet_csv
from bidetmap.source_fetcher import fetch_maps_kml, fetch_sheet_tabs
from bidetmap.utils import run_date

INIT = "Init"
FETCH_SHEETS = "FetchSheets"
FETCH_MAPS = "FetchMaps"
MERGE = "Merge"
CLASSIFY = "Classify"
ENRICH = "Enrich"
PERSIST = "Persist"
DONE = "Done"


class Pipeline:
    """
    One run of fetch, merge, classify, enrich and persist.

    Clients passed in are used as-is and left open; clients the pipeline
    creates itself are closed at the end of `run()` or `enrich_existing()`.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        source_client: Optional[SourceClient] = None,
        geocoder: Optional[GeocoderClient] = None,
    ):
        self.config = config or PipelineConfig.from_env()
        self._owns_source_client = source_client is None
        self._owns_geocoder = geocoder is None
        self.source_client = source_client
        self.geocoder = geocoder
        self.cache = FileCache(self.config.cache_dir)
        self.stats = PipelineStats()

    def _checkpoint(self, stage: str) -> None:
        self.stats.checkpoints.append(stage)
        logger.debug(f"📍 Checkpoint: {stage}")

    def _warn(self, message: str) -> None:
        logger.warning(f"⚠️ {message}")
        self.stats.warnings.append(message)

    def _error(self, message: str) -> None:
        logger.error(f"❌ {message}")
        self.stats.errors.append(message)

    async def _fetch(self) -> Tuple[Dict[str, str], str]:
        """Both sources are fetched concurrently; checkpoints are recorded in stage order."""
        sheets_result, maps_result = await asyncio.gather(
            fetch_sheet_tabs(self.config, self.cache, self.source_client),
            fetch_maps_kml(self.config, self.cache, self.source_client),
            return_exceptions=True,
        )

        if isinstance(sheets_result, Exception):
            self._error(f"Sheet fetch stage failed: {sheets_result}")
            sheet_texts: Dict[str, str] = {}
            self.stats.failed_sources.extend(tab.name for tab in self.config.sheet_tabs)
        else:
            sheet_texts, failed_tabs = sheets_result
            for name in failed_tabs:
                self._warn(f"Sheet tab '{name}' could not be fetched")
            self.stats.failed_sources.extend(failed_tabs)
        self._checkpoint(FETCH_SHEETS)

        if isinstance(maps_result, Exception):
            self._error(f"Map fetch stage failed: {maps_result}")
            kml_text = ""
            self.stats.failed_sources.append("map KML")
        else:
            kml_text, kml_failed = maps_result
            if kml_failed:
                self._warn("Map KML could not be fetched")
                self.stats.failed_sources.append("map KML")
        self._checkpoint(FETCH_MAPS)
        return sheet_texts, kml_text

    def _parse_sheets(self, sheet_texts: Dict[str, str]) -> List[SheetRecord]:
        records: List[SheetRecord] = []
        for tab in self.config.sheet_tabs:
            text = sheet_texts.get(tab.name, "")
            if not text:
                continue
            try:
                tab_records, parse_stats = parse_sheet_csv(text, tab)
            except Exception as e:
                self._error(f"Could not parse sheet tab '{tab.name}': {e}")
                continue
            records.extend(tab_records)
            self.stats.sheet_rows_dropped += parse_stats.dropped
        self.stats.sheet_records = len(records)
        return records

    def _parse_maps(self, kml_text: str) -> List[MapRecord]:
        if not kml_text:
            return []
        try:
            records, parse_stats = parse_kml(kml_text)
        except Exception as e:
            self._error(f"Could not parse map KML: {e}")
            return []
        self.stats.placemarks_dropped += parse_stats.dropped
        self.stats.placemarks_out_of_bounds += parse_stats.out_of_bounds
        self.stats.map_records = len(records)
        return records

    def _merge(self, sheet_records: List[SheetRecord], map_records: List[MapRecord]) -> List[Location]:
        try:
            map_records = collapse_duplicate_placemarks(map_records)
            link_result = link_records(map_records, sheet_records, self.config.fuzzy_threshold)
            locations, removed = merge_all(link_result, map_records, self.config.fuzzy_threshold, run_date())
        except Exception as e:
            self._error(f"Merge stage failed: {e}")
            locations, removed = [], 0
        else:
            self.stats.match_counts = dict(link_result.match_counts)
        self.stats.duplicates_removed = removed
        self._checkpoint(MERGE)
        return locations

    def _classify(self, locations: List[Location]) -> List[Location]:
        classified = []
        for location in locations:
            try:
                classified.append(classify_location(location))
            except Exception as e:
                self._warn(f"Could not classify '{location.name}': {e}")
                classified.append(location)
        self._checkpoint(CLASSIFY)
        return classified

    async def _enrich(self, locations: List[Location]) -> Optional[List[Location]]:
        if not self.config.enrich:
            return None
        return await self._run_enricher(locations)

    async def _run_enricher(self, locations: List[Location]) -> Optional[List[Location]]:
        if self.geocoder is None:
            self.geocoder = GeocoderClient()
        enricher = Enricher(self.geocoder, self.cache, self.config.geocode_cache_ttl)
        try:
            enriched = await enricher.enrich(locations)
        except Exception as e:
            self._error(f"Enrichment stage failed: {e}")
            return None
        finally:
            self.stats.geocoded = enricher.geocoded
            self.stats.geocode_failures = enricher.failures
        self._checkpoint(ENRICH)
        return enriched

    def _persist(self, locations: List[Location], enriched: Optional[List[Location]]) -> None:
        outputs = [(self.config.combined_path, locations)]
        if enriched is not None:
            outputs.append((self.config.enriched_path, enriched))
        for path, items in outputs:
            self._write(path, items)
        self._checkpoint(PERSIST)

    def _write(self, path, items: List[Location]) -> None:
        try:
            write_collection(path, to_feature_collection(items))
        except OSError as e:
            self._error(f"Could not write {path}: {e}")
            return
        self.stats.output_paths.append(str(path))

    def _record_distributions(self, locations: List[Location]) -> None:
        self.stats.locations = len(locations)
        self.stats.regions = dict(Counter(loc.region for loc in locations))
        self.stats.facility_types = dict(Counter(loc.facility_type for loc in locations))

    async def run(self) -> PipelineStats:
        """
        Execute every stage and persist the results.

        Returns:
            PipelineStats: Counts, checkpoints, warnings and output paths for the run.

        Raises:
            EmptyCollectionError: If the merge produced nothing after a source fetch failed.
        """
        self.stats = PipelineStats()
        self._checkpoint(INIT)
        if self.source_client is None:
            self.source_client = SourceClient()

        try:
            sheet_texts, kml_text = await self._fetch()
            sheet_records = self._parse_sheets(sheet_texts)
            map_records = self._parse_maps(kml_text)
            logger.info(f"📥 {len(sheet_records)} sheet records, {len(map_records)} placemarks")

            locations = self._merge(sheet_records, map_records)
            if not locations and self.stats.failed_sources:
                raise EmptyCollectionError(self.stats.failed_sources)

            locations = self._classify(locations)
            self._record_distributions(locations)
            enriched = await self._enrich(locations)
            self._persist(locations, enriched)
        finally:
            await self._close_owned_clients()

        self._checkpoint(DONE)
        logger.info(
            f"✅ Pipeline finished: {self.stats.locations} locations, "
            f"{len(self.stats.warnings)} warnings, {len(self.stats.errors)} errors"
        )
        return self.stats

    def _load_combined(self) -> List[Location]:
        path = self.config.combined_path
        locations = []
        for feature in read_collection(path)["features"]:
            try:
                locations.append(from_feature(feature))
            except (KeyError, TypeError, ValueError) as e:
                self._warn(f"Skipping unreadable feature in {path}: {e}")
        return locations

    async def enrich_existing(self) -> PipelineStats:
        """
        Regenerate the enriched output from the combined file on disk, without
        fetching or merging. Runs even when `config.enrich` is off.

        Returns:
            PipelineStats: Location count, geocode counts and the output path.
        """
        self.stats = PipelineStats()
        self._checkpoint(INIT)

        locations = self._load_combined()
        if not locations:
            self._warn(f"No locations in {self.config.combined_path}; nothing to enrich")
            self._checkpoint(DONE)
            return self.stats
        self._record_distributions(locations)

        try:
            enriched = await self._run_enricher(locations)
        finally:
            await self._close_owned_clients()

        if enriched is not None:
            self._write(self.config.enriched_path, enriched)
            self._checkpoint(PERSIST)
        self._checkpoint(DONE)
        logger.info(f"✅ Enriched {self.stats.locations} locations from {self.config.combined_path}")
        return self.stats

    async def _close_owned_clients(self) -> None:
        if self._owns_source_client and self.source_client is not None:
            await self.source_client.close()
        if self._owns_geocoder and self.geocoder is not None:
            await self.geocoder.close()

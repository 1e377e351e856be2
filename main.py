import argparse
import asyncio
import sys

from loguru import logger

from bidetmap.config import DATA_DIR, LOG_LEVEL, PipelineConfig
from bidetmap.errors import EmptyCollectionError
from bidetmap.models import PipelineStats
from bidetmap.pipeline import Pipeline


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch, merge and classify bidet locations into GeoJSON.")
    parser.add_argument("--force-refresh", action="store_true", help="Ignore fresh cache entries and refetch sources")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--no-enrich", action="store_true", help="Skip reverse geocoding and synthetic fields")
    mode.add_argument(
        "--enrich-only", action="store_true",
        help="Regenerate enriched.geojson from the existing combined.geojson without fetching",
    )
    parser.add_argument("--data-dir", default=DATA_DIR, help="Directory for outputs and the cache")
    return parser.parse_args(argv)


def log_summary(stats: PipelineStats) -> None:
    """Log the end-of-run statistics."""
    logger.info(f"📊 Sheet records: {stats.sheet_records} ({stats.sheet_rows_dropped} rows dropped)")
    logger.info(
        f"📊 Placemarks: {stats.map_records} ({stats.placemarks_dropped} dropped, "
        f"{stats.placemarks_out_of_bounds} out of bounds)"
    )
    logger.info(f"📊 Matches: {stats.match_counts}; duplicates removed: {stats.duplicates_removed}")
    logger.info(f"📊 Locations: {stats.locations}")
    logger.info(f"📊 Regions: {stats.regions}")
    logger.info(f"📊 Facility types: {stats.facility_types}")
    if stats.geocoded or stats.geocode_failures:
        logger.info(f"📊 Geocoded: {stats.geocoded} ({stats.geocode_failures} failed)")
    for path in stats.output_paths:
        logger.info(f"📁 {path}")


async def main(argv=None) -> int:
    """
    Run the pipeline once.

    Returns:
        int: Process exit status (1 when no locations could be produced).
    """
    args = parse_args(argv)

    # Initialize logs
    logger.remove()  # Remove default handler
    logger.add(sys.stderr, level=LOG_LEVEL, format="<green>{time:HH:mm:ss}</green> | <level>{message}</level>")

    config = PipelineConfig.from_env(
        data_dir=args.data_dir,
        enrich=not args.no_enrich,
        force_refresh=args.force_refresh,
    )
    try:
        pipeline = Pipeline(config)
        stats = await (pipeline.enrich_existing() if args.enrich_only else pipeline.run())
    except EmptyCollectionError as e:
        logger.error(f"❌ {e.message}")
        logger.error(e.user_message)
        return 1

    log_summary(stats)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

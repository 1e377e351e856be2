import asyncio
import time
from typing import Dict, List, Optional, Tuple

from loguru import logger

from bidetmap.cache import FileCache
from bidetmap.clients import SourceClient
from bidetmap.config import PipelineConfig, SheetTab
from bidetmap.errors import FetchError


def sheet_cache_key(sheet_id: str, tab: SheetTab) -> str:
    return f"sheet:{sheet_id}:{tab.gid}"


def kml_cache_key(url: str) -> str:
    return f"kml:{url}"


async def _fetch_cached(
    client: SourceClient,
    cache: FileCache,
    config: PipelineConfig,
    key: str,
    url: str,
    label: str,
) -> Tuple[str, bool]:
    """
    Fetch one export, preferring a fresh cache entry and falling back to the
    last cached copy of any age when the network fails.

    Args:
        client (SourceClient): HTTP client singleton.
        cache (FileCache): Raw fetch cache.
        config (PipelineConfig): Supplies TTL and force-refresh.
        key (str): Cache key for this export.
        url (str): Export URL.
        label (str): Human-readable name for logs.

    Returns:
        Tuple[str, bool]: (text, failed). `failed` is True when the network
        fetch failed, even if stale cached text was substituted.
    """
    if not config.force_refresh:
        cached = cache.get(key, config.fetch_cache_ttl)
        if cached is not None:
            logger.info(f"📦 Using cached {label}")
            return cached, False

    start = time.perf_counter()
    try:
        text = await client.get_text(url)
    except FetchError as e:
        stale: Optional[str] = cache.get_stale(key)
        if stale is not None:
            logger.warning(f"⚠️ {e.message}; using last cached copy of {label}")
            return stale, True
        logger.error(f"❌ {e.message}; no cached copy of {label}")
        return "", True

    try:
        cache.set(key, text)
    except OSError as e:
        logger.warning(f"⚠️ Could not cache {label}: {e}")
    logger.debug(f"✅ Fetched {label} in {time.perf_counter() - start:.2f}s ({len(text)} chars)")
    return text, False


async def fetch_sheet_tabs(
    config: PipelineConfig,
    cache: FileCache,
    client: Optional[SourceClient] = None,
) -> Tuple[Dict[str, str], List[str]]:
    """
    Download every configured sheet tab concurrently.

    Returns:
        Tuple[Dict[str, str], List[str]]: CSV text per tab name, and the names
        of tabs whose network fetch failed.
    """
    client = client or SourceClient()
    results = await asyncio.gather(*[
        _fetch_cached(
            client, cache, config,
            sheet_cache_key(config.sheet_id, tab),
            tab.csv_url(config.sheet_id),
            f"sheet tab '{tab.name}'",
        )
        for tab in config.sheet_tabs
    ])

    texts: Dict[str, str] = {}
    failed: List[str] = []
    for tab, (text, tab_failed) in zip(config.sheet_tabs, results):
        texts[tab.name] = text
        if tab_failed:
            failed.append(tab.name)
    return texts, failed


async def fetch_maps_kml(
    config: PipelineConfig,
    cache: FileCache,
    client: Optional[SourceClient] = None,
) -> Tuple[str, bool]:
    """Download the map export as KML text; returns (text, failed)."""
    client = client or SourceClient()
    return await _fetch_cached(client, cache, config, kml_cache_key(config.kml_url), config.kml_url, "map KML")

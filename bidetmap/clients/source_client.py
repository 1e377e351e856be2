"""
Singleton HTTP client for the spreadsheet and map exports, rate limited with aiolimiter.
"""
import asyncio
from typing import Dict, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout
from aiolimiter import AsyncLimiter
from loguru import logger

from bidetmap.config import CONCURRENCY, USER_AGENT
from bidetmap.errors import FetchError


class SourceClient:
    """
    Singleton client that downloads the raw CSV and KML exports as text.
    """
    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not SourceClient._initialized:
            self.rate_limiter = AsyncLimiter(max_rate=CONCURRENCY, time_period=1.0)
            self._session: Optional[ClientSession] = None
            SourceClient._initialized = True

    async def _get_session(self) -> ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=ClientTimeout(total=60), headers={"User-Agent": USER_AGENT})
        return self._session

    async def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        """
        GET `url` and return the response body as text.

        Args:
            url: Export URL to download.
            headers: Optional extra HTTP headers.

        Returns:
            The decoded body.

        Raises:
            FetchError: on network errors, non-200 responses, or empty bodies.
        """
        async with self.rate_limiter:
            session = await self._get_session()
            try:
                async with session.get(url, headers=headers, allow_redirects=True) as resp:
                    if resp.status != 200:
                        raise FetchError(url, f"HTTP {resp.status} {resp.reason}")
                    text = await resp.text()
            except (ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"⚠️ GET {url} failed: {e}")
                raise FetchError(url, str(e) or type(e).__name__) from e

        if not text.strip():
            raise FetchError(url, "empty response body")
        return text

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

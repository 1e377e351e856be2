"""
Singleton reverse-geocoding client (Nominatim-compatible) with a 1 request/second limit.
"""
import asyncio
from typing import Optional

from aiohttp import ClientError, ClientSession, ClientTimeout
from aiolimiter import AsyncLimiter
from loguru import logger

from bidetmap.config import GEOCODER_CONTACT, GEOCODER_RATE_PER_SECOND, GEOCODER_URL
from bidetmap.errors import GeocodeError
from bidetmap.models import GeocodeResult


class GeocoderClient:
    """
    Singleton client for reverse geocoding.
    Nominatim's usage policy requires an identifying User-Agent and at most
    one request per second.
    """
    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not GeocoderClient._initialized:
            self.base_url = GEOCODER_URL
            self.user_agent = f"BidetMap/1.0 ({GEOCODER_CONTACT})"
            self.rate_limiter = AsyncLimiter(max_rate=GEOCODER_RATE_PER_SECOND, time_period=1.0)
            self._session: Optional[ClientSession] = None
            GeocoderClient._initialized = True

    async def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession(
                timeout=ClientTimeout(total=30),
                headers={"User-Agent": self.user_agent, "Accept-Language": "en"},
            )
        return self._session

    async def reverse_geocode(self, lat: float, lng: float) -> GeocodeResult:
        """
        Look up the address at a point.

        Args:
            lat: Latitude in degrees.
            lng: Longitude in degrees.

        Returns:
            GeocodeResult with the display address and raw address components.

        Raises:
            GeocodeError: on network failure, non-200 responses, or a malformed payload.
        """
        params = {"format": "jsonv2", "lat": f"{lat:.6f}", "lon": f"{lng:.6f}", "addressdetails": "1"}
        async with self.rate_limiter:
            session = await self._get_session()
            try:
                async with session.get(self.base_url, params=params) as resp:
                    if resp.status != 200:
                        raise GeocodeError(lat, lng, f"HTTP {resp.status}")
                    data = await resp.json(content_type=None)
            except (ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.debug(f"⚠️ Reverse geocode request failed: {e}")
                raise GeocodeError(lat, lng, str(e) or type(e).__name__) from e

        if not isinstance(data, dict) or "error" in data or not data.get("display_name"):
            detail = data.get("error", "missing display_name") if isinstance(data, dict) else "not a JSON object"
            raise GeocodeError(lat, lng, f"malformed payload: {detail}")

        components = data.get("address") or {}
        if not isinstance(components, dict):
            components = {}
        return GeocodeResult(
            display_address=data["display_name"],
            components={k: str(v) for k, v in components.items()},
        )

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

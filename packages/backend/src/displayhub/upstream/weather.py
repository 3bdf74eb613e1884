"""OpenWeatherMap client — current weather and location search."""

from typing import Optional

import httpx
import structlog

from displayhub.upstream.errors import (
    TransientUpstreamError,
    UpstreamError,
    raise_for_upstream_status,
)
from displayhub.upstream.models import LocationMatch, WeatherSnapshot

logger = structlog.get_logger()


class WeatherClient:
    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = "https://api.openweathermap.org/data/2.5",
        geo_url: str = "https://api.openweathermap.org/geo/1.0",
        units: str = "metric",
        timeout: float = 10.0,
        default_retry_after: float = 5.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.geo_url = geo_url.rstrip("/")
        self.units = units
        self.default_retry_after = default_retry_after
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_current(self, lat: float, lon: float) -> WeatherSnapshot:
        data = await self._get_json(
            f"{self.api_url}/weather",
            {"lat": lat, "lon": lon, "units": self.units},
        )
        try:
            return WeatherSnapshot.from_owm(data, units=self.units)
        except (ValueError, TypeError, AttributeError) as e:
            raise TransientUpstreamError(f"Malformed weather payload: {e}") from e

    async def search_locations(self, query: str, limit: int = 5) -> list[LocationMatch]:
        """Geocode a free-text place name. Returns [] when the lookup fails."""
        try:
            data = await self._get_json(
                f"{self.geo_url}/direct", {"q": query, "limit": limit}
            )
            return [LocationMatch.model_validate(item) for item in data]
        except (UpstreamError, ValueError, TypeError) as e:
            logger.warning("weather.geocoding_failed", query=query, error=str(e))
            return []

    async def _get_json(self, url: str, params: dict):
        try:
            response = await self._http.get(url, params={**params, "appid": self.api_key})
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"Weather request timed out: {url}") from e
        except httpx.HTTPError as e:
            raise TransientUpstreamError(f"Weather request failed: {e}") from e
        raise_for_upstream_status(response, default_retry_after=self.default_retry_after)
        try:
            return response.json()
        except ValueError as e:
            raise TransientUpstreamError(f"Malformed weather response: {e}") from e
